from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, text
import time
import uuid
from contextlib import asynccontextmanager

from moderation_pipeline.routers import moderation, appeals, analytics
from moderation_pipeline.core.logger import logger
from moderation_pipeline.core.exceptions import ModerationPipelineException, EXCEPTION_STATUS_MAPPING
from moderation_pipeline.core.config import settings
from moderation_pipeline.core.security import get_client_ip
from moderation_pipeline.db.session import get_db

VERSION = "1.0.0"

# Application lifespan management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management for startup and shutdown events."""
    logger.info("Starting Content Moderation & Appeals API", extra={"version": VERSION})

    # Registers every model with Base.metadata
    from moderation_pipeline.db.base import Base
    from moderation_pipeline.db.session import engine

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables verified/created successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}", exc_info=True)

    if settings.classifier_provider != "none" and not (
        settings.huggingface_api_key or settings.openai_api_key
    ):
        logger.warning("Generated-content classifier is not configured; AI detection disabled")

    yield

    logger.info("Shutting down Content Moderation & Appeals API")

app = FastAPI(
    title=settings.app_name,
    description="""
    Moderation and appeals pipeline for user-submitted text: discussion posts and replies,
    comments, profiles, collections, community proposals and long-form works.

    ## Features

    * **Near-duplicate detection**: normalized edit-distance similarity against a corpus of prior submissions
    * **Generated-content detection**: optional external classifier, degrading gracefully when unavailable
    * **Spam heuristics**: keyword, repetition, link, character-run and length signals per content kind
    * **Citation gate**: plagiarized or machine-generated content must cite its sources
    * **Appeals**: authors contest flags; staff approve (override) or reject them

    ## Identity

    The gateway in front of this service forwards the caller as `X-User-Id` and
    `X-User-Role` headers. Staff roles are configured with `STAFF_ROLES`.

    ## Error Handling

    All errors return structured JSON responses with:
    - `error_code`: Machine-readable error identifier
    - `message`: Human-readable error description
    - `details`: Additional error context

    A submission that needs citations answers 400 with `requiresCitations: true`.
    """,
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# Security middleware
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["*"]
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request ID middleware
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Add unique request ID to all requests for tracing."""
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    logger.info(
        f"{request.method} {request.url.path}",
        extra={
            "request_id": request_id,
            "author_id": request.headers.get("X-User-Id"),
            "client_ip": get_client_ip(request)
        }
    )

    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(process_time)

    logger.info(
        "Request completed",
        extra={
            "request_id": request_id,
            "status_code": response.status_code,
            "process_time": process_time
        }
    )

    return response

# Global exception handler
@app.exception_handler(ModerationPipelineException)
async def moderation_exception_handler(request: Request, exc: ModerationPipelineException):
    """Handle custom application exceptions."""
    status_code = EXCEPTION_STATUS_MAPPING.get(exc.__class__, 500)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        f"Moderation pipeline exception: {exc.message}",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "error_code": exc.error_code,
            "details": exc.details
        }
    )

    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
            "request_id": getattr(request.state, "request_id", "unknown")
        }
    )

# Include routers
app.include_router(moderation.router)
app.include_router(appeals.router)
app.include_router(analytics.router)

# Health check endpoint
@app.get("/health", tags=["monitoring"])
async def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns:
        Health status and basic system information
    """
    db_gen = app.dependency_overrides.get(get_db, get_db)()
    try:
        db = next(db_gen)
        db.execute(text("SELECT 1"))

        return {
            "status": "healthy",
            "timestamp": time.time(),
            "version": VERSION,
            "services": {
                "database": "healthy",
                "api": "healthy",
                "classifier": settings.classifier_provider
            }
        }
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=503,
            detail={
                "status": "unhealthy",
                "timestamp": time.time(),
                "error": str(e)
            }
        )
    finally:
        db_gen.close()

# Metrics endpoint
@app.get("/metrics", tags=["monitoring"])
async def get_metrics():
    """
    Basic metrics endpoint for monitoring.

    Returns:
        Content counts by moderation status and appeal counts by status
    """
    from moderation_pipeline.models.appeal import Appeal
    from moderation_pipeline.models.content_item import ContentItem

    db_gen = app.dependency_overrides.get(get_db, get_db)()
    try:
        db = next(db_gen)

        total_content = db.query(func.count(ContentItem.id)).scalar()
        status_stats = db.query(
            ContentItem.moderation_status,
            func.count(ContentItem.id)
        ).group_by(ContentItem.moderation_status).all()
        appeal_stats = db.query(
            Appeal.status,
            func.count(Appeal.id)
        ).group_by(Appeal.status).all()

        breakdown = {status.value: count for status, count in status_stats}
        clean = breakdown.get("CLEAN", 0)

        return {
            "timestamp": time.time(),
            "total_content": total_content,
            "clean_rate": clean / total_content if total_content > 0 else 0,
            "moderation_status_breakdown": breakdown,
            "appeal_status_breakdown": {status.value: count for status, count in appeal_stats},
        }
    except Exception as e:
        logger.error(f"Metrics collection failed: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Failed to collect metrics",
                "message": str(e)
            }
        )
    finally:
        db_gen.close()

# Root endpoint
@app.get("/", tags=["general"])
async def root():
    """
    Root endpoint with API information.

    Returns:
        Basic API information and links
    """
    return {
        "message": settings.app_name,
        "version": VERSION,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
        "endpoints": {
            "evaluate": "/api/v1/moderate/evaluate",
            "submit_content": "/api/v1/content",
            "appeals": "/api/v1/moderation/appeals",
            "staff_appeals": "/api/v1/staff/moderation/appeals",
            "analytics": "/api/v1/analytics/summary"
        }
    }
