from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from moderation_pipeline.db.session import get_db
from moderation_pipeline.schemas.moderation import (
    ContentItemResponse,
    ContentToCheck,
    ModerationVerdictResponse,
    SubmissionResponse,
)
from moderation_pipeline.services.moderation_engine import ModerationEngine, get_moderation_engine
from moderation_pipeline.services.moderation_service import (
    evaluate_content,
    get_content_item,
    submit_content,
)
from moderation_pipeline.core.exceptions import NotFoundException, Unauthorized
from moderation_pipeline.core.security import Actor, get_client_ip, get_current_actor
from moderation_pipeline.core.logger import logger

router = APIRouter(prefix="/api/v1", tags=["moderation"])


@router.post("/moderate/evaluate", response_model=ModerationVerdictResponse, status_code=200)
async def evaluate(
    payload: ContentToCheck,
    request: Request,
    db: Session = Depends(get_db),
    engine: ModerationEngine = Depends(get_moderation_engine),
    actor: Actor = Depends(get_current_actor),
):
    """
    Evaluate content and return the moderation verdict.

    Nothing is created; the caller decides what to do with the verdict. Only
    an audit record of the decision is stored.
    """
    payload = payload.model_copy(update={"author_id": actor.user_id})
    logger.info(
        "Evaluation request received",
        extra={
            "author_id": actor.user_id,
            "kind": payload.kind.value,
            "client_ip": get_client_ip(request)
        }
    )

    verdict = await evaluate_content(payload, db, engine)
    return verdict.to_response()


@router.post("/content", response_model=SubmissionResponse, status_code=201)
async def submit(
    payload: ContentToCheck,
    request: Request,
    db: Session = Depends(get_db),
    engine: ModerationEngine = Depends(get_moderation_engine),
    actor: Actor = Depends(get_current_actor),
):
    """
    Submit content through moderation.

    Returns 201 with the stored item when accepted. Returns 400 with
    ``requiresCitations: true`` when plagiarism or machine-generated text was
    detected and no citations were supplied, and 400 with the spam reasons
    when the content was rejected outright. In both 400 cases the item is
    still recorded with its non-CLEAN status so it can be appealed or audited.
    """
    payload = payload.model_copy(update={"author_id": actor.user_id})
    logger.info(
        "Content submission received",
        extra={
            "author_id": actor.user_id,
            "kind": payload.kind.value,
            "client_ip": get_client_ip(request)
        }
    )

    outcome = await submit_content(payload, db, engine)

    if outcome.requires_citations:
        logger.info(
            "Submission requires citations",
            extra={"content_id": str(outcome.item.id), "author_id": actor.user_id}
        )
        return JSONResponse(status_code=400, content=outcome.citation_requirement())

    if outcome.blocked:
        logger.warning(
            "Submission rejected as spam",
            extra={"content_id": str(outcome.item.id), "author_id": actor.user_id}
        )
        return JSONResponse(status_code=400, content=outcome.rejection())

    return SubmissionResponse(
        content=ContentItemResponse.from_item(outcome.item),
        verdict=outcome.verdict.to_response(),
    )


@router.get("/content/{content_id}", response_model=ContentItemResponse)
async def read_content(
    content_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    item = get_content_item(db, content_id)
    if item is None and actor.is_staff:
        raise NotFoundException("Content not found", resource="content")
    if item is None or (item.author_id != actor.user_id and not actor.is_staff):
        raise Unauthorized()
    return ContentItemResponse.from_item(item)
