from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from moderation_pipeline.db.session import get_db
from moderation_pipeline.core.exceptions import Unauthorized
from moderation_pipeline.core.security import Actor, get_current_actor
from moderation_pipeline.services.analytics_service import get_author_summary
from moderation_pipeline.schemas.analytics import AnalyticsSummary

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])

@router.get("/summary", response_model=AnalyticsSummary, status_code=200)
async def analytics_summary(
    author_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Moderation status and appeal breakdown for one author (self or staff)."""
    if author_id != actor.user_id and not actor.is_staff:
        raise Unauthorized()
    return get_author_summary(author_id, db)
