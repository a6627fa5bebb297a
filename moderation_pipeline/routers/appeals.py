from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from moderation_pipeline.db.session import get_db
from moderation_pipeline.models.appeal import AppealStatus
from moderation_pipeline.schemas.appeal import (
    AppealCreateRequest,
    AppealListResponse,
    AppealResolutionResponse,
    AppealResolveRequest,
    AppealResponse,
)
from moderation_pipeline.services.appeal_service import (
    file_appeal,
    get_appeal,
    list_appeals,
    resolve_appeal,
)
from moderation_pipeline.core.exceptions import ModerationPipelineException
from moderation_pipeline.core.security import Actor, get_current_actor
from moderation_pipeline.core.logger import logger

router = APIRouter(prefix="/api/v1", tags=["appeals"])


@router.post("/moderation/appeals", response_model=AppealResponse, status_code=201)
async def submit_appeal(
    payload: AppealCreateRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """
    Appeal a flagged discussion post or reply.

    Only the content's author (or staff) may appeal, only while the content is
    FLAGGED, and only one appeal may be pending per item.
    """
    try:
        appeal = file_appeal(
            db,
            actor,
            payload.target_type,
            payload.target_id,
            payload.reason,
            payload.message,
        )
    except ModerationPipelineException as e:
        logger.warning(
            f"Appeal submission refused: {e.message}",
            extra={"author_id": actor.user_id, "error_code": e.error_code}
        )
        raise
    return AppealResponse.model_validate(appeal)


@router.get("/moderation/appeals/{appeal_id}", response_model=AppealResponse)
async def read_appeal(
    appeal_id: UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return AppealResponse.model_validate(get_appeal(db, actor, appeal_id))


@router.get("/staff/moderation/appeals", response_model=AppealListResponse)
async def staff_list_appeals(
    status: Optional[AppealStatus] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """List appeals for staff review, newest first."""
    appeals = list_appeals(db, actor, status)
    return AppealListResponse(appeals=[AppealResponse.model_validate(a) for a in appeals])


@router.post("/staff/moderation/appeals/{appeal_id}/resolve", response_model=AppealResolutionResponse)
async def staff_resolve_appeal(
    appeal_id: UUID,
    payload: AppealResolveRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """
    Resolve an appeal. The content's moderation status is updated before the
    response is returned.
    """
    try:
        appeal = resolve_appeal(
            db,
            actor,
            appeal_id,
            AppealStatus(payload.decision),
            payload.staff_notes,
        )
    except ModerationPipelineException as e:
        logger.warning(
            f"Appeal resolution refused: {e.message}",
            extra={"appeal_id": str(appeal_id), "error_code": e.error_code}
        )
        raise
    return AppealResolutionResponse(appeal=AppealResponse.model_validate(appeal))
