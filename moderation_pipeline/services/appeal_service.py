from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from moderation_pipeline.core.config import settings
from moderation_pipeline.core.exceptions import (
    DatabaseException,
    InvalidTargetState,
    NotFoundException,
    Unauthorized,
    ValidationException,
)
from moderation_pipeline.core.logger import logger
from moderation_pipeline.core.security import Actor, require_staff, sanitize_input
from moderation_pipeline.models.appeal import Appeal, AppealStatus, AppealTargetType
from moderation_pipeline.models.content_item import ContentItem, ContentKind, ModerationStatus
from moderation_pipeline.services.state_machine import ModerationEvent, apply_transition

TARGET_KINDS = {
    AppealTargetType.POST: ContentKind.DISCUSSION_POST,
    AppealTargetType.REPLY: ContentKind.DISCUSSION_REPLY,
}

DECISION_EVENTS = {
    AppealStatus.APPROVED: ModerationEvent.APPROVE_APPEAL,
    AppealStatus.REJECTED: ModerationEvent.REJECT_APPEAL,
}


def _load_target(db: Session, target_type: AppealTargetType, target_id: UUID) -> Optional[ContentItem]:
    return db.query(ContentItem).filter(
        ContentItem.id == target_id,
        ContentItem.kind == TARGET_KINDS[target_type],
    ).first()


def file_appeal(
    db: Session,
    actor: Actor,
    target_type: AppealTargetType,
    target_id: UUID,
    reason: str,
    message: Optional[str] = None,
) -> Appeal:
    """
    File an appeal against a flagged post or reply.

    The appeal is created PENDING and the content moves to UNDER_APPEAL in the
    same transaction.

    Raises:
        NotFoundException: If the target does not exist and the actor is staff
        Unauthorized: If the actor is neither the author nor staff, or the
            target does not exist
        InvalidTargetState: If the target is not FLAGGED, already has a pending
            appeal, or the appeal window has closed
        DatabaseException: If the appeal cannot be stored
    """
    logger.info(
        f"Appeal requested for {target_type.value} {target_id}",
        extra={"author_id": actor.user_id, "content_id": str(target_id)}
    )

    item = _load_target(db, target_type, target_id)
    # Non-staff callers cannot tell a missing target from someone else's
    if item is None and actor.is_staff:
        raise NotFoundException(
            f"{target_type.value.title()} not found",
            resource=target_type.value.lower()
        )
    if item is None or (item.author_id != actor.user_id and not actor.is_staff):
        raise Unauthorized()

    if item.moderation_status != ModerationStatus.FLAGGED:
        raise InvalidTargetState(
            "Only flagged content can be appealed",
            current_status=item.moderation_status.value
        )

    pending = db.query(Appeal).filter(
        Appeal.status == AppealStatus.PENDING,
        (Appeal.post_id == item.id) | (Appeal.reply_id == item.id),
    ).first()
    if pending is not None:
        raise InvalidTargetState(
            "An appeal for this content is already pending",
            current_status=item.moderation_status.value,
            details={"appeal_id": str(pending.id)}
        )

    deadline = item.moderated_at + timedelta(days=settings.appeal_window_days)
    if datetime.utcnow() > deadline:
        raise InvalidTargetState(
            f"The appeal window closed on {deadline.date().isoformat()}",
            current_status=item.moderation_status.value
        )

    appeal = Appeal(
        target_type=target_type,
        post_id=item.id if target_type == AppealTargetType.POST else None,
        reply_id=item.id if target_type == AppealTargetType.REPLY else None,
        user_id=actor.user_id,
        reason=sanitize_input(reason),
        message=(sanitize_input(message) or None) if message else None,
        status=AppealStatus.PENDING,
    )

    try:
        db.add(appeal)
        apply_transition(db, item, ModerationEvent.FILE_APPEAL)
        db.commit()
        db.refresh(appeal)
    except InvalidTargetState:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Database error creating appeal",
            extra={"content_id": str(item.id), "error": str(e)},
            exc_info=True
        )
        raise DatabaseException(
            f"Failed to create appeal: {str(e)}",
            operation="create_appeal"
        )

    logger.info(
        f"Appeal {appeal.id} filed",
        extra={"appeal_id": str(appeal.id), "content_id": str(item.id), "author_id": actor.user_id}
    )
    return appeal


def resolve_appeal(
    db: Session,
    actor: Actor,
    appeal_id: UUID,
    decision: AppealStatus,
    staff_notes: Optional[str] = None,
) -> Appeal:
    """
    Resolve a pending appeal as staff.

    APPROVED moves the content to OVERRIDDEN, REJECTED moves it back to
    FLAGGED. Both the appeal and the content are updated before returning.

    Raises:
        Unauthorized: If the actor is not staff
        NotFoundException: If the appeal does not exist
        InvalidTargetState: If the appeal was already resolved
        DatabaseException: If the resolution cannot be stored
    """
    require_staff(actor)

    if decision not in DECISION_EVENTS:
        raise ValidationException(
            f"Decision must be APPROVED or REJECTED, got {decision.value}",
            field="decision"
        )

    appeal = db.query(Appeal).filter(Appeal.id == appeal_id).first()
    if appeal is None:
        raise NotFoundException("Appeal not found", resource="appeal")

    if appeal.status != AppealStatus.PENDING:
        raise InvalidTargetState(
            f"Appeal already resolved as {appeal.status.value}",
            current_status=appeal.status.value,
            details={"appeal_id": str(appeal.id)}
        )

    item = db.query(ContentItem).filter(ContentItem.id == appeal.target_id).first()
    if item is None:
        raise NotFoundException("Appealed content not found", resource="content")

    notes = sanitize_input(staff_notes) if staff_notes else None
    note_entry = f"Appeal {decision.value.lower()} by {actor.user_id}"
    if notes:
        note_entry = f"{note_entry}: {notes}"

    now = datetime.utcnow()
    try:
        updated = db.query(Appeal).filter(
            Appeal.id == appeal.id,
            Appeal.status == AppealStatus.PENDING,
        ).update(
            {
                Appeal.status: decision,
                Appeal.staff_user_id: actor.user_id,
                Appeal.staff_notes: notes,
                Appeal.resolved_at: now,
                Appeal.updated_at: now,
            },
            synchronize_session=False
        )
        if updated == 0:
            raise InvalidTargetState(
                "Appeal was resolved concurrently",
                details={"appeal_id": str(appeal.id)}
            )
        apply_transition(db, item, DECISION_EVENTS[decision], note=note_entry)
        db.commit()
        db.refresh(appeal)
    except InvalidTargetState:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Database error resolving appeal",
            extra={"appeal_id": str(appeal.id), "error": str(e)},
            exc_info=True
        )
        raise DatabaseException(
            f"Failed to resolve appeal: {str(e)}",
            operation="resolve_appeal"
        )

    logger.info(
        f"Appeal {appeal.id} resolved as {decision.value}",
        extra={
            "appeal_id": str(appeal.id),
            "content_id": str(item.id),
            "staff_user_id": actor.user_id,
        }
    )
    return appeal


def get_appeal(db: Session, actor: Actor, appeal_id: UUID) -> Appeal:
    appeal = db.query(Appeal).filter(Appeal.id == appeal_id).first()
    if appeal is None and actor.is_staff:
        raise NotFoundException("Appeal not found", resource="appeal")
    if appeal is None or (appeal.user_id != actor.user_id and not actor.is_staff):
        raise Unauthorized()
    return appeal


def list_appeals(db: Session, actor: Actor, status: Optional[AppealStatus] = None) -> List[Appeal]:
    """Staff listing, newest first."""
    require_staff(actor)
    query = db.query(Appeal)
    if status is not None:
        query = query.filter(Appeal.status == status)
    return query.order_by(Appeal.created_at.desc()).all()
