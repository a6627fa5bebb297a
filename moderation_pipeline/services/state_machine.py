"""
Moderation status lifecycle of a content item.

    FLAGGED --file appeal--> UNDER_APPEAL --approve--> OVERRIDDEN
                                          --reject---> FLAGGED

Transitions are applied as a conditional UPDATE against the status the caller
observed, so two racing requests cannot both move the same item.
"""

import enum
from datetime import datetime
from typing import Dict, Optional, Tuple

from sqlalchemy.orm import Session

from moderation_pipeline.core.exceptions import InvalidTargetState
from moderation_pipeline.core.logger import logger
from moderation_pipeline.models.content_item import ContentItem, ModerationStatus
from moderation_pipeline.services.moderation_engine import ModerationVerdict, VerdictStatus


class ModerationEvent(str, enum.Enum):
    FILE_APPEAL = "FILE_APPEAL"
    APPROVE_APPEAL = "APPROVE_APPEAL"
    REJECT_APPEAL = "REJECT_APPEAL"


TRANSITIONS: Dict[ModerationEvent, Tuple[ModerationStatus, ModerationStatus]] = {
    ModerationEvent.FILE_APPEAL: (ModerationStatus.FLAGGED, ModerationStatus.UNDER_APPEAL),
    ModerationEvent.APPROVE_APPEAL: (ModerationStatus.UNDER_APPEAL, ModerationStatus.OVERRIDDEN),
    ModerationEvent.REJECT_APPEAL: (ModerationStatus.UNDER_APPEAL, ModerationStatus.FLAGGED),
}

TERMINAL_STATUSES = frozenset({
    ModerationStatus.CLEAN,
    ModerationStatus.OVERRIDDEN,
    ModerationStatus.REJECTED,
})


def initial_status(verdict: ModerationVerdict) -> ModerationStatus:
    """Status a new content item starts in, given its first verdict."""
    if verdict.status == VerdictStatus.approved:
        return ModerationStatus.CLEAN
    if verdict.status == VerdictStatus.pending_review:
        return ModerationStatus.PENDING_REVIEW
    if verdict.status == VerdictStatus.flagged:
        return ModerationStatus.FLAGGED
    if verdict.status == VerdictStatus.rejected:
        # Missing citations can still be remedied, so the item stays appealable
        if verdict.citations_missing:
            return ModerationStatus.FLAGGED
        return ModerationStatus.REJECTED
    raise ValueError(f"Unhandled verdict status: {verdict.status}")


def next_status(current: ModerationStatus, event: ModerationEvent) -> ModerationStatus:
    """
    Return the status ``event`` leads to from ``current``.

    Raises:
        InvalidTargetState: If the event is not allowed from ``current``
    """
    expected, target = TRANSITIONS[event]
    if current != expected:
        terminal = current in TERMINAL_STATUSES
        raise InvalidTargetState(
            f"Cannot apply {event.value} to content in status {current.value}; "
            + ("the status is final" if terminal else f"expected {expected.value}"),
            current_status=current.value,
            details={"event": event.value, "terminal": terminal},
        )
    return target


def apply_transition(
    db: Session,
    item: ContentItem,
    event: ModerationEvent,
    note: Optional[str] = None,
) -> ModerationStatus:
    """
    Move ``item`` along ``event`` inside the caller's transaction.

    The update only matches while the row still holds the expected status.
    Scores are never touched; ``note`` is appended to the moderation notes.
    The caller commits.
    """
    expected, _ = TRANSITIONS[event]
    target = next_status(item.moderation_status, event)

    values = {
        ContentItem.moderation_status: target,
        ContentItem.updated_at: datetime.utcnow(),
    }
    if note:
        values[ContentItem.moderation_notes] = append_note(item.moderation_notes, note)

    updated = (
        db.query(ContentItem)
        .filter(ContentItem.id == item.id, ContentItem.moderation_status == expected)
        .update(values, synchronize_session=False)
    )
    if updated == 0:
        db.refresh(item)
        raise InvalidTargetState(
            f"Content changed status concurrently; now {item.moderation_status.value}",
            current_status=item.moderation_status.value,
            details={"event": event.value},
        )

    db.refresh(item)
    logger.info(
        f"Content moved {expected.value} -> {target.value}",
        extra={"content_id": str(item.id), "event": event.value}
    )
    return target


def append_note(existing: Optional[str], note: str) -> str:
    entry = f"[{datetime.utcnow().isoformat(timespec='seconds')}Z] {note.strip()}"
    if not existing:
        return entry
    return f"{existing}\n{entry}"
