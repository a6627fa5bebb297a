from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from moderation_pipeline.models.content_item import ContentItem, ModerationStatus
from moderation_pipeline.models.moderation_log import ModerationLog
from moderation_pipeline.schemas.moderation import ContentToCheck
from moderation_pipeline.services.moderation_engine import ModerationEngine, ModerationVerdict
from moderation_pipeline.services.state_machine import initial_status
from moderation_pipeline.core.logger import logger
from moderation_pipeline.core.exceptions import DatabaseException
from moderation_pipeline.core.security import ensure_valid_text, sanitize_input


@dataclass
class SubmissionOutcome:
    item: ContentItem
    verdict: ModerationVerdict

    @property
    def requires_citations(self) -> bool:
        """The submission gate: sources must be cited before acceptance."""
        return self.verdict.citations_missing

    @property
    def blocked(self) -> bool:
        return self.item.moderation_status == ModerationStatus.REJECTED

    def citation_requirement(self) -> dict:
        return {
            "error": "This content appears to be plagiarized or AI-generated. Please cite your sources.",
            "details": {
                "plagiarism": self.verdict.plagiarism.as_dict(),
                "aiContent": self.verdict.ai_content.as_dict(),
            },
            "requiresCitations": True,
            "contentId": str(self.item.id),
            "moderationStatus": self.item.moderation_status.value,
        }

    def rejection(self) -> dict:
        return {
            "error": "This content has been flagged as potential spam.",
            "reasons": self.verdict.reasons,
            "confidence": self.verdict.confidence,
            "contentId": str(self.item.id),
            "moderationStatus": self.item.moderation_status.value,
        }


def _prepare(content: ContentToCheck) -> ContentToCheck:
    return content.model_copy(update={
        "text": ensure_valid_text(content.text, field="text"),
        "title": sanitize_input(content.title) if content.title else None,
    })


def _record_decision(
    db: Session,
    content: ContentToCheck,
    verdict: ModerationVerdict,
    item: Optional[ContentItem] = None,
) -> ModerationLog:
    entry = ModerationLog(
        content_id=item.id if item is not None else None,
        author_id=content.author_id,
        kind=content.kind,
        verdict_status=verdict.status.value,
        confidence=verdict.confidence,
        reasons=verdict.reasons,
        signals=verdict.signals_dict(),
        classifier_available=verdict.classifier_available,
    )
    db.add(entry)
    return entry


async def evaluate_content(
    content: ContentToCheck,
    db: Session,
    engine: ModerationEngine,
) -> ModerationVerdict:
    """
    Evaluate content without creating it; only the audit log is written.

    The text is not added to the duplicate corpus, so a later submission of
    the same text is not flagged against this check.

    Raises:
        ValidationException: If the text is empty or unsafe
        ContentTooLargeException: If the text exceeds the size limit
    """
    content = _prepare(content)
    verdict = await engine.evaluate(content, record=False)

    try:
        _record_decision(db, content, verdict)
        db.commit()
    except SQLAlchemyError as e:
        # The verdict is still valid without its audit row
        db.rollback()
        logger.error(
            "Database error recording moderation decision",
            extra={"author_id": content.author_id, "error": str(e)},
            exc_info=True
        )
    return verdict


async def submit_content(
    content: ContentToCheck,
    db: Session,
    engine: ModerationEngine,
) -> SubmissionOutcome:
    """
    Evaluate a submission and persist it with its initial moderation status.

    Content whose sources must be cited but were not is stored FLAGGED, never
    CLEAN; the caller turns that into a citations-required response.

    Raises:
        ValidationException: If the text is empty or unsafe
        ContentTooLargeException: If the text exceeds the size limit
        DatabaseException: If the content cannot be stored
    """
    logger.info(
        f"Starting moderation for {content.kind.value} submission",
        extra={
            "author_id": content.author_id,
            "content_length": len(content.text)
        }
    )

    content = _prepare(content)
    verdict = await engine.evaluate(content)
    status = initial_status(verdict)

    item = ContentItem(
        kind=content.kind,
        author_id=content.author_id,
        title=content.title,
        text=content.canonical_text,
        tags=list(content.tags),
        links=list(content.links),
        citations=[c.model_dump() for c in content.citations],
        moderation_status=status,
        plagiarism_score=verdict.plagiarism.score,
        ai_score=verdict.ai_content.score,
    )

    try:
        db.add(item)
        db.flush()
        _record_decision(db, content, verdict, item)
        db.commit()
        db.refresh(item)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "Database error creating content item",
            extra={"author_id": content.author_id, "error": str(e)},
            exc_info=True
        )
        raise DatabaseException(
            f"Failed to create content item: {str(e)}",
            operation="create_content"
        )

    logger.info(
        f"Content {item.id} stored as {status.value}",
        extra={
            "content_id": str(item.id),
            "author_id": content.author_id,
            "verdict": verdict.status.value,
        }
    )
    return SubmissionOutcome(item=item, verdict=verdict)


def get_content_item(db: Session, content_id) -> Optional[ContentItem]:
    return db.query(ContentItem).filter(ContentItem.id == content_id).first()
