import uuid
from datetime import datetime
from sqlalchemy import Column, String, Enum, Float, ForeignKey, JSON, Boolean, DateTime, Uuid
from sqlalchemy.orm import relationship

from moderation_pipeline.db.session import Base
from moderation_pipeline.models.content_item import ContentKind


class ModerationLog(Base):
    """Audit record of one moderation evaluation."""

    __tablename__ = "moderation_logs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    # Null for evaluations that did not create content
    content_id = Column(Uuid(as_uuid=True), ForeignKey("content_items.id"), nullable=True, index=True)
    author_id = Column(String, nullable=False, index=True)
    kind = Column(Enum(ContentKind), nullable=False)

    verdict_status = Column(String, nullable=False)  # approved, pending_review, flagged, rejected
    confidence = Column(Float, nullable=False)
    reasons = Column(JSON, nullable=False, default=list)
    signals = Column(JSON, nullable=True)  # raw signal breakdown
    classifier_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationship
    content = relationship("ContentItem", back_populates="moderation_logs")
