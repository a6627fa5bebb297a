import uuid
from datetime import datetime
from sqlalchemy import Column, String, Enum, DateTime, Float, Text, JSON, Uuid
from sqlalchemy.orm import relationship
import enum

from moderation_pipeline.db.session import Base


class ContentKind(str, enum.Enum):
    WORK = "WORK"
    COMMENT = "COMMENT"
    PROFILE = "PROFILE"
    COLLECTION = "COLLECTION"
    DISCUSSION_POST = "DISCUSSION_POST"
    DISCUSSION_REPLY = "DISCUSSION_REPLY"
    COMMUNITY_PROPOSAL = "COMMUNITY_PROPOSAL"


class ModerationStatus(str, enum.Enum):
    CLEAN = "CLEAN"
    PENDING_REVIEW = "PENDING_REVIEW"
    FLAGGED = "FLAGGED"
    UNDER_APPEAL = "UNDER_APPEAL"
    OVERRIDDEN = "OVERRIDDEN"
    REJECTED = "REJECTED"


class ContentItem(Base):
    __tablename__ = "content_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    kind = Column(Enum(ContentKind), nullable=False, index=True)
    author_id = Column(String, nullable=False, index=True)

    title = Column(String, nullable=True)
    text = Column(Text, nullable=False)  # title + body, as scored
    tags = Column(JSON, nullable=False, default=list)
    links = Column(JSON, nullable=False, default=list)
    citations = Column(JSON, nullable=False, default=list)

    moderation_status = Column(Enum(ModerationStatus), nullable=False, index=True)
    plagiarism_score = Column(Float, nullable=False, default=0.0)
    ai_score = Column(Float, nullable=False, default=0.0)
    moderation_notes = Column(Text, nullable=True)  # append-only

    moderated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    post_appeals = relationship(
        "Appeal", back_populates="post", foreign_keys="Appeal.post_id"
    )
    reply_appeals = relationship(
        "Appeal", back_populates="reply", foreign_keys="Appeal.reply_id"
    )
    moderation_logs = relationship("ModerationLog", back_populates="content")
