import uuid
from datetime import datetime
from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship
import enum

from moderation_pipeline.db.session import Base


class AppealTargetType(str, enum.Enum):
    POST = "POST"
    REPLY = "REPLY"


class AppealStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Appeal(Base):
    __tablename__ = "moderation_appeals"
    __table_args__ = (
        CheckConstraint(
            "(target_type = 'POST' AND post_id IS NOT NULL AND reply_id IS NULL) OR "
            "(target_type = 'REPLY' AND reply_id IS NOT NULL AND post_id IS NULL)",
            name="ck_appeal_single_target",
        ),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    target_type = Column(Enum(AppealTargetType), nullable=False)
    post_id = Column(Uuid(as_uuid=True), ForeignKey("content_items.id"), nullable=True, index=True)
    reply_id = Column(Uuid(as_uuid=True), ForeignKey("content_items.id"), nullable=True, index=True)

    user_id = Column(String, nullable=False, index=True)
    reason = Column(String, nullable=False)  # e.g. "false plagiarism detection"
    message = Column(Text, nullable=True)
    status = Column(Enum(AppealStatus), default=AppealStatus.PENDING, nullable=False, index=True)

    staff_user_id = Column(String, nullable=True)
    staff_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)

    # Relationships
    post = relationship("ContentItem", back_populates="post_appeals", foreign_keys=[post_id])
    reply = relationship("ContentItem", back_populates="reply_appeals", foreign_keys=[reply_id])

    @property
    def target_id(self):
        return self.post_id if self.target_type == AppealTargetType.POST else self.reply_id
