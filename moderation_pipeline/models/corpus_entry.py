import uuid
from datetime import datetime
from sqlalchemy import Column, String, Enum, DateTime, Text, Uuid

from moderation_pipeline.db.session import Base
from moderation_pipeline.models.content_item import ContentKind


class CorpusEntry(Base):
    __tablename__ = "corpus_entries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    author_id = Column(String, nullable=False, index=True)
    kind = Column(Enum(ContentKind), nullable=False)
    text = Column(Text, nullable=False)  # truncated to the comparison budget
    fingerprint = Column(String(64), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
