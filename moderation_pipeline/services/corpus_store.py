"""
Stores of previously submitted text used for duplicate detection.

The store is append-mostly shared state. Readers work on a snapshot, so a
submission racing with another may miss it; that false negative is accepted.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from moderation_pipeline.core.exceptions import DatabaseException
from moderation_pipeline.core.logger import logger
from moderation_pipeline.core.security import create_content_hash
from moderation_pipeline.models.content_item import ContentKind
from moderation_pipeline.models.corpus_entry import CorpusEntry


@dataclass(frozen=True)
class CorpusRecord:
    id: str
    author_id: str
    kind: ContentKind
    text: str
    fingerprint: str
    created_at: datetime


class CorpusStore(ABC):
    """Append-only collection of prior submissions."""

    @abstractmethod
    def snapshot(self, exclude_author: Optional[str] = None) -> List[CorpusRecord]:
        """Return the current entries, optionally without one author's."""

    @abstractmethod
    def append(self, text: str, author_id: str, kind: ContentKind) -> CorpusRecord:
        """Atomically add an entry."""


class InMemoryCorpusStore(CorpusStore):
    """Process-local store, capped to the most recent ``max_entries``."""

    def __init__(self, max_entries: Optional[int] = None):
        self._entries = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def snapshot(self, exclude_author: Optional[str] = None) -> List[CorpusRecord]:
        with self._lock:
            entries = list(self._entries)
        if exclude_author is None:
            return entries
        return [e for e in entries if e.author_id != exclude_author]

    def append(self, text: str, author_id: str, kind: ContentKind) -> CorpusRecord:
        record = CorpusRecord(
            id=str(uuid.uuid4()),
            author_id=author_id,
            kind=kind,
            text=text,
            fingerprint=create_content_hash(text),
            created_at=datetime.utcnow(),
        )
        with self._lock:
            self._entries.append(record)
        return record

    def __len__(self) -> int:
        return len(self._entries)


class SqlCorpusStore(CorpusStore):
    """
    Durable store on the ``corpus_entries`` table.

    Each call opens its own session from ``session_factory`` because the
    similarity check runs on an executor thread. Snapshots read only the most
    recent ``max_entries`` rows.
    """

    def __init__(self, session_factory: Callable[[], Session], max_entries: int = 10000):
        self.session_factory = session_factory
        self.max_entries = max_entries

    def snapshot(self, exclude_author: Optional[str] = None) -> List[CorpusRecord]:
        session = self.session_factory()
        try:
            query = session.query(CorpusEntry)
            if exclude_author is not None:
                query = query.filter(CorpusEntry.author_id != exclude_author)
            rows = (
                query.order_by(CorpusEntry.created_at.desc())
                .limit(self.max_entries)
                .all()
            )
            return [_to_record(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(
                "Database error reading duplicate corpus",
                extra={"error": str(e)},
                exc_info=True
            )
            raise DatabaseException(
                f"Failed to read corpus: {str(e)}",
                operation="corpus_snapshot"
            )
        finally:
            session.close()

    def append(self, text: str, author_id: str, kind: ContentKind) -> CorpusRecord:
        session = self.session_factory()
        try:
            entry = CorpusEntry(
                author_id=author_id,
                kind=kind,
                text=text,
                fingerprint=create_content_hash(text),
            )
            session.add(entry)
            session.commit()
            session.refresh(entry)
            return _to_record(entry)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(
                "Database error appending to duplicate corpus",
                extra={"author_id": author_id, "error": str(e)},
                exc_info=True
            )
            raise DatabaseException(
                f"Failed to append corpus entry: {str(e)}",
                operation="corpus_append"
            )
        finally:
            session.close()


def _to_record(entry: CorpusEntry) -> CorpusRecord:
    return CorpusRecord(
        id=str(entry.id),
        author_id=entry.author_id,
        kind=entry.kind,
        text=entry.text,
        fingerprint=entry.fingerprint,
        created_at=entry.created_at,
    )
