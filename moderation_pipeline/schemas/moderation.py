from datetime import datetime
from uuid import UUID
from typing import Optional, Literal, Dict, List, Any

from pydantic import BaseModel, Field, field_validator

from moderation_pipeline.models.content_item import ContentKind, ModerationStatus


# ---- Requests ----
class Citation(BaseModel):
    source: str = Field(..., min_length=1, max_length=500)
    url: Optional[str] = Field(None, max_length=2048)

    @field_validator("source")
    @classmethod
    def source_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("citation source cannot be blank")
        return value.strip()


class ContentToCheck(BaseModel):
    kind: ContentKind
    text: str
    title: Optional[str] = None
    tags: List[str] = []
    links: List[str] = []
    language: Optional[str] = "en"
    citations: List[Citation] = []
    account_age_days: Optional[int] = Field(None, ge=0)
    # Filled from the caller identity, never trusted from the body
    author_id: str = ""

    @property
    def canonical_text(self) -> str:
        if self.title and self.title.strip():
            return f"{self.title.strip()}\n\n{self.text}"
        return self.text

    @property
    def has_citations(self) -> bool:
        return len(self.citations) > 0


# ---- Responses ----
class ModerationVerdictResponse(BaseModel):
    status: Literal["approved", "pending_review", "flagged", "rejected"]
    confidence: float
    reasons: List[str]
    requires_citations: bool = False
    plagiarism: Dict[str, Any] = {}
    ai_content: Dict[str, Any] = {}
    appeal_deadline: Optional[datetime] = None


class ModerationScores(BaseModel):
    plagiarism_score: float
    ai_score: float


class ContentItemResponse(BaseModel):
    id: UUID
    kind: ContentKind
    author_id: str
    title: Optional[str] = None
    text: str
    tags: List[str] = []
    links: List[str] = []
    citations: List[Dict[str, Any]] = []
    moderation_status: ModerationStatus
    moderation_scores: ModerationScores
    moderation_notes: Optional[str] = None
    moderated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_item(cls, item) -> "ContentItemResponse":
        return cls(
            id=item.id,
            kind=item.kind,
            author_id=item.author_id,
            title=item.title,
            text=item.text,
            tags=item.tags or [],
            links=item.links or [],
            citations=item.citations or [],
            moderation_status=item.moderation_status,
            moderation_scores=ModerationScores(
                plagiarism_score=item.plagiarism_score,
                ai_score=item.ai_score,
            ),
            moderation_notes=item.moderation_notes,
            moderated_at=item.moderated_at,
            created_at=item.created_at,
        )


class SubmissionResponse(BaseModel):
    content: ContentItemResponse
    verdict: ModerationVerdictResponse
