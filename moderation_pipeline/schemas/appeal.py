from datetime import datetime
from uuid import UUID
from typing import Optional, Literal, List

from pydantic import BaseModel, ConfigDict, Field

from moderation_pipeline.core.security import MAX_MESSAGE_LENGTH, MAX_REASON_LENGTH
from moderation_pipeline.models.appeal import AppealStatus, AppealTargetType


# ---- Requests ----
class AppealCreateRequest(BaseModel):
    target_type: AppealTargetType
    target_id: UUID
    reason: str = Field(..., min_length=1, max_length=MAX_REASON_LENGTH)
    message: Optional[str] = Field(None, max_length=MAX_MESSAGE_LENGTH)


class AppealResolveRequest(BaseModel):
    decision: Literal["APPROVED", "REJECTED"]
    staff_notes: Optional[str] = Field(None, max_length=MAX_MESSAGE_LENGTH)


# ---- Responses ----
class AppealResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    target_type: AppealTargetType
    post_id: Optional[UUID] = None
    reply_id: Optional[UUID] = None
    user_id: str
    reason: str
    message: Optional[str] = None
    status: AppealStatus
    staff_user_id: Optional[str] = None
    staff_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class AppealListResponse(BaseModel):
    appeals: List[AppealResponse]


class AppealResolutionResponse(BaseModel):
    appeal: AppealResponse
