from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import Literal, Optional


class PreapprovedCreate(BaseModel):
    email: str
    notes: Optional[str] = Field(None, max_length=500)
    added_by: Optional[UUID] = None


class PreapprovedResponse(BaseModel):
    id: UUID
    email: str
    user_uuid: UUID
    approved_by_admin: bool
    status: str
    is_first_login: bool
    last_login_at: Optional[datetime]
    notes: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class EmailCheckResponse(BaseModel):
    email: str
    approved: bool
    type: str
    reason: str


class InvitationCreate(BaseModel):
    email: str
    sent_by: Optional[UUID] = None
    type: Literal["email", "referral", "admin", "bulk"] = "email"


class InvitationStatusUpdate(BaseModel):
    failure_reason: Optional[str] = None


class InvitationResponse(BaseModel):
    id: UUID
    email: str
    code: str
    status: str
    type: str
    sent_by_id: Optional[UUID]
    expires_at: datetime
    attempts: int
    failure_reason: Optional[str]
    sent_at: Optional[datetime]
    delivered_at: Optional[datetime]
    opened_at: Optional[datetime]
    accepted_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}
