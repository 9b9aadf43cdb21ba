from pydantic import BaseModel
from uuid import UUID
from datetime import datetime
from typing import Optional


class ConnectionResponse(BaseModel):
    id: UUID
    user_low_id: UUID
    user_high_id: UUID
    status: str
    type: str
    initiated_by: UUID
    initiated_at: datetime
    responded_at: Optional[datetime]
    last_activity_at: datetime
    compatibility_score: Optional[float]
    toast_seen_low: bool
    toast_seen_high: bool

    model_config = {"from_attributes": True}


class ToastSeenRequest(BaseModel):
    user_id: UUID


class ToastStatus(BaseModel):
    connection_id: UUID
    user_id: UUID
    should_show_toast: bool
