from pydantic import BaseModel, model_validator
from uuid import UUID
from datetime import date, datetime
from typing import Literal, Optional

from mantrana.schemas.user import PublicProfile


class LikeCreate(BaseModel):
    user_id: UUID
    target_user_id: UUID
    type: Literal["like", "super_like"] = "like"


class PassCreate(BaseModel):
    user_id: UUID
    target_user_id: UUID


class DailyLikeResponse(BaseModel):
    id: UUID
    user_id: UUID
    liked_user_id: UUID
    type: str
    like_date: datetime
    is_mutual_match: bool
    connection_id: Optional[UUID] = None

    model_config = {"from_attributes": True}


class LikeResponse(BaseModel):
    like: DailyLikeResponse
    is_mutual_match: bool
    connection_id: Optional[UUID] = None
    should_show_toast: bool
    daily_like_count: int
    remaining_likes: int


class LikedProfileItem(BaseModel):
    like: DailyLikeResponse
    profile: PublicProfile


class MutualMatchItem(BaseModel):
    connection_id: UUID
    profile: PublicProfile
    matched_at: Optional[datetime]
    last_activity_at: Optional[datetime]
    compatibility_score: Optional[float] = None
    should_show_toast: bool


class DailyStats(BaseModel):
    date: date
    daily_like_count: int
    limit: int
    remaining_likes: int
    can_like: bool


class DiscoveryResponse(BaseModel):
    profiles: list[PublicProfile]
    total: int
    daily_like_count: int
    remaining_likes: int
    daily_limit_reached: bool


class UnmatchRequest(BaseModel):
    user_id: UUID
    target_user_id: Optional[UUID] = None
    connection_id: Optional[UUID] = None

    @model_validator(mode="after")
    def _needs_a_target(self):
        if self.target_user_id is None and self.connection_id is None:
            raise ValueError("target_user_id or connection_id is required")
        return self


class UnmatchResponse(BaseModel):
    connection_id: UUID
    target_user_id: UUID
    likes_deleted: int
    matches_deleted: int
    connection_deleted: bool


class MarkToastSeenRequest(BaseModel):
    user_id: UUID
    target_user_id: UUID


class ToastSeenResponse(BaseModel):
    connection_id: UUID
    should_show_toast: bool = False
