from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union


# ── Profile images ──────────────────────────────────────────────────
# Stored tagged; legacy documents carried either a bare URL string or a
# bare list of URLs.

class SingleImage(BaseModel):
    kind: Literal["single"] = "single"
    url: str = Field(min_length=1, max_length=500)


class ImageGallery(BaseModel):
    kind: Literal["gallery"] = "gallery"
    urls: list[Annotated[str, Field(min_length=1, max_length=500)]] = Field(
        min_length=1
    )


ProfileImages = Annotated[
    Union[SingleImage, ImageGallery], Field(discriminator="kind")
]


class AgeRange(BaseModel):
    min: int = Field(18, ge=18, le=100)
    max: int = Field(50, ge=18, le=100)


class Preferences(BaseModel):
    # Discovery filters by age only when a range was chosen.
    age_range: Optional[AgeRange] = None
    locations: list[str] = []
    professions: list[str] = []


class ProfileData(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    age: Optional[int] = Field(None, ge=18, le=80)
    profession: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    education: Optional[str] = Field(None, max_length=200)
    about: Optional[str] = Field(None, max_length=1000)
    interests: list[Annotated[str, Field(max_length=50)]] = []
    images: Optional[ProfileImages] = None
    preferences: Optional[Preferences] = None

    @field_validator("images", mode="before")
    @classmethod
    def _tag_legacy_images(cls, v):
        if isinstance(v, str):
            return {"kind": "single", "url": v} if v.strip() else None
        if isinstance(v, list):
            urls = [u for u in v if isinstance(u, str) and u.strip()]
            return {"kind": "gallery", "urls": urls} if urls else None
        return v

    @field_validator("interests")
    @classmethod
    def _strip_interests(cls, v: list[str]) -> list[str]:
        return [i.strip() for i in v if i.strip()]


class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    gender: Optional[str] = None
    birth_date: Optional[date] = None
    role: Literal["user", "admin"] = "user"
    status: Literal["invited", "active"] = "invited"
    profile: Optional[ProfileData] = None


class UserResponse(BaseModel):
    id: UUID
    email: str
    role: str
    status: str
    is_approved: bool
    gender: Optional[str]
    birth_date: Optional[date]
    profile: Optional[ProfileData]
    profile_completeness: int
    created_at: datetime

    model_config = {"from_attributes": True}


class ProfileUpdate(BaseModel):
    gender: Optional[str] = None
    birth_date: Optional[date] = None
    profile: ProfileData


class PublicProfile(BaseModel):
    """What another member sees in discovery and match lists."""

    id: UUID
    gender: Optional[str]
    profile: Optional[ProfileData]

    model_config = {"from_attributes": True}
