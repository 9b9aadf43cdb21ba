"""
Shaadi Mantrana — User lifecycle and profile upkeep.

Status moves ``invited -> active <-> paused``; approval is a separate admin
flag.  Only active, approved members appear in discovery.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from mantrana.errors import ConflictError, NotFoundError, ValidationFailed
from mantrana.models.user import User
from mantrana.schemas.user import ProfileData, UserCreate
from mantrana.services.access_service import normalise_email

logger = structlog.get_logger("mantrana.user_service")

# Completeness weights (sum to 100)
_CORE_FIELDS = ("name", "age", "profession", "location", "education", "about")
_CORE_FIELDS_WEIGHT = 80.0
_INTERESTS_WEIGHT = 10.0
_IMAGES_WEIGHT = 10.0

# action -> (allowed current statuses, new status)
_TRANSITIONS: dict[str, tuple[tuple[str, ...], str]] = {
    "pause": (("active",), "paused"),
    "resume": (("paused", "invited"), "active"),
}


def profile_completeness(profile: dict[str, Any] | None) -> int:
    """Percentage of the profile that is filled in, clamped to 0–100."""
    profile = profile or {}
    filled = sum(1 for f in _CORE_FIELDS if profile.get(f))
    score = _CORE_FIELDS_WEIGHT * filled / len(_CORE_FIELDS)
    if profile.get("interests"):
        score += _INTERESTS_WEIGHT
    if profile.get("images"):
        score += _IMAGES_WEIGHT
    return max(0, min(100, round(score)))


class UserService:

    async def create_user(
        self, payload: UserCreate, db_session: AsyncSession
    ) -> User:
        email = normalise_email(payload.email)
        log = logger.bind(email=email)

        duplicate = await db_session.scalar(select(User.id).where(User.email == email))
        if duplicate is not None:
            log.warning("create_user_duplicate_email")
            raise ConflictError("A user with this email already exists.")

        profile = payload.profile.model_dump(mode="json") if payload.profile else None
        user = User(
            email=email,
            role=payload.role,
            status=payload.status,
            is_approved=payload.status == "active",
            gender=payload.gender,
            birth_date=payload.birth_date,
            profile=profile,
            profile_completeness=profile_completeness(profile),
        )
        db_session.add(user)
        await db_session.flush()
        await db_session.refresh(user)

        log.info("user_created", user_id=str(user.id), status=user.status)
        return user

    async def get_user(self, user_id: uuid.UUID, db_session: AsyncSession) -> User:
        user = await db_session.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found.", resource="user")
        return user

    async def update_profile(
        self,
        user_id: uuid.UUID,
        profile: ProfileData,
        db_session: AsyncSession,
        gender: str | None = None,
        birth_date=None,
    ) -> User:
        """Replace the profile document and recompute completeness."""
        user = await self.get_user(user_id, db_session)

        document = profile.model_dump(mode="json")
        user.profile = document
        user.profile_completeness = profile_completeness(document)
        if gender is not None:
            user.gender = gender
        if birth_date is not None:
            user.birth_date = birth_date
        await db_session.flush()
        await db_session.refresh(user)

        logger.info(
            "profile_updated",
            user_id=str(user_id),
            profile_completeness=user.profile_completeness,
        )
        return user

    async def apply_action(
        self, user_id: uuid.UUID, action: str, db_session: AsyncSession
    ) -> User:
        """Admin transitions: ``pause``, ``resume`` and ``approve``."""
        user = await self.get_user(user_id, db_session)

        if action == "approve":
            user.is_approved = True
            if user.status == "invited":
                user.status = "active"
        elif action in _TRANSITIONS:
            allowed, new_status = _TRANSITIONS[action]
            if user.status not in allowed:
                raise ConflictError(f"Cannot {action} a user who is {user.status}.")
            user.status = new_status
        else:
            raise ValidationFailed(f"Unknown user action {action!r}.")

        await db_session.flush()
        await db_session.refresh(user)
        logger.info("user_status_changed", user_id=str(user_id), action=action, status=user.status)
        return user
