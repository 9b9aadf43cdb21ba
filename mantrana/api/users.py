"""
Shaadi Mantrana — Users API

Account creation, profile edits and admin status transitions.
"""

from __future__ import annotations

import uuid
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from mantrana.api.deps import get_user_service, raise_http
from mantrana.database import get_db
from mantrana.errors import MantranaError
from mantrana.models.user import User
from mantrana.schemas.user import ProfileUpdate, UserCreate, UserResponse
from mantrana.services.user_service import UserService

logger = structlog.get_logger("mantrana.api.users")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# POST /: Create a new user
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new user",
)
async def create_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
    service: UserService = Depends(get_user_service),
) -> User:
    """Register a user.  The email must not be in use yet."""
    try:
        return await service.create_user(payload, db)
    except MantranaError as exc:
        raise_http(exc)


# ──────────────────────────────────────────────────────────────────────────────
# GET /{user_id}: Get user by ID
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{user_id}",
    response_model=UserResponse,
    summary="Get user by ID",
)
async def get_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    service: UserService = Depends(get_user_service),
) -> User:
    try:
        return await service.get_user(user_id, db)
    except MantranaError as exc:
        raise_http(exc)


# ──────────────────────────────────────────────────────────────────────────────
# PATCH /{user_id}/profile: Replace the profile document
# ──────────────────────────────────────────────────────────────────────────────

@router.patch(
    "/{user_id}/profile",
    response_model=UserResponse,
    summary="Update a user's profile",
)
async def update_profile(
    user_id: uuid.UUID,
    payload: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    service: UserService = Depends(get_user_service),
) -> User:
    """Replace the profile document and recompute its completeness.

    Legacy ``images`` values (a bare URL or a bare list of URLs) are accepted
    and stored in their tagged form.
    """
    try:
        return await service.update_profile(
            user_id,
            payload.profile,
            db,
            gender=payload.gender,
            birth_date=payload.birth_date,
        )
    except MantranaError as exc:
        raise_http(exc)


# ──────────────────────────────────────────────────────────────────────────────
# POST /{user_id}/{action}: Admin status transitions
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{user_id}/{action}",
    response_model=UserResponse,
    summary="Pause, resume or approve a user",
)
async def apply_action(
    user_id: uuid.UUID,
    action: Literal["pause", "resume", "approve"],
    db: AsyncSession = Depends(get_db),
    service: UserService = Depends(get_user_service),
) -> User:
    logger.info("user_action_requested", user_id=str(user_id), action=action)
    try:
        return await service.apply_action(user_id, action, db)
    except MantranaError as exc:
        raise_http(exc)
