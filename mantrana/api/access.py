"""
Shaadi Mantrana — Access API

Admin management of the registration allow-list and invitation records.
"""

from __future__ import annotations

from typing import Literal

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from mantrana.api.deps import get_access_service, raise_http
from mantrana.database import get_db
from mantrana.errors import MantranaError
from mantrana.models.access import Invitation, PreapprovedEmail
from mantrana.schemas.access import (
    EmailCheckResponse,
    InvitationCreate,
    InvitationResponse,
    InvitationStatusUpdate,
    PreapprovedCreate,
    PreapprovedResponse,
)
from mantrana.services.access_service import AccessService

logger = structlog.get_logger("mantrana.api.access")

router = APIRouter()

# action -> stored status
_PREAPPROVED_ACTIONS = {"pause": "paused", "resume": "active", "expire": "expired"}


# ──────────────────────────────────────────────────────────────────────────────
# Allow-list
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/preapproved",
    response_model=PreapprovedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add an email to the allow-list",
)
async def add_preapproved(
    payload: PreapprovedCreate,
    db: AsyncSession = Depends(get_db),
    service: AccessService = Depends(get_access_service),
) -> PreapprovedEmail:
    try:
        return await service.add_preapproved(
            payload.email, db, notes=payload.notes, added_by=payload.added_by
        )
    except MantranaError as exc:
        raise_http(exc)


@router.get(
    "/preapproved/check",
    response_model=EmailCheckResponse,
    summary="Check whether an email may register",
)
async def check_email(
    email: str = Query(..., description="Address to check"),
    db: AsyncSession = Depends(get_db),
    service: AccessService = Depends(get_access_service),
) -> dict:
    try:
        return await service.email_status(email, db)
    except MantranaError as exc:
        raise_http(exc)


@router.post(
    "/preapproved/{email}/{action}",
    response_model=PreapprovedResponse,
    summary="Pause, resume or expire an allow-list entry",
)
async def change_preapproved(
    email: str,
    action: Literal["pause", "resume", "expire"],
    db: AsyncSession = Depends(get_db),
    service: AccessService = Depends(get_access_service),
) -> PreapprovedEmail:
    try:
        return await service.set_preapproved_status(
            email, _PREAPPROVED_ACTIONS[action], db
        )
    except MantranaError as exc:
        raise_http(exc)


# ──────────────────────────────────────────────────────────────────────────────
# Invitations
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/invitations",
    response_model=InvitationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an invitation",
)
async def create_invitation(
    payload: InvitationCreate,
    db: AsyncSession = Depends(get_db),
    service: AccessService = Depends(get_access_service),
) -> Invitation:
    try:
        return await service.create_invitation(
            payload.email, db, sent_by=payload.sent_by, invitation_type=payload.type
        )
    except MantranaError as exc:
        raise_http(exc)


@router.post(
    "/invitations/{code}/{new_status}",
    response_model=InvitationResponse,
    summary="Advance an invitation",
)
async def mark_invitation(
    code: str,
    new_status: Literal[
        "sent", "delivered", "opened", "accepted", "cancelled", "failed"
    ],
    payload: InvitationStatusUpdate | None = None,
    db: AsyncSession = Depends(get_db),
    service: AccessService = Depends(get_access_service),
) -> Invitation:
    """Record a delivery event.  ``failed`` counts a delivery attempt."""
    failure_reason = payload.failure_reason if payload is not None else None
    try:
        return await service.mark_invitation(
            code, new_status, db, failure_reason=failure_reason
        )
    except MantranaError as exc:
        raise_http(exc)
