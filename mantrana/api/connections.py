"""
Shaadi Mantrana — Connections API

Read access to connections and the per-connection toast state.
"""

from __future__ import annotations

import uuid
from typing import Literal, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from mantrana.api.deps import get_materializer, get_toast_tracker, raise_http
from mantrana.database import get_db
from mantrana.errors import MantranaError
from mantrana.models.connection import Connection
from mantrana.schemas.connection import ConnectionResponse, ToastSeenRequest, ToastStatus
from mantrana.services.match_service import MatchMaterializer
from mantrana.services.toast_service import ToastTracker

logger = structlog.get_logger("mantrana.api.connections")

router = APIRouter()

ConnectionStatus = Literal["pending", "accepted", "declined", "blocked", "expired"]


@router.get(
    "/",
    response_model=list[ConnectionResponse],
    summary="List a user's connections",
)
async def list_connections(
    user_id: uuid.UUID = Query(..., description="Acting user"),
    status: Optional[ConnectionStatus] = Query(None, description="Filter by status"),
    db: AsyncSession = Depends(get_db),
    materializer: MatchMaterializer = Depends(get_materializer),
) -> list[Connection]:
    return await materializer.list_connections(user_id, db, status=status)


@router.get(
    "/{connection_id}",
    response_model=ConnectionResponse,
    summary="Get a connection",
)
async def get_connection(
    connection_id: uuid.UUID,
    user_id: uuid.UUID = Query(..., description="Acting user"),
    db: AsyncSession = Depends(get_db),
    materializer: MatchMaterializer = Depends(get_materializer),
) -> Connection:
    try:
        return await materializer.get_connection(connection_id, user_id, db)
    except MantranaError as exc:
        raise_http(exc)


# ──────────────────────────────────────────────────────────────────────────────
# Toast state
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{connection_id}/toast",
    response_model=ToastStatus,
    summary="Should the match toast be shown?",
)
async def toast_status(
    connection_id: uuid.UUID,
    user_id: uuid.UUID = Query(..., description="Acting user"),
    db: AsyncSession = Depends(get_db),
    toasts: ToastTracker = Depends(get_toast_tracker),
) -> ToastStatus:
    """``true`` until the user acknowledges the toast, also for a mutual pair
    whose connection has not been written yet."""
    try:
        show = await toasts.should_show(connection_id, user_id, db)
    except MantranaError as exc:
        raise_http(exc)
    return ToastStatus(connection_id=connection_id, user_id=user_id, should_show_toast=show)


@router.post(
    "/{connection_id}/toast-seen",
    response_model=ToastStatus,
    summary="Mark the match toast as seen",
)
async def toast_seen(
    connection_id: uuid.UUID,
    payload: ToastSeenRequest,
    db: AsyncSession = Depends(get_db),
    toasts: ToastTracker = Depends(get_toast_tracker),
) -> ToastStatus:
    log = logger.bind(connection_id=str(connection_id), user_id=str(payload.user_id))
    try:
        await toasts.mark_seen(connection_id, payload.user_id, db)
    except MantranaError as exc:
        raise_http(exc)
    log.info("toast_seen_acknowledged")
    return ToastStatus(
        connection_id=connection_id,
        user_id=payload.user_id,
        should_show_toast=False,
    )
