"""
Shaadi Mantrana — Shared API plumbing.

Service instances are built lazily once per process, and service-layer
exceptions are turned into ``HTTPException`` with the status they carry.
"""

from __future__ import annotations

from typing import NoReturn

import structlog
from fastapi import HTTPException

from mantrana.errors import DailyLimitReached, MantranaError
from mantrana.services.access_service import AccessService
from mantrana.services.like_service import LikeRecorder
from mantrana.services.match_service import MatchMaterializer
from mantrana.services.toast_service import ToastTracker
from mantrana.services.user_service import UserService

logger = structlog.get_logger("mantrana.api")

# ── Service singletons ────────────────────────────────────────────────────────

_toast_tracker: ToastTracker | None = None
_materializer: MatchMaterializer | None = None
_like_recorder: LikeRecorder | None = None
_access_service: AccessService | None = None
_user_service: UserService | None = None


def get_toast_tracker() -> ToastTracker:
    global _toast_tracker
    if _toast_tracker is None:
        _toast_tracker = ToastTracker()
    return _toast_tracker


def get_materializer() -> MatchMaterializer:
    global _materializer
    if _materializer is None:
        _materializer = MatchMaterializer(get_toast_tracker())
    return _materializer


def get_like_recorder() -> LikeRecorder:
    global _like_recorder
    if _like_recorder is None:
        _like_recorder = LikeRecorder(
            materializer=get_materializer(),
            toast_tracker=get_toast_tracker(),
        )
    return _like_recorder


def get_access_service() -> AccessService:
    global _access_service
    if _access_service is None:
        _access_service = AccessService()
    return _access_service


def get_user_service() -> UserService:
    global _user_service
    if _user_service is None:
        _user_service = UserService()
    return _user_service


def raise_http(exc: MantranaError) -> NoReturn:
    """Re-raise a service error as the matching ``HTTPException``."""
    if isinstance(exc, DailyLimitReached):
        detail = {
            "message": exc.message,
            "daily_like_count": exc.daily_like_count,
            "limit": exc.limit,
        }
    else:
        detail = exc.message
    logger.info(
        "request_rejected",
        error=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.message,
    )
    raise HTTPException(status_code=exc.status_code, detail=detail) from exc
