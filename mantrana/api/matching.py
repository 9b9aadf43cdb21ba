"""
Shaadi Mantrana — Matching API

Likes, passes, the discovery feed, mutual matches, unmatching and the
pair-keyed "mark toast seen" call used by the match celebration screen.
The acting user is passed explicitly in each request.
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from mantrana.api.deps import get_like_recorder, get_materializer, get_toast_tracker, raise_http
from mantrana.database import get_db
from mantrana.errors import MantranaError
from mantrana.schemas.match import (
    DailyLikeResponse,
    DailyStats,
    DiscoveryResponse,
    LikeCreate,
    LikedProfileItem,
    LikeResponse,
    MarkToastSeenRequest,
    MutualMatchItem,
    PassCreate,
    ToastSeenResponse,
    UnmatchRequest,
    UnmatchResponse,
)
from mantrana.schemas.user import PublicProfile
from mantrana.services.like_service import LikeRecorder
from mantrana.services.match_service import MatchMaterializer
from mantrana.services.toast_service import ToastTracker

logger = structlog.get_logger("mantrana.api.matching")

router = APIRouter()


def _like_response(result: dict) -> LikeResponse:
    connection = result["connection"]
    return LikeResponse(
        like=DailyLikeResponse.model_validate(result["like"]),
        is_mutual_match=result["is_mutual_match"],
        connection_id=connection.id if connection is not None else None,
        should_show_toast=result["should_show_toast"],
        daily_like_count=result["daily_like_count"],
        remaining_likes=result["remaining_likes"],
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST /like: Like or super-like a profile
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/like",
    response_model=LikeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Like a profile",
)
async def like_profile(
    payload: LikeCreate,
    db: AsyncSession = Depends(get_db),
    recorder: LikeRecorder = Depends(get_like_recorder),
) -> LikeResponse:
    """Record a like and report whether it completed a mutual match.

    Liking the same profile again returns the existing like and is not
    charged to the daily budget.  When the budget is spent the response is
    ``429`` with the current count.
    """
    try:
        result = await recorder.record_like(
            payload.user_id, payload.target_user_id, db, action=payload.type
        )
    except MantranaError as exc:
        raise_http(exc)
    return _like_response(result)


# ──────────────────────────────────────────────────────────────────────────────
# POST /pass: Pass on a profile
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/pass",
    response_model=DailyLikeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Pass on a profile",
)
async def pass_profile(
    payload: PassCreate,
    db: AsyncSession = Depends(get_db),
    recorder: LikeRecorder = Depends(get_like_recorder),
):
    try:
        return await recorder.record_pass(payload.user_id, payload.target_user_id, db)
    except MantranaError as exc:
        raise_http(exc)


# ──────────────────────────────────────────────────────────────────────────────
# GET /mutual: Mutual matches for a user
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/mutual",
    response_model=list[MutualMatchItem],
    summary="List mutual matches",
)
async def mutual_matches(
    user_id: uuid.UUID = Query(..., description="Acting user"),
    db: AsyncSession = Depends(get_db),
    materializer: MatchMaterializer = Depends(get_materializer),
) -> list[MutualMatchItem]:
    items = await materializer.mutual_matches(user_id, db)
    return [
        MutualMatchItem(
            connection_id=item["connection_id"],
            profile=PublicProfile.model_validate(item["user"]),
            matched_at=item["matched_at"],
            last_activity_at=item["last_activity_at"],
            compatibility_score=item["compatibility_score"],
            should_show_toast=item["should_show_toast"],
        )
        for item in items
    ]


# ──────────────────────────────────────────────────────────────────────────────
# GET /liked, /liked-by: Outgoing and incoming likes
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/liked",
    response_model=list[LikedProfileItem],
    summary="Profiles the user has liked",
)
async def liked_profiles(
    user_id: uuid.UUID = Query(..., description="Acting user"),
    db: AsyncSession = Depends(get_db),
    recorder: LikeRecorder = Depends(get_like_recorder),
) -> list[LikedProfileItem]:
    try:
        likes = await recorder.liked_profiles(user_id, db)
    except MantranaError as exc:
        raise_http(exc)
    return [
        LikedProfileItem(
            like=DailyLikeResponse.model_validate(like),
            profile=PublicProfile.model_validate(like.liked_user),
        )
        for like in likes
    ]


@router.get(
    "/liked-by",
    response_model=list[LikedProfileItem],
    summary="Profiles that liked the user",
)
async def liked_by(
    user_id: uuid.UUID = Query(..., description="Acting user"),
    db: AsyncSession = Depends(get_db),
    recorder: LikeRecorder = Depends(get_like_recorder),
) -> list[LikedProfileItem]:
    try:
        likes = await recorder.liked_by(user_id, db)
    except MantranaError as exc:
        raise_http(exc)
    return [
        LikedProfileItem(
            like=DailyLikeResponse.model_validate(like),
            profile=PublicProfile.model_validate(like.user),
        )
        for like in likes
    ]


# ──────────────────────────────────────────────────────────────────────────────
# GET /stats: Today's like budget
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/stats",
    response_model=DailyStats,
    summary="Daily like statistics",
)
async def daily_stats(
    user_id: uuid.UUID = Query(..., description="Acting user"),
    db: AsyncSession = Depends(get_db),
    recorder: LikeRecorder = Depends(get_like_recorder),
) -> dict:
    try:
        return await recorder.daily_stats(user_id, db)
    except MantranaError as exc:
        raise_http(exc)


# ──────────────────────────────────────────────────────────────────────────────
# GET /discovery: Discovery feed
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/discovery",
    response_model=DiscoveryResponse,
    summary="Profiles to swipe on",
)
async def discovery(
    user_id: uuid.UUID = Query(..., description="Acting user"),
    limit: int = Query(20, ge=1, le=100, description="Max profiles to return"),
    offset: int = Query(0, ge=0, description="Number of profiles to skip"),
    db: AsyncSession = Depends(get_db),
    recorder: LikeRecorder = Depends(get_like_recorder),
) -> DiscoveryResponse:
    try:
        feed = await recorder.discover(user_id, db, limit=limit, offset=offset)
    except MantranaError as exc:
        raise_http(exc)
    return DiscoveryResponse(
        profiles=[PublicProfile.model_validate(u) for u in feed["profiles"]],
        total=feed["total"],
        daily_like_count=feed["daily_like_count"],
        remaining_likes=feed["remaining_likes"],
        daily_limit_reached=feed["daily_limit_reached"],
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST /unmatch: Remove a match
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/unmatch",
    response_model=UnmatchResponse,
    summary="Unmatch a user",
)
async def unmatch(
    payload: UnmatchRequest,
    db: AsyncSession = Depends(get_db),
    recorder: LikeRecorder = Depends(get_like_recorder),
) -> dict:
    try:
        return await recorder.unmatch(
            payload.user_id,
            db,
            target_user_id=payload.target_user_id,
            connection_id=payload.connection_id,
        )
    except MantranaError as exc:
        raise_http(exc)


# ──────────────────────────────────────────────────────────────────────────────
# POST /mark-toast-seen: Toast acknowledgement keyed by the other user
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/mark-toast-seen",
    response_model=ToastSeenResponse,
    summary="Mark the match toast as seen",
)
async def mark_toast_seen(
    payload: MarkToastSeenRequest,
    db: AsyncSession = Depends(get_db),
    toasts: ToastTracker = Depends(get_toast_tracker),
) -> ToastSeenResponse:
    try:
        connection_id = await toasts.mark_seen_for_pair(
            payload.user_id, payload.target_user_id, db
        )
    except MantranaError as exc:
        raise_http(exc)
    return ToastSeenResponse(connection_id=connection_id, should_show_toast=False)
