"""
Shaadi Mantrana — Like/Match Recorder

Records directed swipe edges in ``daily_likes`` and detects mutual matches.

Every edge is written with ``INSERT ... ON CONFLICT`` on
``(user_id, liked_user_id)``: re-issuing a like never duplicates the row, a
``pass`` may later be upgraded to a like, and a like is never downgraded.
When the reverse like exists, both edges are flagged mutual by one UPDATE and
the Match Materializer is run in the same transaction.  Re-issuing a like
whose pair is mutual but not yet flagged repairs the pair on the spot.

Likes and super-likes are charged against ``DAILY_LIKE_LIMIT`` per UTC day;
passes and idempotent re-issues are free.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mantrana.config import Settings, get_settings
from mantrana.database import upsert
from mantrana.errors import (
    DailyLimitReached,
    NotFoundError,
    PermissionDenied,
    ValidationFailed,
)
from mantrana.models.connection import Connection, ToastAck, connection_id_for
from mantrana.models.like import LIKE_TYPES, SWIPE_TYPES, DailyLike
from mantrana.models.match import Match
from mantrana.models.user import User
from mantrana.services.match_service import MatchMaterializer, pair_clause
from mantrana.services.toast_service import ToastTracker, load_connection
from mantrana.utils.clock import utc_day_bounds, utcnow

logger = structlog.get_logger("mantrana.like_service")

_OPPOSITE_GENDER = {"male": "female", "female": "male"}


class LikeRecorder:
    """Records likes and passes, and answers questions about them."""

    def __init__(
        self,
        settings: Settings | None = None,
        materializer: MatchMaterializer | None = None,
        toast_tracker: ToastTracker | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._toasts = toast_tracker or ToastTracker()
        self._materializer = materializer or MatchMaterializer(self._toasts)

    @property
    def daily_limit(self) -> int:
        return self._settings.DAILY_LIKE_LIMIT

    # ── Recording ─────────────────────────────────────────────────────────

    async def record_like(
        self,
        acting_user_id: uuid.UUID,
        target_user_id: uuid.UUID,
        db_session: AsyncSession,
        action: str = "like",
    ) -> dict[str, Any]:
        """Record a like (or super-like) and detect a mutual match.

        Parameters
        ----------
        acting_user_id:
            The user who swiped.
        target_user_id:
            The user who was swiped on.
        db_session:
            Active SQLAlchemy async session; the caller owns the transaction.
        action:
            ``like``, ``super_like`` or ``pass``.  A pass is delegated to
            :meth:`record_pass`.

        Returns
        -------
        dict
            ``like`` (the DailyLike edge), ``is_mutual_match``, ``connection``
            (or None), ``should_show_toast``, ``daily_like_count`` and
            ``remaining_likes``.

        Raises
        ------
        ValidationFailed
            Self-like or unknown action.
        NotFoundError
            Either user is missing; nothing is written.
        DailyLimitReached
            The acting user has spent today's budget.
        """
        if action not in SWIPE_TYPES:
            raise ValidationFailed(f"Unknown action {action!r}.")
        if action == "pass":
            edge = await self.record_pass(acting_user_id, target_user_id, db_session)
            count = await self.daily_like_count(acting_user_id, db_session)
            return self._result(edge, None, False, count)

        log = logger.bind(
            user_id=str(acting_user_id), target_user_id=str(target_user_id)
        )
        if acting_user_id == target_user_id:
            raise ValidationFailed("You cannot like your own profile.")
        await self._require_users(db_session, acting_user_id, target_user_id)

        existing = await self._edge(acting_user_id, target_user_id, db_session)
        count = await self.daily_like_count(acting_user_id, db_session)

        if existing is not None and existing.is_like:
            log.info("like_already_recorded", type=existing.type)
        else:
            if count >= self.daily_limit:
                log.warning("daily_like_limit_reached", count=count)
                raise DailyLimitReached(count, self.daily_limit)

            now = utcnow()
            stmt = upsert(db_session, DailyLike).values(
                id=uuid.uuid4(),
                user_id=acting_user_id,
                liked_user_id=target_user_id,
                type=action,
                like_date=now,
                is_mutual_match=False,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["user_id", "liked_user_id"],
                set_={
                    "type": stmt.excluded.type,
                    "like_date": stmt.excluded.like_date,
                    "updated_at": stmt.excluded.like_date,
                },
                where=DailyLike.type == "pass",
            )
            await db_session.execute(stmt)
            count += 1
            log.info("like_recorded", type=action, daily_like_count=count)

        reverse = await db_session.scalar(
            select(DailyLike).where(
                DailyLike.user_id == target_user_id,
                DailyLike.liked_user_id == acting_user_id,
                DailyLike.type.in_(LIKE_TYPES),
            )
        )

        connection: Connection | None = None
        should_show = False
        if reverse is not None:
            await db_session.execute(
                update(DailyLike)
                .where(
                    pair_clause(DailyLike, acting_user_id, target_user_id),
                    DailyLike.type.in_(LIKE_TYPES),
                )
                .values(is_mutual_match=True)
                .execution_options(synchronize_session=False)
            )
            connection = await self._materializer.materialize(
                acting_user_id,
                target_user_id,
                db_session,
                initiated_by=target_user_id,
                connection_type=reverse.type,
            )
            should_show = await self._toasts.should_show(
                connection.id, acting_user_id, db_session
            )
            log.info("mutual_match_detected", connection_id=str(connection.id))

        edge = await self._edge(acting_user_id, target_user_id, db_session)
        return self._result(edge, connection, should_show, count)

    async def record_pass(
        self,
        acting_user_id: uuid.UUID,
        target_user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> DailyLike:
        """Store a pass.  An existing like for the pair is left untouched."""
        if acting_user_id == target_user_id:
            raise ValidationFailed("You cannot pass on your own profile.")
        await self._require_users(db_session, acting_user_id, target_user_id)

        await db_session.execute(
            upsert(db_session, DailyLike)
            .values(
                id=uuid.uuid4(),
                user_id=acting_user_id,
                liked_user_id=target_user_id,
                type="pass",
                like_date=utcnow(),
                is_mutual_match=False,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "liked_user_id"])
        )
        logger.info(
            "pass_recorded",
            user_id=str(acting_user_id),
            target_user_id=str(target_user_id),
        )
        return await self._edge(acting_user_id, target_user_id, db_session)

    # ── Queries ───────────────────────────────────────────────────────────

    async def daily_like_count(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        day=None,
    ) -> int:
        start, end = utc_day_bounds(day)
        stmt = select(func.count(DailyLike.id)).where(
            DailyLike.user_id == user_id,
            DailyLike.type.in_(LIKE_TYPES),
            DailyLike.like_date >= start,
            DailyLike.like_date < end,
        )
        return (await db_session.scalar(stmt)) or 0

    async def daily_stats(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        day=None,
    ) -> dict[str, Any]:
        await self._require_users(db_session, user_id)
        start, _ = utc_day_bounds(day)
        count = await self.daily_like_count(user_id, db_session, start)
        remaining = max(0, self.daily_limit - count)
        return {
            "date": start.date(),
            "daily_like_count": count,
            "limit": self.daily_limit,
            "remaining_likes": remaining,
            "can_like": remaining > 0,
        }

    async def liked_profiles(
        self, user_id: uuid.UUID, db_session: AsyncSession
    ) -> list[DailyLike]:
        """Outgoing likes, newest first."""
        await self._require_users(db_session, user_id)
        stmt = (
            select(DailyLike)
            .where(DailyLike.user_id == user_id, DailyLike.type.in_(LIKE_TYPES))
            .order_by(DailyLike.like_date.desc())
            .execution_options(populate_existing=True)
        )
        return list((await db_session.execute(stmt)).scalars().all())

    async def liked_by(
        self, user_id: uuid.UUID, db_session: AsyncSession
    ) -> list[DailyLike]:
        """Incoming likes, newest first."""
        await self._require_users(db_session, user_id)
        stmt = (
            select(DailyLike)
            .where(
                DailyLike.liked_user_id == user_id,
                DailyLike.type.in_(LIKE_TYPES),
            )
            .order_by(DailyLike.like_date.desc())
            .execution_options(populate_existing=True)
        )
        return list((await db_session.execute(stmt)).scalars().all())

    async def discover(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """Candidate profiles the user has not swiped on yet.

        Candidates are active, approved members other than the caller,
        of the opposite gender when the caller's gender is known, and inside
        the caller's preferred age range when the candidate's age is known.
        Nothing is returned once today's like budget is spent.
        """
        users = await self._require_users(db_session, user_id)
        me = users[user_id]
        stats = await self.daily_stats(user_id, db_session)

        if not stats["can_like"]:
            return {
                "profiles": [],
                "total": 0,
                "daily_like_count": stats["daily_like_count"],
                "remaining_likes": 0,
                "daily_limit_reached": True,
            }

        swiped = select(DailyLike.liked_user_id).where(DailyLike.user_id == user_id)
        stmt = (
            select(User)
            .where(
                User.id != user_id,
                User.role == "user",
                User.status == "active",
                User.is_approved.is_(True),
                User.id.not_in(swiped),
            )
            .order_by(User.created_at.desc(), User.id)
        )
        opposite = _OPPOSITE_GENDER.get((me.gender or "").lower())
        if opposite is not None:
            stmt = stmt.where(func.lower(User.gender) == opposite)

        age_range = ((me.profile or {}).get("preferences") or {}).get("age_range") or {}
        age_min = age_range.get("min")
        age_max = age_range.get("max")

        candidates = []
        for candidate in (await db_session.execute(stmt)).scalars():
            age = candidate.age
            if age is not None:
                if age_min is not None and age < age_min:
                    continue
                if age_max is not None and age > age_max:
                    continue
            candidates.append(candidate)

        logger.info(
            "discovery_feed_built",
            user_id=str(user_id),
            candidates=len(candidates),
        )
        return {
            "profiles": candidates[offset:offset + limit],
            "total": len(candidates),
            "daily_like_count": stats["daily_like_count"],
            "remaining_likes": stats["remaining_likes"],
            "daily_limit_reached": False,
        }

    # ── Unmatch ───────────────────────────────────────────────────────────

    async def unmatch(
        self,
        acting_user_id: uuid.UUID,
        db_session: AsyncSession,
        target_user_id: uuid.UUID | None = None,
        connection_id: uuid.UUID | None = None,
    ) -> dict[str, Any]:
        """Remove a match: both like edges, both Match rows and the Connection.

        The pair is identified either by the other user or by the connection.
        """
        log = logger.bind(user_id=str(acting_user_id))

        if connection_id is not None:
            connection = await load_connection(db_session, connection_id)
            if connection is None:
                raise NotFoundError("Connection not found.", resource="connection")
            if not connection.has_participant(acting_user_id):
                raise PermissionDenied("You are not part of this connection.")
            target_user_id = connection.other_user_id(acting_user_id)
        elif target_user_id is not None:
            if target_user_id == acting_user_id:
                raise ValidationFailed("You cannot unmatch yourself.")
        else:
            raise ValidationFailed("Either target_user_id or connection_id is required.")

        pair_connection_id = connection_id_for(acting_user_id, target_user_id)

        likes = await db_session.execute(
            delete(DailyLike).where(pair_clause(DailyLike, acting_user_id, target_user_id))
        )
        matches = await db_session.execute(
            delete(Match).where(pair_clause(Match, acting_user_id, target_user_id))
        )
        connections = await db_session.execute(
            delete(Connection).where(
                Connection.user_low_id.in_([acting_user_id, target_user_id]),
                Connection.user_high_id.in_([acting_user_id, target_user_id]),
            )
        )
        await db_session.execute(
            delete(ToastAck).where(ToastAck.connection_id == pair_connection_id)
        )

        if not (likes.rowcount or matches.rowcount or connections.rowcount):
            raise NotFoundError("No match found with this user.", resource="match")

        log.info(
            "unmatched",
            target_user_id=str(target_user_id),
            likes_deleted=likes.rowcount,
            matches_deleted=matches.rowcount,
            connections_deleted=connections.rowcount,
        )
        return {
            "connection_id": pair_connection_id,
            "target_user_id": target_user_id,
            "likes_deleted": likes.rowcount,
            "matches_deleted": matches.rowcount,
            "connection_deleted": bool(connections.rowcount),
        }

    # ── Private helpers ──────────────────────────────────────────────────

    async def _require_users(
        self, db_session: AsyncSession, *user_ids: uuid.UUID
    ) -> dict[uuid.UUID, User]:
        result = await db_session.execute(select(User).where(User.id.in_(user_ids)))
        found = {u.id: u for u in result.scalars()}
        for uid in user_ids:
            if uid not in found:
                raise NotFoundError(f"User {uid} not found.", resource="user")
        return found

    async def _edge(
        self,
        user_id: uuid.UUID,
        liked_user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> DailyLike | None:
        stmt = (
            select(DailyLike)
            .where(
                DailyLike.user_id == user_id,
                DailyLike.liked_user_id == liked_user_id,
            )
            .execution_options(populate_existing=True)
        )
        return (await db_session.execute(stmt)).scalar_one_or_none()

    def _result(
        self,
        edge: DailyLike,
        connection: Connection | None,
        should_show_toast: bool,
        daily_like_count: int,
    ) -> dict[str, Any]:
        return {
            "like": edge,
            "is_mutual_match": edge.is_mutual_match,
            "connection": connection,
            "should_show_toast": should_show_toast,
            "daily_like_count": daily_like_count,
            "remaining_likes": max(0, self.daily_limit - daily_like_count),
        }
