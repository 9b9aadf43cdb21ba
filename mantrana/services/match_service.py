"""
Shaadi Mantrana — Match Materializer

Turns a detected mutual like into its durable records:

  1. one ``Connection`` per unordered pair, upserted on the sorted pair and
     promoted to ``accepted``;
  2. two directed ``Match`` rows, upserted on ``(user_id, liked_user_id)``,
     keeping the first ``matched_at``;
  3. both ``DailyLike`` edges linked to the connection;
  4. toast acknowledgements that raced ahead of the connection folded in.

Every write is keyed on a unique constraint, so calling ``materialize`` any
number of times for the same pair leaves one Connection and two Match rows.

Compatibility (0–100) is a weighted blend of profile overlap:
  interests (Jaccard) 40 · age gap 25 · location 15 · education 10 ·
  profession 10.  Unknown age counts as half credit.
"""

from __future__ import annotations

import uuid
from typing import Any

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mantrana.database import upsert
from mantrana.errors import NotFoundError, PermissionDenied
from mantrana.models.connection import Connection, connection_id_for, sorted_pair
from mantrana.models.like import LIKE_TYPES, DailyLike
from mantrana.models.match import Match
from mantrana.models.user import User
from mantrana.services.toast_service import ToastTracker, load_connection
from mantrana.utils.clock import ensure_utc, utcnow

logger = structlog.get_logger("mantrana.match_service")

# ──────────────────────────────────────────────────────────────────────────────
# Compatibility weights (sum to 100)
# ──────────────────────────────────────────────────────────────────────────────

_W_INTERESTS = 40.0
_W_AGE = 25.0
_W_LOCATION = 15.0
_W_EDUCATION = 10.0
_W_PROFESSION = 10.0

_AGE_GAP_FULL_CREDIT = 2   # years
_AGE_GAP_ZERO_CREDIT = 12  # years


def _same_text(a: Any, b: Any) -> bool:
    if not isinstance(a, str) or not isinstance(b, str):
        return False
    return bool(a.strip()) and a.strip().lower() == b.strip().lower()


def compatibility_score(user_a: User, user_b: User) -> float:
    """Score how well two profiles overlap, on a 0–100 scale."""
    pa = user_a.profile or {}
    pb = user_b.profile or {}

    interests_a = {i.strip().lower() for i in pa.get("interests") or [] if i}
    interests_b = {i.strip().lower() for i in pb.get("interests") or [] if i}
    union = interests_a | interests_b
    interest_part = len(interests_a & interests_b) / len(union) if union else 0.0

    age_a, age_b = user_a.age, user_b.age
    if age_a is None or age_b is None:
        age_part = 0.5
    else:
        gap = abs(age_a - age_b)
        if gap <= _AGE_GAP_FULL_CREDIT:
            age_part = 1.0
        elif gap >= _AGE_GAP_ZERO_CREDIT:
            age_part = 0.0
        else:
            age_part = 1.0 - (gap - _AGE_GAP_FULL_CREDIT) / (
                _AGE_GAP_ZERO_CREDIT - _AGE_GAP_FULL_CREDIT
            )

    score = (
        _W_INTERESTS * interest_part
        + _W_AGE * age_part
        + _W_LOCATION * _same_text(pa.get("location"), pb.get("location"))
        + _W_EDUCATION * _same_text(pa.get("education"), pb.get("education"))
        + _W_PROFESSION * _same_text(pa.get("profession"), pb.get("profession"))
    )
    return round(max(0.0, min(100.0, score)), 1)


def pair_clause(model: Any, user_a_id: uuid.UUID, user_b_id: uuid.UUID):
    """WHERE clause matching both directed rows of a pair."""
    return or_(
        and_(model.user_id == user_a_id, model.liked_user_id == user_b_id),
        and_(model.user_id == user_b_id, model.liked_user_id == user_a_id),
    )


class MatchMaterializer:
    """Creates and reads the durable records of mutual matches."""

    def __init__(self, toast_tracker: ToastTracker | None = None) -> None:
        self._toasts = toast_tracker or ToastTracker()

    # ── Public API ────────────────────────────────────────────────────────

    async def materialize(
        self,
        user_a_id: uuid.UUID,
        user_b_id: uuid.UUID,
        db_session: AsyncSession,
        initiated_by: uuid.UUID | None = None,
        connection_type: str = "like",
    ) -> Connection:
        """Ensure the Connection and both Match rows exist for a pair.

        Parameters
        ----------
        user_a_id, user_b_id:
            The two users, in any order.
        db_session:
            Active SQLAlchemy async session.
        initiated_by:
            The user whose like came first; defaults to *user_a_id*.
        connection_type:
            ``like`` or ``super_like`` of the initiating edge.

        Returns
        -------
        Connection
            The accepted connection for the pair, freshly loaded.
        """
        low, high = sorted_pair(user_a_id, user_b_id)
        log = logger.bind(user_low=str(low), user_high=str(high))

        users = {
            u.id: u
            for u in (
                await db_session.execute(select(User).where(User.id.in_([low, high])))
            ).scalars()
        }
        if len(users) != 2:
            raise NotFoundError("Cannot materialize a match for a missing user.")

        score = compatibility_score(users[low], users[high])
        now = utcnow()

        # ── Connection, keyed by the sorted pair ──────────────────────────
        conn_stmt = upsert(db_session, Connection).values(
            id=connection_id_for(low, high),
            user_low_id=low,
            user_high_id=high,
            status="accepted",
            type=connection_type,
            initiated_by=initiated_by or user_a_id,
            initiated_at=now,
            responded_at=now,
            last_activity_at=now,
            compatibility_score=score,
            toast_seen_low=False,
            toast_seen_high=False,
        )
        conn_stmt = conn_stmt.on_conflict_do_update(
            index_elements=["user_low_id", "user_high_id"],
            set_={
                "status": "accepted",
                "responded_at": func.coalesce(
                    Connection.responded_at, conn_stmt.excluded.responded_at
                ),
                "last_activity_at": conn_stmt.excluded.last_activity_at,
                "compatibility_score": conn_stmt.excluded.compatibility_score,
            },
        )
        await db_session.execute(conn_stmt)

        connection = await self._connection_for_pair(low, high, db_session)

        # ── Directed Match rows ───────────────────────────────────────────
        edges = await db_session.execute(
            select(DailyLike.user_id, DailyLike.type).where(
                pair_clause(DailyLike, low, high)
            )
        )
        edge_types = {uid: t for uid, t in edges.all()}

        for user_id, liked_user_id in ((low, high), (high, low)):
            action = edge_types.get(user_id)
            if action not in LIKE_TYPES:
                action = "like"
            match_stmt = upsert(db_session, Match).values(
                id=uuid.uuid4(),
                user_id=user_id,
                liked_user_id=liked_user_id,
                connection_id=connection.id,
                action=action,
                is_match=True,
                matched_at=now,
                compatibility_score=score,
            )
            match_stmt = match_stmt.on_conflict_do_update(
                index_elements=["user_id", "liked_user_id"],
                set_={
                    "is_match": True,
                    "action": match_stmt.excluded.action,
                    "connection_id": match_stmt.excluded.connection_id,
                    "compatibility_score": match_stmt.excluded.compatibility_score,
                    "matched_at": func.coalesce(
                        Match.matched_at, match_stmt.excluded.matched_at
                    ),
                },
            )
            await db_session.execute(match_stmt)

        # ── Back-links from the like edges ────────────────────────────────
        await db_session.execute(
            update(DailyLike)
            .where(pair_clause(DailyLike, low, high), DailyLike.type.in_(LIKE_TYPES))
            .values(connection_id=connection.id)
            .execution_options(synchronize_session=False)
        )

        if await self._toasts.fold_acks(connection, db_session):
            connection = await load_connection(db_session, connection.id)

        log.info(
            "match_materialized",
            connection_id=str(connection.id),
            compatibility_score=score,
        )
        return connection

    async def get_connection(
        self,
        connection_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> Connection:
        """Return a connection the caller participates in."""
        connection = await load_connection(db_session, connection_id)
        if connection is None:
            raise NotFoundError("Connection not found.", resource="connection")
        if not connection.has_participant(user_id):
            raise PermissionDenied("You are not part of this connection.")
        return connection

    async def list_connections(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
        status: str | None = None,
    ) -> list[Connection]:
        stmt = (
            select(Connection)
            .where(
                or_(
                    Connection.user_low_id == user_id,
                    Connection.user_high_id == user_id,
                )
            )
            .order_by(Connection.last_activity_at.desc())
            .execution_options(populate_existing=True)
        )
        if status is not None:
            stmt = stmt.where(Connection.status == status)
        result = await db_session.execute(stmt)
        return list(result.scalars().all())

    async def mutual_matches(
        self,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> list[dict]:
        """List accepted matches from the caller's point of view.

        Each item carries the other participant, when the match happened,
        the last activity and whether the caller still has to see the toast.
        """
        connections = await self.list_connections(
            user_id, db_session, status="accepted"
        )
        matches = [
            {
                "connection_id": c.id,
                "user": c.other_user(user_id),
                "matched_at": ensure_utc(c.responded_at or c.initiated_at),
                "last_activity_at": ensure_utc(c.last_activity_at),
                "compatibility_score": c.compatibility_score,
                "should_show_toast": not c.toast_seen_by(user_id),
            }
            for c in connections
        ]
        logger.info("mutual_matches_listed", user_id=str(user_id), count=len(matches))
        return matches

    # ── Private helpers ──────────────────────────────────────────────────

    async def _connection_for_pair(
        self,
        low: uuid.UUID,
        high: uuid.UUID,
        db_session: AsyncSession,
    ) -> Connection:
        stmt = (
            select(Connection)
            .where(Connection.user_low_id == low, Connection.user_high_id == high)
            .execution_options(populate_existing=True)
        )
        result = await db_session.execute(stmt)
        return result.scalar_one()
