"""
Shaadi Mantrana — Reconciliation & Maintenance

Mutual like edges are the raw fact of a match.  The Connection row is the
canonical record derived from them; ``DailyLike.is_mutual_match`` and the
directed Match rows are denormalised copies.  ``reconcile()`` scans for pairs
whose derived records disagree with the edges and re-runs the materializer
for each one in its own transaction, retrying transient database errors with
tenacity.  One bad pair never blocks the rest of the scan.

Also hosts the periodic clean-ups: purging old unanswered likes, dropping
toast acknowledgements whose connection never appeared, and clamping
out-of-range profile completeness values.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy import and_, delete, exists, func, or_, select, update
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mantrana.config import Settings, get_settings
from mantrana.database import get_session_factory
from mantrana.errors import NotFoundError
from mantrana.models.connection import Connection, ToastAck, sorted_pair
from mantrana.models.like import LIKE_TYPES, DailyLike
from mantrana.models.match import Match
from mantrana.models.user import User
from mantrana.services.match_service import MatchMaterializer, pair_clause
from mantrana.utils.clock import ensure_utc, utcnow

logger = structlog.get_logger("mantrana.reconciliation_service")


class ReconciliationService:
    """Repairs derived match records and runs data clean-ups."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        settings: Settings | None = None,
        materializer: MatchMaterializer | None = None,
        attempts: int = 3,
    ) -> None:
        self._session_factory = session_factory or get_session_factory()
        self._settings = settings or get_settings()
        self._materializer = materializer or MatchMaterializer()
        self._attempts = attempts

    # ── Reconciliation ────────────────────────────────────────────────────

    async def reconcile(self) -> dict[str, int]:
        """Repair every mutual pair whose derived records are out of date.

        Returns
        -------
        dict
            ``pairs_scanned``, ``pairs_repaired``, ``pairs_failed`` and
            ``stale_flags_cleared``.
        """
        log = logger.bind(task="reconcile")
        log.info("reconcile_start")

        async with self._session_factory() as session:
            scanned, broken = await self._find_broken_pairs(session)

        repaired = failed = 0
        for (low, high), edge in broken.items():
            try:
                await self._repair_pair(low, high, edge)
                repaired += 1
                log.info("reconcile_pair_repaired", user_low=str(low), user_high=str(high))
            except (RetryError, DBAPIError, NotFoundError) as exc:
                failed += 1
                log.error(
                    "reconcile_pair_failed",
                    user_low=str(low),
                    user_high=str(high),
                    error=str(exc),
                )

        async with self._session_factory() as session:
            async with session.begin():
                cleared = await self._clear_stale_flags(session)

        report = {
            "pairs_scanned": scanned,
            "pairs_repaired": repaired,
            "pairs_failed": failed,
            "stale_flags_cleared": cleared,
        }
        log.info("reconcile_complete", **report)
        return report

    async def _find_broken_pairs(
        self, session: AsyncSession
    ) -> tuple[int, dict[tuple[uuid.UUID, uuid.UUID], dict[str, Any]]]:
        fwd = aliased(DailyLike)
        rev = aliased(DailyLike)
        stmt = (
            select(
                fwd.user_id,
                fwd.liked_user_id,
                fwd.type,
                fwd.like_date,
                fwd.is_mutual_match,
                fwd.connection_id,
            )
            .join(
                rev,
                and_(
                    rev.user_id == fwd.liked_user_id,
                    rev.liked_user_id == fwd.user_id,
                    rev.type.in_(LIKE_TYPES),
                ),
            )
            .where(fwd.type.in_(LIKE_TYPES))
        )
        rows = (await session.execute(stmt)).all()

        accepted = {
            (low, high)
            for low, high in (
                await session.execute(
                    select(Connection.user_low_id, Connection.user_high_id).where(
                        Connection.status == "accepted"
                    )
                )
            ).all()
        }
        matched = {
            (u, v)
            for u, v in (
                await session.execute(
                    select(Match.user_id, Match.liked_user_id).where(
                        Match.is_match.is_(True)
                    )
                )
            ).all()
        }

        pairs: dict[tuple[uuid.UUID, uuid.UUID], dict[str, Any]] = {}
        for user_id, liked_user_id, like_type, like_date, mutual, conn_id in rows:
            key = sorted_pair(user_id, liked_user_id)
            entry = pairs.setdefault(key, {"healthy": True, "first": None})
            if not mutual or conn_id is None or (user_id, liked_user_id) not in matched:
                entry["healthy"] = False
            like_date = ensure_utc(like_date)
            if entry["first"] is None or like_date < entry["first"][1]:
                entry["first"] = (user_id, like_date, like_type)

        broken = {}
        for key, entry in pairs.items():
            if entry["healthy"] and key in accepted:
                continue
            initiated_by, _, like_type = entry["first"]
            broken[key] = {"initiated_by": initiated_by, "type": like_type}
        return len(pairs), broken

    async def _repair_pair(
        self,
        low: uuid.UUID,
        high: uuid.UUID,
        edge: dict[str, Any],
    ) -> None:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(DBAPIError),
            stop=stop_after_attempt(self._attempts),
            wait=wait_exponential(multiplier=0.2, min=0.2, max=5),
        ):
            with attempt:
                async with self._session_factory() as session:
                    async with session.begin():
                        await session.execute(
                            update(DailyLike)
                            .where(
                                pair_clause(DailyLike, low, high),
                                DailyLike.type.in_(LIKE_TYPES),
                            )
                            .values(is_mutual_match=True)
                            .execution_options(synchronize_session=False)
                        )
                        await self._materializer.materialize(
                            low,
                            high,
                            session,
                            initiated_by=edge["initiated_by"],
                            connection_type=edge["type"],
                        )

    async def _clear_stale_flags(self, session: AsyncSession) -> int:
        rev = aliased(DailyLike)
        reverse_like = exists().where(
            rev.user_id == DailyLike.liked_user_id,
            rev.liked_user_id == DailyLike.user_id,
            rev.type.in_(LIKE_TYPES),
        )
        result = await session.execute(
            update(DailyLike)
            .where(
                DailyLike.is_mutual_match.is_(True),
                or_(DailyLike.type.not_in(LIKE_TYPES), ~reverse_like),
            )
            .values(is_mutual_match=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # ── Clean-ups ─────────────────────────────────────────────────────────

    async def purge_stale_likes(self) -> int:
        """Delete non-mutual edges older than ``LIKE_RETENTION_DAYS``."""
        cutoff = utcnow() - timedelta(days=self._settings.LIKE_RETENTION_DAYS)
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(DailyLike).where(
                        DailyLike.is_mutual_match.is_(False),
                        DailyLike.like_date < cutoff,
                    )
                )
        logger.info("stale_likes_purged", deleted=result.rowcount, cutoff=cutoff.isoformat())
        return result.rowcount

    async def purge_toast_acks(self) -> int:
        """Delete buffered toast acks older than ``TOAST_ACK_RETENTION_HOURS``.

        Acks are folded as soon as their connection is written, so anything
        left past the window belongs to a pair that was never materialized.
        """
        cutoff = utcnow() - timedelta(hours=self._settings.TOAST_ACK_RETENTION_HOURS)
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(ToastAck).where(ToastAck.created_at < cutoff)
                )
        logger.info("toast_acks_purged", deleted=result.rowcount, cutoff=cutoff.isoformat())
        return result.rowcount

    async def clamp_profile_completeness(self) -> int:
        """Force ``profile_completeness`` back into 0–100."""
        async with self._session_factory() as session:
            async with session.begin():
                high = await session.execute(
                    update(User)
                    .where(User.profile_completeness > 100)
                    .values(profile_completeness=100)
                    .execution_options(synchronize_session=False)
                )
                low = await session.execute(
                    update(User)
                    .where(User.profile_completeness < 0)
                    .values(profile_completeness=0)
                    .execution_options(synchronize_session=False)
                )
        fixed = high.rowcount + low.rowcount
        logger.info("profile_completeness_clamped", fixed=fixed)
        return fixed

    async def stats(self) -> dict[str, int]:
        """Row counts used by the maintenance report."""
        async with self._session_factory() as session:
            async def count(stmt) -> int:
                return (await session.scalar(stmt)) or 0

            return {
                "users": await count(select(func.count(User.id))),
                "likes": await count(
                    select(func.count(DailyLike.id)).where(DailyLike.type.in_(LIKE_TYPES))
                ),
                "passes": await count(
                    select(func.count(DailyLike.id)).where(DailyLike.type == "pass")
                ),
                "mutual_edges": await count(
                    select(func.count(DailyLike.id)).where(
                        DailyLike.is_mutual_match.is_(True)
                    )
                ),
                "connections": await count(select(func.count(Connection.id))),
                "matches": await count(select(func.count(Match.id))),
                "pending_toast_acks": await count(select(func.count(ToastAck.id))),
            }
