"""
Shaadi Mantrana — "It's a match!" toast tracking.

Each Connection carries one boolean per participant.  ``mark_seen`` flips the
caller's flag with a single UPDATE (no read-modify-write), so two tabs racing
on the same toast both end with the flag set and neither can clear the other
side's flag.

A toast check can arrive after both likes are stored but before the
materializer has committed the Connection.  Acknowledgements for such a
pending pair are parked in ``toast_acks`` and folded into the flags when the
row is created.  A connection id with no mutual likes behind it is unknown.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import and_, case, delete, or_, select, true, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from mantrana.database import upsert
from mantrana.errors import NotFoundError, PermissionDenied
from mantrana.models.connection import Connection, ToastAck, connection_id_for
from mantrana.models.like import LIKE_TYPES, DailyLike

logger = structlog.get_logger("mantrana.toast_service")


async def load_connection(
    db_session: AsyncSession, connection_id: uuid.UUID
) -> Connection | None:
    """Fetch a connection, overwriting any stale copy in the identity map.

    Bulk UPDATE / upsert statements bypass the session, so every read of a
    Connection goes through here.
    """
    stmt = (
        select(Connection)
        .where(Connection.id == connection_id)
        .execution_options(populate_existing=True)
    )
    result = await db_session.execute(stmt)
    return result.scalar_one_or_none()


class ToastTracker:
    """Per-user, per-connection at-most-once notification state."""

    async def mark_seen(
        self,
        connection_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> None:
        """Record that *user_id* has seen the toast for *connection_id*.

        Calling it again is a no-op.  When both likes exist but the
        connection has not been written yet, an acknowledgement row is
        stored instead.

        Raises
        ------
        PermissionDenied
            The connection exists and *user_id* is not one of its users.
        NotFoundError
            No connection and no mutual likes of *user_id* map to
            *connection_id*.
        """
        log = logger.bind(connection_id=str(connection_id), user_id=str(user_id))

        stmt = (
            update(Connection)
            .where(
                Connection.id == connection_id,
                or_(
                    Connection.user_low_id == user_id,
                    Connection.user_high_id == user_id,
                ),
            )
            .values(
                toast_seen_low=case(
                    (Connection.user_low_id == user_id, true()),
                    else_=Connection.toast_seen_low,
                ),
                toast_seen_high=case(
                    (Connection.user_high_id == user_id, true()),
                    else_=Connection.toast_seen_high,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        result = await db_session.execute(stmt)
        if result.rowcount:
            log.info("toast_marked_seen")
            return

        exists = await db_session.scalar(
            select(Connection.id).where(Connection.id == connection_id)
        )
        if exists is not None:
            log.warning("toast_mark_seen_not_participant")
            raise PermissionDenied("You are not part of this connection.")

        if await self._pending_partner(connection_id, user_id, db_session) is None:
            log.info("toast_mark_seen_no_match")
            raise NotFoundError("No mutual match found.", resource="connection")

        await db_session.execute(
            upsert(db_session, ToastAck)
            .values(id=uuid.uuid4(), connection_id=connection_id, user_id=user_id)
            .on_conflict_do_nothing(index_elements=["connection_id", "user_id"])
        )
        log.info("toast_ack_buffered")

    async def should_show(
        self,
        connection_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> bool:
        """Whether *user_id* still has to be shown the toast.

        Raises ``PermissionDenied`` for a user outside the connection and
        ``NotFoundError`` when neither the connection nor a pending mutual
        pair of *user_id* exists.
        """
        connection = await load_connection(db_session, connection_id)
        if connection is None:
            if await self._pending_partner(connection_id, user_id, db_session) is None:
                raise NotFoundError("No mutual match found.", resource="connection")
            acked = await db_session.scalar(
                select(ToastAck.id).where(
                    ToastAck.connection_id == connection_id,
                    ToastAck.user_id == user_id,
                )
            )
            return acked is None

        if not connection.has_participant(user_id):
            raise PermissionDenied("You are not part of this connection.")
        return not connection.toast_seen_by(user_id)

    async def mark_seen_for_pair(
        self,
        user_id: uuid.UUID,
        target_user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> uuid.UUID:
        """Mark the toast seen for the match between two users.

        Returns the connection id the acknowledgement was recorded under.
        Raises ``NotFoundError`` when the two users have not liked each other.
        """
        connection_id = connection_id_for(user_id, target_user_id)
        await self.mark_seen(connection_id, user_id, db_session)
        return connection_id

    async def _pending_partner(
        self,
        connection_id: uuid.UUID,
        user_id: uuid.UUID,
        db_session: AsyncSession,
    ) -> uuid.UUID | None:
        """The user whose mutual likes with *user_id* map to *connection_id*."""
        rev = aliased(DailyLike)
        result = await db_session.execute(
            select(DailyLike.liked_user_id)
            .join(
                rev,
                and_(
                    rev.user_id == DailyLike.liked_user_id,
                    rev.liked_user_id == DailyLike.user_id,
                    rev.type.in_(LIKE_TYPES),
                ),
            )
            .where(DailyLike.user_id == user_id, DailyLike.type.in_(LIKE_TYPES))
        )
        for other_id in result.scalars():
            if connection_id_for(user_id, other_id) == connection_id:
                return other_id
        return None

    async def fold_acks(
        self,
        connection: Connection,
        db_session: AsyncSession,
    ) -> int:
        """Apply buffered acknowledgements to *connection* and drop them."""
        result = await db_session.execute(
            select(ToastAck.user_id).where(ToastAck.connection_id == connection.id)
        )
        acked = set(result.scalars().all())

        applied = 0
        for user_id in acked:
            if connection.has_participant(user_id):
                await self.mark_seen(connection.id, user_id, db_session)
                applied += 1

        if acked:
            await db_session.execute(
                delete(ToastAck).where(ToastAck.connection_id == connection.id)
            )
            logger.info(
                "toast_acks_folded",
                connection_id=str(connection.id),
                applied=applied,
                discarded=len(acked) - applied,
            )
        return applied
