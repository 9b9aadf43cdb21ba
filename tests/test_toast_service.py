"""Tests for ToastTracker — per-user "It's a match!" state."""
import uuid

import pytest
from sqlalchemy import func, select

from mantrana.errors import NotFoundError, PermissionDenied
from mantrana.models.connection import ToastAck, connection_id_for
from mantrana.models.like import DailyLike
from mantrana.services.like_service import LikeRecorder
from mantrana.services.match_service import MatchMaterializer
from mantrana.services.toast_service import ToastTracker, load_connection
from mantrana.utils.clock import utcnow


@pytest.fixture
def tracker():
    return ToastTracker()


@pytest.fixture
async def matched(db, settings, couple):
    """A mutually matched couple and their connection."""
    a, b = couple
    recorder = LikeRecorder(settings=settings)
    await recorder.record_like(a.id, b.id, db)
    result = await recorder.record_like(b.id, a.id, db)
    return a, b, result["connection"]


class TestShouldShow:

    async def test_both_sides_start_unseen(self, db, tracker, matched):
        a, b, connection = matched
        assert await tracker.should_show(connection.id, a.id, db) is True
        assert await tracker.should_show(connection.id, b.id, db) is True

    async def test_sides_are_independent(self, db, tracker, matched):
        """Marking one side seen leaves the other side untouched."""
        a, b, connection = matched
        await tracker.mark_seen(connection.id, a.id, db)

        assert await tracker.should_show(connection.id, a.id, db) is False
        assert await tracker.should_show(connection.id, b.id, db) is True

    async def test_outsider_rejected(self, db, tracker, matched, make_user):
        _, _, connection = matched
        outsider = await make_user()
        with pytest.raises(PermissionDenied):
            await tracker.should_show(connection.id, outsider.id, db)

    async def test_unknown_connection_not_found(self, db, tracker, couple):
        a, _ = couple
        with pytest.raises(NotFoundError):
            await tracker.should_show(uuid.uuid4(), a.id, db)


class TestMarkSeen:

    async def test_idempotent(self, db, tracker, matched):
        a, _, connection = matched
        await tracker.mark_seen(connection.id, a.id, db)
        await tracker.mark_seen(connection.id, a.id, db)

        refreshed = await load_connection(db, connection.id)
        assert refreshed.toast_seen_by(a.id) is True

    async def test_both_sides_marking_sets_both_flags(self, db, tracker, matched):
        """Neither side's mark clears the other's, whatever the order."""
        a, b, connection = matched
        await tracker.mark_seen(connection.id, b.id, db)
        await tracker.mark_seen(connection.id, a.id, db)
        await tracker.mark_seen(connection.id, b.id, db)

        refreshed = await load_connection(db, connection.id)
        assert refreshed.toast_seen_low is True
        assert refreshed.toast_seen_high is True

    async def test_outsider_rejected(self, db, tracker, matched, make_user):
        a, b, connection = matched
        outsider = await make_user()
        with pytest.raises(PermissionDenied):
            await tracker.mark_seen(connection.id, outsider.id, db)

        refreshed = await load_connection(db, connection.id)
        assert refreshed.toast_seen_low is False
        assert refreshed.toast_seen_high is False

    async def test_mark_seen_for_pair(self, db, tracker, matched):
        a, b, connection = matched
        connection_id = await tracker.mark_seen_for_pair(b.id, a.id, db)

        assert connection_id == connection.id
        assert await tracker.should_show(connection.id, b.id, db) is False


@pytest.fixture
async def liked_both_ways(db, couple):
    """Both likes stored, connection not written yet."""
    a, b = couple
    db.add_all([
        DailyLike(user_id=a.id, liked_user_id=b.id, type="like", like_date=utcnow()),
        DailyLike(user_id=b.id, liked_user_id=a.id, type="super_like", like_date=utcnow()),
    ])
    await db.flush()
    return a, b


class TestEarlyAcknowledgement:
    """Acks that arrive before the connection row exists."""

    async def test_ack_is_buffered(self, db, tracker, liked_both_ways):
        a, b = liked_both_ways
        connection_id = await tracker.mark_seen_for_pair(a.id, b.id, db)

        assert await tracker.should_show(connection_id, a.id, db) is False
        assert await tracker.should_show(connection_id, b.id, db) is True
        assert await db.scalar(select(func.count()).select_from(ToastAck)) == 1

    async def test_buffered_ack_survives_materialization(self, db, tracker, liked_both_ways):
        a, b = liked_both_ways
        await tracker.mark_seen_for_pair(a.id, b.id, db)
        await tracker.mark_seen_for_pair(a.id, b.id, db)

        connection = await MatchMaterializer(tracker).materialize(
            a.id, b.id, db, initiated_by=a.id
        )

        assert connection.id == connection_id_for(a.id, b.id)
        assert connection.toast_seen_by(a.id) is True
        assert connection.toast_seen_by(b.id) is False
        assert await db.scalar(select(func.count()).select_from(ToastAck)) == 0

    async def test_outsider_of_pending_pair(self, db, tracker, liked_both_ways, make_user):
        a, b = liked_both_ways
        outsider = await make_user()
        connection_id = connection_id_for(a.id, b.id)

        with pytest.raises(NotFoundError):
            await tracker.should_show(connection_id, outsider.id, db)
        with pytest.raises(NotFoundError):
            await tracker.mark_seen(connection_id, outsider.id, db)
        assert await db.scalar(select(func.count()).select_from(ToastAck)) == 0

    async def test_fold_discards_foreign_acks(self, db, tracker, matched, make_user):
        a, _, connection = matched
        outsider = await make_user()
        db.add(ToastAck(connection_id=connection.id, user_id=outsider.id))
        await db.flush()

        applied = await tracker.fold_acks(connection, db)

        assert applied == 0
        assert await db.scalar(select(func.count()).select_from(ToastAck)) == 0


class TestAckWithoutMatch:
    """Acks for pairs that have not liked each other are refused."""

    async def test_no_likes(self, db, tracker, couple):
        a, b = couple
        with pytest.raises(NotFoundError):
            await tracker.mark_seen_for_pair(a.id, b.id, db)
        assert await db.scalar(select(func.count()).select_from(ToastAck)) == 0

    async def test_one_sided_like(self, db, tracker, settings, couple):
        a, b = couple
        await LikeRecorder(settings=settings).record_like(a.id, b.id, db)
        with pytest.raises(NotFoundError):
            await tracker.mark_seen_for_pair(a.id, b.id, db)

    async def test_random_connection_id(self, db, tracker, couple):
        a, _ = couple
        with pytest.raises(NotFoundError):
            await tracker.mark_seen(uuid.uuid4(), a.id, db)

    async def test_later_match_still_shows_toast(self, db, tracker, settings, couple):
        """A refused early ack leaves no trace on the eventual match."""
        a, b = couple
        with pytest.raises(NotFoundError):
            await tracker.mark_seen_for_pair(a.id, b.id, db)

        recorder = LikeRecorder(settings=settings, toast_tracker=tracker)
        await recorder.record_like(b.id, a.id, db)
        result = await recorder.record_like(a.id, b.id, db)

        assert result["is_mutual_match"] is True
        assert result["should_show_toast"] is True
        assert await tracker.should_show(result["connection"].id, a.id, db) is True
