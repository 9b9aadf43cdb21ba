"""Tests for ReconciliationService — repairs and clean-ups."""
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import delete, func, select
from sqlalchemy.exc import DBAPIError

from mantrana.models.connection import Connection, ToastAck
from mantrana.models.like import DailyLike
from mantrana.models.match import Match
from mantrana.models.user import User
from mantrana.services.like_service import LikeRecorder
from mantrana.services.match_service import MatchMaterializer
from mantrana.services.reconciliation_service import ReconciliationService
from mantrana.utils.clock import utcnow


class FlakyMaterializer(MatchMaterializer):
    """Fails every attempt for pairs containing one of ``broken_users``."""

    def __init__(self, broken_users):
        super().__init__()
        self.broken_users = set(broken_users)
        self.calls = 0

    async def materialize(self, user_a_id, user_b_id, db_session, **kwargs):
        self.calls += 1
        if {user_a_id, user_b_id} & self.broken_users:
            raise DBAPIError("INSERT INTO connections", {}, Exception("deadlock detected"))
        return await super().materialize(user_a_id, user_b_id, db_session, **kwargs)


@pytest.fixture
def service(session_factory, settings):
    return ReconciliationService(session_factory=session_factory, settings=settings, attempts=2)


def _edge(a, b, type_="like", mutual=False, age_days=0):
    return DailyLike(
        user_id=a.id,
        liked_user_id=b.id,
        type=type_,
        like_date=utcnow() - timedelta(days=age_days),
        is_mutual_match=mutual,
    )


async def _count(db, model, *where):
    return await db.scalar(select(func.count()).select_from(model).where(*where))


class TestReconcile:
    """Mutual like edges drive every derived record."""

    async def test_repairs_unmaterialized_pair(self, db, service, couple):
        a, b = couple
        db.add_all([_edge(a, b, age_days=1), _edge(b, a)])
        await db.commit()

        report = await service.reconcile()

        assert report["pairs_scanned"] == 1
        assert report["pairs_repaired"] == 1
        assert report["pairs_failed"] == 0
        assert await _count(db, DailyLike, DailyLike.is_mutual_match.is_(True)) == 2
        assert await _count(db, Match, Match.is_match.is_(True)) == 2

        connection = await db.scalar(
            select(Connection).execution_options(populate_existing=True)
        )
        assert connection.status == "accepted"
        assert connection.initiated_by == a.id

    async def test_healthy_pair_left_alone(self, db, service, settings, couple):
        a, b = couple
        recorder = LikeRecorder(settings=settings)
        await recorder.record_like(a.id, b.id, db)
        await recorder.record_like(b.id, a.id, db)
        await db.commit()

        report = await service.reconcile()

        assert report["pairs_scanned"] == 1
        assert report["pairs_repaired"] == 0

    async def test_missing_match_row_is_recreated(self, db, service, settings, couple):
        a, b = couple
        recorder = LikeRecorder(settings=settings)
        await recorder.record_like(a.id, b.id, db)
        await recorder.record_like(b.id, a.id, db)
        await db.execute(delete(Match).where(Match.user_id == a.id))
        await db.commit()

        report = await service.reconcile()

        assert report["pairs_repaired"] == 1
        assert await _count(db, Match) == 2

    async def test_stale_flags_cleared(self, db, service, couple, make_user):
        a, b = couple
        c = await make_user(gender="male")
        db.add_all([
            _edge(a, b, mutual=True),
            _edge(c, a, type_="pass", mutual=True),
        ])
        await db.commit()

        report = await service.reconcile()

        assert report["stale_flags_cleared"] == 2
        assert await _count(db, DailyLike, DailyLike.is_mutual_match.is_(True)) == 0

    async def test_failing_pair_does_not_block_others(
        self, db, session_factory, settings, couple, make_user
    ):
        a, b = couple
        c = await make_user(gender="female")
        d = await make_user(gender="male")
        db.add_all([_edge(a, b), _edge(b, a), _edge(c, d), _edge(d, c)])
        await db.commit()

        materializer = FlakyMaterializer(broken_users={a.id})
        service = ReconciliationService(
            session_factory=session_factory,
            settings=settings,
            materializer=materializer,
            attempts=2,
        )
        report = await service.reconcile()

        assert report["pairs_repaired"] == 1
        assert report["pairs_failed"] == 1
        assert materializer.calls == 3
        assert await _count(db, Connection) == 1
        # The failed pair's flags were rolled back with its transaction.
        assert await _count(
            db, DailyLike, DailyLike.user_id.in_([a.id, b.id]), DailyLike.is_mutual_match.is_(True)
        ) == 0


class TestCleanups:

    async def test_purge_stale_likes(self, db, service, couple, make_user):
        a, b = couple
        c = await make_user(gender="male")
        d = await make_user(gender="male")
        db.add_all([
            _edge(a, b, age_days=120),
            _edge(b, a, mutual=True, age_days=120),
            _edge(c, a, type_="pass", age_days=100),
            _edge(d, a, age_days=10),
        ])
        await db.commit()

        deleted = await service.purge_stale_likes()

        assert deleted == 2
        assert await _count(db, DailyLike) == 2

    async def test_purge_toast_acks(self, db, service, couple):
        a, b = couple
        db.add_all([
            ToastAck(
                connection_id=uuid.uuid4(),
                user_id=a.id,
                created_at=utcnow() - timedelta(days=3),
            ),
            ToastAck(connection_id=uuid.uuid4(), user_id=b.id, created_at=utcnow()),
        ])
        await db.commit()

        deleted = await service.purge_toast_acks()

        assert deleted == 1
        remaining = (await db.execute(select(ToastAck.user_id))).scalars().all()
        assert remaining == [b.id]

    async def test_clamp_profile_completeness(self, db, service, make_user):
        over = await make_user()
        under = await make_user()
        ok = await make_user()
        over.profile_completeness = 150
        under.profile_completeness = -5
        ok.profile_completeness = 60
        await db.commit()

        assert await service.clamp_profile_completeness() == 2

        values = (await db.execute(
            select(User.profile_completeness).order_by(User.profile_completeness)
        )).scalars().all()
        assert values == [0, 60, 100]

    async def test_stats(self, db, service, couple):
        a, b = couple
        db.add_all([_edge(a, b), _edge(b, a, type_="pass")])
        await db.commit()

        stats = await service.stats()

        assert stats["users"] == 2
        assert stats["likes"] == 1
        assert stats["passes"] == 1
        assert stats["connections"] == 0
