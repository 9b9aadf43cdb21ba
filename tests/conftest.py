"""Shared pytest fixtures for Shaadi Mantrana tests.

Service tests run against a fresh in-memory SQLite database per test.
"""
import os
import uuid
from datetime import date

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Must be set before anything calls get_settings().
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from mantrana.config import Settings  # noqa: E402
from mantrana.database import Base  # noqa: E402
import mantrana.models  # noqa: E402,F401
from mantrana.models.user import User  # noqa: E402


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite+aiosqlite://",
        DAILY_LIKE_LIMIT=5,
        LIKE_RETENTION_DAYS=90,
        INVITATION_TTL_DAYS=30,
        INVITATION_MAX_ATTEMPTS=3,
        APPROVED_DOMAINS="shaadimantrana.in",
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def profile_doc():
    """A fully filled-in profile document."""
    return {
        "name": "Priya Sharma",
        "age": 27,
        "profession": "Software Engineer",
        "location": "Bengaluru",
        "education": "B.Tech",
        "about": "Weekend trekker.",
        "interests": ["trekking", "music", "cooking"],
        "images": {"kind": "single", "url": "https://img.shaadimantrana.in/p.jpg"},
        "preferences": {"age_range": {"min": 21, "max": 40}},
    }


@pytest.fixture
def make_user(db):
    """Factory inserting an active, approved user."""

    async def _make(
        gender: str = "female",
        profile: dict | None = None,
        status: str = "active",
        is_approved: bool = True,
        birth_date: date | None = None,
    ) -> User:
        user = User(
            id=uuid.uuid4(),
            email=f"{uuid.uuid4().hex[:10]}@gmail.com",
            gender=gender,
            status=status,
            is_approved=is_approved,
            birth_date=birth_date,
            profile=profile or {"name": "Test", "interests": []},
            profile_completeness=0,
        )
        db.add(user)
        await db.flush()
        return user

    return _make


@pytest.fixture
async def couple(make_user):
    """A woman and a man, both discoverable."""
    a = await make_user(gender="female", profile={"name": "Asha", "age": 27, "interests": ["music"]})
    b = await make_user(gender="male", profile={"name": "Bharat", "age": 29, "interests": ["music"]})
    return a, b
