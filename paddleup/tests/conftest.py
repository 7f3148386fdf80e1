"""
Shared pytest configuration for paddleup tests.

Defaults to an in-memory SQLite database (aiosqlite) so the suite runs
without a server. Point TEST_DATABASE_URL at PostgreSQL to run against the
production dialect.

SAFETY: a non-SQLite TEST_DATABASE_URL must name a database containing the
substring "test". Tables are dropped after every test.
"""

import os

# Must be set before paddleup modules are imported: the rate limiter and the
# application engine read them at import time.
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import timedelta  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool, StaticPool  # noqa: E402

from paddleup.database.db import Base  # noqa: E402
from paddleup.database.models import (  # noqa: E402
    User,
    UserRating,
    Tournament,
    League,
    LeagueSeason,
    EventStatus,
)
from paddleup.utils.datetime_utils import utcnow  # noqa: E402


def _resolve_test_database_url() -> str:
    """Resolve the test database URL, refusing non-test server databases."""
    url = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    if url.startswith("sqlite"):
        return url

    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"\n{'=' * 70}\n"
            f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
            f"  The database name must contain 'test' to prevent accidental\n"
            f"  data loss in development or production databases.\n\n"
            f"  Fix: set TEST_DATABASE_URL to a test database, e.g.:\n"
            f"    export TEST_DATABASE_URL=postgresql+asyncpg://.../paddleup_test\n"
            f"{'=' * 70}"
        )
    return url


TEST_DATABASE_URL = _resolve_test_database_url()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Engine with a freshly created schema, dropped after the test."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        # One shared connection so every session sees the same in-memory DB
        engine = create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Session bound to the test engine; expire_on_commit matches the app."""
    session_maker = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------


def user_dict(user: User) -> dict:
    """The shape auth dependencies hand to services."""
    return {
        "id": user.id,
        "clerk_id": user.clerk_id,
        "email": user.email,
        "username": user.username,
        "display_name": user.display_name,
    }


async def make_user(session, username: str, email: str = None, display_name: str = None, **kwargs) -> User:
    user = User(
        clerk_id=kwargs.pop("clerk_id", f"user_{username}"),
        email=email or f"{username}@example.com",
        username=username,
        first_name=kwargs.pop("first_name", username.capitalize()),
        last_name=kwargs.pop("last_name", "Player"),
        display_name=display_name or username.capitalize(),
        **kwargs,
    )
    session.add(user)
    await session.flush()
    return user


async def add_rating(session, user: User, rating: str, game_format: str = "doubles") -> UserRating:
    row = UserRating(
        user_id=user.id, rating_type="dupr", game_format=game_format, rating=Decimal(rating)
    )
    session.add(row)
    await session.flush()
    return row


async def make_tournament(session, organizer: User, **kwargs) -> Tournament:
    starts_at = kwargs.pop("starts_at", utcnow() + timedelta(days=14))
    tournament = Tournament(
        name=kwargs.pop("name", "Spring Classic"),
        slug=kwargs.pop("slug", "spring-classic"),
        organizer_id=organizer.id,
        starts_at=starts_at,
        ends_at=kwargs.pop("ends_at", starts_at + timedelta(days=1)),
        tournament_format=kwargs.pop("tournament_format", "round_robin"),
        game_format=kwargs.pop("game_format", "doubles"),
        status=kwargs.pop("status", EventStatus.REGISTRATION_OPEN.value),
        current_participants=kwargs.pop("current_participants", 0),
        **kwargs,
    )
    session.add(tournament)
    await session.flush()
    return tournament


async def make_league(session, organizer: User, with_season: bool = True, **kwargs) -> League:
    league = League(
        name=kwargs.pop("name", "Tuesday Night League"),
        slug=kwargs.pop("slug", "tuesday-night-league"),
        organizer_id=organizer.id,
        game_format=kwargs.pop("game_format", "doubles"),
        status=kwargs.pop("status", EventStatus.REGISTRATION_OPEN.value),
        **kwargs,
    )
    session.add(league)
    await session.flush()
    if with_season:
        await make_season(session, league)
    return league


async def make_season(session, league: League, season_number: int = 1, **kwargs) -> LeagueSeason:
    starts_at = utcnow() + timedelta(days=7)
    season = LeagueSeason(
        league_id=league.id,
        name=kwargs.pop("name", f"Season {season_number}"),
        season_number=season_number,
        starts_at=starts_at,
        ends_at=starts_at + timedelta(weeks=10),
        status=kwargs.pop("status", EventStatus.REGISTRATION_OPEN.value),
        **kwargs,
    )
    session.add(season)
    await session.flush()
    return season
