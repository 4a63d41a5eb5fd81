"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from lms_gamification.config import Settings
from lms_gamification.db import models  # noqa: F401
from lms_gamification.db.base import Base
from lms_gamification.gamification.seed import seed_badges
from lms_gamification.gamification.service import GamificationService

# Wednesday; the week window runs Sunday 2026-03-01 .. 2026-03-08
FROZEN_NOW = datetime(2026, 3, 4, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingPublisher:
    """EventPublisher that keeps every event for assertions."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        self.events.append((channel, payload))

    def on(self, channel: str) -> list[dict[str, Any]]:
        return [payload for ch, payload in self.events if ch == channel]


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database per test, schema created from the ORM models."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'gamification.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for setup and assertions."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """Session with the default badge catalog seeded."""
    await seed_badges(db_session)
    return db_session


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(FROZEN_NOW)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest_asyncio.fixture
async def service(session_factory, publisher, settings, clock) -> GamificationService:
    """Service over a seeded catalog with a frozen clock and recording publisher."""
    async with session_factory() as db:
        await seed_badges(db)
    return GamificationService(session_factory, publisher=publisher, settings=settings, clock=clock)
