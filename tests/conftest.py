"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import date, datetime, time
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from streakline.config import get_settings
from streakline.database import close_db, get_engine, init_db
from streakline.db.base import Base
from streakline.main import create_app
from streakline.redis_client import close_redis
from streakline.streaks.calendar import ReferenceCalendar
from streakline.streaks.notifier import StreakNotifier
from streakline.streaks.service import StreakService

REFERENCE_TZ = "America/New_York"


@pytest.fixture
def calendar() -> ReferenceCalendar:
    return ReferenceCalendar(REFERENCE_TZ)


@pytest.fixture
def at() -> Callable[..., datetime]:
    """Build an instant on a calendar day, in the reference timezone."""

    def _at(day: date, hour: int = 12, minute: int = 0) -> datetime:
        return datetime.combine(day, time(hour, minute), tzinfo=ZoneInfo(REFERENCE_TZ))

    return _at


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh SQLite database per test with the streak tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'streaks.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def mock_redis() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def service(session_factory, calendar, mock_redis) -> StreakService:
    return StreakService(session_factory, calendar, StreakNotifier(mock_redis), max_retries=3)


@pytest_asyncio.fixture
async def app(tmp_path, monkeypatch) -> AsyncGenerator[FastAPI, None]:
    """Application over a throwaway SQLite database, notifications disabled."""
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'api.db'}"
    monkeypatch.setenv("STREAK_DATABASE_URL", db_url)
    monkeypatch.setenv("STREAK_REDIS_URL", "")
    monkeypatch.setenv("STREAK_REFERENCE_TIMEZONE", REFERENCE_TZ)
    monkeypatch.setenv("STREAK_LOG_FORMAT", "console")
    get_settings.cache_clear()

    app = create_app()
    await init_db(db_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield app

    await close_db()
    await close_redis()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
