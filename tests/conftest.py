"""
Pytest configuration for the gacha log service.

Provides fixtures for:
- An in-memory database per test
- A fake upstream record service behind ``httpx.MockTransport``
- Service instances wired to both
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel.ext.asyncio.session import AsyncSession

from gachalog.core.config import settings
from gachalog.core.db import create_tables
from gachalog.schemas.gacha_log import SourceDescriptor
from gachalog.services.gacha_log import GachaLogService
from gachalog.services.leaderboard import LeaderboardService
from gachalog.services.record_store import RecordStore
from tests.factories import FakeRecordService


@pytest.fixture(autouse=True)
def no_page_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "page_delay_seconds", 0)


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
def store(session: AsyncSession) -> RecordStore:
    return RecordStore(session)


@pytest.fixture
def record_service() -> FakeRecordService:
    return FakeRecordService()


@pytest.fixture
async def http_client(record_service: FakeRecordService) -> AsyncGenerator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(record_service.handler)) as client:
        yield client


@pytest.fixture
def source() -> SourceDescriptor:
    return SourceDescriptor(
        api_base="https://ef-webview.gryphline.com", token="t0k3n", server_id="2", lang="zh-tw"
    )


@pytest.fixture
def gacha_log_service(session: AsyncSession, http_client: httpx.AsyncClient) -> GachaLogService:
    return GachaLogService(session, http_client)


@pytest.fixture
def leaderboard_service(
    session: AsyncSession, http_client: httpx.AsyncClient
) -> LeaderboardService:
    return LeaderboardService(session, http_client)
