"""Shared test fixtures for RepoSnap."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from reposnap.config import Settings
from reposnap.main import create_app
from reposnap.models.base import Base
from reposnap.models.repo import Repository
from reposnap.services.batch_service import SyncLimits
from tests.github_fake import API_URL, FakeGitHub

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    import httpx

logger = logging.getLogger(__name__)

EDITOR_TOKEN = "editor-token-for-tests"
VIEWER_TOKEN = "viewer-token-for-tests"


@asynccontextmanager
async def create_test_client(
    settings: Settings,
    github_transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    Manually performs the work of the application lifespan (DB schema,
    notifier) because ASGITransport does not trigger it.
    """
    from reposnap.database import create_engine as create_db_engine
    from reposnap.services.notify_service import ChangeNotifier

    app = create_app(settings)

    engine, session_factory = create_db_engine(settings)
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.notifier = ChangeNotifier()
    app.state.github_transport = github_transport

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    await engine.dispose()


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings with a temporary database."""
    db_path = tmp_path / "test.db"
    return Settings(
        _env_file=None,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        github_api_url=API_URL,
        github_token="ghp_default",
        access_tokens={EDITOR_TOKEN: "editor", VIEWER_TOKEN: "viewer"},
    )


@pytest.fixture
def limits() -> SyncLimits:
    """Small budgets so scenarios stay cheap."""
    return SyncLimits(
        small_file_threshold=3 * 1024 * 1024,
        max_batch_bytes=8 * 1024 * 1024,
        max_files_per_batch=10,
        max_large_file_bytes=50 * 1024 * 1024,
    )


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the schema in place."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def repo_id(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """Register the fake remote repository and return its id."""
    async with session_factory() as session:
        repo = Repository(owner="acme", name="widgets")
        session.add(repo)
        await session.commit()
        return repo.id
