"""Snapshot pull endpoint."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reposnap.api.deps import (
    Role,
    get_notifier,
    get_session,
    get_session_factory,
    get_settings,
    require_editor,
)
from reposnap.config import Settings
from reposnap.models.repo import Repository
from reposnap.schemas.repo import PullRequest, PullResponse
from reposnap.services.datetime_service import now_utc
from reposnap.services.github_service import GitHubClient
from reposnap.services.notify_service import ChangeNotifier
from reposnap.services.sync_service import SnapshotSynchronizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/repos", tags=["sync"])

# One pull at a time per repository.
_pull_locks: dict[int, asyncio.Lock] = {}


def _lock_for(repo_id: int) -> asyncio.Lock:
    lock = _pull_locks.get(repo_id)
    if lock is None:
        lock = _pull_locks[repo_id] = asyncio.Lock()
    return lock


def get_github_transport(request: Request) -> httpx.AsyncBaseTransport | None:
    """Transport override for GitHub calls (None uses the network)."""
    return getattr(request.app.state, "github_transport", None)


@router.post("/{repo_id}/pull", response_model=PullResponse)
async def pull_repository(
    repo_id: int,
    body: PullRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    settings: Annotated[Settings, Depends(get_settings)],
    notifier: Annotated[ChangeNotifier, Depends(get_notifier)],
    transport: Annotated[httpx.AsyncBaseTransport | None, Depends(get_github_transport)],
    role: Annotated[Role, Depends(require_editor)],
) -> PullResponse:
    """Pull a snapshot of the repository into the file store.

    Pulling an older ``commit_sha`` is how a rollback is performed.
    """
    repo = await session.get(Repository, repo_id)
    if repo is None:
        raise HTTPException(status_code=404, detail="Repository not found")

    token = repo.token or settings.github_token
    logger.info(
        "Pull request: repo=%d %s/%s commit=%s",
        repo_id,
        repo.owner,
        repo.name,
        body.commit_sha or "latest",
    )

    async with _lock_for(repo_id):
        async with GitHubClient(
            repo.owner,
            repo.name,
            token=token,
            api_url=settings.github_api_url,
            user_agent=settings.user_agent,
            timeout=settings.http_timeout_seconds,
            retries=settings.http_retries,
            transport=transport,
        ) as client:
            synchronizer = SnapshotSynchronizer(
                client, session_factory, settings.sync_limits(), notifier
            )
            result = await synchronizer.pull(repo_id, repo.branch, body.commit_sha)

    repo.last_pulled_commit = result.commit_sha
    repo.last_pulled_at = now_utc()
    await session.commit()

    return PullResponse.model_validate(asdict(result))
