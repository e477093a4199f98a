"""Repository registration and stored file endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reposnap.api.deps import Role, get_session, require_editor, require_viewer
from reposnap.models.repo import Repository
from reposnap.schemas.repo import (
    RepoFileResponse,
    RepoFileSummary,
    RepositoryCreate,
    RepositoryResponse,
)
from reposnap.services.file_store import get_file, list_files

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/repos", tags=["repos"])


async def _get_repository(session: AsyncSession, repo_id: int) -> Repository:
    repo = await session.get(Repository, repo_id)
    if repo is None:
        raise HTTPException(status_code=404, detail="Repository not found")
    return repo


@router.post("", response_model=RepositoryResponse, status_code=201)
async def create_repository(
    body: RepositoryCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
    role: Annotated[Role, Depends(require_editor)],
) -> Repository:
    """Register a remote repository for snapshot pulls."""
    repo = Repository(owner=body.owner, name=body.name, branch=body.branch, token=body.token)
    session.add(repo)
    await session.commit()
    await session.refresh(repo)
    logger.info("Registered repository %s/%s (id=%d)", repo.owner, repo.name, repo.id)
    return repo


@router.get("", response_model=list[RepositoryResponse])
async def list_repositories(
    session: Annotated[AsyncSession, Depends(get_session)],
    role: Annotated[Role, Depends(require_viewer)],
) -> list[Repository]:
    """List registered repositories."""
    result = await session.execute(select(Repository).order_by(Repository.id))
    return list(result.scalars().all())


@router.get("/{repo_id}", response_model=RepositoryResponse)
async def get_repository(
    repo_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    role: Annotated[Role, Depends(require_viewer)],
) -> Repository:
    """Get one registered repository."""
    return await _get_repository(session, repo_id)


@router.get("/{repo_id}/files", response_model=list[RepoFileSummary])
async def list_repository_files(
    repo_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    role: Annotated[Role, Depends(require_viewer)],
) -> list[RepoFileSummary]:
    """List synchronized files of a repository without their content."""
    await _get_repository(session, repo_id)
    files = await list_files(session, repo_id)
    return [RepoFileSummary.model_validate(f) for f in files]


@router.get("/{repo_id}/files/{file_path:path}", response_model=RepoFileResponse)
async def get_repository_file(
    repo_id: int,
    file_path: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    role: Annotated[Role, Depends(require_viewer)],
) -> RepoFileResponse:
    """Get one synchronized file with its content."""
    stored = await get_file(session, repo_id, file_path)
    if stored is None:
        raise HTTPException(status_code=404, detail="File not found")
    return RepoFileResponse.model_validate(stored)
