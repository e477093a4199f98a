"""Repository, file and pull request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

_NAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


class RepositoryCreate(BaseModel):
    """Request to register a remote repository."""

    owner: str = Field(min_length=1, max_length=100, pattern=_NAME_PATTERN)
    name: str = Field(min_length=1, max_length=100, pattern=_NAME_PATTERN)
    branch: str = Field(default="main", min_length=1, max_length=255)
    token: str | None = Field(default=None, max_length=255)


class RepositoryResponse(BaseModel):
    """A registered repository. The access token is never returned."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    owner: str
    name: str
    branch: str
    last_pulled_commit: str | None = None
    last_pulled_at: datetime | None = None


class RepoFileSummary(BaseModel):
    """Stored file metadata without content."""

    model_config = ConfigDict(from_attributes=True)

    path: str
    size: int
    is_binary: bool
    commit_sha: str
    updated_at: datetime


class RepoFileResponse(RepoFileSummary):
    """Stored file with content; binary content is base64 text."""

    content: str


class PullRequest(BaseModel):
    """Request to pull a snapshot; omit ``commit_sha`` for the branch head."""

    commit_sha: str | None = Field(default=None, pattern=r"^[0-9a-f]{4,40}$")


class FailedFileResponse(BaseModel):
    """A file that did not sync."""

    path: str
    size: int
    error: str


class PullResponse(BaseModel):
    """Result of a snapshot pull."""

    success: bool
    partial_success: bool
    commit_sha: str
    files_fetched: int
    files_updated: int
    small_files_processed: int
    large_files_processed: int
    failed_files: list[FailedFileResponse] = Field(default_factory=list)
