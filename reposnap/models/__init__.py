"""SQLAlchemy ORM models for RepoSnap."""

from reposnap.models.base import Base
from reposnap.models.repo import RepoFile, Repository

__all__ = [
    "Base",
    "RepoFile",
    "Repository",
]
