"""File store: batched upserts and reads of synchronized repository files."""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import defer

from reposnap.exceptions import InternalServerError, PersistenceError
from reposnap.models.repo import RepoFile
from reposnap.services.datetime_service import now_utc

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from reposnap.services.content_service import FetchedFile

logger = logging.getLogger(__name__)


def hash_content(content: str) -> str:
    """Compute SHA-256 hex digest of stored content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _insert_for(session: AsyncSession) -> Any:
    """Pick the dialect-specific INSERT that supports ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite.insert
    if dialect == "postgresql":
        return postgresql.insert
    msg = f"Unsupported database dialect for upserts: {dialect}"
    raise InternalServerError(msg)


async def upsert_files(
    session_factory: async_sessionmaker[AsyncSession],
    repo_id: int,
    files: list[FetchedFile],
) -> int:
    """Upsert fetched files by path in a single transaction.

    Rows whose content, snapshot commit and binary flag are unchanged are left
    alone.  Returns the number of rows inserted or replaced.  Any database
    failure rolls the whole batch back and raises PersistenceError.
    """
    if not files:
        return 0

    rows: list[dict[str, object]] = []
    async with session_factory() as session:
        try:
            existing = await session.execute(
                select(
                    RepoFile.path,
                    RepoFile.content_digest,
                    RepoFile.commit_sha,
                    RepoFile.is_binary,
                ).where(
                    RepoFile.repo_id == repo_id,
                    RepoFile.path.in_([f.path for f in files]),
                )
            )
            current = {
                row.path: (row.content_digest, row.commit_sha, row.is_binary) for row in existing
            }

            now = now_utc()
            for file in files:
                digest = hash_content(file.content)
                if current.get(file.path) == (digest, file.commit_sha, file.is_binary):
                    continue
                rows.append(
                    {
                        "repo_id": repo_id,
                        "path": file.path,
                        "content": file.content,
                        "content_digest": digest,
                        "commit_sha": file.commit_sha,
                        "is_binary": file.is_binary,
                        "size": file.size,
                        "updated_at": now,
                    }
                )

            if rows:
                insert = _insert_for(session)
                stmt = insert(RepoFile).values(rows)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[RepoFile.repo_id, RepoFile.path],
                    set_={
                        "content": stmt.excluded.content,
                        "content_digest": stmt.excluded.content_digest,
                        "commit_sha": stmt.excluded.commit_sha,
                        "is_binary": stmt.excluded.is_binary,
                        "size": stmt.excluded.size,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                await session.execute(stmt)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            msg = f"Database upsert failed for {len(files)} files: {exc}"
            raise PersistenceError(msg) from exc

    logger.debug("Upserted %d of %d files for repo %d", len(rows), len(files), repo_id)
    return len(rows)


async def list_files(session: AsyncSession, repo_id: int) -> list[RepoFile]:
    """Return stored files of a repository ordered by path, without their content."""
    result = await session.execute(
        select(RepoFile)
        .options(defer(RepoFile.content))
        .where(RepoFile.repo_id == repo_id)
        .order_by(RepoFile.path)
    )
    return list(result.scalars().all())


async def get_file(session: AsyncSession, repo_id: int, path: str) -> RepoFile | None:
    """Return one stored file, or None if the path was never synchronized."""
    return await session.get(RepoFile, (repo_id, path))
