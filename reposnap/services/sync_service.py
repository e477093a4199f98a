"""Sync service: two-phase, size-aware snapshot pull into the file store."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from reposnap.exceptions import ExtractionError, PersistenceError, SyncError, TransportError
from reposnap.services.batch_service import partition_by_size, plan_batches
from reposnap.services.classifier import classify
from reposnap.services.content_service import fetch_content
from reposnap.services.file_store import upsert_files
from reposnap.services.github_service import list_snapshot_files
from reposnap.services.notify_service import SnapshotEvent

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from reposnap.services.batch_service import SyncLimits
    from reposnap.services.classifier import ClassifiedFileRef
    from reposnap.services.content_service import FetchedFile
    from reposnap.services.github_service import GitHubClient
    from reposnap.services.notify_service import ChangeNotifier

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


class SyncPhase(StrEnum):
    """Stage of a snapshot pull."""

    RESOLVING = "resolving"
    LISTING = "listing"
    PARTITIONING = "partitioning"
    PHASE1_BATCHING = "phase1_batching"
    PHASE2_LARGE_FILES = "phase2_large_files"
    FINALIZING = "finalizing"
    DONE = "done"


@dataclass(frozen=True)
class FailedFileRecord:
    """A path that did not make it into the file store, and why."""

    path: str
    size: int
    error: str


class FailureTracker:
    """Append-only record of per-file failures for one run."""

    def __init__(self) -> None:
        self._failures: list[FailedFileRecord] = []

    def record(self, path: str, size: int, error: str) -> None:
        self._failures.append(FailedFileRecord(path=path, size=size, error=error))

    @property
    def failures(self) -> tuple[FailedFileRecord, ...]:
        return tuple(self._failures)

    def __len__(self) -> int:
        return len(self._failures)


@dataclass
class SyncResult:
    """Outcome of one snapshot pull.

    ``files_fetched`` counts files that were fetched and persisted;
    ``files_updated`` counts those whose stored row actually changed.
    """

    success: bool
    partial_success: bool
    commit_sha: str
    files_fetched: int = 0
    files_updated: int = 0
    small_files_processed: int = 0
    large_files_processed: int = 0
    failed_files: list[FailedFileRecord] = field(default_factory=list)


class SnapshotSynchronizer:
    """Pulls one repository snapshot into the file store.

    Small files are fetched concurrently in size-bounded batches, each batch
    written before the next starts.  Large files are fetched and written one
    at a time.  Only failures while resolving or listing the tree are raised;
    per-file and per-batch failures end up in ``SyncResult.failed_files``.
    """

    def __init__(
        self,
        client: GitHubClient,
        session_factory: async_sessionmaker[AsyncSession],
        limits: SyncLimits,
        notifier: ChangeNotifier | None = None,
    ) -> None:
        self.client = client
        self.session_factory = session_factory
        self.limits = limits
        self.notifier = notifier
        self.phase = SyncPhase.RESOLVING

    def _enter(self, phase: SyncPhase) -> None:
        self.phase = phase
        logger.debug("Snapshot pull of %s entering %s", self.client.full_name, phase)

    async def pull(
        self,
        repo_id: int,
        branch: str,
        commit_sha: str | None = None,
    ) -> SyncResult:
        """Pull the snapshot at ``commit_sha`` (branch head if None) for ``repo_id``.

        Raises ResolutionError or TransportError when the tree cannot be
        listed; nothing is written in that case.
        """
        tracker = FailureTracker()
        self._enter(SyncPhase.RESOLVING)
        try:
            if commit_sha is None:
                commit_sha = await self.client.resolve_commit(branch)
            self._enter(SyncPhase.LISTING)
            commit_sha, refs = await list_snapshot_files(self.client, branch, commit_sha)
        except SyncError as exc:
            logger.error("Cannot list %s@%s: %s", self.client.full_name, branch, exc)
            raise

        self._enter(SyncPhase.PARTITIONING)
        small, large = partition_by_size(classify(refs), self.limits.small_file_threshold)
        logger.info(
            "Pulling %s at %s: %d small files, %d large files",
            self.client.full_name,
            commit_sha,
            len(small),
            len(large),
        )

        self._enter(SyncPhase.PHASE1_BATCHING)
        fetched_small, updated_small = await self._pull_small_files(
            repo_id, commit_sha, small, tracker
        )

        self._enter(SyncPhase.PHASE2_LARGE_FILES)
        fetched_large, updated_large = await self._pull_large_files(
            repo_id, commit_sha, large, tracker
        )

        self._enter(SyncPhase.FINALIZING)
        files_fetched = fetched_small + fetched_large
        success = len(tracker) == 0
        result = SyncResult(
            success=success,
            partial_success=not success and files_fetched > 0,
            commit_sha=commit_sha,
            files_fetched=files_fetched,
            files_updated=updated_small + updated_large,
            small_files_processed=len(small),
            large_files_processed=len(large),
            failed_files=list(tracker.failures),
        )
        logger.info(
            "Pulled %d files, updated %d, %d failed",
            result.files_fetched,
            result.files_updated,
            len(result.failed_files),
        )
        if self.notifier is not None:
            await self.notifier.publish(SnapshotEvent(repo_id=repo_id, commit_sha=commit_sha))

        self._enter(SyncPhase.DONE)
        return result

    async def _pull_small_files(
        self,
        repo_id: int,
        commit_sha: str,
        files: list[ClassifiedFileRef],
        tracker: FailureTracker,
    ) -> tuple[int, int]:
        batches = plan_batches(
            files, self.limits.max_batch_bytes, self.limits.max_files_per_batch
        )
        logger.info("Created %d size-based batches", len(batches))

        total_fetched = 0
        total_updated = 0
        for index, batch in enumerate(batches, start=1):
            batch_bytes = sum(ref.size for ref in batch)
            logger.info(
                "Processing batch %d/%d: %d files, %.2f MB",
                index,
                len(batches),
                len(batch),
                batch_bytes / _MB,
            )
            results = await asyncio.gather(
                *(self._fetch(ref, commit_sha, tracker) for ref in batch)
            )
            fetched = [f for f in results if f is not None]
            del results
            written, updated = await self._persist(repo_id, fetched, tracker)
            total_fetched += written
            total_updated += updated
        return total_fetched, total_updated

    async def _pull_large_files(
        self,
        repo_id: int,
        commit_sha: str,
        files: list[ClassifiedFileRef],
        tracker: FailureTracker,
    ) -> tuple[int, int]:
        limit = self.limits.max_large_file_bytes
        total_fetched = 0
        total_updated = 0
        for ref in files:
            if ref.size > limit:
                logger.warning(
                    "Skipping %s (%.1f MB > %.0f MB)", ref.path, ref.size / _MB, limit / _MB
                )
                tracker.record(
                    ref.path,
                    ref.size,
                    f"File too large ({ref.size / _MB:.1f}MB). "
                    f"Maximum supported size is {limit / _MB:.0f}MB.",
                )
                continue
            logger.info("Processing large file %s (%.2f MB)", ref.path, ref.size / _MB)
            fetched = await self._fetch(ref, commit_sha, tracker)
            if fetched is None:
                continue
            written, updated = await self._persist(repo_id, [fetched], tracker)
            del fetched
            total_fetched += written
            total_updated += updated
        return total_fetched, total_updated

    async def _fetch(
        self, ref: ClassifiedFileRef, commit_sha: str, tracker: FailureTracker
    ) -> FetchedFile | None:
        try:
            return await fetch_content(self.client, ref, commit_sha)
        except (TransportError, ExtractionError) as exc:
            logger.warning("Failed to fetch %s: %s", ref.path, exc)
            tracker.record(ref.path, ref.size, f"{type(exc).__name__}: {exc}")
            return None

    async def _persist(
        self, repo_id: int, files: list[FetchedFile], tracker: FailureTracker
    ) -> tuple[int, int]:
        """Write fetched files; returns (files written, rows changed)."""
        if not files:
            return 0, 0
        try:
            updated = await upsert_files(self.session_factory, repo_id, files)
        except PersistenceError as exc:
            logger.error("Failed to upsert %d files: %s", len(files), exc)
            for file in files:
                tracker.record(file.path, file.size, f"{type(exc).__name__}: {exc}")
            return 0, 0
        return len(files), updated
