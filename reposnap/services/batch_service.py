"""Size-based partitioning and batch planning for snapshot pulls."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reposnap.services.classifier import ClassifiedFileRef

Batch = tuple["ClassifiedFileRef", ...]


@dataclass(frozen=True)
class SyncLimits:
    """Memory budgets for one snapshot pull.

    ``small_file_threshold`` must not exceed ``max_batch_bytes`` so that every
    small file fits into a batch on its own.
    """

    small_file_threshold: int
    max_batch_bytes: int
    max_files_per_batch: int
    max_large_file_bytes: int

    def __post_init__(self) -> None:
        if self.max_files_per_batch < 1:
            msg = "max_files_per_batch must be at least 1"
            raise ValueError(msg)
        if self.small_file_threshold > self.max_batch_bytes:
            msg = "small_file_threshold must not exceed max_batch_bytes"
            raise ValueError(msg)


def partition_by_size(
    files: list[ClassifiedFileRef], threshold: int
) -> tuple[list[ClassifiedFileRef], list[ClassifiedFileRef]]:
    """Split files into (small, large); a file is small when ``size < threshold``."""
    small: list[ClassifiedFileRef] = []
    large: list[ClassifiedFileRef] = []
    for file in files:
        (small if file.size < threshold else large).append(file)
    return small, large


def plan_batches(
    files: list[ClassifiedFileRef],
    max_batch_bytes: int,
    max_files_per_batch: int,
) -> list[Batch]:
    """Greedily pack files into byte- and count-bounded batches.

    Files are visited smallest first and appended to the current batch until
    the next one would overflow either budget, at which point the batch is
    closed.
    """
    batches: list[Batch] = []
    current: list[ClassifiedFileRef] = []
    current_bytes = 0

    for file in sorted(files, key=lambda f: f.size):
        if file.size > max_batch_bytes:
            msg = f"{file.path} ({file.size} bytes) does not fit in a batch of {max_batch_bytes}"
            raise ValueError(msg)
        if current and (
            current_bytes + file.size > max_batch_bytes or len(current) >= max_files_per_batch
        ):
            batches.append(tuple(current))
            current = []
            current_bytes = 0
        current.append(file)
        current_bytes += file.size

    if current:
        batches.append(tuple(current))
    return batches
