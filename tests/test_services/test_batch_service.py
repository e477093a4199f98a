"""Tests for size partitioning and batch planning."""

from __future__ import annotations

import pytest

from reposnap.services.batch_service import SyncLimits, partition_by_size, plan_batches
from reposnap.services.classifier import ClassifiedFileRef

KB = 1024
MB = 1024 * 1024


def _ref(path: str, size: int) -> ClassifiedFileRef:
    return ClassifiedFileRef(path=path, sha=f"sha-{path}", size=size, is_binary=False)


class TestPartitionBySize:
    def test_threshold_is_exclusive_for_small(self) -> None:
        files = [_ref("below", 3 * MB - 1), _ref("at", 3 * MB), _ref("above", 5 * MB)]
        small, large = partition_by_size(files, 3 * MB)
        assert [f.path for f in small] == ["below"]
        assert [f.path for f in large] == ["at", "above"]

    def test_empty(self) -> None:
        assert partition_by_size([], 3 * MB) == ([], [])


class TestPlanBatches:
    def test_scenario_24_small_files(self) -> None:
        files = [_ref(f"f{i}.txt", 10 * KB) for i in range(24)]
        batches = plan_batches(files, 8 * MB, 10)
        assert [len(b) for b in batches] == [10, 10, 4]

    def test_byte_budget_closes_batch(self) -> None:
        files = [_ref("a", 4 * MB), _ref("b", 3 * MB), _ref("c", 2 * MB)]
        batches = plan_batches(files, 8 * MB, 10)
        assert [[f.path for f in b] for b in batches] == [["c", "b"], ["a"]]

    def test_sorted_smallest_first(self) -> None:
        files = [_ref("big", 300), _ref("tiny", 1), _ref("mid", 20)]
        (batch,) = plan_batches(files, 1000, 10)
        assert [f.path for f in batch] == ["tiny", "mid", "big"]

    def test_exact_fit_stays_in_batch(self) -> None:
        files = [_ref("a", 4), _ref("b", 4)]
        assert len(plan_batches(files, 8, 10)) == 1

    def test_zero_size_files_respect_count_budget(self) -> None:
        files = [_ref(f"empty{i}", 0) for i in range(7)]
        assert [len(b) for b in plan_batches(files, 8, 3)] == [3, 3, 1]

    def test_empty_input(self) -> None:
        assert plan_batches([], 8 * MB, 10) == []

    def test_oversized_file_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="does not fit"):
            plan_batches([_ref("huge", 9 * MB)], 8 * MB, 10)


class TestSyncLimits:
    def test_threshold_above_batch_budget_rejected(self) -> None:
        with pytest.raises(ValueError, match="small_file_threshold"):
            SyncLimits(
                small_file_threshold=9 * MB,
                max_batch_bytes=8 * MB,
                max_files_per_batch=10,
                max_large_file_bytes=50 * MB,
            )

    def test_zero_files_per_batch_rejected(self) -> None:
        with pytest.raises(ValueError, match="max_files_per_batch"):
            SyncLimits(
                small_file_threshold=MB,
                max_batch_bytes=8 * MB,
                max_files_per_batch=0,
                max_large_file_bytes=50 * MB,
            )
