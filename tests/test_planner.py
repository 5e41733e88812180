"""Tests for upload planning and partitioning."""

from __future__ import annotations

from pathlib import Path

import pytest

from nunuctl.core.exceptions import PlanningError, ValidationError
from nunuctl.models.session import SessionState, partition
from nunuctl.models.target import BuildPlatform, UploadTarget
from nunuctl.uploaders.constants import GIB, MIB
from nunuctl.uploaders.planner import PlannerConfig, compute_part_size, plan_upload


def _target(path: Path, size: int | None = None) -> UploadTarget:
    return UploadTarget(
        path=path,
        size=path.stat().st_size if size is None else size,
        platform=BuildPlatform.WINDOWS,
        name="Build",
    )


def _assert_exact_partition(parts, total_size: int) -> None:
    assert [p.index for p in parts] == list(range(len(parts)))
    offset = 0
    for part in parts:
        assert part.offset == offset
        offset += part.length
    assert offset == total_size


# =============================================================================
# Partition
# =============================================================================


class TestPartition:
    """Tests for splitting a byte range into parts."""

    @pytest.mark.parametrize(
        "total_size,part_size",
        [(1, 1), (10, 3), (10, 10), (10, 11), (5 * MIB + 1, MIB), (1000, 7)],
    )
    def test_parts_cover_range_without_gaps(self, total_size, part_size):
        parts = partition(total_size, part_size)

        _assert_exact_partition(parts, total_size)
        assert all(p.length <= part_size for p in parts)
        assert all(p.length == part_size for p in parts[:-1])

    def test_empty_file_has_one_empty_part(self):
        parts = partition(0, 5 * MIB)

        assert len(parts) == 1
        assert parts[0].offset == 0
        assert parts[0].length == 0
        assert parts[0].part_number == 1

    def test_invalid_part_size(self):
        with pytest.raises(ValueError):
            partition(10, 0)


# =============================================================================
# Part Size
# =============================================================================


class TestComputePartSize:
    """Tests for the chunk size rule."""

    def test_targets_parts_per_worker(self):
        config = PlannerConfig(parallel=4, parts_per_worker=4, min_part_size=MIB)
        assert compute_part_size(160 * MIB, config) == 10 * MIB

    def test_raised_to_minimum_part_size(self):
        config = PlannerConfig(parallel=8, min_part_size=5 * MIB)
        assert compute_part_size(20 * MIB, config) == 5 * MIB

    def test_raised_to_respect_max_parts(self):
        config = PlannerConfig(parallel=1, parts_per_worker=1, min_part_size=1, max_parts=10)
        size = compute_part_size(1000, config)
        assert size == 1000

        config = PlannerConfig(parallel=32, parts_per_worker=4, min_part_size=1, max_parts=10)
        size = compute_part_size(1000, config)
        assert size == 100
        assert len(partition(1000, size)) <= 10

    def test_invalid_parallel_rejected(self):
        with pytest.raises(ValidationError):
            PlannerConfig(parallel=33)


# =============================================================================
# Plan Upload
# =============================================================================


class TestPlanUpload:
    """Tests for plan_upload."""

    def test_small_file_single_part(self, make_file):
        path = make_file("game.exe", 1000)

        session = plan_upload(_target(path), PlannerConfig())

        assert session.multipart is False
        assert session.state is SessionState.PENDING
        assert len(session.parts) == 1
        assert session.parts[0].length == 1000

    def test_force_multipart(self, make_file):
        path = make_file("game.exe", 1000)
        config = PlannerConfig(force_multipart=True, min_part_size=100, parallel=2)

        session = plan_upload(_target(path), config)

        assert session.multipart is True
        assert len(session.parts) == 8
        _assert_exact_partition(session.parts, 1000)

    def test_empty_file(self, make_file):
        path = make_file("empty.apk", 0)

        session = plan_upload(_target(path), PlannerConfig())

        assert session.multipart is False
        assert [(p.offset, p.length) for p in session.parts] == [(0, 0)]

    def test_five_gib_file_is_split(self, temp_dir):
        path = temp_dir / "big.exe"
        with open(path, "wb") as f:
            f.truncate(5 * GIB)

        session = plan_upload(_target(path), PlannerConfig(parallel=4))

        assert session.multipart is True
        assert len(session.parts) > 1
        assert session.part_size >= 5 * MIB
        _assert_exact_partition(session.parts, 5 * GIB)

    def test_missing_file_raises_planning_error(self, temp_dir):
        target = UploadTarget(
            path=temp_dir / "gone.exe", size=10, platform=BuildPlatform.WINDOWS, name="Build"
        )

        with pytest.raises(PlanningError) as excinfo:
            plan_upload(target, PlannerConfig())

        assert excinfo.value.kind == "planning"

    def test_size_mismatch_raises_planning_error(self, make_file):
        path = make_file("game.exe", 100)

        with pytest.raises(PlanningError, match="size changed"):
            plan_upload(_target(path, size=50), PlannerConfig())
