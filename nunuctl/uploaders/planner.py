"""Upload planning: single request vs. multipart, and the part layout."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from nunuctl.core.exceptions import PlanningError
from nunuctl.core.validation import validate_parallel
from nunuctl.models.session import UploadSession, partition
from nunuctl.models.target import UploadTarget
from nunuctl.uploaders.constants import (
    DEFAULT_MAX_PARTS,
    DEFAULT_MIN_PART_SIZE,
    DEFAULT_MULTIPART_THRESHOLD,
    DEFAULT_PARALLEL,
    DEFAULT_PARTS_PER_WORKER,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannerConfig:
    """Tunables for splitting files into parts."""

    multipart_threshold: int = DEFAULT_MULTIPART_THRESHOLD
    force_multipart: bool = False
    parallel: int = DEFAULT_PARALLEL
    min_part_size: int = DEFAULT_MIN_PART_SIZE
    max_parts: int = DEFAULT_MAX_PARTS
    parts_per_worker: int = DEFAULT_PARTS_PER_WORKER

    def __post_init__(self) -> None:
        validate_parallel(self.parallel)
        if self.multipart_threshold < 0:
            raise ValueError("multipart_threshold must not be negative")
        if self.min_part_size < 1 or self.max_parts < 1 or self.parts_per_worker < 1:
            raise ValueError("min_part_size, max_parts and parts_per_worker must be positive")


def compute_part_size(total_size: int, config: PlannerConfig) -> int:
    """Chunk size for a multipart upload of ``total_size`` bytes.

    Aims for ``parallel * parts_per_worker`` parts, never below the minimum
    part size and never producing more than ``max_parts`` parts.
    """
    if total_size <= 0:
        return config.min_part_size
    target_parts = config.parallel * config.parts_per_worker
    size = math.ceil(total_size / target_parts)
    size = max(size, config.min_part_size)
    size = max(size, math.ceil(total_size / config.max_parts))
    return size


def plan_upload(target: UploadTarget, config: PlannerConfig) -> UploadSession:
    """Create a pending session for ``target``.

    Raises:
        PlanningError: If the file cannot be stat'ed or its size changed
            since the target was resolved.
    """
    try:
        actual_size = target.path.stat().st_size
    except OSError as e:
        raise PlanningError(str(target.path), e.strerror or str(e)) from e

    if actual_size != target.size:
        raise PlanningError(
            str(target.path),
            f"file size changed from {target.size} to {actual_size} bytes",
        )

    multipart = config.force_multipart or actual_size > config.multipart_threshold
    if multipart:
        part_size = compute_part_size(actual_size, config)
    else:
        part_size = max(actual_size, 1)

    session = UploadSession(
        target=target,
        parts=partition(actual_size, part_size),
        multipart=multipart,
    )
    logger.debug(
        "Planned %s: %d bytes, %s, %d part(s) of %d bytes",
        target.file_name,
        actual_size,
        "multipart" if multipart else "single request",
        len(session.parts),
        part_size,
    )
    return session
