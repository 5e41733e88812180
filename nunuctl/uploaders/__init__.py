"""Upload orchestration engine for nunuctl.

This package holds the moving parts of a batch upload:
- planner (single request vs. multipart, part layout)
- scheduler (bounded worker pool shared by all files)
- part uploader (one byte range, with retries)
- progress aggregator and cancellation controller

These are internal implementation details. Use `UploadService` from
`nunuctl.services.uploads` as the public API.
"""

from nunuctl.uploaders.cancellation import (
    CancellationController,
    CancellationToken,
)
from nunuctl.uploaders.common import (
    RetryPolicy,
    build_targets,
    collect_build_files,
    generate_build_name,
    infer_platform,
    upload_with_retry,
)
from nunuctl.uploaders.constants import (
    DEFAULT_MAX_PARTS,
    DEFAULT_MIN_PART_SIZE,
    DEFAULT_MULTIPART_THRESHOLD,
    DEFAULT_PARALLEL,
)
from nunuctl.uploaders.part_uploader import PartUploader
from nunuctl.uploaders.planner import PlannerConfig, compute_part_size, plan_upload
from nunuctl.uploaders.progress import ProgressAggregator
from nunuctl.uploaders.scheduler import UploadScheduler

__all__ = [
    # Constants
    "DEFAULT_MAX_PARTS",
    "DEFAULT_MIN_PART_SIZE",
    "DEFAULT_MULTIPART_THRESHOLD",
    "DEFAULT_PARALLEL",
    # Target resolution
    "build_targets",
    "collect_build_files",
    "generate_build_name",
    "infer_platform",
    # Retry
    "RetryPolicy",
    "upload_with_retry",
    # Engine
    "CancellationController",
    "CancellationToken",
    "PartUploader",
    "PlannerConfig",
    "ProgressAggregator",
    "UploadScheduler",
    "compute_part_size",
    "plan_upload",
]
