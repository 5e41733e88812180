"""Shared constants for uploader modules.

These are service-specific defaults. Every value can be overridden through
``PlannerConfig`` or ``RetryPolicy``; confirm the storage backend's real
minimums before lowering them.
"""

from nunuctl.core.timeouts import DEFAULT_ABORT_TIMEOUT_SECONDS, DEFAULT_SHUTDOWN_GRACE_SECONDS

KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB

# =============================================================================
# Planning
# =============================================================================

# Files above this size are uploaded in parts
DEFAULT_MULTIPART_THRESHOLD = 3 * GIB

# S3-compatible storage rejects non-final parts smaller than 5 MiB
DEFAULT_MIN_PART_SIZE = 5 * MIB

# S3-compatible storage allows at most 10,000 parts per upload
DEFAULT_MAX_PARTS = 10_000

# Parts per worker, so the pool stays busy when some parts finish early
DEFAULT_PARTS_PER_WORKER = 4

# Parallel uploads/parts
DEFAULT_PARALLEL = 4

# =============================================================================
# Transfer
# =============================================================================

# Read size for streaming a part; also the progress event granularity
DEFAULT_CHUNK_SIZE = 256 * KIB

# =============================================================================
# Retry
# =============================================================================

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_BASE_SECONDS = 1.0
DEFAULT_BACKOFF_MAX_SECONDS = 30.0

# How often a backoff wait re-checks whether its session is still live
LIVENESS_POLL_SECONDS = 0.05

# =============================================================================
# Progress
# =============================================================================

# At most four snapshots per second reach the presentation layer
DEFAULT_SNAPSHOT_INTERVAL_SECONDS = 0.25

# Sliding window for throughput smoothing
DEFAULT_THROUGHPUT_WINDOW_SECONDS = 3.0

# =============================================================================
# Shutdown
# =============================================================================

DEFAULT_ABORT_TIMEOUT = DEFAULT_ABORT_TIMEOUT_SECONDS
DEFAULT_SHUTDOWN_GRACE = DEFAULT_SHUTDOWN_GRACE_SECONDS

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_USAGE_ERROR = 2

# Signal-driven termination (128 + signal number)
EXIT_INTERRUPTED = 130
EXIT_TERMINATED = 143
