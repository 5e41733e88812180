"""Common utilities for uploader modules."""

from __future__ import annotations

import glob
import logging
import random
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, TypeVar

from nunuctl.core.exceptions import (
    NetworkError,
    PlanningError,
    RetryExhaustedError,
    UploadCancelledError,
    ValidationError,
)
from nunuctl.models.target import BuildPlatform, UploadTarget
from nunuctl.uploaders.cancellation import CancellationToken
from nunuctl.uploaders.constants import (
    DEFAULT_BACKOFF_BASE_SECONDS,
    DEFAULT_BACKOFF_MAX_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    LIVENESS_POLL_SECONDS,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Extension -> platform; archives and .app bundles are ambiguous
PLATFORM_EXTENSIONS = {
    ".exe": BuildPlatform.WINDOWS,
    ".msi": BuildPlatform.WINDOWS,
    ".dmg": BuildPlatform.MACOS,
    ".pkg": BuildPlatform.MACOS,
    ".ipa": BuildPlatform.IOS_NATIVE,
    ".apk": BuildPlatform.ANDROID,
    ".deb": BuildPlatform.LINUX,
    ".rpm": BuildPlatform.LINUX,
    ".appimage": BuildPlatform.LINUX,
}
ARCHIVE_EXTENSIONS = {".zip", ".tar", ".gz", ".7z", ".tgz", ".bz2"}


# =============================================================================
# Target Resolution
# =============================================================================


def collect_build_files(patterns: Sequence[str]) -> list[Path]:
    """Expand file arguments and glob patterns into a list of files.

    Patterns are expanded recursively (``**`` supported). Directories are
    skipped and duplicates removed while keeping first-seen order.

    Raises:
        ValueError: If a pattern matches no file.
    """
    files: list[Path] = []
    seen: set[Path] = set()

    for pattern in patterns:
        if glob.has_magic(pattern):
            matches = sorted(glob.glob(pattern, recursive=True))
        else:
            matches = [pattern]
        matched = [Path(m) for m in matches if Path(m).is_file()]
        if not matched:
            raise ValueError(f"No files matched: {pattern}")
        for path in matched:
            key = path.resolve()
            if key not in seen:
                seen.add(key)
                files.append(path)

    return files


def infer_platform(path: Path) -> BuildPlatform:
    """Infer the build platform from a file extension.

    Raises:
        ValidationError: If the extension is ambiguous or unknown.
    """
    suffix = path.suffix.lower()
    if suffix in PLATFORM_EXTENSIONS:
        return PLATFORM_EXTENSIONS[suffix]
    if suffix == ".app":
        reason = "Cannot infer platform for .app files (macos or ios-simulator)"
    elif suffix in ARCHIVE_EXTENSIONS:
        reason = f"Cannot infer platform for archive files ({suffix})"
    else:
        reason = f"Cannot infer platform from file extension '{suffix}'"
    raise ValidationError(
        f"{reason}. Please specify --platform explicitly", field="platform", value=str(path)
    )


def generate_build_name(template: str, path: Path, file_count: int) -> str:
    """Build name for one file: the template alone, or "template - filename" in batches."""
    if file_count == 1:
        return template
    return f"{template} - {path.name}"


def build_targets(
    files: Sequence[Path],
    name_template: str,
    platform: Optional[BuildPlatform] = None,
) -> list[UploadTarget]:
    """Resolve files into upload targets (size, platform, build name).

    Raises:
        PlanningError: If a file cannot be sized.
        ValidationError: If a platform cannot be inferred.
    """
    targets = []
    for path in files:
        try:
            size = path.stat().st_size
        except OSError as e:
            raise PlanningError(str(path), e.strerror or str(e)) from e
        targets.append(
            UploadTarget(
                path=path,
                size=size,
                platform=platform or infer_platform(path),
                name=generate_build_name(name_template, path, len(files)),
            )
        )
    return targets


# =============================================================================
# Retry
# =============================================================================


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff with full jitter."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BACKOFF_BASE_SECONDS
    max_delay: float = DEFAULT_BACKOFF_MAX_SECONDS
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def delay_for(self, attempt: int, rng: Optional[random.Random] = None) -> float:
        """Backoff before the attempt following ``attempt`` (1-based)."""
        ceiling = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        if not self.jitter:
            return ceiling
        return (rng or random).uniform(0, ceiling)


def upload_with_retry(
    upload_fn: Callable[[int], T],
    *,
    policy: RetryPolicy,
    token: CancellationToken,
    label: str = "upload",
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    should_continue: Optional[Callable[[], bool]] = None,
) -> T:
    """Run ``upload_fn(attempt)`` until it succeeds or retries are exhausted.

    Only ``NetworkError`` is retried; any other exception propagates at once.
    The backoff sleep waits on the cancellation token, and no new attempt
    starts once the token is cancelled or ``should_continue`` returns False.

    Args:
        upload_fn: Callable performing one attempt; called with the 1-based
            attempt number. Must be safe to call again after a failure.
        policy: Attempt limit and backoff parameters.
        token: Cancellation token checked between attempts.
        label: Label for log messages.
        on_retry: Called with (attempt, error) after a retryable failure
            that will be retried.
        should_continue: Liveness check run before every attempt, e.g. whether
            the owning session can still succeed.

    Raises:
        RetryExhaustedError: After ``policy.max_attempts`` retryable failures.
        UploadCancelledError: If cancelled, or no longer wanted, between attempts.
    """
    last_error: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        if token.is_cancelled:
            raise UploadCancelledError(token.reason or "cancelled")
        if should_continue is not None and not should_continue():
            logger.debug("%s: stopping before attempt %d", label, attempt)
            raise UploadCancelledError("session ended")
        try:
            return upload_fn(attempt)
        except NetworkError as e:
            last_error = e
            if attempt == policy.max_attempts:
                break
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s: %s on attempt %d/%d, retrying in %.1fs",
                label,
                e.cause or e,
                attempt,
                policy.max_attempts,
                delay,
            )
            if on_retry:
                on_retry(attempt, e)
            if _backoff(token, delay, should_continue):
                raise UploadCancelledError(token.reason or "cancelled") from e

    raise RetryExhaustedError(label, policy.max_attempts, last_error)


def _backoff(
    token: CancellationToken, delay: float, should_continue: Optional[Callable[[], bool]]
) -> bool:
    """Wait up to ``delay`` seconds; returns True if the token was cancelled.

    Returns early once ``should_continue`` reports the work is no longer wanted.
    """
    if should_continue is None:
        return token.wait(delay)
    deadline = time.monotonic() + delay
    while should_continue():
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        if token.wait(min(remaining, LIVENESS_POLL_SECONDS)):
            return True
    return token.is_cancelled
