"""Input validation helpers for nunuctl."""

from __future__ import annotations

from urllib.parse import urlparse

from nunuctl.core.exceptions import InvalidURLError, ValidationError

MIN_PARALLEL = 1
MAX_PARALLEL = 32
MIN_UPLOAD_TIMEOUT_MINUTES = 1
MAX_UPLOAD_TIMEOUT_MINUTES = 1440


def validate_server_url(url: str) -> str:
    """Validate an API base URL and strip any trailing slash.

    Raises:
        InvalidURLError: If the URL is empty or not http(s).
    """
    if not url or not url.strip():
        raise InvalidURLError(url or "", "URL cannot be empty")

    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise InvalidURLError(url, "scheme must be http or https")
    if not parsed.netloc:
        raise InvalidURLError(url, "missing host")

    return url.rstrip("/")


def validate_parallel(parallel: int) -> int:
    """Validate the number of parallel uploads/parts (1-32)."""
    if not MIN_PARALLEL <= parallel <= MAX_PARALLEL:
        raise ValidationError(
            f"Parallel value must be between {MIN_PARALLEL} and {MAX_PARALLEL}, got {parallel}",
            field="parallel",
            value=parallel,
        )
    return parallel


def validate_upload_timeout(minutes: int | None) -> int | None:
    """Validate the server-side upload timeout in minutes (1-1440)."""
    if minutes is None:
        return None
    if not MIN_UPLOAD_TIMEOUT_MINUTES <= minutes <= MAX_UPLOAD_TIMEOUT_MINUTES:
        raise ValidationError(
            f"Upload timeout must be between {MIN_UPLOAD_TIMEOUT_MINUTES} and "
            f"{MAX_UPLOAD_TIMEOUT_MINUTES} minutes, got {minutes}",
            field="upload_timeout",
            value=minutes,
        )
    return minutes


def validate_required(value: str | None, field: str) -> str:
    """Ensure a credential-like value is present and non-blank."""
    if value is None or not value.strip():
        label = field.replace("_", " ").capitalize()
        raise ValidationError(f"{label} cannot be empty", field=field)
    return value.strip()
