"""Exception hierarchy for nunuctl.

Provides typed exceptions for different failure modes with clear error messages.
Each exception exposes a ``kind`` used when reporting per-file upload outcomes.
"""

from __future__ import annotations

from typing import Any


class NunuCtlError(Exception):
    """Base exception for all nunuctl errors."""

    kind = "error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(NunuCtlError):
    """Error in configuration (missing, invalid, or malformed)."""

    kind = "configuration"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ProfileNotFoundError(ConfigurationError):
    """Requested profile does not exist."""

    def __init__(self, profile: str):
        super().__init__(f"Profile not found: {profile}", field="profile", value=profile)
        self.profile = profile


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(NunuCtlError):
    """Input validation failed, locally or as reported by the server (4xx)."""

    kind = "validation"

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        status_code: int | None = None,
    ):
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.field = field
        self.value = value
        self.status_code = status_code


class InvalidURLError(ValidationError):
    """Invalid URL format."""

    def __init__(self, url: str, reason: str = ""):
        msg = f"Invalid URL: {url}"
        if reason:
            msg = f"{msg} - {reason}"
        super().__init__(msg, field="url", value=url)
        self.url = url
        self.reason = reason


class PlanningError(NunuCtlError):
    """A file could not be planned for upload (unreadable or unsizeable)."""

    kind = "planning"

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot plan upload for {path}: {reason}", {"file": path})
        self.path = path
        self.reason = reason


# =============================================================================
# Connection Errors
# =============================================================================


class NetworkError(NunuCtlError):
    """Transient network-level or server-side error; retryable."""

    kind = "network"

    def __init__(self, url: str | None, cause: str | None = None, status_code: int | None = None):
        msg = "Network error"
        if url:
            msg = f"{msg} talking to {url}"
        if cause:
            msg = f"{msg}: {cause}"
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(msg, details)
        self.url = url
        self.cause = cause
        self.status_code = status_code


class RetryExhaustedError(NunuCtlError):
    """All retry attempts of an API request failed."""

    kind = "network"

    def __init__(self, operation: str, attempts: int, last_error: Exception | None = None):
        msg = f"Operation '{operation}' failed after {attempts} attempts"
        if last_error:
            msg = f"{msg}: {last_error}"
        super().__init__(msg)
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class PartRetryExhaustedError(RetryExhaustedError):
    """A part kept failing with retryable errors until the attempt limit."""

    kind = "retry_exhausted"

    def __init__(self, part_number: int, attempts: int, last_error: Exception | None = None):
        super().__init__(f"upload part {part_number}", attempts, last_error)
        self.part_number = part_number


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthenticationError(NunuCtlError):
    """Authentication or authorization failed (401/403); never retried."""

    kind = "auth"

    def __init__(self, url: str | None = None, reason: str = "", status_code: int | None = None):
        msg = "Authentication failed"
        if url:
            msg = f"{msg} for {url}"
        if reason:
            msg = f"{msg}: {reason}"
        details: dict[str, Any] = {"url": url} if url else {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(msg, details)
        self.url = url
        self.reason = reason
        self.status_code = status_code


# =============================================================================
# Upload Errors
# =============================================================================


class ApiError(NunuCtlError):
    """The API answered with a non-retryable error response."""

    kind = "api"

    def __init__(self, operation: str, status_code: int, body: str = ""):
        msg = f"{operation} failed - Status {status_code}"
        if body:
            msg = f"{msg}: {body[:500]}"
        super().__init__(msg, {"operation": operation, "status_code": status_code})
        self.operation = operation
        self.status_code = status_code
        self.body = body


class QuotaExceededError(NunuCtlError):
    """The server refused the build because storage is full."""

    kind = "quota"

    def __init__(self, message: str, status_code: int | None = None):
        details = {"status_code": status_code} if status_code is not None else {}
        super().__init__(f"Storage quota exceeded: {message}", details)
        self.status_code = status_code


class SessionStateError(NunuCtlError):
    """An upload session was asked to make an illegal state transition."""

    kind = "state"

    def __init__(self, session_id: str, current: str, requested: str):
        super().__init__(
            f"Illegal transition {current} -> {requested}",
            {"session": session_id},
        )
        self.current = current
        self.requested = requested


class UploadCancelledError(NunuCtlError):
    """The upload was cancelled by the user or a termination request."""

    kind = "cancelled"

    def __init__(self, reason: str = "cancelled"):
        super().__init__(f"Upload cancelled ({reason})")
        self.reason = reason
