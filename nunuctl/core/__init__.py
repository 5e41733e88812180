"""Core modules for nunuctl."""

from nunuctl.core.exceptions import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    NunuCtlError,
    PartRetryExhaustedError,
    PlanningError,
    QuotaExceededError,
    RetryExhaustedError,
    SessionStateError,
    UploadCancelledError,
    ValidationError,
)
from nunuctl.core.config import CONFIG_DIR, CONFIG_FILE, Config, Credentials, Profile
from nunuctl.core.client import NunuClient
from nunuctl.core.logging import LogContext, get_logger, log_context, setup_logging
from nunuctl.core.output import (
    OutputFormat,
    console,
    create_transfer_progress,
    print_error,
    print_json,
    print_success,
    print_table,
    print_warning,
)
from nunuctl.core.validation import (
    validate_parallel,
    validate_server_url,
    validate_upload_timeout,
)

__all__ = [
    # Exceptions
    "NunuCtlError",
    "ConfigurationError",
    "ValidationError",
    "PlanningError",
    "NetworkError",
    "RetryExhaustedError",
    "PartRetryExhaustedError",
    "AuthenticationError",
    "ApiError",
    "QuotaExceededError",
    "SessionStateError",
    "UploadCancelledError",
    # Validation
    "validate_server_url",
    "validate_parallel",
    "validate_upload_timeout",
    # Config
    "Config",
    "Credentials",
    "Profile",
    "CONFIG_DIR",
    "CONFIG_FILE",
    # Client
    "NunuClient",
    # Output
    "OutputFormat",
    "print_table",
    "print_json",
    "print_error",
    "print_warning",
    "print_success",
    "create_transfer_progress",
    "console",
    # Logging
    "get_logger",
    "setup_logging",
    "LogContext",
    "log_context",
]
