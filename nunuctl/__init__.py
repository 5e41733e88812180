"""nunuctl - A CLI for uploading build artifacts to Nunu.ai.

This package provides a command-line interface and an upload engine for
sending large build artifacts to the Nunu.ai builds API:
- Single-request or multipart uploads chosen by file size
- Concurrent part transfers across several files with bounded parallelism
- Per-part retries with exponential backoff
- Graceful cancellation that aborts unfinished uploads on the server
"""

__version__ = "0.1.0"

from nunuctl.core.client import NunuClient
from nunuctl.core.config import Config, Credentials, Profile
from nunuctl.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    NunuCtlError,
    PlanningError,
    QuotaExceededError,
    ValidationError,
)
from nunuctl.services.uploads import UploadOptions, UploadService

__all__ = [
    "__version__",
    "NunuClient",
    "Config",
    "Credentials",
    "Profile",
    "UploadOptions",
    "UploadService",
    "NunuCtlError",
    "AuthenticationError",
    "ConfigurationError",
    "NetworkError",
    "PlanningError",
    "QuotaExceededError",
    "ValidationError",
]
