"""Service layer for nunuctl.

Provides service classes that encapsulate the builds API workflows.
"""

from __future__ import annotations

from .base import BaseService
from .uploads import UploadOptions, UploadService

__all__ = [
    "BaseService",
    "UploadOptions",
    "UploadService",
]
