"""Data models for nunuctl.

Provides Pydantic models for API payloads and dataclasses for upload state,
progress tracking and results.
"""

from __future__ import annotations

from .api import (
    CompleteUploadRequest,
    CreateUploadRequest,
    MultipartUploadResponse,
    PartUrlsResponse,
    SinglePartUploadResponse,
    UploadedPart,
    UploadUrlPart,
)
from .base import BaseModel
from .progress import BatchResult, ProgressSnapshot, SessionProgress, SessionResult
from .session import Part, PartState, SessionState, UploadSession, partition
from .target import BuildPlatform, DeletionPolicy, UploadTarget

__all__ = [
    # Base
    "BaseModel",
    # API payloads
    "CreateUploadRequest",
    "SinglePartUploadResponse",
    "MultipartUploadResponse",
    "UploadUrlPart",
    "PartUrlsResponse",
    "UploadedPart",
    "CompleteUploadRequest",
    # Targets
    "BuildPlatform",
    "DeletionPolicy",
    "UploadTarget",
    # Sessions
    "Part",
    "PartState",
    "SessionState",
    "UploadSession",
    "partition",
    # Progress
    "SessionProgress",
    "ProgressSnapshot",
    "SessionResult",
    "BatchResult",
]
