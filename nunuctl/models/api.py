"""Request and response payloads of the builds upload API."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field

from .base import BaseModel


class CreateUploadRequest(BaseModel):
    """Body of ``POST /upload`` (create-session)."""

    name: str
    description: str | None = None
    file_name: str
    file_size: int = Field(..., ge=0)
    platform: str
    multipart: bool
    auto_delete: bool | None = None
    deletion_policy: str | None = None
    upload_timeout: int | None = Field(None, description="Server-side timeout in minutes")
    details: dict[str, Any] | None = None
    tags: list[str] | None = None
    part_size: int | None = Field(None, description="Requested part size for multipart uploads")


class SinglePartUploadResponse(BaseModel):
    """Create-session response for a single-request upload."""

    build_id: str
    upload_url: str
    object_key: str


class MultipartUploadResponse(BaseModel):
    """Create-session response for a multipart upload."""

    build_id: str
    upload_id: str
    object_key: str
    total_parts: int
    part_size: int


class UploadUrlPart(BaseModel):
    """Presigned URL for one part (1-based part number)."""

    part_number: int
    url: str


class PartUrlsResponse(BaseModel):
    """Response of ``GET /upload/parts``."""

    upload_urls: list[UploadUrlPart] = Field(
        default_factory=list,
        validation_alias=AliasChoices("upload_urls", "presigned_urls"),
    )


class UploadedPart(BaseModel):
    """Manifest entry for a transferred part."""

    part_number: int
    etag: str


class CompleteUploadRequest(BaseModel):
    """Body of ``POST /upload/complete``.

    Single-request uploads only send ``build_id``; multipart uploads also send
    the upload id, object key and the part manifest ordered by part number.
    """

    build_id: str
    upload_id: str | None = None
    object_key: str | None = None
    parts: list[UploadedPart] | None = None
