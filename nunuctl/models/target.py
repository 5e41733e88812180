"""Upload targets: the already-resolved files handed to the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from nunuctl.core.exceptions import ValidationError


class BuildPlatform(Enum):
    """Build platforms accepted by the backend."""

    WINDOWS = "windows"
    MACOS = "macos"
    LINUX = "linux"
    ANDROID = "android"
    IOS_NATIVE = "ios-native"
    IOS_SIMULATOR = "ios-simulator"
    XBOX = "xbox"
    PLAYSTATION = "playstation"

    @classmethod
    def from_string(cls, value: str) -> BuildPlatform:
        """Parse a platform name (case-insensitive)."""
        try:
            return cls(value.lower())
        except ValueError:
            valid = ", ".join(p.value for p in cls)
            raise ValidationError(
                f"Invalid platform: '{value}'. Valid platforms are: {valid}",
                field="platform",
                value=value,
            ) from None


class DeletionPolicy(Enum):
    """Which old builds the server evicts when auto-delete frees space."""

    LEAST_RECENT = "least_recent"
    OLDEST = "oldest"

    @classmethod
    def from_string(cls, value: str) -> DeletionPolicy:
        """Parse a policy name; accepts ``least-recent`` as well."""
        normalized = value.lower().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError:
            raise ValidationError(
                f"Invalid deletion policy: '{value}'. Valid policies are: least_recent, oldest",
                field="deletion_policy",
                value=value,
            ) from None


@dataclass(frozen=True)
class UploadTarget:
    """One file to upload, with its size, platform and build name resolved."""

    path: Path
    size: int
    platform: BuildPlatform
    name: str

    @property
    def file_name(self) -> str:
        return self.path.name
