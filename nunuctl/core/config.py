"""Configuration management for nunuctl.

Supports YAML profiles and environment variable overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from nunuctl.core.exceptions import ConfigurationError, ProfileNotFoundError, ValidationError
from nunuctl.core.timeouts import DEFAULT_HTTP_TIMEOUT_SECONDS
from nunuctl.core.validation import validate_required, validate_server_url

# =============================================================================
# Constants
# =============================================================================

CONFIG_DIR = Path.home() / ".config" / "nunuctl"
CONFIG_FILE = CONFIG_DIR / "config.yaml"

DEFAULT_API_URL = "https://nunu.ai/api"
DEFAULT_PARALLEL = 4

# Environment variable names
ENV_TOKEN = "NUNU_API_TOKEN"
ENV_PROJECT_ID = "NUNU_PROJECT_ID"
ENV_API_URL = "NUNU_API_URL"
ENV_PROFILE = "NUNU_PROFILE"
ENV_VERIFY_SSL = "NUNU_VERIFY_SSL"
ENV_TIMEOUT = "NUNU_TIMEOUT"


# =============================================================================
# Credentials
# =============================================================================


@dataclass(frozen=True)
class Credentials:
    """Resolved credentials and endpoint for the builds API."""

    token: str
    project_id: str
    api_url: str = DEFAULT_API_URL

    @classmethod
    def create(
        cls, token: str | None, project_id: str | None, api_url: str | None
    ) -> "Credentials":
        """Validate and build credentials.

        Raises:
            ConfigurationError: If the token or project ID is missing, or the URL is invalid.
        """
        try:
            return cls(
                token=validate_required(token, "api_token"),
                project_id=validate_required(project_id, "project_id"),
                api_url=validate_server_url(api_url or DEFAULT_API_URL),
            )
        except ValidationError as e:
            raise ConfigurationError(e.message, field=e.field) from e

    @property
    def base_upload_url(self) -> str:
        """Base URL of the project's builds endpoints."""
        return f"{self.api_url}/nexus/projects/{self.project_id}/builds"


# =============================================================================
# Profile
# =============================================================================


@dataclass
class Profile:
    """Configuration profile for a Nunu project."""

    api_url: str = DEFAULT_API_URL
    project_id: Optional[str] = None
    api_token: Optional[str] = None
    verify_ssl: bool = True
    timeout: int = DEFAULT_HTTP_TIMEOUT_SECONDS
    parallel: int = DEFAULT_PARALLEL

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (excludes the token)."""
        return {
            "api_url": self.api_url,
            "project_id": self.project_id,
            "verify_ssl": self.verify_ssl,
            "timeout": self.timeout,
            "parallel": self.parallel,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Profile":
        """Create from dictionary."""
        return cls(
            api_url=data.get("api_url", DEFAULT_API_URL),
            project_id=data.get("project_id"),
            api_token=data.get("api_token"),
            verify_ssl=data.get("verify_ssl", True),
            timeout=data.get("timeout", DEFAULT_HTTP_TIMEOUT_SECONDS),
            parallel=data.get("parallel", DEFAULT_PARALLEL),
        )


# =============================================================================
# Config
# =============================================================================


@dataclass
class Config:
    """Application configuration."""

    default_profile: str = "default"
    profiles: dict[str, Profile] = field(default_factory=dict)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load config from file with environment variable overrides.

        Priority (highest to lowest):
        1. Environment variables
        2. Config file
        3. Defaults

        Command-line flags are applied on top by the CLI.

        Args:
            config_path: Optional path to config file.

        Returns:
            Loaded configuration.
        """
        path = config_path or CONFIG_FILE
        config = cls()

        if path.exists():
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}

                config.default_profile = data.get("default_profile", "default")

                for name, pdata in data.get("profiles", {}).items():
                    config.profiles[name] = Profile.from_dict(pdata or {})
            except (OSError, yaml.YAMLError, AttributeError, TypeError) as e:
                raise ConfigurationError(f"Failed to load config: {e}") from e

        if profile := os.getenv(ENV_PROFILE):
            config.default_profile = profile

        # Environment variables override the active profile field by field
        active = config.profiles.setdefault(config.default_profile, Profile())
        if url := os.getenv(ENV_API_URL):
            active.api_url = url
        if project_id := os.getenv(ENV_PROJECT_ID):
            active.project_id = project_id
        if token := os.getenv(ENV_TOKEN):
            active.api_token = token
        if verify := os.getenv(ENV_VERIFY_SSL):
            active.verify_ssl = verify.lower() in ("true", "1", "yes")
        if timeout := os.getenv(ENV_TIMEOUT):
            try:
                active.timeout = int(timeout)
            except ValueError as e:
                raise ConfigurationError(
                    f"{ENV_TIMEOUT} must be an integer", field="timeout", value=timeout
                ) from e

        return config

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save config to file (excludes secrets).

        Args:
            config_path: Optional path to config file.
        """
        path = config_path or CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "default_profile": self.default_profile,
            "profiles": {name: p.to_dict() for name, p in self.profiles.items()},
        }

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def get_profile(self, name: Optional[str] = None) -> Profile:
        """Get profile by name or default.

        Raises:
            ProfileNotFoundError: If profile doesn't exist.
        """
        name = name or self.default_profile
        if name not in self.profiles:
            raise ProfileNotFoundError(name)
        return self.profiles[name]

    def resolve_credentials(
        self,
        profile_name: Optional[str] = None,
        *,
        token: Optional[str] = None,
        project_id: Optional[str] = None,
        api_url: Optional[str] = None,
    ) -> Credentials:
        """Merge explicit values over the selected profile into credentials.

        Raises:
            ConfigurationError: If a required value is missing after merging.
        """
        profile = self.get_profile(profile_name)
        return Credentials.create(
            token=token or profile.api_token,
            project_id=project_id or profile.project_id,
            api_url=api_url or profile.api_url,
        )
