"""Base service with common functionality for nunuctl services."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nunuctl.core.client import NunuClient


class BaseService:
    """Base service class holding the API client."""

    def __init__(self, client: "NunuClient") -> None:
        """Initialize service with an API client.

        Args:
            client: NunuClient bound to one project's credentials
        """
        self.client = client

    @property
    def project_id(self) -> str:
        return self.client.credentials.project_id
