"""Pytest configuration and fixtures for nunuctl tests."""

from __future__ import annotations

import json
import math
import tempfile
import threading
import time
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generator, Optional

import httpx
import pytest

from nunuctl.core.client import NunuClient
from nunuctl.core.config import Credentials

API_URL = "https://api.test"
PROJECT_ID = "proj-1"
TOKEN = "secret-token"
STORAGE_HOST = "storage.test"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(token=TOKEN, project_id=PROJECT_ID, api_url=API_URL)


@pytest.fixture
def sample_config_yaml() -> str:
    """Sample config YAML content."""
    return """
default_profile: test

profiles:
  test:
    api_url: https://api.test
    project_id: proj-1
    verify_ssl: false
    timeout: 30
    parallel: 8

  production:
    api_url: https://nunu.ai/api
    project_id: proj-prod
"""


def write_file(path: Path, size: int) -> Path:
    """Write ``size`` bytes of a repeating pattern to ``path``."""
    pattern = bytes(range(256))
    path.write_bytes((pattern * (size // 256 + 1))[:size])
    return path


# =============================================================================
# Fake Builds API
# =============================================================================


class FakeNunuServer:
    """In-memory stand-in for the builds API and its presigned storage.

    Args:
        part_size: Part size the server imposes on multipart uploads
            (defaults to the size the client asks for).
        put_failures: Status codes returned for successive PUT attempts of a
            part, keyed by (file_name, part_number), before it succeeds.
        create_status: Status/body returned by create-session, keyed by file name.
        put_delay: Seconds each PUT takes, to make transfers overlap.
        on_put: Called with (file_name, part_number) for every PUT.
        part_url_failures: Status codes returned for successive part URL
            requests before they succeed.
    """

    def __init__(
        self,
        *,
        part_size: Optional[int] = None,
        put_failures: Optional[dict[tuple[str, int], list[int]]] = None,
        create_status: Optional[dict[str, tuple[int, str]]] = None,
        put_delay: float = 0.0,
        on_put: Optional[Callable[[str, int], None]] = None,
        part_url_failures: Optional[list[int]] = None,
    ) -> None:
        self.part_size = part_size
        self.put_failures = put_failures or {}
        self.create_status = create_status or {}
        self.put_delay = put_delay
        self.on_put = on_put
        self.part_url_failures = part_url_failures or []

        self.lock = threading.Lock()
        self.builds: dict[str, dict[str, Any]] = {}
        self.created: list[dict[str, Any]] = []
        self.completed: list[dict[str, Any]] = []
        self.aborted: list[dict[str, str]] = []
        self.part_url_requests: list[list[int]] = []
        self.part_url_attempts = 0
        self.puts: list[tuple[str, int]] = []
        self.put_attempts: dict[tuple[str, int], int] = defaultdict(int)
        self.received: dict[tuple[str, int], bytes] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.incomplete_at_finalize: list[str] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self, credentials: Credentials, **kwargs: Any) -> NunuClient:
        kwargs.setdefault("retry_backoff_base", 0)
        return NunuClient(credentials=credentials, transport=self.transport, **kwargs)

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == STORAGE_HOST:
            return self._put(request)

        path = request.url.path.split("/builds", 1)[1]
        assert request.headers["x-api-key"] == TOKEN

        if request.method == "POST" and path == "/upload":
            return self._create(json.loads(request.content))
        if request.method == "GET" and path == "/upload/parts":
            return self._part_urls(request.url.params)
        if request.method == "POST" and path == "/upload/complete":
            return self._complete(json.loads(request.content))
        if request.method == "DELETE" and path == "/upload":
            with self.lock:
                self.aborted.append(dict(request.url.params))
            return httpx.Response(204)
        return httpx.Response(404, text="not found")

    def _create(self, body: dict[str, Any]) -> httpx.Response:
        if body["file_name"] in self.create_status:
            status, text = self.create_status[body["file_name"]]
            return httpx.Response(status, text=text)

        with self.lock:
            self.created.append(body)
            build_id = f"build-{len(self.created)}"
            object_key = f"builds/{build_id}/{body['file_name']}"
            if not body["multipart"]:
                self.builds[build_id] = {"file_name": body["file_name"], "parts": 1}
                return httpx.Response(
                    200,
                    json={
                        "build_id": build_id,
                        "upload_url": self._url(build_id, 1),
                        "object_key": object_key,
                    },
                )

            part_size = self.part_size or body["part_size"]
            total_parts = max(1, math.ceil(body["file_size"] / part_size))
            self.builds[build_id] = {"file_name": body["file_name"], "parts": total_parts}
            return httpx.Response(
                200,
                json={
                    "build_id": build_id,
                    "upload_id": f"upload-{build_id}",
                    "object_key": object_key,
                    "total_parts": total_parts,
                    "part_size": part_size,
                },
            )

    def _part_urls(self, params: httpx.QueryParams) -> httpx.Response:
        build_id = params["upload_id"].removeprefix("upload-")
        numbers = [int(n) for n in params["part_numbers"].split(",")]
        with self.lock:
            attempt = self.part_url_attempts
            self.part_url_attempts += 1
            if attempt < len(self.part_url_failures):
                return httpx.Response(self.part_url_failures[attempt], text="unavailable")
            self.part_url_requests.append(numbers)
        urls = [{"part_number": n, "url": self._url(build_id, n)} for n in numbers]
        return httpx.Response(200, json={"upload_urls": urls})

    def _put(self, request: httpx.Request) -> httpx.Response:
        _, build_id, number = request.url.path.split("/")
        part_number = int(number)
        file_name = self.builds[build_id]["file_name"]
        key = (file_name, part_number)
        body = request.read()

        if self.on_put:
            self.on_put(file_name, part_number)

        with self.lock:
            self.puts.append(key)
            attempt = self.put_attempts[key]
            self.put_attempts[key] += 1
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.put_delay:
                time.sleep(self.put_delay)
            failures = self.put_failures.get(key, [])
            if attempt < len(failures):
                return httpx.Response(failures[attempt], text="<Error><Code>Fail</Code></Error>")
            with self.lock:
                self.received[key] = body
            return httpx.Response(200, headers={"ETag": f'"etag-{build_id}-{part_number}"'})
        finally:
            with self.lock:
                self.in_flight -= 1

    def _complete(self, body: dict[str, Any]) -> httpx.Response:
        build = self.builds[body["build_id"]]
        with self.lock:
            received = sum(1 for (name, _) in self.received if name == build["file_name"])
            if received != build["parts"]:
                self.incomplete_at_finalize.append(body["build_id"])
            self.completed.append(body)
        return httpx.Response(200, json={"status": "completed"})

    def _url(self, build_id: str, part_number: int) -> str:
        return f"https://{STORAGE_HOST}/{build_id}/{part_number}?X-Amz-Signature=sig"

    def assembled(self, file_name: str) -> bytes:
        """Concatenate the received parts of a file in part order."""
        parts = sorted((n, data) for (name, n), data in self.received.items() if name == file_name)
        return b"".join(data for _, data in parts)


@pytest.fixture
def server() -> FakeNunuServer:
    return FakeNunuServer()


@pytest.fixture
def make_server() -> Callable[..., FakeNunuServer]:
    return FakeNunuServer


@pytest.fixture
def make_file(temp_dir: Path) -> Callable[[str, int], Path]:
    def _make(name: str, size: int) -> Path:
        return write_file(temp_dir / name, size)

    return _make
