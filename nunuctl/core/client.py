"""HTTP client for the Nunu builds upload API.

Provides the remote service contract (create-session, part URLs, part
transfer, complete, abort) with typed errors, retry for idempotent API calls,
and one httpx client per worker thread.
"""

from __future__ import annotations

import logging
import os
import re
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx

from nunuctl.core.config import Credentials
from nunuctl.core.exceptions import (
    ApiError,
    AuthenticationError,
    NetworkError,
    QuotaExceededError,
    RetryExhaustedError,
    ValidationError,
)
from nunuctl.core.timeouts import DEFAULT_HTTP_TIMEOUT_SECONDS, DEFAULT_TRANSFER_TIMEOUT_SECONDS
from nunuctl.models.api import (
    CompleteUploadRequest,
    CreateUploadRequest,
    MultipartUploadResponse,
    PartUrlsResponse,
    SinglePartUploadResponse,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

DEFAULT_MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 2
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
QUOTA_STATUS_CODE = 507

# Storage error codes that mean the payload did not match what was signed
CONTENT_MISMATCH_CODES = {"BadDigest", "InvalidDigest", "IncompleteBody", "EntityTooSmall"}

_XML_CODE = re.compile(r"<Code>(.*?)</Code>", re.DOTALL)
_XML_MESSAGE = re.compile(r"<Message>(.*?)</Message>", re.DOTALL)


# =============================================================================
# Helpers
# =============================================================================


def redact_proxy_url(url: str) -> str:
    """Hide credentials embedded in a proxy URL."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<proxy configured>"
    if not parts.scheme or not parts.hostname:
        return "<proxy configured>"
    if parts.username or parts.password:
        netloc = f"***:***@{parts.hostname}"
        if parts.port:
            netloc = f"{netloc}:{parts.port}"
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    return url


def redact_presigned_url(url: str) -> str:
    """Drop the query string (signature) of a presigned storage URL."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def parse_storage_error(body: str) -> tuple[str | None, str | None]:
    """Extract ``<Code>`` and ``<Message>`` from an S3-style XML error body."""
    code = _XML_CODE.search(body)
    message = _XML_MESSAGE.search(body)
    return (
        code.group(1).strip() if code else None,
        message.group(1).strip() if message else None,
    )


def is_quota_response(resp: httpx.Response) -> bool:
    """Whether an API error response reports an exhausted storage quota."""
    if resp.status_code == QUOTA_STATUS_CODE:
        return True
    if resp.status_code < 400:
        return False
    return "quota" in resp.text.lower()


def _log_proxy() -> None:
    proxy = os.getenv("HTTPS_PROXY") or os.getenv("https_proxy")
    proxy = proxy or os.getenv("HTTP_PROXY") or os.getenv("http_proxy")
    if proxy:
        logger.info("Using proxy: %s", redact_proxy_url(proxy))
    else:
        logger.debug("No proxy configured (direct connection)")


# =============================================================================
# NunuClient
# =============================================================================


@dataclass
class NunuClient:
    """HTTP client for the builds upload API."""

    credentials: Credentials
    timeout: int = DEFAULT_HTTP_TIMEOUT_SECONDS
    transfer_timeout: int = DEFAULT_TRANSFER_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_backoff_base: float = RETRY_BACKOFF_BASE
    verify_ssl: bool = True
    transport: httpx.BaseTransport | None = field(default=None, repr=False)
    _local: threading.local = field(init=False, default_factory=threading.local, repr=False)
    _clients: list[httpx.Client] = field(init=False, default_factory=list, repr=False)
    _clients_lock: threading.Lock = field(init=False, default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        _log_proxy()

    # =========================================================================
    # Client Management
    # =========================================================================

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP client of the calling thread."""
        client = getattr(self._local, "client", None)
        if client is None:
            # httpx picks up HTTP(S)_PROXY from the environment
            client = httpx.Client(
                timeout=self.timeout,
                verify=self.verify_ssl,
                follow_redirects=True,
                transport=self.transport,
            )
            self._local.client = client
            with self._clients_lock:
                self._clients.append(client)
        return client

    def close(self) -> None:
        """Close every HTTP client created by this instance."""
        with self._clients_lock:
            clients, self._clients = self._clients, []
        for client in clients:
            client.close()
        self._local = threading.local()

    def __enter__(self) -> NunuClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        return {"x-api-key": self.credentials.token}

    def _url(self, path: str) -> str:
        return f"{self.credentials.base_upload_url}{path}"

    # =========================================================================
    # API Requests
    # =========================================================================

    def _check_response(self, resp: httpx.Response, operation: str) -> httpx.Response:
        """Map an API error response onto the exception hierarchy."""
        if resp.is_success:
            return resp
        if is_quota_response(resp):
            raise QuotaExceededError(
                resp.text[:500] or f"HTTP {resp.status_code}", resp.status_code
            )
        if resp.status_code in (401, 403):
            raise AuthenticationError(
                self.credentials.api_url,
                f"{operation}: HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        if resp.status_code in (400, 422):
            raise ValidationError(
                f"{operation} rejected: {resp.text[:500]}", status_code=resp.status_code
            )
        raise ApiError(operation, resp.status_code, resp.text)

    def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        params: Any | None = None,
        json: Any | None = None,
        timeout: float | None = None,
        retry: bool = True,
    ) -> httpx.Response:
        """Execute an API request, retrying transient failures when ``retry`` is set.

        Raises:
            AuthenticationError: On 401/403.
            QuotaExceededError: If the server reports an exhausted storage quota.
            ValidationError: On 400/422.
            ApiError: On any other non-success status.
            NetworkError: On a transient failure when ``retry`` is False.
            RetryExhaustedError: If all retries fail.
        """
        client = self._get_client()
        url = self._url(path)
        request_timeout = timeout or self.timeout
        attempts = self.max_retries + 1 if retry else 1
        last_error: NetworkError | None = None

        for attempt in range(attempts):
            try:
                resp = client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(),
                    timeout=request_timeout,
                )
                logger.debug("%s %s -> %d", method, url, resp.status_code)

                if resp.status_code not in RETRYABLE_STATUS_CODES or is_quota_response(resp):
                    return self._check_response(resp, operation)

                last_error = NetworkError(url, f"HTTP {resp.status_code}", resp.status_code)
            except httpx.TimeoutException:
                last_error = NetworkError(url, f"Timeout after {request_timeout}s")
            except httpx.TransportError as e:
                last_error = NetworkError(url, str(e) or type(e).__name__)

            if not retry:
                raise last_error
            if attempt < attempts - 1:
                delay = self.retry_backoff_base ** (attempt + 1)
                logger.warning(
                    "%s: %s on attempt %d/%d, retrying in %.0fs",
                    operation,
                    last_error.cause,
                    attempt + 1,
                    attempts,
                    delay,
                )
                time.sleep(delay)

        raise RetryExhaustedError(operation, attempts, last_error)

    def create_upload(
        self, request: CreateUploadRequest
    ) -> SinglePartUploadResponse | MultipartUploadResponse:
        """Create an upload session (create-session).

        Not retried: a duplicate create would register a second build.
        """
        logger.debug("Create upload request: %s", request.to_dict())
        resp = self._request(
            "POST",
            "/upload",
            operation="create upload",
            json=request.to_dict(),
            retry=False,
        )
        try:
            data = resp.json()
            if request.multipart:
                return MultipartUploadResponse.model_validate(data)
            return SinglePartUploadResponse.model_validate(data)
        except ValueError as e:
            raise ApiError(
                "create upload", resp.status_code, f"Failed to parse response: {e}"
            ) from e

    def request_part_urls(
        self,
        upload_id: str,
        object_key: str,
        part_numbers: list[int],
        *,
        retry: bool = True,
    ) -> dict[int, str]:
        """Request presigned URLs for the given 1-based part numbers.

        With ``retry=False`` a transient failure raises ``NetworkError`` at once
        so the caller can apply its own retry policy.
        """
        params = {
            "upload_id": upload_id,
            "object_key": object_key,
            "part_numbers": ",".join(str(n) for n in part_numbers),
        }
        resp = self._request(
            "GET", "/upload/parts", operation="request part URLs", params=params, retry=retry
        )
        try:
            parsed = PartUrlsResponse.model_validate(resp.json())
        except ValueError as e:
            raise ApiError(
                "request part URLs", resp.status_code, f"Failed to parse response: {e}"
            ) from e
        logger.debug("Received %d upload URLs", len(parsed.upload_urls))
        return {p.part_number: p.url for p in parsed.upload_urls}

    def complete_upload(self, request: CompleteUploadRequest) -> None:
        """Finalize an upload; multipart requests carry the ordered part manifest."""
        self._request(
            "POST",
            "/upload/complete",
            operation="complete upload",
            json=request.to_dict(),
        )
        logger.info("Upload completed for build %s", request.build_id)

    def abort_upload(
        self,
        build_id: str,
        upload_id: str | None = None,
        object_key: str | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        """Abort an upload (single attempt, bounded by ``timeout``)."""
        params = {"build_id": build_id}
        if upload_id:
            params["upload_id"] = upload_id
        if object_key:
            params["object_key"] = object_key
        self._request(
            "DELETE",
            "/upload",
            operation="abort upload",
            params=params,
            timeout=timeout,
            retry=False,
        )
        logger.info("Upload aborted for build %s", build_id)

    # =========================================================================
    # Storage Transfer
    # =========================================================================

    def put_part(
        self,
        url: str,
        content: Iterable[bytes],
        length: int,
        *,
        require_etag: bool = True,
    ) -> str:
        """PUT one byte range to a presigned URL (single attempt).

        Returns:
            The ETag of the stored part ("" if not required and absent).

        Raises:
            NetworkError: Retryable failure (timeout, connection, 429, 5xx).
            AuthenticationError: 401/403 from storage.
            ValidationError: Other 4xx, or a content mismatch.
        """
        client = self._get_client()
        safe_url = redact_presigned_url(url)

        try:
            resp = client.put(
                url,
                content=content,
                headers={
                    "Content-Type": "application/octet-stream",
                    "Content-Length": str(length),
                },
                timeout=self.transfer_timeout,
            )
        except httpx.TimeoutException as e:
            raise NetworkError(safe_url, f"Timeout: {e}") from e
        except httpx.ConnectError as e:
            raise NetworkError(
                safe_url,
                f"Cannot connect to storage (firewall, proxy or DNS issue?): {e}",
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(safe_url, f"Request failed: {e}") from e

        if resp.is_success:
            etag = resp.headers.get("etag", "")
            if require_etag and not etag:
                raise ValidationError("Missing ETag in storage response", field="etag")
            return etag

        code, message = parse_storage_error(resp.text)
        if code:
            detail = f"{code} - {message}" if message else code
        else:
            detail = f"HTTP {resp.status_code}: {resp.text[:200]}"

        if resp.status_code in RETRYABLE_STATUS_CODES:
            raise NetworkError(safe_url, detail, resp.status_code)
        if resp.status_code in (401, 403):
            raise AuthenticationError(
                safe_url, f"Storage error: {detail}", status_code=resp.status_code
            )
        if code in CONTENT_MISMATCH_CODES:
            raise ValidationError(
                f"Content mismatch: {detail}", field="content", status_code=resp.status_code
            )
        raise ValidationError(f"Storage error: {detail}", status_code=resp.status_code)
