"""Transfer of one part (byte range) of one file."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Optional

from nunuctl.core.client import NunuClient
from nunuctl.core.exceptions import (
    ApiError,
    NunuCtlError,
    PartRetryExhaustedError,
    PlanningError,
    RetryExhaustedError,
    UploadCancelledError,
    ValidationError,
)
from nunuctl.models.session import Part, UploadSession
from nunuctl.uploaders.cancellation import CancellationToken
from nunuctl.uploaders.common import RetryPolicy, upload_with_retry
from nunuctl.uploaders.constants import DEFAULT_CHUNK_SIZE, DEFAULT_PARALLEL
from nunuctl.uploaders.progress import ProgressAggregator

logger = logging.getLogger(__name__)


class PartUploader:
    """Upload single parts with retries and progress reporting.

    Args:
        client: API client used for part URLs and the storage PUT.
        aggregator: Receives per-chunk progress.
        token: Batch cancellation token.
        policy: Retry policy for retryable failures.
        chunk_size: Read size while streaming a part.
        url_window: Presigned URLs requested per round trip.
    """

    def __init__(
        self,
        client: NunuClient,
        aggregator: ProgressAggregator,
        token: CancellationToken,
        *,
        policy: Optional[RetryPolicy] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        url_window: int = DEFAULT_PARALLEL,
    ) -> None:
        self.client = client
        self.aggregator = aggregator
        self.token = token
        self.policy = policy or RetryPolicy()
        self.chunk_size = chunk_size
        self.url_window = max(1, url_window)

    def upload(self, session: UploadSession, part: Part) -> str:
        """Upload ``part`` of ``session``; the part must already be claimed.

        Returns:
            The part's ETag ("" for single-request uploads without one).

        Raises:
            PartRetryExhaustedError: If every attempt failed with a retryable error.
            UploadCancelledError: If cancelled, or the session ended, between attempts.
            NunuCtlError: On a fatal (non-retryable) failure; the session is failed too.
        """
        label = f"{session.target.file_name} part {part.part_number}"

        def _attempt(attempt: int) -> str:
            if attempt > 1:
                session.retry_part(part)
            session.start_attempt(part)
            try:
                url = self._ensure_url(session, part)
                etag = self.client.put_part(
                    url,
                    self._read_range(session, part),
                    part.length,
                    require_etag=session.multipart,
                )
            except NunuCtlError:
                session.mark_part_failed(part)
                raise
            session.mark_part_succeeded(part, etag)
            self.aggregator.update_part(session.id, part.index, part.length)
            return etag

        try:
            etag = upload_with_retry(
                _attempt,
                policy=self.policy,
                token=self.token,
                label=label,
                should_continue=lambda: session.state.is_live,
            )
        except RetryExhaustedError as e:
            error = PartRetryExhaustedError(part.part_number, e.attempts, e.last_error)
            self._fail_session(session, label, error)
            raise error from e
        except UploadCancelledError:
            raise
        except NunuCtlError as e:
            self._fail_session(session, label, e)
            raise

        logger.debug("%s uploaded (%d bytes, attempt %d)", label, part.length, part.attempts)
        return etag

    def _fail_session(self, session: UploadSession, label: str, error: NunuCtlError) -> None:
        # Fail from the worker so siblings stop retrying at their next check
        if session.fail(error):
            logger.error("Upload of %s failed: %s", label, error)

    def _ensure_url(self, session: UploadSession, part: Part) -> str:
        """Return the part's upload URL, prefetching URLs for upcoming parts."""
        if part.upload_url:
            return part.upload_url
        if not session.multipart or not session.upload_id or not session.object_key:
            raise ValidationError(
                f"No upload URL for {session.target.file_name}", field="upload_url"
            )

        batch = session.parts_needing_urls(part, self.url_window)
        numbers = [p.part_number for p in batch]
        logger.debug("Requesting upload URLs for %s parts %s", session.target.file_name, numbers)
        session.set_part_urls(
            self.client.request_part_urls(
                session.upload_id, session.object_key, numbers, retry=False
            )
        )
        if not part.upload_url:
            raise ApiError(
                "request part URLs", 200, f"no URL returned for part {part.part_number}"
            )
        return part.upload_url

    def _read_range(self, session: UploadSession, part: Part) -> Iterator[bytes]:
        """Stream the part's byte range, reporting progress after every chunk."""
        remaining = part.length
        sent = 0
        with open(session.target.path, "rb") as f:
            f.seek(part.offset)
            while remaining > 0:
                chunk = f.read(min(self.chunk_size, remaining))
                if not chunk:
                    raise PlanningError(
                        str(session.target.path), "file was truncated during upload"
                    )
                remaining -= len(chunk)
                yield chunk
                sent += len(chunk)
                session.record_part_progress(part, sent)
                self.aggregator.update_part(session.id, part.index, sent)
