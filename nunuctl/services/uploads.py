"""Upload service for build artifacts.

Provides UploadService, the public entry point of the upload engine. One
call to ``upload_batch`` plans every target, drives all sessions through a
shared worker pool and returns a ``BatchResult`` with one entry per file.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from nunuctl.core.exceptions import (
    NunuCtlError,
    PlanningError,
    UploadCancelledError,
    ValidationError,
)
from nunuctl.core.logging import log_context
from nunuctl.core.validation import validate_parallel, validate_upload_timeout
from nunuctl.models.api import (
    CompleteUploadRequest,
    CreateUploadRequest,
    MultipartUploadResponse,
)
from nunuctl.models.progress import BatchResult, ProgressSnapshot, SessionResult
from nunuctl.models.session import SessionState, UploadSession
from nunuctl.models.target import DeletionPolicy, UploadTarget
from nunuctl.uploaders.cancellation import CancellationController
from nunuctl.uploaders.common import RetryPolicy
from nunuctl.uploaders.constants import (
    DEFAULT_ABORT_TIMEOUT,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_PARTS,
    DEFAULT_MIN_PART_SIZE,
    DEFAULT_MULTIPART_THRESHOLD,
    DEFAULT_PARALLEL,
    DEFAULT_PARTS_PER_WORKER,
    DEFAULT_SHUTDOWN_GRACE,
    EXIT_FAILURE,
    EXIT_SUCCESS,
)
from nunuctl.uploaders.part_uploader import PartUploader
from nunuctl.uploaders.planner import PlannerConfig, plan_upload
from nunuctl.uploaders.progress import ProgressAggregator
from nunuctl.uploaders.scheduler import UploadScheduler

from .base import BaseService

logger = logging.getLogger(__name__)


# =============================================================================
# Options
# =============================================================================


@dataclass
class UploadOptions:
    """Per-batch upload options shared by every file."""

    parallel: int = DEFAULT_PARALLEL
    force_multipart: bool = False
    multipart_threshold: int = DEFAULT_MULTIPART_THRESHOLD
    upload_timeout: Optional[int] = None
    auto_delete: bool = False
    deletion_policy: DeletionPolicy = DeletionPolicy.LEAST_RECENT
    description: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    details: Optional[dict[str, Any]] = None
    min_part_size: int = DEFAULT_MIN_PART_SIZE
    max_parts: int = DEFAULT_MAX_PARTS
    parts_per_worker: int = DEFAULT_PARTS_PER_WORKER
    chunk_size: int = DEFAULT_CHUNK_SIZE
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    abort_timeout: float = DEFAULT_ABORT_TIMEOUT
    shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE

    def __post_init__(self) -> None:
        validate_parallel(self.parallel)
        validate_upload_timeout(self.upload_timeout)
        if self.chunk_size < 1:
            raise ValidationError("chunk_size must be positive", field="chunk_size")

    def planner_config(self) -> PlannerConfig:
        return PlannerConfig(
            multipart_threshold=self.multipart_threshold,
            force_multipart=self.force_multipart,
            parallel=self.parallel,
            min_part_size=self.min_part_size,
            max_parts=self.max_parts,
            parts_per_worker=self.parts_per_worker,
        )


# =============================================================================
# Upload Service
# =============================================================================


class UploadService(BaseService):
    """Service for uploading build artifacts."""

    def upload_batch(
        self,
        targets: Sequence[UploadTarget],
        options: Optional[UploadOptions] = None,
        *,
        controller: Optional[CancellationController] = None,
        progress_callback: Optional[Callable[[ProgressSnapshot], None]] = None,
    ) -> BatchResult:
        """Upload a batch of files concurrently.

        Files are independent: a failure in one never aborts the others. On
        cancellation every unfinished session is aborted on the server.

        Args:
            targets: Files to upload, already resolved.
            options: Batch options (defaults apply when omitted).
            controller: Cancellation controller; its token stops the batch.
                Signal handlers are only active if the caller entered it.
            progress_callback: Receives throttled progress snapshots.

        Returns:
            BatchResult with one SessionResult per target, in target order.
        """
        options = options or UploadOptions()
        controller = controller or CancellationController()
        token = controller.token
        start_time = time.time()

        aggregator = ProgressAggregator(progress_callback)
        entries: list[Union[UploadSession, SessionResult]] = []
        sessions: list[UploadSession] = []
        planner_config = options.planner_config()

        for target in targets:
            try:
                session = plan_upload(target, planner_config)
            except PlanningError as e:
                logger.error("%s", e)
                entries.append(_planning_failure(target, e))
                continue
            aggregator.register(session)
            sessions.append(session)
            entries.append(session)

        uploader = PartUploader(
            self.client,
            aggregator,
            token,
            policy=options.retry,
            chunk_size=options.chunk_size,
            url_window=options.parallel,
        )
        scheduler = UploadScheduler(
            options.parallel,
            token,
            open_fn=lambda s: self._open_session(s, options),
            part_fn=uploader.upload,
            finalize_fn=self._finalize_session,
            shutdown_grace=options.shutdown_grace,
        )

        with log_context(
            "upload batch", logger, files=len(targets), parallel=options.parallel
        ) as ctx:
            unfinished = scheduler.run(sessions)
            if token.is_cancelled:
                ctx.warning("Batch cancelled (%s)", token.reason)
                self._abort_sessions(sessions, options.abort_timeout, token.reason or "cancelled")

        aggregator.flush()

        results = [e.to_result() if isinstance(e, UploadSession) else e for e in entries]
        batch = BatchResult(
            results=results,
            duration=time.time() - start_time,
            cancelled=token.is_cancelled,
            unfinished_tasks=unfinished,
        )
        if batch.cancelled:
            batch.exit_code = controller.exit_code or EXIT_FAILURE
        elif batch.failed:
            batch.exit_code = EXIT_FAILURE
        else:
            batch.exit_code = EXIT_SUCCESS

        if batch.failed:
            logger.warning(
                "Upload completed with %d of %d file(s) failed", len(batch.failed), len(results)
            )

        controller.force_exit_if_unfinished(unfinished)
        return batch

    # =========================================================================
    # Session Tasks
    # =========================================================================

    def _open_session(self, session: UploadSession, options: UploadOptions) -> None:
        """Create the server-side session and attach its ids."""
        target = session.target
        request = CreateUploadRequest(
            name=target.name,
            description=options.description,
            file_name=target.file_name,
            file_size=target.size,
            platform=target.platform.value,
            multipart=session.multipart,
            auto_delete=options.auto_delete,
            deletion_policy=options.deletion_policy.value if options.auto_delete else None,
            upload_timeout=options.upload_timeout,
            details=options.details,
            tags=options.tags or None,
            part_size=session.part_size if session.multipart else None,
        )
        resp = self.client.create_upload(request)

        if isinstance(resp, MultipartUploadResponse):
            session.attach_server_session(
                build_id=resp.build_id,
                object_key=resp.object_key,
                upload_id=resp.upload_id,
                part_size=resp.part_size,
            )
            if resp.total_parts != len(session.parts):
                logger.warning(
                    "Server expects %d parts for %s, planned %d",
                    resp.total_parts,
                    target.file_name,
                    len(session.parts),
                )
        else:
            session.attach_server_session(
                build_id=resp.build_id,
                object_key=resp.object_key,
                upload_url=resp.upload_url,
            )
        logger.info(
            "Created build %s for %s (%d part(s))",
            resp.build_id,
            target.file_name,
            len(session.parts),
        )

    def _finalize_session(self, session: UploadSession) -> None:
        """Send the index-ordered part manifest and complete the build."""
        if session.multipart:
            request = CompleteUploadRequest(
                build_id=session.build_id,
                upload_id=session.upload_id,
                object_key=session.object_key,
                parts=session.manifest(),
            )
        else:
            request = CompleteUploadRequest(build_id=session.build_id)
        self.client.complete_upload(request)

    def _abort_sessions(
        self, sessions: Sequence[UploadSession], timeout: float, reason: str
    ) -> None:
        """Abort every ABORTING session, best effort, one bounded call each."""
        for session in sessions:
            if session.state is not SessionState.ABORTING:
                continue
            if session.build_id:
                try:
                    self.client.abort_upload(
                        session.build_id,
                        session.upload_id,
                        session.object_key,
                        timeout=timeout,
                    )
                except NunuCtlError as e:
                    logger.warning(
                        "Could not abort upload of %s: %s", session.target.file_name, e
                    )
            session.transition(SessionState.ABORTED, UploadCancelledError(reason))


def _planning_failure(target: UploadTarget, error: PlanningError) -> SessionResult:
    return SessionResult(
        session_id="",
        file_path=str(target.path),
        name=target.name,
        state=SessionState.FAILED.value,
        total_bytes=target.size,
        error_kind=error.kind,
        error_message=str(error),
    )
