"""Upload session and part state machines.

One ``UploadSession`` tracks the lifecycle of one file's upload::

    PENDING -> UPLOADING -> COMPLETING -> COMPLETED
       |           |             |
       +-----------+-------------+--> FAILED
       +-----------+-------------+--> ABORTING -> ABORTED

Every mutation goes through the session lock, so concurrent part completions
cannot drive a session into contradictory states. The first terminal
transition wins; later ones are no-ops.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from nunuctl.core.exceptions import NunuCtlError, SessionStateError
from nunuctl.models.api import UploadedPart
from nunuctl.models.progress import SessionResult
from nunuctl.models.target import UploadTarget

logger = logging.getLogger(__name__)


class PartState(Enum):
    """Transfer state of one part."""

    PENDING = "pending"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SessionState(Enum):
    """Lifecycle state of one file's upload."""

    PENDING = "pending"
    UPLOADING = "uploading"
    COMPLETING = "completing"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTING = "aborting"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED, SessionState.ABORTED)

    @property
    def is_live(self) -> bool:
        """Whether new work may still be dispatched for the session."""
        return self in (SessionState.PENDING, SessionState.UPLOADING)


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.PENDING: frozenset(
        {SessionState.UPLOADING, SessionState.FAILED, SessionState.ABORTING}
    ),
    SessionState.UPLOADING: frozenset(
        {SessionState.COMPLETING, SessionState.FAILED, SessionState.ABORTING}
    ),
    SessionState.COMPLETING: frozenset(
        {SessionState.COMPLETED, SessionState.FAILED, SessionState.ABORTING}
    ),
    SessionState.ABORTING: frozenset({SessionState.ABORTED}),
}


# =============================================================================
# Part
# =============================================================================


@dataclass
class Part:
    """One contiguous byte range of a file; the unit of transfer and retry."""

    index: int
    offset: int
    length: int
    state: PartState = PartState.PENDING
    attempts: int = 0
    uploaded_bytes: int = 0
    etag: str | None = None
    upload_url: str | None = None

    @property
    def part_number(self) -> int:
        """1-based part number used on the wire."""
        return self.index + 1

    @property
    def end(self) -> int:
        return self.offset + self.length


def partition(total_size: int, part_size: int) -> list[Part]:
    """Split ``[0, total_size)`` into consecutive parts of ``part_size`` bytes.

    The last part holds the remainder. An empty file yields one empty part so
    that every session has at least one unit of work.
    """
    if part_size <= 0:
        raise ValueError(f"part_size must be positive, got {part_size}")
    if total_size <= 0:
        return [Part(index=0, offset=0, length=0)]

    parts = []
    for index, offset in enumerate(range(0, total_size, part_size)):
        parts.append(Part(index=index, offset=offset, length=min(part_size, total_size - offset)))
    return parts


# =============================================================================
# Upload Session
# =============================================================================


@dataclass(eq=False)
class UploadSession:
    """End-to-end upload lifecycle of one file."""

    target: UploadTarget
    parts: list[Part]
    multipart: bool
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: SessionState = SessionState.PENDING
    created_at: datetime = field(default_factory=datetime.now)
    build_id: str | None = None
    upload_id: str | None = None
    object_key: str | None = None
    error: Exception | None = None
    open_dispatched: bool = False
    finalize_dispatched: bool = False
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    @property
    def total_size(self) -> int:
        return self.target.size

    @property
    def part_size(self) -> int:
        return self.parts[0].length if self.parts else 0

    @property
    def is_open(self) -> bool:
        """Whether create-session succeeded on the server."""
        return self.build_id is not None

    # =========================================================================
    # State Transitions
    # =========================================================================

    def transition(self, new_state: SessionState, error: Exception | None = None) -> bool:
        """Move to ``new_state``.

        Returns:
            True if the transition happened, False if it was a no-op because
            the session is already terminal or aborting.

        Raises:
            SessionStateError: If the transition is illegal from a live state.
        """
        with self._lock:
            current = self.state
            if current.is_terminal or current is SessionState.ABORTING:
                if new_state not in _TRANSITIONS.get(current, frozenset()):
                    logger.debug(
                        "Session %s: ignoring %s -> %s", self.id, current.value, new_state.value
                    )
                    return False
            elif new_state not in _TRANSITIONS[current]:
                raise SessionStateError(self.id, current.value, new_state.value)

            self.state = new_state
            if error is not None and self.error is None:
                self.error = error
            logger.debug(
                "Session %s (%s): %s -> %s",
                self.id,
                self.target.file_name,
                current.value,
                new_state.value,
            )
            return True

    def fail(self, error: Exception) -> bool:
        """Fail the session; pending parts will never be dispatched."""
        return self.transition(SessionState.FAILED, error)

    def begin_abort(self) -> bool:
        """Move a non-terminal session to ABORTING."""
        with self._lock:
            if self.state.is_terminal or self.state is SessionState.ABORTING:
                return False
            return self.transition(SessionState.ABORTING)

    # =========================================================================
    # Server Session
    # =========================================================================

    def attach_server_session(
        self,
        *,
        build_id: str,
        object_key: str,
        upload_id: str | None = None,
        upload_url: str | None = None,
        part_size: int | None = None,
    ) -> None:
        """Record ids returned by create-session.

        If the server picked a different part size, the session is
        re-partitioned before any part is dispatched.
        """
        with self._lock:
            self.build_id = build_id
            self.object_key = object_key
            self.upload_id = upload_id
            if self.multipart and part_size and part_size != self.part_size:
                if any(p.state is not PartState.PENDING for p in self.parts):
                    raise SessionStateError(self.id, self.state.value, "repartition")
                logger.info(
                    "Server chose part size %d for %s (planned %d), re-partitioning",
                    part_size,
                    self.target.file_name,
                    self.part_size,
                )
                self.parts = partition(self.total_size, part_size)
            if upload_url is not None:
                self.parts[0].upload_url = upload_url

    # =========================================================================
    # Parts
    # =========================================================================

    def has_pending_parts(self) -> bool:
        with self._lock:
            return any(p.state is PartState.PENDING for p in self.parts)

    def claim_next_part(self) -> Part | None:
        """Claim the lowest-index pending part for dispatch.

        The session enters UPLOADING when its first part is claimed. Nothing is
        claimed unless the session is open on the server and still live.
        """
        with self._lock:
            if not self.is_open or not self.state.is_live:
                return None
            for part in self.parts:
                if part.state is PartState.PENDING:
                    if self.state is SessionState.PENDING:
                        self.transition(SessionState.UPLOADING)
                    part.state = PartState.UPLOADING
                    return part
            return None

    def start_attempt(self, part: Part) -> int:
        """Count a new transfer attempt; returns the attempt number."""
        with self._lock:
            part.attempts += 1
            part.uploaded_bytes = 0
            return part.attempts

    def record_part_progress(self, part: Part, uploaded_bytes: int) -> None:
        with self._lock:
            part.uploaded_bytes = uploaded_bytes

    def mark_part_failed(self, part: Part) -> None:
        with self._lock:
            part.state = PartState.FAILED

    def retry_part(self, part: Part) -> None:
        """Re-dispatch a failed part to the worker that already owns it.

        The part goes straight back to UPLOADING so the scheduler never sees
        it as pending and claims it a second time.
        """
        with self._lock:
            if part.state is not PartState.FAILED:
                raise SessionStateError(self.id, part.state.value, "retry")
            part.state = PartState.UPLOADING

    def mark_part_succeeded(self, part: Part, etag: str) -> None:
        with self._lock:
            part.state = PartState.SUCCEEDED
            part.etag = etag
            part.uploaded_bytes = part.length

    def all_parts_succeeded(self) -> bool:
        with self._lock:
            return all(p.state is PartState.SUCCEEDED for p in self.parts)

    def parts_needing_urls(self, first: Part, limit: int) -> list[Part]:
        """Return ``first`` plus up to ``limit - 1`` pending parts lacking a URL."""
        with self._lock:
            batch = [first]
            for part in self.parts:
                if len(batch) >= limit:
                    break
                if part is not first and part.state is PartState.PENDING and not part.upload_url:
                    batch.append(part)
            return batch

    def set_part_urls(self, urls: dict[int, str]) -> None:
        with self._lock:
            for part in self.parts:
                if part.part_number in urls:
                    part.upload_url = urls[part.part_number]

    def manifest(self) -> list[UploadedPart]:
        """Part manifest ordered by part number, regardless of completion order."""
        with self._lock:
            return [
                UploadedPart(part_number=p.part_number, etag=p.etag or "")
                for p in sorted(self.parts, key=lambda p: p.index)
            ]

    def begin_finalize(self) -> bool:
        """Enter COMPLETING once every part succeeded; returns True if finalize should run."""
        with self._lock:
            if self.finalize_dispatched or self.state is not SessionState.UPLOADING:
                return False
            if not self.all_parts_succeeded():
                return False
            self.finalize_dispatched = True
            return self.transition(SessionState.COMPLETING)

    # =========================================================================
    # Reporting
    # =========================================================================

    def to_result(self) -> SessionResult:
        with self._lock:
            error_kind = None
            error_message = None
            if self.error is not None:
                error_kind = (
                    self.error.kind if isinstance(self.error, NunuCtlError) else "unexpected"
                )
                error_message = str(self.error)
            return SessionResult(
                session_id=self.id,
                file_path=str(self.target.path),
                name=self.target.name,
                state=self.state.value,
                build_id=self.build_id,
                total_bytes=self.total_size,
                parts=len(self.parts),
                error_kind=error_kind,
                error_message=error_message,
            )
