"""Bounded worker pool shared by every session of a batch.

The scheduler runs in the calling thread and feeds a single
``ThreadPoolExecutor`` with three kinds of tasks:

- ``open``: create the server-side session,
- ``part``: transfer one part,
- ``finalize``: send the part manifest.

Ready work is picked round-robin by session, so one large file cannot starve
the others, and never more than ``parallel`` tasks are in flight.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Optional

from nunuctl.core.exceptions import UploadCancelledError
from nunuctl.core.validation import validate_parallel
from nunuctl.models.session import Part, SessionState, UploadSession
from nunuctl.uploaders.cancellation import CancellationToken
from nunuctl.uploaders.constants import DEFAULT_SHUTDOWN_GRACE

logger = logging.getLogger(__name__)

TASK_OPEN = "open"
TASK_PART = "part"
TASK_FINALIZE = "finalize"


@dataclass
class _Task:
    kind: str
    session: UploadSession
    part: Optional[Part] = None


class UploadScheduler:
    """Dispatch open/part/finalize tasks for many sessions to one pool.

    Args:
        parallel: Pool size and in-flight bound (1-32).
        token: Batch cancellation token; no task is dispatched once it is set.
        open_fn: Creates the server session for a session.
        part_fn: Uploads one claimed part.
        finalize_fn: Completes a session whose parts all succeeded.
        shutdown_grace: Seconds to wait for in-flight tasks after cancellation.
        poll_interval: Seconds between cancellation checks while waiting.
    """

    def __init__(
        self,
        parallel: int,
        token: CancellationToken,
        *,
        open_fn: Callable[[UploadSession], Any],
        part_fn: Callable[[UploadSession, Part], Any],
        finalize_fn: Callable[[UploadSession], Any],
        shutdown_grace: float = DEFAULT_SHUTDOWN_GRACE,
        poll_interval: float = 0.1,
    ) -> None:
        self.parallel = validate_parallel(parallel)
        self.token = token
        self._open_fn = open_fn
        self._part_fn = part_fn
        self._finalize_fn = finalize_fn
        self.shutdown_grace = shutdown_grace
        self.poll_interval = poll_interval
        self.max_in_flight = 0
        self._cursor = 0

    def run(self, sessions: Sequence[UploadSession]) -> int:
        """Drive ``sessions`` until all are terminal or the batch is cancelled.

        On cancellation every non-terminal session is moved to ABORTING and
        in-flight tasks are given ``shutdown_grace`` seconds to finish.

        Returns:
            Number of tasks still running when the scheduler gave up on them.
        """
        executor = ThreadPoolExecutor(max_workers=self.parallel, thread_name_prefix="nunuctl")
        in_flight: dict[Future[Any], _Task] = {}
        unfinished = 0

        try:
            while not self.token.is_cancelled:
                self._fill(executor, in_flight, sessions)
                if not in_flight:
                    break
                done, _ = wait(in_flight, timeout=self.poll_interval, return_when=FIRST_COMPLETED)
                for future in done:
                    self._handle_result(future, in_flight.pop(future))

            if self.token.is_cancelled:
                self._begin_abort(sessions)
                unfinished = self._drain(in_flight)
        finally:
            executor.shutdown(wait=unfinished == 0, cancel_futures=True)

        return unfinished

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _fill(
        self,
        executor: ThreadPoolExecutor,
        in_flight: dict[Future[Any], _Task],
        sessions: Sequence[UploadSession],
    ) -> None:
        while len(in_flight) < self.parallel and not self.token.is_cancelled:
            task = self._next_task(sessions)
            if task is None:
                return
            in_flight[executor.submit(self._execute, task)] = task
            self.max_in_flight = max(self.max_in_flight, len(in_flight))

    def _next_task(self, sessions: Sequence[UploadSession]) -> Optional[_Task]:
        count = len(sessions)
        for offset in range(count):
            index = (self._cursor + offset) % count
            task = self._ready_task(sessions[index])
            if task is not None:
                self._cursor = (index + 1) % count
                return task
        return None

    def _ready_task(self, session: UploadSession) -> Optional[_Task]:
        if not session.state.is_live:
            return None
        if not session.open_dispatched:
            session.open_dispatched = True
            return _Task(TASK_OPEN, session)
        if not session.is_open:
            return None
        if session.begin_finalize():
            return _Task(TASK_FINALIZE, session)
        part = session.claim_next_part()
        if part is not None:
            return _Task(TASK_PART, session, part)
        return None

    def _execute(self, task: _Task) -> Any:
        if task.kind == TASK_OPEN:
            return self._open_fn(task.session)
        if task.kind == TASK_PART:
            return self._part_fn(task.session, task.part)
        return self._finalize_fn(task.session)

    # =========================================================================
    # Results
    # =========================================================================

    def _handle_result(self, future: Future[Any], task: _Task) -> None:
        session = task.session
        error = future.exception()

        if error is None:
            if task.kind == TASK_FINALIZE:
                session.transition(SessionState.COMPLETED)
            return

        if isinstance(error, UploadCancelledError):
            logger.debug("%s task for %s cancelled", task.kind, session.target.file_name)
            return

        what = session.target.file_name
        if task.part is not None:
            what = f"{what} part {task.part.part_number}"
        if session.fail(error):
            logger.error("Upload of %s failed: %s", what, error)
        else:
            logger.debug("Ignoring %s failure after session ended: %s", what, error)

    # =========================================================================
    # Shutdown
    # =========================================================================

    def _begin_abort(self, sessions: Sequence[UploadSession]) -> None:
        aborting = [s for s in sessions if s.begin_abort()]
        if aborting:
            logger.warning("Aborting %d unfinished upload(s)", len(aborting))

    def _drain(self, in_flight: dict[Future[Any], _Task]) -> int:
        if not in_flight:
            return 0
        logger.info(
            "Waiting up to %.0fs for %d in-flight task(s)", self.shutdown_grace, len(in_flight)
        )
        done, not_done = wait(in_flight, timeout=self.shutdown_grace)
        for future in done:
            self._handle_result(future, in_flight.pop(future))
        return len(not_done)
