"""Cooperative cancellation for upload batches.

A ``CancellationToken`` is shared by every worker of a batch. It is set at
most once; workers check it before each new attempt and wait on it instead of
sleeping during backoff.

``CancellationController`` connects the token to process signals: the first
SIGINT/SIGTERM cancels the token, a second one exits the process at once.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
from collections.abc import Callable
from types import FrameType
from typing import Any, Optional

from nunuctl.uploaders.constants import EXIT_INTERRUPTED, EXIT_TERMINATED

logger = logging.getLogger(__name__)

REASON_INTERRUPT = "interrupt"
REASON_TERMINATE = "terminate"

EXIT_CODES = {
    REASON_INTERRUPT: EXIT_INTERRUPTED,
    REASON_TERMINATE: EXIT_TERMINATED,
}


class CancellationToken:
    """Thread-safe, set-once cancellation flag carrying a reason."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> bool:
        """Set the token. Returns False if it was already set."""
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            return True

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block up to ``timeout`` seconds; returns True if cancelled."""
        if timeout is not None and timeout <= 0:
            return self._event.is_set()
        return self._event.wait(timeout)


class CancellationController:
    """Install signal handlers that drive a ``CancellationToken``.

    Use as a context manager around a batch. Previous handlers are restored
    on exit. Handlers can only be installed from the main thread; elsewhere
    the controller still works for programmatic cancellation.

    Args:
        token: Token to cancel; a new one is created if omitted.
        force_exit: Called with an exit code for immediate termination.
        signals: Signals to handle (defaults to SIGINT and SIGTERM).
    """

    def __init__(
        self,
        token: Optional[CancellationToken] = None,
        *,
        force_exit: Callable[[int], Any] = os._exit,
        signals: Optional[tuple[int, ...]] = None,
    ) -> None:
        self.token = token or CancellationToken()
        self._force_exit = force_exit
        if signals is None:
            signals = (signal.SIGINT,)
            if hasattr(signal, "SIGTERM"):
                signals += (signal.SIGTERM,)
        self._signals = signals
        self._previous: dict[int, Any] = {}
        self._signal_count = 0

    def __enter__(self) -> CancellationController:
        self.install()
        return self

    def __exit__(self, *args: Any) -> None:
        self.restore()

    def install(self) -> None:
        for signum in self._signals:
            try:
                self._previous[signum] = signal.signal(signum, self._handle_signal)
            except (OSError, ValueError):
                # signal handlers can only be set in main thread
                logger.debug("Could not set handler for signal %s (not main thread)", signum)

    def restore(self) -> None:
        for signum, previous in self._previous.items():
            try:
                signal.signal(signum, previous)
            except (OSError, ValueError):
                logger.debug("Could not restore handler for signal %s", signum)
        self._previous.clear()

    def _handle_signal(self, signum: int, frame: Optional[FrameType]) -> None:
        if signum == getattr(signal, "SIGTERM", None):
            reason = REASON_TERMINATE
        else:
            reason = REASON_INTERRUPT
        self._signal_count += 1
        if self._signal_count == 1:
            logger.warning("Cancelling uploads (%s), aborting in-flight sessions...", reason)
            self.token.cancel(reason)
            return
        logger.warning("Forced shutdown. Exiting immediately.")
        self._force_exit(EXIT_CODES.get(reason, EXIT_INTERRUPTED))

    def cancel(self, reason: str = REASON_INTERRUPT) -> bool:
        """Cancel programmatically, as if the first signal had arrived."""
        self._signal_count = max(self._signal_count, 1)
        return self.token.cancel(reason)

    @property
    def cancelled(self) -> bool:
        return self.token.is_cancelled

    @property
    def exit_code(self) -> Optional[int]:
        """Exit code for the cancellation reason, or None if not cancelled."""
        if not self.token.is_cancelled:
            return None
        return EXIT_CODES.get(self.token.reason or "", EXIT_INTERRUPTED)

    def force_exit_if_unfinished(self, unfinished: int) -> None:
        """Exit immediately when workers are still running after the shutdown deadline."""
        if unfinished <= 0:
            return
        logger.error("%d upload task(s) did not stop before the shutdown deadline", unfinished)
        self._force_exit(self.exit_code or 1)
