"""Thread-safe progress aggregation across sessions and parts.

Workers report the cumulative bytes sent for the part they are transferring.
A part only contributes the bytes above the highest value it reported
before, so a retried part that restarts from zero does not count twice and
per-session progress never decreases.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Optional

from nunuctl.models.progress import ProgressSnapshot, SessionProgress
from nunuctl.models.session import UploadSession
from nunuctl.uploaders.constants import (
    DEFAULT_SNAPSHOT_INTERVAL_SECONDS,
    DEFAULT_THROUGHPUT_WINDOW_SECONDS,
)

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressSnapshot], None]


class ThroughputWindow:
    """Bytes/second over a sliding time window."""

    def __init__(self, window: float) -> None:
        self.window = window
        self._samples: deque[tuple[float, int]] = deque()

    def add(self, now: float, total: int) -> None:
        self._samples.append((now, total))
        while len(self._samples) > 1 and self._samples[0][0] < now - self.window:
            self._samples.popleft()

    def rate(self) -> float:
        if len(self._samples) < 2:
            return 0.0
        (t0, b0), (t1, b1) = self._samples[0], self._samples[-1]
        elapsed = t1 - t0
        if elapsed <= 0:
            return 0.0
        return (b1 - b0) / elapsed


@dataclass
class _SessionCounters:
    name: str
    total: int
    sent: int = 0
    high_water: dict[int, int] = field(default_factory=dict)
    throughput: Optional[ThroughputWindow] = None


class ProgressAggregator:
    """Accumulate part progress into per-session and overall snapshots.

    Args:
        listener: Receives snapshots, at most once per ``interval`` seconds
            plus a final one from ``flush()``. Called outside the lock.
        interval: Minimum seconds between listener calls.
        window: Throughput smoothing window in seconds.
        clock: Monotonic time source.
    """

    def __init__(
        self,
        listener: Optional[ProgressListener] = None,
        *,
        interval: float = DEFAULT_SNAPSHOT_INTERVAL_SECONDS,
        window: float = DEFAULT_THROUGHPUT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._listener = listener
        self._interval = interval
        self._window = window
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, _SessionCounters] = {}
        self._overall = ThroughputWindow(window)
        self._sent = 0
        self._last_emit: Optional[float] = None
        self._seq = 0
        self._delivered_seq = 0
        self._emit_lock = threading.Lock()

    def register(self, session: UploadSession) -> None:
        with self._lock:
            self._sessions[session.id] = _SessionCounters(
                name=session.target.name,
                total=session.total_size,
                throughput=ThroughputWindow(self._window),
            )

    def update_part(self, session_id: str, part_index: int, uploaded_bytes: int) -> None:
        """Report cumulative bytes sent for one part in the current attempt."""
        snapshot = None
        with self._lock:
            counters = self._sessions.get(session_id)
            if counters is None:
                logger.debug("Progress for unknown session %s ignored", session_id)
                return
            previous = counters.high_water.get(part_index, 0)
            delta = uploaded_bytes - previous
            if delta <= 0:
                return
            counters.high_water[part_index] = uploaded_bytes
            counters.sent += delta
            self._sent += delta

            now = self._clock()
            counters.throughput.add(now, counters.sent)
            self._overall.add(now, self._sent)

            if self._listener and (
                self._last_emit is None or now - self._last_emit >= self._interval
            ):
                self._last_emit = now
                self._seq += 1
                seq, snapshot = self._seq, self._build_snapshot(now)

        if snapshot is not None:
            self._deliver(seq, snapshot)

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return self._build_snapshot(self._clock())

    def flush(self) -> ProgressSnapshot:
        """Push a final snapshot to the listener regardless of throttling."""
        with self._lock:
            now = self._clock()
            self._last_emit = now
            self._seq += 1
            seq, snapshot = self._seq, self._build_snapshot(now)
        self._deliver(seq, snapshot)
        return snapshot

    def _deliver(self, seq: int, snapshot: ProgressSnapshot) -> None:
        # Snapshots built earlier but delivered later are dropped
        if not self._listener:
            return
        with self._emit_lock:
            if seq < self._delivered_seq:
                return
            self._delivered_seq = seq
            self._listener(snapshot)

    def _build_snapshot(self, now: float) -> ProgressSnapshot:
        sessions = {
            session_id: SessionProgress(
                session_id=session_id,
                name=c.name,
                bytes_sent=c.sent,
                total_bytes=c.total,
                throughput_bps=c.throughput.rate() if c.throughput else 0.0,
            )
            for session_id, c in self._sessions.items()
        }
        return ProgressSnapshot(
            sessions=sessions,
            bytes_sent=self._sent,
            total_bytes=sum(c.total for c in self._sessions.values()),
            throughput_bps=self._overall.rate(),
            timestamp=now,
        )
