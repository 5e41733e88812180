"""Progress and result models for upload batches.

Provides read-only snapshots of transfer progress and per-file outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class SessionProgress:
    """Bytes transferred for one file."""

    session_id: str
    name: str
    bytes_sent: int
    total_bytes: int
    throughput_bps: float = 0.0

    @property
    def percent(self) -> float:
        """Calculate completion percentage."""
        if self.total_bytes == 0:
            return 100.0 if self.bytes_sent == 0 else 0.0
        return (self.bytes_sent / self.total_bytes) * 100

    @property
    def mb_sent(self) -> float:
        """Return megabytes sent."""
        return self.bytes_sent / (1024 * 1024)

    @property
    def total_mb(self) -> float:
        """Return total megabytes."""
        return self.total_bytes / (1024 * 1024)


@dataclass(frozen=True)
class ProgressSnapshot:
    """Aggregate view over all sessions of a batch at one instant."""

    sessions: Dict[str, SessionProgress]
    bytes_sent: int
    total_bytes: int
    throughput_bps: float
    timestamp: float

    @property
    def percent(self) -> float:
        if self.total_bytes == 0:
            return 100.0 if self.sessions else 0.0
        return (self.bytes_sent / self.total_bytes) * 100


@dataclass
class SessionResult:
    """Terminal outcome of one file's upload."""

    session_id: str
    file_path: str
    name: str
    state: str
    build_id: Optional[str] = None
    total_bytes: int = 0
    parts: int = 0
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state == "completed"

    @property
    def aborted(self) -> bool:
        return self.state == "aborted"

    @property
    def failed(self) -> bool:
        return not self.succeeded and not self.aborted


@dataclass
class BatchResult:
    """Outcome of a whole batch upload."""

    results: List[SessionResult] = field(default_factory=list)
    duration: float = 0.0
    cancelled: bool = False
    exit_code: int = 0
    unfinished_tasks: int = 0

    @property
    def succeeded(self) -> List[SessionResult]:
        return [r for r in self.results if r.succeeded]

    @property
    def failed(self) -> List[SessionResult]:
        return [r for r in self.results if r.failed]

    @property
    def aborted(self) -> List[SessionResult]:
        return [r for r in self.results if r.aborted]

    @property
    def success(self) -> bool:
        return not self.cancelled and not self.failed

    @property
    def total_bytes(self) -> int:
        return sum(r.total_bytes for r in self.results)

    @property
    def throughput_mbps(self) -> float:
        """Calculate upload throughput of completed files in MB/s."""
        if self.duration == 0:
            return 0.0
        sent = sum(r.total_bytes for r in self.succeeded)
        return sent / (1024 * 1024) / self.duration
