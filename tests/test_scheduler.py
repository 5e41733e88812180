"""Tests for the shared upload scheduler."""

from __future__ import annotations

import threading
import time
from pathlib import Path

from nunuctl.core.exceptions import ApiError
from nunuctl.models.session import SessionState, UploadSession, partition
from nunuctl.models.target import BuildPlatform, UploadTarget
from nunuctl.uploaders.cancellation import CancellationToken
from nunuctl.uploaders.scheduler import UploadScheduler


def _session(name: str, parts: int = 2) -> UploadSession:
    size = parts * 10
    target = UploadTarget(path=Path(name), size=size, platform=BuildPlatform.WINDOWS, name=name)
    return UploadSession(target=target, parts=partition(size, 10), multipart=True)


class Recorder:
    """Fake session tasks that record call order and concurrency."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def _enter(self, kind: str, label: str) -> None:
        with self._lock:
            self.calls.append((kind, label))
            self.active += 1
            self.peak = max(self.peak, self.active)

    def _exit(self) -> None:
        with self._lock:
            self.active -= 1

    def open(self, session: UploadSession) -> None:
        self._enter("open", session.target.name)
        try:
            time.sleep(self.delay)
            session.attach_server_session(
                build_id=f"build-{session.target.name}",
                object_key=session.target.name,
                upload_id="upload",
            )
        finally:
            self._exit()

    def part(self, session, part) -> None:
        self._enter("part", f"{session.target.name}{part.part_number}")
        try:
            time.sleep(self.delay)
            session.mark_part_succeeded(part, f"etag-{part.part_number}")
        finally:
            self._exit()

    def finalize(self, session) -> None:
        self._enter("finalize", session.target.name)
        self._exit()

    def scheduler(self, parallel: int, token: CancellationToken | None = None, **kwargs):
        return UploadScheduler(
            parallel,
            token or CancellationToken(),
            open_fn=self.open,
            part_fn=self.part,
            finalize_fn=self.finalize,
            poll_interval=0.01,
            **kwargs,
        )


class TestUploadScheduler:
    """Tests for UploadScheduler."""

    def test_completes_all_sessions(self):
        recorder = Recorder()
        sessions = [_session("a"), _session("b", parts=3)]

        unfinished = recorder.scheduler(4).run(sessions)

        assert unfinished == 0
        assert [s.state for s in sessions] == [SessionState.COMPLETED] * 2
        assert sum(1 for kind, _ in recorder.calls if kind == "part") == 5

    def test_in_flight_never_exceeds_parallel(self):
        recorder = Recorder(delay=0.01)
        sessions = [_session(name, parts=6) for name in "abcd"]
        scheduler = recorder.scheduler(3)

        scheduler.run(sessions)

        assert recorder.peak <= 3
        assert scheduler.max_in_flight <= 3
        assert all(s.state is SessionState.COMPLETED for s in sessions)

    def test_round_robin_across_sessions(self):
        recorder = Recorder()
        sessions = [_session("a"), _session("b")]

        recorder.scheduler(1).run(sessions)

        assert [label for _, label in recorder.calls] == [
            "a", "b", "a1", "b1", "a2", "b2", "a", "b",
        ]

    def test_finalize_runs_after_every_part(self):
        recorder = Recorder(delay=0.005)
        session = _session("a", parts=5)

        recorder.scheduler(4).run([session])

        kinds = [kind for kind, _ in recorder.calls]
        assert kinds[-1] == "finalize"
        assert kinds.count("finalize") == 1

    def test_failure_is_isolated_to_its_session(self):
        recorder = Recorder()

        def part(session, part):
            if session.target.name == "bad":
                raise ApiError("upload part", 400, "bad request")
            recorder.part(session, part)

        sessions = [_session("bad"), _session("good")]
        scheduler = UploadScheduler(
            2,
            CancellationToken(),
            open_fn=recorder.open,
            part_fn=part,
            finalize_fn=recorder.finalize,
            poll_interval=0.01,
        )

        scheduler.run(sessions)

        assert sessions[0].state is SessionState.FAILED
        assert isinstance(sessions[0].error, ApiError)
        assert sessions[1].state is SessionState.COMPLETED

    def test_open_failure_fails_session(self):
        recorder = Recorder()

        def open_fn(session):
            raise ApiError("create upload session", 422, "invalid platform")

        session = _session("a")
        scheduler = UploadScheduler(
            1,
            CancellationToken(),
            open_fn=open_fn,
            part_fn=recorder.part,
            finalize_fn=recorder.finalize,
            poll_interval=0.01,
        )

        scheduler.run([session])

        assert session.state is SessionState.FAILED
        assert recorder.calls == []

    def test_cancellation_moves_sessions_to_aborting(self):
        token = CancellationToken()
        recorder = Recorder()

        def part(session, part):
            token.cancel("interrupt")
            recorder.part(session, part)

        sessions = [_session("a", parts=4), _session("b", parts=4)]
        scheduler = UploadScheduler(
            2,
            token,
            open_fn=recorder.open,
            part_fn=part,
            finalize_fn=recorder.finalize,
            poll_interval=0.01,
        )

        unfinished = scheduler.run(sessions)

        assert unfinished == 0
        assert [s.state for s in sessions] == [SessionState.ABORTING] * 2
        assert not any(kind == "finalize" for kind, _ in recorder.calls)
        assert sum(1 for kind, _ in recorder.calls if kind == "part") <= 2

    def test_drain_gives_up_after_grace_period(self):
        token = CancellationToken()
        release = threading.Event()
        recorder = Recorder()

        def part(session, part):
            token.cancel("interrupt")
            release.wait(5)

        scheduler = UploadScheduler(
            1,
            token,
            open_fn=recorder.open,
            part_fn=part,
            finalize_fn=recorder.finalize,
            shutdown_grace=0.05,
            poll_interval=0.01,
        )

        try:
            unfinished = scheduler.run([_session("a")])
        finally:
            release.set()

        assert unfinished == 1

    def test_cancelled_before_start_dispatches_nothing(self):
        token = CancellationToken()
        token.cancel("terminate")
        recorder = Recorder()
        session = _session("a")

        unfinished = recorder.scheduler(2, token).run([session])

        assert unfinished == 0
        assert recorder.calls == []
        assert session.state is SessionState.ABORTING
