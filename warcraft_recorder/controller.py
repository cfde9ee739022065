"""Session state machine driving the recorder and the store."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Executor, Future, wait
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol, Set

from .models import (
    ActivityKind,
    DetectedEvent,
    DetectionSource,
    RecordingArtifact,
    Session,
    SessionEnd,
    SessionRecord,
    SessionStart,
    StartResult,
)
from .status import StatusFeed

logger = logging.getLogger(__name__)


class Recorder(Protocol):
    def start(self, kind: ActivityKind, label: str) -> StartResult:
        ...

    def stop(self) -> Optional[RecordingArtifact]:
        ...


class Store(Protocol):
    def save(self, record: SessionRecord) -> None:
        ...

    def delete(self, record: SessionRecord) -> None:
        ...

    def list(self) -> List[SessionRecord]:
        ...


IdleListener = Callable[[Optional[SessionEnd]], None]


class SessionState(Enum):
    IDLE = "idle"
    ACTIVE = "active"


class SessionController:
    """Two-state machine (Idle/Active) guarding the single live session.

    Recorder calls go through ``executor`` when one is given so the caller's
    line-processing loop never blocks on capture setup. While a start is
    outstanding every further start is dropped; an end that arrives in that
    window is applied once the start succeeds.
    """

    def __init__(
        self,
        recorder: Recorder,
        store: Store,
        *,
        status: StatusFeed | None = None,
        executor: Executor | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.recorder = recorder
        self.store = store
        self.status = status or StatusFeed()
        self._executor = executor
        self._clock = clock
        self._lock = threading.RLock()
        self._session: Optional[Session] = None
        self._starting = False
        self._starting_kind: Optional[ActivityKind] = None
        self._stopping = False
        self._deferred_end: Optional[SessionEnd] = None
        self._pending: Set[Future] = set()
        self._idle_listeners: List[IdleListener] = []
        self.last_record: Optional[SessionRecord] = None

    # ------------------------------------------------------------------
    # State inspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return SessionState.ACTIVE if self._session is not None else SessionState.IDLE

    @property
    def session(self) -> Optional[Session]:
        with self._lock:
            return self._session

    def is_engaged(self) -> bool:
        """True while a session is active or being established."""

        with self._lock:
            return self._session is not None or self._starting

    def add_idle_listener(self, callback: IdleListener) -> None:
        """Call ``callback`` whenever the controller falls back to Idle.

        It receives the accepted end, or ``None`` when a start failed. It may
        run on an executor thread.
        """

        with self._lock:
            self._idle_listeners.append(callback)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def handle(self, event: DetectedEvent) -> bool:
        """Apply one detected event. Returns whether it was accepted."""

        if isinstance(event, SessionStart):
            return self._on_start(event)
        return self._on_end(event)

    def start_clip(self, label: str = "Clip") -> bool:
        return self.handle(
            SessionStart(
                kind=ActivityKind.CLIP,
                label=label,
                observed_at=self._clock(),
                source=DetectionSource.MANUAL,
            )
        )

    def stop_clip(self) -> bool:
        return self.handle(SessionEnd(observed_at=self._clock(), kind=ActivityKind.CLIP, outcome="Clip"))

    def end_active(self, reason: str, *, outcome: str = "Interrupted") -> bool:
        """Force an end for whatever session is live, regardless of family."""

        if not self.is_engaged():
            return False
        self.status.publish(reason)
        return self.handle(SessionEnd(observed_at=self._clock(), outcome=outcome))

    def drain(self, timeout: float | None = None) -> bool:
        """Wait until no recorder call is outstanding."""

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                pending = [future for future in self._pending if not future.done()]
            if not pending:
                return True
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            _, not_done = wait(pending, timeout=remaining)
            if not_done:
                return False

    def shutdown(self, timeout: float | None = None) -> None:
        """Resolve outstanding calls and close any live session."""

        self.drain(timeout)
        self.end_active("Monitoring stopped; closing active session", outcome="Monitoring stopped")
        self.drain(timeout)

    def _on_start(self, event: SessionStart) -> bool:
        with self._lock:
            if self._starting:
                logger.info("Ignoring start for %s - %s: a start is already in progress", event.kind.value, event.label)
                return False
            if self._session is not None:
                logger.info(
                    "Ignoring redundant start for %s - %s: %s - %s is active",
                    event.kind.value,
                    event.label,
                    self._session.kind.value,
                    self._session.label,
                )
                return False
            self._starting = True
            self._starting_kind = event.kind
            self._deferred_end = None
        self.status.publish(f"Detected {event.kind.value} - {event.label} ({event.source.value})")
        self._dispatch(self._run_start, event)
        return True

    def _on_end(self, event: SessionEnd) -> bool:
        with self._lock:
            if self._starting:
                if self._deferred_end is None and self._starting_kind is not None and event.closes(self._starting_kind):
                    logger.info("End received while recording is starting; deferring")
                    self._deferred_end = event
                    return True
                return False
            session = self._session
            if session is None:
                logger.info("Ignoring end: nothing to stop")
                return False
            if self._stopping:
                logger.info("Ignoring end: stop already in progress")
                return False
            if not event.closes(session.kind):
                logger.debug(
                    "Ignoring %s end while %s session is active",
                    event.kind.value if event.kind else "generic",
                    session.kind.value,
                )
                return False
            self._stopping = True
        self._dispatch(self._run_stop, session, event)
        return True

    # ------------------------------------------------------------------
    # Recorder/store interaction
    # ------------------------------------------------------------------

    def _run_start(self, event: SessionStart) -> None:
        try:
            result = self.recorder.start(event.kind, event.label)
        except Exception as exc:
            logger.exception("Recorder start raised for %s - %s", event.kind.value, event.label)
            result = StartResult(ok=False, error=str(exc))

        deferred: Optional[SessionEnd] = None
        with self._lock:
            self._starting = False
            self._starting_kind = None
            if result.ok:
                self._session = Session(
                    kind=event.kind,
                    label=event.label,
                    started_at=self._clock(),
                    recorder_handle=result.handle,
                    difficulty=event.difficulty,
                    artifact_path=result.path,
                )
                deferred = self._deferred_end
            self._deferred_end = None

        if not result.ok:
            self.status.error(
                f"Failed to start recording for {event.kind.value} - {event.label}: {result.error or 'unknown error'}"
            )
            self._notify_idle(None)
            return
        self.status.publish(f"Recording {event.kind.value} - {event.label}")
        if deferred is not None:
            self._on_end(deferred)

    def _run_stop(self, session: Session, event: SessionEnd) -> None:
        artifact: Optional[RecordingArtifact]
        try:
            artifact = self.recorder.stop()
        except Exception:
            logger.exception("Recorder stop raised for %s - %s", session.kind.value, session.label)
            artifact = None
        try:
            if artifact is None:
                self.status.error(
                    f"Recording stop failed for {session.kind.value} - {session.label}; artifact may be missing"
                )
            record = self._build_record(session, event, artifact)
            self.last_record = record
            try:
                self.store.save(record)
            except Exception as exc:
                logger.exception("Failed to persist session record %s", record.id)
                self.status.error(f"Failed to save session record: {exc}")
            else:
                self.status.publish(f"Saved {record.kind.value} - {record.label} ({record.duration:.0f}s)")
        finally:
            with self._lock:
                self._session = None
                self._stopping = False
        self._notify_idle(event)

    def _build_record(
        self,
        session: Session,
        event: SessionEnd,
        artifact: Optional[RecordingArtifact],
    ) -> SessionRecord:
        duration = artifact.duration if artifact is not None else None
        if duration is None:
            duration = max(0.0, (self._clock() - session.started_at).total_seconds())
        path = artifact.path if artifact is not None and artifact.path else session.artifact_path
        return SessionRecord(
            kind=session.kind,
            label=session.label,
            started_at=session.started_at,
            duration=float(duration),
            artifact_path=str(path) if path and artifact is not None else "",
            outcome=event.outcome or "Completed",
            difficulty=session.difficulty,
            participants=event.participants,
            time_taken=event.time_taken,
        )

    def _notify_idle(self, end: Optional[SessionEnd]) -> None:
        with self._lock:
            listeners = list(self._idle_listeners)
        for callback in listeners:
            try:
                callback(end)
            except Exception:  # pragma: no cover - runtime safeguard
                logger.exception("Idle listener failed")

    def _dispatch(self, fn: Callable[..., None], *args: Any) -> None:
        if self._executor is None:
            fn(*args)
            return
        future = self._executor.submit(fn, *args)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)
        if not future.cancelled() and future.exception() is not None:  # pragma: no cover - runtime safeguard
            logger.error("Recorder task failed: %s", future.exception())
