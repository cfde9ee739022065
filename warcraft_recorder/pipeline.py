"""End-to-end orchestration: watcher -> parser -> classifier -> controller."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from pathlib import Path
from typing import Iterable, List, Optional

from .classifier import EventClassifier, is_end_marker, session_start_index
from .config import MonitorConfig
from .controller import Recorder, SessionController, Store
from .heuristics import HeuristicAccumulator
from .models import DetectedEvent, LogLine, SessionEnd, SessionStart
from .parser import parse_line
from .process import ProcessProbe
from .status import StatusFeed
from .watcher import DirectoryNotifier, LogWatcher

logger = logging.getLogger(__name__)


class CombatLogMonitor:
    """Coordinates log tailing, classification and the session lifecycle.

    Every entry point that touches the accumulator or the controller runs
    under one lock, so the poll thread, the directory notifier and direct
    callers never interleave.
    """

    def __init__(
        self,
        recorder: Recorder,
        store: Store,
        *,
        config: MonitorConfig,
        classifier: EventClassifier | None = None,
        controller: SessionController | None = None,
        process_probe: ProcessProbe | None = None,
        status: StatusFeed | None = None,
        executor: Executor | None = None,
    ) -> None:
        if config.log_dir is None:
            raise ValueError("MonitorConfig.log_dir is required")
        self.config = config
        self.log_dir = Path(config.log_dir)
        self.status = status or StatusFeed()
        self.classifier = classifier or EventClassifier(config.thresholds, config.batch_thresholds)
        self.accumulator = HeuristicAccumulator()
        self._owned_executor: Optional[Executor] = None
        if controller is None:
            if executor is None:
                executor = self._owned_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="recorder")
            controller = SessionController(recorder, store, status=self.status, executor=executor)
        self.controller = controller
        self.controller.add_idle_listener(self._on_controller_idle)
        self.process_probe = process_probe
        self.watcher = LogWatcher(
            self.log_dir,
            on_lines=self._on_lines,
            on_rotation=self._on_rotation,
            on_error=self.status.error,
        )
        self._notifier = DirectoryNotifier(self.log_dir, self._on_new_file) if config.watch_directory else None
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._monitoring = False
        self._attached = False
        self._target_running: Optional[bool] = None
        self._folder_missing = False
        self._rearm = threading.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring

    def start_monitoring(self) -> None:
        with self._lock:
            if self._monitoring:
                logger.info("Already monitoring %s", self.log_dir)
                return
            self._monitoring = True
            self._stop_event.clear()
        self.status.publish(f"Starting monitoring of {self.log_dir}")
        self.tick()
        self._thread = threading.Thread(target=self._poll_loop, name="combat-log-poll", daemon=True)
        self._thread.start()

    def stop_monitoring(self, timeout: float | None = 10.0) -> None:
        with self._lock:
            if not self._monitoring:
                return
            self._monitoring = False
            self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        if self._notifier is not None:
            self._notifier.stop()
        with self._lock:
            self.controller.shutdown(timeout)
        self.status.publish("Monitoring stopped")

    def close(self) -> None:
        self.stop_monitoring()
        if self._owned_executor is not None:
            self._owned_executor.shutdown(wait=True)
            self._owned_executor = None

    def __enter__(self) -> "CombatLogMonitor":
        self.start_monitoring()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Periodic work
    # ------------------------------------------------------------------

    def tick(self) -> None:
        """One poll iteration: process presence, then log growth."""

        with self._lock:
            try:
                self._check_process()
                if not self.log_dir.is_dir():
                    if not self._folder_missing:
                        self._folder_missing = True
                        self.status.error(f"Log folder not found: {self.log_dir}")
                    return
                if self._folder_missing:
                    self._folder_missing = False
                    self.status.publish(f"Log folder available: {self.log_dir}")
                self.watcher.poll()
                if self._notifier is not None and self._monitoring and not self._notifier.is_running:
                    self._notifier.start()
            except Exception as exc:
                logger.exception("Monitoring tick failed")
                self.status.error(f"Monitoring error: {exc}")

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(self.config.poll_interval):
            self.tick()

    def _check_process(self) -> None:
        if self.process_probe is None:
            return
        try:
            running = self.process_probe.is_target_running()
        except Exception as exc:
            logger.warning("Process check failed: %s", exc)
            return
        previous, self._target_running = self._target_running, running
        if previous is None:
            self.status.publish("WoW is running - Monitoring" if running else "WoW is not running")
        elif previous and not running:
            if not self.controller.end_active("WoW has been closed", outcome="Game closed"):
                self.status.publish("WoW has been closed")
        elif running and not previous:
            self.status.publish("WoW is now running - Monitoring")

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def process_lines(self, raw_lines: Iterable[str]) -> List[DetectedEvent]:
        """Parse, classify and dispatch raw lines in order."""

        events: List[DetectedEvent] = []
        with self._lock:
            for raw in raw_lines:
                self._consume_rearm()
                line = parse_line(raw)
                event = self.classifier.classify_line(
                    line,
                    self.accumulator,
                    session_active=self.controller.is_engaged(),
                )
                if event is None:
                    continue
                events.append(event)
                self._apply(event)
        return events

    def submit(self, event: DetectedEvent) -> bool:
        with self._lock:
            self._consume_rearm()
            return self._apply(event)

    def _apply(self, event: DetectedEvent, following: Iterable[LogLine] = ()) -> bool:
        accepted = self.controller.handle(event)
        if isinstance(event, SessionStart):
            if accepted:
                self.classifier.begin_session(self.accumulator, event, following)
        elif accepted or not self.controller.is_engaged():
            self.classifier.end_session(self.accumulator)
        return accepted

    def start_clip(self, label: str = "Clip") -> bool:
        with self._lock:
            return self.controller.start_clip(label)

    def stop_clip(self) -> bool:
        with self._lock:
            return self.controller.stop_clip()

    def _on_lines(self, path: Path, lines: List[str]) -> None:
        self.process_lines(lines)

    def _on_rotation(self, path: Path) -> None:
        with self._lock:
            self.accumulator.reset()
            self.status.publish(f"Now monitoring {path.name}")
            if not self._attached:
                self._attached = True
                self._process_backlog(self.watcher.backlog(self.config.backlog_lines))

    def _on_controller_idle(self, end: Optional[SessionEnd]) -> None:
        # May run on the recorder thread; the accumulator is reset under the lock later.
        if end is None or end.kind is None:
            self._rearm.set()

    def _consume_rearm(self) -> None:
        if self._rearm.is_set():
            self._rearm.clear()
            self.classifier.end_session(self.accumulator)

    def _on_new_file(self, path: Path) -> None:
        with self._lock:
            try:
                self.watcher.notify_created(path)
            except Exception as exc:
                logger.exception("Failed to switch to new combat log %s", path)
                self.status.error(f"Cannot follow new combat log {path.name}: {exc}")

    def _process_backlog(self, raw_lines: List[str]) -> Optional[DetectedEvent]:
        self._consume_rearm()
        if not raw_lines:
            return None
        parsed = [parse_line(raw) for raw in raw_lines]
        last_end = max((index for index, line in enumerate(parsed) if is_end_marker(line)), default=-1)
        recent = parsed[last_end + 1:]
        if not recent:
            return None
        event = self.classifier.classify_batch(
            recent,
            self.accumulator,
            session_active=self.controller.is_engaged(),
        )
        if event is not None:
            logger.info("Session already in progress according to log backlog")
            following = recent[session_start_index(recent) + 1:] if isinstance(event, SessionStart) else ()
            self._apply(event, following)
        return event
