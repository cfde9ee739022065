"""Screenshot-sequence recorder used as the default capture collaborator."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Tuple

import mss
from mss import tools as mss_tools
from mss.exception import ScreenShotError
from PIL import ImageGrab

from .models import ActivityKind, RecordingArtifact, StartResult
from .utils import sanitize_component

logger = logging.getLogger(__name__)

CaptureBackend = Callable[[Path], None]


class RecorderError(RuntimeError):
    """Raised internally when a capture cannot be set up."""


class ScreenshotRecorder:
    """Captures periodic screenshots into one directory per session.

    Encoding the frames into a video is left to downstream tooling; the
    session directory is the artifact handed back on ``stop``.
    """

    def __init__(
        self,
        *,
        output_dir: Path | str | None = None,
        fps: float = 2.0,
        image_format: str = "png",
        monitor_index: int = 1,
        backend: CaptureBackend | str | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.output_dir = Path(output_dir) if output_dir else Path("recordings")
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.fps = max(0.1, fps)
        self.monitor_index = monitor_index
        self._clock = clock
        if callable(backend):
            self._backend: Optional[CaptureBackend] = backend
            self.image_format = image_format.lower()
        else:
            self._backend, self.image_format = self._select_backend(backend or "auto", image_format.lower())
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._session_dir: Optional[Path] = None
        self._started_at = 0.0
        self._frames = 0

    @property
    def is_recording(self) -> bool:
        with self._lock:
            return self._thread is not None

    @property
    def frame_count(self) -> int:
        return self._frames

    def session_name(self, kind: ActivityKind, label: str) -> str:
        timestamp = self._clock().strftime("%Y-%m-%d_%H-%M-%S")
        return f"{sanitize_component(kind.value)}_{sanitize_component(label)}_{timestamp}"

    def start(self, kind: ActivityKind, label: str) -> StartResult:
        try:
            session_dir = self._begin(kind, label)
        except RecorderError as exc:
            logger.warning("Screen recording not started: %s", exc)
            return StartResult(ok=False, error=str(exc))
        logger.info("Recording %s - %s into %s", kind.value, label, session_dir)
        return StartResult(ok=True, path=session_dir, handle=session_dir)

    def stop(self, timeout: float = 5.0) -> Optional[RecordingArtifact]:
        with self._lock:
            thread = self._thread
            if thread is None:
                logger.info("No recording to stop")
                return None
            self._stop_event.set()
        thread.join(timeout)
        with self._lock:
            duration = time.monotonic() - self._started_at
            artifact = RecordingArtifact(path=self._session_dir, duration=duration)
            self._thread = None
            self._session_dir = None
        if self._frames == 0:
            logger.warning("Recording %s finished without any frames", artifact.path)
        return artifact

    # ------------------------------------------------------------------
    # Capture loop
    # ------------------------------------------------------------------

    def _begin(self, kind: ActivityKind, label: str) -> Path:
        with self._lock:
            if self._thread is not None:
                raise RecorderError("A recording is already in progress")
            if self._backend is None:
                raise RecorderError("Screen capture backend is not available")
            session_dir = self.output_dir / self.session_name(kind, label)
            try:
                session_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise RecorderError(f"Cannot create {session_dir}: {exc}") from exc
            self._frames = 0
            try:
                self._capture_frame(session_dir)
            except Exception as exc:
                raise RecorderError(f"Screen capture failed: {exc}") from exc
            self._session_dir = session_dir
            self._started_at = time.monotonic()
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                args=(session_dir,),
                name="screenshot-recorder",
                daemon=True,
            )
            self._thread.start()
            return session_dir

    def _run(self, session_dir: Path) -> None:
        interval = 1.0 / self.fps
        while not self._stop_event.wait(interval):
            try:
                self._capture_frame(session_dir)
            except Exception as exc:  # pragma: no cover - runtime safeguard
                logger.debug("Frame capture failed: %s", exc)

    def _capture_frame(self, session_dir: Path) -> Path:
        assert self._backend is not None  # for type checkers
        destination = session_dir / f"frame_{self._frames + 1:06d}.{self.image_format}"
        self._backend(destination)
        if not destination.exists():
            raise RecorderError(f"Capture backend did not produce a file: {destination}")
        self._frames += 1
        return destination

    # ------------------------------------------------------------------
    # Backend selection helpers
    # ------------------------------------------------------------------

    def _select_backend(self, name: str, preferred_format: str) -> Tuple[Optional[CaptureBackend], str]:
        fmt = preferred_format or "png"
        if name == "auto":
            return self._capture_auto, "png"
        if name == "mss":
            return self._capture_with_mss, "png"
        if name == "pillow":
            return self._capture_with_pillow, fmt
        logger.warning("Unknown capture backend %r", name)
        return None, fmt

    def _capture_auto(self, destination: Path) -> None:
        try:
            self._capture_with_mss(destination)
        except ScreenShotError as exc:
            logger.info("mss capture unavailable (%s); switching to Pillow ImageGrab", exc)
            self._backend = self._capture_with_pillow
            self._capture_with_pillow(destination)

    def _capture_with_mss(self, destination: Path) -> None:
        with mss.mss() as sct:
            monitors = sct.monitors
            index = min(max(self.monitor_index, 1), len(monitors) - 1)
            shot = sct.grab(monitors[index])
            mss_tools.to_png(shot.rgb, shot.size, output=str(destination))

    def _capture_with_pillow(self, destination: Path) -> None:
        image = ImageGrab.grab()
        fmt = "JPEG" if self.image_format in {"jpg", "jpeg"} else self.image_format.upper()
        image.save(destination, format=fmt)
