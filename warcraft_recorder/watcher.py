"""Combat log discovery and tailing."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

from watchfiles import Change, watch

logger = logging.getLogger(__name__)

COMBAT_LOG_MARKER = "wowcombatlog"
_BOUNDARY_CHUNK = 64 * 1024
_BACKLOG_BYTES_PER_LINE = 512

LinesCallback = Callable[[Path, List[str]], None]
PathCallback = Callable[[Path], None]
ErrorCallback = Callable[[str], None]


def is_combat_log(path: Path | str) -> bool:
    candidate = Path(path)
    return candidate.suffix.lower() == ".txt" and COMBAT_LOG_MARKER in candidate.name.lower()


@dataclass(slots=True)
class TailState:
    """Per-path read position. ``offset`` only moves forward until truncation."""

    offset: int = 0
    attach_offset: int = 0
    remainder: bytes = b""


class LogWatcher:
    """Tails the newest combat log in ``directory``.

    Not thread-safe: the owning monitor serializes ``poll`` and
    ``notify_created``.
    """

    def __init__(
        self,
        directory: Path | str,
        *,
        on_lines: LinesCallback,
        on_rotation: PathCallback | None = None,
        on_error: ErrorCallback | None = None,
        start_at_end: bool = True,
    ) -> None:
        self.directory = Path(directory)
        self.on_lines = on_lines
        self.on_rotation = on_rotation
        self.on_error = on_error
        self.start_at_end = start_at_end
        self._states: Dict[Path, TailState] = {}
        self._current: Optional[Path] = None
        self._last_path: Optional[Path] = None
        self._attached_once = False

    @property
    def current_path(self) -> Optional[Path]:
        return self._current

    def offset(self, path: Path) -> int:
        state = self._states.get(Path(path))
        return state.offset if state else 0

    def candidates(self) -> List[Path]:
        """Combat log files, most recently modified first. Raises ``OSError``."""

        found = []
        for entry in self.directory.iterdir():
            if entry.is_file() and is_combat_log(entry):
                found.append((entry.stat().st_mtime, entry))
        found.sort(key=lambda item: item[0], reverse=True)
        return [path for _, path in found]

    def discover(self) -> Optional[Path]:
        files = self.candidates()
        return files[0] if files else None

    def poll(self) -> int:
        """Check for a newer file or appended bytes. Returns lines delivered."""

        delivered = 0
        if self._current is not None and not self._current.exists():
            logger.info("Combat log %s disappeared; rescanning %s", self._current, self.directory)
            self._current = None
        try:
            newest = self.discover()
        except OSError as exc:
            self._report(f"Cannot scan log folder {self.directory}: {exc}")
            newest = None
        if newest is not None and newest != self._current:
            if self._current is None or self._mtime(newest) > self._mtime(self._current):
                return self._switch_to(newest)
        if self._current is None:
            return 0
        try:
            delivered += self._read_new(self._current)
        except OSError as exc:
            self._report(f"Cannot read combat log {self._current}: {exc}")
        return delivered

    def notify_created(self, path: Path | str) -> int:
        """Handle a directory notification about a new file."""

        candidate = Path(path)
        if not is_combat_log(candidate) or candidate == self._current or not candidate.exists():
            return 0
        if self._current is not None and self._current.exists():
            if self._mtime(candidate) < self._mtime(self._current):
                return 0
        logger.info("New combat log detected: %s", candidate)
        return self._switch_to(candidate)

    def backlog(self, limit: int) -> List[str]:
        """Up to ``limit`` complete lines written before the current file was attached."""

        if self._current is None or limit <= 0:
            return []
        state = self._states[self._current]
        end = state.attach_offset
        if end <= 0:
            return []
        start = max(0, end - limit * _BACKLOG_BYTES_PER_LINE)
        try:
            with self._current.open("rb") as handle:
                handle.seek(start)
                data = handle.read(end - start)
        except OSError as exc:
            self._report(f"Cannot read combat log backlog {self._current}: {exc}")
            return []
        pieces = data.split(b"\n")
        if start > 0:
            pieces = pieces[1:]
        lines = [self._decode(piece) for piece in pieces]
        return [line for line in lines if line][-limit:]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _switch_to(self, path: Path) -> int:
        delivered = 0
        previous = self._current
        if previous is not None and previous != path:
            delivered += self._drain_final(previous)
        initial = not self._attached_once
        self._attached_once = True
        self._current = path
        if path not in self._states:
            offset = self._line_boundary(path) if initial and self.start_at_end else 0
            self._states[path] = TailState(offset=offset, attach_offset=offset)
        if path != self._last_path:
            self._last_path = path
            logger.info("Now monitoring combat log %s", path)
            if self.on_rotation is not None:
                self.on_rotation(path)
        try:
            delivered += self._read_new(path)
        except OSError as exc:
            self._report(f"Cannot read combat log {path}: {exc}")
        return delivered

    def _read_new(self, path: Path) -> int:
        state = self._states[path]
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            if path == self._current:
                self._current = None
            return 0
        if size < state.offset:
            logger.warning("Combat log %s was truncated; restarting from the beginning", path)
            state.offset = 0
            state.attach_offset = 0
            state.remainder = b""
            if self.on_rotation is not None:
                self.on_rotation(path)
        if size == state.offset:
            return 0
        with path.open("rb") as handle:
            handle.seek(state.offset)
            data = handle.read(size - state.offset)
        state.offset += len(data)
        buffered = state.remainder + data
        pieces = buffered.split(b"\n")
        state.remainder = pieces.pop()
        lines = [line for line in (self._decode(piece) for piece in pieces) if line]
        if lines:
            self.on_lines(path, lines)
        return len(lines)

    def _drain_final(self, path: Path) -> int:
        delivered = 0
        if path.exists():
            try:
                delivered = self._read_new(path)
            except OSError as exc:
                self._report(f"Cannot drain combat log {path}: {exc}")
        state = self._states.get(path)
        if state is not None and state.remainder:
            tail = self._decode(state.remainder)
            state.remainder = b""
            if tail:
                self.on_lines(path, [tail])
                delivered += 1
        return delivered

    def _line_boundary(self, path: Path) -> int:
        try:
            size = path.stat().st_size
            start = max(0, size - _BOUNDARY_CHUNK)
            with path.open("rb") as handle:
                handle.seek(start)
                chunk = handle.read(size - start)
        except OSError as exc:
            self._report(f"Cannot inspect combat log {path}: {exc}")
            return 0
        index = chunk.rfind(b"\n")
        if index < 0:
            return 0 if start == 0 else start
        return start + index + 1

    @staticmethod
    def _decode(raw: bytes) -> str:
        return raw.decode("utf-8", errors="replace").rstrip("\r")

    @staticmethod
    def _mtime(path: Path) -> float:
        try:
            return path.stat().st_mtime
        except OSError:
            return 0.0

    def _report(self, message: str) -> None:
        logger.warning("%s", message)
        if self.on_error is not None:
            self.on_error(message)


class DirectoryNotifier:
    """Background thread forwarding newly created combat logs."""

    def __init__(self, directory: Path | str, callback: PathCallback) -> None:
        self.directory = Path(directory)
        self.callback = callback
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="combat-log-notifier", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        logger.info("Watching %s for new combat logs", self.directory)
        try:
            for changes in watch(
                self.directory,
                watch_filter=self._accepts,
                stop_event=self._stop_event,
                recursive=False,
            ):
                for change, raw_path in changes:
                    if change != Change.added:
                        continue
                    try:
                        self.callback(Path(raw_path))
                    except Exception:  # pragma: no cover - runtime safeguard
                        logger.exception("New combat log handler failed for %s", raw_path)
        except OSError as exc:
            logger.warning("Directory watch on %s stopped: %s", self.directory, exc)
        logger.info("Stopped watching %s", self.directory)

    @staticmethod
    def _accepts(change: Change, path: str) -> bool:
        return change == Change.added and is_combat_log(path)
