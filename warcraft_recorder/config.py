"""Environment driven configuration for the monitor."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from .heuristics import BatchThresholds, HeuristicThresholds
from .process import DEFAULT_PROCESS_NAMES
from .utils import parse_bool

ENV_PREFIX = "WARCRAFT_RECORDER_"


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


@dataclass(slots=True)
class MonitorConfig:
    """Settings for a monitoring run."""

    log_dir: Optional[Path] = None
    poll_interval: float = 1.0
    recordings_dir: Path = Path("recordings")
    database_path: Path = Path("recordings.db")
    capture_fps: float = 2.0
    backlog_lines: int = 200
    watch_directory: bool = True
    thresholds: HeuristicThresholds = field(default_factory=HeuristicThresholds)
    batch_thresholds: BatchThresholds = field(default_factory=BatchThresholds)
    process_names: Tuple[str, ...] = DEFAULT_PROCESS_NAMES

    @classmethod
    def from_env(cls) -> "MonitorConfig":
        log_dir = _env("LOG_DIR")
        defaults = HeuristicThresholds()
        thresholds = HeuristicThresholds(
            combat_threshold=int(_env("COMBAT_THRESHOLD", str(defaults.combat_threshold))),
            min_participants=int(_env("MIN_PARTICIPANTS", str(defaults.min_participants))),
            require_preparation=parse_bool(_env("REQUIRE_PREPARATION"), defaults.require_preparation),
        )
        names = _env("PROCESS_NAMES")
        return cls(
            log_dir=Path(log_dir).expanduser() if log_dir else None,
            poll_interval=float(_env("POLL_INTERVAL", "1.0")),
            recordings_dir=Path(_env("RECORDINGS_DIR", "recordings")).expanduser(),
            database_path=Path(_env("DATABASE", "recordings.db")).expanduser(),
            capture_fps=float(_env("CAPTURE_FPS", "2.0")),
            backlog_lines=int(_env("BACKLOG_LINES", "200")),
            watch_directory=parse_bool(_env("WATCH_DIRECTORY"), True),
            thresholds=thresholds,
            process_names=tuple(n.strip() for n in names.split(",") if n.strip()) if names else DEFAULT_PROCESS_NAMES,
        )
