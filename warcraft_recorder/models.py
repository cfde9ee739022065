"""Data models shared by the combat log pipeline."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Tuple, Union


class ActivityKind(Enum):
    """Closed set of activities the recorder knows how to detect."""

    ARENA_2V2 = "2v2"
    ARENA_3V3 = "3v3"
    ARENA_5V5 = "5v5"
    SKIRMISH = "Skirmish"
    SOLO_SHUFFLE = "Solo Shuffle"
    MYTHIC_PLUS = "Mythic+"
    RAID = "Raids"
    BATTLEGROUND = "Battlegrounds"
    CLIP = "Clips"

    @property
    def family(self) -> str:
        if self in _ARENA_FAMILY:
            return "arena"
        return self.value

    def same_family(self, other: "ActivityKind") -> bool:
        return self.family == other.family


_ARENA_FAMILY = frozenset(
    {
        ActivityKind.ARENA_2V2,
        ActivityKind.ARENA_3V3,
        ActivityKind.ARENA_5V5,
        ActivityKind.SKIRMISH,
        ActivityKind.SOLO_SHUFFLE,
    }
)


class DetectionSource(Enum):
    MARKER = "marker"
    PREPARATION = "preparation"
    HEURISTIC = "heuristic"
    MANUAL = "manual"


@dataclass(frozen=True, slots=True)
class LogLine:
    """One parsed combat log line."""

    timestamp: datetime
    event_type: str
    fields: Tuple[str, ...]
    raw: str

    def arg(self, index: int) -> Optional[str]:
        if 0 <= index < len(self.fields):
            return self.fields[index]
        return None


@dataclass(frozen=True, slots=True)
class SessionStart:
    """Start signal for an activity session."""

    kind: ActivityKind
    label: str
    observed_at: datetime
    difficulty: int = 0
    source: DetectionSource = DetectionSource.MARKER


@dataclass(frozen=True, slots=True)
class SessionEnd:
    """End signal. ``kind`` restricts which session family it may close."""

    observed_at: datetime
    kind: Optional[ActivityKind] = None
    outcome: str = ""
    participants: Tuple[str, ...] = ()
    time_taken: Optional[float] = None

    def closes(self, active: ActivityKind) -> bool:
        return self.kind is None or self.kind.same_family(active)


DetectedEvent = Union[SessionStart, SessionEnd]


@dataclass(slots=True)
class StartResult:
    """Outcome of ``Recorder.start``."""

    ok: bool
    path: Optional[Path] = None
    error: str = ""
    handle: Any = None


@dataclass(slots=True)
class RecordingArtifact:
    """What the recorder hands back when a capture stops."""

    path: Optional[Path]
    duration: Optional[float] = None


@dataclass(slots=True)
class Session:
    """The single live session owned by the controller."""

    kind: ActivityKind
    label: str
    started_at: datetime
    recorder_handle: Any = None
    difficulty: int = 0
    artifact_path: Optional[Path] = None


@dataclass(frozen=True, slots=True)
class SessionRecord:
    """Finalised session handed to the store."""

    kind: ActivityKind
    label: str
    started_at: datetime
    duration: float = 0.0
    artifact_path: str = ""
    outcome: str = ""
    difficulty: int = 0
    participants: Tuple[str, ...] = ()
    time_taken: Optional[float] = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
