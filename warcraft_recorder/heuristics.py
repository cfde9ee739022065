"""Rolling counters used when explicit session markers are missing."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from .models import LogLine
from .utils import strip_quotes

PREPARATION_MARKERS = ("ARENA_PREPARATION", "Arena Preparation")
PREPARATION_SPELL_IDS = frozenset({"32727", "32728"})


@dataclass(slots=True)
class HeuristicThresholds:
    """Single-line heuristic thresholds."""

    combat_threshold: int = 15
    min_participants: int = 3
    require_preparation: bool = True


@dataclass(slots=True)
class BatchThresholds:
    """Stricter thresholds applied to aggregate batch statistics."""

    min_combat_events: int = 25
    min_participants: int = 4
    min_keyword_lines: int = 2


def is_combat_event(event_type: str) -> bool:
    return event_type.endswith(("_DAMAGE", "_DAMAGE_LANDED", "_HEAL"))


def is_preparation_marker(line: LogLine) -> bool:
    if line.event_type != "SPELL_AURA_APPLIED":
        return False
    for value in line.fields:
        if any(marker in value for marker in PREPARATION_MARKERS):
            return True
        if value.strip() in PREPARATION_SPELL_IDS:
            return True
    return False


def extract_participants(fields: Sequence[str]) -> List[str]:
    """Names following any ``Player-`` GUID field, unquoted, in order."""

    names: List[str] = []
    for index, value in enumerate(fields[:-1]):
        if "Player-" not in value:
            continue
        name = strip_quotes(fields[index + 1])
        if name and name != "nil" and name not in names:
            names.append(name)
    return names


@dataclass(slots=True)
class HeuristicAccumulator:
    """Mutable heuristic state for one monitored log file.

    Only the classifier mutates it; it performs no I/O.
    """

    combat_event_count: int = 0
    participants: Dict[str, None] = field(default_factory=dict)
    preparation_seen: bool = False
    last_activity_at: Optional[datetime] = None
    heuristic_emitted: bool = False

    def observe(self, line: LogLine) -> None:
        if not line.event_type:
            return
        if is_combat_event(line.event_type):
            self.combat_event_count += 1
            for name in extract_participants(line.fields):
                self.participants.setdefault(name, None)
        if is_preparation_marker(line):
            self.preparation_seen = True
        self.last_activity_at = line.timestamp

    def observe_all(self, lines: Iterable[LogLine]) -> None:
        for line in lines:
            self.observe(line)

    def start_session(self) -> None:
        """Forget combat seen before an accepted session start."""

        self.combat_event_count = 0
        self.participants.clear()

    def reset(self) -> None:
        self.combat_event_count = 0
        self.participants.clear()
        self.preparation_seen = False
        self.last_activity_at = None
        self.heuristic_emitted = False

    def likely_active(self, thresholds: HeuristicThresholds) -> bool:
        if self.combat_event_count <= thresholds.combat_threshold:
            return False
        if len(self.participants) < thresholds.min_participants:
            return False
        return self.preparation_seen or not thresholds.require_preparation

    def participant_names(self) -> tuple[str, ...]:
        return tuple(self.participants)
