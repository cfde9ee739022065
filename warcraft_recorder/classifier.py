"""Rule-based classification of parsed lines into session events.

Decision order, first match wins:

1. explicit start marker
2. explicit end marker
3. arena preparation aura
4. heuristic fallback from the accumulator

Markers are looked up by event type first, then by the plain-text phrases
some clients and addons write instead of the structured events.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .heuristics import (
    BatchThresholds,
    HeuristicAccumulator,
    HeuristicThresholds,
    extract_participants,
    is_combat_event,
    is_preparation_marker,
)
from .models import ActivityKind, DetectedEvent, DetectionSource, LogLine, SessionEnd, SessionStart
from .tables import (
    ARENA_KEYWORDS,
    ARENA_MAPS,
    BATTLEGROUND_KEYWORDS,
    BATTLEGROUND_MAPS,
    DUNGEON_KEYWORDS,
    DUNGEON_MAPS,
    RAID_DIFFICULTY_IDS,
    RAID_DIFFICULTY_LEVELS,
    RAID_DIFFICULTY_WORDS,
    RAID_INSTANCES,
    RAID_KEYWORDS,
    lookup_keyword,
    unknown_label,
)
from .utils import strip_quotes

logger = logging.getLogger(__name__)

DETECTED_SUFFIX = "(Detected)"
HEURISTIC_LABEL = f"Arena {DETECTED_SUFFIX}"
BATCH_KEYWORDS = ("pvp", "arena")

PLAYER_COUNT_BRACKETS = (
    ("players: 10", ActivityKind.ARENA_5V5),
    ("players: 6", ActivityKind.ARENA_3V3),
    ("players: 4", ActivityKind.ARENA_2V2),
)

_KEYSTONE_LEVEL = re.compile(r"level (\d+)|Mythic \+(\d+)")
_TIME_TAKEN = re.compile(r"time: (\d+):(\d{2})")


class Boundary(Enum):
    START = "start"
    END = "end"


StartBuilder = Callable[[LogLine], Optional[SessionStart]]
OutcomeBuilder = Callable[[LogLine], str]
TimeBuilder = Callable[[LogLine], Optional[float]]


@dataclass(frozen=True, slots=True)
class Marker:
    """Entry of the explicit marker table."""

    kind: ActivityKind
    boundary: Boundary
    build_start: Optional[StartBuilder] = None
    build_outcome: Optional[OutcomeBuilder] = None
    build_time: Optional[TimeBuilder] = None


def _int_arg(line: LogLine, index: int) -> Optional[int]:
    value = line.arg(index)
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _id_arg(line: LogLine, index: int) -> str:
    return (line.arg(index) or "").strip()


def bracket_from_text(text: str) -> ActivityKind:
    lowered = text.lower()
    if "shuffle" in lowered:
        return ActivityKind.SOLO_SHUFFLE
    if "skirmish" in lowered:
        return ActivityKind.SKIRMISH
    if "5v5" in lowered:
        return ActivityKind.ARENA_5V5
    if "3v3" in lowered:
        return ActivityKind.ARENA_3V3
    if "2v2" in lowered:
        return ActivityKind.ARENA_2V2
    for phrase, kind in PLAYER_COUNT_BRACKETS:
        if phrase in lowered:
            return kind
    return ActivityKind.ARENA_2V2


def bracket_from_participants(count: int) -> ActivityKind:
    if count <= 4:
        return ActivityKind.ARENA_2V2
    if count <= 6:
        return ActivityKind.ARENA_3V3
    return ActivityKind.ARENA_5V5


def keyword_arena_label(text: str) -> str:
    return lookup_keyword(text, ARENA_KEYWORDS) or "Unknown Arena"


def keystone_level(text: str) -> int:
    """Keystone level from ``level N`` or ``Mythic +N``; 0 when absent."""

    match = _KEYSTONE_LEVEL.search(text)
    if not match:
        return 0
    return int(match.group(1) or match.group(2))


def time_taken(text: str) -> Optional[float]:
    """Seconds from a ``time: mm:ss`` fragment."""

    match = _TIME_TAKEN.search(text)
    if not match:
        return None
    return float(int(match.group(1)) * 60 + int(match.group(2)))


def keyword_outcome(line: LogLine) -> str:
    lowered = line.raw.lower()
    if "victory" in lowered or "won" in lowered:
        return "Win"
    if "defeat" in lowered or "lost" in lowered:
        return "Loss"
    return ""


# ----------------------------------------------------------------------
# Structured event builders
# ----------------------------------------------------------------------


def _arena_match_start(line: LogLine) -> SessionStart:
    map_id = _id_arg(line, 1)
    return SessionStart(
        kind=bracket_from_text(line.arg(3) or ""),
        label=ARENA_MAPS.get(map_id) or unknown_label("Arena", map_id),
        observed_at=line.timestamp,
    )


def _skirmish_start(line: LogLine) -> SessionStart:
    label = ARENA_MAPS.get(_id_arg(line, 1)) or keyword_arena_label(line.raw)
    return SessionStart(kind=ActivityKind.SKIRMISH, label=label, observed_at=line.timestamp)


def _challenge_mode_start(line: LogLine) -> SessionStart:
    # CHALLENGE_MODE_START,"zone",instanceID,challengeModeID,keystoneLevel,[affixes]
    instance_id = _id_arg(line, 2)
    label = DUNGEON_MAPS.get(instance_id) or strip_quotes(line.arg(1) or "")
    level = _int_arg(line, 4)
    return SessionStart(
        kind=ActivityKind.MYTHIC_PLUS,
        label=label or unknown_label("Mythic+", instance_id),
        observed_at=line.timestamp,
        difficulty=level if level is not None else keystone_level(line.raw),
    )


def _encounter_start(line: LogLine) -> Optional[SessionStart]:
    # ENCOUNTER_START,encounterID,"name",difficultyID,groupSize,instanceID
    difficulty_id = _int_arg(line, 3)
    if difficulty_id not in RAID_DIFFICULTY_IDS:
        return None
    instance_id = _id_arg(line, 5)
    label = RAID_INSTANCES.get(instance_id) or strip_quotes(line.arg(2) or "")
    return SessionStart(
        kind=ActivityKind.RAID,
        label=label or unknown_label("Raid", instance_id),
        observed_at=line.timestamp,
        difficulty=RAID_DIFFICULTY_LEVELS.get(difficulty_id, 0),
    )


def _battleground_start(line: LogLine) -> SessionStart:
    map_id = _id_arg(line, 1)
    label = BATTLEGROUND_MAPS.get(map_id) or lookup_keyword(line.raw, BATTLEGROUND_KEYWORDS)
    return SessionStart(
        kind=ActivityKind.BATTLEGROUND,
        label=label or unknown_label("Battleground", map_id),
        observed_at=line.timestamp,
    )


def _challenge_mode_outcome(line: LogLine) -> str:
    # CHALLENGE_MODE_END,instanceID,success,keystoneLevel,totalTime
    success = _int_arg(line, 2)
    if success is None:
        return keyword_outcome(line)
    return "Completed in time" if success else "Not in time"


def _challenge_mode_time(line: LogLine) -> Optional[float]:
    total_ms = _int_arg(line, 4)
    if total_ms is None:
        return time_taken(line.raw)
    return total_ms / 1000.0


def _encounter_outcome(line: LogLine) -> str:
    success = _int_arg(line, 5)
    if success is None:
        return keyword_outcome(line)
    return "Success" if success else "Wipe"


# ----------------------------------------------------------------------
# Text line builders
# ----------------------------------------------------------------------


def _text_arena_start(line: LogLine) -> SessionStart:
    return SessionStart(
        kind=bracket_from_text(line.raw),
        label=keyword_arena_label(line.raw),
        observed_at=line.timestamp,
    )


def _text_skirmish_start(line: LogLine) -> SessionStart:
    return SessionStart(kind=ActivityKind.SKIRMISH, label=keyword_arena_label(line.raw), observed_at=line.timestamp)


def _text_keystone_start(line: LogLine) -> SessionStart:
    return SessionStart(
        kind=ActivityKind.MYTHIC_PLUS,
        label=lookup_keyword(line.raw, DUNGEON_KEYWORDS) or "Unknown Dungeon",
        observed_at=line.timestamp,
        difficulty=keystone_level(line.raw),
    )


def _text_keystone_outcome(line: LogLine) -> str:
    lowered = line.raw.lower()
    if "not completed in time" in lowered:
        return "Not in time"
    if "completed in time" in lowered or "keystone upgrade" in lowered:
        return "Completed in time"
    return ""


def _text_battleground_start(line: LogLine) -> SessionStart:
    return SessionStart(
        kind=ActivityKind.BATTLEGROUND,
        label=lookup_keyword(line.raw, BATTLEGROUND_KEYWORDS) or "Unknown Battleground",
        observed_at=line.timestamp,
    )


def _text_raid_start(line: LogLine) -> SessionStart:
    difficulty = next((level for word, level in RAID_DIFFICULTY_WORDS if word in line.raw), 0)
    return SessionStart(
        kind=ActivityKind.RAID,
        label=lookup_keyword(line.raw, RAID_KEYWORDS) or "Unknown Raid",
        observed_at=line.timestamp,
        difficulty=difficulty,
    )


def _text_raid_outcome(line: LogLine) -> str:
    lowered = line.raw.lower()
    if "success" in lowered or "kill" in lowered:
        return "Success"
    if "wipe" in lowered or "failure" in lowered:
        return "Wipe"
    return ""


MARKERS: Dict[str, Marker] = {
    "ARENA_MATCH_START": Marker(ActivityKind.ARENA_2V2, Boundary.START, build_start=_arena_match_start),
    "ARENA_SKIRMISH_START": Marker(ActivityKind.SKIRMISH, Boundary.START, build_start=_skirmish_start),
    "CHALLENGE_MODE_START": Marker(ActivityKind.MYTHIC_PLUS, Boundary.START, build_start=_challenge_mode_start),
    "ENCOUNTER_START": Marker(ActivityKind.RAID, Boundary.START, build_start=_encounter_start),
    "BATTLEGROUND_START": Marker(ActivityKind.BATTLEGROUND, Boundary.START, build_start=_battleground_start),
    "BATTLEFIELD_MATCH_START": Marker(ActivityKind.BATTLEGROUND, Boundary.START, build_start=_battleground_start),
    "ARENA_MATCH_END": Marker(ActivityKind.ARENA_2V2, Boundary.END, build_outcome=keyword_outcome),
    "ARENA_SKIRMISH_END": Marker(ActivityKind.SKIRMISH, Boundary.END, build_outcome=keyword_outcome),
    "CHALLENGE_MODE_END": Marker(
        ActivityKind.MYTHIC_PLUS,
        Boundary.END,
        build_outcome=_challenge_mode_outcome,
        build_time=_challenge_mode_time,
    ),
    "ENCOUNTER_END": Marker(ActivityKind.RAID, Boundary.END, build_outcome=_encounter_outcome),
    "BATTLEGROUND_END": Marker(ActivityKind.BATTLEGROUND, Boundary.END, build_outcome=keyword_outcome),
    "BATTLEFIELD_MATCH_END": Marker(ActivityKind.BATTLEGROUND, Boundary.END, build_outcome=keyword_outcome),
}

# Lower-cased phrases, checked in order against the raw line.
TEXT_MARKERS: List[Tuple[str, Marker]] = [
    ("entering arena:", Marker(ActivityKind.ARENA_2V2, Boundary.START, build_start=_text_arena_start)),
    ("arena match completed", Marker(ActivityKind.ARENA_2V2, Boundary.END, build_outcome=keyword_outcome)),
    ("skirmish started", Marker(ActivityKind.SKIRMISH, Boundary.START, build_start=_text_skirmish_start)),
    ("skirmish ended", Marker(ActivityKind.SKIRMISH, Boundary.END, build_outcome=keyword_outcome)),
    (
        "mythic keystone run started",
        Marker(ActivityKind.MYTHIC_PLUS, Boundary.START, build_start=_text_keystone_start),
    ),
    (
        "mythic keystone run completed",
        Marker(
            ActivityKind.MYTHIC_PLUS,
            Boundary.END,
            build_outcome=_text_keystone_outcome,
            build_time=lambda line: time_taken(line.raw),
        ),
    ),
    (
        "entering battleground:",
        Marker(ActivityKind.BATTLEGROUND, Boundary.START, build_start=_text_battleground_start),
    ),
    ("battleground match complete", Marker(ActivityKind.BATTLEGROUND, Boundary.END, build_outcome=keyword_outcome)),
    ("raid encounter started", Marker(ActivityKind.RAID, Boundary.START, build_start=_text_raid_start)),
    ("raid encounter complete", Marker(ActivityKind.RAID, Boundary.END, build_outcome=_text_raid_outcome)),
]


def marker_for(line: LogLine) -> Optional[Marker]:
    marker = MARKERS.get(line.event_type)
    if marker is not None:
        return marker
    lowered = line.raw.lower()
    for phrase, text_marker in TEXT_MARKERS:
        if phrase in lowered:
            return text_marker
    return None


def is_end_marker(line: LogLine) -> bool:
    marker = marker_for(line)
    return marker is not None and marker.boundary is Boundary.END


def session_start_index(lines: Sequence[LogLine]) -> int:
    """Index of the line a batch start would come from, or -1."""

    preparation = -1
    for index, line in enumerate(lines):
        marker = marker_for(line)
        if marker is not None and marker.boundary is Boundary.START and marker.build_start is not None:
            if marker.build_start(line) is not None:
                return index
        elif preparation < 0 and is_preparation_marker(line):
            preparation = index
    return preparation


class EventClassifier:
    """Maps parsed lines to at most one session event.

    The accumulator is not reset on end markers here. The owner calls
    ``begin_session`` and ``end_session`` once the controller has accepted
    the event, so an end marker for another activity leaves the live
    session's participants intact.
    """

    def __init__(
        self,
        thresholds: HeuristicThresholds | None = None,
        batch_thresholds: BatchThresholds | None = None,
    ) -> None:
        self.thresholds = thresholds or HeuristicThresholds()
        self.batch_thresholds = batch_thresholds or BatchThresholds()

    def classify_line(
        self,
        line: LogLine,
        acc: HeuristicAccumulator,
        *,
        session_active: bool = False,
    ) -> Optional[DetectedEvent]:
        acc.observe(line)
        marker = marker_for(line)
        if marker is not None:
            if marker.boundary is Boundary.END:
                return self._end_from_marker(marker, line, acc)
            start = self._start_from_marker(marker, line)
            if start is not None:
                return start
        if is_preparation_marker(line):
            return self._preparation_start(line)
        if session_active or acc.heuristic_emitted:
            return None
        if not acc.likely_active(self.thresholds):
            return None
        acc.heuristic_emitted = True
        logger.info(
            "Heuristic session start: %s combat events, %s participants",
            acc.combat_event_count,
            len(acc.participants),
        )
        return self._heuristic_start(line.timestamp, len(acc.participants))

    def classify_batch(
        self,
        lines: Iterable[LogLine],
        acc: HeuristicAccumulator,
        *,
        session_active: bool = False,
    ) -> Optional[DetectedEvent]:
        first_start: Optional[SessionStart] = None
        first_end: Optional[tuple[Marker, LogLine]] = None
        first_preparation: Optional[LogLine] = None
        combat_events = 0
        keyword_lines = 0
        participants: List[str] = []
        last_seen: Optional[datetime] = None

        for line in lines:
            acc.observe(line)
            last_seen = line.timestamp
            marker = marker_for(line)
            if marker is not None:
                if marker.boundary is Boundary.START and first_start is None:
                    first_start = self._start_from_marker(marker, line)
                elif marker.boundary is Boundary.END and first_end is None:
                    first_end = (marker, line)
            elif first_preparation is None and is_preparation_marker(line):
                first_preparation = line
            if is_combat_event(line.event_type):
                combat_events += 1
                for name in extract_participants(line.fields):
                    if name not in participants:
                        participants.append(name)
            lowered = line.raw.lower()
            if any(keyword in lowered for keyword in BATCH_KEYWORDS):
                keyword_lines += 1

        if first_start is not None:
            return first_start
        if first_end is not None:
            return self._end_from_marker(first_end[0], first_end[1], acc)
        if first_preparation is not None:
            return self._preparation_start(first_preparation)
        if last_seen is None or session_active or acc.heuristic_emitted:
            return None
        limits = self.batch_thresholds
        if (
            combat_events >= limits.min_combat_events
            and len(participants) >= limits.min_participants
            and keyword_lines >= limits.min_keyword_lines
        ):
            acc.heuristic_emitted = True
            logger.info(
                "Batch heuristic session start: %s combat events, %s participants, %s keyword lines",
                combat_events,
                len(participants),
                keyword_lines,
            )
            return self._heuristic_start(last_seen, len(participants))
        return None

    # ------------------------------------------------------------------
    # Session bookkeeping
    # ------------------------------------------------------------------

    @staticmethod
    def begin_session(
        acc: HeuristicAccumulator,
        start: SessionStart,
        following: Iterable[LogLine] = (),
    ) -> None:
        """Scope participants to an accepted start.

        Heuristic starts keep what triggered them. Other starts drop earlier
        combat and re-observe ``following``, the lines after the start that
        were already consumed.
        """

        if start.source is DetectionSource.HEURISTIC:
            return
        acc.start_session()
        acc.observe_all(following)

    @staticmethod
    def end_session(acc: HeuristicAccumulator) -> None:
        """Clear all state, re-arming the heuristic."""

        acc.reset()

    # ------------------------------------------------------------------
    # Event builders
    # ------------------------------------------------------------------

    @staticmethod
    def _start_from_marker(marker: Marker, line: LogLine) -> Optional[SessionStart]:
        if marker.build_start is None:
            return None
        return marker.build_start(line)

    @staticmethod
    def _end_from_marker(marker: Marker, line: LogLine, acc: HeuristicAccumulator) -> SessionEnd:
        return SessionEnd(
            observed_at=line.timestamp,
            kind=marker.kind,
            outcome=marker.build_outcome(line) if marker.build_outcome else "",
            participants=acc.participant_names(),
            time_taken=marker.build_time(line) if marker.build_time else None,
        )

    @staticmethod
    def _preparation_start(line: LogLine) -> SessionStart:
        return SessionStart(
            kind=ActivityKind.ARENA_2V2,
            label=keyword_arena_label(line.raw),
            observed_at=line.timestamp,
            source=DetectionSource.PREPARATION,
        )

    @staticmethod
    def _heuristic_start(observed_at: datetime, participant_count: int) -> SessionStart:
        return SessionStart(
            kind=bracket_from_participants(participant_count),
            label=HEURISTIC_LABEL,
            observed_at=observed_at,
            source=DetectionSource.HEURISTIC,
        )
