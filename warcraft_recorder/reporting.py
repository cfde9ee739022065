"""Reporting utilities over stored session records."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List

from .models import ActivityKind, SessionRecord


@dataclass(slots=True)
class Report:
    title: str
    summary_lines: List[str]

    def render_text(self) -> str:
        return "\n".join([self.title, "-" * len(self.title), *self.summary_lines])


@dataclass(slots=True)
class RecordingStats:
    total_count: int = 0
    total_duration: float = 0.0
    count_by_kind: Dict[ActivityKind, int] = field(default_factory=dict)
    duration_by_kind: Dict[ActivityKind, float] = field(default_factory=dict)


def recording_stats(records: Iterable[SessionRecord]) -> RecordingStats:
    stats = RecordingStats(
        count_by_kind={kind: 0 for kind in ActivityKind},
        duration_by_kind={kind: 0.0 for kind in ActivityKind},
    )
    for record in records:
        stats.total_count += 1
        stats.total_duration += record.duration
        stats.count_by_kind[record.kind] += 1
        stats.duration_by_kind[record.kind] += record.duration
    return stats


def format_duration(seconds: float) -> str:
    minutes, secs = divmod(int(round(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h{minutes:02d}m{secs:02d}s"
    return f"{minutes}m{secs:02d}s"


def daily_report(records: Iterable[SessionRecord], *, target_date: date | None = None) -> Report:
    target_date = target_date or datetime.now().date()
    day_records = [record for record in records if record.started_at.date() == target_date]
    title = f"{target_date} Daily Report"
    if not day_records:
        return Report(title=title, summary_lines=["No sessions recorded."])
    stats = recording_stats(day_records)
    outcomes = Counter(record.outcome for record in day_records if record.outcome)
    lines = [
        f"Total sessions: {stats.total_count}",
        f"Recorded time: {format_duration(stats.total_duration)}",
    ]
    for kind in ActivityKind:
        count = stats.count_by_kind[kind]
        if count:
            lines.append(f"- {kind.value}: {count} ({format_duration(stats.duration_by_kind[kind])})")
    for outcome, count in outcomes.most_common():
        lines.append(f"  {outcome}: {count}")
    return Report(title=title, summary_lines=lines)


def render_record(record: SessionRecord) -> str:
    when = record.started_at.strftime("%Y-%m-%d %H:%M:%S")
    line = f"[{record.kind.value}] {record.label} @ {when} ({format_duration(record.duration)})"
    if record.outcome:
        line += f" - {record.outcome}"
    if record.difficulty:
        line += f" +{record.difficulty}"
    if record.time_taken is not None:
        line += f" in {format_duration(record.time_taken)}"
    return line
