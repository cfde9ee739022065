import threading
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from warcraft_recorder.models import ActivityKind, RecordingArtifact, SessionRecord, StartResult


NAGRAND_START = "5/14/2025 11:30:00.000  ARENA_MATCH_START,559,33,2v2,0"
NAGRAND_END = "5/14/2025 11:34:10.000  ARENA_MATCH_END,0,250,1500,1520"


def damage_line(index: int, source: str, target: str, *, second: int = 0) -> str:
    return (
        f"5/14/2025 11:31:{second:02d}.{index:03d}  SPELL_DAMAGE,"
        f"Player-1-{index:04d},\"{source}\",0x511,0x0,Player-2-{index:04d},\"{target}\",0x548,0x0,"
        "133,\"Fireball\",0x4,1200"
    )


class FakeRecorder:
    """Counts calls and can fail or block on demand."""

    def __init__(self, *, fail_start: bool = False, fail_stop: bool = False, raise_on_start: bool = False) -> None:
        self.fail_start = fail_start
        self.fail_stop = fail_stop
        self.raise_on_start = raise_on_start
        self.start_calls: List[tuple] = []
        self.stop_calls = 0
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()

    def start(self, kind: ActivityKind, label: str) -> StartResult:
        self.start_calls.append((kind, label))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.raise_on_start:
            raise RuntimeError("capture device missing")
        if self.fail_start:
            return StartResult(ok=False, error="encoder unavailable")
        return StartResult(ok=True, path=Path(f"/tmp/{kind.name.lower()}"), handle=len(self.start_calls))

    def stop(self) -> Optional[RecordingArtifact]:
        self.stop_calls += 1
        if self.fail_stop:
            raise RuntimeError("encoder crashed")
        return RecordingArtifact(path=Path("/tmp/recording"), duration=42.0)


class MemoryStore:
    def __init__(self, *, fail_save: bool = False) -> None:
        self.records: List[SessionRecord] = []
        self.fail_save = fail_save

    def save(self, record: SessionRecord) -> None:
        if self.fail_save:
            raise OSError("disk full")
        self.records.append(record)

    def delete(self, record: SessionRecord) -> None:
        self.records = [item for item in self.records if item.id != record.id]

    def list(self) -> List[SessionRecord]:
        return list(self.records)


class FakeProbe:
    def __init__(self, running: bool = True) -> None:
        self.running = running

    def is_target_running(self) -> bool:
        return self.running


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now
