"""SQLite-backed persistence of finished session records."""

from __future__ import annotations

import json
import logging
import shutil
import sqlite3
import threading
import uuid
from contextlib import closing
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .models import ActivityKind, SessionRecord
from .reporting import RecordingStats, recording_stats

logger = logging.getLogger(__name__)


class SQLiteSessionStore:
    """Persist session records and the artifacts they point to."""

    def __init__(self, db_path: str | Path = ":memory:") -> None:
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        with self._lock, closing(self.conn.cursor()) as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    kind TEXT NOT NULL,
                    label TEXT NOT NULL,
                    started_at TEXT NOT NULL,
                    duration REAL NOT NULL,
                    artifact_path TEXT NOT NULL,
                    outcome TEXT NOT NULL,
                    difficulty INTEGER NOT NULL,
                    participants TEXT NOT NULL,
                    time_taken REAL
                )
                """
            )
            cur.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_sessions_started
                ON sessions(started_at)
                """
            )
            self.conn.commit()

    def save(self, record: SessionRecord) -> None:
        if record.artifact_path and not Path(record.artifact_path).exists():
            logger.warning("Recording artifact does not exist: %s", record.artifact_path)
        payload = (
            str(record.id),
            record.kind.value,
            record.label,
            record.started_at.isoformat(),
            record.duration,
            record.artifact_path,
            record.outcome,
            record.difficulty,
            json.dumps(list(record.participants), ensure_ascii=False),
            record.time_taken,
        )
        with self._lock, closing(self.conn.cursor()) as cur:
            cur.execute(
                """
                INSERT INTO sessions (
                    id, kind, label, started_at, duration, artifact_path, outcome, difficulty, participants, time_taken
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    kind=excluded.kind,
                    label=excluded.label,
                    started_at=excluded.started_at,
                    duration=excluded.duration,
                    artifact_path=excluded.artifact_path,
                    outcome=excluded.outcome,
                    difficulty=excluded.difficulty,
                    participants=excluded.participants,
                    time_taken=excluded.time_taken
                """,
                payload,
            )
            self.conn.commit()

    def delete(self, record: SessionRecord) -> None:
        with self._lock, closing(self.conn.cursor()) as cur:
            cur.execute("DELETE FROM sessions WHERE id = ?", (str(record.id),))
            removed = cur.rowcount
            self.conn.commit()
        if removed:
            self._delete_artifact(record.artifact_path)

    def get(self, record_id: uuid.UUID | str) -> Optional[SessionRecord]:
        with self._lock, closing(self.conn.cursor()) as cur:
            cur.execute("SELECT * FROM sessions WHERE id = ?", (str(record_id),))
            row = cur.fetchone()
        if not row:
            return None
        return self._row_to_record(row)

    def list(self) -> List[SessionRecord]:
        with self._lock, closing(self.conn.cursor()) as cur:
            cur.execute("SELECT * FROM sessions ORDER BY started_at DESC")
            rows = cur.fetchall()
        return [self._row_to_record(row) for row in rows]

    def list_by_kind(self, kind: ActivityKind) -> List[SessionRecord]:
        return [record for record in self.list() if record.kind is kind]

    def prune_missing(self) -> int:
        """Drop records whose artifact no longer exists on disk."""

        missing = [
            record
            for record in self.list()
            if record.artifact_path and not Path(record.artifact_path).exists()
        ]
        with self._lock, closing(self.conn.cursor()) as cur:
            for record in missing:
                logger.warning("Recording artifact missing, dropping record: %s", record.artifact_path)
                cur.execute("DELETE FROM sessions WHERE id = ?", (str(record.id),))
            self.conn.commit()
        return len(missing)

    def stats(self) -> RecordingStats:
        return recording_stats(self.list())

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> SessionRecord:
        return SessionRecord(
            id=uuid.UUID(row["id"]),
            kind=ActivityKind(row["kind"]),
            label=row["label"],
            started_at=datetime.fromisoformat(row["started_at"]),
            duration=float(row["duration"]),
            artifact_path=row["artifact_path"],
            outcome=row["outcome"],
            difficulty=int(row["difficulty"]),
            participants=tuple(json.loads(row["participants"])),
            time_taken=row["time_taken"],
        )

    @staticmethod
    def _delete_artifact(path: str) -> None:
        if not path:
            return
        target = Path(path)
        try:
            if target.is_dir():
                shutil.rmtree(target)
            elif target.exists():
                target.unlink()
        except OSError as exc:
            logger.warning("Error deleting recording artifact %s: %s", target, exc)

    def close(self) -> None:
        with self._lock:
            self.conn.close()
