import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path

from warcraft_recorder.models import ActivityKind, SessionRecord
from warcraft_recorder.reporting import daily_report, format_duration, recording_stats, render_record
from warcraft_recorder.store import SQLiteSessionStore


def make_record(kind: ActivityKind, *, started_at: datetime, duration: float, path: str = "", **kwargs) -> SessionRecord:
    return SessionRecord(
        kind=kind,
        label=kwargs.pop("label", "Nagrand Arena"),
        started_at=started_at,
        duration=duration,
        artifact_path=path,
        **kwargs,
    )


class SQLiteSessionStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.dir = Path(tmpdir.name)
        self.store = SQLiteSessionStore(self.dir / "sessions.db")
        self.addCleanup(self.store.close)

    def test_save_and_list_round_trip_newest_first(self) -> None:
        first = make_record(
            ActivityKind.ARENA_3V3,
            started_at=datetime(2025, 5, 14, 11, 0),
            duration=120.0,
            outcome="Win",
            participants=("Alice", "Bob"),
        )
        second = make_record(
            ActivityKind.MYTHIC_PLUS,
            label="Plaguefall",
            started_at=datetime(2025, 5, 14, 20, 0),
            duration=1800.0,
            difficulty=15,
            time_taken=1785.5,
        )
        self.store.save(first)
        self.store.save(second)

        records = self.store.list()

        self.assertEqual([record.id for record in records], [second.id, first.id])
        self.assertEqual(records[1], first)
        self.assertEqual(self.store.get(second.id).difficulty, 15)
        self.assertEqual(self.store.get(second.id).time_taken, 1785.5)
        self.assertIsNone(self.store.get(first.id).time_taken)
        self.assertEqual(self.store.list_by_kind(ActivityKind.ARENA_3V3), [first])

    def test_save_same_id_updates(self) -> None:
        record = make_record(ActivityKind.RAID, started_at=datetime(2025, 5, 14), duration=10.0)
        self.store.save(record)
        updated = SessionRecord(
            id=record.id,
            kind=record.kind,
            label="Castle Nathria",
            started_at=record.started_at,
            duration=20.0,
        )
        self.store.save(updated)

        self.assertEqual(len(self.store.list()), 1)
        self.assertEqual(self.store.get(record.id).label, "Castle Nathria")

    def test_delete_removes_artifact_directory(self) -> None:
        artifact = self.dir / "2v2_Nagrand_Arena"
        artifact.mkdir()
        (artifact / "frame_000001.png").write_bytes(b"png")
        record = make_record(
            ActivityKind.ARENA_2V2, started_at=datetime(2025, 5, 14), duration=5.0, path=str(artifact)
        )
        self.store.save(record)

        self.store.delete(record)

        self.assertIsNone(self.store.get(record.id))
        self.assertFalse(artifact.exists())

    def test_prune_missing_drops_records_without_artifacts(self) -> None:
        kept = make_record(ActivityKind.CLIP, started_at=datetime(2025, 5, 14), duration=1.0)
        gone = make_record(
            ActivityKind.CLIP, started_at=datetime(2025, 5, 15), duration=1.0, path=str(self.dir / "missing")
        )
        self.store.save(kept)
        self.store.save(gone)

        self.assertEqual(self.store.prune_missing(), 1)
        self.assertEqual([record.id for record in self.store.list()], [kept.id])

    def test_stats_totals_by_kind(self) -> None:
        self.store.save(make_record(ActivityKind.ARENA_2V2, started_at=datetime(2025, 5, 14), duration=60.0))
        self.store.save(make_record(ActivityKind.ARENA_2V2, started_at=datetime(2025, 5, 14), duration=30.0))
        self.store.save(make_record(ActivityKind.RAID, started_at=datetime(2025, 5, 14), duration=600.0))

        stats = self.store.stats()

        self.assertEqual(stats.total_count, 3)
        self.assertEqual(stats.total_duration, 690.0)
        self.assertEqual(stats.count_by_kind[ActivityKind.ARENA_2V2], 2)
        self.assertEqual(stats.duration_by_kind[ActivityKind.RAID], 600.0)
        self.assertEqual(stats.count_by_kind[ActivityKind.CLIP], 0)


class ReportingTests(unittest.TestCase):
    def test_format_duration(self) -> None:
        self.assertEqual(format_duration(59.6), "1m00s")
        self.assertEqual(format_duration(3725), "1h02m05s")

    def test_daily_report_filters_by_date(self) -> None:
        records = [
            make_record(ActivityKind.ARENA_2V2, started_at=datetime(2025, 5, 14, 10), duration=60.0, outcome="Win"),
            make_record(ActivityKind.ARENA_2V2, started_at=datetime(2025, 5, 14, 11), duration=60.0, outcome="Loss"),
            make_record(ActivityKind.RAID, started_at=datetime(2025, 5, 13, 21), duration=600.0),
        ]

        report = daily_report(records, target_date=date(2025, 5, 14))
        text = report.render_text()

        self.assertIn("Total sessions: 2", text)
        self.assertIn("- 2v2: 2 (2m00s)", text)
        self.assertNotIn("Raids", text)
        self.assertEqual(recording_stats(records).total_count, 3)

    def test_empty_day(self) -> None:
        report = daily_report([], target_date=date(2025, 5, 14))

        self.assertEqual(report.summary_lines, ["No sessions recorded."])

    def test_render_record(self) -> None:
        record = make_record(
            ActivityKind.MYTHIC_PLUS,
            label="Plaguefall",
            started_at=datetime(2025, 5, 14, 20, 0, 5),
            duration=1805.0,
            outcome="Completed in time",
            difficulty=15,
        )

        self.assertEqual(
            render_record(record),
            "[Mythic+] Plaguefall @ 2025-05-14 20:00:05 (30m05s) - Completed in time +15",
        )

    def test_render_record_with_time_taken(self) -> None:
        record = make_record(
            ActivityKind.MYTHIC_PLUS,
            label="Plaguefall",
            started_at=datetime(2025, 5, 14, 20, 0, 5),
            duration=1805.0,
            outcome="Completed in time",
            difficulty=15,
            time_taken=1785.0,
        )

        self.assertTrue(render_record(record).endswith("+15 in 29m45s"))


if __name__ == "__main__":
    unittest.main()
