import threading
import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

from warcraft_recorder.controller import SessionController, SessionState
from warcraft_recorder.models import ActivityKind, SessionEnd, SessionStart
from warcraft_recorder.status import StatusFeed

from tests.support import FakeRecorder, FixedClock, MemoryStore

T0 = datetime(2025, 5, 14, 11, 30, 0)


def arena_start(label: str = "Nagrand Arena") -> SessionStart:
    return SessionStart(kind=ActivityKind.ARENA_2V2, label=label, observed_at=T0)


def arena_end(outcome: str = "Win") -> SessionEnd:
    return SessionEnd(observed_at=T0, kind=ActivityKind.ARENA_2V2, outcome=outcome)


class SessionControllerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.recorder = FakeRecorder()
        self.store = MemoryStore()
        self.status = StatusFeed()
        self.clock = FixedClock(T0)
        self.controller = SessionController(self.recorder, self.store, status=self.status, clock=self.clock)

    def test_start_then_end_saves_one_record(self) -> None:
        self.assertTrue(self.controller.handle(arena_start()))
        self.assertEqual(self.controller.state, SessionState.ACTIVE)

        self.assertTrue(self.controller.handle(arena_end()))

        self.assertEqual(self.controller.state, SessionState.IDLE)
        self.assertEqual(len(self.store.records), 1)
        record = self.store.records[0]
        self.assertEqual(record.kind, ActivityKind.ARENA_2V2)
        self.assertEqual(record.label, "Nagrand Arena")
        self.assertEqual(record.duration, 42.0)
        self.assertEqual(record.outcome, "Win")
        self.assertEqual(record.artifact_path, "/tmp/recording")

    def test_repeated_start_calls_recorder_once(self) -> None:
        self.controller.handle(arena_start())
        self.assertFalse(self.controller.handle(arena_start("Dalaran Sewers")))

        self.assertEqual(len(self.recorder.start_calls), 1)
        self.assertEqual(self.controller.session.label, "Nagrand Arena")

    def test_end_while_idle_is_ignored(self) -> None:
        self.assertFalse(self.controller.handle(arena_end()))

        self.assertEqual(self.recorder.stop_calls, 0)
        self.assertEqual(self.store.records, [])

    def test_start_failure_stays_idle_and_reports(self) -> None:
        self.recorder.fail_start = True

        self.controller.handle(arena_start())

        self.assertEqual(self.controller.state, SessionState.IDLE)
        self.assertIn("Failed to start recording", self.status.latest)

    def test_start_exception_is_treated_as_failure(self) -> None:
        self.recorder.raise_on_start = True

        self.controller.handle(arena_start())

        self.assertEqual(self.controller.state, SessionState.IDLE)
        self.assertIn("capture device missing", self.status.latest)

    def test_stop_failure_still_returns_to_idle(self) -> None:
        self.recorder.fail_stop = True
        self.controller.handle(arena_start())
        self.clock.now = T0 + timedelta(seconds=90)

        self.controller.handle(arena_end())

        self.assertEqual(self.controller.state, SessionState.IDLE)
        self.assertEqual(len(self.store.records), 1)
        self.assertEqual(self.store.records[0].artifact_path, "")
        self.assertEqual(self.store.records[0].duration, 90.0)

    def test_store_failure_does_not_wedge_controller(self) -> None:
        self.store.fail_save = True
        self.controller.handle(arena_start())

        self.controller.handle(arena_end())

        self.assertEqual(self.controller.state, SessionState.IDLE)
        self.assertIsNotNone(self.controller.last_record)
        self.assertIn("Failed to save", self.status.latest)

    def test_end_of_other_family_is_ignored(self) -> None:
        self.controller.handle(
            SessionStart(kind=ActivityKind.MYTHIC_PLUS, label="Plaguefall", observed_at=T0, difficulty=12)
        )

        self.assertFalse(self.controller.handle(SessionEnd(observed_at=T0, kind=ActivityKind.RAID)))
        self.assertEqual(self.controller.state, SessionState.ACTIVE)

        self.controller.handle(SessionEnd(observed_at=T0, kind=ActivityKind.MYTHIC_PLUS, outcome="Not in time"))
        self.assertEqual(self.store.records[0].difficulty, 12)

    def test_arena_brackets_share_a_family(self) -> None:
        self.controller.handle(SessionStart(kind=ActivityKind.SOLO_SHUFFLE, label="Hook Point", observed_at=T0))

        self.assertTrue(self.controller.handle(arena_end()))
        self.assertEqual(self.controller.state, SessionState.IDLE)

    def test_shutdown_forces_single_stop(self) -> None:
        self.controller.handle(arena_start())

        self.controller.shutdown()
        self.controller.shutdown()

        self.assertEqual(self.recorder.stop_calls, 1)
        self.assertEqual(len(self.store.records), 1)
        self.assertEqual(self.store.records[0].outcome, "Monitoring stopped")

    def test_clip_lifecycle(self) -> None:
        self.assertTrue(self.controller.start_clip("Highlight"))
        self.assertEqual(self.controller.session.kind, ActivityKind.CLIP)
        self.assertFalse(self.controller.handle(arena_end()))

        self.assertTrue(self.controller.stop_clip())
        self.assertEqual(self.store.records[0].kind, ActivityKind.CLIP)

    def test_idle_listeners_see_failed_starts_and_accepted_ends(self) -> None:
        seen: list = []
        self.controller.add_idle_listener(seen.append)
        self.recorder.fail_start = True
        self.controller.handle(arena_start())

        self.recorder.fail_start = False
        self.controller.handle(arena_start())
        end = arena_end()
        self.controller.handle(end)
        self.controller.handle(arena_start())
        self.controller.end_active("WoW has been closed", outcome="Game closed")

        self.assertEqual(len(seen), 3)
        self.assertIsNone(seen[0])
        self.assertIs(seen[1], end)
        self.assertIsNone(seen[2].kind)
        self.assertEqual(seen[2].outcome, "Game closed")

    def test_record_keeps_time_taken(self) -> None:
        self.controller.handle(arena_start())
        self.controller.handle(SessionEnd(observed_at=T0, kind=ActivityKind.ARENA_2V2, time_taken=251.0))

        self.assertEqual(self.store.records[0].time_taken, 251.0)


class AsyncSessionControllerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.executor = ThreadPoolExecutor(max_workers=1)
        self.addCleanup(self.executor.shutdown, wait=True)
        self.recorder = FakeRecorder()
        self.recorder.gate = threading.Event()
        self.store = MemoryStore()
        self.controller = SessionController(self.recorder, self.store, executor=self.executor)

    def test_starts_while_pending_are_dropped(self) -> None:
        self.controller.handle(arena_start())
        self.assertTrue(self.recorder.entered.wait(5))

        self.assertFalse(self.controller.handle(arena_start()))
        self.assertFalse(self.controller.handle(arena_start()))
        self.assertTrue(self.controller.is_engaged())
        self.assertEqual(self.controller.state, SessionState.IDLE)

        self.recorder.gate.set()
        self.assertTrue(self.controller.drain(5))

        self.assertEqual(len(self.recorder.start_calls), 1)
        self.assertEqual(self.controller.state, SessionState.ACTIVE)

    def test_end_during_pending_start_is_applied_after_start(self) -> None:
        self.controller.handle(arena_start())
        self.assertTrue(self.recorder.entered.wait(5))

        self.assertTrue(self.controller.handle(arena_end("Loss")))
        self.recorder.gate.set()
        self.assertTrue(self.controller.drain(5))

        self.assertEqual(self.controller.state, SessionState.IDLE)
        self.assertEqual(self.recorder.stop_calls, 1)
        self.assertEqual(self.store.records[0].outcome, "Loss")


if __name__ == "__main__":
    unittest.main()
