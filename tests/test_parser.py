import unittest
from datetime import datetime

from warcraft_recorder.parser import parse_line, parse_timestamp

from tests.support import NAGRAND_START, FixedClock


class ParseLineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FixedClock(datetime(2025, 6, 1, 12, 0, 0))

    def test_arena_start_line_is_split_into_fields(self) -> None:
        line = parse_line(NAGRAND_START, clock=self.clock)

        self.assertEqual(line.timestamp, datetime(2025, 5, 14, 11, 30, 0))
        self.assertEqual(line.event_type, "ARENA_MATCH_START")
        self.assertEqual(line.fields, ("ARENA_MATCH_START", "559", "33", "2v2", "0"))
        self.assertEqual(line.raw, NAGRAND_START)

    def test_missing_year_uses_current_year(self) -> None:
        line = parse_line("5/14 11:30:00.250  SPELL_HEAL,Player-1,\"Healer\"", clock=self.clock)

        self.assertEqual(line.timestamp, datetime(2025, 5, 14, 11, 30, 0, 250000))
        self.assertEqual(line.event_type, "SPELL_HEAL")

    def test_timezone_suffix_is_ignored(self) -> None:
        stamp = parse_timestamp("5/14/2025 11:30:00.123-4", clock=self.clock)

        self.assertEqual(stamp, datetime(2025, 5, 14, 11, 30, 0, 123000))

    def test_line_without_separator_degrades_to_empty_event(self) -> None:
        line = parse_line("garbage without payload", clock=self.clock)

        self.assertEqual(line.event_type, "")
        self.assertEqual(line.fields, ())
        self.assertEqual(line.timestamp, self.clock.now)

    def test_bad_timestamp_keeps_payload(self) -> None:
        line = parse_line("not-a-date  ARENA_MATCH_END,0,1,2,3", clock=self.clock)

        self.assertEqual(line.event_type, "ARENA_MATCH_END")
        self.assertEqual(line.timestamp, self.clock.now)

    def test_trailing_newline_is_stripped(self) -> None:
        line = parse_line(NAGRAND_START + "\r\n", clock=self.clock)

        self.assertEqual(line.fields[-1], "0")


if __name__ == "__main__":
    unittest.main()
