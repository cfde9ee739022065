import os
import unittest
from pathlib import Path
from unittest import mock

from warcraft_recorder.config import MonitorConfig
from warcraft_recorder.status import StatusFeed


class MonitorConfigTests(unittest.TestCase):
    def test_defaults_without_environment(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            config = MonitorConfig.from_env()

        self.assertIsNone(config.log_dir)
        self.assertEqual(config.poll_interval, 1.0)
        self.assertEqual(config.thresholds.combat_threshold, 15)
        self.assertTrue(config.thresholds.require_preparation)
        self.assertTrue(config.watch_directory)

    def test_environment_overrides(self) -> None:
        env = {
            "WARCRAFT_RECORDER_LOG_DIR": "/games/wow/Logs",
            "WARCRAFT_RECORDER_POLL_INTERVAL": "0.5",
            "WARCRAFT_RECORDER_COMBAT_THRESHOLD": "30",
            "WARCRAFT_RECORDER_REQUIRE_PREPARATION": "no",
            "WARCRAFT_RECORDER_WATCH_DIRECTORY": "false",
            "WARCRAFT_RECORDER_PROCESS_NAMES": "WowT.exe, WowB.exe",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = MonitorConfig.from_env()

        self.assertEqual(config.log_dir, Path("/games/wow/Logs"))
        self.assertEqual(config.poll_interval, 0.5)
        self.assertEqual(config.thresholds.combat_threshold, 30)
        self.assertFalse(config.thresholds.require_preparation)
        self.assertFalse(config.watch_directory)
        self.assertEqual(config.process_names, ("WowT.exe", "WowB.exe"))


class StatusFeedTests(unittest.TestCase):
    def test_latest_and_subscribers(self) -> None:
        feed = StatusFeed(max_messages=2)
        seen: list = []
        feed.subscribe(lambda message: seen.append(message.text))

        self.assertEqual(feed.latest, "Idle")
        feed.publish("one")
        feed.publish("two")
        feed.error("three")

        self.assertEqual(feed.latest, "three")
        self.assertEqual(seen, ["one", "two", "three"])
        self.assertEqual([message.text for message in feed.iter_recent()], ["three", "two"])


if __name__ == "__main__":
    unittest.main()
