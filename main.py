"""Live Warcraft Recorder monitor following the combat log folder."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from warcraft_recorder.capture import ScreenshotRecorder
from warcraft_recorder.config import MonitorConfig
from warcraft_recorder.pipeline import CombatLogMonitor
from warcraft_recorder.process import GameProcessProbe
from warcraft_recorder.reporting import daily_report, render_record
from warcraft_recorder.status import StatusMessage
from warcraft_recorder.store import SQLiteSessionStore

logger = logging.getLogger(__name__)


def print_status(message: StatusMessage) -> None:
    timestamp_local = message.ts.strftime("%H:%M:%S")
    prefix = "[error]" if message.level >= logging.ERROR else "[info]"
    print(f"{prefix} {timestamp_local} {message.text}")


def list_recordings(store: SQLiteSessionStore) -> None:
    records = store.list()
    if not records:
        print("No recordings stored.")
        return
    for record in records:
        print(render_record(record))
        if record.artifact_path:
            print(f"  path: {record.artifact_path}")
    print()
    print(daily_report(records).render_text())


def build_config(args: argparse.Namespace) -> MonitorConfig:
    config = MonitorConfig.from_env()
    if args.log_dir:
        config.log_dir = Path(args.log_dir).expanduser()
    if args.interval is not None:
        config.poll_interval = max(0.1, args.interval)
    if args.recordings_dir:
        config.recordings_dir = Path(args.recordings_dir).expanduser()
    if args.database:
        config.database_path = Path(args.database).expanduser()
    if args.fps is not None:
        config.capture_fps = args.fps
    return config


def monitor_loop(config: MonitorConfig, store: SQLiteSessionStore) -> None:
    recorder = ScreenshotRecorder(output_dir=config.recordings_dir, fps=config.capture_fps)
    monitor = CombatLogMonitor(
        recorder,
        store,
        config=config,
        process_probe=GameProcessProbe(config.process_names),
    )
    monitor.status.subscribe(print_status)
    try:
        with monitor:
            while True:
                time.sleep(1.0)
    except KeyboardInterrupt:
        print("\nStopped monitoring.")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Warcraft Recorder combat log monitor")
    parser.add_argument("--log-dir", help="Folder containing WoWCombatLog*.txt files")
    parser.add_argument("--interval", type=float, default=None, help="Polling interval in seconds")
    parser.add_argument("--recordings-dir", help="Where capture sessions are written")
    parser.add_argument("--database", help="SQLite database holding session records")
    parser.add_argument("--fps", type=float, default=None, help="Screenshots per second while recording")
    parser.add_argument("--list", action="store_true", help="Print stored recordings and exit")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = build_config(args)
    store = SQLiteSessionStore(config.database_path)
    try:
        if args.list:
            list_recordings(store)
            return 0
        if config.log_dir is None:
            sys.stderr.write("No log folder configured; pass --log-dir or set WARCRAFT_RECORDER_LOG_DIR.\n")
            return 2
        monitor_loop(config, store)
        return 0
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
