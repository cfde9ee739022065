"""Warcraft Recorder core package: combat log monitoring and session recording."""

from .classifier import EventClassifier
from .config import MonitorConfig
from .controller import SessionController, SessionState
from .heuristics import BatchThresholds, HeuristicAccumulator, HeuristicThresholds
from .models import ActivityKind, LogLine, SessionEnd, SessionRecord, SessionStart
from .parser import parse_line
from .pipeline import CombatLogMonitor
from .watcher import LogWatcher

__all__ = [
    "CombatLogMonitor",
    "EventClassifier",
    "SessionController",
    "SessionState",
    "LogWatcher",
    "HeuristicAccumulator",
    "HeuristicThresholds",
    "BatchThresholds",
    "MonitorConfig",
    "parse_line",
    "ActivityKind",
    "LogLine",
    "SessionStart",
    "SessionEnd",
    "SessionRecord",
]
