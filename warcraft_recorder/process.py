"""Detection of the running game client."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol, Tuple

import psutil

logger = logging.getLogger(__name__)

DEFAULT_PROCESS_NAMES: Tuple[str, ...] = (
    "wow",
    "wow.exe",
    "wowclassic.exe",
    "world of warcraft",
)


class ProcessProbe(Protocol):
    def is_target_running(self) -> bool:
        ...


class GameProcessProbe:
    """Polls the process table for a World of Warcraft client."""

    def __init__(self, process_names: Iterable[str] = DEFAULT_PROCESS_NAMES) -> None:
        self.process_names = tuple(name.lower() for name in process_names)

    def matches(self, name: str) -> bool:
        lowered = name.lower()
        if lowered in self.process_names:
            return True
        return "world of warcraft" in lowered

    def is_target_running(self) -> bool:
        for proc in psutil.process_iter(["name"]):
            try:
                name = proc.info.get("name") or ""
            except (psutil.AccessDenied, psutil.NoSuchProcess, psutil.ZombieProcess):
                continue
            if name and self.matches(name):
                return True
        return False
