"""Status observable surfaced to whatever UI sits on top of the monitor."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Deque, Iterator, List

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StatusMessage:
    ts: datetime
    text: str
    level: int = logging.INFO


Subscriber = Callable[[StatusMessage], None]


class StatusFeed:
    """Keeps a rolling buffer of status messages and notifies subscribers."""

    def __init__(self, max_messages: int = 128) -> None:
        self._buffer: Deque[StatusMessage] = deque(maxlen=max_messages)
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def publish(self, text: str, *, level: int = logging.INFO) -> StatusMessage:
        message = StatusMessage(ts=datetime.now(), text=text, level=level)
        logger.log(level, "%s", text)
        with self._lock:
            self._buffer.append(message)
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(message)
            except Exception:  # pragma: no cover - runtime safeguard
                logger.exception("Status subscriber failed")
        return message

    def error(self, text: str) -> StatusMessage:
        return self.publish(text, level=logging.ERROR)

    @property
    def latest(self) -> str:
        with self._lock:
            return self._buffer[-1].text if self._buffer else "Idle"

    def iter_recent(self) -> Iterator[StatusMessage]:
        with self._lock:
            return iter(list(reversed(self._buffer)))
