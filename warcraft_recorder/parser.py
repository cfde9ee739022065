"""Combat log line parsing.

Lines look like ``5/14/2025 11:30:00.000  ARENA_MATCH_START,559,33,2v2,0``:
a timestamp, a run of at least two spaces, then a comma separated payload
whose first field is the event type.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Callable, Optional

from .models import LogLine

logger = logging.getLogger(__name__)

_SEPARATOR = re.compile(r" {2,}")
_TZ_SUFFIX = re.compile(r"(\.\d+)[+-]\d{1,2}$")
_TIMESTAMP_FORMAT = "%m/%d/%Y %H:%M:%S.%f"

Clock = Callable[[], datetime]


def parse_line(raw: str, *, clock: Clock = datetime.now) -> LogLine:
    """Parse one raw line. Never raises.

    Malformed lines degrade to an empty event type and field list with the
    timestamp set to ``clock()``.
    """

    text = raw.rstrip("\r\n")
    parts = _SEPARATOR.split(text, maxsplit=1)
    if len(parts) != 2 or not parts[1].strip():
        return LogLine(timestamp=clock(), event_type="", fields=(), raw=raw)
    stamp_text, payload = parts
    fields = tuple(payload.split(","))
    timestamp = parse_timestamp(stamp_text, clock=clock)
    if timestamp is None:
        logger.debug("Unparseable timestamp %r; using current time", stamp_text)
        timestamp = clock()
    return LogLine(timestamp=timestamp, event_type=fields[0].strip(), fields=fields, raw=raw)


def parse_timestamp(text: str, *, clock: Clock = datetime.now) -> Optional[datetime]:
    """Parse ``M/d/yyyy HH:mm:ss.SSS``.

    When the year is absent (``M/d HH:mm:ss.SSS``) the current calendar year
    is substituted. Logs spanning New Year get the wrong year for the lines
    written before midnight; this matches the game client's own behaviour of
    omitting the year and is kept as-is.
    """

    stamp = _TZ_SUFFIX.sub(r"\1", text.strip())
    pieces = stamp.split(" ")
    if len(pieces) != 2:
        return None
    date_part, time_part = pieces
    if date_part.count("/") == 1:
        date_part = f"{date_part}/{clock().year}"
    try:
        return datetime.strptime(f"{date_part} {time_part}", _TIMESTAMP_FORMAT)
    except ValueError:
        return None
