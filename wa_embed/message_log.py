"""Append-only console of the messages a host controller sent and received."""

import logging
from typing import Callable, List, Optional

from wa_embed.messages import LogDirection, LogEntry

logger = logging.getLogger(__name__)

LogListener = Callable[[LogEntry], None]


class MessageLog:
    """Observational log with a monotonic id counter.

    ``clear`` empties the visible entries; ids keep increasing so a view
    can still key on them.
    """

    def __init__(self, on_entry: Optional[LogListener] = None):
        self._entries: List[LogEntry] = []
        self._counter = 0
        self._on_entry = on_entry

    def append(self, text: str, direction: LogDirection = LogDirection.SENT) -> LogEntry:
        entry = LogEntry(id=self._counter, text=text, direction=direction)
        self._counter += 1
        self._entries.append(entry)

        level = logging.WARNING if direction == LogDirection.ERROR else logging.INFO
        logger.log(level, f"[LOG] {direction.value}: {text}")

        if self._on_entry:
            self._on_entry(entry)
        return entry

    def clear(self) -> None:
        self._entries = []

    @property
    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def by_direction(self, direction: LogDirection) -> List[LogEntry]:
        return [e for e in self._entries if e.direction == direction]

    def __len__(self) -> int:
        return len(self._entries)
