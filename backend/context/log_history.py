"""
Session log history.

Responsibilities:
- Store log entries shown to the user (system / user / assistant)
- Keep the newest entry first
- Enforce the cap (oldest entries fall off the end)

Non-responsibilities:
- No haptic code handling (entries arrive already cleaned)
- No rendering
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Literal

from constants import LOG_HISTORY_MAX_ENTRIES
from observability.logger import log_event


LogRole = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class LogEntry:
    """Single log line. `timestamp` is wall-clock HH:MM:SS."""
    timestamp: str
    role: LogRole
    text: str

    def to_dict(self) -> dict[str, str]:
        return {"timestamp": self.timestamp, "role": self.role, "text": self.text}


class LogHistory:
    """
    Bounded, most-recent-first log.

    Invariants:
    - entries()[0] is the newest entry
    - len(self) <= max_entries
    """

    def __init__(
        self,
        *,
        max_entries: int = LOG_HISTORY_MAX_ENTRIES,
        session_id: str | None = None,
    ) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self._max_entries = max_entries
        self._session_id = session_id
        self._entries: list[LogEntry] = []

    def add(self, text: str, role: LogRole, *, timestamp: str | None = None) -> LogEntry:
        """Prepend an entry and drop the oldest ones beyond the cap."""
        entry = LogEntry(
            timestamp=timestamp or time.strftime("%H:%M:%S"),
            role=role,
            text=text,
        )
        self._entries.insert(0, entry)

        if len(self._entries) > self._max_entries:
            dropped = len(self._entries) - self._max_entries
            del self._entries[self._max_entries:]
            log_event({
                "event_type": "log_history_truncated",
                "level": "debug",
                "session_id": self._session_id,
                "dropped": dropped,
            })

        return entry

    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    def serialize(self) -> list[dict[str, str]]:
        return [e.to_dict() for e in self._entries]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
