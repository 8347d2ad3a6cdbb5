"""
Transcript accumulators.

One accumulator per speaker role per session. Partial fragments are
appended as they arrive; a turn boundary flushes the trimmed text once
and clears it.
"""

from __future__ import annotations

from typing import Literal


SpeakerRole = Literal["user", "assistant"]


class TranscriptAccumulator:
    """Ordered fragment buffer for one speaker within the current turn."""

    def __init__(self, role: SpeakerRole) -> None:
        self.role: SpeakerRole = role
        self._fragments: list[str] = []

    def append(self, fragment: str) -> None:
        self._fragments.append(fragment)

    def text(self) -> str:
        return "".join(self._fragments).strip()

    def flush(self) -> str | None:
        """
        Return the trimmed text and clear, or None (and leave empty) when
        there is nothing but whitespace.
        """
        text = self.text()
        self._fragments.clear()
        return text or None

    def clear(self) -> None:
        self._fragments.clear()

    def __bool__(self) -> bool:
        return bool(self.text())
