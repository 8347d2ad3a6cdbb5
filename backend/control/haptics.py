"""
Haptic control codes embedded in assistant speech.

The assistant is instructed to put exactly one HAPTIC_n token in its reply
when the user should feel something. Tokens are only acted on once the
assistant's utterance is final (turn complete); partial transcripts are
never scanned.

- extract_and_strip(): first token wins, every token is removed from text
- HapticDispatcher: forwards the code to the actuator link, best-effort
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from constants import (
    HAPTIC_CODE_PATTERN,
    LOCAL_PULSE_DEFAULT_MS,
    LOCAL_PULSE_STRONG_MS,
)
from observability.logger import log_event


_HAPTIC_RE = re.compile(HAPTIC_CODE_PATTERN)


class HapticCode(str, Enum):
    """Actuator tokens and their physical meaning."""

    HAPTIC_0 = "HAPTIC_0"  # no vibration
    HAPTIC_1 = "HAPTIC_1"  # long smooth (entered image boundary)
    HAPTIC_2 = "HAPTIC_2"  # short pulse (object detected)
    HAPTIC_3 = "HAPTIC_3"  # strong (near center / important object)
    HAPTIC_4 = "HAPTIC_4"  # medium
    HAPTIC_5 = "HAPTIC_5"  # weak (near edge)

    @property
    def meaning(self) -> str:
        return _MEANINGS[self]

    @property
    def local_pulse_ms(self) -> int:
        """Duration for host-side feedback (e.g. phone vibration)."""
        if self is HapticCode.HAPTIC_0:
            return 0
        if self is HapticCode.HAPTIC_3:
            return LOCAL_PULSE_STRONG_MS
        return LOCAL_PULSE_DEFAULT_MS


_MEANINGS: dict[HapticCode, str] = {
    HapticCode.HAPTIC_0: "none",
    HapticCode.HAPTIC_1: "long-smooth",
    HapticCode.HAPTIC_2: "short-pulse",
    HapticCode.HAPTIC_3: "strong",
    HapticCode.HAPTIC_4: "medium",
    HapticCode.HAPTIC_5: "weak",
}


def extract_and_strip(text: str) -> tuple[str, HapticCode | None]:
    """
    Pull the first haptic token out of `text`.

    Returns (display_text, code). When a token is found every occurrence
    is removed and the result is trimmed; otherwise the text is returned
    unchanged with None.

    >>> extract_and_strip("HAPTIC_2 object mila HAPTIC_2")
    ('object mila', <HapticCode.HAPTIC_2: 'HAPTIC_2'>)
    """
    match = _HAPTIC_RE.search(text)
    if match is None:
        return text, None

    code = HapticCode(match.group(0))
    return _HAPTIC_RE.sub("", text).strip(), code


# ---------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------

class LineWriter(Protocol):
    async def write_line(self, text: str) -> bool:
        ...


@dataclass(frozen=True)
class DispatchResult:
    display_text: str
    code: HapticCode | None


class HapticDispatcher:
    """
    Strips codes from finalized assistant text and forwards them.

    process() is synchronous so it can run inside the engine's log
    callback; the serial write is scheduled as a task. The link's own
    write lock keeps lines in submission order.
    """

    def __init__(self, link: LineWriter | None) -> None:
        self._link = link
        self._pending: set[asyncio.Task[None]] = set()
        self.last_code: HapticCode = HapticCode.HAPTIC_0

    def process(self, assistant_text: str) -> DispatchResult:
        display_text, code = extract_and_strip(assistant_text)
        if code is None:
            return DispatchResult(display_text=display_text, code=None)

        self.last_code = code
        log_event({
            "event_type": "HAPTIC_CODE_EXTRACTED",
            "code": code.value,
            "meaning": code.meaning,
        })

        link = self._link
        if link is not None:
            task = asyncio.get_running_loop().create_task(self._deliver(link, code))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        return DispatchResult(display_text=display_text, code=code)

    async def drain(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, link: LineWriter, code: HapticCode) -> None:
        try:
            delivered = await link.write_line(code.value)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "HAPTIC_DELIVERY_ERROR",
                "level": "error",
                "code": code.value,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            return

        if not delivered:
            log_event({
                "event_type": "HAPTIC_NOT_DELIVERED",
                "level": "debug",
                "code": code.value,
            })
