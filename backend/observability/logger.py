"""
Structured event logger.

- One event per line, JSON (default) or compact key=value text
- Output to stdout
- No buffering, no batching
- Level filtering via the optional "level" key (default "info")
- Never raises
"""

from __future__ import annotations

import json
import sys
import time
from typing import Any, Mapping, Callable


_LEVELS: dict[str, int] = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "error": 40,
}


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print

_json_lines: bool = True
_min_level: int = _LEVELS["info"]


def configure(*, json_lines: bool = True, level: str = "info") -> None:
    """
    Set output format and minimum level.

    Called once at startup from the app factory. Unknown levels fall back
    to "info".
    """
    global _json_lines, _min_level  # pylint: disable=global-statement
    _json_lines = json_lines
    _min_level = _LEVELS.get(level.lower(), _LEVELS["info"])


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single structured event.

    The caller supplies a dict with at least "event_type". "ts_ms" is
    filled in when absent. Events whose "level" is below the configured
    minimum are dropped.
    """
    level = str(event.get("level", "info")).lower()
    if _LEVELS.get(level, _LEVELS["info"]) < _min_level:
        return

    if "ts_ms" not in event:
        event = {"ts_ms": time.time_ns() // 1_000_000, **event}

    try:
        if _json_lines:
            line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
        else:
            line = _format_text(event)
    except (TypeError, ValueError) as e:
        # Last-resort fallback: logging must never crash the session
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)


def _format_text(event: Mapping[str, Any]) -> str:
    head = str(event.get("event_type", "EVENT"))
    rest = " ".join(
        f"{key}={json.dumps(value, ensure_ascii=False)}"
        for key, value in event.items()
        if key != "event_type"
    )
    return f"{head} {rest}" if rest else head
