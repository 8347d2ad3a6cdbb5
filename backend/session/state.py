"""
Live session lifecycle states.

Transitions are owned exclusively by SessionEngine:

    IDLE -> CONNECTING -> ACTIVE -> CLOSING -> IDLE
    CONNECTING | ACTIVE -> FAILED   (unrecoverable transport error)
    any -> CLOSING -> IDLE          (disconnect)
"""

from __future__ import annotations

from enum import Enum


class SessionState(str, Enum):
    """Engine-side lifecycle of the remote live session."""

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    CLOSING = "CLOSING"
    FAILED = "FAILED"
