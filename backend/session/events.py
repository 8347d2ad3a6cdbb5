"""
Inbound live-session event definitions.

Rules:
- Events describe facts reported by the remote service or transport.
- Events carry data only (no behavior).
- SessionEngine.handle_event() is the single consumer, one event at a time,
  in transport delivery order.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class InboundEventType(str, Enum):
    """Canonical inbound event types."""

    PARTIAL_INPUT = "PARTIAL_INPUT"
    PARTIAL_OUTPUT = "PARTIAL_OUTPUT"
    TURN_COMPLETE = "TURN_COMPLETE"
    AUDIO_FRAGMENT = "AUDIO_FRAGMENT"
    INTERRUPTED = "INTERRUPTED"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    TRANSPORT_CLOSED = "TRANSPORT_CLOSED"


@dataclass(frozen=True)
class InboundEvent:
    """Base event. `event_type` is the discriminant."""

    event_type: InboundEventType


@dataclass(frozen=True)
class PartialInput(InboundEvent):
    """A fragment of the user's transcribed speech."""
    text: str


@dataclass(frozen=True)
class PartialOutput(InboundEvent):
    """A fragment of the assistant's transcribed speech."""
    text: str


@dataclass(frozen=True)
class TurnComplete(InboundEvent):
    pass


@dataclass(frozen=True)
class AudioFragment(InboundEvent):
    """
    Synthesized speech, still transport-encoded (base64 PCM16 @ 24kHz).

    Decoding happens in the engine so a bad fragment is dropped there.
    """
    data: str


@dataclass(frozen=True)
class Interrupted(InboundEvent):
    """The user barged in; pending assistant audio must stop."""


@dataclass(frozen=True)
class TransportError(InboundEvent):
    """
    reason:
        Human-readable cause.
    fatal:
        True when the connection cannot continue.
    """
    reason: str
    fatal: bool = False


@dataclass(frozen=True)
class TransportClosed(InboundEvent):
    reason: str | None = None


# ---------------------------------------------------------------------
# Constructors (keep call sites short)
# ---------------------------------------------------------------------

def partial_input(text: str) -> PartialInput:
    return PartialInput(event_type=InboundEventType.PARTIAL_INPUT, text=text)


def partial_output(text: str) -> PartialOutput:
    return PartialOutput(event_type=InboundEventType.PARTIAL_OUTPUT, text=text)


def turn_complete() -> TurnComplete:
    return TurnComplete(event_type=InboundEventType.TURN_COMPLETE)


def audio_fragment(data: str) -> AudioFragment:
    return AudioFragment(event_type=InboundEventType.AUDIO_FRAGMENT, data=data)


def interrupted() -> Interrupted:
    return Interrupted(event_type=InboundEventType.INTERRUPTED)


def transport_error(reason: str, *, fatal: bool = False) -> TransportError:
    return TransportError(
        event_type=InboundEventType.TRANSPORT_ERROR,
        reason=reason,
        fatal=fatal,
    )


def transport_closed(reason: str | None = None) -> TransportClosed:
    return TransportClosed(event_type=InboundEventType.TRANSPORT_CLOSED, reason=reason)
