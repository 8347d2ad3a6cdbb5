"""
Live API wire messages (BidiGenerateContent over WebSocket, JSON text).

Outbound:
    {"setup": {...}}                                  first message
    {"realtimeInput": {"audio": {"data", "mimeType"}}}  microphone PCM
    {"realtimeInput": {"video": {"data", "mimeType"}}}  camera JPEG

Inbound (fields used):
    {"setupComplete": {}}
    {"serverContent": {
        "inputTranscription": {"text"},
        "outputTranscription": {"text"},
        "turnComplete": bool,
        "interrupted": bool,
        "modelTurn": {"parts": [{"inlineData": {"data", "mimeType"}}]}}}

Pure functions only; no IO.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from audio.codec import encode_to_transport
from audio.frames import ChunkKind, OutboundChunk
from session import events as ev
from session.errors import LiveProtocolError


@dataclass(frozen=True)
class LiveSessionSetup:
    """The fixed per-session configuration sent in the setup message."""
    model: str
    voice: str
    system_instruction: str


def build_setup_message(setup: LiveSessionSetup) -> dict[str, Any]:
    """Setup requesting audio replies and transcription in both directions."""
    model = setup.model
    if not model.startswith("models/"):
        model = f"models/{model}"

    return {
        "setup": {
            "model": model,
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {
                        "prebuiltVoiceConfig": {"voiceName": setup.voice},
                    },
                },
            },
            "systemInstruction": {
                "parts": [{"text": setup.system_instruction}],
            },
            "inputAudioTranscription": {},
            "outputAudioTranscription": {},
        }
    }


def build_realtime_input(chunk: OutboundChunk) -> dict[str, Any]:
    """Wrap one outbound chunk as a realtimeInput message."""
    field = "audio" if chunk.kind is ChunkKind.AUDIO else "video"
    return {
        "realtimeInput": {
            field: {
                "data": encode_to_transport(chunk.payload),
                "mimeType": chunk.mime_type,
            }
        }
    }


def decode_message(raw: str | bytes) -> dict[str, Any]:
    """
    Parse a raw WebSocket message into a dict.

    Raises:
        LiveProtocolError on invalid JSON or a non-object payload.
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise LiveProtocolError(f"invalid JSON from live service: {e}") from e
    if not isinstance(data, dict):
        raise LiveProtocolError(f"expected JSON object, got {type(data).__name__}")
    return data


def is_setup_complete(message: dict[str, Any]) -> bool:
    return "setupComplete" in message


def parse_server_message(message: dict[str, Any]) -> list[ev.InboundEvent]:
    """
    Translate one server message into ordered inbound events.

    Order within a message: input transcription, output transcription,
    turn complete, audio, interrupted. Messages without serverContent
    (setupComplete, usage metadata, ...) produce no events.
    """
    content = message.get("serverContent")
    if not isinstance(content, dict):
        return []

    out: list[ev.InboundEvent] = []

    text = _transcription_text(content.get("inputTranscription"))
    if text:
        out.append(ev.partial_input(text))

    text = _transcription_text(content.get("outputTranscription"))
    if text:
        out.append(ev.partial_output(text))

    if content.get("turnComplete"):
        out.append(ev.turn_complete())

    audio = _first_inline_data(content.get("modelTurn"))
    if audio:
        out.append(ev.audio_fragment(audio))

    if content.get("interrupted"):
        out.append(ev.interrupted())

    return out


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _transcription_text(value: Any) -> str:
    if isinstance(value, dict):
        text = value.get("text")
        if isinstance(text, str):
            return text
    return ""


def _first_inline_data(model_turn: Any) -> str:
    if not isinstance(model_turn, dict):
        return ""
    parts = model_turn.get("parts")
    if not isinstance(parts, list) or not parts:
        return ""
    first = parts[0]
    if not isinstance(first, dict):
        return ""
    inline = first.get("inlineData")
    if not isinstance(inline, dict):
        return ""
    data = inline.get("data")
    return data if isinstance(data, str) else ""
