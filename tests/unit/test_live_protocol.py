# pylint: disable=missing-module-docstring,missing-function-docstring

import base64
import json

import pytest

from audio.frames import AudioChunk, VideoFrame
from session import events as ev
from session.errors import LiveProtocolError
from session.protocol import (
    LiveSessionSetup,
    build_realtime_input,
    build_setup_message,
    decode_message,
    is_setup_complete,
    parse_server_message,
)


# ---------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------

def test_setup_message_requests_audio_and_both_transcriptions():
    msg = build_setup_message(
        LiveSessionSetup(model="gemini-live", voice="Zephyr", system_instruction="be kind")
    )
    setup = msg["setup"]

    assert setup["model"] == "models/gemini-live"
    assert setup["generationConfig"]["responseModalities"] == ["AUDIO"]
    assert (
        setup["generationConfig"]["speechConfig"]["voiceConfig"]["prebuiltVoiceConfig"]["voiceName"]
        == "Zephyr"
    )
    assert setup["systemInstruction"]["parts"] == [{"text": "be kind"}]
    assert setup["inputAudioTranscription"] == {}
    assert setup["outputAudioTranscription"] == {}


def test_model_prefix_is_not_doubled():
    msg = build_setup_message(
        LiveSessionSetup(model="models/x", voice="v", system_instruction="s")
    )
    assert msg["setup"]["model"] == "models/x"


def test_audio_chunk_message():
    msg = build_realtime_input(AudioChunk(pcm_bytes=b"\x01\x00"))

    assert msg == {
        "realtimeInput": {
            "audio": {"data": "AQA=", "mimeType": "audio/pcm;rate=16000"},
        }
    }


def test_video_frame_message():
    msg = build_realtime_input(VideoFrame(image_bytes=b"\xff\xd8"))

    assert msg["realtimeInput"]["video"]["mimeType"] == "image/jpeg"
    assert base64.b64decode(msg["realtimeInput"]["video"]["data"]) == b"\xff\xd8"


# ---------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------

def test_decode_message_rejects_garbage():
    with pytest.raises(LiveProtocolError):
        decode_message("{not json")

    with pytest.raises(LiveProtocolError):
        decode_message("[1, 2]")


def test_setup_complete_detection():
    assert is_setup_complete(decode_message(json.dumps({"setupComplete": {}})))
    assert not is_setup_complete({"serverContent": {}})


def test_parts_are_emitted_in_fixed_order():
    msg = {
        "serverContent": {
            "interrupted": True,
            "modelTurn": {"parts": [{"inlineData": {"data": "AAA=", "mimeType": "audio/pcm"}}]},
            "turnComplete": True,
            "outputTranscription": {"text": "out"},
            "inputTranscription": {"text": "in"},
        }
    }

    events = parse_server_message(msg)

    assert [e.event_type for e in events] == [
        ev.InboundEventType.PARTIAL_INPUT,
        ev.InboundEventType.PARTIAL_OUTPUT,
        ev.InboundEventType.TURN_COMPLETE,
        ev.InboundEventType.AUDIO_FRAGMENT,
        ev.InboundEventType.INTERRUPTED,
    ]
    assert events[0] == ev.partial_input("in")
    assert events[3] == ev.audio_fragment("AAA=")


def test_messages_without_server_content_produce_nothing():
    assert parse_server_message({"setupComplete": {}}) == []
    assert parse_server_message({"usageMetadata": {"totalTokenCount": 3}}) == []


def test_malformed_parts_are_skipped():
    msg = {"serverContent": {"modelTurn": {"parts": ["oops"]}, "inputTranscription": {"text": 5}}}

    assert parse_server_message(msg) == []
