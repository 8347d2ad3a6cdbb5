# pylint: disable=missing-module-docstring,missing-function-docstring

from __future__ import annotations

import asyncio
import base64
import json
from typing import Any, Callable

import pytest

from audio.frames import AudioChunk
from audio.playback import NullAudioOutput, PlaybackScheduler
from session import events as ev
from session.engine import SessionEngine
from session.errors import AlreadyActive, SessionConnectionError
from session.state import SessionState


class FakeTransport:
    """Scripted LiveTransport. Inbound items: raw text, an exception, or None (clean close)."""

    def __init__(self, *, open_error: Exception | None = None, hold_open: bool = False) -> None:
        self.setup: dict[str, Any] | None = None
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self._open_error = open_error
        self.on_close: Callable[[], None] | None = None
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        self.release_open = asyncio.Event()
        if not hold_open:
            self.release_open.set()

    async def open(self, setup_message: dict[str, Any]) -> None:
        self.setup = setup_message
        await self.release_open.wait()
        if self._open_error is not None:
            raise self._open_error

    async def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    async def receive(self):
        while True:
            item = await self._inbox.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True
        if self.on_close is not None:
            self.on_close()

    def push(self, server_content: dict[str, Any]) -> None:
        self._inbox.put_nowait(json.dumps({"serverContent": server_content}))

    def push_raw(self, raw: str) -> None:
        self._inbox.put_nowait(raw)

    def end(self, error: Exception | None = None) -> None:
        self._inbox.put_nowait(error)


class Harness:
    def __init__(
        self,
        transport: FakeTransport,
        *,
        outbound_capacity: int = 256,
        on_log: Callable[[str, str], None] | None = None,
    ) -> None:
        self.transport = transport
        self.logs: list[tuple[str, str]] = []
        self._on_log = on_log
        self.playback = PlaybackScheduler(NullAudioOutput(clock=lambda: 0.0))
        self.engine = SessionEngine(
            api_key="test-key",
            model="test-model",
            voice="Zephyr",
            on_log=self._log,
            playback=self.playback,
            transport_factory=lambda: transport,
            outbound_capacity=outbound_capacity,
        )

    def _log(self, text: str, role: str) -> None:
        self.logs.append((text, role))
        if self._on_log is not None:
            self._on_log(text, role)


async def settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


def audio_b64(n_samples: int) -> str:
    return base64.b64encode(b"\x00\x00" * n_samples).decode("ascii")


# ---------------------------------------------------------------------
# Connect / disconnect
# ---------------------------------------------------------------------

def test_connect_sends_setup_and_goes_active():
    async def scenario():
        h = Harness(FakeTransport())
        await h.engine.connect("be the user's eyes")
        state = h.engine.state
        await h.engine.disconnect()
        return h, state

    h, state = asyncio.run(scenario())

    assert state is SessionState.ACTIVE
    assert h.transport.setup["setup"]["model"] == "models/test-model"
    assert h.transport.setup["setup"]["systemInstruction"]["parts"][0]["text"] == "be the user's eyes"
    assert h.logs == [("Live link online.", "system")]
    assert h.engine.state is SessionState.IDLE
    assert h.transport.closed


def test_second_connect_is_rejected():
    async def scenario():
        h = Harness(FakeTransport())
        await h.engine.connect("p")
        try:
            with pytest.raises(AlreadyActive):
                await h.engine.connect("p")
        finally:
            await h.engine.disconnect()

    asyncio.run(scenario())


def test_failed_open_reports_and_raises():
    async def scenario():
        h = Harness(FakeTransport(open_error=SessionConnectionError("handshake refused")))
        with pytest.raises(SessionConnectionError):
            await h.engine.connect("p")
        failed_state = h.engine.state

        with pytest.raises(AlreadyActive):
            await h.engine.connect("p")

        await h.engine.disconnect()
        return h, failed_state

    h, failed_state = asyncio.run(scenario())

    assert failed_state is SessionState.FAILED
    assert h.logs == [("Link error: handshake refused", "system")]
    assert h.engine.state is SessionState.IDLE


def test_disconnect_cancels_pending_connect():
    async def scenario():
        h = Harness(FakeTransport(hold_open=True))
        connect = asyncio.create_task(h.engine.connect("p"))
        await settle()
        assert h.engine.state is SessionState.CONNECTING

        await h.engine.disconnect()
        await connect
        return h

    h = asyncio.run(scenario())

    assert h.engine.state is SessionState.IDLE
    assert h.transport.closed
    assert ("Live link online.", "system") not in h.logs


def test_disconnect_is_idempotent():
    async def scenario():
        h = Harness(FakeTransport())
        await h.engine.disconnect()
        await h.engine.connect("p")
        await h.engine.disconnect()
        await h.engine.disconnect()
        return h

    h = asyncio.run(scenario())

    assert h.engine.state is SessionState.IDLE


def test_engine_can_reconnect_after_disconnect():
    async def scenario():
        h = Harness(FakeTransport())
        await h.engine.connect("p")
        await h.engine.disconnect()
        await h.engine.connect("p")
        state = h.engine.state
        await h.engine.disconnect()
        return state

    assert asyncio.run(scenario()) is SessionState.ACTIVE


# ---------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------

def test_chunks_are_dropped_while_not_active():
    async def scenario():
        h = Harness(FakeTransport())
        return h, h.engine.send_audio_chunk(AudioChunk(pcm_bytes=b"\x00\x00"))

    h, queued = asyncio.run(scenario())

    assert queued is False
    assert h.engine.outbound["dropped_inactive"] == 1
    assert h.transport.sent == []


def test_outbound_order_is_preserved_across_media():
    async def scenario():
        h = Harness(FakeTransport())
        await h.engine.connect("p")
        h.engine.send_audio_chunk(AudioChunk(pcm_bytes=b"\x01\x00"))
        h.engine.send_video_frame(b"\xff\xd8")
        h.engine.send_audio_chunk(AudioChunk(pcm_bytes=b"\x02\x00"))
        await settle()
        await h.engine.disconnect()
        return h

    h = asyncio.run(scenario())

    kinds = [next(iter(m["realtimeInput"])) for m in h.transport.sent]
    assert kinds == ["audio", "video", "audio"]
    assert h.transport.sent[0]["realtimeInput"]["audio"]["data"] == "AQA="
    assert h.transport.sent[2]["realtimeInput"]["audio"]["data"] == "AgA="


def test_full_queue_drops_new_chunks():
    async def scenario():
        h = Harness(FakeTransport(), outbound_capacity=1)
        await h.engine.connect("p")
        first = h.engine.send_audio_chunk(AudioChunk(pcm_bytes=b"\x00\x00"))
        second = h.engine.send_audio_chunk(AudioChunk(pcm_bytes=b"\x00\x00"))
        snapshot = h.engine.outbound
        await h.engine.disconnect()
        return first, second, snapshot

    first, second, snapshot = asyncio.run(scenario())

    assert (first, second) == (True, False)
    assert snapshot["dropped_overflow"] == 1


def test_chunks_submitted_while_failing_are_not_sent():
    accepted: list[bool] = []
    harness: list[Harness] = []

    def on_log(text: str, role: str) -> None:
        if text.startswith("Link error"):
            engine = harness[0].engine
            accepted.append(engine.send_audio_chunk(AudioChunk(pcm_bytes=b"\x00\x00")))

    async def scenario():
        h = Harness(FakeTransport(), on_log=on_log)
        harness.append(h)
        await h.engine.connect("p")
        h.transport.end(SessionConnectionError("connection reset"))
        await h.engine.wait_receiver()
        await settle()
        return h

    h = asyncio.run(scenario())

    assert h.engine.state is SessionState.FAILED
    assert accepted == [False]
    assert h.transport.sent == []
    assert h.engine.outbound["dropped_inactive"] == 1


def test_chunks_submitted_while_closing_are_not_sent():
    seen: list[tuple[SessionState, bool]] = []

    async def scenario():
        h = Harness(FakeTransport())

        def on_close() -> None:
            ok = h.engine.send_audio_chunk(AudioChunk(pcm_bytes=b"\x00\x00"))
            seen.append((h.engine.state, ok))

        h.transport.on_close = on_close
        await h.engine.connect("p")
        h.transport.end()
        await h.engine.wait_receiver()
        await settle()
        return h

    h = asyncio.run(scenario())

    assert seen == [(SessionState.CLOSING, False)]
    assert h.transport.sent == []
    assert h.engine.state is SessionState.IDLE
    assert h.logs[-1] == ("Live link closed.", "system")


# ---------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------

def test_turn_complete_flushes_user_then_assistant():
    async def scenario():
        h = Harness(FakeTransport())
        await h.engine.connect("p")
        h.transport.push({"outputTranscription": {"text": "Ek cup "}})
        h.transport.push({"inputTranscription": {"text": "Saamne "}})
        h.transport.push({"inputTranscription": {"text": "kya hai?"}})
        h.transport.push({"outputTranscription": {"text": "hai. HAPTIC_2"}})
        h.transport.push({"turnComplete": True})
        h.transport.push({"turnComplete": True})
        h.transport.end()
        await h.engine.wait_receiver()
        return h

    h = asyncio.run(scenario())

    assert h.logs == [
        ("Live link online.", "system"),
        ("Saamne kya hai?", "user"),
        ("Ek cup hai. HAPTIC_2", "assistant"),
        ("Live link closed.", "system"),
    ]
    assert h.engine.state is SessionState.IDLE


def test_audio_fragments_are_scheduled_back_to_back():
    async def scenario():
        h = Harness(FakeTransport())
        await h.engine.connect("p")
        await h.engine.handle_event(ev.audio_fragment(audio_b64(2400)))
        await h.engine.handle_event(ev.audio_fragment(audio_b64(2400)))
        result = (h.playback.active_count(), h.playback.next_start)
        await h.engine.disconnect()
        return result

    active, next_start = asyncio.run(scenario())

    assert active == 2
    assert next_start == pytest.approx(0.2)


def test_bad_audio_fragment_is_dropped_silently():
    async def scenario():
        h = Harness(FakeTransport())
        await h.engine.connect("p")
        await h.engine.handle_event(ev.audio_fragment("%%% not base64"))
        await h.engine.handle_event(ev.audio_fragment(base64.b64encode(b"\x00").decode()))
        await h.engine.handle_event(ev.audio_fragment(audio_b64(240)))
        result = (h.engine.dropped_fragments, h.playback.active_count(), list(h.logs))
        await h.engine.disconnect()
        return result

    dropped, active, logs = asyncio.run(scenario())

    assert dropped == 2
    assert active == 1
    assert logs == [("Live link online.", "system")]


def test_interrupt_stops_audio_and_discards_partial_output():
    async def scenario():
        h = Harness(FakeTransport())
        await h.engine.connect("p")
        await h.engine.handle_event(ev.audio_fragment(audio_b64(2400)))
        await h.engine.handle_event(ev.partial_output("Main bata rahi"))
        await h.engine.handle_event(ev.interrupted())
        result = (h.playback.active_count(), h.playback.next_start)
        await h.engine.handle_event(ev.turn_complete())
        logs = list(h.logs)
        await h.engine.disconnect()
        return result, logs

    (active, next_start), logs = asyncio.run(scenario())

    assert active == 0
    assert next_start == 0.0
    assert logs == [("Live link online.", "system")]


def test_garbage_message_is_reported_but_not_fatal():
    async def scenario():
        h = Harness(FakeTransport())
        await h.engine.connect("p")
        h.transport.push_raw("{broken")
        await settle()
        state = h.engine.state
        await h.engine.disconnect()
        return h, state

    h, state = asyncio.run(scenario())

    assert state is SessionState.ACTIVE
    assert h.logs[1][1] == "system"
    assert h.logs[1][0].startswith("Link error: invalid JSON")


def test_dropped_connection_is_fatal():
    async def scenario():
        h = Harness(FakeTransport())
        await h.engine.connect("p")
        await h.engine.handle_event(ev.audio_fragment(audio_b64(2400)))
        h.transport.end(SessionConnectionError("connection reset"))
        await h.engine.wait_receiver()
        return h

    h = asyncio.run(scenario())

    assert h.engine.state is SessionState.FAILED
    assert h.logs[-1] == ("Link error: connection reset", "system")
    assert h.transport.closed
    assert h.playback.active_count() == 0


def test_host_callback_errors_do_not_break_the_engine():
    async def scenario():
        transport = FakeTransport()
        engine = SessionEngine(
            api_key="k",
            model="m",
            voice="v",
            on_log=lambda text, role: 1 / 0,
            playback=PlaybackScheduler(NullAudioOutput(clock=lambda: 0.0)),
            transport_factory=lambda: transport,
        )
        await engine.connect("p")
        state = engine.state
        await engine.disconnect()
        return state

    assert asyncio.run(scenario()) is SessionState.ACTIVE


def test_model_and_voice_are_required():
    with pytest.raises(ValueError):
        SessionEngine(
            api_key="k",
            model="",
            voice="v",
            on_log=lambda text, role: None,
            playback=PlaybackScheduler(NullAudioOutput()),
        )


def test_turn_with_only_assistant_speech_logs_once():
    async def scenario():
        h = Harness(FakeTransport())
        await h.engine.connect("p")
        await h.engine.handle_event(ev.partial_output("Tum andar aa gaye ho HAPTIC_1"))
        await h.engine.handle_event(ev.turn_complete())
        await h.engine.handle_event(ev.turn_complete())
        logs = list(h.logs)
        await h.engine.disconnect()
        return logs

    assert asyncio.run(scenario()) == [
        ("Live link online.", "system"),
        ("Tum andar aa gaye ho HAPTIC_1", "assistant"),
    ]
