"""
Live session engine.

Responsibilities:
- Own the single connection to the remote live service
- Send microphone chunks and camera frames (bounded FIFO + sender task)
- Consume inbound messages in order, one event at a time
- Keep assistant audio gapless via the PlaybackScheduler
- Aggregate partial transcripts into finalized log entries
- Report log-worthy facts to the host through on_log(text, role)

Non-responsibilities:
- Retry policy (the host decides whether to reconnect)
- Capture timers (the host calls send_video_frame on its own schedule)
- Haptic code handling (the host routes assistant entries to the dispatcher)
- Log history / display

Concurrency:
- Single event loop. Every await is a point where disconnect() may run,
  so each continuation re-checks the connection generation before
  touching state.
- The PlaybackScheduler is internally locked for audio-thread callbacks.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Literal
from uuid import uuid4

from audio.codec import decode_from_transport, decode_to_playable_buffer
from audio.frames import AudioChunk, OutboundChunk, VideoFrame
from audio.playback import PlaybackScheduler
from audio.queues import DropReason, OutboundQueue
from constants import OUTBOUND_QUEUE_MAX_ITEMS, VIDEO_FRAME_MIME
from observability.logger import log_event
from observability.metrics import count, timed
from session import events as ev
from session.errors import AlreadyActive, LiveProtocolError, SessionConnectionError
from session.protocol import (
    LiveSessionSetup,
    build_realtime_input,
    build_setup_message,
    decode_message,
    parse_server_message,
)
from session.state import SessionState
from session.transcripts import TranscriptAccumulator
from session.transport import LiveTransport, WebSocketLiveTransport


LogRole = Literal["system", "user", "assistant"]
LogCallback = Callable[[str, LogRole], None]
TransportFactory = Callable[[], LiveTransport]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"live_{uuid4().hex[:12]}"


class SessionEngine:
    """
    One engine == at most one live session at a time.

    The engine is reusable: after disconnect() it is IDLE and may connect
    again. A FAILED engine must be disconnect()ed first.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        voice: str,
        on_log: LogCallback,
        playback: PlaybackScheduler,
        transport_factory: TransportFactory | None = None,
        outbound_capacity: int = OUTBOUND_QUEUE_MAX_ITEMS,
    ) -> None:
        if not model or not voice:
            raise ValueError("model and voice are required")

        self._model = model
        self._voice = voice
        self._on_log = on_log
        self._playback = playback
        self._transport_factory: TransportFactory = transport_factory or (
            lambda: WebSocketLiveTransport(api_key=api_key)
        )

        self.session_id: str = _new_session_id()
        self._state = SessionState.IDLE
        self._generation: int = 0

        self._transport: LiveTransport | None = None
        self._open_task: asyncio.Task[None] | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._send_task: asyncio.Task[None] | None = None

        self._outbound = OutboundQueue(max_items=outbound_capacity)
        self._input = TranscriptAccumulator("user")
        self._output = TranscriptAccumulator("assistant")
        self._dropped_fragments: int = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def dropped_fragments(self) -> int:
        """Inbound audio fragments that failed to decode or schedule."""
        return self._dropped_fragments

    @property
    def outbound(self) -> dict[str, int]:
        """Outbound queue counters (depth, drops)."""
        return self._outbound.snapshot()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, system_instruction: str) -> None:
        """
        Open the live session.

        Raises:
            AlreadyActive: not IDLE.
            SessionConnectionError: the open failed (state is FAILED).

        Returns quietly if disconnect() cancels the open.
        """
        if self._state is not SessionState.IDLE:
            raise AlreadyActive(f"session is {self._state.value}")
        if not system_instruction:
            raise ValueError("system_instruction is required")

        self._generation += 1
        generation = self._generation
        self.session_id = _new_session_id()
        self._set_state(SessionState.CONNECTING)

        transport = self._transport_factory()
        self._transport = transport
        setup = build_setup_message(
            LiveSessionSetup(
                model=self._model,
                voice=self._voice,
                system_instruction=system_instruction,
            )
        )
        self._open_task = asyncio.create_task(transport.open(setup))

        try:
            with timed("live_connect_latency", session_id=self.session_id):
                await self._open_task
        except asyncio.CancelledError:
            if generation != self._generation:
                await self._close_transport(transport)
                return
            # The caller itself was cancelled
            self._generation += 1
            self._open_task = None
            self._transport = None
            await self._close_transport(transport)
            self._set_state(SessionState.IDLE)
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            if generation != self._generation:
                return
            self._open_task = None
            self._transport = None
            await self._close_transport(transport)
            self._set_state(SessionState.FAILED)
            self._emit(f"Link error: {exc}", "system")
            if isinstance(exc, SessionConnectionError):
                raise
            raise SessionConnectionError(str(exc)) from exc

        if generation != self._generation:
            # disconnect() ran after the open finished but before we resumed
            await self._close_transport(transport)
            return

        self._open_task = None
        self._set_state(SessionState.ACTIVE)
        self._send_task = asyncio.create_task(self._send_loop(generation, transport))
        self._recv_task = asyncio.create_task(self._receive_loop(generation, transport))
        self._emit("Live link online.", "system")

    async def disconnect(self) -> None:
        """
        Close the session from any state. Idempotent.

        Cancels an in-flight connect, stops playback and clears buffers.
        Always ends IDLE.
        """
        self._generation += 1
        if self._state is not SessionState.IDLE:
            self._set_state(SessionState.CLOSING)
        await self._teardown()
        if self._state is not SessionState.IDLE:
            self._set_state(SessionState.IDLE)

    async def wait_receiver(self) -> None:
        """Wait until the current inbound stream has been fully handled."""
        task = self._recv_task
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def send_audio_chunk(self, chunk: AudioChunk) -> bool:
        """
        Queue a microphone chunk. Never blocks.

        Returns False (without raising) when the session is not ACTIVE or
        the outbound queue is full.
        """
        return self._submit(chunk)

    def send_video_frame(self, image_bytes: bytes, mime_type: str = VIDEO_FRAME_MIME) -> bool:
        """Queue a camera frame. Same rules as send_audio_chunk()."""
        return self._submit(VideoFrame(image_bytes=image_bytes, mime_type=mime_type))

    def _submit(self, chunk: OutboundChunk) -> bool:
        if self._state is not SessionState.ACTIVE:
            self._outbound.record_drop(DropReason.INACTIVE)
            return False

        if not self._outbound.enqueue(chunk):
            count(
                "outbound_chunk_dropped",
                session_id=self.session_id,
                details={"reason": DropReason.OVERFLOW.value, "kind": chunk.kind.value},
            )
            return False
        return True

    async def _send_loop(self, generation: int, transport: LiveTransport) -> None:
        while True:
            chunk = await self._outbound.get()
            if generation != self._generation:
                return
            try:
                await transport.send(build_realtime_input(chunk))
            except SessionConnectionError as exc:
                if generation == self._generation:
                    await self.handle_event(ev.transport_error(str(exc), fatal=True))
                return

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def _receive_loop(self, generation: int, transport: LiveTransport) -> None:
        try:
            async for raw in transport.receive():
                if generation != self._generation:
                    return
                try:
                    message = decode_message(raw)
                except LiveProtocolError as exc:
                    await self.handle_event(ev.transport_error(str(exc)))
                    continue
                for event in parse_server_message(message):
                    await self.handle_event(event)
                    if generation != self._generation:
                        return
        except SessionConnectionError as exc:
            if generation == self._generation:
                await self.handle_event(ev.transport_error(str(exc), fatal=True))
            return

        if generation == self._generation:
            await self.handle_event(ev.transport_closed())

    async def handle_event(self, event: ev.InboundEvent) -> None:
        """
        Apply one inbound event.

        This is the only place inbound facts change engine state. Events
        are handled strictly one at a time in arrival order. State changes
        land before the matching system log, so on_log may read `state`.
        """
        if isinstance(event, ev.PartialInput):
            self._input.append(event.text)

        elif isinstance(event, ev.PartialOutput):
            self._output.append(event.text)

        elif isinstance(event, ev.TurnComplete):
            user_text = self._input.flush()
            if user_text is not None:
                self._emit(user_text, "user")
            assistant_text = self._output.flush()
            if assistant_text is not None:
                self._emit(assistant_text, "assistant")

        elif isinstance(event, ev.AudioFragment):
            self._play_fragment(event.data)

        elif isinstance(event, ev.Interrupted):
            stopped = self._playback.interrupt()
            self._output.clear()
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "PLAYBACK_INTERRUPTED",
                "session_id": self.session_id,
                "sources_stopped": stopped,
            })

        elif isinstance(event, ev.TransportError):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "LIVE_TRANSPORT_ERROR",
                "level": "error",
                "session_id": self.session_id,
                "reason": event.reason,
                "fatal": event.fatal,
            })
            if event.fatal:
                self._generation += 1
                self._set_state(SessionState.FAILED)
            self._emit(f"Link error: {event.reason}", "system")
            if event.fatal:
                await self._teardown()

        elif isinstance(event, ev.TransportClosed):
            self._generation += 1
            self._set_state(SessionState.CLOSING)
            await self._teardown()
            self._set_state(SessionState.IDLE)
            self._emit("Live link closed.", "system")

    def _play_fragment(self, data: str) -> None:
        try:
            pcm = decode_from_transport(data)
            buffer = decode_to_playable_buffer(
                pcm,
                context_sample_rate_hz=self._playback.sample_rate_hz,
            )
            self._playback.schedule(buffer)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            # Best-effort playback: one bad fragment never stalls the stream
            self._dropped_fragments += 1
            count(
                "audio_fragment_dropped",
                session_id=self.session_id,
                details={"exception": type(exc).__name__, "message": str(exc)},
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _teardown(self) -> None:
        current = asyncio.current_task()
        tasks = [
            t for t in (self._open_task, self._recv_task, self._send_task)
            if t is not None and t is not current
        ]
        self._open_task = None
        self._recv_task = None
        self._send_task = None

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        transport, self._transport = self._transport, None
        if transport is not None:
            await self._close_transport(transport)

        self._playback.interrupt()
        self._input.clear()
        self._output.clear()
        self._outbound.clear()

    async def _close_transport(self, transport: LiveTransport) -> None:
        try:
            await transport.close()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "LIVE_CLOSE_ERROR",
                "level": "warning",
                "session_id": self.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })

    def _set_state(self, new_state: SessionState) -> None:
        prev = self._state
        self._state = new_state
        if prev is not new_state:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SESSION_STATE_CHANGED",
                "session_id": self.session_id,
                "from": prev.value,
                "to": new_state.value,
            })

    def _emit(self, text: str, role: LogRole) -> None:
        try:
            self._on_log(text, role)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "HOST_CALLBACK_ERROR",
                "level": "error",
                "session_id": self.session_id,
                "role": role,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
