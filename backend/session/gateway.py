"""
Live gateway: one client WebSocket <-> one SessionEngine.

Responsibilities:
- Owns the engine, playback scheduler, haptic dispatcher and log history
- Tracks the user-facing ConnectionStatus
- Routes inbound JSON control messages (CONNECT, DISCONNECT, VIDEO_FRAME, ...)
- Routes inbound binary microphone audio to the engine
- Turns engine log callbacks into LOG / HAPTIC messages for the client
- Links and unlinks the shared haptic actuator on request

Outbound messages are pushed to an outbox; the route pumps it to the socket.

NOT responsible for:
- Live protocol details (session/engine.py)
- Retry policy (the user reconnects explicitly)
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING
from uuid import uuid4

from actuator.serial_link import (
    ActuatorError,
    OpenFailed,
    SerialActuatorLink,
    UserCancelled,
    preferred_port_chooser,
)
from audio.codec import DecodeError, decode_from_transport
from audio.frames import AudioChunk
from audio.playback import AudioOutput, PlaybackScheduler
from audio.resample import resample_pcm16
from constants import (
    AUDIO_SAMPLE_WIDTH_BYTES,
    CLIENT_CAPTURE_SAMPLE_RATE_HZ_DEFAULT,
    INPUT_CHANNELS,
    INPUT_SAMPLE_RATE_HZ,
    VIDEO_FRAME_MIME,
)
from context.log_history import LogHistory, LogRole
from control.haptics import HapticCode, HapticDispatcher
from observability.logger import log_event
from session.connection_status import ConnectionStatus
from session.engine import LogCallback, SessionEngine
from session.errors import SessionConnectionError
from session.prompts import GREETING, SYSTEM_PROMPT_V1
from session.state import SessionState

if TYPE_CHECKING:
    from config import AppConfig


EngineFactory = Callable[[LogCallback, PlaybackScheduler], SessionEngine]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Return value for gateway boundary methods.

    outbound_json:
        JSON messages to send to the client right away
    """
    outbound_json: tuple[dict[str, Any], ...] = ()


# ------------------------------------------------------------------
# LiveGateway
# ------------------------------------------------------------------

class LiveGateway:
    """
    One gateway == one client connection.

    The actuator link and audio output are process-wide and injected.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        actuator: SerialActuatorLink,
        audio_output: AudioOutput,
        engine_factory: EngineFactory | None = None,
    ) -> None:
        self._config = config
        self._actuator = actuator
        self._engine_factory = engine_factory

        self.session_id: str = _new_session_id()
        self.status: ConnectionStatus = ConnectionStatus.DISCONNECTED
        self.history = LogHistory(session_id=self.session_id)
        self.dispatcher = HapticDispatcher(actuator)
        self.playback = PlaybackScheduler(audio_output)

        self._engine: SessionEngine | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._capture_rate_hz: int = CLIENT_CAPTURE_SAMPLE_RATE_HZ_DEFAULT
        self._outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    # ------------------------------------------------------------------
    # WebSocket lifecycle
    # ------------------------------------------------------------------

    async def on_ws_connect(self) -> GatewayResult:
        """Called when the client WebSocket is accepted."""
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_CONNECTED",
            "session_id": self.session_id,
        })

        init_msg: dict[str, Any] = {
            "type": "SESSION_INIT",
            "session_id": self.session_id,
            "audio_format": {
                "input": {
                    "sample_rate": INPUT_SAMPLE_RATE_HZ,
                    "sample_width": AUDIO_SAMPLE_WIDTH_BYTES,
                    "channels": INPUT_CHANNELS,
                },
                "output": {
                    "sample_rate": self.playback.sample_rate_hz,
                },
            },
            "haptic_codes": {code.value: code.meaning for code in HapticCode},
            "status": self.status.value,
            "actuator": self._actuator_snapshot(),
        }
        return GatewayResult(outbound_json=(init_msg,))

    async def on_ws_disconnect(self, reason: str | None = None) -> GatewayResult:
        """Called when the client WebSocket goes away."""
        await self._stop_engine()
        await self.dispatcher.drain()
        self.status = ConnectionStatus.DISCONNECTED

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_DISCONNECTED",
            "session_id": self.session_id,
            "reason": reason,
        })
        return GatewayResult()

    async def next_outbound(self) -> dict[str, Any]:
        """Wait for the next message to push to the client."""
        return await self._outbox.get()

    def drain_outbound(self) -> tuple[dict[str, Any], ...]:
        """Pop every queued outbound message without waiting."""
        out: list[dict[str, Any]] = []
        while not self._outbox.empty():
            out.append(self._outbox.get_nowait())
        return tuple(out)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> GatewayResult:
        """Route one client control message."""
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "session_id": self.session_id,
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        if not isinstance(data, dict):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INVALID_MESSAGE",
                "session_id": self.session_id,
                "payload_preview": payload[:100],
            })
            return GatewayResult()

        msg_type = data.get("type")

        if msg_type == "CONNECT":
            await self._handle_connect()
        elif msg_type == "DISCONNECT":
            await self._handle_disconnect()
        elif msg_type == "AUDIO_FORMAT":
            self._handle_audio_format(data)
        elif msg_type == "VIDEO_FRAME":
            self._handle_video_frame(data)
        elif msg_type == "ACTUATOR_LINK":
            await self._handle_actuator_link(data)
        elif msg_type == "ACTUATOR_UNLINK":
            await self._handle_actuator_unlink()
        else:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "UNKNOWN_MESSAGE_TYPE",
                "session_id": self.session_id,
                "msg_type": msg_type,
            })

        return GatewayResult()

    async def on_binary_message(self, payload: bytes) -> GatewayResult:
        """
        Handle one chunk of microphone audio.

        PCM16 LE mono at the declared capture rate; forwarded only while
        CONNECTED.
        """
        engine = self._engine
        if self.status is not ConnectionStatus.CONNECTED or engine is None:
            return GatewayResult()

        if len(payload) % AUDIO_SAMPLE_WIDTH_BYTES != 0:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "BINARY_DECODE_ERROR",
                "session_id": self.session_id,
                "error": "odd-length PCM16 payload",
                "payload_len": len(payload),
            })
            return GatewayResult()

        pcm = payload
        if self._capture_rate_hz != INPUT_SAMPLE_RATE_HZ:
            pcm = resample_pcm16(payload, self._capture_rate_hz, INPUT_SAMPLE_RATE_HZ)

        engine.send_audio_chunk(AudioChunk(pcm_bytes=pcm))
        return GatewayResult()

    # ------------------------------------------------------------------
    # Live session control
    # ------------------------------------------------------------------

    async def _handle_connect(self) -> None:
        if self.status in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CONNECT_IGNORED",
                "session_id": self.session_id,
                "status": self.status.value,
            })
            return

        try:
            instruction = self._config.load_system_instruction(SYSTEM_PROMPT_V1)
        except OSError as e:
            self._set_status(ConnectionStatus.ERROR)
            self._add_log(f"Live link failed: cannot read system instruction ({e})", "system")
            return

        if not instruction.strip():
            self._set_status(ConnectionStatus.ERROR)
            self._add_log("Live link failed: system instruction is empty.", "system")
            return

        if self._engine is None:
            if self._engine_factory is None and not self._config.gemini_api_key:
                self._set_status(ConnectionStatus.ERROR)
                self._add_log("Live link failed: GEMINI_API_KEY is not set.", "system")
                return
            self._engine = self._build_engine()

        self._set_status(ConnectionStatus.CONNECTING)

        engine = self._engine
        if engine.state is not SessionState.IDLE:
            await engine.disconnect()

        self._connect_task = asyncio.create_task(self._run_connect(engine, instruction))

    async def _run_connect(self, engine: SessionEngine, instruction: str) -> None:
        try:
            await engine.connect(instruction)
        except SessionConnectionError as e:
            self._set_status(ConnectionStatus.ERROR)
            self._add_log(f"Live link failed: {e}", "system")
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "CONNECT_TASK_ERROR",
                "level": "error",
                "session_id": self.session_id,
                "error": repr(e),
            })
            self._set_status(ConnectionStatus.ERROR)
            self._add_log(f"Live link failed: {e}", "system")
            return

        if engine.state is SessionState.ACTIVE and self.status is ConnectionStatus.CONNECTING:
            self._set_status(ConnectionStatus.CONNECTED)
            self._on_engine_log(GREETING, "assistant")

    async def _handle_disconnect(self) -> None:
        await self._stop_engine()
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def _stop_engine(self) -> None:
        engine = self._engine
        if engine is not None:
            await engine.disconnect()

        task, self._connect_task = self._connect_task, None
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

        self.playback.interrupt()

    def _build_engine(self) -> SessionEngine:
        if self._engine_factory is not None:
            return self._engine_factory(self._on_engine_log, self.playback)

        return SessionEngine(
            api_key=self._config.gemini_api_key or "",
            model=self._config.live_model,
            voice=self._config.live_voice,
            on_log=self._on_engine_log,
            playback=self.playback,
        )

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    def _handle_audio_format(self, data: dict[str, Any]) -> None:
        rate = data.get("sample_rate")
        if not isinstance(rate, int) or isinstance(rate, bool) or rate <= 0:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INVALID_AUDIO_FORMAT",
                "session_id": self.session_id,
                "sample_rate": rate,
            })
            return

        self._capture_rate_hz = rate
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "AUDIO_FORMAT_SET",
            "session_id": self.session_id,
            "sample_rate": rate,
        })

    def _handle_video_frame(self, data: dict[str, Any]) -> None:
        engine = self._engine
        if self.status is not ConnectionStatus.CONNECTED or engine is None:
            return

        encoded = data.get("data")
        if not isinstance(encoded, str):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INVALID_VIDEO_FRAME",
                "session_id": self.session_id,
                "error": "missing data",
            })
            return

        try:
            image = decode_from_transport(encoded)
        except DecodeError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "INVALID_VIDEO_FRAME",
                "session_id": self.session_id,
                "error": str(e),
            })
            return

        mime_type = data.get("mime_type")
        engine.send_video_frame(
            image,
            mime_type=mime_type if isinstance(mime_type, str) else VIDEO_FRAME_MIME,
        )

    # ------------------------------------------------------------------
    # Actuator
    # ------------------------------------------------------------------

    async def _handle_actuator_link(self, data: dict[str, Any]) -> None:
        port = data.get("port")
        baud_rate = data.get("baud_rate", self._config.serial_baud_rate)
        if not isinstance(baud_rate, int) or baud_rate <= 0:
            baud_rate = self._config.serial_baud_rate

        chooser = None
        if isinstance(port, str) and port:
            chooser = preferred_port_chooser(port)

        try:
            await self._actuator.request_device(chooser)
            await self._actuator.open(baud_rate)
        except UserCancelled:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "ACTUATOR_LINK_CANCELLED",
                "session_id": self.session_id,
                "port": port,
            })
            self._publish_actuator()
            return
        except OpenFailed:
            self._add_log("Serial error: please ensure no other app is using the port.", "system")
            self._publish_actuator()
            return
        except ActuatorError as e:
            self._add_log(f"Serial error: {e}", "system")
            self._publish_actuator()
            return

        self._add_log("Haptic glove linked successfully.", "system")
        self._publish_actuator()

    async def _handle_actuator_unlink(self) -> None:
        await self.dispatcher.drain()
        await self._actuator.close()
        self._add_log("Haptic glove offline.", "system")
        self._publish_actuator()

    def _actuator_snapshot(self) -> dict[str, Any]:
        return {
            "state": self._actuator.state.value,
            "port": self._actuator.port_name,
        }

    def _publish_actuator(self) -> None:
        self._publish({"type": "ACTUATOR", **self._actuator_snapshot()})

    # ------------------------------------------------------------------
    # Engine callback + outbox
    # ------------------------------------------------------------------

    def _on_engine_log(self, text: str, role: LogRole) -> None:
        if role == "assistant":
            result = self.dispatcher.process(text)
            text = result.display_text
            if result.code is not None:
                self._publish({
                    "type": "HAPTIC",
                    "code": result.code.value,
                    "meaning": result.code.meaning,
                    "pulse_ms": result.code.local_pulse_ms,
                })

        self._add_log(text, role)

        if role == "system":
            self._sync_status()

    def _sync_status(self) -> None:
        """Follow engine-initiated transitions (remote close, fatal errors)."""
        engine = self._engine
        if engine is None or self.status is not ConnectionStatus.CONNECTED:
            return
        if engine.state is SessionState.FAILED:
            self._set_status(ConnectionStatus.ERROR)
        elif engine.state is SessionState.IDLE:
            self._set_status(ConnectionStatus.DISCONNECTED)

    def _add_log(self, text: str, role: LogRole) -> None:
        entry = self.history.add(text, role)
        self._publish({"type": "LOG", **entry.to_dict()})

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self.status:
            return
        prev = self.status
        self.status = status
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "CONNECTION_STATUS_CHANGED",
            "session_id": self.session_id,
            "from": prev.value,
            "to": status.value,
        })
        self._publish({"type": "STATUS", "status": status.value})

    def _publish(self, msg: dict[str, Any]) -> None:
        self._outbox.put_nowait(msg)
