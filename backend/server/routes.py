"""
Route registration for the live assistant API.

Responsibilities:
- Define HTTP and WebSocket endpoints
- Wire the gateway to the WebSocket lifecycle
- Pump the gateway outbox to the client
- Pull shared dependencies from app.state
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from observability.logger import log_event
from session.gateway import GatewayResult, LiveGateway


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""
    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/status")
    async def status() -> dict[str, Any]: # pyright: ignore[reportUnusedFunction]
        actuator = app.state.actuator
        return {
            "actuator": {
                "state": actuator.state.value,
                "port": actuator.port_name,
            },
            "live_model": app.state.config.live_model,
            "audio_output": app.state.config.audio_output,
        }

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None: # pyright: ignore[reportUnusedFunction]
        await ws.accept()

        gateway = LiveGateway(
            config=app.state.config,
            actuator=app.state.actuator,
            audio_output=app.state.audio_output,
        )
        send_lock = asyncio.Lock()
        pump = asyncio.create_task(_pump_outbox(ws, gateway, send_lock))

        try:
            result = await gateway.on_ws_connect()
            await _flush_gateway_result(ws, result, send_lock)

            while True:
                msg = await ws.receive()

                if msg.get("type") == "websocket.disconnect":
                    raise WebSocketDisconnect(code=msg.get("code", 1000))

                if msg.get("text") is not None:
                    result = await gateway.on_json_message(msg["text"])
                    await _flush_gateway_result(ws, result, send_lock)

                elif msg.get("bytes") is not None:
                    result = await gateway.on_binary_message(msg["bytes"])
                    await _flush_gateway_result(ws, result, send_lock)

        except WebSocketDisconnect:
            await gateway.on_ws_disconnect(reason="client_disconnect")

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "WS_FATAL_ERROR",
                "level": "error",
                "session_id": gateway.session_id,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            await gateway.on_ws_disconnect(reason="server_error")

        finally:
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)


async def _pump_outbox(ws: WebSocket, gateway: LiveGateway, send_lock: asyncio.Lock) -> None:
    while True:
        msg = await gateway.next_outbound()
        try:
            async with send_lock:
                await ws.send_text(json.dumps(msg))
        except (WebSocketDisconnect, RuntimeError) as exc:
            log_event({
                "event_type": "WS_SEND_FAILED",
                "level": "warning",
                "session_id": gateway.session_id,
                "exception": type(exc).__name__,
                "message_type": msg.get("type"),
            })
            return


async def _flush_gateway_result(
    ws: WebSocket,
    result: GatewayResult,
    send_lock: asyncio.Lock,
) -> None:
    async with send_lock:
        for msg in result.outbound_json:
            await ws.send_text(json.dumps(msg))
