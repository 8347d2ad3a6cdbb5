"""
WebSocket transport to the live API.

Responsibilities:
- Open the socket and complete the setup handshake
- Send JSON messages
- Yield raw inbound messages in delivery order
- Map websocket failures to SessionConnectionError

Non-responsibilities:
- Message semantics (session/protocol.py)
- Session state (session/engine.py)
"""

from __future__ import annotations

import asyncio
import json
import urllib.parse
from typing import Any, AsyncIterator, Protocol

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, WebSocketException

from constants import (
    LIVE_SETUP_TIMEOUT_S,
    LIVE_WS_HOST,
    LIVE_WS_MAX_MESSAGE_BYTES,
    LIVE_WS_PATH,
)
from session.errors import LiveProtocolError, SessionConnectionError
from session.protocol import decode_message, is_setup_complete


class LiveTransport(Protocol):
    """What the engine needs from a connection."""

    async def open(self, setup_message: dict[str, Any]) -> None:
        """Connect and complete setup. Raises SessionConnectionError."""

    async def send(self, message: dict[str, Any]) -> None:
        """Send one JSON message. Raises SessionConnectionError."""

    def receive(self) -> AsyncIterator[str | bytes]:
        """
        Yield raw messages until the peer closes.

        Ends normally on a clean close; raises SessionConnectionError when
        the connection drops.
        """

    async def close(self) -> None:
        """Close the connection. Idempotent."""


def build_live_url(api_key: str) -> str:
    qs = urllib.parse.urlencode({"key": api_key})
    return f"wss://{LIVE_WS_HOST}{LIVE_WS_PATH}?{qs}"


class WebSocketLiveTransport:
    """LiveTransport over the `websockets` asyncio client."""

    def __init__(
        self,
        *,
        api_key: str,
        url: str | None = None,
        setup_timeout_s: float = LIVE_SETUP_TIMEOUT_S,
    ) -> None:
        self._url = url or build_live_url(api_key)
        self._setup_timeout_s = setup_timeout_s
        self._ws: ClientConnection | None = None

    async def open(self, setup_message: dict[str, Any]) -> None:
        try:
            self._ws = await ws_connect(
                self._url,
                max_size=LIVE_WS_MAX_MESSAGE_BYTES,
            )
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            self._ws = None
            raise SessionConnectionError(f"live connect failed: {e!r}") from e

        try:
            await self._ws.send(json.dumps(setup_message))
            raw = await asyncio.wait_for(self._ws.recv(), timeout=self._setup_timeout_s)
            reply = decode_message(raw)
        except asyncio.TimeoutError as e:
            await self.close()
            raise SessionConnectionError("live setup timed out") from e
        except (WebSocketException, OSError, LiveProtocolError) as e:
            await self.close()
            raise SessionConnectionError(f"live setup failed: {e!r}") from e

        if not is_setup_complete(reply):
            await self.close()
            raise SessionConnectionError(
                f"unexpected setup reply: {json.dumps(reply)[:200]}"
            )

    async def send(self, message: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None:
            raise SessionConnectionError("live socket is not open")
        try:
            await ws.send(json.dumps(message))
        except (WebSocketException, OSError) as e:
            raise SessionConnectionError(f"live send failed: {e!r}") from e

    async def receive(self) -> AsyncIterator[str | bytes]:
        ws = self._ws
        if ws is None:
            return
        try:
            async for raw in ws:
                yield raw
        except ConnectionClosedOK:
            return
        except ConnectionClosedError as e:
            close = e.rcvd
            detail = f"code={close.code}, reason={close.reason!r}" if close else "no close frame"
            raise SessionConnectionError(f"live connection dropped ({detail})") from e
        except (WebSocketException, OSError) as e:
            raise SessionConnectionError(f"live receive failed: {e!r}") from e

    async def close(self) -> None:
        ws = self._ws
        self._ws = None
        if ws is None:
            return
        try:
            await ws.close()
        except (WebSocketException, OSError):
            pass
