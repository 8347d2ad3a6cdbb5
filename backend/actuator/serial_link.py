"""
Serial link to the haptic actuator (glove).

Lifecycle:
    UNBOUND -> REQUESTED -> OPEN -> CLOSED

Wire format: newline-terminated ASCII tokens, no acknowledgment.

Responsibilities:
- Device selection (request_device)
- Opening the port at a baud rate in a worker thread
- Serialized, line-oriented writes that never raise
- Releasing the port from any state

Non-responsibilities:
- Deciding WHAT to write (see control/haptics.py)
- Firmware semantics of the tokens
"""

from __future__ import annotations

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Sequence

import serial
from serial.tools import list_ports
from serial.tools.list_ports_common import ListPortInfo

from constants import (
    SERIAL_BAUD_RATE_DEFAULT,
    SERIAL_LINE_TERMINATOR,
    SERIAL_WRITE_TIMEOUT_S,
)
from observability.logger import log_event


# ---------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------

class ActuatorError(Exception):
    """Base class for actuator link failures."""


class DeviceUnavailable(ActuatorError):
    """The host has no serial capability or no ports to choose from."""


class UserCancelled(ActuatorError):
    """Device selection was declined."""


class NotRequested(ActuatorError):
    """open() was called before a device was selected."""


class OpenFailed(ActuatorError):
    """The port refused the rate or is claimed by another process."""


class WriteFailure(ActuatorError):
    """A line could not be written. Logged, never raised to callers."""


# ---------------------------------------------------------------------
# State
# ---------------------------------------------------------------------

class ActuatorLinkState(str, Enum):
    UNBOUND = "UNBOUND"
    REQUESTED = "REQUESTED"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


PortChooser = Callable[[Sequence[ListPortInfo]], "ListPortInfo | str | None"]
SerialFactory = Callable[..., Any]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def preferred_port_chooser(preferred: str | None) -> PortChooser:
    """
    Build a chooser that picks `preferred` by device name, or the only
    available port when there is exactly one. Anything else declines.
    """
    def _choose(ports: Sequence[ListPortInfo]) -> ListPortInfo | None:
        if preferred:
            for port in ports:
                if port.device == preferred or port.name == preferred:
                    return port
            return None
        if len(ports) == 1:
            return ports[0]
        return None

    return _choose


class SerialActuatorLink:
    """
    Single-device serial channel.

    One instance owns at most one port handle. All public coroutines must
    be awaited from the same event loop.
    """

    def __init__(
        self,
        *,
        preferred_port: str | None = None,
        serial_factory: SerialFactory = serial.Serial,
        list_ports_fn: Callable[[], Sequence[ListPortInfo]] | None = list_ports.comports,
    ) -> None:
        self._preferred_port = preferred_port
        self._serial_factory = serial_factory
        self._list_ports = list_ports_fn

        self._state = ActuatorLinkState.UNBOUND
        self._port_name: str | None = None
        self._handle: Any = None
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> ActuatorLinkState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ActuatorLinkState.OPEN

    @property
    def port_name(self) -> str | None:
        return self._port_name

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def request_device(self, chooser: PortChooser | None = None) -> str:
        """
        Select a device to open later.

        Raises:
            DeviceUnavailable: no serial support or no ports found.
            UserCancelled: the chooser declined. Safe to call again.

        Picking a different device while OPEN releases the current port
        first; picking the same one leaves the link open.
        """
        if self._list_ports is None:
            raise DeviceUnavailable("serial ports are not supported on this host")

        ports = list(await asyncio.to_thread(self._list_ports))
        if not ports:
            raise DeviceUnavailable("no serial ports found")

        choose = chooser or preferred_port_chooser(self._preferred_port)
        picked = choose(ports)
        if picked is None:
            if self._state is ActuatorLinkState.REQUESTED:
                self._state = ActuatorLinkState.UNBOUND
                self._port_name = None
            raise UserCancelled("device selection cancelled")

        picked_name = picked if isinstance(picked, str) else picked.device
        if self._state is ActuatorLinkState.OPEN:
            if picked_name == self._port_name:
                return self._port_name
            # The open handle belongs to the previous device.
            await self.close()

        self._port_name = picked_name
        self._state = ActuatorLinkState.REQUESTED

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "ACTUATOR_DEVICE_REQUESTED",
            "port": self._port_name,
        })
        return self._port_name

    async def open(self, baud_rate: int = SERIAL_BAUD_RATE_DEFAULT) -> None:
        """
        Open the selected device at `baud_rate`.

        Raises:
            NotRequested: no device selected yet.
            OpenFailed: the port could not be opened.
        """
        if self._state is ActuatorLinkState.OPEN:
            return
        if self._port_name is None:
            raise NotRequested("request_device() must succeed before open()")

        try:
            handle = await asyncio.to_thread(
                self._serial_factory,
                self._port_name,
                baud_rate,
                write_timeout=SERIAL_WRITE_TIMEOUT_S,
            )
        except (serial.SerialException, OSError, ValueError) as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "ACTUATOR_OPEN_FAILED",
                "level": "warning",
                "port": self._port_name,
                "baud_rate": baud_rate,
                "error": str(e),
            })
            raise OpenFailed(f"could not open {self._port_name}: {e}") from e

        self._handle = handle
        self._state = ActuatorLinkState.OPEN

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "ACTUATOR_OPENED",
            "port": self._port_name,
            "baud_rate": baud_rate,
        })

    async def write_line(self, text: str) -> bool:
        """
        Write `text` plus a newline.

        Never raises. Returns False when the link is not open or the write
        failed (the failure is logged as WriteFailure).
        """
        async with self._write_lock:
            if self._state is not ActuatorLinkState.OPEN or self._handle is None:
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "ACTUATOR_WRITE_SKIPPED",
                    "level": "warning",
                    "reason": "link_not_open",
                    "state": self._state.value,
                    "line": text,
                })
                return False

            data = (text + SERIAL_LINE_TERMINATOR).encode("ascii", errors="replace")
            handle = self._handle
            try:
                await asyncio.to_thread(self._write_and_flush, handle, data)
            except (serial.SerialException, OSError) as e:
                failure = WriteFailure(f"write to {self._port_name} failed: {e}")
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "ACTUATOR_WRITE_FAILED",
                    "level": "error",
                    "port": self._port_name,
                    "line": text,
                    "error": str(failure),
                })
                return False

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "ACTUATOR_LINE_SENT",
            "port": self._port_name,
            "line": text,
        })
        return True

    async def close(self) -> None:
        """Release the port. Safe from any state."""
        async with self._write_lock:
            handle = self._handle
            self._handle = None
            self._state = ActuatorLinkState.CLOSED

            if handle is None:
                return

            try:
                await asyncio.to_thread(handle.close)
            except (serial.SerialException, OSError) as e:
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "ACTUATOR_CLOSE_ERROR",
                    "level": "warning",
                    "port": self._port_name,
                    "error": str(e),
                })

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "ACTUATOR_CLOSED",
            "port": self._port_name,
        })

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _write_and_flush(handle: Any, data: bytes) -> None:
        handle.write(data)
        handle.flush()
