# pylint: disable=missing-module-docstring,missing-function-docstring

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest
import serial

from actuator.serial_link import (
    ActuatorLinkState,
    DeviceUnavailable,
    NotRequested,
    OpenFailed,
    SerialActuatorLink,
    UserCancelled,
)


class FakeSerial:
    def __init__(self, port: str, baudrate: int, **kwargs: Any) -> None:
        self.port = port
        self.baudrate = baudrate
        self.kwargs = kwargs
        self.written: list[bytes] = []
        self.closed = False
        self.fail_writes = False

    def write(self, data: bytes) -> int:
        if self.fail_writes:
            raise serial.SerialException("device unplugged")
        self.written.append(data)
        return len(data)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


class FakeSerialFactory:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.handles: list[FakeSerial] = []
        self._error = error

    def __call__(self, port: str, baudrate: int, **kwargs: Any) -> FakeSerial:
        if self._error is not None:
            raise self._error
        handle = FakeSerial(port, baudrate, **kwargs)
        self.handles.append(handle)
        return handle


def port(device: str) -> SimpleNamespace:
    return SimpleNamespace(device=device, name=device.rsplit("/", 1)[-1])


def make_link(
    ports: list[SimpleNamespace] | None = None,
    *,
    preferred_port: str | None = None,
    factory: FakeSerialFactory | None = None,
) -> tuple[SerialActuatorLink, FakeSerialFactory]:
    factory = factory or FakeSerialFactory()
    available = [port("/dev/ttyACM0")] if ports is None else ports
    link = SerialActuatorLink(
        preferred_port=preferred_port,
        serial_factory=factory,
        list_ports_fn=lambda: available,
    )
    return link, factory


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------

def test_request_open_write_close():
    link, factory = make_link()

    async def scenario():
        assert await link.request_device() == "/dev/ttyACM0"
        assert link.state is ActuatorLinkState.REQUESTED

        await link.open(9600)
        assert link.is_open

        assert await link.write_line("HAPTIC_3") is True
        await link.close()

    asyncio.run(scenario())

    handle = factory.handles[0]
    assert handle.port == "/dev/ttyACM0"
    assert handle.baudrate == 9600
    assert handle.written == [b"HAPTIC_3\n"]
    assert handle.closed
    assert link.state is ActuatorLinkState.CLOSED
    assert not link.is_open


def test_preferred_port_is_chosen_among_many():
    link, _ = make_link(
        [port("/dev/ttyUSB0"), port("/dev/ttyUSB1")],
        preferred_port="ttyUSB1",
    )

    assert asyncio.run(link.request_device()) == "/dev/ttyUSB1"


def test_ambiguous_choice_is_a_cancel():
    link, _ = make_link([port("/dev/ttyUSB0"), port("/dev/ttyUSB1")])

    with pytest.raises(UserCancelled):
        asyncio.run(link.request_device())
    assert link.state is ActuatorLinkState.UNBOUND


def test_custom_chooser_can_decline():
    link, _ = make_link()

    with pytest.raises(UserCancelled):
        asyncio.run(link.request_device(lambda ports: None))


def test_no_ports_means_unavailable():
    link, _ = make_link([])

    with pytest.raises(DeviceUnavailable):
        asyncio.run(link.request_device())


def test_host_without_serial_support():
    link = SerialActuatorLink(list_ports_fn=None)

    with pytest.raises(DeviceUnavailable):
        asyncio.run(link.request_device())


def test_open_before_request_fails():
    link, _ = make_link()

    with pytest.raises(NotRequested):
        asyncio.run(link.open())


def test_busy_port_fails_to_open():
    link, _ = make_link(factory=FakeSerialFactory(error=serial.SerialException("busy")))

    async def scenario():
        await link.request_device()
        await link.open()

    with pytest.raises(OpenFailed):
        asyncio.run(scenario())
    assert link.state is ActuatorLinkState.REQUESTED


# ---------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------

def test_write_when_not_open_is_skipped():
    link, _ = make_link()

    assert asyncio.run(link.write_line("HAPTIC_1")) is False


def test_write_failure_returns_false():
    link, factory = make_link()

    async def scenario():
        await link.request_device()
        await link.open()
        factory.handles[0].fail_writes = True
        return await link.write_line("HAPTIC_2")

    assert asyncio.run(scenario()) is False
    assert link.is_open


def test_concurrent_writes_keep_submission_order():
    link, factory = make_link()

    async def scenario():
        await link.request_device()
        await link.open()
        await asyncio.gather(*(link.write_line(f"HAPTIC_{i}") for i in range(6)))

    asyncio.run(scenario())

    assert factory.handles[0].written == [f"HAPTIC_{i}\n".encode() for i in range(6)]


def test_close_is_safe_from_any_state():
    link, _ = make_link()

    asyncio.run(link.close())
    asyncio.run(link.close())

    assert link.state is ActuatorLinkState.CLOSED


def test_switching_device_while_open_releases_old_port():
    link, factory = make_link([port("/dev/ttyUSB0"), port("/dev/ttyUSB1")])

    async def scenario():
        await link.request_device(lambda ports: ports[0])
        await link.open()

        assert await link.request_device(lambda ports: ports[1]) == "/dev/ttyUSB1"
        assert link.state is ActuatorLinkState.REQUESTED

        await link.open()
        assert await link.write_line("HAPTIC_2") is True

    asyncio.run(scenario())

    old, new = factory.handles
    assert old.port == "/dev/ttyUSB0"
    assert old.closed
    assert old.written == []
    assert new.port == "/dev/ttyUSB1"
    assert new.written == [b"HAPTIC_2\n"]
    assert link.port_name == "/dev/ttyUSB1"


def test_reselecting_same_device_keeps_link_open():
    link, factory = make_link()

    async def scenario():
        await link.request_device()
        await link.open()
        await link.request_device()
        await link.open()

    asyncio.run(scenario())

    assert link.is_open
    assert len(factory.handles) == 1
    assert not factory.handles[0].closed
