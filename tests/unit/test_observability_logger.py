# pylint: disable=missing-module-docstring,missing-function-docstring

import json
from typing import Any

import pytest

from observability import logger


@pytest.fixture(name="captured")
def fixture_captured(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    lines: list[str] = []
    # Patch the explicit output sink used by logger
    monkeypatch.setattr(logger, "_print", lines.append)
    logger.configure(json_lines=True, level="info")
    yield lines
    logger.configure(json_lines=True, level="info")


def test_log_event_emits_valid_jsonl(captured: list[str]) -> None:
    """
    Contract:
    - log_event emits exactly one JSONL line
    - payload is serialized as-is
    - output sink is patchable
    """
    payload: dict[str, Any] = {
        "ts_ms": 1,
        "event_type": "TEST",
        "value": 123,
    }

    logger.log_event(payload)

    # Exactly one line emitted
    assert len(captured) == 1

    # Payload must be preserved exactly
    assert json.loads(captured[0]) == payload


def test_missing_timestamp_is_filled_in(captured: list[str]) -> None:
    logger.log_event({"event_type": "TEST"})

    decoded = json.loads(captured[0])
    assert isinstance(decoded["ts_ms"], int)
    assert decoded["event_type"] == "TEST"


def test_events_below_min_level_are_dropped(captured: list[str]) -> None:
    logger.configure(level="WARNING")

    logger.log_event({"event_type": "QUIET", "level": "debug"})
    logger.log_event({"event_type": "NORMAL"})
    logger.log_event({"event_type": "LOUD", "level": "error"})

    assert [json.loads(line)["event_type"] for line in captured] == ["LOUD"]


def test_text_mode_puts_event_type_first(captured: list[str]) -> None:
    logger.configure(json_lines=False)

    logger.log_event({"ts_ms": 5, "event_type": "HAPTIC", "code": "HAPTIC_2"})

    assert captured == ['HAPTIC ts_ms=5 code="HAPTIC_2"']


def test_unserializable_payload_falls_back(captured: list[str]) -> None:
    logger.log_event({"ts_ms": 9, "event_type": "BAD", "obj": object()})

    decoded = json.loads(captured[0])
    assert decoded["event_type"] == "LOGGER_SERIALIZATION_ERROR"
    assert decoded["ts_ms"] == 9
