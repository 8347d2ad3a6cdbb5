"""Session error taxonomy."""

from __future__ import annotations


class SessionError(Exception):
    """Base class for live session failures."""


class AlreadyActive(SessionError):
    """connect() was called while a session exists."""


class SessionConnectionError(SessionError, ConnectionError):
    """
    Opening or sustaining the remote session failed.

    Surfaced to the host as a system log entry; never retried by the engine.
    """


class LiveProtocolError(SessionError):
    """An inbound message could not be parsed."""
