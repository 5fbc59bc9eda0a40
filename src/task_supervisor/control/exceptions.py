from __future__ import annotations

from datetime import timedelta


class ControlError(Exception):
    """Base exception for the control channel module."""


class ProtocolError(ControlError):
    """Raised on a malformed, unexpected or error response from the worker."""


class ConnectionTimeout(ControlError, TimeoutError):
    """Raised when the worker's control channel does not become ready in time."""

    def __init__(self, message: str, duration: timedelta) -> None:
        super().__init__(f"{message} (timed out after {duration})")
        self.message = message
        self.duration = duration
