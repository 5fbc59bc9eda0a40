from __future__ import annotations

from .client import ControlClient, ExecutionContext
from .connector import connect_to_worker
from .exceptions import ConnectionTimeout, ControlError, ProtocolError
from .schema import Method, control_url

__all__ = [
    "ConnectionTimeout",
    "ControlClient",
    "ControlError",
    "ExecutionContext",
    "Method",
    "ProtocolError",
    "connect_to_worker",
    "control_url",
]
