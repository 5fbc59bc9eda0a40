from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import Any, Final, Literal

from pydantic import BaseModel, Field

CONTROL_PATH: Final = "/ws"
READY: Final = "ready"


def control_url(port: int, host: str = "localhost") -> str:
    return f"ws://{host}:{port}{CONTROL_PATH}"


class Method(StrEnum):
    LIST_CONTEXTS = "listContexts"
    READY_QUERY = "readyQuery"
    RUN_TASK = "runTask"


class ErrorCode(IntEnum):
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    TASK_NOT_REGISTERED = -32000


class RpcRequest(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    id: int
    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class RpcErrorBody(BaseModel):
    code: int
    message: str


class RpcResponse(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    id: int | None = None
    result: Any = None
    error: RpcErrorBody | None = None


class ContextInfo(BaseModel):
    """An execution context exposed by the worker. Workers expose exactly one."""

    id: str
    name: str = "main"


class ContextList(BaseModel):
    contexts: list[ContextInfo]
