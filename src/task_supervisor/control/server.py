from __future__ import annotations

import inspect
import os
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import anyio
from attrs import define, field
from loguru import logger
from pydantic import ValidationError
from pydantic_core import PydanticSerializationError
from websockets import ConnectionClosed
from websockets.asyncio.server import ServerConnection, serve

from task_supervisor.config import WorkerConfig
from task_supervisor.model import TaskResult, failure_payload, success_payload

from .schema import (
    CONTROL_PATH,
    READY,
    ContextInfo,
    ContextList,
    ErrorCode,
    Method,
    RpcErrorBody,
    RpcRequest,
    RpcResponse,
    control_url,
)

type TaskOutcome = Mapping[str, Any] | TaskResult
type TaskFunction = Callable[[], Awaitable[TaskOutcome] | TaskOutcome]

NOT_READY = "initializing"


class _RequestFailed(Exception):
    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


@define
class ControlServer:
    """
    Worker side of the control channel.

    Serves the readiness and run operations for a single task function.
    `readyQuery` answers "ready" once a task is registered; `runTask` runs it
    once under the worker's own task timeout and reports the outcome.
    """

    config: WorkerConfig = field(factory=WorkerConfig)
    context: ContextInfo = field(
        factory=lambda: ContextInfo(id=f"context-{os.getpid()}")
    )

    _task: TaskFunction | None = field(init=False, default=None)
    _payload: dict[str, Any] | None = field(init=False, default=None)
    _done: anyio.Event = field(init=False, factory=anyio.Event)
    _connections: int = field(init=False, default=0)
    _idle: anyio.Event = field(init=False, factory=anyio.Event)

    @property
    def finished(self) -> bool:
        return self._done.is_set()

    @property
    def connections(self) -> int:
        """Number of control connections currently open."""
        return self._connections

    def register(self, task: TaskFunction) -> None:
        self._task = task

    async def serve(
        self, port: int, *, host: str = "127.0.0.1", pause_on_exit: bool = False
    ) -> None:
        """
        Serves until the task has run and its result was sent.

        With `pause_on_exit`, keeps serving after that until the last open
        connection is closed by the peer.
        """
        async with serve(
            self._handle, host, port, ping_interval=None, max_size=None
        ):
            logger.info("Control channel listening on {}", control_url(port, host))
            await self._done.wait()
            if pause_on_exit:
                logger.info("Task finished, serving until the supervisor disconnects")
                while self._connections:
                    self._idle = anyio.Event()
                    await self._idle.wait()

    async def _handle(self, connection: ServerConnection) -> None:
        if connection.request is None or connection.request.path != CONTROL_PATH:
            await connection.close(code=1008, reason="unknown path")
            return

        self._connections += 1
        try:
            async for message in connection:
                response = await self._dispatch(message)
                await connection.send(self._encode(response))
                if self._payload is not None:
                    self._done.set()
        except ConnectionClosed:
            logger.debug("Control connection dropped")
        finally:
            self._connections -= 1
            if not self._connections:
                self._idle.set()

    async def _dispatch(self, message: str | bytes) -> RpcResponse:
        try:
            request = RpcRequest.model_validate_json(message)
        except ValidationError as exc:
            return _error(None, ErrorCode.INVALID_REQUEST, str(exc))

        try:
            result = await self._call(request)
        except _RequestFailed as exc:
            return _error(request.id, exc.code, exc.message)
        return RpcResponse(id=request.id, result=result)

    async def _call(self, request: RpcRequest) -> Any:
        if request.method == Method.LIST_CONTEXTS:
            return ContextList(contexts=[self.context]).model_dump()

        if request.method not in (Method.READY_QUERY, Method.RUN_TASK):
            raise _RequestFailed(
                ErrorCode.METHOD_NOT_FOUND, f"Unknown method: {request.method}"
            )
        if request.params.get("contextId") != self.context.id:
            raise _RequestFailed(
                ErrorCode.INVALID_PARAMS,
                f"Unknown context: {request.params.get('contextId')!r}",
            )

        if request.method == Method.READY_QUERY:
            return READY if self._task is not None else NOT_READY

        if self._task is None:
            raise _RequestFailed(ErrorCode.TASK_NOT_REGISTERED, "No task registered")
        if self._payload is not None:
            raise _RequestFailed(ErrorCode.INVALID_REQUEST, "Task already ran")

        self._payload = await self._run(self._task)
        return self._payload

    async def _run(self, task: TaskFunction) -> dict[str, Any]:
        timeout = self.config.task_timeout
        try:
            with anyio.fail_after(timeout.total_seconds()):
                if inspect.iscoroutinefunction(task):
                    outcome = await task()
                else:
                    outcome = await anyio.to_thread.run_sync(
                        task, abandon_on_cancel=True
                    )
                    if inspect.isawaitable(outcome):
                        outcome = await outcome
        except TimeoutError:
            logger.error("Task timed out after {}", timeout)
            return failure_payload(f"Task timed out after {timeout}")
        except Exception as exc:
            logger.exception("Task failed")
            return failure_payload(f"Task failed: {exc!r}")

        if isinstance(outcome, TaskResult):
            return outcome.to_payload()
        return success_payload(outcome)

    def _encode(self, response: RpcResponse) -> str:
        try:
            return response.model_dump_json()
        except PydanticSerializationError as exc:
            return _error(
                response.id, ErrorCode.INTERNAL_ERROR, f"Unserializable result: {exc}"
            ).model_dump_json()


def _error(request_id: int | None, code: ErrorCode, message: str) -> RpcResponse:
    return RpcResponse(
        id=request_id, error=RpcErrorBody(code=int(code), message=message)
    )
