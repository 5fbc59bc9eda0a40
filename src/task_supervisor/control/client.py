from __future__ import annotations

import itertools
from collections.abc import Iterator
from typing import Any

import anyio
import websockets
from attrs import define, field, frozen
from loguru import logger
from pydantic import ValidationError
from websockets import ClientConnection, ConnectionClosed

from .exceptions import ProtocolError
from .schema import ContextInfo, ContextList, Method, RpcRequest, RpcResponse

CLOSE_TIMEOUT: float = 1.0


@define
class ControlClient:
    """JSON-RPC session over a worker's control channel websocket."""

    url: str
    _ws: ClientConnection
    _ids: Iterator[int] = field(init=False, factory=lambda: itertools.count(1))

    @classmethod
    async def open(cls, url: str) -> ControlClient:
        ws = await websockets.connect(
            url,
            open_timeout=None,
            close_timeout=CLOSE_TIMEOUT,
            # a task may keep the channel silent for minutes
            ping_interval=None,
            max_size=None,
        )
        return cls(url=url, ws=ws)

    async def call(self, method: str, **params: Any) -> Any:
        request = RpcRequest(id=next(self._ids), method=method, params=params)
        try:
            await self._ws.send(request.model_dump_json())
            response = await self._receive(request.id)
        except ConnectionClosed as exc:
            raise ProtocolError(
                f"Control channel closed while waiting for {method}: {exc}"
            ) from exc
        except ValidationError as exc:
            raise ProtocolError(f"Malformed response to {method}: {exc}") from exc

        if response.error is not None:
            raise ProtocolError(
                f"{method} failed with code {response.error.code}: {response.error.message}"
            )
        return response.result

    async def _receive(self, request_id: int) -> RpcResponse:
        while True:
            raw = await self._ws.recv()
            response = RpcResponse.model_validate_json(raw)
            if response.id == request_id:
                return response
            logger.debug("Ignoring unsolicited control message: {}", raw)

    async def single_context(self) -> ExecutionContext:
        """Looks up the worker's execution context; there must be exactly one."""
        try:
            listing = ContextList.model_validate(await self.call(Method.LIST_CONTEXTS))
        except ValidationError as exc:
            raise ProtocolError(f"Malformed context listing: {exc}") from exc

        if len(listing.contexts) != 1:
            raise ProtocolError(
                f"Expected exactly one execution context, got {len(listing.contexts)}"
            )
        return ExecutionContext(client=self, info=listing.contexts[0])

    async def aclose(self) -> None:
        with anyio.move_on_after(CLOSE_TIMEOUT, shield=True):
            await self._ws.close()


@frozen
class ExecutionContext:
    """Handle on the worker's running context, valid for one session only."""

    client: ControlClient
    info: ContextInfo

    async def invoke(self, method: str) -> Any:
        return await self.client.call(method, contextId=self.info.id)

    async def aclose(self) -> None:
        await self.client.aclose()
