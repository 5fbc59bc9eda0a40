from __future__ import annotations

import anyio
import websockets
from loguru import logger
from websockets.exceptions import WebSocketException

from task_supervisor.config import SupervisorConfig

from .client import ControlClient, ExecutionContext
from .exceptions import ConnectionTimeout, ProtocolError
from .schema import READY, Method, control_url

_RETRYABLE = (OSError, TimeoutError, ProtocolError, WebSocketException)


async def connect_to_worker(
    port: int, *, config: SupervisorConfig | None = None
) -> ExecutionContext:
    """
    Polls the worker's control channel until it reports ready.

    The worker offers no readiness signal besides the `readyQuery` method, so
    this retries at a fixed interval until `config.connect_timeout` has passed
    since the call started, then raises `ConnectionTimeout`.
    """
    config = config or SupervisorConfig()
    url = control_url(port)
    timeout = config.connect_timeout.total_seconds()
    retry = config.retry_interval.total_seconds()
    started = anyio.current_time()

    # the worker needs a moment to open its listening socket after spawn
    await anyio.sleep(config.warmup_delay.total_seconds())

    while True:
        remaining = started + timeout - anyio.current_time()
        try:
            with anyio.fail_after(max(remaining, retry)):
                return await _handshake(url)
        except _RETRYABLE as error:
            if anyio.current_time() - started > timeout:
                raise ConnectionTimeout(
                    "Failed to connect to the task runner process",
                    config.connect_timeout,
                ) from error
            logger.debug(
                "Control channel not ready yet: {!r}. Will retry in {}.",
                error,
                config.retry_interval,
            )
            await anyio.sleep(retry)


async def _handshake(url: str) -> ExecutionContext:
    # make sure the listener is up before starting a session
    listener = await websockets.connect(url, open_timeout=None)
    await listener.close()

    client = await ControlClient.open(url)
    try:
        context = await client.single_context()
        response = await context.invoke(Method.READY_QUERY)
        if response != READY:
            raise ProtocolError(f"Task runner not ready yet: {response!r}")
    except BaseException:
        await client.aclose()
        raise
    return context
