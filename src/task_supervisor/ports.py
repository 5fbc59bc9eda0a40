from __future__ import annotations

import anyio
from loguru import logger

LOOPBACK: str = "127.0.0.1"


async def find_available_port(start: int = 20000) -> int:
    """
    Returns the first port, counting up from `start`, that a loopback
    listener can bind to.
    """
    port = start
    while True:
        try:
            listener = await anyio.create_tcp_listener(
                local_host=LOOPBACK, local_port=port
            )
        except OSError:
            port += 1
            continue

        await listener.aclose()
        logger.debug("Allocated control channel port {}", port)
        return port
