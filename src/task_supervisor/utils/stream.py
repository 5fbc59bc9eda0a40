from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable

from anyio.abc import AnyByteReceiveStream
from anyio.streams.text import TextReceiveStream

DEFAULT_MAX_LINE: int = 10_000


async def iter_lines(
    stream: AnyByteReceiveStream,
    *,
    encoding: str = "utf-8",
    max_line: int = DEFAULT_MAX_LINE,
) -> AsyncGenerator[str]:
    """
    Yields decoded lines from a byte stream, each with its line terminator.

    Undecodable bytes are replaced. A line growing to `max_line` characters
    without a terminator is yielded as it is, so output without newlines
    still flows. The rest is yielded once the stream reaches EOF.
    """
    pending: list[str] = []
    size = 0
    async for text in TextReceiveStream(stream, encoding=encoding, errors="replace"):
        *lines, rest = text.split("\n")
        for line in lines:
            pending.append(line)
            yield "".join(pending) + "\n"
            pending, size = [], 0

        if rest:
            pending.append(rest)
            size += len(rest)
            if size >= max_line:
                yield "".join(pending)
                pending, size = [], 0

    if pending:
        yield "".join(pending)


async def pump_lines(
    stream: AnyByteReceiveStream,
    callback: Callable[[str], Awaitable[None]],
    *,
    max_line: int = DEFAULT_MAX_LINE,
) -> None:
    """Forwards every line of `stream` to `callback`, in order."""
    async for line in iter_lines(stream, max_line=max_line):
        await callback(line)
