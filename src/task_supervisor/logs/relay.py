from __future__ import annotations

import anyio
import loguru
from attrs import define, field
from loguru import logger

from .sink import LogSink

DEFAULT_CHUNK_SIZE: int = 10_000


@define
class LogRelay:
    """
    Buffers task output and hands it to a sink in chunks.

    A chunk is sent once the buffer grows past `chunk_size` characters, or
    when a flush is forced. Only one upload is in flight at a time, so chunks
    reach the sink in emission order. Each line is also mirrored to the local
    log, tagged with the task name.
    """

    task_name: str
    sink: LogSink
    chunk_size: int = DEFAULT_CHUNK_SIZE

    delivered: int = field(init=False, default=0)
    """Number of chunks handed to the sink so far."""

    _parts: list[str] = field(init=False, factory=list)
    _size: int = field(init=False, default=0)
    _lock: anyio.Lock = field(init=False, factory=anyio.Lock)
    _logger: loguru.Logger = field(init=False)

    def __attrs_post_init__(self) -> None:
        self._logger = logger.bind(task=self.task_name, source="task runner")

    @property
    def pending(self) -> int:
        """Number of buffered characters not yet delivered."""
        return self._size

    async def emit(self, text: str) -> None:
        self._parts.append(text)
        self._size += len(text)
        self._logger.info("{}", text.rstrip("\n"))
        if self._size > self.chunk_size:
            await self._deliver(force=False)

    async def flush(self, *, force: bool = False) -> None:
        """
        Sends the buffer if it is over the threshold, or unconditionally
        when `force` is set. Upload errors propagate from a forced flush.
        """
        await self._deliver(force=force)

    async def _deliver(self, *, force: bool) -> None:
        async with self._lock:
            if not self._parts or (not force and self._size <= self.chunk_size):
                return

            chunk = "".join(self._parts)
            self._parts, self._size = [], 0
            try:
                await self.sink.upload_log_chunk(self.task_name, chunk)
            except BaseException as exc:
                # keep the chunk, cancelled or failed, so the next flush retries it
                self._parts.insert(0, chunk)
                self._size += len(chunk)
                if force or not isinstance(exc, Exception):
                    raise
                self._logger.opt(exception=exc).warning(
                    "Failed to upload a log chunk of {} characters; will retry",
                    len(chunk),
                )
                return

            self.delivered += 1
