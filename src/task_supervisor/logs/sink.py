from __future__ import annotations

import sys
from pathlib import Path
from typing import Protocol, final, override

import anyio
from attrs import define


class LogSink(Protocol):
    async def upload_log_chunk(self, task_id: str, chunk: str) -> None:
        """
        Delivers one chunk of task output.

        Called in emission order; the relay awaits each call, so the final
        chunk has been delivered once the supervisor returns.
        """


@final
@define
class ConsoleLogSink(LogSink):
    """Writes chunks to standard output."""

    @override
    async def upload_log_chunk(self, task_id: str, chunk: str) -> None:
        sys.stdout.write(chunk)
        sys.stdout.flush()


@final
@define
class FileLogSink(LogSink):
    """Appends chunks to a local file."""

    path: Path

    @override
    async def upload_log_chunk(self, task_id: str, chunk: str) -> None:
        path = anyio.Path(self.path)
        await path.parent.mkdir(parents=True, exist_ok=True)
        async with await anyio.open_file(path, "a", encoding="utf-8") as file:
            await file.write(chunk)
