from __future__ import annotations

from datetime import timedelta
from typing import NamedTuple

import anyio


class ProcessResult(NamedTuple):
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_process(
    *command: str,
    check: bool = True,
    encoding: str = "utf-8",
    timeout: timedelta | None = None,
) -> ProcessResult:
    """Runs a command to completion and returns its decoded output."""
    with anyio.fail_after(timeout.total_seconds() if timeout else None):
        result = await anyio.run_process(list(command), check=check)

    return ProcessResult(
        returncode=result.returncode,
        stdout=result.stdout.decode(encoding, errors="replace"),
        stderr=result.stderr.decode(encoding, errors="replace"),
    )
