from __future__ import annotations

import os
from contextlib import suppress
from typing import final, override

import anyio
import psutil
from attrs import define, field

from .abc import ProcessTable
from .schema import ProcessDescriptor


@final
@define
class NativeProcessTable(ProcessTable):
    """Process table read through psutil."""

    uid: int = field(factory=os.getuid)

    @override
    async def list_processes(self) -> list[ProcessDescriptor]:
        return await anyio.to_thread.run_sync(self._snapshot)

    def _snapshot(self) -> list[ProcessDescriptor]:
        found: list[ProcessDescriptor] = []
        for process in psutil.process_iter(["uids"]):
            uids = process.info["uids"]
            if uids is None or uids.real != self.uid:
                continue
            try:
                cwd = process.cwd()
            except (psutil.AccessDenied, psutil.NoSuchProcess):
                continue
            if cwd:
                found.append(ProcessDescriptor(pid=process.pid, cwd=cwd))
        return found

    @override
    async def kill(self, pid: int) -> None:
        with suppress(psutil.NoSuchProcess):
            psutil.Process(pid).kill()
