from __future__ import annotations

import subprocess
from collections.abc import Iterable
from pathlib import Path

import anyio
import psutil
from attrs import define, field
from loguru import logger

from task_supervisor.exceptions import CleanupError

from .abc import ProcessTable
from .native import NativeProcessTable
from .schema import ProcessDescriptor
from .shell import ShellProcessTable


def default_process_table() -> ProcessTable:
    """psutil where it can read working directories, `ps` and `lsof` otherwise."""
    try:
        psutil.Process().cwd()
    except (psutil.Error, NotImplementedError):
        return ShellProcessTable()
    return NativeProcessTable()


def protected_pids() -> set[int]:
    """The current process and its ancestors, never kill candidates."""
    current = psutil.Process()
    return {current.pid, *(parent.pid for parent in current.parents())}


@define
class ProcessReaper:
    """
    Best-effort cleanup of processes left behind by a task.

    This is deliberately coarse: it assumes the supervisor owns every process
    of the current user for the duration of a run, as on a dedicated CI
    machine, and that no other run shares the same workspace.
    """

    table: ProcessTable = field(factory=default_process_table)

    async def list_processes(
        self, prefix: str | Path | None = None
    ) -> list[ProcessDescriptor]:
        """Lists kill candidates, optionally only those working under `prefix`."""
        try:
            processes = await self.table.list_processes()
        except (OSError, TimeoutError, subprocess.CalledProcessError, psutil.Error) as exc:
            raise CleanupError(f"Failed to list processes: {exc}") from exc

        protected = protected_pids()
        return [
            process
            for process in processes
            if process.pid not in protected
            and (prefix is None or process.is_under(prefix))
        ]

    async def kill_all(self, processes: Iterable[ProcessDescriptor]) -> int:
        killed = 0
        for process in processes:
            try:
                await self.table.kill(process.pid)
            except (OSError, psutil.Error) as exc:
                logger.warning("Failed to kill process {}: {}", process.pid, exc)
                continue
            killed += 1
        return killed

    async def reap_workspace(self, root: str | Path) -> int:
        """Kills processes whose working directory lies under `root`."""
        resolved = await anyio.Path(root).resolve()
        processes = await self.list_processes(Path(resolved))
        if processes:
            logger.info(
                "Force-quitting {} processes left under {}", len(processes), resolved
            )
        return await self.kill_all(processes)

    async def reap_strays(self) -> int:
        """Kills every other process of the current user."""
        processes = await self.list_processes()
        if processes:
            logger.info("Force-quitting {} stray processes", len(processes))
        return await self.kill_all(processes)
