from __future__ import annotations

import os
from datetime import timedelta
from typing import final, override

from attrs import define, field
from loguru import logger

from task_supervisor.utils.process import run_process

from .abc import ProcessTable
from .schema import ProcessDescriptor

# COMMAND PID USER FD TYPE DEVICE SIZE/OFF NODE NAME
_LSOF_COLUMNS = 9


@final
@define
class ShellProcessTable(ProcessTable):
    """
    Process table read by shelling out to `ps` and `lsof`.

    Slower and more fragile than `NativeProcessTable`, but needs nothing
    beyond the standard tools of a POSIX system.
    """

    uid: int = field(factory=os.getuid)
    timeout: timedelta = timedelta(seconds=10)

    @override
    async def list_processes(self) -> list[ProcessDescriptor]:
        ps = await run_process("ps", "-f", "-u", str(self.uid), timeout=self.timeout)

        found: list[ProcessDescriptor] = []
        for pid in parse_ps_pids(ps.stdout):
            try:
                lsof = await run_process(
                    "lsof", "-p", str(pid), check=False, timeout=self.timeout
                )
            except TimeoutError:
                logger.debug("lsof timed out for pid {}", pid)
                continue
            # not all processes report a cwd; those are unlikely to matter
            if lsof.ok and (cwd := parse_lsof_cwd(lsof.stdout)):
                found.append(ProcessDescriptor(pid=pid, cwd=cwd))
        return found


def parse_ps_pids(output: str) -> list[int]:
    """Extracts the PID column (the second one) of `ps -f` output."""
    pids: list[int] = []
    for line in output.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 2:
            continue
        try:
            pids.append(int(fields[1]))
        except ValueError:
            logger.debug("Skipping unparseable ps line: {}", line)
    return pids


def parse_lsof_cwd(output: str) -> str | None:
    """Returns the path on the first `lsof` line carrying the `cwd` token."""
    for line in output.splitlines():
        if "cwd" not in line.split():
            continue
        fields = line.split(maxsplit=_LSOF_COLUMNS - 1)
        return fields[-1]
    return None
