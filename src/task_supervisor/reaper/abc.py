from __future__ import annotations

import os
import signal
from abc import ABC, abstractmethod
from contextlib import suppress

from .schema import ProcessDescriptor


class ProcessTable(ABC):
    @abstractmethod
    async def list_processes(self) -> list[ProcessDescriptor]:
        """
        List the current user's processes.

        Processes whose working directory cannot be resolved are left out;
        they are not an error.
        """

    async def kill(self, pid: int) -> None:
        """Kill a process unconditionally. A process that already exited is ignored."""
        with suppress(ProcessLookupError):
            os.kill(pid, signal.SIGKILL)
