from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class SupervisorConfig(BaseModel):
    """Timeouts, limits and locations used by a `TaskSupervisor`."""

    model_config = ConfigDict(frozen=True)

    base_port: int = Field(default=20000, ge=1, le=65535)
    """First port tried when allocating the control channel port."""

    warmup_delay: timedelta = timedelta(milliseconds=100)
    """Delay before the first connection attempt, while the worker opens its socket."""

    retry_interval: timedelta = timedelta(milliseconds=200)
    """Pause between connection attempts."""

    connect_timeout: timedelta = timedelta(seconds=2)
    """Overall deadline for the readiness handshake."""

    task_timeout: timedelta = timedelta(minutes=11)
    """
    Deadline for the remote run operation.

    Longer than the worker's own task timeout so it can clean up and report
    a failure before being force-quit.
    """

    exit_grace: timedelta = timedelta(seconds=1)
    """How long the worker may take to exit by itself after responding."""

    finalize_timeout: timedelta = timedelta(seconds=5)
    """Bound on waiting for a killed worker to be reaped."""

    log_chunk_size: int = Field(default=10_000, gt=0)
    """Buffered log size that triggers an upload."""

    tasks_dir: str = "tasks"
    """Directory under the root holding one `<task>.py` script per task."""

    workspace_root: Path | None = None
    """Processes working under this path are reaped. Defaults to the supervisor root."""

    reap_strays: bool = True
    """
    Also kill every other process of the current user after a run.

    Only appropriate on a dedicated CI machine.
    """


class WorkerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    task_timeout: timedelta = timedelta(minutes=10)
    """Internal deadline for the task function, shorter than the supervisor's."""
