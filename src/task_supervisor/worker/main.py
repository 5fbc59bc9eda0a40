from __future__ import annotations

import importlib.util
import io
import sys
from collections.abc import Sequence
from datetime import timedelta
from pathlib import Path

from cyclopts import App
from loguru import logger

from task_supervisor.config import WorkerConfig
from task_supervisor.control.server import ControlServer, TaskFunction
from task_supervisor.logging import setup_logging

app = App(
    name="task-supervisor-worker",
    help="Run a task script behind a control channel.",
)


def load_task(script: Path, args: Sequence[str] = ()) -> TaskFunction:
    """
    Imports a task script and returns its `task` callable.

    The script sees `sys.argv` as if it had been run directly.
    """
    spec = importlib.util.spec_from_file_location(f"_task_{script.stem}", script)
    if spec is None or spec.loader is None:
        logger.error("Cannot load task script {}", script)
        raise SystemExit(2)

    sys.argv = [str(script), *args]
    module = importlib.util.module_from_spec(spec)
    sys.modules[spec.name] = module
    spec.loader.exec_module(module)

    task = getattr(module, "task", None)
    if not callable(task):
        logger.error("Task script {} does not define a callable `task`", script)
        raise SystemExit(2)
    return task


@app.default
async def main(
    script: Path,
    *args: str,
    enable_control_channel: int,
    pause_on_exit: bool = True,
    task_timeout: float = WorkerConfig().task_timeout.total_seconds(),
    log_level: str = "INFO",
) -> None:
    """
    Serve the control channel for one task.

    Parameters
    ----------
    script
        Task script defining a `task` callable.
    args
        Arguments exposed to the script through `sys.argv`.
    enable_control_channel
        Port the control channel listens on.
    pause_on_exit
        Keep serving after the task finished, until the supervisor disconnects.
    task_timeout
        Seconds the task may run before it is reported as failed.
    log_level
        Worker log level.
    """
    # output is relayed line by line; don't let it sit in a block buffer
    if isinstance(sys.stdout, io.TextIOWrapper):
        sys.stdout.reconfigure(line_buffering=True)
    setup_logging(log_level)

    task = load_task(script, args)
    server = ControlServer(
        config=WorkerConfig(task_timeout=timedelta(seconds=task_timeout))
    )
    server.register(task)

    await server.serve(enable_control_channel, pause_on_exit=pause_on_exit)
