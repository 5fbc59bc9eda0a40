from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import anyio
from cyclopts import App
from loguru import logger

from task_supervisor.config import SupervisorConfig
from task_supervisor.exceptions import WorkerNotFound
from task_supervisor.logging import setup_logging
from task_supervisor.logs import ConsoleLogSink, FileLogSink, LogSink
from task_supervisor.supervisor import TaskSupervisor

app = App(name="task-supervisor", help="Supervise task runner processes.")


@app.command
async def run(
    task: str,
    *,
    root: Path = Path(),
    log_file: Path | None = None,
    task_timeout: float | None = None,
    reap_strays: bool = True,
    log_level: str = "INFO",
) -> None:
    """
    Run a single task and print its result as JSON.

    Exits with status 1 when the task fails and 2 when it does not exist.

    Parameters
    ----------
    task
        Task name, resolved to `<root>/tasks/<task>.py`.
    root
        Task runner root, also the workspace whose processes are reaped.
    log_file
        Append task output to this file instead of standard output.
    task_timeout
        Seconds to wait for the task result.
    reap_strays
        Kill every other process of the current user after the run.
    log_level
        Supervisor log level.
    """
    setup_logging(log_level)

    overrides: dict[str, object] = {"reap_strays": reap_strays}
    if task_timeout is not None:
        overrides["task_timeout"] = timedelta(seconds=task_timeout)
    config = SupervisorConfig(**overrides)

    sink: LogSink = FileLogSink(log_file) if log_file else ConsoleLogSink()
    supervisor = TaskSupervisor(root=root.resolve(), config=config)
    try:
        result = await supervisor.run(task, sink)
    except WorkerNotFound as exc:
        logger.error("{}", exc)
        raise SystemExit(2) from exc

    print(result.model_dump_json(indent=2))
    if result.failed:
        raise SystemExit(1)


@app.command(name="list")
async def list_tasks(*, root: Path = Path()) -> None:
    """
    List the tasks available under a task runner root.

    Parameters
    ----------
    root
        Task runner root.
    """
    tasks_dir = anyio.Path(root) / SupervisorConfig().tasks_dir
    if not await tasks_dir.is_dir():
        return

    names = sorted([path.stem async for path in tasks_dir.glob("*.py")])
    for name in names:
        print(name)
