from __future__ import annotations

import signal
import subprocess
import sys
from collections.abc import Awaitable, Sequence
from contextlib import suppress
from datetime import timedelta
from enum import StrEnum
from pathlib import Path

import anyio
import loguru
from anyio.abc import ByteReceiveStream, Process
from attrs import define, field
from loguru import logger

from task_supervisor.config import SupervisorConfig
from task_supervisor.control import ExecutionContext, Method, connect_to_worker
from task_supervisor.exceptions import (
    ExitTimeout,
    PhaseTimeout,
    TaskTimeout,
    WorkerNotFound,
)
from task_supervisor.logs import LogRelay, LogSink
from task_supervisor.model import TaskResult
from task_supervisor.ports import find_available_port
from task_supervisor.reaper import ProcessReaper
from task_supervisor.utils.stream import pump_lines

DEFAULT_WORKER_COMMAND: tuple[str, ...] = (sys.executable, "-m", "task_supervisor.worker")


class Phase(StrEnum):
    """What the supervisor is waiting for, reported in timeout failures."""

    CONNECTION = "connection"
    TASK_COMPLETION = "task completion"
    PROCESS_EXIT = "process exit"


async def _deadline[T](
    awaitable: Awaitable[T],
    timeout: timedelta,
    error: type[PhaseTimeout],
    message: str,
) -> T:
    with anyio.move_on_after(timeout.total_seconds()):
        return await awaitable
    raise error(message, timeout)


@define
class TaskSupervisor:
    """
    Runs one task in a separate worker process and collects its result over
    the worker's control channel.

    Tasks are scripts at `<root>/<tasks_dir>/<task>.py`. The worker is started
    in `root` as `<worker_command> --enable-control-channel=<port>
    --no-pause-on-exit <script>`.
    """

    root: Path = field(converter=Path)
    worker_command: Sequence[str] = DEFAULT_WORKER_COMMAND
    config: SupervisorConfig = field(factory=SupervisorConfig)
    reaper: ProcessReaper = field(factory=ProcessReaper)

    def script_path(self, task_name: str) -> Path:
        return self.root / self.config.tasks_dir / f"{task_name}.py"

    def build_command(
        self, port: int, script: Path, args: Sequence[str] = ()
    ) -> list[str]:
        return [
            *self.worker_command,
            f"--enable-control-channel={port}",
            "--no-pause-on-exit",
            str(script),
            *args,
        ]

    async def run(
        self, task_name: str, sink: LogSink, *, args: Sequence[str] = ()
    ) -> TaskResult:
        """
        Runs a task end to end and returns its result.

        Every failure after the precondition check is reported as a failing
        `TaskResult`; only `WorkerNotFound` is raised.
        """
        script = self.script_path(task_name)
        if not await anyio.Path(script).is_file():
            raise WorkerNotFound(task_name, script)

        log = logger.bind(task=task_name)
        port = await find_available_port(self.config.base_port)
        command = self.build_command(port, script, args)

        log.info("Starting task runner: {}", " ".join(command))
        try:
            process = await anyio.open_process(
                command,
                cwd=self.root,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            log.error("Failed to start task runner: {}", exc)
            return TaskResult.failure(f"Failed to start task runner: {exc}")

        run = _SupervisedRun(
            process=process,
            port=port,
            relay=LogRelay(task_name, sink, chunk_size=self.config.log_chunk_size),
            config=self.config,
            log=log,
        )
        try:
            result = await run.supervise()
        finally:
            await run.finalize(
                self.reaper, workspace_root=self.config.workspace_root or self.root
            )

        if result.succeeded:
            log.info("Task succeeded")
        else:
            log.warning("Task failed: {}", result.reason)
        return result


@define
class _SupervisedRun:
    process: Process
    port: int
    relay: LogRelay
    config: SupervisorConfig
    log: loguru.Logger

    phase: Phase = field(init=False, default=Phase.CONNECTION)
    handle: ExecutionContext | None = field(init=False, default=None)

    async def supervise(self) -> TaskResult:
        assert self.process.stdout and self.process.stderr

        with anyio.CancelScope() as drain:
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._pump, self.process.stdout)
                tg.start_soon(self._pump, self.process.stderr)
                try:
                    result = await self._drive()
                finally:
                    self._stop_pumps(drain)
        return result

    async def _drive(self) -> TaskResult:
        try:
            payload = await _deadline(
                self._connect_and_run(),
                self.config.task_timeout,
                TaskTimeout,
                "Task runner did not report a result",
            )
            result = TaskResult.parse(payload)
            self.phase = Phase.PROCESS_EXIT
            await _deadline(
                self.process.wait(),
                self.config.exit_grace,
                ExitTimeout,
                "Task runner did not exit",
            )
            return result
        except TimeoutError as exc:
            self._interrupt()
            return TaskResult.failure(f"Timeout waiting for {self.phase}: {exc}")
        except Exception as exc:
            self.log.opt(exception=exc).error("Task runner failed during {}", self.phase)
            return TaskResult.failure(f"Task runner failed during {self.phase}: {exc}")

    async def _connect_and_run(self) -> object:
        self.handle = await connect_to_worker(self.port, config=self.config)
        self.phase = Phase.TASK_COMPLETION
        return await self.handle.invoke(Method.RUN_TASK)

    async def _pump(self, stream: ByteReceiveStream) -> None:
        try:
            await pump_lines(
                stream, self.relay.emit, max_line=self.config.log_chunk_size
            )
        except Exception:
            self.log.exception("Stopped relaying task runner output")

    def _stop_pumps(self, drain: anyio.CancelScope) -> None:
        # an exited worker has closed its pipes; read what is left in them
        if self.process.returncode is None:
            drain.cancel()
        else:
            drain.deadline = anyio.current_time() + self.config.exit_grace.total_seconds()

    def _interrupt(self) -> None:
        if self.process.returncode is None:
            self.log.warning("Interrupting task runner (pid {})", self.process.pid)
            with suppress(ProcessLookupError):
                self.process.send_signal(signal.SIGINT)

    async def finalize(self, reaper: ProcessReaper, *, workspace_root: Path) -> None:
        """Releases everything the run acquired. Failures are logged, never raised."""
        with anyio.CancelScope(shield=True):
            await self.relay.emit("Task execution finished\n")
            await self._cleanup("flush task logs", self.relay.flush(force=True))
            if self.handle is not None:
                await self._cleanup("close the control channel", self.handle.aclose())
            await self._cleanup("stop the task runner", self._kill())
            await self._cleanup(
                "reap workspace processes", reaper.reap_workspace(workspace_root)
            )
            if self.config.reap_strays:
                await self._cleanup("reap stray processes", reaper.reap_strays())

    async def _kill(self) -> None:
        if self.process.returncode is None:
            self.log.warning("Force-quitting task runner (pid {})", self.process.pid)
            with suppress(ProcessLookupError):
                self.process.kill()

        with anyio.move_on_after(self.config.finalize_timeout.total_seconds()) as scope:
            await self.process.aclose()
        if scope.cancelled_caught:
            self.log.error("Task runner (pid {}) did not exit after SIGKILL", self.process.pid)

    async def _cleanup(self, step: str, awaitable: Awaitable[object]) -> None:
        try:
            await awaitable
        except Exception as exc:
            self.log.opt(exception=exc).warning("Failed to {}: {}", step, exc)
