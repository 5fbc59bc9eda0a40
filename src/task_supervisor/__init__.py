from __future__ import annotations

from loguru import logger

from .config import SupervisorConfig, WorkerConfig
from .exceptions import WorkerNotFound
from .logs import LogRelay, LogSink
from .model import TaskResult
from .reaper import ProcessReaper
from .supervisor import TaskSupervisor

logger.disable("task_supervisor")

__all__ = [
    "LogRelay",
    "LogSink",
    "ProcessReaper",
    "SupervisorConfig",
    "TaskResult",
    "TaskSupervisor",
    "WorkerConfig",
    "WorkerNotFound",
]
