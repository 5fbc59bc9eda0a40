from __future__ import annotations

from datetime import timedelta
from pathlib import Path


class SupervisorError(Exception):
    """Base exception for the supervisor."""


class WorkerNotFound(SupervisorError):
    """Raised before spawning when the task script does not exist."""

    def __init__(self, task_name: str, path: Path) -> None:
        super().__init__(f"Task script not found for {task_name!r}: {path}")
        self.task_name = task_name
        self.path = path


class PhaseTimeout(SupervisorError, TimeoutError):
    """Raised when a supervised phase exceeds its deadline."""

    def __init__(self, message: str, duration: timedelta) -> None:
        super().__init__(f"{message} (timed out after {duration})")
        self.message = message
        self.duration = duration


class TaskTimeout(PhaseTimeout):
    """Raised when the remote run operation does not respond in time."""


class ExitTimeout(PhaseTimeout):
    """Raised when the worker does not exit after responding."""


class CleanupError(SupervisorError):
    """Raised when a finalization step fails. Logged, never propagated."""
