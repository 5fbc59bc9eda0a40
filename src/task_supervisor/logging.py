from __future__ import annotations

import sys
from typing import Final

from loguru import logger

FORMAT: Final = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[task]}</cyan> <magenta>[{extra[source]}]</magenta> - "
    "<level>{message}</level>"
)
"""Log line layout; `source` tells supervisor records from relayed task output."""


def setup_logging(level: str = "INFO") -> None:
    """
    Route task_supervisor logs to stderr.

    Records without a bound `task` or `source` get `-` and `supervisor`.
    """
    logger.remove()
    logger.configure(extra={"task": "-", "source": "supervisor"})
    logger.add(sys.stderr, format=FORMAT, level=level)
    logger.enable("task_supervisor")
