from __future__ import annotations

from .main import app, load_task

__all__ = [
    "app",
    "load_task",
]
