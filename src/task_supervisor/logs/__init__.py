from __future__ import annotations

from .relay import LogRelay
from .sink import ConsoleLogSink, FileLogSink, LogSink

__all__ = [
    "ConsoleLogSink",
    "FileLogSink",
    "LogRelay",
    "LogSink",
]
