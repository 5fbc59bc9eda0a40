from __future__ import annotations

from .abc import ProcessTable
from .main import ProcessReaper, default_process_table
from .native import NativeProcessTable
from .schema import ProcessDescriptor
from .shell import ShellProcessTable

__all__ = [
    "NativeProcessTable",
    "ProcessDescriptor",
    "ProcessReaper",
    "ProcessTable",
    "ShellProcessTable",
    "default_process_table",
]
