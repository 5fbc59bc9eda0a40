from __future__ import annotations

from pathlib import Path, PurePath

from attrs import frozen


@frozen
class ProcessDescriptor:
    """A process owned by the current user, with its working directory."""

    pid: int
    cwd: str

    def is_under(self, root: str | Path) -> bool:
        """Whether the working directory is `root` or nested below it."""
        return PurePath(self.cwd).is_relative_to(root)
