"""Scoped changes of the process working directory."""

from __future__ import annotations

import os
from typing import List

from ..errors import PathError


class WorkingDirectoryGuard:
    """
    Records the invoker's directory on construction.

    ``enter`` switches to another directory (script-relative reads),
    ``restore`` switches back (invoker-relative writes). Entered directories
    stack; ``restore`` always returns to the original directory.
    """

    def __init__(self):
        self.original = os.getcwd()
        self._stack: List[str] = []

    @property
    def active(self) -> bool:
        return bool(self._stack)

    def enter(self, path: str) -> None:
        if not path:
            return
        try:
            os.chdir(path)
        except OSError as e:
            raise PathError(f"Can't change directory to '{path}': {e.strerror}", path) from e
        self._stack.append(os.getcwd())

    def restore(self) -> None:
        try:
            os.chdir(self.original)
        except OSError as e:
            raise PathError(f"Can't return to directory '{self.original}': {e.strerror}",
                            self.original) from e
        self._stack.clear()

    def __enter__(self) -> "WorkingDirectoryGuard":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.restore()
