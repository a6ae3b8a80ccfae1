"""
Dependency tracking and make-style dependency files.

Every file the run reads (the script, includes, libraries, imports) is
registered in a :class:`DependencySet`. With ``-d`` the set is written as a
single make rule for the generated output.
"""

from __future__ import annotations

import os
import shlex
import subprocess
from typing import Iterator, List, Optional

from ..errors import FileIOError, UnsupportedFormatError
from ..printutils import print_debug, print_warning
from .formats import format_for_path


class DependencySet:
    """
    Absolute paths of the files a run depends on.

    Registration is idempotent. If ``make_command`` is set, a dependency
    that does not exist is handed to ``make_command <file>`` so a build
    system can generate it before it is read.
    """

    def __init__(self, make_command: Optional[str] = None):
        self.make_command = make_command
        self._paths: List[str] = []
        self._seen = set()

    def __len__(self) -> int:
        return len(self._paths)

    def __iter__(self) -> Iterator[str]:
        return iter(self._paths)

    def __contains__(self, path: str) -> bool:
        return os.path.abspath(path) in self._seen

    def add(self, filename: str) -> str:
        path = os.path.abspath(filename)
        if path not in self._seen:
            self._seen.add(path)
            self._paths.append(path)
            print_debug(f"dependency: {path}")
        if self.make_command and not os.path.exists(path):
            self._make(filename)
        return path

    def _make(self, filename: str) -> None:
        cmd = shlex.split(self.make_command) + [filename]
        try:
            run = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            print_warning(f"make command '{cmd[0]}' not found.")
            return
        if run.returncode != 0:
            print_warning(f"make command for '{filename}' failed with status {run.returncode}.")

    def sorted(self) -> List[str]:
        return sorted(self._paths)


def _relative(path: str) -> str:
    try:
        return os.path.relpath(path)
    except ValueError:
        # different drive
        return path


def _escape(path: str) -> str:
    return path.replace(' ', '\\ ')


def format_rule(output_path: str, dependencies: DependencySet) -> str:
    """``output: dep ...`` with one continuation line per dependency."""
    lines = [f"{_escape(output_path)}:"]
    for dep in dependencies.sorted():
        lines.append(f" \\\n\t{_escape(_relative(dep))}")
    return ''.join(lines) + "\n"


class DependencyWriter:
    """Writes the dependency rule of a geometry-producing output."""

    @staticmethod
    def check(output_path: str) -> None:
        fmt = format_for_path(output_path)
        if not fmt.supports_deps:
            raise UnsupportedFormatError(
                f"Sorry, don't know how to write deps for output file {output_path} "
                f"({fmt.suffix} output has no dependency rule)."
            )

    def write(self, deps_path: str, output_path: str, dependencies: DependencySet) -> None:
        self.check(output_path)
        rule = format_rule(output_path, dependencies)
        try:
            with open(deps_path, 'w', encoding='utf-8', newline='\n') as f:
                f.write(rule)
        except OSError as e:
            raise FileIOError(f"Can't open file \"{deps_path}\" for writing deps: {e.strerror}",
                              deps_path) from e
