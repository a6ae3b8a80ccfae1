"""Reading the main script and appending command line definitions."""

from __future__ import annotations

import os
from typing import Iterable, Tuple

from ..errors import FileIOError
from .deps import DependencySet


def format_definitions(definitions: Iterable[str]) -> str:
    """Join ``-D var=val`` options into script statements."""
    return ''.join(f"{d};\n" for d in definitions)


class ScriptLoader:
    """Loads a script file; the file is registered as a dependency first."""

    def __init__(self, dependencies: DependencySet):
        self.dependencies = dependencies

    def load(self, path: str, extra_definitions: str = '') -> Tuple[str, str]:
        """
        Return ``(source, document_dir)``: the file's text, a newline and
        ``extra_definitions``, plus the absolute directory holding ``path``.
        """
        self.dependencies.add(path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                text = f.read()
        except (OSError, UnicodeDecodeError) as e:
            reason = e.strerror if isinstance(e, OSError) else str(e)
            raise FileIOError(f"Can't open input file '{path}': {reason}", path) from e
        source = text + "\n" + extra_definitions
        return source, os.path.dirname(os.path.abspath(path))
