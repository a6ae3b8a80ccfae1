"""
Locate and load files referenced by ``include <...>`` and ``use <...>``.

A reference is searched relative to the referencing file's directory
first, then in each library directory. Every file that is looked up is
reported to ``on_dependency`` so the caller can record it for the
dependency file (and try to generate it if it is missing).
"""

import os
from typing import Callable, Dict, List, Optional, Tuple

from ..printutils import print_warning
from .ast import Module
from .lexer import tokenize
from .parser import Parser


class FileResolver:
    """Resolves include and use references for one run."""

    def __init__(self, library_path: Optional[List[str]] = None,
                 on_dependency: Optional[Callable[[str], None]] = None):
        self.library_path = list(library_path or [])
        self.on_dependency = on_dependency
        self._active_includes: List[str] = []
        self._libraries: Dict[str, Module] = {}

    def find(self, filename: str, base_dir: Optional[str]) -> Optional[str]:
        """Return the absolute path of an existing file for ``filename``, or None."""
        if os.path.isabs(filename):
            return filename if os.path.isfile(filename) else None
        candidates = []
        if base_dir:
            candidates.append(os.path.join(base_dir, filename))
        candidates.extend(os.path.join(lib, filename) for lib in self.library_path)
        for candidate in candidates:
            if os.path.isfile(candidate):
                return os.path.abspath(candidate)
        return None

    def _locate(self, filename: str, base_dir: Optional[str]) -> Optional[str]:
        """Find ``filename`` and register it as a dependency, found or not."""
        path = self.find(filename, base_dir)
        if path is None:
            path = os.path.abspath(os.path.join(base_dir or os.getcwd(), filename))
        if self.on_dependency is not None:
            self.on_dependency(path)
        if not os.path.isfile(path):
            return None
        return path

    def _read(self, path: str) -> Optional[str]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except OSError as e:
            print_warning(f"Can't read file '{path}': {e}")
            return None

    def load_include(self, filename: str, base_dir: Optional[str]) -> Optional[Tuple[str, str]]:
        """
        Return ``(path, text)`` for an include reference.

        Missing files and recursive includes produce a warning and None.
        A successful call must be paired with :meth:`end_include`.
        """
        path = self._locate(filename, base_dir)
        if path is None:
            print_warning(f"Can't open include file '{filename}'.")
            return None
        if path in self._active_includes:
            print_warning(f"Recursive include of '{filename}' ignored.")
            return None
        text = self._read(path)
        if text is None:
            return None
        self._active_includes.append(path)
        return path, text

    def end_include(self, path: str) -> None:
        if self._active_includes and self._active_includes[-1] == path:
            self._active_includes.pop()

    def load_library(self, filename: str, base_dir: Optional[str]) -> Optional[Module]:
        """Parse a ``use`` library (once per path) together with its own libraries."""
        path = self._locate(filename, base_dir)
        if path is None:
            print_warning(f"Can't open library '{filename}'.")
            return None
        if path in self._libraries:
            return self._libraries[path]
        text = self._read(path)
        if text is None:
            return None
        document_path = os.path.dirname(path)
        module = Parser(tokenize(text, path), path, document_path, self).parse_module()
        self._libraries[path] = module
        self.resolve_uses(module)
        return module

    def resolve_uses(self, module: Module) -> None:
        """Load every library ``module`` uses into ``module.libraries``."""
        for use in module.uses:
            library = self.load_library(use.path, module.document_path)
            if library is not None and library.filename not in module.libraries:
                module.libraries[library.filename] = library
