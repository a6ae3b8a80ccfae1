"""Parsing a script and instantiating it into a node tree."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from ..errors import ParseError
from ..lang import FileResolver, ScriptError, parse_source
from ..lang.ast import Module
from ..nodes import Node, NodeTree
from ..printutils import print_debug
from ..runtime import Interpreter
from .deps import DependencySet
from .workdir import WorkingDirectoryGuard


@dataclass
class BuildResult:
    module: Module
    tree: NodeTree

    @property
    def root(self) -> Node:
        return self.tree.root


class TreeBuilder:
    """
    Turns source text into a :class:`NodeTree`.

    Every build uses a fresh tree, so node indices start at 0 on each run.
    """

    def __init__(self, guard: WorkingDirectoryGuard, dependencies: DependencySet,
                 library_path: Optional[List[str]] = None):
        self.guard = guard
        self.dependencies = dependencies
        self.library_path = list(library_path or [])

    def parse(self, source: str, document_dir: str, filename: Optional[str] = None) -> Module:
        resolver = FileResolver(self.library_path, on_dependency=self.dependencies.add)
        try:
            module = parse_source(source, filename, document_dir, resolver)
            resolver.resolve_uses(module)
        except ScriptError as e:
            name = filename or '<input>'
            raise ParseError(f"Can't parse file '{name}'!\n{e}", e.diagnostic) from e
        return module

    def build(self, source: str, document_dir: str, filename: Optional[str] = None) -> BuildResult:
        """Parse, then instantiate with ``document_dir`` as working directory."""
        module = self.parse(source, document_dir, filename)
        self.guard.enter(document_dir)
        tree = NodeTree()
        Interpreter(tree, on_dependency=self.dependencies.add).instantiate_file(module)
        self.resolve_root(tree)
        return BuildResult(module, tree)

    @staticmethod
    def resolve_root(tree: NodeTree) -> Node:
        """The first ``!`` node in document order, else the top-level group."""
        index = tree.resolve_root()
        if index != tree.top_index:
            print_debug(f"explicit root: {tree.get(index).name}{index}")
        return tree.get(index)
