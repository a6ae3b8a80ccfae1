"""
Node tree produced by instantiating a script.

Nodes live in a :class:`NodeTree` arena and refer to their children by
index. Indices are handed out by the arena starting from 0, so every run
that builds a new tree starts a fresh index space. The geometry and term
evaluators use the index as a cache key and as part of leaf labels.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

from .lang.dumper import format_value


# =============================================================================
# Node Variants
# =============================================================================

@dataclass
class Node:
    """Base class for all nodes."""
    index: int = -1
    children: List[int] = field(default_factory=list)
    is_root: bool = False           # ! modifier
    is_highlight: bool = False      # # modifier
    is_background: bool = False     # % modifier

    @property
    def name(self) -> str:
        return "node"

    def describe(self) -> str:
        """One-line ``name(params)`` text used in the CSG dump."""
        return f"{self.name}()"


def _named(params: List[Tuple[str, Any]]) -> str:
    return ', '.join(f"{key} = {format_value(value)}" for key, value in params)


@dataclass
class GroupNode(Node):
    """Transparent grouping: group(), for(), if(), echo() and friends."""

    @property
    def name(self) -> str:
        return "group"


@dataclass
class CsgNode(Node):
    """Boolean combination of the children."""
    operation: str = "union"    # union | difference | intersection

    @property
    def name(self) -> str:
        return self.operation


@dataclass
class TransformNode(Node):
    """Affine transform applied to the children."""
    matrix: np.ndarray = field(default_factory=lambda: np.eye(4))

    @property
    def name(self) -> str:
        return "multmatrix"

    def describe(self) -> str:
        return f"multmatrix({format_value(self.matrix.tolist())})"


@dataclass
class ColorNode(Node):
    """RGBA color applied to the children."""
    color: Tuple[float, float, float, float] = (-1.0, -1.0, -1.0, 1.0)

    @property
    def name(self) -> str:
        return "color"

    def describe(self) -> str:
        return f"color({format_value(list(self.color))})"


@dataclass
class FragmentParams:
    """Resolution settings captured from $fn, $fa and $fs."""
    fn: float = 0.0
    fa: float = 12.0
    fs: float = 2.0

    def items(self) -> List[Tuple[str, float]]:
        return [('$fn', self.fn), ('$fa', self.fa), ('$fs', self.fs)]


_FRAGMENTS_FIRST = {'sphere', 'cylinder', 'circle'}


@dataclass
class PrimitiveNode(Node):
    """A leaf shape: cube, sphere, cylinder, polyhedron, square, circle or polygon."""
    kind: str = "cube"
    params: Dict[str, Any] = field(default_factory=dict)
    fragments: FragmentParams = field(default_factory=FragmentParams)

    @property
    def name(self) -> str:
        return self.kind

    @property
    def dimension(self) -> int:
        return 2 if self.kind in ('square', 'circle', 'polygon') else 3

    def describe(self) -> str:
        params = list(self.params.items())
        if self.kind in _FRAGMENTS_FIRST:
            params = self.fragments.items() + params
        return f"{self.kind}({_named(params)})"


@dataclass
class LinearExtrudeNode(Node):
    height: float = 100.0
    center: bool = False
    convexity: int = 1
    twist: float = 0.0
    slices: int = 1
    scale: Tuple[float, float] = (1.0, 1.0)
    fragments: FragmentParams = field(default_factory=FragmentParams)

    @property
    def name(self) -> str:
        return "linear_extrude"

    def describe(self) -> str:
        params = [('height', self.height), ('center', self.center),
                  ('convexity', self.convexity)]
        if self.twist != 0:
            params += [('twist', self.twist), ('slices', self.slices)]
        params.append(('scale', list(self.scale)))
        return f"linear_extrude({_named(params + self.fragments.items())})"


@dataclass
class RotateExtrudeNode(Node):
    convexity: int = 1
    fragments: FragmentParams = field(default_factory=FragmentParams)

    @property
    def name(self) -> str:
        return "rotate_extrude"

    def describe(self) -> str:
        params = [('convexity', self.convexity)] + self.fragments.items()
        return f"rotate_extrude({_named(params)})"


@dataclass
class ImportNode(Node):
    """Geometry read from a mesh or drawing file; ``filename`` is absolute."""
    filename: str = ""
    layer: str = ""
    origin: Tuple[float, float] = (0.0, 0.0)
    scale: float = 1.0
    convexity: int = 1
    fragments: FragmentParams = field(default_factory=FragmentParams)

    @property
    def name(self) -> str:
        return "import"

    def describe(self) -> str:
        params = [('file', self.filename), ('layer', self.layer),
                  ('origin', list(self.origin)), ('scale', self.scale),
                  ('convexity', self.convexity)] + self.fragments.items()
        return f"import({_named(params)})"


@dataclass
class RenderNode(Node):
    convexity: int = 1

    @property
    def name(self) -> str:
        return "render"

    def describe(self) -> str:
        return f"render(convexity = {self.convexity})"


@dataclass
class HullNode(Node):

    @property
    def name(self) -> str:
        return "hull"


# =============================================================================
# Node Arena
# =============================================================================

class NodeTree:
    """
    Arena owning every node of one run.

    ``top_index`` is the synthetic top-level group; ``root_index`` is the
    node evaluation starts from once :meth:`resolve_root` has run.
    """

    def __init__(self):
        self.nodes: List[Node] = []
        self.top_index: Optional[int] = None
        self.root_index: Optional[int] = None
        self._strings: Dict[int, str] = {}

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes)

    def add(self, node: Node) -> int:
        """Store ``node`` and return its newly assigned index."""
        node.index = len(self.nodes)
        self.nodes.append(node)
        return node.index

    def get(self, index: int) -> Node:
        return self.nodes[index]

    def children(self, index: int) -> List[Node]:
        return [self.nodes[i] for i in self.nodes[index].children]

    @property
    def root(self) -> Optional[Node]:
        if self.root_index is None:
            return None
        return self.nodes[self.root_index]

    def walk(self, index: int) -> Iterator[Node]:
        """Pre-order, left-to-right traversal of the subtree at ``index``."""
        stack = [index]
        while stack:
            node = self.nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def find_root_tag(self, index: Optional[int] = None) -> Optional[int]:
        """Index of the first node carrying the ``!`` modifier, or None."""
        start = self.top_index if index is None else index
        if start is None:
            return None
        for node in self.walk(start):
            if node.is_root:
                return node.index
        return None

    def resolve_root(self) -> int:
        """
        Choose the evaluation root: the first ``!`` node in pre-order, or
        the top-level group. Calling it again returns the same index.
        """
        if self.top_index is None:
            raise ValueError("node tree has no top-level node")
        tagged = self.find_root_tag(self.top_index)
        self.root_index = self.top_index if tagged is None else tagged
        return self.root_index

    def get_string(self, index: int) -> str:
        """CSG dump of the subtree at ``index`` (cached per node)."""
        if index not in self._strings:
            self._strings[index] = '\n'.join(self._dump_lines(index, ''))
        return self._strings[index]

    def _dump_lines(self, index: int, indent: str) -> List[str]:
        node = self.nodes[index]
        prefix = ''
        if node.is_highlight:
            prefix += '#'
        if node.is_background:
            prefix += '%'
        head = f"{indent}{prefix}{node.describe()}"
        if not node.children:
            return [head + ';']
        lines = [head + ' {']
        for child in node.children:
            lines.extend(self._dump_lines(child, indent + '\t'))
        lines.append(indent + '}')
        return lines
