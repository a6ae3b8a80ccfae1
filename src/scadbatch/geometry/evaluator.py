"""
Full geometry evaluation of a node tree.

The evaluator walks a subtree bottom-up, building leaf geometry and
combining children with booleans. Results are cached by node index for
the lifetime of the evaluator (one run).
"""

from typing import Dict, List, Optional

from ..nodes import (
    Node, NodeTree, GroupNode, CsgNode, TransformNode, ColorNode, PrimitiveNode,
    LinearExtrudeNode, RotateExtrudeNode, ImportNode, RenderNode, HullNode,
)
from ..printutils import print_warning
from .boolean import BooleanEngine
from .primitives import build_primitive, import_file, linear_extrude, rotate_extrude
from .types import Geometry, Polygon2d


class GeometryEvaluator:
    """Evaluates nodes of one tree into :class:`Geometry`."""

    def __init__(self, tree: NodeTree, engine: Optional[BooleanEngine] = None):
        self.tree = tree
        self.engine = engine if engine is not None else BooleanEngine()
        self.cache: Dict[int, Optional[Geometry]] = {}
        self.background_cache: Dict[int, Optional[Geometry]] = {}

    def evaluate_geometry(self, index: int) -> Optional[Geometry]:
        """Geometry of the subtree at ``index`` in that node's coordinates."""
        if index not in self.cache:
            node = self.tree.get(index)
            self.cache[index] = None if node.is_background else self._evaluate(node)
        return self.cache[index]

    def evaluate_leaf(self, index: int) -> Optional[Geometry]:
        """Geometry of a CSG term leaf; a background leaf still gets its shape."""
        node = self.tree.get(index)
        if not node.is_background:
            return self.evaluate_geometry(index)
        if index not in self.background_cache:
            self.background_cache[index] = self._evaluate(node)
        return self.background_cache[index]

    def _children(self, node: Node) -> List[Optional[Geometry]]:
        """
        Geometry of each non-background child.

        The first non-empty child decides the dimension; children of the
        other dimension are dropped with a warning. Empty entries are kept
        so that the first operand of a difference stays first.
        """
        results: List[Optional[Geometry]] = []
        dimension = 0
        warned = False
        for child in self.tree.children(node.index):
            if child.is_background:
                continue
            geom = self.evaluate_geometry(child.index)
            if geom is not None and not geom.is_empty():
                if dimension == 0:
                    dimension = geom.dimension
                elif geom.dimension != dimension:
                    if not warned:
                        print_warning("Mixing 2D and 3D objects is not supported.")
                        warned = True
                    geom = None
            results.append(geom)
        return results

    def _combine(self, operation: str, children: List[Optional[Geometry]]) -> Optional[Geometry]:
        present = [c for c in children if c is not None and not c.is_empty()]
        if not present:
            return None
        if present[0].dimension == 3:
            return self.engine.apply_3d(operation, [c if c is None or c.dimension == 3 else None
                                                    for c in children])
        return self.engine.apply_2d(operation, [c if c is None or c.dimension == 2 else None
                                                for c in children])

    def _evaluate(self, node: Node) -> Optional[Geometry]:
        if isinstance(node, PrimitiveNode):
            return build_primitive(node)

        if isinstance(node, ImportNode):
            return import_file(node)

        if isinstance(node, CsgNode):
            return self._combine(node.operation, self._children(node))

        if isinstance(node, TransformNode):
            geom = self._combine('union', self._children(node))
            return None if geom is None else geom.transform(node.matrix)

        if isinstance(node, HullNode):
            present = [c for c in self._children(node) if c is not None and not c.is_empty()]
            if not present:
                return None
            if present[0].dimension == 3:
                return self.engine.hull_3d([c for c in present if c.dimension == 3])
            return self.engine.hull_2d([c for c in present if c.dimension == 2])

        if isinstance(node, (LinearExtrudeNode, RotateExtrudeNode)):
            geom = self._combine('union', self._children(node))
            if geom is None:
                return None
            if not isinstance(geom, Polygon2d):
                print_warning(f"{node.name}() requires 2D children; ignoring 3D objects.")
                return None
            if isinstance(node, LinearExtrudeNode):
                return linear_extrude(geom, node)
            return rotate_extrude(geom, node)

        if isinstance(node, (GroupNode, ColorNode, RenderNode)):
            return self._combine('union', self._children(node))

        raise TypeError(f"cannot evaluate node type {type(node).__name__}")
