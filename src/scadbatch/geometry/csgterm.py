"""
Boolean term trees (CSG terms) for term dumps and preview rendering.

A term tree records how leaf shapes combine without computing any
boundary: leaves carry their node index, accumulated transform and color,
and fetch their own geometry only when a renderer asks for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Tuple

import numpy as np

from ..nodes import (
    Node, NodeTree, GroupNode, CsgNode, TransformNode, ColorNode, RenderNode,
)
from ..printutils import print_warning
from .types import Geometry


class TermType(Enum):
    PRIMITIVE = "primitive"
    UNION = "+"
    INTERSECTION = "*"
    DIFFERENCE = "-"


Color = Tuple[float, float, float, float]
NO_COLOR: Color = (-1.0, -1.0, -1.0, 1.0)


@dataclass(frozen=True)
class CSGTerm:
    """A node of an immutable term tree."""
    type: TermType
    label: str = ""
    left: Optional["CSGTerm"] = None
    right: Optional["CSGTerm"] = None
    matrix: np.ndarray = field(default_factory=lambda: np.eye(4), compare=False)
    color: Color = NO_COLOR
    index: int = -1
    geometry_fn: Optional[Callable[[], Optional[Geometry]]] = field(default=None, compare=False)

    @classmethod
    def leaf(cls, label: str, index: int, matrix: np.ndarray, color: Color,
             geometry_fn: Callable[[], Optional[Geometry]]) -> "CSGTerm":
        return cls(TermType.PRIMITIVE, label=label, matrix=matrix, color=color,
                   index=index, geometry_fn=geometry_fn)

    @classmethod
    def combine(cls, op: TermType, left: Optional["CSGTerm"],
                right: Optional["CSGTerm"]) -> Optional["CSGTerm"]:
        """Combine two terms; a missing operand simplifies the result."""
        if op == TermType.UNION:
            if left is None:
                return right
            if right is None:
                return left
        elif op == TermType.INTERSECTION:
            if left is None or right is None:
                return None
        elif op == TermType.DIFFERENCE:
            if left is None:
                return None
            if right is None:
                return left
        return cls(op, left=left, right=right)

    @property
    def is_leaf(self) -> bool:
        return self.type == TermType.PRIMITIVE

    def geometry(self) -> Optional[Geometry]:
        """Leaf geometry in world coordinates."""
        if self.geometry_fn is None:
            return None
        geom = self.geometry_fn()
        if geom is None or geom.is_empty():
            return None
        return geom.transform(self.matrix)

    def dump(self) -> str:
        if self.is_leaf:
            return self.label
        return f"({self.left.dump()} {self.type.value} {self.right.dump()})"

    def count(self) -> int:
        """Number of leaves."""
        if self.is_leaf:
            return 1
        return self.left.count() + self.right.count()


# =============================================================================
# Term evaluation
# =============================================================================

class CSGTermEvaluator:
    """
    Builds the term tree of a subtree.

    ``highlights`` and ``backgrounds`` collect the terms of ``#`` and ``%``
    subtrees; background subtrees contribute nothing to the returned tree.
    """

    def __init__(self, tree: NodeTree, geometry_evaluator=None):
        self.tree = tree
        self.geometry_evaluator = geometry_evaluator
        self.highlights: List[CSGTerm] = []
        self.backgrounds: List[CSGTerm] = []

    def evaluate_csg_term(self, index: int) -> Optional[CSGTerm]:
        self.highlights = []
        self.backgrounds = []
        return self._visit(self.tree.get(index), np.eye(4), NO_COLOR)

    def _leaf_geometry(self, index: int) -> Callable[[], Optional[Geometry]]:
        def build():
            if self.geometry_evaluator is None:
                return None
            return self.geometry_evaluator.evaluate_leaf(index)
        return build

    def _visit(self, node: Node, matrix: np.ndarray, color: Color) -> Optional[CSGTerm]:
        if isinstance(node, TransformNode):
            term = self._fold(node, TermType.UNION, matrix @ node.matrix, color)
        elif isinstance(node, ColorNode):
            term = self._fold(node, TermType.UNION, matrix,
                              color if node.color[0] < 0 else node.color)
        elif isinstance(node, CsgNode):
            op = {'union': TermType.UNION, 'intersection': TermType.INTERSECTION,
                  'difference': TermType.DIFFERENCE}[node.operation]
            term = self._fold(node, op, matrix, color)
        elif isinstance(node, (GroupNode, RenderNode)):
            term = self._fold(node, TermType.UNION, matrix, color)
        else:
            # primitives, imports, extrusions and hulls are leaves
            term = CSGTerm.leaf(f"{node.name}{node.index}", node.index, matrix, color,
                                self._leaf_geometry(node.index))

        if term is not None and node.is_highlight:
            self.highlights.append(term)
        if term is not None and node.is_background:
            self.backgrounds.append(term)
            return None
        return term

    def _fold(self, node: Node, op: TermType, matrix: np.ndarray, color: Color) -> Optional[CSGTerm]:
        result: Optional[CSGTerm] = None
        first = True
        for child in self.tree.children(node.index):
            term = self._visit(child, matrix, color)
            if first:
                result = term
                first = False
            else:
                result = CSGTerm.combine(op, result, term)
        return result


# =============================================================================
# Normalization to a sum of products
# =============================================================================

U, I, D = TermType.UNION, TermType.INTERSECTION, TermType.DIFFERENCE


def _node(op: TermType, left: CSGTerm, right: CSGTerm) -> CSGTerm:
    return CSGTerm(op, left=left, right=right)


def _rewrite(t: CSGTerm) -> Optional[CSGTerm]:
    """Apply the first matching rewrite rule at the top of ``t``."""
    if t.is_leaf:
        return None
    x, r = t.left, t.right
    if not r.is_leaf:
        y, z = r.left, r.right
        # x - (y + z) => (x - y) - z
        if t.type == D and r.type == U:
            return _node(D, _node(D, x, y), z)
        # x * (y + z) => (x * y) + (x * z)
        if t.type == I and r.type == U:
            return _node(U, _node(I, x, y), _node(I, x, z))
        # x - (y * z) => (x - y) + (x - z)
        if t.type == D and r.type == I:
            return _node(U, _node(D, x, y), _node(D, x, z))
        # x * (y * z) => (x * y) * z
        if t.type == I and r.type == I:
            return _node(I, _node(I, x, y), z)
        # x - (y - z) => (x - y) + (x * z)
        if t.type == D and r.type == D:
            return _node(U, _node(D, x, y), _node(I, x, z))
        # x * (y - z) => (x * y) - z
        if t.type == I and r.type == D:
            return _node(D, _node(I, x, y), z)
    if not x.is_leaf:
        lx, ly, z = x.left, x.right, r
        # (x - y) * z => (x * z) - y
        if x.type == D and t.type == I:
            return _node(D, _node(I, lx, z), ly)
        # (x + y) - z => (x - z) + (y - z)
        if x.type == U and t.type == D:
            return _node(U, _node(D, lx, z), _node(D, ly, z))
        # (x + y) * z => (x * z) + (y * z)
        if x.type == U and t.type == I:
            return _node(U, _node(I, lx, z), _node(I, ly, z))
    return None


def _normalize_pass(t: CSGTerm) -> CSGTerm:
    while True:
        rewritten = _rewrite(t)
        while rewritten is not None:
            t = rewritten
            rewritten = _rewrite(t)
        if t.is_leaf:
            return t
        t = replace(t, left=_normalize_pass(t.left))
        if t.type == U or (t.right.is_leaf and t.left.type != U):
            break
    return replace(t, right=_normalize_pass(t.right))


def normalize(term: Optional[CSGTerm], limit: int) -> Optional[CSGTerm]:
    """
    Rewrite ``term`` into a union of products (intersection / difference
    chains). Returns None with a warning if the result has more than
    ``limit`` leaves.
    """
    if term is None:
        return None
    while True:
        normalized = _normalize_pass(term)
        if normalized == term:
            break
        term = normalized
        if term.count() > limit:
            print_warning(f"Normalized CSG tree has {term.count()} elements, exceeding "
                          f"the limit of {limit}; preview shows highlighted and "
                          f"background objects only.")
            return None
    if term.count() > limit:
        print_warning(f"Normalized CSG tree has {term.count()} elements, exceeding "
                      f"the limit of {limit}; preview shows highlighted and "
                      f"background objects only.")
        return None
    return term


@dataclass
class Product:
    """One product of a normalized term: shapes intersected, then subtracted."""
    positives: List[CSGTerm] = field(default_factory=list)
    negatives: List[CSGTerm] = field(default_factory=list)


def products(term: Optional[CSGTerm]) -> List[Product]:
    """Split a normalized term into its products."""
    if term is None:
        return []
    if term.type == TermType.UNION:
        return products(term.left) + products(term.right)
    product = Product()
    node = term
    while not node.is_leaf:
        if node.type == TermType.INTERSECTION:
            product.positives.extend(_leaves(node.right))
        else:
            product.negatives.extend(_leaves(node.right))
        node = node.left
    product.positives.insert(0, node)
    return [product]


def _leaves(term: CSGTerm) -> List[CSGTerm]:
    if term.is_leaf:
        return [term]
    return _leaves(term.left) + _leaves(term.right)
