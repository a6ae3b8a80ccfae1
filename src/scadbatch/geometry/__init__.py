"""Geometry kernel: meshes, polygon sets, booleans and CSG terms."""

from .types import Geometry, PolySet, Polygon2d
from .boolean import BooleanEngine, engines_available, is_available
from .primitives import build_primitive, get_fragments_from_r, import_file
from .evaluator import GeometryEvaluator
from .csgterm import (
    CSGTerm, CSGTermEvaluator, TermType, Product, normalize, products,
)

__all__ = [
    'Geometry', 'PolySet', 'Polygon2d',
    'BooleanEngine', 'engines_available', 'is_available',
    'build_primitive', 'get_fragments_from_r', 'import_file',
    'GeometryEvaluator',
    'CSGTerm', 'CSGTermEvaluator', 'TermType', 'Product', 'normalize', 'products',
]
