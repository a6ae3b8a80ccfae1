"""
Boolean operations and hulls.

3-D booleans are dispatched through :mod:`trimesh.boolean` using a named
backend (``manifold`` by default). 2-D booleans use shapely.
"""

from __future__ import annotations

from functools import reduce
from typing import List, Optional, Sequence

import numpy as np
import trimesh
from scipy.spatial import QhullError
from shapely.geometry import MultiPoint
from shapely.ops import unary_union

from ..errors import PipelineError
from ..printutils import print_debug, print_warning
from .types import PolySet, Polygon2d

OPERATIONS = ('union', 'difference', 'intersection')


def engines_available() -> set[str]:
    """Return the set of named trimesh boolean backends that are operational."""
    # trimesh lists None as the "pick any" engine
    return {e for e in trimesh.boolean.engines_available if e is not None}


def is_available(backend: Optional[str] = None) -> bool:
    """Check whether booleans can run (with ``backend`` if given)."""
    available = engines_available()
    if not available:
        return False
    if backend is None:
        return True
    return backend in available


class BooleanEngine:
    """Runs mesh and polygon booleans with one configured trimesh backend."""

    def __init__(self, backend: Optional[str] = 'manifold'):
        available = engines_available()
        if backend is not None and backend not in available:
            print_warning(f"boolean backend '{backend}' is not available "
                          f"(available: {', '.join(sorted(available)) or 'none'}); "
                          "using the trimesh default.")
            backend = None
        self.backend = backend

    # --- 3-D ---

    def _mesh_boolean(self, meshes: List[trimesh.Trimesh], operation: str) -> trimesh.Trimesh:
        if not engines_available():
            raise PipelineError(f"Cannot compute {operation}: no trimesh boolean backend "
                                "is installed (install manifold3d).")
        print_debug(f"{operation} of {len(meshes)} meshes via {self.backend or 'default'}")
        if operation == 'union':
            return trimesh.boolean.union(meshes, engine=self.backend, check_volume=False)
        if operation == 'intersection':
            return trimesh.boolean.intersection(meshes, engine=self.backend, check_volume=False)
        if operation == 'difference':
            return trimesh.boolean.difference(meshes, engine=self.backend, check_volume=False)
        raise ValueError(f"unsupported boolean operation '{operation}'")

    def apply_3d(self, operation: str, children: Sequence[Optional[PolySet]]) -> PolySet:
        """
        Combine meshes; ``children`` keeps None / empty entries so that the
        first operand of a difference or intersection is known.
        """
        if operation == 'union':
            meshes = [c.mesh for c in children if c is not None and not c.is_empty()]
            if not meshes:
                return PolySet()
            if len(meshes) == 1:
                return PolySet(meshes[0])
            return PolySet(self._mesh_boolean(meshes, 'union'))

        if not children or children[0] is None or children[0].is_empty():
            return PolySet()
        first = children[0].mesh
        rest = [c for c in children[1:] if c is not None]
        if operation == 'difference':
            rest = [c.mesh for c in rest if not c.is_empty()]
            if not rest:
                return PolySet(first)
            result = self._mesh_boolean([first] + rest, 'difference')
        else:
            if any(c.is_empty() for c in rest):
                return PolySet()
            if not rest:
                return PolySet(first)
            result = self._mesh_boolean([first] + [c.mesh for c in rest], 'intersection')
        if result is None or len(result.faces) == 0:
            return PolySet()
        return PolySet(result)

    # --- 2-D ---

    @staticmethod
    def apply_2d(operation: str, children: Sequence[Optional[Polygon2d]]) -> Polygon2d:
        if operation == 'union':
            shapes = [c.shape for c in children if c is not None and not c.is_empty()]
            if not shapes:
                return Polygon2d()
            return Polygon2d(unary_union(shapes))

        if not children or children[0] is None or children[0].is_empty():
            return Polygon2d()
        rest = [c for c in children[1:] if c is not None]
        if operation == 'difference':
            others = [c.shape for c in rest if not c.is_empty()]
            if not others:
                return children[0]
            return Polygon2d(children[0].shape.difference(unary_union(others)))
        return Polygon2d(reduce(lambda a, b: a.intersection(b),
                                [c.shape for c in rest], children[0].shape))

    # --- Hull ---

    @staticmethod
    def hull_3d(children: Sequence[PolySet]) -> PolySet:
        points = [c.mesh.vertices for c in children if c is not None and not c.is_empty()]
        if not points:
            return PolySet()
        stacked = np.concatenate(points)
        if len(stacked) < 4:
            return PolySet()
        try:
            return PolySet(trimesh.convex.convex_hull(stacked))
        except QhullError as e:
            print_warning(f"hull() failed: {e}")
            return PolySet()

    @staticmethod
    def hull_2d(children: Sequence[Polygon2d]) -> Polygon2d:
        coords = []
        for child in children:
            if child is None:
                continue
            for polygon in child.polygons:
                coords.extend(polygon.exterior.coords)
        if len(coords) < 3:
            return Polygon2d()
        hull = MultiPoint(coords).convex_hull
        if hull.geom_type != 'Polygon':
            return Polygon2d()
        return Polygon2d(hull)
