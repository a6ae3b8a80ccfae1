"""Dimension-tagged geometry: 3-D triangle meshes and 2-D polygon sets."""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np
import trimesh
from shapely import affinity
from shapely.geometry import GeometryCollection, MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry


class Geometry:
    """Base class for evaluated geometry."""

    dimension = 0

    def is_empty(self) -> bool:
        raise NotImplementedError

    def transform(self, matrix: np.ndarray) -> "Geometry":
        raise NotImplementedError

    def bounds(self) -> Optional[np.ndarray]:
        """``[[minx, miny, minz], [maxx, maxy, maxz]]`` or None when empty."""
        raise NotImplementedError


class PolySet(Geometry):
    """A 3-D triangle mesh backed by :class:`trimesh.Trimesh`."""

    dimension = 3

    def __init__(self, mesh: Optional[trimesh.Trimesh] = None):
        if mesh is None:
            mesh = trimesh.Trimesh(vertices=np.zeros((0, 3)),
                                   faces=np.zeros((0, 3), dtype=np.int64), process=False)
        self.mesh = mesh

    @classmethod
    def from_arrays(cls, vertices, faces, *, process: bool = True) -> "PolySet":
        """Build from vertex and triangle index arrays, dropping degenerate faces."""
        vertices = np.asarray(vertices, dtype=float).reshape(-1, 3)
        faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        if len(faces) == 0:
            return cls()
        mesh = trimesh.Trimesh(vertices=vertices, faces=faces, process=process)
        mesh.update_faces(mesh.nondegenerate_faces())
        mesh.remove_unreferenced_vertices()
        return cls(mesh)

    def is_empty(self) -> bool:
        return len(self.mesh.faces) == 0

    @property
    def triangles(self) -> np.ndarray:
        """Triangle corner coordinates, shape ``(n, 3, 3)``."""
        return np.asarray(self.mesh.triangles)

    @property
    def face_normals(self) -> np.ndarray:
        return np.asarray(self.mesh.face_normals)

    def transform(self, matrix: np.ndarray) -> "PolySet":
        if self.is_empty():
            return self
        mesh = self.mesh.copy()
        mesh.apply_transform(matrix)
        return PolySet(mesh)

    def bounds(self) -> Optional[np.ndarray]:
        if self.is_empty():
            return None
        return np.asarray(self.mesh.bounds)

    def __repr__(self) -> str:
        return f"PolySet(vertices={len(self.mesh.vertices)}, faces={len(self.mesh.faces)})"


def _polygons_of(shape: BaseGeometry) -> List[Polygon]:
    if shape.is_empty:
        return []
    if isinstance(shape, Polygon):
        return [shape]
    if isinstance(shape, (MultiPolygon, GeometryCollection)):
        result = []
        for part in shape.geoms:
            result.extend(_polygons_of(part))
        return result
    return []


class Polygon2d(Geometry):
    """A 2-D region (polygons with holes) backed by shapely."""

    dimension = 2

    def __init__(self, shape: Optional[BaseGeometry] = None):
        self.shape = shape if shape is not None else Polygon()

    @classmethod
    def from_polygons(cls, polygons: Sequence[Polygon]) -> "Polygon2d":
        polygons = [p for p in polygons if not p.is_empty]
        if not polygons:
            return cls()
        if len(polygons) == 1:
            return cls(polygons[0])
        return cls(MultiPolygon(polygons))

    @property
    def polygons(self) -> List[Polygon]:
        """The individual polygons (each an outer ring with holes)."""
        return _polygons_of(self.shape)

    def is_empty(self) -> bool:
        return not self.polygons

    def transform(self, matrix: np.ndarray) -> "Polygon2d":
        """Apply the XY part of a 4x4 matrix."""
        if self.is_empty():
            return self
        params = [matrix[0, 0], matrix[0, 1], matrix[1, 0], matrix[1, 1],
                  matrix[0, 3], matrix[1, 3]]
        return Polygon2d(affinity.affine_transform(self.shape, params))

    def bounds(self) -> Optional[np.ndarray]:
        if self.is_empty():
            return None
        minx, miny, maxx, maxy = self.shape.bounds
        return np.array([[minx, miny, 0.0], [maxx, maxy, 0.0]])

    def __repr__(self) -> str:
        return f"Polygon2d(polygons={len(self.polygons)}, area={self.shape.area:g})"
