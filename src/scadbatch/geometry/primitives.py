"""
Geometry builders for leaf nodes and extrusions.

Meshes are generated the classic way: circles are regular polygons whose
fragment count comes from ``$fn``/``$fa``/``$fs``, spheres are stacks of
such rings, and every mesh is closed with outward-facing triangles.
"""

from __future__ import annotations

import math
import os
from typing import List, Optional, Sequence, Tuple

import ezdxf
import mapbox_earcut as earcut
import numpy as np
import trimesh
from shapely.geometry import Polygon, box
from shapely.geometry.polygon import orient
from shapely.validation import make_valid

from ..nodes import (
    FragmentParams, ImportNode, LinearExtrudeNode, PrimitiveNode, RotateExtrudeNode,
)
from ..printutils import print_warning
from .types import Geometry, PolySet, Polygon2d

# Radii below this produce the minimal 3 fragments
GRID_FINE = 0.00000095367431640625


def get_fragments_from_r(r: float, fragments: FragmentParams) -> int:
    """Number of segments used to approximate a circle of radius ``r``."""
    if r < GRID_FINE:
        return 3
    if fragments.fn > 0:
        return max(int(fragments.fn), 3)
    fa = fragments.fa if fragments.fa > 0 else 12.0
    fs = fragments.fs if fragments.fs > 0 else 2.0
    return int(math.ceil(max(min(360.0 / fa, r * 2 * math.pi / fs), 5)))


def _circle_points(r: float, n: int) -> np.ndarray:
    angles = 2 * math.pi * np.arange(n) / n
    return np.column_stack([r * np.cos(angles), r * np.sin(angles)])


# =============================================================================
# 3-D primitives
# =============================================================================

def make_cube(size: Sequence[float], center: bool) -> PolySet:
    if min(size) <= 0:
        return PolySet()
    mesh = trimesh.creation.box(extents=size)
    if not center:
        mesh.apply_translation(np.asarray(size, dtype=float) / 2.0)
    return PolySet(mesh)


def make_sphere(r: float, fragments: FragmentParams) -> PolySet:
    if r <= 0:
        return PolySet()
    n = get_fragments_from_r(r, fragments)
    rings = (n + 1) // 2
    vertices = []
    for i in range(rings):
        phi = math.pi * (i + 0.5) / rings
        ring_r = r * math.sin(phi)
        z = r * math.cos(phi)
        for x, y in _circle_points(ring_r, n):
            vertices.append((x, y, z))

    faces = []
    # top cap, seen from above counter-clockwise
    for j in range(1, n - 1):
        faces.append((0, j, j + 1))
    for i in range(rings - 1):
        upper, lower = i * n, (i + 1) * n
        for j in range(n):
            k = (j + 1) % n
            faces.append((upper + j, lower + j, lower + k))
            faces.append((upper + j, lower + k, upper + k))
    bottom = (rings - 1) * n
    for j in range(1, n - 1):
        faces.append((bottom, bottom + j + 1, bottom + j))
    return PolySet.from_arrays(vertices, faces)


def make_cylinder(h: float, r1: float, r2: float, center: bool,
                  fragments: FragmentParams) -> PolySet:
    if h <= 0 or r1 < 0 or r2 < 0 or (r1 <= 0 and r2 <= 0):
        return PolySet()
    n = get_fragments_from_r(max(r1, r2), fragments)
    z1, z2 = (-h / 2.0, h / 2.0) if center else (0.0, h)

    vertices: List[Tuple[float, float, float]] = []
    faces: List[Tuple[int, int, int]] = []

    def ring(r: float, z: float) -> List[int]:
        start = len(vertices)
        if r <= 0:
            vertices.append((0.0, 0.0, z))
            return [start] * n
        vertices.extend((x, y, z) for x, y in _circle_points(r, n))
        return list(range(start, start + n))

    bottom = ring(r1, z1)
    top = ring(r2, z2)
    for j in range(n):
        k = (j + 1) % n
        if r1 > 0:
            faces.append((bottom[j], bottom[k], top[k]))
        if r2 > 0:
            faces.append((bottom[j], top[k], top[j]))
    if r1 > 0:
        for j in range(1, n - 1):
            faces.append((bottom[0], bottom[j + 1], bottom[j]))
    if r2 > 0:
        for j in range(1, n - 1):
            faces.append((top[0], top[j], top[j + 1]))
    return PolySet.from_arrays(vertices, faces)


def make_polyhedron(points: list, faces: list) -> PolySet:
    """Polyhedron from points and faces listed clockwise as seen from outside."""
    try:
        vertices = np.asarray(points, dtype=float)
    except (TypeError, ValueError):
        print_warning("polyhedron() points must be a list of 3-vectors.")
        return PolySet()
    if vertices.ndim != 2 or vertices.shape[1] < 3:
        print_warning("polyhedron() points must be a list of 3-vectors.")
        return PolySet()
    vertices = vertices[:, :3]

    triangles = []
    bad_faces = 0
    for face in faces:
        if not isinstance(face, list) or len(face) < 3:
            bad_faces += 1
            continue
        try:
            indices = [int(i) for i in face]
        except (TypeError, ValueError):
            bad_faces += 1
            continue
        if any(i < 0 or i >= len(vertices) for i in indices):
            bad_faces += 1
            continue
        indices.reverse()
        for j in range(1, len(indices) - 1):
            triangles.append((indices[0], indices[j], indices[j + 1]))
    if bad_faces:
        print_warning(f"polyhedron(): ignored {bad_faces} invalid face(s).")
    return PolySet.from_arrays(vertices, triangles)


# =============================================================================
# 2-D primitives
# =============================================================================

def make_square(size: Sequence[float], center: bool) -> Polygon2d:
    x, y = size
    if x <= 0 or y <= 0:
        return Polygon2d()
    if center:
        return Polygon2d(box(-x / 2.0, -y / 2.0, x / 2.0, y / 2.0))
    return Polygon2d(box(0.0, 0.0, x, y))


def make_circle(r: float, fragments: FragmentParams) -> Polygon2d:
    if r <= 0:
        return Polygon2d()
    n = get_fragments_from_r(r, fragments)
    return Polygon2d(Polygon(_circle_points(r, n)))


def make_polygon(points: list, paths: Optional[list]) -> Polygon2d:
    """Polygon from points; several paths combine with the even-odd rule."""
    try:
        coords = [(float(p[0]), float(p[1])) for p in points]
    except (TypeError, ValueError, IndexError):
        print_warning("polygon() points must be a list of 2-vectors.")
        return Polygon2d()
    if paths is None:
        paths = [list(range(len(coords)))]

    result = None
    for path in paths:
        if not isinstance(path, list):
            continue
        try:
            ring = [coords[int(i)] for i in path]
        except (TypeError, ValueError, IndexError):
            print_warning("polygon() path refers to an unknown point.")
            continue
        if len(ring) < 3:
            continue
        shape = make_valid(Polygon(ring))
        result = shape if result is None else result.symmetric_difference(shape)
    if result is None:
        return Polygon2d()
    return Polygon2d(result)


# =============================================================================
# Extrusions
# =============================================================================

def polygon_rings(polygon: Polygon) -> List[np.ndarray]:
    """Exterior (counter-clockwise) then holes (clockwise), without closing points."""
    polygon = orient(polygon, sign=1.0)
    rings = [np.asarray(polygon.exterior.coords)[:-1, :2]]
    rings.extend(np.asarray(hole.coords)[:-1, :2] for hole in polygon.interiors)
    return rings


def triangulate(rings: Sequence[np.ndarray]) -> np.ndarray:
    """Earcut triangulation of an outer ring with holes; indices into the stacked rings."""
    vertices = np.concatenate(rings).astype(np.float64)
    ring_ends = np.cumsum([len(r) for r in rings]).astype(np.uint32)
    indices = earcut.triangulate_float64(vertices, ring_ends)
    triangles = np.asarray(indices, dtype=np.int64).reshape(-1, 3)
    # make every triangle counter-clockwise
    for tri in triangles:
        a, b, c = vertices[tri]
        if (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0]) < 0:
            tri[1], tri[2] = tri[2], tri[1]
    return triangles


def linear_extrude(shape: Polygon2d, node: LinearExtrudeNode) -> PolySet:
    if shape.is_empty() or node.height <= 0:
        return PolySet()
    z0 = -node.height / 2.0 if node.center else 0.0
    slices = max(1, node.slices)
    vertices = []
    faces = []

    for polygon in shape.polygons:
        rings = polygon_rings(polygon)
        layer = np.concatenate(rings)
        per_layer = len(layer)
        base = len(vertices)
        for s in range(slices + 1):
            t = s / slices
            angle = -math.radians(node.twist * t)
            sx = 1.0 + (node.scale[0] - 1.0) * t
            sy = 1.0 + (node.scale[1] - 1.0) * t
            c, si = math.cos(angle), math.sin(angle)
            for x, y in layer:
                x, y = x * sx, y * sy
                vertices.append((c * x - si * y, si * x + c * y, z0 + node.height * t))

        # side walls
        offset = 0
        for ring in rings:
            n = len(ring)
            for s in range(slices):
                lower = base + s * per_layer + offset
                upper = lower + per_layer
                for i in range(n):
                    k = (i + 1) % n
                    faces.append((lower + i, lower + k, upper + k))
                    faces.append((lower + i, upper + k, upper + i))
            offset += n

        # caps
        top = base + slices * per_layer
        for a, b, c in triangulate(rings):
            faces.append((base + a, base + c, base + b))
            faces.append((top + a, top + b, top + c))

    return PolySet.from_arrays(vertices, faces)


def rotate_extrude(shape: Polygon2d, node: RotateExtrudeNode) -> PolySet:
    if shape.is_empty():
        return PolySet()
    minx, _, maxx, _ = shape.shape.bounds
    if minx < 0 and maxx > 0:
        print_warning("all points for rotate_extrude() must have the same X coordinate sign "
                      f"(range is {minx:g} -> {maxx:g})")
        return PolySet()
    if maxx <= 0:
        # profile entirely on the negative side: mirror it
        shape = shape.transform(np.diag([-1.0, 1.0, 1.0, 1.0]))
        minx, _, maxx, _ = shape.shape.bounds

    n = get_fragments_from_r(maxx, node.fragments)
    angles = 2 * math.pi * np.arange(n) / n
    vertices = []
    faces = []
    for polygon in shape.polygons:
        for ring in polygon_rings(polygon):
            base = len(vertices)
            m = len(ring)
            for x, z in ring:
                for a in angles:
                    vertices.append((x * math.cos(a), x * math.sin(a), z))
            for i in range(m):
                i2 = (i + 1) % m
                for k in range(n):
                    k2 = (k + 1) % n
                    a = base + i * n + k
                    b = base + i2 * n + k
                    c = base + i2 * n + k2
                    d = base + i * n + k2
                    faces.append((a, c, b))
                    faces.append((a, d, c))
    return PolySet.from_arrays(vertices, faces)


# =============================================================================
# Leaf dispatch
# =============================================================================

def build_primitive(node: PrimitiveNode) -> Geometry:
    """Geometry of a primitive node in its local coordinates."""
    p = node.params
    if node.kind == 'cube':
        return make_cube(p['size'], p['center'])
    if node.kind == 'sphere':
        return make_sphere(p['r'], node.fragments)
    if node.kind == 'cylinder':
        return make_cylinder(p['h'], p['r1'], p['r2'], p['center'], node.fragments)
    if node.kind == 'polyhedron':
        return make_polyhedron(p['points'], p['faces'])
    if node.kind == 'square':
        return make_square(p['size'], p['center'])
    if node.kind == 'circle':
        return make_circle(p['r'], node.fragments)
    if node.kind == 'polygon':
        return make_polygon(p['points'], p['paths'])
    raise ValueError(f"unknown primitive '{node.kind}'")


def _read_dxf(node: ImportNode) -> Polygon2d:
    """Closed polylines and circles of a DXF drawing, combined even-odd."""
    doc = ezdxf.readfile(node.filename)
    rings = []
    for entity in doc.modelspace():
        if node.layer and entity.dxf.layer != node.layer:
            continue
        kind = entity.dxftype()
        if kind == 'LWPOLYLINE' and entity.closed:
            rings.append([(p[0], p[1]) for p in entity.get_points('xy')])
        elif kind == 'POLYLINE' and entity.is_closed:
            rings.append([(v.dxf.location.x, v.dxf.location.y) for v in entity.vertices])
        elif kind == 'CIRCLE':
            cx, cy = entity.dxf.center.x, entity.dxf.center.y
            n = get_fragments_from_r(entity.dxf.radius, node.fragments)
            rings.append([(cx + x, cy + y) for x, y in _circle_points(entity.dxf.radius, n)])

    ox, oy = node.origin
    points = []
    paths = []
    for ring in rings:
        start = len(points)
        points.extend([((x - ox) * node.scale, (y - oy) * node.scale) for x, y in ring])
        paths.append(list(range(start, len(points))))
    return make_polygon(points, paths)


def import_file(node: ImportNode) -> Optional[Geometry]:
    """Read an STL, OFF or DXF file; problems are warnings and yield None."""
    from ..io.stl import read_stl

    if not os.path.isfile(node.filename):
        print_warning(f"Can't open import file '{node.filename}'.")
        return None
    ext = os.path.splitext(node.filename)[1].lower()
    try:
        if ext == '.stl':
            return read_stl(node.filename)
        if ext == '.off':
            mesh = trimesh.load(node.filename, file_type='off', force='mesh')
            return PolySet(mesh)
        if ext == '.dxf':
            return _read_dxf(node)
    except (OSError, ValueError, ezdxf.DXFError) as e:
        print_warning(f"Can't import '{node.filename}': {e}")
        return None
    print_warning(f"Unsupported file format while trying to import file '{node.filename}'")
    return None
