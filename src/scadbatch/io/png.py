"""
PNG rendering with matplotlib.

Full renders draw the evaluated geometry. Previews draw straight from the
normalized CSG terms: the positive leaves of every product and, for the
thrown-together variant, the negative leaves as well. This approximates
the interactive preview without computing any boolean.
"""

from __future__ import annotations

from typing import BinaryIO, List, Optional, Sequence, Tuple

import numpy as np
from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure
from mpl_toolkits.mplot3d.art3d import Poly3DCollection

from ..camera import Camera
from ..geometry.csgterm import CSGTerm, Product
from ..geometry.primitives import polygon_rings, triangulate
from ..geometry.types import Geometry, PolySet
from ..printutils import print_warning

RGBA = Tuple[float, float, float, float]

FACE_COLOR: RGBA = (0.976, 0.843, 0.173, 1.0)
NEGATIVE_COLOR: RGBA = (0.616, 0.796, 0.318, 1.0)
HIGHLIGHT_COLOR: RGBA = (1.0, 0.318, 0.318, 0.5)
BACKGROUND_COLOR: RGBA = (0.706, 0.706, 0.706, 0.3)
BACKGROUND = '#ffffe5'
DPI = 100

# (triangles of shape (n, 3, 3), color)
Layer = Tuple[np.ndarray, RGBA]


def geometry_triangles(geom: Optional[Geometry]) -> np.ndarray:
    """Triangles of a mesh, or of a 2-D region placed in the z=0 plane."""
    if geom is None or geom.is_empty():
        return np.zeros((0, 3, 3))
    if isinstance(geom, PolySet):
        return geom.triangles
    result = []
    for polygon in geom.polygons:
        rings = polygon_rings(polygon)
        vertices = np.concatenate(rings)
        for tri in triangulate(rings):
            result.append([(x, y, 0.0) for x, y in vertices[tri]])
    return np.asarray(result, dtype=float).reshape(-1, 3, 3)


def _term_layer(term: CSGTerm, default: RGBA) -> Optional[Layer]:
    triangles = geometry_triangles(term.geometry())
    if len(triangles) == 0:
        return None
    color = default if term.color[0] < 0 else tuple(term.color)
    return triangles, color


def _render(layers: Sequence[Layer], camera: Camera, stream: BinaryIO) -> None:
    width, height = camera.pixel_size
    fig = Figure(figsize=(width / DPI, height / DPI), dpi=DPI)
    FigureCanvasAgg(fig)
    fig.patch.set_facecolor(BACKGROUND)
    ax = fig.add_subplot(111, projection='3d')
    ax.set_facecolor(BACKGROUND)
    ax.set_axis_off()

    bounds = None
    for triangles, color in layers:
        finite = np.isfinite(triangles).all(axis=(1, 2))
        if not finite.all():
            print_warning(f"Skipping {int(np.count_nonzero(~finite))} triangles "
                          "with non-finite coordinates.")
            triangles = triangles[finite]
        if len(triangles) == 0:
            continue
        collection = Poly3DCollection(triangles, linewidths=0.05)
        collection.set_facecolor(color)
        collection.set_edgecolor((0.0, 0.0, 0.0, 0.2 * color[3]))
        ax.add_collection3d(collection)
        lo, hi = triangles.reshape(-1, 3).min(axis=0), triangles.reshape(-1, 3).max(axis=0)
        bounds = np.array([lo, hi]) if bounds is None else np.array(
            [np.minimum(bounds[0], lo), np.maximum(bounds[1], hi)])

    center, half = camera.view_limits(bounds)
    ax.set_xlim(center[0] - half, center[0] + half)
    ax.set_ylim(center[1] - half, center[1] + half)
    ax.set_zlim(center[2] - half, center[2] + half)
    ax.set_box_aspect((1, 1, 1))
    elev, azim = camera.view_angles()
    ax.view_init(elev=elev, azim=azim)
    ax.set_proj_type('ortho' if camera.projection == 'ortho' else 'persp')
    fig.subplots_adjust(left=0, right=1, bottom=0, top=1)
    fig.savefig(stream, format='png', dpi=DPI, facecolor=BACKGROUND)


def write_geometry_png(geom: Optional[Geometry], camera: Camera, stream: BinaryIO) -> None:
    """Render fully evaluated geometry."""
    layers: List[Layer] = []
    triangles = geometry_triangles(geom)
    if len(triangles):
        layers.append((triangles, FACE_COLOR))
    _render(layers, camera, stream)


def write_preview_png(products: Sequence[Product], highlights: Sequence[CSGTerm],
                      backgrounds: Sequence[CSGTerm], camera: Camera, stream: BinaryIO,
                      thrown_together: bool = False) -> None:
    """Render normalized CSG products with highlight and background terms."""
    layers: List[Layer] = []
    for product in products:
        for term in product.positives:
            layer = _term_layer(term, FACE_COLOR)
            if layer is not None:
                layers.append(layer)
        if thrown_together:
            for term in product.negatives:
                layer = _term_layer(term, NEGATIVE_COLOR)
                if layer is not None:
                    layers.append(layer)
    for terms, color in ((highlights, HIGHLIGHT_COLOR), (backgrounds, BACKGROUND_COLOR)):
        for term in terms:
            for leaf in _term_leaves(term):
                leaf_triangles = geometry_triangles(leaf.geometry())
                if len(leaf_triangles):
                    layers.append((leaf_triangles, color))
    _render(layers, camera, stream)


def _term_leaves(term: CSGTerm) -> List[CSGTerm]:
    if term.is_leaf:
        return [term]
    return _term_leaves(term.left) + _term_leaves(term.right)
