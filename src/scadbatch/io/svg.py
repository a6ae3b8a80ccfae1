"""SVG export of 2-D regions."""

from __future__ import annotations

from typing import List, TextIO

import numpy as np

from ..geometry.types import Polygon2d
from ..lang.dumper import format_number


def _ring_path(coords: np.ndarray) -> str:
    # SVG's y axis points down
    parts = []
    for i, (x, y) in enumerate(coords):
        parts.append(f"{'M' if i == 0 else 'L'}{format_number(float(x))},"
                     f"{format_number(float(-y))}")
    return ' '.join(parts) + ' z'


def write_svg(region: Polygon2d, stream: TextIO) -> None:
    """Write one even-odd filled ``<path>`` per polygon, sized in millimetres."""
    bounds = region.bounds()
    if bounds is None:
        minx = miny = maxx = maxy = 0.0
    else:
        (minx, miny, _), (maxx, maxy, _) = bounds
    width = maxx - minx
    height = maxy - miny

    stream.write('<?xml version="1.0" standalone="no"?>\n')
    stream.write('<!DOCTYPE svg PUBLIC "-//W3C//DTD SVG 1.1//EN" '
                 '"http://www.w3.org/Graphics/SVG/1.1/DTD/svg11.dtd">\n')
    stream.write(f'<svg width="{format_number(width)}mm" height="{format_number(height)}mm" '
                 f'viewBox="{format_number(minx)} {format_number(-maxy)} '
                 f'{format_number(width)} {format_number(height)}" '
                 f'xmlns="http://www.w3.org/2000/svg" version="1.1">\n')
    stream.write('<title>scadbatch Model</title>\n')
    for polygon in region.polygons:
        rings: List[np.ndarray] = [np.asarray(polygon.exterior.coords)[:-1, :2]]
        rings.extend(np.asarray(hole.coords)[:-1, :2] for hole in polygon.interiors)
        data = ' '.join(_ring_path(r) for r in rings)
        stream.write(f'<path d="{data}" stroke="black" fill="lightgray" '
                     f'stroke-width="0.5" fill-rule="evenodd"/>\n')
    stream.write('</svg>\n')
