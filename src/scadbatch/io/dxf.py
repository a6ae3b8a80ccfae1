"""DXF export of 2-D regions via ezdxf."""

from __future__ import annotations

from typing import TextIO

import ezdxf
import numpy as np

from ..geometry.types import Polygon2d


def new_document(layer: str = '0'):
    # setup=False avoids default blocks containing SOLID entities that some
    # CAD programs cannot read
    doc = ezdxf.new(dxfversion='R2010', setup=False)
    doc.header['$MEASUREMENT'] = 1  # metric
    doc.header['$INSUNITS'] = 4  # millimeters
    if layer not in doc.layers:
        doc.layers.new(layer, dxfattribs={'color': 7})
    return doc


def write_dxf(region: Polygon2d, stream: TextIO, layer: str = '0') -> None:
    """Write every ring of ``region`` as a closed LWPOLYLINE."""
    doc = new_document(layer)
    msp = doc.modelspace()
    for polygon in region.polygons:
        rings = [polygon.exterior] + list(polygon.interiors)
        for ring in rings:
            points = np.asarray(ring.coords)[:-1, :2]
            msp.add_lwpolyline([(float(x), float(y)) for x, y in points],
                               close=True, dxfattribs={'layer': layer})
    doc.write(stream)
