"""File format writers (and the STL reader used by ``import()``)."""

from .stl import write_stl, read_stl
from .off import write_off
from .amf import write_amf
from .dxf import write_dxf
from .svg import write_svg
from .png import write_geometry_png, write_preview_png

__all__ = [
    'write_stl', 'read_stl', 'write_off', 'write_amf', 'write_dxf', 'write_svg',
    'write_geometry_png', 'write_preview_png',
]
