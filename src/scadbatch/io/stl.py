"""STL import and export for triangle meshes."""

from __future__ import annotations

import re
import struct
from typing import Iterable, List, NamedTuple, Tuple

import numpy as np
import trimesh

from ..geometry.types import PolySet
from ..lang.dumper import format_number

_STRUCT_TRIANGLE = struct.Struct('<12fH')
DEFAULT_NAME = 'OpenSCAD_Model'


class Triangle(NamedTuple):
    normal: Tuple[float, float, float]
    v0: Tuple[float, float, float]
    v1: Tuple[float, float, float]
    v2: Tuple[float, float, float]


def triangles_from_polyset(polyset: PolySet) -> List[Triangle]:
    if polyset.is_empty():
        return []
    result = []
    for normal, (v0, v1, v2) in zip(polyset.face_normals, polyset.triangles):
        result.append(Triangle(tuple(normal), tuple(v0), tuple(v1), tuple(v2)))
    return result


def write_stl(polyset: PolySet, path_or_file, *, name: str = DEFAULT_NAME) -> None:
    """Write ``polyset`` as ASCII STL to a path or an open text stream."""
    _write_ascii(triangles_from_polyset(polyset), path_or_file, name)


def _coords(values: Iterable[float]) -> str:
    return ' '.join(format_number(float(v)) for v in values)


def _write_ascii(triangles: List[Triangle], path_or_file, name: str) -> None:
    close_when_done = False
    if hasattr(path_or_file, 'write'):
        stream = path_or_file
    else:
        stream = open(path_or_file, 'w', encoding='ascii', newline='\n')
        close_when_done = True

    try:
        print(f"solid {name}", file=stream)
        for tri in triangles:
            print(f"  facet normal {_coords(tri.normal)}", file=stream)
            print("    outer loop", file=stream)
            for vertex in (tri.v0, tri.v1, tri.v2):
                print(f"      vertex {_coords(vertex)}", file=stream)
            print("    endloop", file=stream)
            print("  endfacet", file=stream)
        print(f"endsolid {name}", file=stream)
    finally:
        if close_when_done:
            stream.close()


# ---------------------------------------------------------------------------
# STL Import
# ---------------------------------------------------------------------------


def _is_binary_stl(data: bytes) -> bool:
    """Binary STL has an 80-byte header, a count, then 50 bytes per triangle."""
    if len(data) < 84:
        return False

    header = data[:80].decode('ascii', errors='ignore').strip().lower()
    if not header.startswith('solid'):
        return True
    # 'solid' may also open a binary header; trust the size
    tri_count = struct.unpack('<I', data[80:84])[0]
    if len(data) != 84 + tri_count * 50:
        return False
    rest = data[84:min(200, len(data))]
    return not (b'facet' in rest or b'vertex' in rest)


def _parse_binary_stl(data: bytes) -> List[Triangle]:
    tri_count = struct.unpack('<I', data[80:84])[0]
    triangles = []
    offset = 84

    for _ in range(tri_count):
        if offset + 50 > len(data):
            break
        values = _STRUCT_TRIANGLE.unpack(data[offset:offset + 50])
        triangles.append(Triangle(values[0:3], values[3:6], values[6:9], values[9:12]))
        offset += 50

    return triangles


_NUM = r'([eE\d.+-]+)'
_FACET_PATTERN = re.compile(
    r'facet\s+normal\s+' + r'\s+'.join([_NUM] * 3) + r'\s+'
    r'outer\s+loop\s+'
    r'vertex\s+' + r'\s+'.join([_NUM] * 3) + r'\s+'
    r'vertex\s+' + r'\s+'.join([_NUM] * 3) + r'\s+'
    r'vertex\s+' + r'\s+'.join([_NUM] * 3) + r'\s+'
    r'endloop\s+endfacet',
    re.IGNORECASE
)


def _parse_ascii_stl(text: str) -> List[Triangle]:
    triangles = []
    for match in _FACET_PATTERN.finditer(text):
        values = [float(g) for g in match.groups()]
        triangles.append(Triangle(tuple(values[0:3]), tuple(values[3:6]),
                                  tuple(values[6:9]), tuple(values[9:12])))
    return triangles


def read_stl(path_or_file) -> PolySet:
    """Read an ASCII or binary STL file into a :class:`PolySet`.

    Coincident vertices are merged so the result is an indexed mesh.
    """
    if hasattr(path_or_file, 'read'):
        data = path_or_file.read()
        if isinstance(data, str):
            data = data.encode('utf-8')
    else:
        with open(path_or_file, 'rb') as f:
            data = f.read()

    if _is_binary_stl(data):
        triangles = _parse_binary_stl(data)
    else:
        triangles = _parse_ascii_stl(data.decode('utf-8', errors='replace'))

    if not triangles:
        return PolySet()

    corners = np.array([[t.v0, t.v1, t.v2] for t in triangles], dtype=float)
    mesh = trimesh.Trimesh(**trimesh.triangles.to_kwargs(corners))
    mesh.merge_vertices()
    return PolySet(mesh)


__all__ = ['write_stl', 'read_stl', 'Triangle']
