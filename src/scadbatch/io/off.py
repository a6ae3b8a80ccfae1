"""Object File Format (OFF) export."""

from __future__ import annotations

from typing import TextIO

from ..geometry.types import PolySet
from ..lang.dumper import format_number


def write_off(polyset: PolySet, stream: TextIO) -> None:
    """Write ``polyset`` as an indexed OFF mesh of triangles."""
    vertices = polyset.mesh.vertices if not polyset.is_empty() else []
    faces = polyset.mesh.faces if not polyset.is_empty() else []

    stream.write("OFF\n")
    stream.write(f"{len(vertices)} {len(faces)} 0\n")
    for v in vertices:
        stream.write(' '.join(format_number(float(c)) for c in v) + "\n")
    for f in faces:
        stream.write(f"3 {f[0]} {f[1]} {f[2]}\n")
