"""Additive Manufacturing File Format (AMF) export."""

from __future__ import annotations

from typing import TextIO

from .. import __version__
from ..geometry.types import PolySet
from ..lang.dumper import format_number


def write_amf(polyset: PolySet, stream: TextIO) -> None:
    """Write a single-object AMF document in millimetres."""
    stream.write('<?xml version="1.0" encoding="UTF-8"?>\n')
    stream.write('<amf unit="millimeter">\n')
    stream.write(f' <metadata type="producer">scadbatch {__version__}</metadata>\n')
    stream.write(' <object id="0">\n')
    stream.write('  <mesh>\n')
    stream.write('   <vertices>\n')
    if not polyset.is_empty():
        for v in polyset.mesh.vertices:
            x, y, z = (format_number(float(c)) for c in v)
            stream.write(f'    <vertex><coordinates><x>{x}</x><y>{y}</y><z>{z}</z>'
                         f'</coordinates></vertex>\n')
    stream.write('   </vertices>\n')
    stream.write('   <volume>\n')
    if not polyset.is_empty():
        for a, b, c in polyset.mesh.faces:
            stream.write(f'    <triangle><v1>{a}</v1><v2>{b}</v2><v3>{c}</v3></triangle>\n')
    stream.write('   </volume>\n')
    stream.write('  </mesh>\n')
    stream.write(' </object>\n')
    stream.write('</amf>\n')
