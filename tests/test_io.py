"""
Tests for the mesh, drawing and image writers.
"""

import io
import struct

import ezdxf
import numpy as np
import pytest
import trimesh

from scadbatch.camera import Camera
from scadbatch.geometry import CSGTerm, PolySet, Polygon2d, Product, build_primitive
from scadbatch.io import (
    read_stl, write_amf, write_dxf, write_geometry_png, write_off, write_preview_png, write_stl,
    write_svg,
)
from scadbatch.io.stl import triangles_from_polyset
from scadbatch.nodes import PrimitiveNode
from scadbatch.printutils import capture_output
from shapely.geometry import box


def unit_cube():
    return build_primitive(PrimitiveNode(kind="cube",
                                         params={"size": [1.0, 1.0, 1.0], "center": False}))


def square_with_hole():
    return Polygon2d(box(0, 0, 4, 4).difference(box(1, 1, 2, 2)))


def png_size(data):
    assert data[:8] == b"\x89PNG\r\n\x1a\n"
    return struct.unpack(">II", data[16:24])


class TestStl:

    def test_ascii_layout(self):
        stream = io.StringIO()
        write_stl(unit_cube(), stream)
        lines = stream.getvalue().splitlines()
        assert lines[0] == "solid OpenSCAD_Model"
        assert lines[-1] == "endsolid OpenSCAD_Model"
        assert lines[1].startswith("  facet normal ")
        assert lines[2] == "    outer loop"
        assert lines[3].startswith("      vertex ")
        assert lines[6] == "    endloop"
        assert lines[7] == "  endfacet"
        assert sum(1 for line in lines if line == "  endfacet") == 12

    def test_integral_coordinates_print_without_fraction(self):
        stream = io.StringIO()
        write_stl(unit_cube(), stream)
        vertices = [line.split()[1:] for line in stream.getvalue().splitlines()
                    if line.strip().startswith("vertex")]
        assert all(c in ("0", "1") for v in vertices for c in v)

    def test_read_binary(self, tmp_path):
        triangles = triangles_from_polyset(unit_cube())
        data = b"binary cube".ljust(80, b" ") + struct.pack("<I", len(triangles))
        for tri in triangles:
            data += struct.pack("<12fH", *tri.normal, *tri.v0, *tri.v1, *tri.v2, 0)
        path = tmp_path / "cube.stl"
        path.write_bytes(data)
        mesh = read_stl(str(path)).mesh
        assert len(mesh.faces) == 12
        assert len(mesh.vertices) == 8
        assert mesh.volume == pytest.approx(1.0)

    def test_read_ascii_stream(self):
        stream = io.StringIO()
        write_stl(unit_cube(), stream)
        mesh = read_stl(io.BytesIO(stream.getvalue().encode("ascii"))).mesh
        np.testing.assert_allclose(mesh.bounds, [[0, 0, 0], [1, 1, 1]])

    def test_read_empty(self):
        assert read_stl(io.BytesIO(b"solid empty\nendsolid empty\n")).is_empty()

    def test_triangles_of_empty_polyset(self):
        assert triangles_from_polyset(PolySet()) == []


class TestOff:

    def test_header_and_faces(self):
        stream = io.StringIO()
        write_off(unit_cube(), stream)
        lines = stream.getvalue().splitlines()
        assert lines[0] == "OFF"
        assert lines[1] == "8 12 0"
        assert len(lines) == 2 + 8 + 12
        assert all(line.startswith("3 ") for line in lines[10:])


class TestAmf:

    def test_document_structure(self):
        stream = io.StringIO()
        write_amf(unit_cube(), stream)
        text = stream.getvalue()
        assert text.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<amf unit="millimeter">')
        assert text.count("<vertex>") == 8
        assert text.count("<triangle>") == 12
        assert text.endswith("</amf>\n")


class TestDxf:

    def test_rings_are_closed_polylines(self, tmp_path):
        path = tmp_path / "out.dxf"
        with open(path, "w", encoding="utf-8") as f:
            write_dxf(square_with_hole(), f)
        doc = ezdxf.readfile(str(path))
        polylines = doc.modelspace().query("LWPOLYLINE")
        assert len(polylines) == 2
        assert all(p.closed for p in polylines)
        assert doc.header["$INSUNITS"] == 4

    def test_empty_region(self, tmp_path):
        path = tmp_path / "empty.dxf"
        with open(path, "w", encoding="utf-8") as f:
            write_dxf(Polygon2d(), f)
        assert len(ezdxf.readfile(str(path)).modelspace().query("LWPOLYLINE")) == 0


class TestSvg:

    def test_document(self):
        stream = io.StringIO()
        write_svg(square_with_hole(), stream)
        text = stream.getvalue()
        assert '<svg width="4mm" height="4mm" viewBox="0 -4 4 4"' in text
        assert text.count("<path ") == 1
        assert 'fill-rule="evenodd"' in text
        assert text.endswith("</svg>\n")

    def test_y_axis_is_flipped(self):
        stream = io.StringIO()
        write_svg(Polygon2d(box(0, 1, 1, 2)), stream)
        path = stream.getvalue().split('d="')[1].split('"')[0]
        assert "-2" in path and "-1" in path


class TestPng:

    def test_geometry_render_size(self):
        camera = Camera(pixel_size=(64, 48))
        stream = io.BytesIO()
        write_geometry_png(unit_cube(), camera, stream)
        assert png_size(stream.getvalue()) == (64, 48)

    def test_2d_geometry_render(self):
        stream = io.BytesIO()
        write_geometry_png(square_with_hole(), Camera(pixel_size=(32, 32)), stream)
        assert png_size(stream.getvalue()) == (32, 32)

    def test_empty_render(self):
        stream = io.BytesIO()
        write_geometry_png(None, Camera(pixel_size=(16, 16)), stream)
        assert png_size(stream.getvalue()) == (16, 16)

    def test_non_finite_triangles_are_skipped(self):
        cube = unit_cube()
        vertices = np.array(cube.mesh.vertices)
        vertices[0] = [np.inf, 0.0, 0.0]
        broken = PolySet(trimesh.Trimesh(vertices=vertices, faces=cube.mesh.faces, process=False))
        out = io.StringIO()
        stream = io.BytesIO()
        with capture_output(out):
            write_geometry_png(broken, Camera(pixel_size=(24, 24)), stream)
        assert png_size(stream.getvalue()) == (24, 24)
        assert "non-finite coordinates" in out.getvalue()

    def test_preview(self):
        cube = unit_cube()
        leaf = CSGTerm.leaf("cube1", 1, np.eye(4), (1.0, 0.0, 0.0, 1.0), lambda: cube)
        camera = Camera.parse("0,0,0,55,0,25,20")
        camera.pixel_size = (40, 30)
        stream = io.BytesIO()
        write_preview_png([Product(positives=[leaf])], [leaf], [], camera, stream,
                          thrown_together=True)
        assert png_size(stream.getvalue()) == (40, 30)


class TestCamera:

    def test_default(self):
        camera = Camera.parse(None)
        assert camera.type == "none"
        assert camera.fits_geometry

    def test_gimbal(self):
        camera = Camera.parse("1,2,3,10,20,30,100")
        assert camera.type == "gimbal"
        assert camera.object_trans == (1.0, 2.0, 3.0)
        assert camera.viewer_distance == 100.0
        assert camera.view_angles() == (80.0, -120.0)

    def test_vector(self):
        camera = Camera.parse("10,0,0,0,0,0")
        assert camera.type == "vector"
        elev, azim = camera.view_angles()
        assert elev == pytest.approx(0.0)
        assert azim == pytest.approx(0.0)

    def test_bad_count(self):
        with pytest.raises(ValueError, match="7 numbers for Gimbal Camera"):
            Camera.parse("1,2,3")

    def test_not_numbers(self):
        with pytest.raises(ValueError):
            Camera.parse("a,b,c,d,e,f")

    def test_not_finite(self):
        with pytest.raises(ValueError, match="finite"):
            Camera.parse("0,0,0,0,0,0,inf")

    def test_projection(self):
        camera = Camera()
        camera.set_projection("o")
        assert camera.projection == "ortho"
        with pytest.raises(ValueError):
            camera.set_projection("fisheye")

    def test_pixel_size(self):
        camera = Camera()
        camera.set_pixel_size("800,600")
        assert camera.pixel_size == (800, 600)
        for bad in ("800", "a,b", "0,10"):
            with pytest.raises(ValueError):
                camera.set_pixel_size(bad)

    def test_view_limits_fit_geometry(self):
        center, half = Camera().view_limits(np.array([[0, 0, 0], [4, 2, 2]], dtype=float))
        np.testing.assert_allclose(center, [2, 1, 1])
        assert half == pytest.approx(2.0)

    def test_view_limits_autocenter(self):
        camera = Camera.parse("0,0,0,0,0,0,10")
        camera.autocenter = True
        center, _ = camera.view_limits(np.array([[2, 2, 2], [4, 4, 4]], dtype=float))
        np.testing.assert_allclose(center, [3, 3, 3])
