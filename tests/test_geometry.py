"""
Tests for primitives, booleans and full geometry evaluation.
"""

import io

import numpy as np
import pytest

from scadbatch.errors import PipelineError
from scadbatch.geometry import (
    BooleanEngine, GeometryEvaluator, PolySet, Polygon2d, boolean, build_primitive,
    engines_available, get_fragments_from_r, import_file,
)
from scadbatch.io import write_stl
from scadbatch.lang import parse_source
from scadbatch.nodes import FragmentParams, ImportNode, NodeTree, PrimitiveNode
from scadbatch.printutils import capture_output
from scadbatch.runtime import Interpreter

requires_boolean = pytest.mark.skipif(not engines_available(),
                                      reason="no trimesh boolean backend installed")


def evaluate(source):
    tree = NodeTree()
    out = io.StringIO()
    with capture_output(out):
        Interpreter(tree).instantiate_file(parse_source(source))
        root = tree.resolve_root()
        geom = GeometryEvaluator(tree).evaluate_geometry(root)
    return geom, out.getvalue()


class TestFragments:

    def test_defaults(self):
        assert get_fragments_from_r(10.0, FragmentParams()) == 30
        assert get_fragments_from_r(1.0, FragmentParams()) == 5

    def test_fn_overrides(self):
        assert get_fragments_from_r(10.0, FragmentParams(fn=8)) == 8
        assert get_fragments_from_r(10.0, FragmentParams(fn=1)) == 3

    def test_tiny_radius(self):
        assert get_fragments_from_r(0.0, FragmentParams(fn=64)) == 3


class TestPrimitives:

    def test_cube(self):
        geom = build_primitive(PrimitiveNode(kind="cube",
                                             params={"size": [1.0, 2.0, 3.0], "center": False}))
        assert isinstance(geom, PolySet)
        np.testing.assert_allclose(geom.bounds(), [[0, 0, 0], [1, 2, 3]])
        assert geom.mesh.volume == pytest.approx(6.0)

    def test_centered_cube(self):
        geom = build_primitive(PrimitiveNode(kind="cube",
                                             params={"size": [2.0, 2.0, 2.0], "center": True}))
        np.testing.assert_allclose(geom.bounds(), [[-1, -1, -1], [1, 1, 1]])

    def test_degenerate_cube_is_empty(self):
        geom = build_primitive(PrimitiveNode(kind="cube",
                                             params={"size": [0.0, 1.0, 1.0], "center": False}))
        assert geom.is_empty()

    def test_cylinder_height(self):
        geom, _ = evaluate("cylinder(h = 4, r = 1, $fn = 12);")
        bounds = geom.bounds()
        assert bounds[0][2] == pytest.approx(0.0)
        assert bounds[1][2] == pytest.approx(4.0)

    def test_sphere_radius(self):
        geom, _ = evaluate("sphere(2, $fn = 16);")
        assert np.max(np.linalg.norm(geom.mesh.vertices, axis=1)) == pytest.approx(2.0)

    def test_square_and_circle(self):
        square, _ = evaluate("square([2, 3]);")
        assert isinstance(square, Polygon2d)
        assert square.shape.area == pytest.approx(6.0)
        circle, _ = evaluate("circle(1, $fn = 4);")
        assert circle.shape.area == pytest.approx(2.0)

    def test_polygon_with_hole(self):
        source = ("polygon(points = [[0, 0], [4, 0], [4, 4], [0, 4], [1, 1], [2, 1], [2, 2], [1, 2]],"
                  " paths = [[0, 1, 2, 3], [4, 5, 6, 7]]);")
        geom, _ = evaluate(source)
        assert geom.shape.area == pytest.approx(15.0)

    def test_polyhedron(self):
        source = ("polyhedron(points = [[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, 0, 1]],"
                  " faces = [[0, 1, 2], [0, 3, 1], [0, 2, 3], [1, 3, 2]]);")
        geom, _ = evaluate(source)
        assert len(geom.mesh.faces) == 4


class TestEvaluation:

    def test_empty_script(self):
        geom, _ = evaluate("")
        assert geom is None

    def test_translate(self):
        geom, _ = evaluate("translate([5, 0, 0]) cube(1);")
        np.testing.assert_allclose(geom.bounds(), [[5, 0, 0], [6, 1, 1]])

    def test_2d_difference(self):
        geom, _ = evaluate("difference() { square(10); translate([5, 0]) square(10); }")
        assert geom.shape.area == pytest.approx(50.0)

    def test_2d_intersection(self):
        geom, _ = evaluate("intersection() { square(10); translate([5, 5]) square(10); }")
        assert geom.shape.area == pytest.approx(25.0)

    def test_2d_hull(self):
        geom, _ = evaluate("hull() { square(1); translate([4, 0]) square(1); }")
        assert geom.shape.area == pytest.approx(5.0)

    def test_background_child_is_skipped(self):
        geom, _ = evaluate("union() { square(1); %translate([5, 0]) square(1); }")
        assert geom.shape.area == pytest.approx(1.0)

    def test_mixed_dimensions_warn(self):
        geom, messages = evaluate("square(1); cube(1);")
        assert isinstance(geom, Polygon2d)
        assert "Mixing 2D and 3D objects is not supported." in messages

    def test_linear_extrude(self):
        geom, _ = evaluate("linear_extrude(height = 5) square(2);")
        assert isinstance(geom, PolySet)
        np.testing.assert_allclose(geom.bounds(), [[0, 0, 0], [2, 2, 5]], atol=1e-9)

    def test_rotate_extrude(self):
        geom, _ = evaluate("rotate_extrude($fn = 16) translate([2, 0]) square(1);")
        assert isinstance(geom, PolySet)
        assert geom.bounds()[1][0] == pytest.approx(3.0)

    def test_3d_hull(self):
        geom, _ = evaluate("hull() { cube(1); translate([3, 0, 0]) cube(1); }")
        assert geom.mesh.volume == pytest.approx(4.0)

    def test_cache_is_keyed_by_index(self):
        tree = NodeTree()
        Interpreter(tree).instantiate_file(parse_source("cube(1);"))
        evaluator = GeometryEvaluator(tree)
        first = evaluator.evaluate_geometry(1)
        assert evaluator.evaluate_geometry(1) is first


@requires_boolean
class TestMeshBooleans:

    def test_union_of_disjoint_cubes(self):
        geom, _ = evaluate("union() { cube(1); translate([3, 0, 0]) cube(1); }")
        assert geom.mesh.volume == pytest.approx(2.0)

    def test_difference(self):
        geom, _ = evaluate("difference() { cube(2); cube(1); }")
        assert geom.mesh.volume == pytest.approx(7.0)

    def test_intersection(self):
        geom, _ = evaluate("intersection() { cube(2); translate([1, 1, 1]) cube(2); }")
        assert geom.mesh.volume == pytest.approx(1.0)

    def test_empty_difference(self):
        engine = BooleanEngine()
        assert engine.apply_3d("difference", [None, PolySet()]).is_empty()


class TestImport:

    def test_import_stl(self, tmp_path):
        cube = build_primitive(PrimitiveNode(kind="cube",
                                             params={"size": [1.0, 1.0, 1.0], "center": False}))
        path = tmp_path / "cube.stl"
        write_stl(cube, str(path))
        geom = import_file(ImportNode(filename=str(path)))
        assert len(geom.mesh.faces) == 12
        np.testing.assert_allclose(geom.bounds(), [[0, 0, 0], [1, 1, 1]])

    def test_missing_import_warns(self, tmp_path):
        out = io.StringIO()
        with capture_output(out):
            geom = import_file(ImportNode(filename=str(tmp_path / "missing.stl")))
        assert geom is None
        assert "Can't open import file" in out.getvalue()


class TestBooleanBackends:

    def test_engine_names_are_strings(self):
        names = engines_available()
        assert None not in names
        assert sorted(names) == sorted(names, key=str)

    def test_unknown_backend_falls_back(self):
        out = io.StringIO()
        with capture_output(out):
            engine = BooleanEngine("no-such-engine")
        assert engine.backend is None
        assert "boolean backend 'no-such-engine' is not available" in out.getvalue()

    def test_missing_backend_is_an_error(self, monkeypatch):
        monkeypatch.setattr(boolean, "engines_available", lambda: set())
        cube = build_primitive(PrimitiveNode(kind="cube",
                                             params={"size": [2.0, 2.0, 2.0], "center": False}))
        small = build_primitive(PrimitiveNode(kind="cube",
                                              params={"size": [1.0, 1.0, 1.0], "center": False}))
        with capture_output(io.StringIO()):
            engine = BooleanEngine()
        with pytest.raises(PipelineError, match="no trimesh boolean backend"):
            engine.apply_3d("difference", [cube, small])
