"""
Tests for the node tree: root resolution and the CSG dump.
"""

import io

import numpy as np
import pytest

from scadbatch.lang import parse_source
from scadbatch.nodes import (
    ColorNode, CsgNode, FragmentParams, GroupNode, LinearExtrudeNode, NodeTree, PrimitiveNode,
    RenderNode, TransformNode,
)
from scadbatch.printutils import capture_output
from scadbatch.runtime import Interpreter


def build_tree(source):
    tree = NodeTree()
    with capture_output(io.StringIO()):
        Interpreter(tree).instantiate_file(parse_source(source))
    return tree


class TestNodeArena:

    def test_indices_start_at_zero(self):
        tree = NodeTree()
        assert tree.add(GroupNode()) == 0
        assert tree.add(GroupNode()) == 1
        assert len(tree) == 2

    def test_fresh_tree_per_build(self):
        first = build_tree("cube(1); sphere(1);")
        second = build_tree("cube(1); sphere(1);")
        assert [n.index for n in first] == [n.index for n in second] == [0, 1, 2]

    def test_walk_is_preorder(self):
        tree = build_tree("union() { cube(1); translate([1, 0, 0]) sphere(1); } cylinder();")
        names = [n.name for n in tree.walk(tree.top_index)]
        assert names == ["group", "union", "cube", "multmatrix", "sphere", "cylinder"]


class TestRootResolution:

    def test_top_group_without_tag(self):
        tree = build_tree("cube(1); sphere(1);")
        root = tree.resolve_root()
        assert root == tree.top_index
        assert [n.name for n in tree.children(root)] == ["cube", "sphere"]

    def test_tagged_node_becomes_root(self):
        tree = build_tree("cube(1); translate([1, 0, 0]) !sphere(1);")
        root = tree.resolve_root()
        assert tree.get(root).name == "sphere"

    def test_first_tag_in_document_order_wins(self):
        tree = build_tree("union() { cube(1); !sphere(1); } !cylinder();")
        assert tree.get(tree.resolve_root()).name == "sphere"

    def test_resolution_is_idempotent(self):
        tree = build_tree("cube(1); !sphere(1);")
        assert tree.resolve_root() == tree.resolve_root()
        assert tree.root.name == "sphere"

    def test_find_root_tag_none(self):
        tree = build_tree("cube(1);")
        assert tree.find_root_tag() is None

    def test_empty_script_has_empty_top(self):
        tree = build_tree("")
        assert tree.resolve_root() == tree.top_index
        assert tree.children(tree.top_index) == []

    def test_tree_without_top_raises(self):
        with pytest.raises(ValueError):
            NodeTree().resolve_root()


class TestDescribe:

    def test_cube(self):
        node = PrimitiveNode(kind="cube", params={"size": [1.0, 2.0, 3.0], "center": False})
        assert node.describe() == "cube(size = [1, 2, 3], center = false)"

    def test_sphere_lists_fragments_first(self):
        node = PrimitiveNode(kind="sphere", params={"r": 5.0}, fragments=FragmentParams(fn=10))
        assert node.describe() == "sphere($fn = 10, $fa = 12, $fs = 2, r = 5)"

    def test_multmatrix(self):
        m = np.eye(4)
        m[:3, 3] = [1.0, 2.0, 3.0]
        node = TransformNode(matrix=m)
        assert node.describe() == ("multmatrix([[1, 0, 0, 1], [0, 1, 0, 2], "
                                   "[0, 0, 1, 3], [0, 0, 0, 1]])")

    def test_color(self):
        assert ColorNode(color=(1.0, 0.0, 0.0, 0.5)).describe() == "color([1, 0, 0, 0.5])"

    def test_operations(self):
        assert CsgNode(operation="difference").describe() == "difference()"
        assert GroupNode().describe() == "group()"
        assert RenderNode(convexity=2).describe() == "render(convexity = 2)"

    def test_linear_extrude_without_twist(self):
        node = LinearExtrudeNode(height=5.0)
        assert node.describe() == ("linear_extrude(height = 5, center = false, convexity = 1, "
                                   "scale = [1, 1], $fn = 0, $fa = 12, $fs = 2)")


class TestCsgDump:

    def test_single_cube(self):
        tree = build_tree("cube(10);")
        assert tree.get_string(tree.top_index) == (
            "group() {\n\tcube(size = [10, 10, 10], center = false);\n}")

    def test_empty_top(self):
        tree = build_tree("")
        assert tree.get_string(tree.top_index) == "group();"

    def test_nested_indentation(self):
        tree = build_tree("difference() { cube(2); translate([0, 0, 1]) cube(1); }")
        assert tree.get_string(tree.top_index) == "\n".join([
            "group() {",
            "\tdifference() {",
            "\t\tcube(size = [2, 2, 2], center = false);",
            "\t\tmultmatrix([[1, 0, 0, 0], [0, 1, 0, 0], [0, 0, 1, 1], [0, 0, 0, 1]]) {",
            "\t\t\tcube(size = [1, 1, 1], center = false);",
            "\t\t}",
            "\t}",
            "}",
        ])

    def test_modifier_prefixes(self):
        tree = build_tree("#cube(1); %sphere(1, $fn = 4);")
        lines = tree.get_string(tree.top_index).split("\n")
        assert lines[1] == "\t#cube(size = [1, 1, 1], center = false);"
        assert lines[2] == "\t%sphere($fn = 4, $fa = 12, $fs = 2, r = 1);"

    def test_dump_of_subtree(self):
        tree = build_tree("union() { cube(1); }")
        union = tree.children(tree.top_index)[0]
        assert tree.get_string(union.index) == (
            "union() {\n\tcube(size = [1, 1, 1], center = false);\n}")

    def test_dump_is_cached(self):
        tree = build_tree("cube(1);")
        assert tree.get_string(0) is tree.get_string(0)
