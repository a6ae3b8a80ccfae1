"""
End-to-end tests of batch runs through ``run_batch`` and the command line.
"""

import io
import os
import sys

import pytest

from scadbatch import __main__ as cli
from scadbatch.errors import DimensionMismatchError, EmptyGeometryError, FileIOError
from scadbatch.geometry import engines_available
from scadbatch.io import read_stl
from scadbatch.pipeline import BatchOptions, RenderMode, run_batch
from scadbatch.printutils import capture_output
from scadbatch.settings import RenderSettings


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return tmp_path


def run(*args):
    """Run the command line; returns (status, messages)."""
    out = io.StringIO()
    with capture_output(out):
        status = cli.main(list(args))
    return status, out.getvalue()


def batch(input_file, output_file, **kwargs):
    kwargs.setdefault("settings", RenderSettings.from_env({}))
    with capture_output(io.StringIO()):
        return run_batch(BatchOptions(input_file=input_file, output_file=output_file, **kwargs))


class TestSolidExport:

    def test_cube_to_stl(self, workdir):
        (workdir / "cube.scad").write_text("cube(10);\n")
        status, _ = run("cube.scad", "-o", "cube.stl")
        assert status == 0
        mesh = read_stl("cube.stl").mesh
        assert mesh.volume == pytest.approx(1000.0)

    def test_full_evaluation_runs_once(self, workdir):
        (workdir / "cube.scad").write_text("cube(10);\n")
        result = batch("cube.scad", "cube.stl")
        assert result.dispatcher.full_evaluations == 1
        assert result.dispatcher.term_evaluations == 0

    @pytest.mark.parametrize("suffix", ["off", "amf"])
    def test_other_mesh_formats(self, workdir, suffix):
        (workdir / "cube.scad").write_text("cube(1);\n")
        status, _ = run("cube.scad", "-o", f"cube.{suffix}")
        assert status == 0
        assert (workdir / f"cube.{suffix}").stat().st_size > 0

    @pytest.mark.skipif(not engines_available(), reason="no trimesh boolean backend installed")
    def test_difference_to_stl(self, workdir):
        (workdir / "part.scad").write_text("difference() { cube(2); cube(1); }\n")
        status, _ = run("part.scad", "-o", "part.stl")
        assert status == 0
        assert read_stl("part.stl").mesh.volume == pytest.approx(7.0)

    def test_definitions_override_script(self, workdir):
        (workdir / "part.scad").write_text("size = 1;\ncube(size);\n")
        status, _ = run("part.scad", "-o", "part.stl", "-D", "size=3")
        assert status == 0
        assert read_stl("part.stl").mesh.volume == pytest.approx(27.0)


class TestDrawingExport:

    @pytest.mark.parametrize("suffix", ["dxf", "svg"])
    def test_square(self, workdir, suffix):
        (workdir / "plate.scad").write_text("square([4, 2]);\n")
        status, _ = run("plate.scad", "-o", f"plate.{suffix}")
        assert status == 0
        assert (workdir / f"plate.{suffix}").exists()

    def test_3d_object_to_dxf(self, workdir):
        (workdir / "cube.scad").write_text("cube(1);\n")
        status, messages = run("cube.scad", "-o", "cube.dxf")
        assert status == 1
        assert "Current top level object is not a 2D object" in messages
        assert not (workdir / "cube.dxf").exists()


class TestDumps:

    def test_csg_uses_term_path_only(self, workdir):
        (workdir / "part.scad").write_text("difference() { cube(10); sphere(5); }\n")
        result = batch("part.scad", "part.csg")
        assert result.dispatcher.full_evaluations == 0
        assert result.dispatcher.term_evaluations == 1
        assert (workdir / "part.csg").read_text() == (
            "group() {\n"
            "\tdifference() {\n"
            "\t\tcube(size = [10, 10, 10], center = false);\n"
            "\t\tsphere($fn = 0, $fa = 12, $fs = 2, r = 5);\n"
            "\t}\n"
            "}\n")

    def test_csg_of_explicit_root(self, workdir):
        (workdir / "part.scad").write_text("cube(1);\n!sphere(2);\n")
        batch("part.scad", "part.csg")
        assert (workdir / "part.csg").read_text() == "sphere($fn = 0, $fa = 12, $fs = 2, r = 2);\n"

    def test_term(self, workdir):
        (workdir / "part.scad").write_text("difference() { cube(10); sphere(5); }\n")
        status, _ = run("part.scad", "-o", "part.term")
        assert status == 0
        assert (workdir / "part.term").read_text() == "(cube2 - sphere3)\n"

    def test_term_without_object(self, workdir):
        (workdir / "empty.scad").write_text("")
        status, _ = run("empty.scad", "-o", "empty.term")
        assert status == 0
        assert (workdir / "empty.term").read_text() == "No top-level CSG object\n"

    def test_ast(self, workdir):
        (workdir / "part.scad").write_text("x = 1 + 2;\ntranslate([x, 0, 0]) cube(1);\n")
        result = batch("part.scad", "part.ast")
        assert result.dispatcher.full_evaluations == 0
        assert result.dispatcher.term_evaluations == 0
        assert (workdir / "part.ast").read_text() == (
            "x = (1 + 2);\ntranslate([x, 0, 0]) {\n\tcube(1);\n}\n")

    def test_ast_includes_definitions(self, workdir):
        (workdir / "part.scad").write_text("cube(1);\n")
        run("part.scad", "-o", "part.ast", "-D", "a=2")
        assert (workdir / "part.ast").read_text() == "cube(1);\na = 2;\n"

    def test_echo(self, workdir):
        (workdir / "part.scad").write_text('echo("hello", 1 + 1);\ncube(1);\n')
        status, messages = run("part.scad", "-o", "part.echo")
        assert status == 0
        assert (workdir / "part.echo").read_text() == 'ECHO: "hello", 2\n'
        assert "ECHO" not in messages


class TestImages:

    def test_preview_png(self, workdir):
        (workdir / "part.scad").write_text("difference() { cube(2); #sphere(1, $fn = 8); }\n")
        status, _ = run("part.scad", "-o", "part.png", "--imgsize=80,60")
        assert status == 0
        data = (workdir / "part.png").read_bytes()
        assert data[:8] == b"\x89PNG\r\n\x1a\n"

    def test_render_png_evaluates_fully(self, workdir):
        (workdir / "cube.scad").write_text("cube(1);\n")
        result = batch("cube.scad", "cube.png", mode=RenderMode.FULL)
        assert result.dispatcher.full_evaluations == 1
        assert (workdir / "cube.png").exists()

    def test_preview_png_skips_full_evaluation(self, workdir):
        (workdir / "cube.scad").write_text("cube(1);\n")
        result = batch("cube.scad", "cube.png")
        assert result.dispatcher.full_evaluations == 0

    def test_infinite_size_renders(self, workdir):
        (workdir / "huge.scad").write_text("cube(1 / 0);\n")
        status, messages = run("huge.scad", "-o", "huge.png", "--imgsize=40,40")
        assert status == 0
        assert (workdir / "huge.png").read_bytes()[:4] == b"\x89PNG"
        assert "non-finite coordinates" in messages

    def test_bad_camera(self, workdir):
        (workdir / "cube.scad").write_text("cube(1);\n")
        status, messages = run("cube.scad", "-o", "cube.png", "--camera=1,2")
        assert status == 1
        assert "camera setup requires" in messages


class TestFailures:

    def test_empty_script(self, workdir):
        (workdir / "empty.scad").write_text("")
        status, messages = run("empty.scad", "-o", "empty.off")
        assert status == 1
        assert "No top-level object found." in messages
        assert not (workdir / "empty.off").exists()

    def test_empty_script_raises(self, workdir):
        (workdir / "empty.scad").write_text("")
        with pytest.raises(EmptyGeometryError):
            batch("empty.scad", "empty.off")

    def test_2d_object_to_stl(self, workdir):
        (workdir / "flat.scad").write_text("square(1);\n")
        with pytest.raises(DimensionMismatchError):
            batch("flat.scad", "flat.stl")
        assert not (workdir / "flat.stl").exists()

    def test_missing_input(self, workdir):
        status, messages = run("missing.scad", "-o", "out.stl")
        assert status == 1
        assert "Can't open input file 'missing.scad'" in messages
        with pytest.raises(FileIOError):
            batch("missing.scad", "out.stl")

    def test_unknown_suffix(self, workdir):
        (workdir / "cube.scad").write_text("cube(1);\n")
        status, messages = run("cube.scad", "-o", "cube.obj")
        assert status == 1
        assert "Unknown suffix for output file cube.obj" in messages

    def test_parse_error(self, workdir):
        (workdir / "bad.scad").write_text("cube(1\n")
        status, messages = run("bad.scad", "-o", "bad.stl")
        assert status == 1
        assert "Can't parse file 'bad.scad'!" in messages

    def test_unwritable_output(self, workdir):
        (workdir / "cube.scad").write_text("cube(1);\n")
        status, messages = run("cube.scad", "-o", "no/such/dir/cube.stl")
        assert status == 1
        assert "for export" in messages

    def test_no_output(self, workdir):
        status, messages = run("cube.scad")
        assert status == 1
        assert "No output file given" in messages

    def test_two_outputs(self, workdir):
        status, messages = run("cube.scad", "-o", "a.stl", "-o", "b.stl")
        assert status == 1
        assert "Only one output file may be specified." in messages

    def test_no_input(self, workdir):
        status, messages = run("-o", "out.stl")
        assert status == 1
        assert "An input file is required." in messages


class TestDependencyFiles:

    def test_deps_for_stl(self, workdir):
        (workdir / "lib").mkdir()
        (workdir / "lib" / "part.scad").write_text("module part() { cube(1); }\n")
        (workdir / "main.scad").write_text("use <lib/part.scad>\npart();\n")
        status, _ = run("main.scad", "-o", "main.stl", "-d", "main.d")
        assert status == 0
        assert (workdir / "main.d").read_text() == (
            "main.stl: \\\n\tlib/part.scad \\\n\tmain.scad\n")

    def test_deps_from_subdirectory_script(self, workdir):
        (workdir / "src").mkdir()
        (workdir / "src" / "part.scad").write_text("include <common.scad>\ncube(1);\n")
        (workdir / "src" / "common.scad").write_text("x = 1;\n")
        status, _ = run("src/part.scad", "-o", "part.stl", "-d", "part.d")
        assert status == 0
        assert (workdir / "part.stl").exists()
        assert (workdir / "part.d").read_text() == (
            "part.stl: \\\n\tsrc/common.scad \\\n\tsrc/part.scad\n")

    def test_deps_refused_for_csg(self, workdir):
        (workdir / "cube.scad").write_text("cube(1);\n")
        status, messages = run("cube.scad", "-o", "cube.csg", "-d", "cube.d")
        assert status == 1
        assert "Sorry, don't know how to write deps" in messages
        assert not (workdir / "cube.d").exists()
        assert not (workdir / "cube.csg").exists()

    def test_no_deps_after_dimension_error(self, workdir):
        (workdir / "flat.scad").write_text("square(1);\n")
        status, _ = run("flat.scad", "-o", "flat.stl", "-d", "flat.d")
        assert status == 1
        assert not (workdir / "flat.d").exists()

    def test_repeated_runs_write_identical_rules(self, workdir):
        (workdir / "lib").mkdir()
        (workdir / "lib" / "my part.scad").write_text("module part() { cube(1); }\n")
        (workdir / "main.scad").write_text("use <lib/my part.scad>\npart();\n")
        batch("main.scad", "main.stl", deps_file="first.d")
        batch("main.scad", "main.stl", deps_file="second.d")
        first = (workdir / "first.d").read_bytes()
        assert first == (workdir / "second.d").read_bytes()
        assert b"lib/my\\ part.scad" in first

    def test_cwd_is_restored(self, workdir):
        (workdir / "src").mkdir()
        (workdir / "src" / "part.scad").write_text("cube(1);\n")
        run("src/part.scad", "-o", "part.stl")
        assert os.getcwd() == str(workdir.resolve())


class TestInformation:

    def test_version(self, capsys):
        assert cli.main(["--version"]) == 0
        assert capsys.readouterr().out.startswith("scadbatch version ")

    def test_info(self, capsys):
        assert cli.main(["--info"]) == 0
        out = capsys.readouterr().out
        assert "trimesh:" in out
        assert "Boolean engines:" in out

    def test_deprecated_output_option(self, workdir):
        (workdir / "cube.scad").write_text("cube(1);\n")
        status, messages = run("cube.scad", "-s", "cube.stl")
        assert status == 0
        assert "DEPRECATED: The -s option is deprecated." in messages
        assert (workdir / "cube.stl").exists()


class TestCommandLine:

    def test_usage_error_exits_with_one(self, capsys):
        with pytest.raises(SystemExit) as exc:
            cli.main(["cube.scad", "-o", "cube.png", "--render", "--preview"])
        assert exc.value.code == 1
        assert "not allowed with argument" in capsys.readouterr().err

    def test_unknown_boolean_engine_falls_back(self, workdir, monkeypatch):
        monkeypatch.setenv("SCADBATCH_BOOLEAN_ENGINE", "no-such-engine")
        (workdir / "cube.scad").write_text("cube(1);\n")
        status, messages = run("cube.scad", "-o", "cube.stl")
        assert status == 0
        assert "boolean backend 'no-such-engine' is not available" in messages
        assert (workdir / "cube.stl").exists()


DEEP_SCRIPT = ("module m(n) if (n > 0) translate([0, 0, 1]) m(n - 1); else cube(1);\n"
               "m(300);\n")


class TestDeepNesting:

    def test_stl(self, workdir):
        (workdir / "deep.scad").write_text(DEEP_SCRIPT)
        status, _ = run("deep.scad", "-o", "deep.stl")
        assert status == 0
        mesh = read_stl("deep.stl").mesh
        assert mesh.bounds[0][2] == pytest.approx(300.0)
        assert mesh.volume == pytest.approx(1.0)

    def test_csg(self, workdir):
        (workdir / "deep.scad").write_text(DEEP_SCRIPT)
        status, _ = run("deep.scad", "-o", "deep.csg")
        assert status == 0
        text = (workdir / "deep.csg").read_text()
        assert text.count("multmatrix(") == 300
        assert "cube(size = [1, 1, 1], center = false);" in text

    def test_term(self, workdir):
        (workdir / "deep.scad").write_text(DEEP_SCRIPT)
        status, _ = run("deep.scad", "-o", "deep.term")
        assert status == 0
        text = (workdir / "deep.term").read_text()
        assert text.startswith("cube")
        assert text.endswith("\n")

    def test_recursion_limit_is_restored(self, workdir):
        (workdir / "deep.scad").write_text(DEEP_SCRIPT)
        limit = sys.getrecursionlimit()
        run("deep.scad", "-o", "deep.term")
        assert sys.getrecursionlimit() == limit
