"""
Tests for the pipeline stages: formats, working directory, loading,
dependencies and evaluation dispatch.
"""

import io
import os
import sys

import pytest

from scadbatch.errors import (
    DimensionMismatchError, EmptyGeometryError, FileIOError, ParseError, PathError,
    PipelineError, UnsupportedFormatError,
)
from scadbatch.geometry import PolySet, Polygon2d
from scadbatch.pipeline import (
    DependencySet, DependencyWriter, Evaluation, EvaluationDispatcher, FormatFamily,
    OutputFormat, OutputRequest, RenderMode, ScriptLoader, TreeBuilder, WorkingDirectoryGuard,
    check_dimension, evaluation_for, format_definitions, format_for_path, format_rule,
)
from scadbatch.printutils import capture_output
from scadbatch.settings import RenderSettings


def build(source, tmp_path):
    guard = WorkingDirectoryGuard()
    deps = DependencySet()
    with capture_output(io.StringIO()), guard:
        result = TreeBuilder(guard, deps).build(source, str(tmp_path), "main.scad")
    return result


class TestFormats:

    @pytest.mark.parametrize("suffix,fmt", [
        ("stl", OutputFormat.STL), ("off", OutputFormat.OFF), ("amf", OutputFormat.AMF),
        ("dxf", OutputFormat.DXF), ("svg", OutputFormat.SVG), ("csg", OutputFormat.CSG),
        ("ast", OutputFormat.AST), ("term", OutputFormat.TERM), ("echo", OutputFormat.ECHO),
        ("png", OutputFormat.PNG),
    ])
    def test_suffixes(self, suffix, fmt):
        assert format_for_path(f"out/model.{suffix}") == fmt

    def test_suffix_is_case_insensitive(self):
        assert format_for_path("MODEL.STL") == OutputFormat.STL

    def test_unknown_suffix(self):
        with pytest.raises(UnsupportedFormatError, match="Unknown suffix for output file"):
            format_for_path("model.obj")

    def test_no_suffix(self):
        with pytest.raises(UnsupportedFormatError):
            format_for_path("model")

    def test_dimensions(self):
        assert OutputFormat.STL.dimension == 3
        assert OutputFormat.SVG.dimension == 2
        assert OutputFormat.PNG.dimension is None
        assert OutputFormat.CSG.dimension is None

    def test_families(self):
        assert OutputFormat.AMF.family == FormatFamily.SOLID
        assert OutputFormat.DXF.family == FormatFamily.DRAWING
        assert OutputFormat.PNG.family == FormatFamily.IMAGE

    def test_evaluation_table(self):
        assert evaluation_for(OutputFormat.STL) == Evaluation.FULL
        assert evaluation_for(OutputFormat.DXF) == Evaluation.FULL
        assert evaluation_for(OutputFormat.CSG) == Evaluation.TERM
        assert evaluation_for(OutputFormat.TERM) == Evaluation.TERM
        assert evaluation_for(OutputFormat.AST) == Evaluation.NONE
        assert evaluation_for(OutputFormat.ECHO) == Evaluation.NONE
        assert evaluation_for(OutputFormat.PNG) == Evaluation.TERM
        assert evaluation_for(OutputFormat.PNG, RenderMode.THROWNTOGETHER) == Evaluation.TERM
        assert evaluation_for(OutputFormat.PNG, RenderMode.FULL) == Evaluation.FULL

    def test_request(self):
        request = OutputRequest.from_path("a/b.svg")
        assert request.path == "a/b.svg"
        assert request.format == OutputFormat.SVG


class TestWorkingDirectoryGuard:

    def test_enter_and_restore(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        sub = tmp_path / "sub"
        sub.mkdir()
        guard = WorkingDirectoryGuard()
        guard.enter(str(sub))
        assert os.getcwd() == str(sub.resolve())
        assert guard.active
        guard.restore()
        assert os.getcwd() == str(tmp_path.resolve())
        assert not guard.active

    def test_empty_path_is_noop(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        guard = WorkingDirectoryGuard()
        guard.enter("")
        assert not guard.active
        assert os.getcwd() == str(tmp_path.resolve())

    def test_context_manager_restores_on_error(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        sub = tmp_path / "sub"
        sub.mkdir()
        with pytest.raises(RuntimeError):
            with WorkingDirectoryGuard() as guard:
                guard.enter(str(sub))
                raise RuntimeError("boom")
        assert os.getcwd() == str(tmp_path.resolve())

    def test_missing_directory(self, tmp_path):
        with pytest.raises(PathError, match="Can't change directory"):
            WorkingDirectoryGuard().enter(str(tmp_path / "nope"))


class TestLoader:

    def test_load_appends_definitions(self, tmp_path):
        path = tmp_path / "part.scad"
        path.write_text("cube(size);")
        deps = DependencySet()
        source, document_dir = ScriptLoader(deps).load(
            str(path), format_definitions(["size=3", "flag=true"]))
        assert source == "cube(size);\nsize=3;\nflag=true;\n"
        assert document_dir == str(tmp_path)
        assert str(path) in deps

    def test_missing_file_is_registered_first(self, tmp_path):
        deps = DependencySet()
        path = tmp_path / "missing.scad"
        with pytest.raises(FileIOError, match="Can't open input file") as info:
            ScriptLoader(deps).load(str(path))
        assert info.value.path == str(path)
        assert list(deps) == [str(path)]

    def test_format_definitions_empty(self):
        assert format_definitions([]) == ""


class TestDependencies:

    def test_registration_is_idempotent(self, tmp_path):
        deps = DependencySet()
        deps.add(str(tmp_path / "a.scad"))
        deps.add(str(tmp_path / "a.scad"))
        assert len(deps) == 1

    def test_rule_format(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        deps = DependencySet()
        deps.add(str(tmp_path / "lib" / "b.scad"))
        deps.add(str(tmp_path / "a.scad"))
        assert format_rule("out.stl", deps) == "out.stl: \\\n\ta.scad \\\n\tlib/b.scad\n"

    def test_spaces_are_escaped(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        deps = DependencySet()
        deps.add(str(tmp_path / "my part.scad"))
        assert format_rule("my out.stl", deps) == "my\\ out.stl: \\\n\tmy\\ part.scad\n"

    def test_writer(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        deps = DependencySet()
        deps.add("part.scad")
        DependencyWriter().write("out.d", "out.stl", deps)
        assert (tmp_path / "out.d").read_bytes() == b"out.stl: \\\n\tpart.scad\n"

    @pytest.mark.parametrize("output", ["out.csg", "out.ast", "out.term", "out.echo"])
    def test_writer_refuses_dump_formats(self, output):
        with pytest.raises(UnsupportedFormatError, match="Sorry, don't know how to write deps"):
            DependencyWriter.check(output)

    @pytest.mark.parametrize("output", ["out.stl", "out.off", "out.amf", "out.dxf",
                                        "out.svg", "out.png"])
    def test_writer_accepts_geometry_formats(self, output):
        DependencyWriter.check(output)

    def test_unwritable_deps_file(self, tmp_path):
        with pytest.raises(FileIOError):
            DependencyWriter().write(str(tmp_path / "nope" / "out.d"), "out.stl",
                                     DependencySet())

    def test_make_command_runs_for_missing_file(self, tmp_path):
        target = tmp_path / "generated.scad"
        command = f'"{sys.executable}" -c "import sys; open(sys.argv[1], \'w\').close()"'
        deps = DependencySet(make_command=command)
        deps.add(str(target))
        assert target.exists()

    def test_make_command_not_found_warns(self, tmp_path):
        deps = DependencySet(make_command="scadbatch-no-such-make-command")
        out = io.StringIO()
        with capture_output(out):
            deps.add(str(tmp_path / "missing.scad"))
        assert "not found" in out.getvalue()

    def test_make_command_skipped_for_existing_file(self, tmp_path):
        existing = tmp_path / "here.scad"
        existing.write_text("")
        deps = DependencySet(make_command="scadbatch-no-such-make-command")
        out = io.StringIO()
        with capture_output(out):
            deps.add(str(existing))
        assert out.getvalue() == ""


class TestTreeBuilder:

    def test_build_result(self, tmp_path):
        result = build("cube(1); sphere(1);", tmp_path)
        assert result.root.index == result.tree.top_index
        assert [n.name for n in result.tree.children(result.root.index)] == ["cube", "sphere"]

    def test_explicit_root(self, tmp_path):
        result = build("cube(1); !sphere(1);", tmp_path)
        assert result.root.name == "sphere"

    def test_parse_error(self, tmp_path):
        with pytest.raises(ParseError, match="Can't parse file 'main.scad'!"):
            build("cube(1", tmp_path)

    def test_directory_is_restored_by_guard(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        doc = tmp_path / "doc"
        doc.mkdir()
        build("cube(1);", doc)
        assert os.getcwd() == str(tmp_path.resolve())

    def test_use_and_import_are_dependencies(self, tmp_path):
        (tmp_path / "lib.scad").write_text("module peg() { cube(1); }\n")
        guard = WorkingDirectoryGuard()
        deps = DependencySet()
        with capture_output(io.StringIO()), guard:
            TreeBuilder(guard, deps).build('use <lib.scad>\npeg();\nimport("part.stl");',
                                           str(tmp_path), "main.scad")
        assert str(tmp_path / "lib.scad") in deps
        assert str(tmp_path / "part.stl") in deps


class TestDispatcher:

    def test_full_evaluation_runs_once(self, tmp_path):
        result = build("cube(1);", tmp_path)
        dispatcher = EvaluationDispatcher(result.tree)
        with capture_output(io.StringIO()):
            first = dispatcher.dispatch(OutputRequest.from_path("a.stl"))
            second = dispatcher.dispatch(OutputRequest.from_path("b.off"))
        assert dispatcher.full_evaluations == 1
        assert dispatcher.term_evaluations == 0
        assert first.geometry is second.geometry

    @pytest.mark.parametrize("output", ["a.csg", "a.term", "a.png"])
    def test_preview_formats_use_terms(self, tmp_path, output):
        result = build("difference() { cube(2); sphere(1); }", tmp_path)
        dispatcher = EvaluationDispatcher(result.tree)
        evaluation = dispatcher.dispatch(OutputRequest.from_path(output))
        assert evaluation.evaluation == Evaluation.TERM
        assert evaluation.term.dump() == "(cube2 - sphere3)"
        assert dispatcher.full_evaluations == 0
        assert dispatcher.term_evaluations == 1

    @pytest.mark.parametrize("output", ["a.ast", "a.echo"])
    def test_dump_formats_evaluate_nothing(self, tmp_path, output):
        result = build("cube(1);", tmp_path)
        dispatcher = EvaluationDispatcher(result.tree)
        evaluation = dispatcher.dispatch(OutputRequest.from_path(output))
        assert evaluation.evaluation == Evaluation.NONE
        assert dispatcher.full_evaluations == 0
        assert dispatcher.term_evaluations == 0

    def test_render_mode_png_is_full(self, tmp_path):
        result = build("cube(1);", tmp_path)
        dispatcher = EvaluationDispatcher(result.tree)
        with capture_output(io.StringIO()):
            evaluation = dispatcher.dispatch(OutputRequest.from_path("a.png"), RenderMode.FULL)
        assert isinstance(evaluation.geometry, PolySet)
        assert dispatcher.full_evaluations == 1

    def test_empty_geometry(self, tmp_path):
        result = build("", tmp_path)
        dispatcher = EvaluationDispatcher(result.tree)
        with capture_output(io.StringIO()):
            with pytest.raises(EmptyGeometryError, match="No top-level object found."):
                dispatcher.dispatch(OutputRequest.from_path("a.stl"))
            with pytest.raises(EmptyGeometryError):
                dispatcher.evaluate_full()
        assert dispatcher.full_evaluations == 1

    def test_dimension_mismatch(self, tmp_path):
        result = build("square(1);", tmp_path)
        dispatcher = EvaluationDispatcher(result.tree)
        with capture_output(io.StringIO()):
            with pytest.raises(DimensionMismatchError) as info:
                dispatcher.dispatch(OutputRequest.from_path("a.stl"))
        assert info.value.actual == 2
        assert info.value.expected == 3
        assert "not a 3D object" in str(info.value)

    def test_check_dimension(self):
        check_dimension(Polygon2d.from_polygons([]), 2)
        with pytest.raises(DimensionMismatchError):
            check_dimension(PolySet(), 2)


class TestErrors:

    def test_all_errors_exit_with_one(self):
        for error in (FileIOError("x"), ParseError("x"), UnsupportedFormatError("x"),
                      EmptyGeometryError("x"), DimensionMismatchError(2, 3), PathError("x")):
            assert isinstance(error, PipelineError)
            assert error.exit_status == 1


class TestSettings:

    def test_from_env(self):
        settings = RenderSettings.from_env({
            "SCADBATCH_PATH": os.pathsep.join(["/a", "", "/b"]),
            "SCADBATCH_BOOLEAN_ENGINE": "blender",
        })
        assert settings.library_path == ["/a", "/b"]
        assert settings.boolean_engine == "blender"

    def test_defaults(self):
        settings = RenderSettings.from_env({})
        assert settings.library_path == []
        assert settings.boolean_engine == "manifold"
        assert (settings.img_width, settings.img_height) == (512, 512)
