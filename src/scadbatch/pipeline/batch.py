"""
The batch run: load, build, evaluate, write dependencies, export.

    result = run_batch(BatchOptions(input_file='part.scad', output_file='part.stl'))

Every stage either completes or raises a :class:`PipelineError`; the run
never continues past a failed stage.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import List, Optional

from ..camera import Camera
from ..errors import PipelineError
from ..printutils import capture_output, print_message
from ..runtime import recursion_limit
from ..settings import RenderSettings
from .builder import BuildResult, TreeBuilder
from .deps import DependencySet, DependencyWriter
from .dispatcher import EvaluationDispatcher, EvaluationResult
from .exporter import Exporter
from .formats import OutputFormat, OutputRequest, RenderMode
from .loader import ScriptLoader, format_definitions
from .workdir import WorkingDirectoryGuard


@dataclass
class BatchOptions:
    input_file: str
    output_file: str
    deps_file: Optional[str] = None
    definitions: List[str] = field(default_factory=list)
    mode: RenderMode = RenderMode.PREVIEW
    camera: Optional[Camera] = None
    settings: RenderSettings = field(default_factory=RenderSettings.from_env)


@dataclass
class BatchResult:
    request: OutputRequest
    build: BuildResult
    evaluation: EvaluationResult
    dispatcher: EvaluationDispatcher
    dependencies: DependencySet


def run_batch(options: BatchOptions) -> BatchResult:
    """Run one script to one output file."""
    request = OutputRequest.from_path(options.output_file)
    if options.deps_file:
        DependencyWriter.check(options.output_file)

    settings = options.settings
    dependencies = DependencySet(settings.make_command)
    echo = io.StringIO()

    with WorkingDirectoryGuard() as guard, recursion_limit():
        if request.format == OutputFormat.ECHO:
            with capture_output(echo):
                build, dispatcher, evaluation = _evaluate(options, request, guard, dependencies)
        else:
            build, dispatcher, evaluation = _evaluate(options, request, guard, dependencies)

        exporter = Exporter(guard, settings, options.camera, options.mode)
        # dumps are produced while the document directory is active
        content = exporter.text_dump(request, evaluation, build.tree, build.module,
                                     echo.getvalue())
        guard.restore()
        if options.deps_file:
            DependencyWriter().write(options.deps_file, options.output_file, dependencies)
        exporter.export(request, evaluation, content)

    return BatchResult(request, build, evaluation, dispatcher, dependencies)


def _evaluate(options: BatchOptions, request: OutputRequest, guard: WorkingDirectoryGuard,
              dependencies: DependencySet):
    settings = options.settings
    loader = ScriptLoader(dependencies)
    source, document_dir = loader.load(options.input_file, format_definitions(options.definitions))

    builder = TreeBuilder(guard, dependencies, settings.library_path)
    build = builder.build(source, document_dir, options.input_file)

    dispatcher = EvaluationDispatcher(build.tree, settings.boolean_engine)
    evaluation = dispatcher.dispatch(request, options.mode)
    return build, dispatcher, evaluation


def cmdline(options: BatchOptions) -> int:
    """Run the batch and map failures to an exit status."""
    try:
        run_batch(options)
    except PipelineError as e:
        print_message(f"ERROR: {e}")
        return e.exit_status
    return 0
