"""Writing the requested output file."""

from __future__ import annotations

from typing import Callable, Dict, Optional

from ..camera import Camera
from ..errors import FileIOError
from ..geometry import normalize, products
from ..io import (
    write_amf, write_dxf, write_geometry_png, write_off, write_preview_png, write_stl, write_svg,
)
from ..lang import dump_module
from ..lang.ast import Module
from ..nodes import NodeTree
from ..printutils import print_debug
from ..settings import RenderSettings
from .dispatcher import EvaluationResult
from .formats import OutputFormat, OutputRequest, RenderMode
from .workdir import WorkingDirectoryGuard

NO_TERM = "No top-level CSG object"


class Exporter:
    """
    Maps an output format to its writer.

    Text dumps are produced while the document directory is still active;
    the guard is restored before the destination is opened, so the output
    path is relative to the invoker.
    """

    def __init__(self, guard: WorkingDirectoryGuard, settings: Optional[RenderSettings] = None,
                 camera: Optional[Camera] = None, mode: RenderMode = RenderMode.PREVIEW):
        self.guard = guard
        self.settings = settings or RenderSettings()
        self.camera = camera or Camera()
        self.mode = mode
        self._writers: Dict[OutputFormat, Callable] = {
            OutputFormat.STL: lambda r, f: write_stl(r.geometry, f),
            OutputFormat.OFF: lambda r, f: write_off(r.geometry, f),
            OutputFormat.AMF: lambda r, f: write_amf(r.geometry, f),
            OutputFormat.DXF: lambda r, f: write_dxf(r.geometry, f),
            OutputFormat.SVG: lambda r, f: write_svg(r.geometry, f),
            OutputFormat.PNG: self._write_png,
        }

    def text_dump(self, request: OutputRequest, result: EvaluationResult,
                  tree: NodeTree, module: Module, echo: str = '') -> Optional[str]:
        """Content of the text dump formats, None for writer-backed formats."""
        fmt = request.format
        if fmt == OutputFormat.CSG:
            return tree.get_string(tree.root_index) + "\n"
        if fmt == OutputFormat.AST:
            return dump_module(module)
        if fmt == OutputFormat.TERM:
            return (result.term.dump() if result.term is not None else NO_TERM) + "\n"
        if fmt == OutputFormat.ECHO:
            return echo
        return None

    def export(self, request: OutputRequest, result: EvaluationResult,
               content: Optional[str] = None) -> None:
        """Write ``content`` (a text dump) or the evaluated result to ``request.path``."""
        self.guard.restore()
        binary = request.format.is_binary
        try:
            stream = (open(request.path, 'wb') if binary
                      else open(request.path, 'w', encoding='utf-8', newline='\n'))
        except OSError as e:
            raise FileIOError(f"Can't open file \"{request.path}\" for export: {e.strerror}",
                              request.path) from e
        print_debug(f"exporting {request.format.suffix} to {request.path}")
        with stream:
            if content is not None:
                stream.write(content)
            else:
                self._writers[request.format](result, stream)

    def _write_png(self, result: EvaluationResult, stream) -> None:
        camera = self.camera
        camera.pixel_size = (self.settings.img_width, self.settings.img_height)
        if self.mode == RenderMode.FULL:
            write_geometry_png(result.geometry, camera, stream)
            return
        normalized = normalize(result.term, self.settings.csg_term_limit)
        write_preview_png(products(normalized), result.highlights, result.backgrounds,
                          camera, stream,
                          thrown_together=self.mode == RenderMode.THROWNTOGETHER)
