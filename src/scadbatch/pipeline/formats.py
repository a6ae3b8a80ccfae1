"""
Output formats, selected once from the destination suffix.

Every recognized suffix maps to exactly one :class:`OutputFormat`; any other
suffix is an :class:`UnsupportedFormatError`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from ..errors import UnsupportedFormatError


class FormatFamily(Enum):
    SOLID = "solid"
    DRAWING = "drawing"
    CSG = "csg"
    TERM = "term"
    AST = "ast"
    ECHO = "echo"
    IMAGE = "image"


class OutputFormat(Enum):
    STL = ("stl", FormatFamily.SOLID)
    OFF = ("off", FormatFamily.SOLID)
    AMF = ("amf", FormatFamily.SOLID)
    DXF = ("dxf", FormatFamily.DRAWING)
    SVG = ("svg", FormatFamily.DRAWING)
    CSG = ("csg", FormatFamily.CSG)
    AST = ("ast", FormatFamily.AST)
    TERM = ("term", FormatFamily.TERM)
    ECHO = ("echo", FormatFamily.ECHO)
    PNG = ("png", FormatFamily.IMAGE)

    def __init__(self, suffix: str, family: FormatFamily):
        self.suffix = suffix
        self.family = family

    @property
    def dimension(self) -> Optional[int]:
        """Geometry dimension the writer requires, if it writes geometry."""
        if self.family == FormatFamily.SOLID:
            return 3
        if self.family == FormatFamily.DRAWING:
            return 2
        return None

    @property
    def supports_deps(self) -> bool:
        """Only geometry producing formats get a build rule."""
        return self.family in (FormatFamily.SOLID, FormatFamily.DRAWING, FormatFamily.IMAGE)

    @property
    def is_binary(self) -> bool:
        return self == OutputFormat.PNG


SUFFIXES: Dict[str, OutputFormat] = {fmt.suffix: fmt for fmt in OutputFormat}


def format_for_path(path: str) -> OutputFormat:
    """Case-insensitive lookup of the format for ``path``'s suffix."""
    suffix = os.path.splitext(path)[1].lower().lstrip('.')
    try:
        return SUFFIXES[suffix]
    except KeyError:
        raise UnsupportedFormatError(
            f"Unknown suffix for output file {path}"
        ) from None


class RenderMode(Enum):
    FULL = "render"
    PREVIEW = "preview"
    THROWNTOGETHER = "throwntogether"


class Evaluation(Enum):
    NONE = "none"
    TERM = "term"
    FULL = "full"


@dataclass(frozen=True)
class OutputRequest:
    path: str
    format: OutputFormat

    @classmethod
    def from_path(cls, path: str) -> "OutputRequest":
        return cls(path, format_for_path(path))


def evaluation_for(fmt: OutputFormat, mode: RenderMode = RenderMode.PREVIEW) -> Evaluation:
    """The evaluation a format needs, decided before anything is evaluated."""
    if fmt.family in (FormatFamily.SOLID, FormatFamily.DRAWING):
        return Evaluation.FULL
    if fmt.family in (FormatFamily.CSG, FormatFamily.TERM):
        return Evaluation.TERM
    if fmt.family == FormatFamily.IMAGE:
        return Evaluation.FULL if mode == RenderMode.FULL else Evaluation.TERM
    return Evaluation.NONE
