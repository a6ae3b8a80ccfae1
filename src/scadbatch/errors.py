"""
Pipeline error taxonomy.

Every error raised by the batch pipeline is terminal for the run: nothing
in the pipeline retries or recovers locally. The command line driver maps
any ``PipelineError`` to exit status 1.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for errors that abort a batch run."""

    exit_status = 1


class FileIOError(PipelineError):
    """A file could not be opened, read or written."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class ParseError(PipelineError):
    """The script could not be parsed."""

    def __init__(self, message: str, diagnostic=None):
        self.diagnostic = diagnostic
        super().__init__(message)


class UnsupportedFormatError(PipelineError):
    """Unknown output suffix, or a dependency file requested for a format without one."""


class EmptyGeometryError(PipelineError):
    """Full evaluation produced no usable top-level object."""


class DimensionMismatchError(PipelineError):
    """The evaluated geometry does not have the dimension the exporter needs."""

    def __init__(self, actual: int, expected: int):
        self.actual = actual
        self.expected = expected
        super().__init__(
            f"Current top level object is not a {expected}D object "
            f"(evaluated geometry is {actual}D)."
        )


class PathError(PipelineError):
    """A working directory could not be entered."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)
