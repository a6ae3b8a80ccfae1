"""
Message output for the batch tool.

All diagnostics go through :func:`print_message` so that a run can
redirect them, e.g. into an ``.echo`` export file. Without a handler the
messages are printed to ``sys.stderr``.
"""

import sys
from contextlib import contextmanager
from typing import Callable, Optional, TextIO

OutputHandler = Callable[[str], None]

_output_handler: Optional[OutputHandler] = None
_debug_enabled = False


def set_output_handler(handler: Optional[OutputHandler]) -> Optional[OutputHandler]:
    """Install ``handler`` and return the one it replaces."""
    global _output_handler
    previous = _output_handler
    _output_handler = handler
    return previous


def set_debug(enabled: bool) -> None:
    global _debug_enabled
    _debug_enabled = enabled


def print_message(msg: str) -> None:
    if _output_handler is not None:
        _output_handler(msg)
    else:
        print(msg, file=sys.stderr)


def print_warning(msg: str) -> None:
    print_message(f"WARNING: {msg}")


def print_deprecation(msg: str) -> None:
    print_message(f"DEPRECATED: {msg}")


def print_debug(msg: str) -> None:
    if _debug_enabled:
        print_message(f"DEBUG: {msg}")


@contextmanager
def capture_output(stream: TextIO):
    """Write every message to ``stream`` (one per line) for the duration of the block."""

    def _write(msg: str) -> None:
        stream.write(msg + "\n")

    previous = set_output_handler(_write)
    try:
        yield stream
    finally:
        set_output_handler(previous)
