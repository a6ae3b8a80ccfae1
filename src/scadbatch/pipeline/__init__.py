"""The batch pipeline: load, build, evaluate, export, write dependencies."""

from .workdir import WorkingDirectoryGuard
from .formats import (
    Evaluation, FormatFamily, OutputFormat, OutputRequest, RenderMode,
    evaluation_for, format_for_path,
)
from .deps import DependencySet, DependencyWriter, format_rule
from .loader import ScriptLoader, format_definitions
from .builder import BuildResult, TreeBuilder
from .dispatcher import EvaluationDispatcher, EvaluationResult, check_dimension
from .exporter import Exporter
from .batch import BatchOptions, BatchResult, cmdline, run_batch

__all__ = [
    'WorkingDirectoryGuard',
    'Evaluation', 'FormatFamily', 'OutputFormat', 'OutputRequest', 'RenderMode',
    'evaluation_for', 'format_for_path',
    'DependencySet', 'DependencyWriter', 'format_rule',
    'ScriptLoader', 'format_definitions',
    'BuildResult', 'TreeBuilder',
    'EvaluationDispatcher', 'EvaluationResult', 'check_dimension',
    'Exporter',
    'BatchOptions', 'BatchResult', 'cmdline', 'run_batch',
]
