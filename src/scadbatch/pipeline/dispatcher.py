"""
Choosing and running the evaluation an output needs.

The evaluation is decided from the output format before anything is
evaluated. Full geometry evaluation, the expensive path, runs at most once
per dispatcher; preview and dump formats never trigger it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..errors import DimensionMismatchError, EmptyGeometryError
from ..geometry import BooleanEngine, CSGTerm, CSGTermEvaluator, Geometry, GeometryEvaluator
from ..nodes import NodeTree
from ..printutils import print_debug
from ..settings import DEFAULT_BOOLEAN_ENGINE
from .formats import Evaluation, OutputRequest, RenderMode, evaluation_for


@dataclass
class EvaluationResult:
    evaluation: Evaluation
    geometry: Optional[Geometry] = None
    term: Optional[CSGTerm] = None
    highlights: List[CSGTerm] = field(default_factory=list)
    backgrounds: List[CSGTerm] = field(default_factory=list)


def check_dimension(geometry: Geometry, expected: int) -> None:
    if geometry.dimension != expected:
        raise DimensionMismatchError(geometry.dimension, expected)


class EvaluationDispatcher:
    """
    Runs the evaluation for one output request.

    ``full_evaluations`` and ``term_evaluations`` count how often each
    evaluator actually ran.
    """

    def __init__(self, tree: NodeTree, backend: Optional[str] = DEFAULT_BOOLEAN_ENGINE):
        self.tree = tree
        self.backend = backend
        self.full_evaluations = 0
        self.term_evaluations = 0
        self._geometry_evaluator: Optional[GeometryEvaluator] = None
        self._full_result: Optional[Tuple[Optional[Geometry]]] = None
        self._term_result: Optional[Tuple[Optional[CSGTerm], List[CSGTerm], List[CSGTerm]]] = None

    @property
    def root_index(self) -> int:
        if self.tree.root_index is None:
            return self.tree.resolve_root()
        return self.tree.root_index

    @property
    def geometry_evaluator(self) -> GeometryEvaluator:
        if self._geometry_evaluator is None:
            self._geometry_evaluator = GeometryEvaluator(self.tree, BooleanEngine(self.backend))
        return self._geometry_evaluator

    def evaluate_full(self) -> Geometry:
        """Geometry of the root; raises EmptyGeometryError if there is none."""
        if self._full_result is None:
            self.full_evaluations += 1
            print_debug("full geometry evaluation")
            self._full_result = (self.geometry_evaluator.evaluate_geometry(self.root_index),)
        geometry = self._full_result[0]
        if geometry is None or geometry.is_empty():
            raise EmptyGeometryError("No top-level object found.")
        return geometry

    def evaluate_term(self) -> Tuple[Optional[CSGTerm], List[CSGTerm], List[CSGTerm]]:
        """Root term plus the highlight and background terms."""
        if self._term_result is None:
            self.term_evaluations += 1
            print_debug("CSG term evaluation")
            # leaf geometry is only built if a renderer asks for it
            evaluator = CSGTermEvaluator(self.tree, self.geometry_evaluator)
            term = evaluator.evaluate_csg_term(self.root_index)
            self._term_result = (term, evaluator.highlights, evaluator.backgrounds)
        return self._term_result

    def dispatch(self, request: OutputRequest,
                 mode: RenderMode = RenderMode.PREVIEW) -> EvaluationResult:
        evaluation = evaluation_for(request.format, mode)
        result = EvaluationResult(evaluation)
        if evaluation == Evaluation.FULL:
            result.geometry = self.evaluate_full()
            if request.format.dimension is not None:
                check_dimension(result.geometry, request.format.dimension)
        elif evaluation == Evaluation.TERM:
            result.term, result.highlights, result.backgrounds = self.evaluate_term()
        return result
