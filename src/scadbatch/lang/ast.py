"""
Abstract Syntax Tree (AST) node definitions for the geometry script language.

The AST represents the structure of a parsed script; the runtime
instantiates it into a node tree.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Union, Any, Dict
from .tokens import SourceSpan, TokenType


# =============================================================================
# Base Classes
# =============================================================================

@dataclass
class AstNode:
    """Base class for all AST nodes."""
    span: SourceSpan  # Source location for error reporting


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass
class Expression(AstNode):
    """Base class for all expressions."""
    pass


@dataclass
class Literal(Expression):
    """A literal value: number, string, bool or undef (None)."""
    value: Union[float, str, bool, None]


@dataclass
class Identifier(Expression):
    """A variable reference."""
    name: str


@dataclass
class BinaryOp(Expression):
    """A binary operation (e.g., a + b, x && y)."""
    left: Expression
    operator: TokenType
    right: Expression


@dataclass
class UnaryOp(Expression):
    """A unary operation (e.g., !x, -n)."""
    operator: TokenType
    operand: Expression


@dataclass
class TernaryOp(Expression):
    """cond ? a : b"""
    condition: Expression
    true_branch: Expression
    false_branch: Expression


@dataclass
class Argument(AstNode):
    """A call argument; ``name`` is None for positional arguments."""
    name: Optional[str]
    value: Expression


@dataclass
class FunctionCall(Expression):
    """A function call (e.g., sin(30), max(a, b))."""
    name: str
    arguments: List[Argument] = field(default_factory=list)


@dataclass
class MemberAccess(Expression):
    """Member access (e.g., v.x)."""
    object: Expression
    member: str


@dataclass
class IndexAccess(Expression):
    """Index access (e.g., v[0])."""
    object: Expression
    index: Expression


@dataclass
class VectorLiteral(Expression):
    """A vector literal (e.g., [1, 2, 3])."""
    elements: List[Expression]


@dataclass
class RangeLiteral(Expression):
    """A range [begin : end] or [begin : step : end]."""
    begin: Expression
    end: Expression
    step: Optional[Expression] = None


@dataclass
class ListComprehension(Expression):
    """[for (i = range, j = ...) if (cond) element]"""
    assignments: List[Argument]
    element: Expression
    condition: Optional[Expression] = None


# =============================================================================
# Statement Nodes
# =============================================================================

@dataclass
class Statement(AstNode):
    """Base class for all statements."""
    pass


@dataclass
class Assignment(Statement):
    """name = expr;"""
    name: str
    value: Expression


@dataclass
class ModuleInstantiation(Statement):
    """name(args) child / { children }"""
    name: str
    arguments: List[Argument] = field(default_factory=list)
    children: List[Statement] = field(default_factory=list)
    is_root: bool = False           # ! modifier
    is_highlight: bool = False      # # modifier
    is_background: bool = False     # % modifier


@dataclass
class IfStatement(ModuleInstantiation):
    """if (cond) children else else_children"""
    condition: Optional[Expression] = None
    else_children: List[Statement] = field(default_factory=list)


@dataclass
class Parameter(AstNode):
    """A module or function parameter."""
    name: str
    default: Optional[Expression] = None


@dataclass
class ModuleDefinition(Statement):
    """module name(params) { body }"""
    name: str
    parameters: List[Parameter]
    body: List[Statement]


@dataclass
class FunctionDefinition(Statement):
    """function name(params) = expr;"""
    name: str
    parameters: List[Parameter]
    expression: Expression


@dataclass
class UseStatement(Statement):
    """use <file>"""
    path: str


# =============================================================================
# Module (File) Node
# =============================================================================

@dataclass
class Module(AstNode):
    """
    A parsed script file.

    ``statements`` keeps document order; included files are already spliced in.
    ``libraries`` is filled by dependency handling with the parsed ``use`` files.
    """
    statements: List[Statement] = field(default_factory=list)
    filename: Optional[str] = None
    document_path: Optional[str] = None
    libraries: Dict[str, "Module"] = field(default_factory=dict)

    @property
    def uses(self) -> List[UseStatement]:
        return [s for s in self.statements if isinstance(s, UseStatement)]

    @property
    def assignments(self) -> List[Assignment]:
        return [s for s in self.statements if isinstance(s, Assignment)]

    @property
    def instantiations(self) -> List[ModuleInstantiation]:
        return [s for s in self.statements if isinstance(s, ModuleInstantiation)]

    @property
    def modules(self) -> Dict[str, ModuleDefinition]:
        return collect_modules(self.statements)

    @property
    def functions(self) -> Dict[str, FunctionDefinition]:
        return collect_functions(self.statements)


def collect_modules(statements: List[Statement]) -> Dict[str, ModuleDefinition]:
    """Module definitions in ``statements``; a later definition replaces an earlier one."""
    return {s.name: s for s in statements if isinstance(s, ModuleDefinition)}


def collect_functions(statements: List[Statement]) -> Dict[str, FunctionDefinition]:
    return {s.name: s for s in statements if isinstance(s, FunctionDefinition)}
