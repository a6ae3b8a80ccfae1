"""
Tree-walking interpreter that instantiates a parsed script into a node tree.

Expressions evaluate to plain Python values (see :mod:`values`); module
instantiations add nodes to a :class:`~scadbatch.nodes.NodeTree`.
Problems in the script (unknown names, bad arguments, runaway recursion)
are reported as warnings and never abort the run.
"""

import math
import sys
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from ..lang.ast import (
    Module, Statement, Assignment, ModuleInstantiation, IfStatement,
    ModuleDefinition, FunctionDefinition, Parameter,
    Expression, Literal, Identifier, BinaryOp, UnaryOp, TernaryOp,
    Argument, FunctionCall, MemberAccess, IndexAccess,
    VectorLiteral, RangeLiteral, ListComprehension,
    collect_functions, collect_modules,
)
from ..lang.tokens import TokenType
from ..nodes import NodeTree, GroupNode
from ..printutils import print_warning, print_debug
from .builtins import get_builtin_registry
from .context import Context
from .modules import BUILTIN_MODULES, DEFERRED_ARGUMENTS, ModuleCall, iterate_values
from . import values as V

# Nested user function/module calls deeper than this are refused
MAX_RECURSION_DEPTH = 400

# Python stack needed to instantiate, evaluate or dump a tree that deep
STACK_LIMIT = 25 * MAX_RECURSION_DEPTH

_BINARY_OPS: Dict[TokenType, Callable[[Any, Any], Any]] = {
    TokenType.PLUS: V.add,
    TokenType.MINUS: V.subtract,
    TokenType.STAR: V.multiply,
    TokenType.SLASH: V.divide,
    TokenType.PERCENT: V.modulo,
    TokenType.LT: V.less,
    TokenType.LE: V.less_equal,
    TokenType.GT: V.greater,
    TokenType.GE: V.greater_equal,
    TokenType.EQ: V.equals,
    TokenType.NE: lambda a, b: not V.equals(a, b),
}

_MEMBERS = {'x': 0, 'y': 1, 'z': 2}


def create_top_context(document_path: Optional[str] = None) -> Context:
    """Context holding the predefined variables every script sees."""
    ctx = Context(document_path=document_path, name="top")
    ctx.set_variable('$fn', 0.0)
    ctx.set_variable('$fa', 12.0)
    ctx.set_variable('$fs', 2.0)
    ctx.set_variable('$t', 0.0)
    ctx.set_variable('PI', math.pi)
    return ctx


@contextmanager
def recursion_limit(limit: int = STACK_LIMIT):
    """Raise the interpreter recursion limit to at least ``limit`` for a block."""
    previous = sys.getrecursionlimit()
    sys.setrecursionlimit(max(previous, limit))
    try:
        yield
    finally:
        sys.setrecursionlimit(previous)


class Interpreter:
    """
    Instantiates modules into a node tree.

    Usage:
        tree = NodeTree()
        top = Interpreter(tree).instantiate_file(module)
    """

    def __init__(self, tree: NodeTree,
                 on_dependency: Optional[Callable[[str], None]] = None):
        self.tree = tree
        self.on_dependency = on_dependency
        self.registry = get_builtin_registry()
        self._depth = 0

    def register_dependency(self, path: str) -> None:
        if self.on_dependency is not None:
            self.on_dependency(path)

    # =========================================================================
    # Files and blocks
    # =========================================================================

    def instantiate_file(self, module: Module, top_ctx: Optional[Context] = None) -> int:
        """
        Instantiate ``module`` under a synthetic top-level group.

        Returns the index of that group, which is also stored as
        ``tree.top_index``.
        """
        if top_ctx is None:
            top_ctx = create_top_context(module.document_path)
        file_ctx = Context(parent=top_ctx, document_path=module.document_path,
                           name=module.filename or "file")
        file_ctx.libraries = self._library_contexts(module, top_ctx, set())

        top = GroupNode()
        index = self.tree.add(top)
        self.tree.top_index = index
        with recursion_limit():
            top.children = self.instantiate_block(module.statements, file_ctx)
        print_debug(f"instantiated {len(self.tree)} nodes")
        return index

    def _library_contexts(self, module: Module, top_ctx: Context, seen: set) -> List[Context]:
        """Contexts for the modules and functions of used libraries."""
        contexts = []
        for path, library in module.libraries.items():
            if path in seen:
                continue
            seen.add(path)
            lib_ctx = Context(parent=top_ctx, document_path=library.document_path, name=path)
            lib_ctx.libraries = self._library_contexts(library, top_ctx, seen)
            self.define_block(library.statements, lib_ctx)
            contexts.append(lib_ctx)
        return contexts

    def define_block(self, statements: List[Statement], ctx: Context) -> None:
        """
        Register the definitions and evaluate the assignments of a block.

        When a name is assigned more than once, the last value is used but
        it is evaluated at the position of the first assignment.
        """
        ctx.functions.update(collect_functions(statements))
        ctx.modules.update(collect_modules(statements))
        assignments: Dict[str, Expression] = {}
        for stmt in statements:
            if isinstance(stmt, Assignment):
                assignments[stmt.name] = stmt.value
        for name, expr in assignments.items():
            ctx.set_variable(name, self.evaluate(expr, ctx))

    def instantiate_block(self, statements: List[Statement], ctx: Context) -> List[int]:
        """Instantiate every module instantiation of a block, in order."""
        self.define_block(statements, ctx)
        indices = []
        for stmt in statements:
            if isinstance(stmt, ModuleInstantiation):
                index = self.instantiate(stmt, ctx)
                if index is not None:
                    indices.append(index)
        return indices

    # =========================================================================
    # Module instantiation
    # =========================================================================

    def instantiate(self, inst: ModuleInstantiation, ctx: Context) -> Optional[int]:
        """Instantiate one module; returns the new node's index or None."""
        if isinstance(inst, IfStatement):
            index = self._instantiate_if(inst, ctx)
        else:
            definition, def_ctx = ctx.lookup_module(inst.name)
            if definition is not None:
                index = self._call_user_module(definition, def_ctx, inst, ctx)
            elif inst.name in BUILTIN_MODULES:
                index = self._call_builtin_module(inst, ctx)
            else:
                print_warning(f"Ignoring unknown module '{inst.name}'.")
                return None

        if index is not None:
            node = self.tree.get(index)
            node.is_root = node.is_root or inst.is_root
            node.is_highlight = node.is_highlight or inst.is_highlight
            node.is_background = node.is_background or inst.is_background
        return index

    def _instantiate_if(self, inst: IfStatement, ctx: Context) -> int:
        node = GroupNode()
        index = self.tree.add(node)
        branch = inst.children if V.to_bool(self.evaluate(inst.condition, ctx)) else inst.else_children
        node.children = self.instantiate_block(branch, Context(parent=ctx, name="if"))
        return index

    def evaluate_arguments(self, arguments: List[Argument], ctx: Context) -> List[tuple]:
        return [(arg.name, self.evaluate(arg.value, ctx)) for arg in arguments]

    def _call_builtin_module(self, inst: ModuleInstantiation, ctx: Context) -> Optional[int]:
        child_ctx = Context(parent=ctx, name=inst.name)
        arguments = []
        if inst.name not in DEFERRED_ARGUMENTS:
            arguments = self.evaluate_arguments(inst.arguments, ctx)
            for name, value in arguments:
                if name is not None and name.startswith('$'):
                    child_ctx.set_variable(name, value)
        call = ModuleCall(self, inst, ctx, child_ctx, arguments)
        return BUILTIN_MODULES[inst.name](call)

    def _bind_parameters(self, target: Context, parameters: List[Parameter],
                         arguments: List[Argument], arg_ctx: Context) -> None:
        """Bind call arguments (evaluated in ``arg_ctx``) to parameters in ``target``."""
        given: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        position = 0
        names = [p.name for p in parameters]
        for arg in arguments:
            value = self.evaluate(arg.value, arg_ctx)
            if arg.name is None:
                if position < len(names):
                    given[names[position]] = value
                position += 1
            elif arg.name in names:
                given[arg.name] = value
            else:
                extra[arg.name] = value
        for param in parameters:
            if param.name in given:
                target.set_variable(param.name, given[param.name])
            elif param.default is not None:
                target.set_variable(param.name, self.evaluate(param.default, target))
            else:
                target.set_variable(param.name, None)
        for name, value in extra.items():
            if name.startswith('$'):
                target.set_variable(name, value)

    @contextmanager
    def _call_depth(self, name: str):
        self._depth += 1
        try:
            yield self._depth <= MAX_RECURSION_DEPTH
        finally:
            self._depth -= 1

    def _call_user_module(self, definition: ModuleDefinition, def_ctx: Context,
                          inst: ModuleInstantiation, ctx: Context) -> Optional[int]:
        with self._call_depth(definition.name) as allowed:
            if not allowed:
                print_warning(f"Recursion detected calling module '{definition.name}'.")
                return None
            module_ctx = Context(parent=def_ctx, caller=ctx, name=definition.name)
            self._bind_parameters(module_ctx, definition.parameters, inst.arguments, ctx)
            module_ctx.set_variable(
                '$children',
                float(sum(isinstance(s, ModuleInstantiation) for s in inst.children)),
            )
            module_ctx.child_statements = inst.children
            module_ctx.child_context = ctx

            node = GroupNode()
            index = self.tree.add(node)
            node.children = self.instantiate_block(definition.body, module_ctx)
            return index

    def instantiate_children(self, call: ModuleCall) -> Optional[int]:
        """children(), children(i), children([i, j]) or children([a : b])."""
        module_ctx = call.ctx
        while module_ctx is not None and module_ctx.child_statements is None:
            module_ctx = module_ctx.parent
        if module_ctx is None:
            return None

        block_ctx = Context(parent=module_ctx.child_context, name="children")
        statements = module_ctx.child_statements
        self.define_block(statements, block_ctx)
        children = [s for s in statements if isinstance(s, ModuleInstantiation)]

        positional = call.positional
        selector = positional[0] if positional else call.named.get('index')
        if selector is None:
            wanted = list(range(len(children)))
        elif V.is_number(selector):
            i = int(selector)
            if 0 <= i < len(children):
                return self.instantiate(children[i], block_ctx)
            print_warning(f"Children index ({i}) out of bounds ({len(children)} children)")
            return None
        else:
            wanted = []
            for value in iterate_values(selector):
                if V.is_number(value) and 0 <= int(value) < len(children):
                    wanted.append(int(value))
                else:
                    print_warning(f"Bad children index {V.format_value(value)}")

        node = GroupNode()
        index = self.tree.add(node)
        for i in wanted:
            child = self.instantiate(children[i], block_ctx)
            if child is not None:
                node.children.append(child)
        return index

    # =========================================================================
    # Expressions
    # =========================================================================

    def evaluate(self, expr: Expression, ctx: Context) -> Any:
        """Evaluate an expression to a value."""
        if isinstance(expr, Literal):
            return expr.value

        if isinstance(expr, Identifier):
            return ctx.lookup_variable(expr.name)

        if isinstance(expr, BinaryOp):
            if expr.operator == TokenType.AND:
                return (V.to_bool(self.evaluate(expr.left, ctx))
                        and V.to_bool(self.evaluate(expr.right, ctx)))
            if expr.operator == TokenType.OR:
                return (V.to_bool(self.evaluate(expr.left, ctx))
                        or V.to_bool(self.evaluate(expr.right, ctx)))
            left = self.evaluate(expr.left, ctx)
            right = self.evaluate(expr.right, ctx)
            return _BINARY_OPS[expr.operator](left, right)

        if isinstance(expr, UnaryOp):
            operand = self.evaluate(expr.operand, ctx)
            if expr.operator == TokenType.NOT:
                return not V.to_bool(operand)
            return V.negate(operand)

        if isinstance(expr, TernaryOp):
            if V.to_bool(self.evaluate(expr.condition, ctx)):
                return self.evaluate(expr.true_branch, ctx)
            return self.evaluate(expr.false_branch, ctx)

        if isinstance(expr, FunctionCall):
            return self._call_function(expr, ctx)

        if isinstance(expr, MemberAccess):
            obj = self.evaluate(expr.object, ctx)
            i = _MEMBERS.get(expr.member)
            if V.is_vector(obj) and i is not None and i < len(obj):
                return obj[i]
            return None

        if isinstance(expr, IndexAccess):
            return self._index(self.evaluate(expr.object, ctx), self.evaluate(expr.index, ctx))

        if isinstance(expr, VectorLiteral):
            return [self.evaluate(e, ctx) for e in expr.elements]

        if isinstance(expr, RangeLiteral):
            begin = self.evaluate(expr.begin, ctx)
            end = self.evaluate(expr.end, ctx)
            step = None if expr.step is None else self.evaluate(expr.step, ctx)
            return V.make_range(begin, end, step)

        if isinstance(expr, ListComprehension):
            return self._comprehension(expr, ctx)

        raise TypeError(f"Unknown expression type: {type(expr).__name__}")

    @staticmethod
    def _index(obj: Any, index: Any) -> Any:
        if not V.is_number(index) or not math.isfinite(index):
            return None
        i = int(index)
        if isinstance(obj, (list, str)) and 0 <= i < len(obj):
            return obj[i]
        if isinstance(obj, V.Range):
            for k, value in enumerate(obj):
                if k == i:
                    return value
        return None

    def _comprehension(self, expr: ListComprehension, ctx: Context) -> List[Any]:
        result = []

        def recurse(scope: Context, remaining: List[Argument]):
            if not remaining:
                if expr.condition is None or V.to_bool(self.evaluate(expr.condition, scope)):
                    result.append(self.evaluate(expr.element, scope))
                return
            arg = remaining[0]
            for value in iterate_values(self.evaluate(arg.value, scope)):
                loop = Context(parent=scope, name="for")
                loop.set_variable(arg.name or '', value)
                recurse(loop, remaining[1:])

        recurse(ctx, expr.assignments)
        return result

    def _call_function(self, call: FunctionCall, ctx: Context) -> Any:
        definition, def_ctx = ctx.lookup_function(call.name)
        if definition is not None:
            with self._call_depth(call.name) as allowed:
                if not allowed:
                    print_warning(f"Recursion detected calling function '{call.name}'.")
                    return None
                fn_ctx = Context(parent=def_ctx, caller=ctx, name=call.name)
                self._bind_parameters(fn_ctx, definition.parameters, call.arguments, ctx)
                return self.evaluate(definition.expression, fn_ctx)

        builtin = self.registry.get_function(call.name)
        if builtin is not None:
            args = [self.evaluate(arg.value, ctx) for arg in call.arguments]
            return builtin.implementation(*args)

        print_warning(f"Ignoring unknown function '{call.name}'.")
        return None
