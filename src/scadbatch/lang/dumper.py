"""
Text dump of a parsed script (the ``.ast`` export).

The dump is script text again: statements in document order, one per
line, with nested bodies indented by a tab.
"""

import math
from typing import List

from .tokens import TokenType
from .ast import (
    Expression, Literal, Identifier, BinaryOp, UnaryOp, TernaryOp,
    Argument, FunctionCall, MemberAccess, IndexAccess,
    VectorLiteral, RangeLiteral, ListComprehension,
    Statement, Assignment, ModuleInstantiation, IfStatement,
    Parameter, ModuleDefinition, FunctionDefinition, UseStatement,
    Module,
)

OPERATOR_TEXT = {
    TokenType.PLUS: '+',
    TokenType.MINUS: '-',
    TokenType.STAR: '*',
    TokenType.SLASH: '/',
    TokenType.PERCENT: '%',
    TokenType.EQ: '==',
    TokenType.NE: '!=',
    TokenType.LT: '<',
    TokenType.GT: '>',
    TokenType.LE: '<=',
    TokenType.GE: '>=',
    TokenType.AND: '&&',
    TokenType.OR: '||',
    TokenType.NOT: '!',
}


def format_number(value: float) -> str:
    """Format a number with six significant digits; integral values print without a fraction."""
    if math.isnan(value):
        return 'nan'
    if math.isinf(value):
        return 'inf' if value > 0 else '-inf'
    if value == 0:
        return '0'
    return '%g' % value


def quote_string(text: str) -> str:
    escaped = (text.replace('\\', '\\\\').replace('"', '\\"')
               .replace('\n', '\\n').replace('\t', '\\t').replace('\r', '\\r'))
    return f'"{escaped}"'


def format_value(value, quote_strings: bool = True) -> str:
    """
    Format a runtime value the way the script language prints it.

    Strings nested inside vectors are always quoted; ``quote_strings``
    only controls a top-level string.
    """
    if value is None:
        return 'undef'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (int, float)):
        return format_number(float(value))
    if isinstance(value, str):
        return quote_string(value) if quote_strings else value
    if isinstance(value, (list, tuple)):
        return '[' + ', '.join(format_value(v) for v in value) + ']'
    if hasattr(value, 'tolist'):  # numpy arrays
        return format_value(value.tolist(), quote_strings)
    return str(value)


def dump_expression(expr: Expression) -> str:
    if isinstance(expr, Literal):
        if expr.value is None:
            return 'undef'
        if isinstance(expr.value, bool):
            return 'true' if expr.value else 'false'
        if isinstance(expr.value, str):
            return quote_string(expr.value)
        return format_number(expr.value)
    if isinstance(expr, Identifier):
        return expr.name
    if isinstance(expr, BinaryOp):
        return (f"({dump_expression(expr.left)} {OPERATOR_TEXT[expr.operator]} "
                f"{dump_expression(expr.right)})")
    if isinstance(expr, UnaryOp):
        return f"{OPERATOR_TEXT[expr.operator]}{dump_expression(expr.operand)}"
    if isinstance(expr, TernaryOp):
        return (f"({dump_expression(expr.condition)} ? {dump_expression(expr.true_branch)}"
                f" : {dump_expression(expr.false_branch)})")
    if isinstance(expr, FunctionCall):
        return f"{expr.name}({dump_arguments(expr.arguments)})"
    if isinstance(expr, MemberAccess):
        return f"{dump_expression(expr.object)}.{expr.member}"
    if isinstance(expr, IndexAccess):
        return f"{dump_expression(expr.object)}[{dump_expression(expr.index)}]"
    if isinstance(expr, VectorLiteral):
        return '[' + ', '.join(dump_expression(e) for e in expr.elements) + ']'
    if isinstance(expr, RangeLiteral):
        if expr.step is None:
            return f"[{dump_expression(expr.begin)} : {dump_expression(expr.end)}]"
        return (f"[{dump_expression(expr.begin)} : {dump_expression(expr.step)}"
                f" : {dump_expression(expr.end)}]")
    if isinstance(expr, ListComprehension):
        text = f"[for ({dump_arguments(expr.assignments)}) "
        if expr.condition is not None:
            text += f"if ({dump_expression(expr.condition)}) "
        return text + dump_expression(expr.element) + ']'
    raise TypeError(f"cannot dump expression {type(expr).__name__}")


def dump_arguments(arguments: List[Argument]) -> str:
    parts = []
    for arg in arguments:
        if arg.name is None:
            parts.append(dump_expression(arg.value))
        else:
            parts.append(f"{arg.name} = {dump_expression(arg.value)}")
    return ', '.join(parts)


def _dump_parameters(parameters: List[Parameter]) -> str:
    parts = []
    for param in parameters:
        if param.default is None:
            parts.append(param.name)
        else:
            parts.append(f"{param.name} = {dump_expression(param.default)}")
    return ', '.join(parts)


def _dump_block(statements: List[Statement], indent: str) -> List[str]:
    lines = []
    for stmt in statements:
        lines.extend(dump_statement(stmt, indent))
    return lines


def _dump_body(head: str, children: List[Statement], indent: str) -> List[str]:
    if not children:
        return [f"{indent}{head};"]
    return ([f"{indent}{head} {{"] + _dump_block(children, indent + '\t')
            + [f"{indent}}}"])


def dump_statement(stmt: Statement, indent: str = '') -> List[str]:
    """Dump one statement as a list of lines."""
    if isinstance(stmt, Assignment):
        return [f"{indent}{stmt.name} = {dump_expression(stmt.value)};"]
    if isinstance(stmt, UseStatement):
        return [f"{indent}use <{stmt.path}>"]
    if isinstance(stmt, FunctionDefinition):
        return [f"{indent}function {stmt.name}({_dump_parameters(stmt.parameters)}) = "
                f"{dump_expression(stmt.expression)};"]
    if isinstance(stmt, ModuleDefinition):
        return ([f"{indent}module {stmt.name}({_dump_parameters(stmt.parameters)}) {{"]
                + _dump_block(stmt.body, indent + '\t') + [f"{indent}}}"])
    if isinstance(stmt, ModuleInstantiation):
        prefix = ''
        if stmt.is_root:
            prefix += '!'
        if stmt.is_highlight:
            prefix += '#'
        if stmt.is_background:
            prefix += '%'
        if isinstance(stmt, IfStatement):
            lines = _dump_body(f"{prefix}if ({dump_expression(stmt.condition)})",
                               stmt.children, indent)
            if stmt.else_children:
                lines += _dump_body("else", stmt.else_children, indent)
            return lines
        return _dump_body(f"{prefix}{stmt.name}({dump_arguments(stmt.arguments)})",
                          stmt.children, indent)
    raise TypeError(f"cannot dump statement {type(stmt).__name__}")


def dump_module(module: Module) -> str:
    """Dump a parsed file; the text ends with a newline."""
    lines = _dump_block(module.statements, '')
    return ''.join(line + '\n' for line in lines)
