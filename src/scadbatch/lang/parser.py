"""
Recursive descent parser for the geometry script language.

Converts a token stream into an Abstract Syntax Tree (AST). ``include``
references are resolved while parsing: the included file's statements are
spliced in place, as if the text had been pasted there.
"""

import os
from typing import List, Optional
from .tokens import Token, TokenType, SourceSpan
from .lexer import tokenize
from .ast import (
    # Expressions
    Expression, Literal, Identifier, BinaryOp, UnaryOp, TernaryOp,
    Argument, FunctionCall, MemberAccess, IndexAccess,
    VectorLiteral, RangeLiteral, ListComprehension,
    # Statements
    Statement, Assignment, ModuleInstantiation, IfStatement,
    Parameter, ModuleDefinition, FunctionDefinition, UseStatement,
    Module,
)
from .errors import (
    error_unexpected_token,
    error_unexpected_eof,
)


class Parser:
    """
    Recursive descent parser for the script language.

    Usage:
        parser = Parser(tokens)
        module = parser.parse_module()

    The parser implements standard precedence climbing for expressions:
        Lowest:  ?: (ternary, right-associative)
                 ||
                 &&
                 == !=
                 < > <= >=
                 + -
                 * / %
        Highest: unary (! - +)
    """

    # Operator precedence levels (higher = tighter binding)
    PRECEDENCE = {
        TokenType.OR: 1,
        TokenType.AND: 2,
        TokenType.EQ: 3,
        TokenType.NE: 3,
        TokenType.LT: 4,
        TokenType.GT: 4,
        TokenType.LE: 4,
        TokenType.GE: 4,
        TokenType.PLUS: 5,
        TokenType.MINUS: 5,
        TokenType.STAR: 6,
        TokenType.SLASH: 6,
        TokenType.PERCENT: 6,
    }

    # Tokens that prefix a module instantiation
    MODIFIERS = (TokenType.NOT, TokenType.HASH, TokenType.PERCENT, TokenType.STAR)

    def __init__(self, tokens: List[Token], filename: Optional[str] = None,
                 document_path: Optional[str] = None, resolver=None):
        self.tokens = tokens
        self.filename = filename
        self.document_path = document_path
        self.resolver = resolver  # FileResolver for include <...>
        self.pos = 0

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[idx]

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        return self._current().type == token_type

    def _check_any(self, *token_types: TokenType) -> bool:
        return self._current().type in token_types

    def _advance(self) -> Token:
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Consume token of expected type, or raise error."""
        if self._check(token_type):
            return self._advance()
        self._error(expected)

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        if self._current().type in token_types:
            return self._advance()
        return None

    def _check_keyword(self, name: str) -> bool:
        """True if the current token is the identifier ``name`` (e.g. 'for')."""
        token = self._current()
        return token.type == TokenType.IDENTIFIER and token.value == name

    def _error(self, expected: str) -> None:
        token = self._current()
        if token.type == TokenType.EOF:
            raise error_unexpected_eof(expected, token.span)
        raise error_unexpected_token(expected, f"'{token.lexeme}'", token.span)

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to the last consumed token."""
        end_token = self.tokens[max(0, self.pos - 1)]
        return SourceSpan(start.span.start, end_token.span.end)

    # =========================================================================
    # Expression Parsing
    # =========================================================================

    def _parse_expression(self) -> Expression:
        """Parse an expression (ternary at the lowest precedence)."""
        condition = self._parse_binary_expr(1)
        if not self._match(TokenType.QUESTION):
            return condition
        true_branch = self._parse_expression()
        self._consume(TokenType.COLON, "':'")
        false_branch = self._parse_expression()
        return TernaryOp(
            span=SourceSpan(condition.span.start, false_branch.span.end),
            condition=condition,
            true_branch=true_branch,
            false_branch=false_branch,
        )

    def _parse_binary_expr(self, min_precedence: int) -> Expression:
        """Parse binary expressions with precedence climbing."""
        left = self._parse_unary_expr()

        while True:
            op_token = self._current()
            precedence = self.PRECEDENCE.get(op_token.type)

            if precedence is None or precedence < min_precedence:
                break

            self._advance()  # consume operator
            right = self._parse_binary_expr(precedence + 1)

            left = BinaryOp(
                span=SourceSpan(left.span.start, right.span.end),
                left=left,
                operator=op_token.type,
                right=right,
            )

        return left

    def _parse_unary_expr(self) -> Expression:
        """Parse unary expressions (!, -, +)."""
        if self._check_any(TokenType.NOT, TokenType.MINUS, TokenType.PLUS):
            op = self._advance()
            operand = self._parse_unary_expr()
            if op.type == TokenType.PLUS:
                return operand
            return UnaryOp(
                span=SourceSpan(op.span.start, operand.span.end),
                operator=op.type,
                operand=operand,
            )

        return self._parse_postfix_expr()

    def _parse_postfix_expr(self) -> Expression:
        """Parse postfix expressions (indexing, member access)."""
        start = self._current()
        expr = self._parse_primary_expr()

        while True:
            if self._match(TokenType.LBRACKET):
                index = self._parse_expression()
                self._consume(TokenType.RBRACKET, "']'")
                expr = IndexAccess(span=self._span_from(start), object=expr, index=index)
            elif self._match(TokenType.DOT):
                member = self._consume(TokenType.IDENTIFIER, "member name").value
                expr = MemberAccess(span=self._span_from(start), object=expr, member=member)
            else:
                break

        return expr

    def _parse_arguments(self) -> List[Argument]:
        """Parse a parenthesized argument list (positional and named)."""
        self._consume(TokenType.LPAREN, "'('")
        args: List[Argument] = []

        while not self._check(TokenType.RPAREN):
            start = self._current()
            if self._check(TokenType.IDENTIFIER) and self._peek(1).type == TokenType.ASSIGN:
                name = self._advance().value
                self._advance()  # consume '='
                value = self._parse_expression()
                args.append(Argument(span=self._span_from(start), name=name, value=value))
            else:
                value = self._parse_expression()
                args.append(Argument(span=value.span, name=None, value=value))
            if not self._match(TokenType.COMMA):
                break

        self._consume(TokenType.RPAREN, "')'")
        return args

    def _parse_parameters(self) -> List[Parameter]:
        """Parse a parenthesized parameter list with optional defaults."""
        self._consume(TokenType.LPAREN, "'('")
        params: List[Parameter] = []

        while not self._check(TokenType.RPAREN):
            token = self._consume(TokenType.IDENTIFIER, "parameter name")
            default = None
            if self._match(TokenType.ASSIGN):
                default = self._parse_expression()
            params.append(Parameter(span=self._span_from(token), name=token.value, default=default))
            if not self._match(TokenType.COMMA):
                break

        self._consume(TokenType.RPAREN, "')'")
        return params

    def _parse_primary_expr(self) -> Expression:
        """Parse primary expressions (literals, identifiers, calls, grouped, vectors)."""
        token = self._current()

        if token.type in (TokenType.NUMBER, TokenType.STRING):
            self._advance()
            return Literal(span=token.span, value=token.value)

        if token.type == TokenType.TRUE:
            self._advance()
            return Literal(span=token.span, value=True)

        if token.type == TokenType.FALSE:
            self._advance()
            return Literal(span=token.span, value=False)

        if token.type == TokenType.UNDEF:
            self._advance()
            return Literal(span=token.span, value=None)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            if self._check(TokenType.LPAREN):
                args = self._parse_arguments()
                return FunctionCall(span=self._span_from(token), name=token.value, arguments=args)
            return Identifier(span=token.span, name=token.value)

        if token.type == TokenType.LPAREN:
            self._advance()
            expr = self._parse_expression()
            self._consume(TokenType.RPAREN, "')'")
            return expr

        if token.type == TokenType.LBRACKET:
            return self._parse_vector_or_range()

        self._error("expression")

    def _parse_vector_or_range(self) -> Expression:
        """Parse [..]: vector literal, range or list comprehension."""
        start = self._consume(TokenType.LBRACKET, "'['")

        if self._match(TokenType.RBRACKET):
            return VectorLiteral(span=self._span_from(start), elements=[])

        if self._check_keyword('for') and self._peek(1).type == TokenType.LPAREN:
            return self._parse_list_comprehension(start)

        first = self._parse_expression()

        if self._match(TokenType.COLON):
            second = self._parse_expression()
            if self._match(TokenType.COLON):
                third = self._parse_expression()
                self._consume(TokenType.RBRACKET, "']'")
                return RangeLiteral(span=self._span_from(start), begin=first, step=second, end=third)
            self._consume(TokenType.RBRACKET, "']'")
            return RangeLiteral(span=self._span_from(start), begin=first, end=second)

        elements = [first]
        while self._match(TokenType.COMMA):
            if self._check(TokenType.RBRACKET):
                break  # Allow trailing comma
            elements.append(self._parse_expression())
        self._consume(TokenType.RBRACKET, "']'")
        return VectorLiteral(span=self._span_from(start), elements=elements)

    def _parse_list_comprehension(self, start: Token) -> ListComprehension:
        """Parse the remainder of [for (...) [if (...)] expr]."""
        self._advance()  # consume 'for'
        assignments = self._parse_arguments()
        condition = None
        if self._match(TokenType.IF):
            self._consume(TokenType.LPAREN, "'('")
            condition = self._parse_expression()
            self._consume(TokenType.RPAREN, "')'")
        element = self._parse_expression()
        self._consume(TokenType.RBRACKET, "']'")
        return ListComprehension(
            span=self._span_from(start),
            assignments=assignments,
            element=element,
            condition=condition,
        )

    # =========================================================================
    # Statement Parsing
    # =========================================================================

    def _parse_statement(self) -> List[Statement]:
        """
        Parse one statement.

        Returns a list because a bare block or an include contributes any
        number of statements to the enclosing scope.
        """
        token = self._current()

        if self._match(TokenType.SEMICOLON):
            return []

        if self._match(TokenType.LBRACE):
            return self._parse_statements_until(TokenType.RBRACE)

        if token.type == TokenType.MODULE:
            return [self._parse_module_definition()]

        if token.type == TokenType.FUNCTION:
            return [self._parse_function_definition()]

        if token.type == TokenType.INCLUDE:
            self._advance()
            return self._parse_include(token)

        if token.type == TokenType.USE:
            self._advance()
            return [UseStatement(span=token.span, path=token.value)]

        if token.type == TokenType.IDENTIFIER and self._peek(1).type == TokenType.ASSIGN:
            return [self._parse_assignment()]

        inst = self._parse_module_instantiation()
        return [inst] if inst is not None else []

    def _parse_statements_until(self, terminator: TokenType) -> List[Statement]:
        statements: List[Statement] = []
        while not self._check(terminator):
            if self._is_at_end():
                self._error("'}'")
            statements.extend(self._parse_statement())
        self._advance()  # consume terminator
        return statements

    def _parse_assignment(self) -> Assignment:
        start = self._advance()
        self._consume(TokenType.ASSIGN, "'='")
        value = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';'")
        return Assignment(span=self._span_from(start), name=start.value, value=value)

    def _parse_module_instantiation(self) -> Optional[ModuleInstantiation]:
        """
        Parse a (possibly modified) module instantiation.

        Returns None for instantiations disabled with the '*' modifier.
        """
        start = self._current()
        is_root = is_highlight = is_background = disabled = False

        while self._check_any(*self.MODIFIERS):
            modifier = self._advance().type
            if modifier == TokenType.NOT:
                is_root = True
            elif modifier == TokenType.HASH:
                is_highlight = True
            elif modifier == TokenType.PERCENT:
                is_background = True
            else:
                disabled = True

        if self._match(TokenType.IF):
            self._consume(TokenType.LPAREN, "'('")
            condition = self._parse_expression()
            self._consume(TokenType.RPAREN, "')'")
            children = self._parse_children()
            else_children: List[Statement] = []
            if self._match(TokenType.ELSE):
                else_children = self._parse_children()
            inst = IfStatement(
                span=self._span_from(start),
                name='if',
                children=children,
                condition=condition,
                else_children=else_children,
            )
        else:
            name_token = self._current()
            if name_token.type != TokenType.IDENTIFIER:
                self._error("statement")
            self._advance()
            args = self._parse_arguments()
            children = self._parse_children()
            inst = ModuleInstantiation(
                span=self._span_from(start),
                name=name_token.value,
                arguments=args,
                children=children,
            )

        if disabled:
            return None
        inst.is_root = is_root
        inst.is_highlight = is_highlight
        inst.is_background = is_background
        return inst

    def _parse_children(self) -> List[Statement]:
        """Parse what follows an instantiation: ';', a block, or one nested instantiation."""
        if self._match(TokenType.SEMICOLON):
            return []
        if self._match(TokenType.LBRACE):
            return self._parse_statements_until(TokenType.RBRACE)
        child = self._parse_module_instantiation()
        return [child] if child is not None else []

    def _parse_module_definition(self) -> ModuleDefinition:
        start = self._advance()  # consume 'module'
        name = self._consume(TokenType.IDENTIFIER, "module name").value
        params = self._parse_parameters()
        body = self._parse_statement()
        return ModuleDefinition(span=self._span_from(start), name=name, parameters=params, body=body)

    def _parse_function_definition(self) -> FunctionDefinition:
        start = self._advance()  # consume 'function'
        name = self._consume(TokenType.IDENTIFIER, "function name").value
        params = self._parse_parameters()
        self._consume(TokenType.ASSIGN, "'='")
        expr = self._parse_expression()
        self._consume(TokenType.SEMICOLON, "';'")
        return FunctionDefinition(span=self._span_from(start), name=name, parameters=params,
                                  expression=expr)

    def _parse_include(self, token: Token) -> List[Statement]:
        """Splice the statements of an included file."""
        if self.resolver is None:
            return []
        loaded = self.resolver.load_include(token.value, self.document_path)
        if loaded is None:
            return []
        path, text = loaded
        try:
            sub = Parser(tokenize(text, path), path, os.path.dirname(path), self.resolver)
            return sub._parse_statements_until(TokenType.EOF)
        finally:
            self.resolver.end_include(path)

    # =========================================================================
    # Top Level
    # =========================================================================

    def parse_module(self) -> Module:
        """Parse a complete file."""
        start = self._current()
        statements = self._parse_statements_until(TokenType.EOF)
        return Module(
            span=SourceSpan(start.span.start, self._current().span.end),
            statements=statements,
            filename=self.filename,
            document_path=self.document_path,
        )


def parse(tokens: List[Token], filename: Optional[str] = None,
          document_path: Optional[str] = None, resolver=None) -> Module:
    """
    Convenience function to parse tokens into a Module.

    Raises:
        ParserError: If parsing fails
    """
    parser = Parser(tokens, filename, document_path, resolver)
    return parser.parse_module()


def parse_source(source: str, filename: Optional[str] = None,
                 document_path: Optional[str] = None, resolver=None) -> Module:
    """Tokenize and parse ``source`` in one step."""
    return parse(tokenize(source, filename), filename, document_path, resolver)
