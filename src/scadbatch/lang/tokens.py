"""
Token types for the script lexer.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional


class TokenType(Enum):
    """All token types recognized by the lexer."""

    # --- Literals ---
    NUMBER = auto()             # 42, 3.14, .5, 1e-9
    STRING = auto()             # "hello"
    TRUE = auto()               # true
    FALSE = auto()              # false
    UNDEF = auto()              # undef

    # --- Identifiers ---
    IDENTIFIER = auto()         # user-defined names, $fn, $children

    # --- Keywords ---
    MODULE = auto()             # module
    FUNCTION = auto()           # function
    IF = auto()                 # if
    ELSE = auto()               # else

    # --- File references (lexed with their <path>) ---
    INCLUDE = auto()            # include <file>
    USE = auto()                # use <file>

    # --- Operators ---
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # *
    SLASH = auto()              # /
    PERCENT = auto()            # %
    EQ = auto()                 # ==
    NE = auto()                 # !=
    LT = auto()                 # <
    GT = auto()                 # >
    LE = auto()                 # <=
    GE = auto()                 # >=
    AND = auto()                # &&
    OR = auto()                 # ||
    NOT = auto()                # !
    HASH = auto()               # # (highlight modifier)
    ASSIGN = auto()             # =
    QUESTION = auto()           # ?
    COLON = auto()              # :

    # --- Delimiters ---
    LPAREN = auto()             # (
    RPAREN = auto()             # )
    LBRACKET = auto()           # [
    RBRACKET = auto()           # ]
    LBRACE = auto()             # {
    RBRACE = auto()             # }
    COMMA = auto()              # ,
    SEMICOLON = auto()          # ;
    DOT = auto()                # .

    EOF = auto()


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in source code."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in source code."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: Any              # The actual value (float, str, path)
    lexeme: str             # The original source text
    span: SourceSpan        # Location in source

    def __str__(self) -> str:
        if self.type in (TokenType.NUMBER, TokenType.STRING, TokenType.IDENTIFIER,
                         TokenType.INCLUDE, TokenType.USE):
            return f"{self.type.name}({self.value!r})"
        return self.type.name


KEYWORDS: dict[str, TokenType] = {
    'module': TokenType.MODULE,
    'function': TokenType.FUNCTION,
    'if': TokenType.IF,
    'else': TokenType.ELSE,
    'true': TokenType.TRUE,
    'false': TokenType.FALSE,
    'undef': TokenType.UNDEF,
}

# Keywords followed by a <path> reference
FILE_KEYWORDS: dict[str, TokenType] = {
    'include': TokenType.INCLUDE,
    'use': TokenType.USE,
}
