"""
Script language front end: lexer, parser, AST and file references.

Usage:
    from scadbatch.lang import parse_source, dump_module

    module = parse_source("cube(10);")
    print(dump_module(module))
"""

from .tokens import TokenType, Token, SourceLocation, SourceSpan
from .errors import Diagnostic, ErrorSeverity, ScriptError, LexerError, ParserError
from .lexer import Lexer, tokenize
from .parser import Parser, parse, parse_source
from .dumper import dump_module, dump_expression, format_number, format_value
from .resolver import FileResolver
from . import ast

__all__ = [
    'TokenType', 'Token', 'SourceLocation', 'SourceSpan',
    'Diagnostic', 'ErrorSeverity', 'ScriptError', 'LexerError', 'ParserError',
    'Lexer', 'tokenize',
    'Parser', 'parse', 'parse_source',
    'dump_module', 'dump_expression', 'format_number', 'format_value',
    'FileResolver',
    'ast',
]
