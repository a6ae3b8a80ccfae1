"""
Script runtime: values, contexts, builtins and the interpreter.

Usage:
    from scadbatch.nodes import NodeTree
    from scadbatch.runtime import Interpreter

    tree = NodeTree()
    top = Interpreter(tree).instantiate_file(module)
"""

from .values import Range, to_bool, format_value
from .context import Context
from .builtins import BuiltinFunction, BuiltinRegistry, get_builtin_registry, call_builtin
from .modules import BUILTIN_MODULES, ModuleCall
from .interpreter import Interpreter, create_top_context, recursion_limit

__all__ = [
    'Range', 'to_bool', 'format_value',
    'Context',
    'BuiltinFunction', 'BuiltinRegistry', 'get_builtin_registry', 'call_builtin',
    'BUILTIN_MODULES', 'ModuleCall',
    'Interpreter', 'create_top_context', 'recursion_limit',
]
