"""
Evaluation contexts for the interpreter.

Ordinary names are scoped lexically through ``parent``. Special
``$``-prefixed variables are scoped dynamically: a lookup follows the
``caller`` link (the context that instantiated a module) when there is
one, so ``$fn`` set around an instantiation reaches everything it creates.
"""

from typing import Any, Dict, List, Optional

from ..lang.ast import FunctionDefinition, ModuleDefinition, Statement
from ..printutils import print_warning

# Sentinel distinguishing "not found" from undef (None)
_MISSING = object()


class Context:
    """A single scope of variables, module and function definitions."""

    def __init__(self, parent: Optional["Context"] = None,
                 caller: Optional["Context"] = None,
                 document_path: Optional[str] = None,
                 name: str = "anonymous"):
        self.parent = parent
        self.caller = caller
        self.name = name  # For debugging
        self.variables: Dict[str, Any] = {}
        self.modules: Dict[str, ModuleDefinition] = {}
        self.functions: Dict[str, FunctionDefinition] = {}
        # Contexts of used libraries, searched after the lexical chain
        self.libraries: List["Context"] = []
        if document_path is None and parent is not None:
            document_path = parent.document_path
        self.document_path = document_path
        # Children of the module instantiation this context belongs to
        self.child_statements: Optional[List[Statement]] = None
        self.child_context: Optional["Context"] = None

    def child(self, name: str = "block") -> "Context":
        """A nested lexical scope sharing this context's caller."""
        ctx = Context(parent=self, caller=None, name=name)
        return ctx

    # --- Variables ---

    def set_variable(self, name: str, value: Any) -> None:
        # dict assignment keeps the key's original position
        self.variables[name] = value

    def _find(self, name: str) -> Any:
        ctx: Optional[Context] = self
        dynamic = name.startswith('$')
        while ctx is not None:
            if name in ctx.variables:
                return ctx.variables[name]
            if dynamic and ctx.caller is not None:
                ctx = ctx.caller
            else:
                ctx = ctx.parent
        return _MISSING

    def has_variable(self, name: str) -> bool:
        return self._find(name) is not _MISSING

    def lookup_variable(self, name: str, silent: bool = False) -> Any:
        """Value of ``name``; unknown names warn (unless silent) and are undef."""
        value = self._find(name)
        if value is _MISSING:
            if not silent:
                print_warning(f"Ignoring unknown variable '{name}'.")
            return None
        return value

    # --- Definitions ---

    def _lookup_definition(self, attr: str, name: str):
        ctx: Optional[Context] = self
        while ctx is not None:
            table = getattr(ctx, attr)
            if name in table:
                return table[name], ctx
            for library in ctx.libraries:
                if name in getattr(library, attr):
                    return getattr(library, attr)[name], library
            ctx = ctx.parent
        return None, None

    def lookup_module(self, name: str):
        """Return ``(definition, defining_context)`` or ``(None, None)``."""
        return self._lookup_definition('modules', name)

    def lookup_function(self, name: str):
        """Return ``(definition, defining_context)`` or ``(None, None)``."""
        return self._lookup_definition('functions', name)

    def dump(self) -> str:
        """Debug listing of the variables visible from this context."""
        lines = []
        ctx: Optional[Context] = self
        while ctx is not None:
            lines.append(f"context {ctx.name}:")
            for key, value in ctx.variables.items():
                lines.append(f"  {key} = {value!r}")
            ctx = ctx.parent
        return "\n".join(lines)
