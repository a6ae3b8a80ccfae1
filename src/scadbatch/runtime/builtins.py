"""
Built-in function registry for the interpreter.

Functions receive already evaluated positional arguments. Arguments of
the wrong type make a function return undef (None); nothing here raises
for bad script input.
"""

import math
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .. import __version__
from .values import (
    is_number, is_vector, format_value, to_vector,
)


@dataclass
class BuiltinFunction:
    """A built-in function with its implementation."""
    name: str
    implementation: Callable[..., Any]
    doc: str = ""


# --- Degree based trigonometry ---

def sin_degrees(x: float) -> float:
    """sin() of an angle in degrees, exact at multiples of 90."""
    x = math.fmod(x, 360.0)
    if x < 0:
        x += 360.0
    if x % 90.0 == 0:
        return (0.0, 1.0, 0.0, -1.0)[int(x // 90.0) % 4]
    return math.sin(math.radians(x))


def cos_degrees(x: float) -> float:
    """cos() of an angle in degrees, exact at multiples of 90."""
    return sin_degrees(x + 90.0)


def _numeric(func: Callable[..., float]) -> Callable[..., Any]:
    """Wrap ``func`` so non-numeric arguments or math errors yield undef / nan."""

    def wrapper(*args):
        if not args or not all(is_number(a) for a in args):
            return None
        try:
            return float(func(*[float(a) for a in args]))
        except ValueError:
            return math.nan
        except (OverflowError, ZeroDivisionError):
            return math.inf
    wrapper.__name__ = func.__name__
    return wrapper


def _version_parts() -> List[float]:
    parts = []
    for piece in __version__.split('.')[:3]:
        parts.append(float(int(piece)) if piece.isdigit() else 0.0)
    while len(parts) < 3:
        parts.append(0.0)
    return parts


class BuiltinRegistry:
    """
    Registry of all built-in functions.

    Functions are registered by name and can be looked up for execution.
    """

    def __init__(self):
        self._functions: Dict[str, BuiltinFunction] = {}
        self._register_all()

    def get_function(self, name: str) -> Optional[BuiltinFunction]:
        """Look up a function by name."""
        return self._functions.get(name)

    def register(self, func: BuiltinFunction) -> None:
        """Register a function."""
        self._functions[func.name] = func

    def names(self) -> List[str]:
        return sorted(self._functions)

    def _register_all(self) -> None:
        """Register all built-in functions."""
        self._register_math_functions()
        self._register_vector_functions()
        self._register_string_functions()
        self._register_utility_functions()

    # --- Math Functions ---

    def _register_math_functions(self) -> None:
        """Register mathematical functions."""

        def _sign(x):
            return 1.0 if x > 0 else (-1.0 if x < 0 else 0.0)

        def _round(x):
            # half away from zero
            return math.floor(x + 0.5) if x >= 0 else math.ceil(x - 0.5)

        def _log(*args):
            if len(args) == 2:
                return math.log(args[1]) / math.log(args[0])
            return math.log10(args[0])

        def _sqrt(x):
            return math.sqrt(x) if x >= 0 else math.nan

        def _ln(x):
            if x == 0:
                return -math.inf
            return math.log(x)

        math_funcs = [
            ("abs", abs),
            ("sign", _sign),
            ("sin", sin_degrees),
            ("cos", cos_degrees),
            ("tan", lambda x: math.tan(math.radians(x))),
            ("asin", lambda x: math.degrees(math.asin(x))),
            ("acos", lambda x: math.degrees(math.acos(x))),
            ("atan", lambda x: math.degrees(math.atan(x))),
            ("atan2", lambda y, x: math.degrees(math.atan2(y, x))),
            ("floor", math.floor),
            ("ceil", math.ceil),
            ("round", _round),
            ("ln", _ln),
            ("log", _log),
            ("exp", math.exp),
            ("pow", math.pow),
            ("sqrt", _sqrt),
        ]

        for name, impl in math_funcs:
            self.register(BuiltinFunction(name, _numeric(impl)))

        def _extreme(pick):
            def impl(*args):
                if len(args) == 1 and is_vector(args[0]):
                    args = tuple(args[0])
                if not args or not all(is_number(a) for a in args):
                    return None
                return float(pick(args))
            return impl

        self.register(BuiltinFunction("min", _extreme(min)))
        self.register(BuiltinFunction("max", _extreme(max)))

    # --- Vector Functions ---

    def _register_vector_functions(self) -> None:

        def _norm(v=None, *rest):
            if not is_vector(v) or not all(is_number(x) for x in v):
                return None
            return math.sqrt(sum(float(x) * float(x) for x in v))

        def _cross(a=None, b=None, *rest):
            va = to_vector(a, 3) if is_vector(a) and len(a) == 3 else None
            vb = to_vector(b, 3) if is_vector(b) and len(b) == 3 else None
            if va is None or vb is None:
                return None
            return [
                va[1] * vb[2] - va[2] * vb[1],
                va[2] * vb[0] - va[0] * vb[2],
                va[0] * vb[1] - va[1] * vb[0],
            ]

        def _len(v=None, *rest):
            if isinstance(v, (str, list)):
                return float(len(v))
            return None

        def _concat(*args):
            result = []
            for arg in args:
                if is_vector(arg):
                    result.extend(arg)
                else:
                    result.append(arg)
            return result

        def _lookup(key=None, table=None, *rest):
            """Linear interpolation in a table of [key, value] pairs."""
            if not is_number(key) or not is_vector(table):
                return None
            rows = [r for r in table
                    if is_vector(r) and len(r) >= 2 and is_number(r[0]) and is_number(r[1])]
            if not rows:
                return None
            low = high = None
            for k, v in ((float(r[0]), float(r[1])) for r in rows):
                if k <= key and (low is None or k > low[0]):
                    low = (k, v)
                if k >= key and (high is None or k < high[0]):
                    high = (k, v)
            if low is None:
                return high[1]
            if high is None:
                return low[1]
            if high[0] == low[0]:
                return low[1]
            t = (key - low[0]) / (high[0] - low[0])
            return low[1] + t * (high[1] - low[1])

        self.register(BuiltinFunction("norm", _norm))
        self.register(BuiltinFunction("cross", _cross))
        self.register(BuiltinFunction("len", _len))
        self.register(BuiltinFunction("concat", _concat))
        self.register(BuiltinFunction("lookup", _lookup))

    # --- String Functions ---

    def _register_string_functions(self) -> None:

        def _str(*args):
            return ''.join(format_value(a, quote_strings=False) for a in args)

        def _chr(*args):
            chars = []
            for arg in args:
                values = arg if is_vector(arg) else [arg]
                for v in values:
                    if is_number(v) and 0 < v < 0x110000:
                        chars.append(chr(int(v)))
            return ''.join(chars)

        self.register(BuiltinFunction("str", _str))
        self.register(BuiltinFunction("chr", _chr))

    # --- Utility Functions ---

    def _register_utility_functions(self) -> None:

        def _rands(min_value=None, max_value=None, count=None, seed=None, *rest):
            if not (is_number(min_value) and is_number(max_value) and is_number(count)):
                return None
            rng = random.Random(seed) if is_number(seed) else random.Random()
            low, high = sorted((float(min_value), float(max_value)))
            return [rng.uniform(low, high) for _ in range(max(0, int(count)))]

        def _version(*args):
            return _version_parts()

        def _version_num(*args):
            major, minor, patch = _version_parts()
            return major * 10000 + minor * 100 + patch

        self.register(BuiltinFunction("rands", _rands))
        self.register(BuiltinFunction("version", _version))
        self.register(BuiltinFunction("version_num", _version_num))


# Global singleton registry
_registry: Optional[BuiltinRegistry] = None


def get_builtin_registry() -> BuiltinRegistry:
    """Get the global built-in function registry."""
    global _registry
    if _registry is None:
        _registry = BuiltinRegistry()
    return _registry


def call_builtin(name: str, args: List[Any]) -> Any:
    """
    Call a built-in function by name.

    Raises KeyError if the function does not exist.
    """
    func = get_builtin_registry().get_function(name)
    if func is None:
        raise KeyError(name)
    return func.implementation(*args)
