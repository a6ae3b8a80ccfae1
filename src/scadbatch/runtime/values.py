"""
Runtime values of the script language.

Values are plain Python objects:

- number: ``float``
- boolean: ``bool``
- string: ``str``
- vector: ``list``
- range: :class:`Range`
- undef: ``None``

Operations on incompatible values evaluate to undef rather than raising.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional

from ..lang.dumper import format_number, format_value

__all__ = [
    'Range', 'is_number', 'is_vector', 'to_bool', 'type_name', 'format_value',
    'add', 'subtract', 'multiply', 'divide', 'modulo', 'negate',
    'less', 'less_equal', 'greater', 'greater_equal', 'equals',
    'to_number', 'to_vector', 'to_int',
]

# Ranges with more elements than this are refused by iteration.
MAX_RANGE_ELEMENTS = 10000000


@dataclass(frozen=True)
class Range:
    """[begin : step : end], inclusive of ``end``."""
    begin: float
    step: float
    end: float

    def num_values(self) -> int:
        if self.step == 0 or math.isnan(self.begin + self.step + self.end):
            return 0
        if (self.step > 0 and self.begin > self.end) or (self.step < 0 and self.begin < self.end):
            return 0
        return int(math.floor((self.end - self.begin) / self.step + 1e-9)) + 1

    def __iter__(self) -> Iterator[float]:
        count = self.num_values()
        if count > MAX_RANGE_ELEMENTS:
            return iter(())
        return (self.begin + i * self.step for i in range(count))

    def __str__(self) -> str:
        return (f"[{format_number(self.begin)} : {format_number(self.step)}"
                f" : {format_number(self.end)}]")


def make_range(begin: Any, end: Any, step: Any = None) -> Optional[Range]:
    """Build a range; a missing step is 1. Non-numeric bounds yield undef."""
    if step is None:
        step = 1.0
    if not (is_number(begin) and is_number(end) and is_number(step)):
        return None
    begin, end, step = float(begin), float(end), float(step)
    if step == 1.0 and end < begin:
        # [b:e] with e < b is swapped
        begin, end = end, begin
    return Range(begin, step, end)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_vector(value: Any) -> bool:
    return isinstance(value, list)


def to_bool(value: Any) -> bool:
    """Truth value: undef, false, 0, "" and [] are false."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    if isinstance(value, (str, list)):
        return len(value) > 0
    return True


def type_name(value: Any) -> str:
    if value is None:
        return 'undef'
    if isinstance(value, bool):
        return 'bool'
    if is_number(value):
        return 'number'
    if isinstance(value, str):
        return 'string'
    if isinstance(value, list):
        return 'vector'
    if isinstance(value, Range):
        return 'range'
    return type(value).__name__


# --- Arithmetic ---

def _is_number_vector(value: Any) -> bool:
    return isinstance(value, list) and all(is_number(v) for v in value)


def _is_matrix(value: Any) -> bool:
    return (isinstance(value, list) and len(value) > 0
            and all(_is_number_vector(row) and len(row) == len(value[0]) for row in value)
            and len(value[0]) > 0)


def _elementwise(a: list, b: list, op) -> list:
    result = []
    for x, y in zip(a, b):
        result.append(op(x, y))
    return result


def add(a: Any, b: Any) -> Any:
    if is_number(a) and is_number(b):
        return float(a) + float(b)
    if is_vector(a) and is_vector(b):
        return _elementwise(a, b, add)
    return None


def subtract(a: Any, b: Any) -> Any:
    if is_number(a) and is_number(b):
        return float(a) - float(b)
    if is_vector(a) and is_vector(b):
        return _elementwise(a, b, subtract)
    return None


def multiply(a: Any, b: Any) -> Any:
    if is_number(a) and is_number(b):
        return float(a) * float(b)
    if is_number(a) and is_vector(b):
        return [multiply(a, v) for v in b]
    if is_vector(a) and is_number(b):
        return [multiply(v, b) for v in a]
    if _is_number_vector(a) and _is_number_vector(b):
        if len(a) != len(b):
            return None
        return float(sum(float(x) * float(y) for x, y in zip(a, b)))
    if _is_matrix(a) and _is_number_vector(b):
        # matrix * column vector
        if len(a[0]) != len(b):
            return None
        return [multiply(row, b) for row in a]
    if _is_number_vector(a) and _is_matrix(b):
        # row vector * matrix
        if len(a) != len(b):
            return None
        return [float(sum(a[i] * b[i][j] for i in range(len(a)))) for j in range(len(b[0]))]
    if _is_matrix(a) and _is_matrix(b):
        if len(a[0]) != len(b):
            return None
        return [[float(sum(row[k] * b[k][j] for k in range(len(b))))
                 for j in range(len(b[0]))] for row in a]
    return None


def divide(a: Any, b: Any) -> Any:
    if is_number(a) and is_number(b):
        a, b = float(a), float(b)
        if b == 0:
            if a == 0:
                return math.nan
            return math.copysign(math.inf, a) * math.copysign(1.0, b)
        return a / b
    if is_vector(a) and is_number(b):
        return [divide(v, b) for v in a]
    if is_number(a) and is_vector(b):
        return [divide(a, v) for v in b]
    return None


def modulo(a: Any, b: Any) -> Any:
    if is_number(a) and is_number(b):
        if b == 0:
            return math.nan
        return math.fmod(float(a), float(b))
    return None


def negate(a: Any) -> Any:
    if is_number(a):
        return -float(a)
    if is_vector(a):
        return [negate(v) for v in a]
    return None


# --- Comparison ---

def _ordered(a: Any, b: Any) -> bool:
    return (is_number(a) and is_number(b)) or (isinstance(a, str) and isinstance(b, str))


def less(a: Any, b: Any) -> bool:
    return _ordered(a, b) and a < b


def less_equal(a: Any, b: Any) -> bool:
    return _ordered(a, b) and a <= b


def greater(a: Any, b: Any) -> bool:
    return _ordered(a, b) and a > b


def greater_equal(a: Any, b: Any) -> bool:
    return _ordered(a, b) and a >= b


def equals(a: Any, b: Any) -> bool:
    if is_number(a) and is_number(b):
        return float(a) == float(b)
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if is_vector(a) and is_vector(b):
        return len(a) == len(b) and all(equals(x, y) for x, y in zip(a, b))
    return type(a) is type(b) and a == b


# --- Conversions used by builtin modules ---

def to_number(value: Any, default: Optional[float] = None) -> Optional[float]:
    if is_number(value):
        return float(value)
    return default


def to_int(value: Any, default: int) -> int:
    if is_number(value) and math.isfinite(value):
        return int(value)
    return default


def to_vector(value: Any, size: int, default: float = 0.0) -> Optional[List[float]]:
    """
    Read a numeric vector, padding missing components with ``default``.

    Returns None if ``value`` is not a vector of numbers.
    """
    if not _is_number_vector(value):
        return None
    result = [float(v) for v in value[:size]]
    result.extend([default] * (size - len(result)))
    return result
