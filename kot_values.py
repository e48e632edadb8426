"""
Runtime values, the per-run variable store and the error taxonomy of the .kot language.
"""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterator, Optional, Tuple


RESERVED_KEYWORDS = frozenset({"int", "double", "string", "bool", "type", "list", "in", "to"})

LIST_OVERFLOW_WARNING = "Warning: List exceeded max size. Remaining elements ignored."

_INT_RE = re.compile(r"[+-]?[0-9]+")
_DOUBLE_RE = re.compile(r"[+-]?(NaN|Infinity|([0-9]+\.?[0-9]*|\.[0-9]+)([eE][+-]?[0-9]+)?)[fFdD]?")

_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1


class KotError(Exception):
    """Base class for statement-level failures; the message is the output line."""


class ReservedKeyword(KotError):
    """Raised when a declaration or input targets a reserved keyword."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Error: {name} is a reserved keyword.")
        self.name = name


class UndefinedVariable(KotError):
    """Raised when a statement reads or assigns a name that was never declared."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Undefined variable: {name}")
        self.name = name


class ParseError(KotError):
    """Raised when a declaration, condition or expression cannot be understood."""


class UnsupportedType(KotError):
    """Raised when a typed input asks for a type the language does not have."""

    def __init__(self, type_name: str) -> None:
        super().__init__(f"Error: Unsupported target type {type_name}.")
        self.type_name = type_name


class UnknownStatement(KotError):
    """Raised when a source line matches no statement shape."""

    def __init__(self, line: str) -> None:
        super().__init__(f"Unknown command: {line}")
        self.line = line


class InputUnavailable(KotError):
    """Raised when the input provider returns no value for an input statement."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No input supplied for {name}")
        self.name = name


# Number parsing follows the legacy engine: 32-bit integers, no underscores or "inf" spellings.
def parse_int(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ParseError(f"Not an integer: {text}")
    value = int(text)
    if value < _INT_MIN or value > _INT_MAX:
        raise ParseError(f"Integer out of range: {text}")
    return value


def parse_double(text: str) -> float:
    stripped = text.strip()
    match = _DOUBLE_RE.fullmatch(stripped)
    if not match:
        raise ParseError(f"Not a number: {text}")
    core = match.group(1)
    if core == "NaN":
        return math.nan
    if core == "Infinity":
        return -math.inf if stripped.startswith("-") else math.inf
    return float(stripped.rstrip("fFdD"))


def parse_bool(text: str) -> bool:
    if text == "true":
        return True
    if text == "false":
        return False
    raise ParseError(f"Error: Invalid boolean value: {text}")


def format_double(value: float) -> str:
    """Render a float the way existing .kot output shows it (5.0, 0.25, 1.0E10, NaN)."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "-0.0" if math.copysign(1.0, value) < 0 else "0.0"

    magnitude = abs(value)
    if 1e-3 <= magnitude < 1e7:
        text = repr(value)
        return text if "." in text else text + ".0"

    sign, digits, exponent = Decimal(repr(value)).normalize().as_tuple()
    scientific_exp = len(digits) + exponent - 1
    head = str(digits[0])
    tail = "".join(str(d) for d in digits[1:]) or "0"
    return f"{'-' if sign else ''}{head}.{tail}E{scientific_exp}"


@dataclass(frozen=True)
class Value(ABC):
    """Abstract runtime value; only the concrete kinds below are instantiated."""

    type_name = "Object"

    @abstractmethod
    def text(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class IntValue(Value):
    data: int
    type_name = "Integer"

    def text(self) -> str:
        return str(self.data)


@dataclass(frozen=True)
class DoubleValue(Value):
    data: float
    type_name = "Double"

    def text(self) -> str:
        return format_double(self.data)


@dataclass(frozen=True)
class BoolValue(Value):
    data: bool
    type_name = "Boolean"

    def text(self) -> str:
        return "true" if self.data else "false"


@dataclass(frozen=True)
class StringValue(Value):
    data: str
    type_name = "String"

    def text(self) -> str:
        return self.data


@dataclass(frozen=True)
class ListValue(Value):
    items: Tuple[Value, ...]
    capacity: int
    type_name = "ArrayList"

    def text(self) -> str:
        return "[" + ", ".join(item.text() for item in self.items) + "]"


def check_name(name: str) -> None:
    if name in RESERVED_KEYWORDS:
        raise ReservedKeyword(name)


class VariableStore:
    """Name to Value mapping owned by a single interpreter run."""

    def __init__(self) -> None:
        self._variables: Dict[str, Value] = {}

    def declare(self, name: str, value: Value) -> None:
        self._variables[name] = value

    def assign(self, name: str, value: Value) -> None:
        if name not in self._variables:
            raise UndefinedVariable(name)
        self._variables[name] = value

    def get(self, name: str) -> Optional[Value]:
        return self._variables.get(name)

    def clear(self) -> None:
        self._variables.clear()

    def items(self) -> Iterator[Tuple[str, Value]]:
        return iter(list(self._variables.items()))

    def __contains__(self, name: object) -> bool:
        return name in self._variables

    def __len__(self) -> int:
        return len(self._variables)
