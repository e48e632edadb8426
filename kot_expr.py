"""
Expression evaluation for .kot scripts.

Two arithmetic reducers are available. ``legacy`` reproduces the behaviour existing
.kot scripts were written against: operators are tried in the fixed order + - * /,
the text is split on the first operator found and only the first two segments are
combined, so ``1+2+3`` is 3.0. ``standard`` is a precedence-climbing parser with
the usual precedence, left associativity, parentheses and unary minus.

Built-in functions are ``pow(a,b)``, ``sqrt(x)`` and ``log[base](x)``. Results are
always floats, rendered with :func:`kot_values.format_double`.
"""

from __future__ import annotations

import math
import operator
import re
from typing import Callable, Dict, List, Optional, Tuple

from kot_values import (
    DoubleValue,
    IntValue,
    ParseError,
    StringValue,
    Value,
    VariableStore,
    format_double,
    parse_double,
    parse_int,
)
from settings import ARITHMETIC_MODES, arithmetic_mode, log_debug

IDENTIFIER_RE = re.compile(r"[a-zA-Z_][a-zA-Z_0-9]*")
_TOKEN_RE = re.compile(r"\s*(?:(NaN|Infinity|(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?)|(\S))")

BUILTIN_NAMES = ("pow", "sqrt", "log")
_BUILTIN_MARKERS = {"pow": "pow(", "sqrt": "sqrt(", "log": "log["}

# Checked in this order; ">=" must win over ">" so it is never read as ">" then "=".
CONDITION_OPERATORS = (">=", "<=", "==", ">", "<")
_COMPARE: Dict[str, Callable[[float, float], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    "==": operator.eq,
    ">": operator.gt,
    "<": operator.lt,
}


def java_split(text: str, separator: str) -> List[str]:
    """Split like the legacy engine did: trailing empty segments are dropped."""
    if text == "":
        return [""]
    parts = text.split(separator)
    while parts and parts[-1] == "":
        parts.pop()
    return parts


# Float arithmetic that yields NaN/Infinity instead of raising, as .kot output always has.
def divide(left: float, right: float) -> float:
    if right == 0:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)
    return left / right


def power(base: float, exponent: float) -> float:
    try:
        return math.pow(base, exponent)
    except OverflowError:
        if base < 0 and exponent.is_integer() and int(exponent) % 2 == 1:
            return -math.inf
        return math.inf
    except ValueError:
        return math.nan


def square_root(value: float) -> float:
    if math.isnan(value) or value < 0:
        return math.nan
    return math.sqrt(value)


def natural_log(value: float) -> float:
    if math.isnan(value) or value < 0:
        return math.nan
    if value == 0:
        return -math.inf
    return math.log(value)


_APPLY: Dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": divide,
}
_PRECEDENCE = {"+": 1, "-": 1, "*": 2, "/": 2}


def resolve_value(token: str, store: VariableStore) -> Value:
    """Variable lookup, else a numeric literal, else the raw text."""
    existing = store.get(token)
    if existing is not None:
        return existing
    try:
        if "." in token:
            return DoubleValue(parse_double(token))
        return IntValue(parse_int(token))
    except ParseError:
        return StringValue(token)


def extract_condition(line: str) -> str:
    line = line.replace("=<", "<=")
    start = line.index("(") + 1
    end = line.index(")")
    return line[start:end].strip()


def _enclosed(text: str, start: int, opener: str, closer: str) -> Tuple[str, int]:
    """Return the text inside the bracket at ``start`` and the index of its partner."""
    depth = 0
    for index in range(start, len(text)):
        char = text[index]
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start + 1:index], index
    raise ParseError(f"Unbalanced {opener}{closer} in: {text}")


def _split_top_level_comma(text: str) -> Tuple[str, str]:
    depth = 0
    for index, char in enumerate(text):
        if char in "([":
            depth += 1
        elif char in ")]":
            depth -= 1
        elif char == "," and depth == 0:
            return text[:index], text[index + 1:]
    raise ParseError(f"Invalid pow expression: {text}")


def parse_builtin_call(text: str, name: str, start: int) -> Tuple[List[str], int]:
    """Parse the builtin call beginning at ``start``; returns its argument texts and end index."""
    if name == "pow":
        inner, close = _enclosed(text, start + 3, "(", ")")
        base, exponent = _split_top_level_comma(inner)
        return [base.strip(), exponent.strip()], close + 1
    if name == "sqrt":
        inner, close = _enclosed(text, start + 4, "(", ")")
        return [inner.strip()], close + 1
    if name == "log":
        base, bracket_close = _enclosed(text, start + 3, "[", "]")
        if not text.startswith("(", bracket_close + 1):
            raise ParseError(f"Invalid log expression: {text}")
        value, close = _enclosed(text, bracket_close + 1, "(", ")")
        return [base.strip(), value.strip()], close + 1
    raise ParseError(f"Unknown builtin: {name}")


def apply_builtin(name: str, args: List[float]) -> float:
    if name == "pow":
        return power(args[0], args[1])
    if name == "sqrt":
        return square_root(args[0])
    # log[base](x) = ln(x) / ln(base)
    return divide(natural_log(args[1]), natural_log(args[0]))


class _ArithmeticParser:
    """Precedence climbing over + - * / with parentheses and unary signs."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = self._tokenize(text)
        self.position = 0

    def _tokenize(self, text: str) -> List[str]:
        tokens: List[str] = []
        for match in _TOKEN_RE.finditer(text):
            number, symbol = match.group(1), match.group(2)
            if number is not None:
                tokens.append(number)
            elif symbol is not None:
                if symbol not in "+-*/()":
                    raise ParseError(f"Unexpected character {symbol!r} in: {text}")
                tokens.append(symbol)
        return tokens

    def parse(self) -> float:
        if not self.tokens:
            raise ParseError(f"Empty expression: {self.text!r}")
        value = self._expression(1)
        if self.position != len(self.tokens):
            raise ParseError(f"Unexpected {self.tokens[self.position]!r} in: {self.text}")
        return value

    def _peek(self) -> Optional[str]:
        if self.position < len(self.tokens):
            return self.tokens[self.position]
        return None

    def _expression(self, min_precedence: int) -> float:
        left = self._unary()
        while True:
            token = self._peek()
            if token not in _PRECEDENCE or _PRECEDENCE[token] < min_precedence:
                return left
            self.position += 1
            right = self._expression(_PRECEDENCE[token] + 1)
            left = _APPLY[token](left, right)

    def _unary(self) -> float:
        token = self._peek()
        if token in ("-", "+"):
            self.position += 1
            operand = self._unary()
            return -operand if token == "-" else operand
        if token == "(":
            self.position += 1
            value = self._expression(1)
            if self._peek() != ")":
                raise ParseError(f"Missing ) in: {self.text}")
            self.position += 1
            return value
        if token is None or token in ("*", "/", ")"):
            raise ParseError(f"Missing operand in: {self.text}")
        self.position += 1
        return parse_double(token)


class ExpressionEvaluator:
    def __init__(self, store: VariableStore, arithmetic: Optional[str] = None) -> None:
        mode = arithmetic or arithmetic_mode()
        if mode not in ARITHMETIC_MODES:
            raise ValueError(f"Unknown arithmetic mode: {mode!r}")
        self.store = store
        self.arithmetic = mode

    def evaluate(self, expression: str) -> str:
        return format_double(self.evaluate_number(expression))

    def evaluate_number(self, expression: str) -> float:
        try:
            if self.arithmetic == "standard":
                return self._evaluate_standard(expression)
            return self._evaluate_legacy(expression)
        except RecursionError:
            log_debug(f"Recursion limit hit while evaluating {expression!r}")
            raise ParseError(f"Expression is too deeply nested: {expression}")

    def substitute(self, expression: str, skip: Tuple[str, ...] = ()) -> str:
        def _replace(match: re.Match) -> str:
            name = match.group(0)
            value = None if name in skip else self.store.get(name)
            return value.text() if value is not None else name

        return IDENTIFIER_RE.sub(_replace, expression)

    # Legacy mode: a builtin anywhere in the text takes over the whole expression.
    def _evaluate_legacy(self, expression: str) -> float:
        for name in BUILTIN_NAMES:
            start = expression.find(_BUILTIN_MARKERS[name])
            if start >= 0:
                args, _ = parse_builtin_call(expression, name, start)
                return apply_builtin(name, [self._evaluate_legacy(arg) for arg in args])
        return self._reduce_legacy(self.substitute(expression))

    def _reduce_legacy(self, expression: str) -> float:
        for name, value in self.store.items():
            expression = expression.replace(name, value.text())

        for symbol in ("+", "-", "*", "/"):
            if symbol in expression:
                parts = java_split(expression, symbol)
                if len(parts) < 2:
                    raise ParseError(f"Missing operand in: {expression}")
                left = self._reduce_legacy(parts[0].strip())
                right = self._reduce_legacy(parts[1].strip())
                return _APPLY[symbol](left, right)

        return parse_double(expression.strip())

    # Standard mode: builtins are reduced in place, innermost first, then parsed.
    def _evaluate_standard(self, expression: str) -> float:
        text = self._reduce_builtins(self.substitute(expression, skip=BUILTIN_NAMES))
        return _ArithmeticParser(text).parse()

    def _reduce_builtins(self, text: str) -> str:
        while True:
            # The call that starts last cannot contain another call, so it is innermost.
            start, name = max((text.rfind(_BUILTIN_MARKERS[n]), n) for n in BUILTIN_NAMES)
            if start < 0:
                return text
            args, end = parse_builtin_call(text, name, start)
            result = apply_builtin(name, [_ArithmeticParser(arg).parse() for arg in args])
            text = f"{text[:start]}({format_double(result)}){text[end:]}"


class ConditionEvaluator:
    """Evaluates the single comparison of an ``if (...) {`` line."""

    def __init__(self, store: VariableStore) -> None:
        self.store = store

    def evaluate(self, condition: str) -> bool:
        symbol = next((op for op in CONDITION_OPERATORS if op in condition), None)
        if symbol is None:
            raise ParseError(f"Invalid condition: {condition}")

        parts = java_split(condition, symbol)
        if len(parts) != 2:
            raise ParseError(f"Error parsing condition: {condition}")

        left = resolve_value(parts[0].strip(), self.store)
        right = resolve_value(parts[1].strip(), self.store)
        try:
            left_number = parse_double(left.text())
            right_number = parse_double(right.text())
        except ParseError:
            raise ParseError(f"Error comparing values: {left.text()} and {right.text()}")

        return _COMPARE[symbol](left_number, right_number)


def interpolate(content: str, evaluate: Callable[[str], str]) -> str:
    """
    Splice evaluated ``{expr}`` spans into literal text.

    Literal text is copied verbatim; ``{{`` and ``}}`` stand for single braces and a
    lone ``}`` is kept as is. Spans do not nest: a ``{`` inside a span, an empty span
    or a span left open at the end is a ParseError.
    """
    pieces: List[str] = []
    expression: List[str] = []
    in_span = False
    index = 0

    while index < len(content):
        char = content[index]
        if not in_span:
            if char in "{}" and content.startswith(char * 2, index):
                pieces.append(char)
                index += 2
                continue
            if char == "{":
                in_span = True
                expression = []
            else:
                pieces.append(char)
        elif char == "}":
            text = "".join(expression).strip()
            if not text:
                raise ParseError(f"Empty {{}} in: {content}")
            pieces.append(evaluate(text))
            in_span = False
        elif char == "{":
            raise ParseError(f"Nested {{ in: {content}")
        else:
            expression.append(char)
        index += 1

    if in_span:
        raise ParseError(f"Unclosed {{ in: {content}")
    return "".join(pieces)
