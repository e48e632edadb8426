"""
.kot language engine.

A script is read one line at a time. Each non-blank line is classified once into a
statement object and dispatched to its handler; handler failures become a single
output line and the run always moves on to the next line.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Tuple, Type

from kot_expr import (
    ConditionEvaluator,
    ExpressionEvaluator,
    extract_condition,
    interpolate,
    java_split,
    resolve_value,
)
from kot_values import (
    LIST_OVERFLOW_WARNING,
    BoolValue,
    DoubleValue,
    InputUnavailable,
    IntValue,
    KotError,
    ListValue,
    ParseError,
    StringValue,
    UndefinedVariable,
    UnknownStatement,
    UnsupportedType,
    Value,
    VariableStore,
    check_name,
    parse_bool,
    parse_double,
    parse_int,
)
from settings import log_debug

SCALAR_TYPES = ("int", "double", "string", "bool")


@dataclass(frozen=True)
class Statement:
    line: str


@dataclass(frozen=True)
class Declaration(Statement):
    kind: str
    name: str
    raw: str


@dataclass(frozen=True)
class ListDeclaration(Statement):
    name: Optional[str]
    rest: str


@dataclass(frozen=True)
class Input(Statement):
    name: str


@dataclass(frozen=True)
class TypedInput(Statement):
    name: str
    target_type: str


@dataclass(frozen=True)
class TypeQuery(Statement):
    name: str


@dataclass(frozen=True)
class Conditional(Statement):
    condition: str


@dataclass(frozen=True)
class Print(Statement):
    content: str


@dataclass(frozen=True)
class InlinePrint(Statement):
    content: str


@dataclass(frozen=True)
class Assignment(Statement):
    parts: Tuple[str, ...]


@dataclass(frozen=True)
class Unknown(Statement):
    pass


def _angle_name(line: str) -> Optional[Tuple[str, str]]:
    """Split ``kind<name>rest`` into (name, rest) using the first < and first >."""
    start = line.find("<") + 1
    end = line.find(">")
    if start == 0 or end < start:
        return None
    return line[start:end], line[end + 1:]


def classify(line: str) -> Statement:
    """Match a trimmed, non-blank line against the statement shapes in priority order."""
    for kind in SCALAR_TYPES:
        if line.startswith(kind + "<") and ">" in line:
            name, rest = _angle_name(line)
            return Declaration(line, kind, name, rest.strip())

    if line.startswith("<in>(") and line.endswith(")"):
        return Input(line, line[5:-1].strip())

    if line.startswith("<in>(") and ").to<" in line and line.endswith(">"):
        marker = line.index(").to<")
        return TypedInput(line, line[5:marker].strip(), line[marker + 5:-1].strip())

    if line.startswith("type<") and ">" in line:
        name, _ = _angle_name(line)
        return TypeQuery(line, name)

    if line.startswith("list<") and ")" in line:
        parsed = _angle_name(line)
        if parsed is None:
            return ListDeclaration(line, None, "")
        return ListDeclaration(line, parsed[0], parsed[1])

    if line.startswith("if (") and ") {" in line:
        return Conditional(line, extract_condition(line))

    if line.startswith("(") and line.endswith(")"):
        return Print(line, line[1:-1].strip())

    if line.startswith("f(") and line.endswith(")"):
        return InlinePrint(line, line[2:-1].strip())

    if "=" in line:
        return Assignment(line, tuple(java_split(line, "=")))

    return Unknown(line)


# Output line for failures that were not anticipated by a handler.
_FAILURE_MESSAGES: Dict[Type[Statement], str] = {
    Declaration: "Error parsing line",
    ListDeclaration: "Error parsing list command",
    Input: "Error parsing input command",
    TypedInput: "Error parsing type casting input command",
    TypeQuery: "Error parsing type command",
    Conditional: "Error parsing if statement",
    Print: "Error parsing print command",
    InlinePrint: "Error in inline print",
    Assignment: "Error in assignment",
    Unknown: "Unknown command",
}


class OutputSink(Protocol):
    def clear(self) -> None: ...

    def append(self, line: str) -> None: ...


class InputProvider(Protocol):
    def request(self, prompt: str) -> Optional[str]: ...


class OutputBuffer:
    """Append-only list of output lines."""

    def __init__(self) -> None:
        self.lines: List[str] = []

    def clear(self) -> None:
        self.lines.clear()

    def append(self, line: str) -> None:
        self.lines.append(line)

    def getvalue(self) -> str:
        return "".join(line + "\n" for line in self.lines)


class ListInputProvider:
    def __init__(self, inputs: Optional[List[str]] = None) -> None:
        self.inputs = list(inputs or [])
        self.prompts: List[str] = []
        self._input_index = 0

    # Input is pulled from the supplied list for deterministic execution.
    def request(self, prompt: str) -> Optional[str]:
        self.prompts.append(prompt)
        if self._input_index < len(self.inputs):
            raw = self.inputs[self._input_index]
            self._input_index += 1
            return str(raw)
        return None


def route_terminal_command(command: str, output: OutputSink) -> None:
    command = command.strip()
    if command == "clear":
        output.clear()
    else:
        output.append(f"Unknown command: {command}")


class RunState(enum.Enum):
    NORMAL = "normal"
    SKIPPING = "skipping"


class KotInterpreter:
    """
    Tree-less interpreter for .kot scripts.

    Conditionals are a two-state machine: a false ``if (...) {`` switches to
    SKIPPING, which discards every line until one that is exactly ``}``. Blocks do
    not nest; the first ``}`` always ends the skip. When the condition is true the
    body simply runs in NORMAL state and its closing ``}`` is reported as an
    unknown command, as existing scripts expect.
    """

    def __init__(
        self,
        output: Optional[OutputSink] = None,
        input_provider: Optional[InputProvider] = None,
        arithmetic: Optional[str] = None,
    ) -> None:
        self.output = output if output is not None else OutputBuffer()
        self.input_provider = input_provider if input_provider is not None else ListInputProvider()
        self.store = VariableStore()
        self.evaluator = ExpressionEvaluator(self.store, arithmetic)
        self.conditions = ConditionEvaluator(self.store)
        self.state = RunState.NORMAL

    def interpret(self, code: str) -> None:
        self.output.clear()
        self.store.clear()
        self.state = RunState.NORMAL

        lines = code.split("\n")
        log_debug(f"Run started: {len(lines)} lines, arithmetic={self.evaluator.arithmetic}")

        for raw_line in lines:
            line = raw_line.strip()
            if not line:
                continue

            if self.state is RunState.SKIPPING:
                if line == "}":
                    self.state = RunState.NORMAL
                continue

            self.execute(classify(line))

    def execute(self, statement: Statement) -> None:
        try:
            self._dispatch(statement)
        except KotError as exc:
            self._report(statement, str(exc))
        except Exception as exc:  # noqa: BLE001
            log_debug(f"Unexpected {type(exc).__name__} in {statement.line!r}: {exc}")
            self._report(statement, f"{_FAILURE_MESSAGES[type(statement)]}: {statement.line}")

    def _report(self, statement: Statement, message: str) -> None:
        log_debug(f"Statement failed: {statement.line!r} -> {message}")
        self.output.append(message)
        # A condition that cannot be evaluated counts as false.
        if isinstance(statement, Conditional):
            self.state = RunState.SKIPPING

    def _dispatch(self, statement: Statement) -> None:
        match statement:
            case Declaration():
                self._declare_scalar(statement)
            case ListDeclaration():
                self._declare_list(statement)
            case Input():
                self._input(statement)
            case TypedInput():
                self._typed_input(statement)
            case TypeQuery(name=name):
                value = self._lookup(name)
                self.output.append(f"{name} is of type: {value.type_name}")
            case Conditional(condition=condition):
                if not self.conditions.evaluate(condition):
                    self.state = RunState.SKIPPING
            case Print():
                self._print(statement)
            case InlinePrint():
                self._inline_print(statement)
            case Assignment():
                self._assign(statement)
            case Unknown(line=line):
                log_debug(f"No statement shape matches {line!r}")
                raise UnknownStatement(line)
            case _:
                raise TypeError(f"Unhandled statement: {statement!r}")

    def _lookup(self, name: str) -> Value:
        value = self.store.get(name)
        if value is None:
            raise UndefinedVariable(name)
        return value

    def _checked_name(self, name: Optional[str], failure: str) -> str:
        if not name:
            raise ParseError(failure)
        check_name(name)
        return name

    # -- declarations --
    def _declare_scalar(self, statement: Declaration) -> None:
        failure = f"Error parsing line: {statement.line}"
        name = self._checked_name(statement.name, failure)
        try:
            value = _parse_scalar(statement.kind, statement.raw)
        except ParseError:
            # Bad booleans keep their own message.
            if statement.kind == "bool":
                raise
            raise ParseError(failure)

        self.store.declare(name, value)

    def _declare_list(self, statement: ListDeclaration) -> None:
        failure = f"Error parsing list command: {statement.line}"
        name = self._checked_name(statement.name, failure)

        rest = statement.rest
        paren = rest.find("(")
        if paren < 0 or paren + 1 > len(rest) - 1:
            raise ParseError(failure)
        try:
            capacity = parse_int(rest[:paren].strip())
        except ParseError:
            raise ParseError(failure)

        items: List[Value] = []
        overflow = False
        for element in java_split(rest[paren + 1:-1], ","):
            if len(items) >= capacity:
                overflow = True
                break
            items.append(StringValue(element.strip()))

        if overflow:
            self.output.append(LIST_OVERFLOW_WARNING)
        self.store.declare(name, ListValue(tuple(items), capacity))

    # -- input --
    def _input(self, statement: Input) -> None:
        failure = f"Error parsing input command: {statement.line}"
        name = self._checked_name(statement.name, failure)

        log_debug(f"Requesting input for {name}")
        raw = self.input_provider.request(f"Enter value for {name}:")
        if raw is None:
            raise InputUnavailable(name)
        try:
            value = DoubleValue(parse_double(raw)) if "." in raw else IntValue(parse_int(raw))
        except ParseError:
            raise ParseError(failure)

        self.store.declare(name, value)

    def _typed_input(self, statement: TypedInput) -> None:
        failure = f"Error parsing type casting input command: {statement.line}"
        name = self._checked_name(statement.name, failure)
        target = statement.target_type
        if target not in SCALAR_TYPES:
            raise UnsupportedType(target)

        log_debug(f"Requesting {target} input for {name}")
        raw = self.input_provider.request(f"Enter value for {name} (type: {target}):")
        if raw is None:
            raise InputUnavailable(name)
        try:
            value = _parse_scalar(target, raw)
        except ParseError:
            raise ParseError(failure)

        self.store.declare(name, value)

    # -- output --
    def _print(self, statement: Print) -> None:
        content = statement.content
        if len(content) >= 2 and content.startswith('"') and content.endswith('"'):
            self.output.append(content[1:-1])
        else:
            self.output.append(self._lookup(content).text())

    def _inline_print(self, statement: InlinePrint) -> None:
        try:
            text = interpolate(statement.content, self.evaluator.evaluate)
        except KotError as exc:
            log_debug(f"Inline print failed: {exc}")
            raise ParseError(f"Error in inline print: {statement.line}")
        self.output.append(text)

    def _assign(self, statement: Assignment) -> None:
        if len(statement.parts) != 2:
            raise ParseError(f"Invalid assignment: {statement.line}")
        name = statement.parts[0].strip()
        if name not in self.store:
            raise UndefinedVariable(name)
        self.store.assign(name, resolve_value(statement.parts[1].strip(), self.store))


def _parse_scalar(kind: str, raw: str) -> Value:
    """Build a scalar from declaration or input text: trimmed, and strings lose one pair of quotes."""
    raw = raw.strip()
    if kind == "int":
        return IntValue(parse_int(raw))
    if kind == "double":
        return DoubleValue(parse_double(raw))
    if kind == "bool":
        return BoolValue(parse_bool(raw))
    if len(raw) >= 2 and raw.startswith('"') and raw.endswith('"'):
        raw = raw[1:-1]
    return StringValue(raw)


def run_kot_code(
    code: str, inputs: Optional[List[str]] = None, arithmetic: Optional[str] = None
) -> Dict[str, object]:
    provider = ListInputProvider(inputs)
    try:
        interpreter = KotInterpreter(input_provider=provider, arithmetic=arithmetic)
    except ValueError as exc:
        return {"ok": False, "error": str(exc), "kot": code}

    interpreter.interpret(code)
    return {
        "ok": True,
        "output": interpreter.output.getvalue(),
        "lines": list(interpreter.output.lines),
        "prompts": list(provider.prompts),
        "kot": code,
    }


def analyze_kot_code(code: str) -> Dict[str, object]:
    """Classify every line without running it and report lines no statement shape accepts."""
    diagnostics: List[Dict[str, object]] = []
    block_open = False

    for line_no, raw_line in enumerate(code.split("\n"), start=1):
        line = raw_line.strip()
        if not line:
            continue
        if line == "}":
            if not block_open:
                diagnostics.append({"line": line_no, "message": "Unmatched }"})
            block_open = False
            continue

        statement = classify(line)
        if isinstance(statement, Conditional):
            if block_open:
                diagnostics.append({"line": line_no, "message": "Nested if blocks are not supported"})
            block_open = True
        elif isinstance(statement, Unknown):
            diagnostics.append({"line": line_no, "message": f"Unknown command: {line}"})

    if block_open:
        diagnostics.append({"line": None, "message": "if block is never closed with }"})
    return {"ok": not diagnostics, "diagnostics": diagnostics}
