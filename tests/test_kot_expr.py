import pytest

from kot_expr import (
    ConditionEvaluator,
    ExpressionEvaluator,
    extract_condition,
    interpolate,
    java_split,
    resolve_value,
)
from kot_values import DoubleValue, IntValue, ParseError, StringValue, VariableStore


@pytest.fixture
def store():
    return VariableStore()


def evaluator(store, mode):
    return ExpressionEvaluator(store, arithmetic=mode)


def test_java_split_drops_trailing_empty_parts():
    assert java_split("1+2+", "+") == ["1", "2"]
    assert java_split("-5", "-") == ["", "5"]
    assert java_split("", ",") == [""]
    assert java_split("+", "+") == []


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("1+2+3", "3.0"),
        ("2+3*4", "14.0"),
        ("10-2-3", "8.0"),
        ("7/2", "3.5"),
        ("1/0", "Infinity"),
        ("0/0", "NaN"),
        (" 4 ", "4.0"),
    ],
)
def test_legacy_reducer(store, expression, expected):
    assert evaluator(store, "legacy").evaluate(expression) == expected


@pytest.mark.parametrize("expression", ["-5", "5-", "abc", "2+", ""])
def test_legacy_reducer_failures(store, expression):
    with pytest.raises(ParseError):
        evaluator(store, "legacy").evaluate(expression)


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("1+2+3", "6.0"),
        ("2-3*4", "-10.0"),
        ("(1+2)*3", "9.0"),
        ("-5+2", "-3.0"),
        ("10-2-3", "5.0"),
        ("8/4/2", "1.0"),
        ("1/0", "Infinity"),
    ],
)
def test_standard_reducer(store, expression, expected):
    assert evaluator(store, "standard").evaluate(expression) == expected


@pytest.mark.parametrize("expression", ["2*(3", "1 2", "2+", "*3", "a+1", ""])
def test_standard_reducer_failures(store, expression):
    with pytest.raises(ParseError):
        evaluator(store, "standard").evaluate(expression)


@pytest.mark.parametrize("mode", ["legacy", "standard"])
def test_variables_are_substituted(store, mode):
    store.declare("x", IntValue(5))
    assert evaluator(store, mode).evaluate("x") == "5.0"
    assert evaluator(store, mode).evaluate("x+1") == "6.0"


def test_negative_variable_only_works_in_standard_mode(store):
    store.declare("x", IntValue(-3))
    assert evaluator(store, "standard").evaluate("2-x") == "5.0"
    with pytest.raises(ParseError):
        evaluator(store, "legacy").evaluate("2-x")


@pytest.mark.parametrize("mode", ["legacy", "standard"])
@pytest.mark.parametrize(
    "expression, expected",
    [
        ("pow(2,3)", "8.0"),
        ("pow(2, 0.5*2)", "2.0"),
        ("sqrt(16)", "4.0"),
        ("log[2](8)", "3.0"),
        ("pow(sqrt(4), 3)", "8.0"),
        ("pow(2, sqrt(9))", "8.0"),
        ("sqrt(0-1)", "NaN"),
        ("log[2](0)", "-Infinity"),
    ],
)
def test_builtins(store, mode, expression, expected):
    assert evaluator(store, mode).evaluate(expression) == expected


@pytest.mark.parametrize("mode", ["legacy", "standard"])
def test_builtin_arguments_see_variables(store, mode):
    store.declare("x", IntValue(5))
    assert evaluator(store, mode).evaluate("sqrt(x+11)") == "4.0"


def test_legacy_second_pass_replaces_plain_text(store):
    store.declare("a", IntValue(1))
    # "ab" is not a variable, but its leading "a" still gets replaced.
    with pytest.raises(ParseError):
        evaluator(store, "legacy").evaluate("ab+1")

    store.declare("1", IntValue(5))
    assert evaluator(store, "legacy").evaluate("10+1") == "55.0"
    assert evaluator(store, "standard").evaluate("10+1") == "11.0"


def test_legacy_builtin_takes_over_whole_expression(store):
    assert evaluator(store, "legacy").evaluate("1+pow(2,3)") == "8.0"
    assert evaluator(store, "standard").evaluate("1+pow(2,3)") == "9.0"


@pytest.mark.parametrize("expression", ["pow(2)", "sqrt(4", "log[2]8", "log[2(8)"])
def test_malformed_builtins(store, expression):
    with pytest.raises(ParseError):
        evaluator(store, "legacy").evaluate(expression)


def test_unknown_mode_is_rejected(store):
    with pytest.raises(ValueError):
        ExpressionEvaluator(store, arithmetic="bogus")


def test_mode_comes_from_environment(store, monkeypatch):
    monkeypatch.setenv("KOT_ARITHMETIC", "standard")
    assert ExpressionEvaluator(store).arithmetic == "standard"
    monkeypatch.delenv("KOT_ARITHMETIC")
    assert ExpressionEvaluator(store).arithmetic == "legacy"


def test_resolve_value(store):
    store.declare("name", StringValue("kot"))
    assert resolve_value("name", store) == StringValue("kot")
    assert resolve_value("5", store) == IntValue(5)
    assert resolve_value("2.5", store) == DoubleValue(2.5)
    assert resolve_value("abc", store) == StringValue("abc")
    assert resolve_value("1.2.3", store) == StringValue("1.2.3")


def test_extract_condition_fixes_reversed_operator():
    assert extract_condition("if (x=<3) {") == "x<=3"
    assert extract_condition("if ( a > b ) {") == "a > b"


@pytest.mark.parametrize(
    "condition, expected",
    [
        ("x>3", True),
        ("3>5", False),
        ("x>=9", True),
        ("x==9.0", True),
        ("x<=8", False),
        ("x<10", True),
    ],
)
def test_condition(store, condition, expected):
    store.declare("x", IntValue(9))
    assert ConditionEvaluator(store).evaluate(condition) is expected


def test_condition_compares_strings_numerically(store):
    store.declare("s", StringValue("12"))
    assert ConditionEvaluator(store).evaluate("s>3") is True


@pytest.mark.parametrize(
    "condition, message",
    [
        ("x", "Invalid condition: x"),
        ("x=5", "Invalid condition: x=5"),
        ("5>", "Error parsing condition: 5>"),
        ("1<2<3", "Error parsing condition: 1<2<3"),
        ("a>b", "Error comparing values: a and b"),
    ],
)
def test_condition_errors(store, condition, message):
    with pytest.raises(ParseError) as excinfo:
        ConditionEvaluator(store).evaluate(condition)
    assert str(excinfo.value) == message


def _mark(text):
    return f"<{text}>"


def test_interpolate_splices_spans():
    assert interpolate("a {x} b {y+1}", _mark) == "a <x> b <y+1>"
    assert interpolate("no spans", _mark) == "no spans"
    assert interpolate("", _mark) == ""


def test_interpolate_literal_braces():
    assert interpolate("{{x}}", _mark) == "{x}"
    assert interpolate("a } b", _mark) == "a } b"


@pytest.mark.parametrize("content", ["{x", "{a{b}}", "{ }", "a {"])
def test_interpolate_rejects_malformed_spans(content):
    with pytest.raises(ParseError):
        interpolate(content, _mark)
