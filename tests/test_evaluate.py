"""Tests for constant evaluation."""

import math

import pytest

from dejumble.core.evaluate import (
    UNDEFINED,
    UNKNOWN,
    Known,
    binary_operation,
    evaluate,
    number_to_string,
    to_number,
    truthy,
    value_to_node,
)
from dejumble.core.scope import ScopeTracker


@pytest.fixture
def expr(parse):
    """Parse a single expression statement and return its expression."""

    def _expr(code: str):
        return parse(code).body[0].expression

    return _expr


class TestEvaluate:
    """Tests for evaluate."""

    @pytest.mark.parametrize("code, expected", [
        ('"a" + "b";', "ab"),
        ("[] + [];", ""),
        ("[] + {};", "[object Object]"),
        ("+[];", 0.0),
        ("!![];", True),
        ("![];", False),
        ('"5" * "2";', 10.0),
        ("[1, 2] + 3;", "1,23"),
        ("typeof undefined;", "undefined"),
        ("typeof null;", "object"),
        ("1 + true;", 2.0),
        ('"2" > "10";', True),
        ("null == undefined;", True),
        ('0 || "x";', "x"),
        ("~5;", -6.0),
        ("1 << 31;", -2147483648.0),
        ("void 0;", UNDEFINED),
    ])
    def test_known_values(self, expr, code, expected):
        """Test expressions built from literals."""
        assert evaluate(expr(code)) == Known(expected)

    def test_division_by_zero(self, expr):
        """Test 1 / 0 is Infinity and 0 / 0 is NaN."""
        assert evaluate(expr("1 / 0;")).value == math.inf
        assert math.isnan(evaluate(expr("0 / 0;")).value)

    @pytest.mark.parametrize("code", [
        "x + 1;",
        "typeof x;",
        "f();",
        "a.b;",
        "delete a;",
        '"a" in o;',
        "[...a] + 1;",
    ])
    def test_unknown(self, expr, code):
        """Test expressions whose value depends on the environment."""
        assert evaluate(expr(code)) is UNKNOWN

    def test_shadowed_undefined(self, parse):
        """Test undefined is only constant while unshadowed."""
        ast = parse("var undefined = 1; undefined + 1;")
        scope = ScopeTracker(ast).program_scope
        expression = ast.body[1].expression

        assert evaluate(expression, scope) is UNKNOWN
        assert isinstance(evaluate(expression), Known)


class TestCoercions:
    """Tests for JavaScript coercion helpers."""

    @pytest.mark.parametrize("value, expected", [
        (1.0, "1"),
        (0.1, "0.1"),
        (100.0, "100"),
        (1e21, "1e+21"),
        (1.5e300, "1.5e+300"),
        (1e-7, "1e-7"),
        (-2.5, "-2.5"),
        (-0.0, "0"),
        (math.nan, "NaN"),
        (-math.inf, "-Infinity"),
    ])
    def test_number_to_string(self, value, expected):
        """Test numbers print like Number.prototype.toString."""
        assert number_to_string(value) == expected

    @pytest.mark.parametrize("value, expected", [
        ("", 0.0),
        ("  42  ", 42.0),
        ("0x1f", 31.0),
        ("1e3", 1000.0),
        (None, 0.0),
        (True, 1.0),
        ([], 0.0),
        (["7"], 7.0),
    ])
    def test_to_number(self, value, expected):
        """Test ToNumber on primitives and arrays."""
        assert to_number(value) == expected

    def test_to_number_nan(self):
        """Test values that are not numbers."""
        assert math.isnan(to_number("12px"))
        assert math.isnan(to_number(UNDEFINED))

    @pytest.mark.parametrize("value, expected", [
        ("", False),
        ("0", True),
        (0.0, False),
        (math.nan, False),
        ([], True),
        (None, False),
        (UNDEFINED, False),
    ])
    def test_truthy(self, value, expected):
        """Test ToBoolean."""
        assert truthy(value) is expected

    def test_binary_operation(self):
        """Test equality and shift operators."""
        assert binary_operation("===", 1.0, 1) is True
        assert binary_operation("==", "1", 1.0) is True
        assert binary_operation("!==", "1", 1.0) is True
        assert binary_operation(">>>", -1.0, 0.0) == 4294967295.0

    def test_string_order_uses_utf16_units(self):
        """Test astral characters sort by their surrogates, below U+FF01."""
        assert binary_operation("<", "\U0001F600", "！") is True
        assert binary_operation(">", "\U0001F600", "！") is False
        assert binary_operation("<", "a", "b") is True


class TestValueToNode:
    """Tests for turning values back into nodes."""

    def test_literals(self):
        """Test primitive values become literals."""
        assert value_to_node("x").type == "StringLiteral"
        assert value_to_node(True).type == "BooleanLiteral"
        assert value_to_node(None).type == "NullLiteral"
        assert value_to_node(3.0).value == 3

    def test_values_without_literal_form(self):
        """Test negative numbers, NaN and Infinity become operator expressions."""
        negative = value_to_node(-1.0)
        assert negative.type == "UnaryExpression" and negative.argument.value == 1
        assert value_to_node(math.nan).type == "BinaryExpression"
        assert value_to_node(math.inf).type == "BinaryExpression"
        assert value_to_node(-math.inf).type == "UnaryExpression"

    def test_undefined(self):
        """Test undefined becomes the identifier."""
        assert value_to_node(UNDEFINED).name == "undefined"
