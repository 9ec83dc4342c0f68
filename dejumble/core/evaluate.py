"""Partial evaluation of constant JavaScript expressions.

:func:`evaluate` returns :class:`Known` when the expression's value follows
from literals alone under JavaScript's coercion rules, and :data:`UNKNOWN`
otherwise. Values are represented as:

=========== ==============================
JavaScript  Python
=========== ==============================
string      ``str``
boolean     ``bool``
number      ``float``
null        ``None``
undefined   :data:`UNDEFINED`
array       ``list`` of values
``{}``      :class:`JSObject`
=========== ==============================
"""

import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Union

from dejumble.core.nodes import (
    Node,
    array_expression,
    binary_expression,
    boolean_literal,
    identifier,
    null_literal,
    numeric_literal,
    string_literal,
    unary_expression,
)


class _Undefined:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"


UNDEFINED = _Undefined()


class JSObject:
    """A plain object value; only ``{}`` literals evaluate to one."""

    def __repr__(self) -> str:
        return "{}"


@dataclass(frozen=True)
class Known:
    value: Any


class Unknown:
    def __repr__(self) -> str:
        return "Unknown"


UNKNOWN = Unknown()

EvalResult = Union[Known, Unknown]


class _NotConstant(Exception):
    pass


# Coercions

_JS_WHITESPACE = (
    " \t\n\r\v\f\u00a0\u1680\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007"
    "\u2008\u2009\u200a\u2028\u2029\u202f\u205f\u3000\ufeff"
)
_DECIMAL_RE = re.compile(r"^[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)$")
_RADIX_RE = re.compile(r"^0(?:[xX](?P<hex>[0-9a-fA-F]+)|[oO](?P<oct>[0-7]+)|[bB](?P<bin>[01]+))$")


def js_type(value: Any) -> str:
    """The typeof-like tag of a value ("null" and "undefined" kept apart)."""
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "object"


def typeof(value: Any) -> str:
    kind = js_type(value)
    return "object" if kind == "null" else kind


def truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None or value is UNDEFINED:
        return False
    if isinstance(value, (int, float)):
        return not (value == 0 or math.isnan(value))
    if isinstance(value, str):
        return len(value) > 0
    return True


def string_to_number(text: str) -> float:
    text = text.strip(_JS_WHITESPACE)
    if not text:
        return 0.0
    radix = _RADIX_RE.match(text)
    if radix:
        if radix.group("hex"):
            return float(int(radix.group("hex"), 16))
        if radix.group("oct"):
            return float(int(radix.group("oct"), 8))
        return float(int(radix.group("bin"), 2))
    if _DECIMAL_RE.match(text):
        return float(text.replace("Infinity", "inf"))
    return math.nan


def to_primitive(value: Any) -> Any:
    if isinstance(value, (list, JSObject)):
        return to_string(value)
    return value


def to_number(value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if value is None:
        return 0.0
    if value is UNDEFINED:
        return math.nan
    if isinstance(value, str):
        return string_to_number(value)
    return to_number(to_primitive(value))


def number_to_string(number: float) -> str:
    """Format a number the way JavaScript's Number.prototype.toString does."""
    number = float(number)
    if math.isnan(number):
        return "NaN"
    if number == 0:
        return "0"
    if math.isinf(number):
        return "Infinity" if number > 0 else "-Infinity"
    if number < 0:
        return "-" + number_to_string(-number)

    sign, digit_tuple, exponent = Decimal(repr(number)).normalize().as_tuple()
    digits = "".join(map(str, digit_tuple))
    k = len(digits)
    n = k + exponent
    if k <= n <= 21:
        return digits + "0" * (n - k)
    if 0 < n <= 21:
        return digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return "0." + "0" * -n + digits
    e = n - 1
    mark = "+" if e >= 0 else "-"
    if k == 1:
        return f"{digits}e{mark}{abs(e)}"
    return f"{digits[0]}.{digits[1:]}e{mark}{abs(e)}"


def to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return number_to_string(value)
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, list):
        return ",".join("" if item is None or item is UNDEFINED else to_string(item) for item in value)
    return "[object Object]"


def to_int32(number: float) -> int:
    if math.isnan(number) or math.isinf(number):
        return 0
    value = int(math.trunc(number)) & 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def to_uint32(number: float) -> int:
    if math.isnan(number) or math.isinf(number):
        return 0
    return int(math.trunc(number)) & 0xFFFFFFFF


def strict_equals(left: Any, right: Any) -> bool:
    kind = js_type(left)
    if kind != js_type(right):
        return False
    if kind == "number":
        return float(left) == float(right)
    if kind == "object":
        return left is right
    return left == right or kind in ("null", "undefined")


def loose_equals(left: Any, right: Any) -> bool:
    left_kind, right_kind = js_type(left), js_type(right)
    if left_kind == right_kind:
        return strict_equals(left, right)
    if {left_kind, right_kind} == {"null", "undefined"}:
        return True
    if {left_kind, right_kind} == {"number", "string"}:
        return to_number(left) == to_number(right)
    if left_kind == "boolean":
        return loose_equals(to_number(left), right)
    if right_kind == "boolean":
        return loose_equals(left, to_number(right))
    if left_kind in ("number", "string") and right_kind == "object":
        return loose_equals(left, to_primitive(right))
    if left_kind == "object" and right_kind in ("number", "string"):
        return loose_equals(to_primitive(left), right)
    return False


def _utf16_units(text: str) -> bytes:
    # Big-endian bytes sort the same as the UTF-16 code units strings compare by.
    return text.encode("utf-16-be", "surrogatepass")


def _less_than(left: Any, right: Any) -> Optional[bool]:
    left, right = to_primitive(left), to_primitive(right)
    if isinstance(left, str) and isinstance(right, str):
        return _utf16_units(left) < _utf16_units(right)
    left_number, right_number = to_number(left), to_number(right)
    if math.isnan(left_number) or math.isnan(right_number):
        return None
    return left_number < right_number


def _divide(left: float, right: float) -> float:
    if right == 0:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)
    return left / right


def _remainder(left: float, right: float) -> float:
    if right == 0 or math.isnan(left) or math.isnan(right) or math.isinf(left):
        return math.nan
    if math.isinf(right):
        return left
    return math.fmod(left, right)


def _power(base: float, exponent: float) -> float:
    if math.isnan(exponent):
        return math.nan
    if exponent == 0:
        return 1.0
    if abs(base) == 1 and math.isinf(exponent):
        return math.nan
    try:
        return math.pow(base, exponent)
    except OverflowError:
        return math.inf
    except ValueError:
        if base == 0:
            return math.inf
        return math.nan


_NUMERIC_OPERATORS = {
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _divide,
    "%": _remainder,
    "**": _power,
}

_BITWISE_OPERATORS = {
    "&": lambda a, b: to_int32(a) & to_int32(b),
    "|": lambda a, b: to_int32(a) | to_int32(b),
    "^": lambda a, b: to_int32(a) ^ to_int32(b),
    "<<": lambda a, b: to_int32(float(to_int32(a) << (to_uint32(b) & 31))),
    ">>": lambda a, b: to_int32(a) >> (to_uint32(b) & 31),
    ">>>": lambda a, b: to_uint32(a) >> (to_uint32(b) & 31),
}


def binary_operation(operator: str, left: Any, right: Any) -> Any:
    """Apply a JavaScript binary operator to two values."""
    if operator == "+":
        left, right = to_primitive(left), to_primitive(right)
        if isinstance(left, str) or isinstance(right, str):
            return to_string(left) + to_string(right)
        return to_number(left) + to_number(right)
    if operator in _NUMERIC_OPERATORS:
        return _NUMERIC_OPERATORS[operator](to_number(left), to_number(right))
    if operator in _BITWISE_OPERATORS:
        return float(_BITWISE_OPERATORS[operator](to_number(left), to_number(right)))
    if operator == "==":
        return loose_equals(left, right)
    if operator == "!=":
        return not loose_equals(left, right)
    if operator == "===":
        return strict_equals(left, right)
    if operator == "!==":
        return not strict_equals(left, right)
    if operator == "<":
        return _less_than(left, right) is True
    if operator == ">":
        return _less_than(right, left) is True
    if operator == "<=":
        return _less_than(right, left) is False
    if operator == ">=":
        return _less_than(left, right) is False
    raise _NotConstant(operator)


# Evaluation

_GLOBAL_CONSTANTS = {"undefined": UNDEFINED, "NaN": math.nan, "Infinity": math.inf}


def _eval(node: Optional[Node], scope) -> Any:
    if not isinstance(node, Node):
        raise _NotConstant(node)
    kind = node.type

    if kind in ("StringLiteral", "BooleanLiteral"):
        return node.value
    if kind == "NumericLiteral":
        return float(node.value)
    if kind == "NullLiteral":
        return None
    if kind == "TemplateLiteral" and not node.expressions:
        cooked = node.quasis[0].value.get("cooked") if node.quasis else ""
        if cooked is None:
            raise _NotConstant(kind)
        return cooked
    if kind == "Identifier" and node.name in _GLOBAL_CONSTANTS:
        if scope is not None and scope.get_binding(node.name) is not None:
            raise _NotConstant(node.name)
        return _GLOBAL_CONSTANTS[node.name]
    if kind == "ArrayExpression":
        values = []
        for element in node.elements:
            if element is None:
                values.append(UNDEFINED)
            elif element.type == "SpreadElement":
                raise _NotConstant(kind)
            else:
                values.append(_eval(element, scope))
        return values
    if kind == "ObjectExpression" and not node.properties:
        return JSObject()
    if kind == "UnaryExpression":
        return _eval_unary(node, scope)
    if kind == "BinaryExpression":
        if node.operator in ("in", "instanceof"):
            raise _NotConstant(node.operator)
        return binary_operation(node.operator, _eval(node.left, scope), _eval(node.right, scope))
    if kind == "LogicalExpression":
        left = _eval(node.left, scope)
        if node.operator == "&&":
            return _eval(node.right, scope) if truthy(left) else left
        if node.operator == "||":
            return left if truthy(left) else _eval(node.right, scope)
        if node.operator == "??":
            return _eval(node.right, scope) if left is None or left is UNDEFINED else left
        raise _NotConstant(node.operator)
    if kind == "ConditionalExpression":
        if truthy(_eval(node.test, scope)):
            return _eval(node.consequent, scope)
        return _eval(node.alternate, scope)
    if kind == "SequenceExpression":
        values = [_eval(expression, scope) for expression in node.expressions]
        return values[-1]
    if kind == "ParenthesizedExpression":
        return _eval(node.expression, scope)
    raise _NotConstant(kind)


def _eval_unary(node: Node, scope) -> Any:
    operator = node.operator
    if operator == "delete":
        raise _NotConstant(operator)
    argument = _eval(node.argument, scope)
    if operator == "!":
        return not truthy(argument)
    if operator == "+":
        return to_number(argument)
    if operator == "-":
        return -to_number(argument)
    if operator == "~":
        return float(~to_int32(to_number(argument)))
    if operator == "typeof":
        return typeof(argument)
    if operator == "void":
        return UNDEFINED
    raise _NotConstant(operator)


def evaluate(target, scope=None) -> EvalResult:
    """Evaluate a node (or path) to Known(value) or UNKNOWN.

    Identifiers ``undefined``, ``NaN`` and ``Infinity`` only count as constants
    while no binding in ``scope`` shadows them. A path supplies its own scope.
    """
    node = target
    if not isinstance(target, Node):
        node, scope = target.node, target.scope
    try:
        return Known(_eval(node, scope))
    except _NotConstant:
        return UNKNOWN


def value_to_node(value: Any) -> Optional[Node]:
    """Smallest literal-ish node producing value, or None when none exists."""
    if isinstance(value, bool):
        return boolean_literal(value)
    if isinstance(value, str):
        return string_literal(value)
    if value is None:
        return null_literal()
    if value is UNDEFINED:
        return identifier("undefined")
    if isinstance(value, (int, float)):
        number = float(value)
        if math.isnan(number):
            return binary_expression("/", numeric_literal(0), numeric_literal(0))
        if math.isinf(number):
            infinity = binary_expression("/", numeric_literal(1), numeric_literal(0))
            return infinity if number > 0 else unary_expression("-", infinity)
        if number < 0 or (number == 0 and math.copysign(1.0, number) < 0):
            return unary_expression("-", numeric_literal(-number))
        return numeric_literal(number)
    if isinstance(value, list):
        elements = [value_to_node(item) for item in value]
        if any(element is None for element in elements):
            return None
        return array_expression(elements)
    if isinstance(value, JSObject):
        return Node("ObjectExpression", properties=[])
    return None
