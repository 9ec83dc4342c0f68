"""Rewrites of literal and operator expressions."""

import math

from dejumble.core.evaluate import Known, evaluate, truthy, value_to_node
from dejumble.core.identifiers import is_bare_identifier
from dejumble.core.nodes import (
    Node,
    boolean_literal,
    identifier,
    is_empty_array,
    is_node,
)
from dejumble.core.path import NodePath
from dejumble.core.traverse import traverse

# Kinds constant folding may leave in place of a string operation.
_FOLDED_TYPES = ("StringLiteral", "BooleanLiteral", "NumericLiteral")


def _drop_raw(literal: Node) -> None:
    vars(literal).pop("extra", None)


def replace_hex_encoded(ast: Node) -> Node:
    """Drop raw source text so escaped literals print as their decoded value.

    ``"\\x68\\x69"`` prints as ``"hi"`` and ``0x1f`` as ``31``.
    """

    def decode(path: NodePath) -> None:
        extra = getattr(path.node, "extra", None)
        if not extra:
            return
        if isinstance(extra, dict) and extra.get("expressionValue") is not None:
            path.node.value = extra["expressionValue"]
        _drop_raw(path.node)

    traverse(ast, {"DirectiveLiteral|StringLiteral|NumericLiteral": decode})
    return ast


def constant_folding(ast: Node) -> Node:
    """Fold operations on string literals.

    - ``"a" + "b"`` becomes ``"ab"`` (any operator, as long as the result is a
      single literal)
    - ``x + "a" + "b"`` becomes ``x + "ab"``
    - ``"a" && "b"`` becomes ``true``
    - ``"a" || "b"`` and ``"a" ?? "b"`` become the operand they pick, ``"a"``
    """

    def fold(path: NodePath) -> None:
        node = path.node
        left, right = node.left, node.right

        if is_node(left, "StringLiteral") and is_node(right, "StringLiteral"):
            if node.operator == "&&":
                path.replace_with(boolean_literal(truthy(left.value) and truthy(right.value)))
                return
            result = evaluate(path)
            if not isinstance(result, Known):
                return
            replacement = value_to_node(result.value)
            if is_node(replacement, *_FOLDED_TYPES):
                path.replace_with(replacement)
            return

        # Left-associative chain: (x + "a") + "b"
        if (
            node.operator == "+"
            and is_node(right, "StringLiteral")
            and is_node(left, "BinaryExpression")
            and left.operator == "+"
            and is_node(left.right, "StringLiteral")
        ):
            left.right.value += right.value
            _drop_raw(left.right)
            path.get("right").remove()

    traverse(ast, {"BinaryExpression|LogicalExpression": fold})
    return ast


def deobfuscate_jsfuck(ast: Node) -> Node:
    """Evaluate constant unary and binary expressions built from literals.

    Sparse array holes are first filled with ``undefined`` so that
    expressions such as ``[,][0] + []`` evaluate. Unary minus and ``void`` are
    never folded, and results that can only be written as another unary or
    binary expression (negative numbers, ``NaN``, ``Infinity``) are kept as
    they are.
    """

    def fill_holes(path: NodePath) -> None:
        elements = path.node.elements
        if any(element is None for element in elements):
            path.node.elements = [identifier("undefined") if element is None else element
                                  for element in elements]

    def fold(path: NodePath) -> None:
        node = path.node
        if node.type == "UnaryExpression" and node.operator in ("-", "void"):
            return
        result = evaluate(path)
        if not isinstance(result, Known):
            return
        value = result.value
        if isinstance(value, float) and math.isinf(value):
            return
        replacement = value_to_node(value)
        if replacement is None or is_node(replacement, "BinaryExpression", "UnaryExpression"):
            return
        path.replace_with(replacement)

    traverse(ast, {"ArrayExpression": fill_holes})
    traverse(ast, {"BinaryExpression|UnaryExpression": fold})
    return ast


def deobfuscate_object_calls(ast: Node) -> Node:
    """Turn ``obj["name"]`` into ``obj.name`` when name is a legal identifier."""

    def normalize(path: NodePath) -> None:
        node = path.node
        prop = node.property
        if not node.computed or not is_node(prop, "StringLiteral"):
            return
        if not is_bare_identifier(prop.value):
            return
        node.property = identifier(prop.value)
        node.computed = False

    traverse(ast, {"MemberExpression|OptionalMemberExpression": normalize})
    return ast


def deobfuscate_hidden_false(ast: Node) -> Node:
    """Unmask boolean literals: ``!![...]`` is true, ``![]`` and ``!1`` are false."""

    def unmask(path: NodePath) -> None:
        node = path.node
        if node.operator != "!":
            return
        argument = node.argument
        if (
            is_node(argument, "UnaryExpression")
            and argument.operator == "!"
            and is_node(argument.argument, "ArrayExpression")
        ):
            path.replace_with(boolean_literal(True))
        elif is_empty_array(argument):
            path.replace_with(boolean_literal(False))
        elif is_node(argument, "NumericLiteral") and argument.value == 1:
            path.replace_with(boolean_literal(False))

    traverse(ast, {"UnaryExpression": unmask})
    return ast
