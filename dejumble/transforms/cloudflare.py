"""Reversal of string mixing, switch flattening and wrapper-function indirection.

These passes target one obfuscation idiom:

- every string of the program is joined into one long payload, split on a
  separator at startup, rotated a fixed number of times, and read back through
  accessor calls such as ``b(12)``;
- straight-line code is flattened into
  ``for (o = "2|0|1".split("|"), i = 0;;) { switch (o[i++]) { ... } break; }``;
- operators and calls go through one-line wrappers such as
  ``function h(f, x) { return f(x); }``.

Anything that does not match the idiom is left alone.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from rich.console import Console

from dejumble.core.nodes import (
    Node,
    call_expression,
    fingerprint,
    is_function,
    is_node,
    property_name,
    string_literal,
    to_statement,
    variable_declaration,
)
from dejumble.core.path import NodePath
from dejumble.core.traverse import traverse
from dejumble.debug import debug_log
from dejumble.errors import InconsistentCount, PatternMismatch, UnsupportedBindingShape

console = Console()

ORDER_STRING_RE = re.compile(r"^\d+(?:\|\d+)*$")

DEFAULT_MIN_LENGTH = 200
DEFAULT_SEPARATORS = ",;{}[]"
DEFAULT_ACCESSORS = ("b", "c")
DEFAULT_MAX_DEPTH = 16

# Length of the fingerprint prefix used to pair an order string with its loop.
_FINGERPRINT_PREFIX = 5

_HELPER_KINDS = ("BinaryExpression", "LogicalExpression", "CallExpression")


def dotted_chain(node: Node, max_depth: int = DEFAULT_MAX_DEPTH) -> list[str]:
    """Names along a member chain: ``a.b["c"]`` gives ``["a", "b", "c"]``.

    Raises:
        UnsupportedBindingShape: The chain has a dynamic property, does not
            start at an identifier or ``this``, or is deeper than max_depth
    """
    parts = []
    current = node
    for _ in range(max_depth):
        if is_node(current, "Identifier"):
            parts.append(current.name)
            return parts[::-1]
        if is_node(current, "ThisExpression"):
            parts.append("this")
            return parts[::-1]
        if not is_node(current, "MemberExpression"):
            kind = current.type if isinstance(current, Node) else type(current).__name__
            raise UnsupportedBindingShape(f"cannot name a {kind}")
        name = property_name(current)
        if name is None:
            raise UnsupportedBindingShape("member chain has a computed property")
        parts.append(name)
        current = current.object
    raise UnsupportedBindingShape(f"member chain deeper than {max_depth}")


# String mixing

def get_mixed_strings(
    ast: Node,
    min_length: int = DEFAULT_MIN_LENGTH,
    separators: str = DEFAULT_SEPARATORS,
) -> list[str]:
    """Recover the rotated string table and remove its setup code.

    Finds the first string longer than min_length (the payload), the first
    one-character string from separators, and the first call with two
    arguments whose second is a number (the rotation call). Nothing is
    changed unless all three are found; then the payload is blanked and the
    separator literal and rotation call are removed.

    Returns:
        The payload split on the separator and rotated left by the rotation
        call's second argument

    Raises:
        PatternMismatch: One of the three pieces is missing
    """
    found: dict[str, NodePath] = {}

    def find_strings(path: NodePath) -> None:
        value = path.node.value
        if "payload" not in found and len(value) > min_length:
            found["payload"] = path
        elif "separator" not in found and len(value) == 1 and value in separators:
            found["separator"] = path
        if len(found) == 3:
            path.stop()

    def find_call(path: NodePath) -> None:
        arguments = path.node.arguments
        if "call" not in found and len(arguments) == 2 and is_node(arguments[1], "NumericLiteral"):
            found["call"] = path
        if len(found) == 3:
            path.stop()

    traverse(ast, {"StringLiteral": find_strings, "CallExpression": find_call})

    missing = [part for part in ("payload", "separator", "call") if part not in found]
    if missing:
        raise PatternMismatch(f"no mixed string table: missing {', '.join(missing)}")

    payload = found["payload"].node.value
    separator = found["separator"].node.value
    argument = found["call"].node.arguments[1].value
    if not float(argument).is_integer():
        raise PatternMismatch(f"rotation count {argument!r} is not an integer")

    found["payload"].node.value = ""
    vars(found["payload"].node).pop("extra", None)
    found["separator"].remove()
    found["call"].remove()

    chunks = payload.split(separator)
    times = int(argument) + 1
    rotations = max(times - 1, 0) % len(chunks)
    return chunks[rotations:] + chunks[:rotations]


def deobfuscate_mixed_strings(
    ast: Node,
    min_length: int = DEFAULT_MIN_LENGTH,
    separators: str = DEFAULT_SEPARATORS,
    accessor_names: Sequence[str] = DEFAULT_ACCESSORS,
) -> Node:
    """Replace accessor calls such as ``b(3)`` with the string they return."""
    strings = get_mixed_strings(ast, min_length=min_length, separators=separators)
    accessors = set(accessor_names)
    replaced = 0

    def substitute(path: NodePath) -> None:
        nonlocal replaced
        node = path.node
        if not is_node(node.callee, "Identifier") or node.callee.name not in accessors:
            return
        if len(node.arguments) != 1 or not is_node(node.arguments[0], "NumericLiteral"):
            return
        index = node.arguments[0].value
        if not float(index).is_integer() or not 0 <= index < len(strings):
            return
        path.replace_with(string_literal(strings[int(index)]))
        replaced += 1

    traverse(ast, {"CallExpression": substitute})
    debug_log("info", "Substituted mixed strings", {"chunks": len(strings), "replaced": replaced})
    return ast


# Switch flattening

def _order_string(
    value: Optional[Node],
    order_tables: dict[str, str],
    max_depth: int,
) -> tuple[Optional[str], bool]:
    """Order string a right-hand side produces, and whether it is spelled out literally."""
    if is_node(value, "StringLiteral"):
        return (value.value, True) if ORDER_STRING_RE.match(value.value) else (None, False)
    if not is_node(value, "CallExpression") or not is_node(value.callee, "MemberExpression"):
        return None, False
    if property_name(value.callee) != "split":
        return None, False
    arguments = value.arguments
    if len(arguments) != 1 or not is_node(arguments[0], "StringLiteral") or arguments[0].value != "|":
        return None, False

    source = value.callee.object
    if is_node(source, "StringLiteral"):
        return _order_string(source, order_tables, max_depth)
    try:
        chain = dotted_chain(source, max_depth)
    except UnsupportedBindingShape:
        return None, False
    return order_tables.get(chain[-1]), False


def get_all_variable_values(
    ast: Node,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> dict[tuple[str, str], str]:
    """Collect the order strings assigned in the program.

    Each assignment (or declarator) whose value is an order string, or an
    order string split on ``|``, is recorded under the first characters of
    the fingerprint of the node that encloses it, together with the target
    name. A loop initializer that assigns the order therefore has the same
    key as the loop itself. One level of indirection is followed: in
    ``t.o = "1|0"; ...; x = t.o.split("|")`` the value of ``x`` is ``"1|0"``.

    Returns:
        Mapping of (fingerprint prefix, target name) to order string
    """
    order_tables: dict[str, str] = {}
    values: dict[tuple[str, str], str] = {}

    def record(target: Node, value: Optional[Node], enclosing: Node) -> None:
        order, literal = _order_string(value, order_tables, max_depth)
        if order is None:
            return
        try:
            chain = dotted_chain(target, max_depth)
        except UnsupportedBindingShape as e:
            debug_log("debug", f"Order string with unnamed target: {e}")
            return
        if literal:
            order_tables[chain[-1]] = order
        key = (fingerprint(enclosing)[:_FINGERPRINT_PREFIX], ".".join(chain))
        values[key] = order

    def visit_assignment(path: NodePath) -> None:
        node = path.node
        if node.operator != "=":
            return
        enclosing = node if is_node(path.parent, "ForStatement") else path.parent
        record(node.left, node.right, enclosing)

    def visit_declarator(path: NodePath) -> None:
        record(path.node.id, path.node.init, path.parent)

    traverse(ast, {
        "AssignmentExpression": visit_assignment,
        "VariableDeclarator": visit_declarator,
    })
    return values


def _flattened_switch(loop: Node) -> Optional[tuple[Node, str, str]]:
    """(switch, order table name, counter name) when loop is a flattened sequence."""
    body = loop.body
    if not is_node(body, "BlockStatement") or not body.body:
        return None
    switch, *rest = body.body
    if not is_node(switch, "SwitchStatement"):
        return None
    if any(not is_node(statement, "BreakStatement") or statement.label is not None for statement in rest):
        return None
    discriminant = switch.discriminant
    if not is_node(discriminant, "MemberExpression") or not discriminant.computed:
        return None
    counter = discriminant.property
    if not is_node(discriminant.object, "Identifier"):
        return None
    if not is_node(counter, "UpdateExpression") or not is_node(counter.argument, "Identifier"):
        return None
    return switch, discriminant.object.name, counter.argument.name


def _leading_statements(init: Node, counter: str) -> list[Node]:
    if is_node(init, "VariableDeclaration"):
        kept = [
            declarator for declarator in init.declarations
            if not (is_node(declarator.id, "Identifier") and declarator.id.name == counter)
        ]
        return [variable_declaration(init.kind, kept)] if kept else []

    expressions = init.expressions if is_node(init, "SequenceExpression") else [init]
    return [
        to_statement(expression) for expression in expressions
        if not (
            is_node(expression, "AssignmentExpression")
            and is_node(expression.left, "Identifier")
            and expression.left.name == counter
        )
    ]


_LOOP_TYPES = frozenset({
    "ForStatement", "ForInStatement", "ForOfStatement", "WhileStatement", "DoWhileStatement",
})


def _escaping_jump(node: Node, in_loop: bool = False, in_switch: bool = False,
                   labels: frozenset = frozenset()) -> Optional[Node]:
    """First break/continue in node whose target lies outside node."""
    if is_function(node):
        return None
    if is_node(node, "BreakStatement", "ContinueStatement"):
        if node.label is not None:
            return None if node.label.name in labels else node
        if node.type == "ContinueStatement":
            return None if in_loop else node
        return None if in_loop or in_switch else node

    if node.type in _LOOP_TYPES:
        in_loop = True
    elif node.type == "SwitchStatement":
        in_switch = True
    elif node.type == "LabeledStatement":
        labels = labels | {node.label.name}
    for child in node.children():
        jump = _escaping_jump(child, in_loop, in_switch, labels)
        if jump is not None:
            return jump
    return None


def _case_statement(case: Node) -> Node:
    """The single statement a case runs, ignoring its trailing ``continue``.

    Only one statement per case is lifted out. A case with more statements,
    or whose statement jumps out of the loop or switch, raises PatternMismatch
    so the loop is left as it is.
    """
    body = list(case.consequent)
    if len(body) == 2 and is_node(body[1], "ContinueStatement") and body[1].label is None:
        body.pop()
    if len(body) != 1:
        raise PatternMismatch(f"case has {len(body)} statements")
    jump = _escaping_jump(body[0])
    if jump is not None:
        raise PatternMismatch(f"case statement contains a {jump.type} out of the switch")
    return body[0]


def _unrolled_statements(loop: Node, switch: Node, order: str, counter: str) -> list[Node]:
    entries = order.split("|")
    cases = switch.cases
    if len(entries) != len(cases):
        raise InconsistentCount(expected=len(cases), actual=len(entries))

    labels = {case.test.value: case for case in cases if is_node(case.test, "StringLiteral")}
    by_label = len(labels) == len(cases)

    statements = _leading_statements(loop.init, counter)
    used: set[int] = set()
    for entry in entries:
        if by_label:
            case = labels.get(entry)
        else:
            index = int(entry)
            case = cases[index] if index < len(cases) else None
        if case is None:
            raise PatternMismatch(f"no case for order entry {entry}")
        statement = _case_statement(case)
        if id(statement) in used:
            statement = statement.clone()
        used.add(id(statement))
        statements.append(statement)
    return statements


def unroll_switch_statements(ast: Node, max_depth: int = DEFAULT_MAX_DEPTH) -> Node:
    """Replace flattened ``for``/``switch`` loops with their statements in order.

    A loop whose order string does not have one entry per case is reported
    and left untouched.
    """
    values = get_all_variable_values(ast, max_depth=max_depth)

    def unroll(path: NodePath) -> None:
        node = path.node
        shape = _flattened_switch(node)
        if shape is None or node.init is None:
            return
        switch, table, counter = shape
        order = values.get((fingerprint(node.init)[:_FINGERPRINT_PREFIX], table))
        if order is None:
            return

        try:
            statements = _unrolled_statements(node, switch, order, counter)
        except InconsistentCount as e:
            console.print(f"[yellow]Not unrolling switch over {table}: {e}[/yellow]")
            debug_log("warning", "Switch order does not match its cases", {
                "table": table,
                "order": order,
                "expected": e.expected,
                "actual": e.actual,
            })
            return
        except PatternMismatch as e:
            debug_log("debug", f"Not unrolling switch over {table}: {e}")
            return

        debug_log("info", f"Unrolled switch over {table}", {"order": order, "statements": len(statements)})
        path.replace_with_multiple(statements)

    traverse(ast, {"ForStatement": unroll})
    return ast


# Helper functions

@dataclass
class HelperFunction:
    """A function whose whole body is ``return <binary | logical | call>``."""
    name: str
    arity: int
    kind: str
    operator: Optional[str] = None
    forwards_callee: bool = False
    # Declaring identifier, when the helper has a lexical binding.
    declared: Optional[Node] = field(default=None, repr=False, compare=False)


def _helper_name(path: NodePath, max_depth: int) -> tuple[Optional[str], Optional[Node]]:
    node, parent = path.node, path.parent
    if node.type == "FunctionDeclaration":
        if is_node(node.id, "Identifier"):
            return node.id.name, node.id
        return None, None
    if is_node(parent, "AssignmentExpression") and path.key == "right":
        return ".".join(dotted_chain(parent.left, max_depth)), None
    if is_node(parent, "VariableDeclarator") and path.key == "init" and is_node(parent.id, "Identifier"):
        return parent.id.name, parent.id
    return None, None


def _forwards_callee(params: list, argument: Node) -> bool:
    """True for ``function (f, a, b) { return f(a, b); }``."""
    if not is_node(argument, "CallExpression") or not params:
        return False
    if not all(is_node(param, "Identifier") for param in params):
        return False
    names = [param.name for param in params]
    if not is_node(argument.callee, "Identifier") or argument.callee.name != names[0]:
        return False
    arguments = argument.arguments
    return len(arguments) == len(names) - 1 and all(
        is_node(item, "Identifier") and item.name == name
        for item, name in zip(arguments, names[1:])
    )


def build_helper_registry(ast: Node, max_depth: int = DEFAULT_MAX_DEPTH) -> dict[str, HelperFunction]:
    """Find single-return wrapper functions, keyed by name or dotted member chain.

    Names defined more than once are left out.
    """
    registry: dict[str, HelperFunction] = {}
    conflicts: set[str] = set()

    def register(path: NodePath) -> None:
        node = path.node
        body = node.body
        if not is_node(body, "BlockStatement") or len(body.body) != 1:
            return
        statement = body.body[0]
        if not is_node(statement, "ReturnStatement") or not is_node(statement.argument, *_HELPER_KINDS):
            return
        try:
            name, declared = _helper_name(path, max_depth)
        except UnsupportedBindingShape as e:
            debug_log("debug", f"Skipping helper function: {e}")
            return
        if name is None:
            return
        if name in registry or name in conflicts:
            conflicts.add(name)
            registry.pop(name, None)
            return

        argument = statement.argument
        registry[name] = HelperFunction(
            name=name,
            arity=len(node.params),
            kind=argument.type,
            operator=getattr(argument, "operator", None),
            forwards_callee=_forwards_callee(node.params, argument),
            declared=declared,
        )

    traverse(ast, {"FunctionDeclaration|FunctionExpression": register})
    return registry


def remove_helper_functions(ast: Node, max_depth: int = DEFAULT_MAX_DEPTH) -> Node:
    """Inline calls through call-forwarding wrappers: ``h(f, x)`` becomes ``f(x)``.

    Wrappers around binary and logical operators are registered but not
    inlined.
    """
    registry = build_helper_registry(ast, max_depth=max_depth)
    helpers = {
        name: entry for name, entry in registry.items()
        if entry.kind == "CallExpression" and entry.forwards_callee
    }
    if not helpers:
        return ast
    inlined = 0

    def inline(path: NodePath) -> None:
        nonlocal inlined
        node = path.node
        callee = node.callee
        if not is_node(callee, "Identifier", "MemberExpression"):
            return
        try:
            name = ".".join(dotted_chain(callee, max_depth))
        except UnsupportedBindingShape:
            return
        entry = helpers.get(name)
        if entry is None or len(node.arguments) != entry.arity:
            return
        if any(is_node(argument, "SpreadElement") for argument in node.arguments):
            return
        if entry.declared is not None:
            tracker = path.scope.tracker
            binding = tracker.binding_by_identifier.get(id(callee))
            if binding is None or not binding.constant:
                return
            if binding is not tracker.binding_by_identifier.get(id(entry.declared)):
                return

        target, *rest = node.arguments
        path.replace_with(call_expression(target, rest))
        inlined += 1

    traverse(ast, {"CallExpression": inline})
    debug_log("info", "Inlined helper calls", {"helpers": sorted(helpers), "calls": inlined})
    return ast


def deobfuscate_cloudflare(
    ast: Node,
    min_length: int = DEFAULT_MIN_LENGTH,
    separators: str = DEFAULT_SEPARATORS,
    accessor_names: Sequence[str] = DEFAULT_ACCESSORS,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Node:
    """Rebuild mixed strings, then unroll flattened switches.

    Either stage is skipped when the program does not have its shape.
    """
    try:
        deobfuscate_mixed_strings(ast, min_length=min_length, separators=separators,
                                  accessor_names=accessor_names)
    except PatternMismatch as e:
        debug_log("info", f"String reconstruction skipped: {e}")
    try:
        unroll_switch_statements(ast, max_depth=max_depth)
    except PatternMismatch as e:
        debug_log("info", f"Switch unrolling skipped: {e}")
    return ast
