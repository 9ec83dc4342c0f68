"""Babel-shaped JavaScript syntax tree model."""

import copy
import hashlib
import json
import math
import sys
from typing import Any, Iterator, Optional

# Obfuscated concatenation chains nest thousands of levels deep.
RECURSION_LIMIT = 10000


def raise_recursion_limit(limit: int = RECURSION_LIMIT) -> None:
    if sys.getrecursionlimit() < limit:
        sys.setrecursionlimit(limit)

# Fields of each node kind, following @babel/types.
NODE_FIELDS: dict[str, tuple[str, ...]] = {
    "Program": ("body", "directives", "sourceType"),
    "Identifier": ("name",),
    "PrivateName": ("id",),
    "StringLiteral": ("value",),
    "NumericLiteral": ("value",),
    "BooleanLiteral": ("value",),
    "NullLiteral": (),
    "BigIntLiteral": ("value",),
    "RegExpLiteral": ("pattern", "flags"),
    "TemplateLiteral": ("quasis", "expressions"),
    "TemplateElement": ("value", "tail"),
    "TaggedTemplateExpression": ("tag", "quasi"),
    "Directive": ("value",),
    "DirectiveLiteral": ("value",),
    "ArrayExpression": ("elements",),
    "ObjectExpression": ("properties",),
    "ObjectProperty": ("key", "value", "computed", "shorthand"),
    "ObjectMethod": ("kind", "key", "params", "body", "computed", "generator", "async"),
    "SpreadElement": ("argument",),
    "RestElement": ("argument",),
    "ObjectPattern": ("properties",),
    "ArrayPattern": ("elements",),
    "AssignmentPattern": ("left", "right"),
    "FunctionDeclaration": ("id", "params", "body", "generator", "async"),
    "FunctionExpression": ("id", "params", "body", "generator", "async"),
    "ArrowFunctionExpression": ("params", "body", "async", "expression"),
    "ClassDeclaration": ("id", "superClass", "body"),
    "ClassExpression": ("id", "superClass", "body"),
    "ClassBody": ("body",),
    "ClassMethod": ("kind", "key", "params", "body", "computed", "static", "generator", "async"),
    "ClassProperty": ("key", "value", "computed", "static"),
    "ClassPrivateProperty": ("key", "value", "static"),
    "StaticBlock": ("body",),
    "UnaryExpression": ("operator", "argument", "prefix"),
    "UpdateExpression": ("operator", "argument", "prefix"),
    "BinaryExpression": ("operator", "left", "right"),
    "LogicalExpression": ("operator", "left", "right"),
    "AssignmentExpression": ("operator", "left", "right"),
    "ConditionalExpression": ("test", "consequent", "alternate"),
    "CallExpression": ("callee", "arguments"),
    "NewExpression": ("callee", "arguments"),
    "OptionalCallExpression": ("callee", "arguments", "optional"),
    "MemberExpression": ("object", "property", "computed"),
    "OptionalMemberExpression": ("object", "property", "computed", "optional"),
    "SequenceExpression": ("expressions",),
    "ParenthesizedExpression": ("expression",),
    "ThisExpression": (),
    "Super": (),
    "Import": (),
    "MetaProperty": ("meta", "property"),
    "AwaitExpression": ("argument",),
    "YieldExpression": ("argument", "delegate"),
    "ExpressionStatement": ("expression",),
    "BlockStatement": ("body", "directives"),
    "EmptyStatement": (),
    "DebuggerStatement": (),
    "ReturnStatement": ("argument",),
    "ThrowStatement": ("argument",),
    "IfStatement": ("test", "consequent", "alternate"),
    "SwitchStatement": ("discriminant", "cases"),
    "SwitchCase": ("test", "consequent"),
    "ForStatement": ("init", "test", "update", "body"),
    "ForInStatement": ("left", "right", "body"),
    "ForOfStatement": ("left", "right", "body", "await"),
    "WhileStatement": ("test", "body"),
    "DoWhileStatement": ("body", "test"),
    "BreakStatement": ("label",),
    "ContinueStatement": ("label",),
    "LabeledStatement": ("label", "body"),
    "WithStatement": ("object", "body"),
    "TryStatement": ("block", "handler", "finalizer"),
    "CatchClause": ("param", "body"),
    "VariableDeclaration": ("kind", "declarations"),
    "VariableDeclarator": ("id", "init"),
    "ImportDeclaration": ("specifiers", "source"),
    "ImportSpecifier": ("local", "imported"),
    "ImportDefaultSpecifier": ("local",),
    "ImportNamespaceSpecifier": ("local",),
    "ExportNamedDeclaration": ("declaration", "specifiers", "source"),
    "ExportDefaultDeclaration": ("declaration",),
    "ExportAllDeclaration": ("source",),
    "ExportSpecifier": ("local", "exported"),
}

# Child-bearing fields, in evaluation order.
VISITOR_KEYS: dict[str, tuple[str, ...]] = {
    "Program": ("directives", "body"),
    "PrivateName": ("id",),
    "TemplateLiteral": ("quasis", "expressions"),
    "TaggedTemplateExpression": ("tag", "quasi"),
    "Directive": ("value",),
    "ArrayExpression": ("elements",),
    "ObjectExpression": ("properties",),
    "ObjectProperty": ("key", "value"),
    "ObjectMethod": ("key", "params", "body"),
    "SpreadElement": ("argument",),
    "RestElement": ("argument",),
    "ObjectPattern": ("properties",),
    "ArrayPattern": ("elements",),
    "AssignmentPattern": ("left", "right"),
    "FunctionDeclaration": ("id", "params", "body"),
    "FunctionExpression": ("id", "params", "body"),
    "ArrowFunctionExpression": ("params", "body"),
    "ClassDeclaration": ("id", "superClass", "body"),
    "ClassExpression": ("id", "superClass", "body"),
    "ClassBody": ("body",),
    "ClassMethod": ("key", "params", "body"),
    "ClassProperty": ("key", "value"),
    "ClassPrivateProperty": ("key", "value"),
    "StaticBlock": ("body",),
    "UnaryExpression": ("argument",),
    "UpdateExpression": ("argument",),
    "BinaryExpression": ("left", "right"),
    "LogicalExpression": ("left", "right"),
    "AssignmentExpression": ("left", "right"),
    "ConditionalExpression": ("test", "consequent", "alternate"),
    "CallExpression": ("callee", "arguments"),
    "NewExpression": ("callee", "arguments"),
    "OptionalCallExpression": ("callee", "arguments"),
    "MemberExpression": ("object", "property"),
    "OptionalMemberExpression": ("object", "property"),
    "SequenceExpression": ("expressions",),
    "ParenthesizedExpression": ("expression",),
    "MetaProperty": ("meta", "property"),
    "AwaitExpression": ("argument",),
    "YieldExpression": ("argument",),
    "ExpressionStatement": ("expression",),
    "BlockStatement": ("directives", "body"),
    "ReturnStatement": ("argument",),
    "ThrowStatement": ("argument",),
    "IfStatement": ("test", "consequent", "alternate"),
    "SwitchStatement": ("discriminant", "cases"),
    "SwitchCase": ("test", "consequent"),
    "ForStatement": ("init", "test", "update", "body"),
    "ForInStatement": ("left", "right", "body"),
    "ForOfStatement": ("left", "right", "body"),
    "WhileStatement": ("test", "body"),
    "DoWhileStatement": ("body", "test"),
    "BreakStatement": ("label",),
    "ContinueStatement": ("label",),
    "LabeledStatement": ("label", "body"),
    "WithStatement": ("object", "body"),
    "TryStatement": ("block", "handler", "finalizer"),
    "CatchClause": ("param", "body"),
    "VariableDeclaration": ("declarations",),
    "VariableDeclarator": ("id", "init"),
    "ImportDeclaration": ("specifiers", "source"),
    "ImportSpecifier": ("local", "imported"),
    "ImportDefaultSpecifier": ("local",),
    "ImportNamespaceSpecifier": ("local",),
    "ExportNamedDeclaration": ("declaration", "specifiers", "source"),
    "ExportDefaultDeclaration": ("declaration",),
    "ExportAllDeclaration": ("source",),
    "ExportSpecifier": ("local", "exported"),
}

_LIST_FIELDS = {
    "directives", "quasis", "expressions", "elements", "properties",
    "params", "arguments", "cases", "declarations", "specifiers",
}
_LIST_BODIES = {"Program", "BlockStatement", "ClassBody", "StaticBlock"}

# Keys that never hold semantic children.
META_KEYS = frozenset({
    "start", "end", "loc", "range", "extra", "comments", "tokens", "errors",
    "leadingComments", "trailingComments", "innerComments",
})

STATEMENT_TYPES = frozenset({
    "ExpressionStatement", "BlockStatement", "EmptyStatement", "DebuggerStatement",
    "WithStatement", "ReturnStatement", "LabeledStatement", "BreakStatement",
    "ContinueStatement", "IfStatement", "SwitchStatement", "ThrowStatement",
    "TryStatement", "WhileStatement", "DoWhileStatement", "ForStatement",
    "ForInStatement", "ForOfStatement", "FunctionDeclaration", "VariableDeclaration",
    "ClassDeclaration", "ImportDeclaration", "ExportNamedDeclaration",
    "ExportDefaultDeclaration", "ExportAllDeclaration",
})

FUNCTION_TYPES = frozenset({
    "FunctionDeclaration", "FunctionExpression", "ArrowFunctionExpression",
    "ObjectMethod", "ClassMethod",
})

LITERAL_TYPES = frozenset({
    "StringLiteral", "NumericLiteral", "BooleanLiteral", "NullLiteral",
    "RegExpLiteral", "BigIntLiteral", "TemplateLiteral",
})

# Literals whose value can be copied freely without changing identity semantics.
PRIMITIVE_LITERAL_TYPES = frozenset({
    "StringLiteral", "NumericLiteral", "BooleanLiteral", "NullLiteral",
})

# (parent type, key) pairs whose child is a statement.
STATEMENT_SLOTS = frozenset({
    ("IfStatement", "consequent"),
    ("IfStatement", "alternate"),
    ("ForStatement", "body"),
    ("ForInStatement", "body"),
    ("ForOfStatement", "body"),
    ("WhileStatement", "body"),
    ("DoWhileStatement", "body"),
    ("LabeledStatement", "body"),
    ("WithStatement", "body"),
})

# (parent type, key) pairs holding a list of statements.
STATEMENT_LISTS = frozenset({
    ("Program", "body"),
    ("BlockStatement", "body"),
    ("SwitchCase", "consequent"),
    ("StaticBlock", "body"),
})


def _holds_list(type: str, name: str) -> bool:
    if name == "body":
        return type in _LIST_BODIES
    if name == "consequent":
        return type == "SwitchCase"
    return name in _LIST_FIELDS


class Node:
    """A mutable syntax tree node tagged by its Babel kind."""

    def __init__(self, type: str, **fields: Any):
        self.type = type
        for name in NODE_FIELDS.get(type, ()):
            setattr(self, name, [] if _holds_list(type, name) else None)
        for name, value in fields.items():
            setattr(self, name, value)

    def __repr__(self) -> str:
        if self.type == "Identifier":
            return f"Node(Identifier {self.name!r})"
        if self.type in PRIMITIVE_LITERAL_TYPES and self.type != "NullLiteral":
            return f"Node({self.type} {self.value!r})"
        if hasattr(self, "operator"):
            return f"Node({self.type} {self.operator!r})"
        return f"Node({self.type})"

    def child_keys(self) -> tuple[str, ...]:
        """Keys holding child nodes, in evaluation order."""
        keys = VISITOR_KEYS.get(self.type)
        if keys is not None:
            return keys
        if self.type in NODE_FIELDS:
            return ()
        # Unknown kind: discover child-bearing fields dynamically.
        found = []
        for key, value in vars(self).items():
            if key == "type" or key in META_KEYS:
                continue
            if isinstance(value, Node) or (
                isinstance(value, list) and any(isinstance(v, Node) for v in value)
            ):
                found.append(key)
        return tuple(found)

    def children(self) -> Iterator["Node"]:
        """Yield direct child nodes in evaluation order."""
        for key in self.child_keys():
            value = getattr(self, key, None)
            if isinstance(value, list):
                for item in value:
                    if isinstance(item, Node):
                        yield item
            elif isinstance(value, Node):
                yield value

    def walk(self) -> Iterator["Node"]:
        """Yield this node and every descendant, depth first."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(list(node.children())))

    def clone(self) -> "Node":
        """Structural copy of this subtree."""
        return copy.deepcopy(self)


def is_node(node: Any, *types: str) -> bool:
    """Check that node is a Node of one of the given kinds (any kind if none given)."""
    if not isinstance(node, Node):
        return False
    return not types or node.type in types


def is_statement(node: Any) -> bool:
    return isinstance(node, Node) and node.type in STATEMENT_TYPES


def is_function(node: Any) -> bool:
    return isinstance(node, Node) and node.type in FUNCTION_TYPES


def is_literal(node: Any) -> bool:
    return isinstance(node, Node) and node.type in LITERAL_TYPES


def is_empty_array(node: Any) -> bool:
    return is_node(node, "ArrayExpression") and not node.elements


def property_name(member: Node) -> Optional[str]:
    """Static name of a member expression's property, or None if dynamic."""
    prop = member.property
    if not member.computed and is_node(prop, "Identifier"):
        return prop.name
    if member.computed and is_node(prop, "StringLiteral"):
        return prop.value
    return None


def normalize_number(value: Any) -> Any:
    """Collapse integral floats to ints so printed numbers stay tidy."""
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        if abs(value) < 2 ** 53 and not (value == 0 and math.copysign(1.0, value) < 0):
            return int(value)
    return value


def is_pure(node: Any) -> bool:
    """True when evaluating node cannot have side effects.

    Member access counts as impure since getters may run arbitrary code.
    """
    if node is None:
        return True
    if not isinstance(node, Node):
        return False
    kind = node.type
    if kind in LITERAL_TYPES and kind != "TemplateLiteral":
        return True
    if kind in ("Identifier", "ThisExpression", "FunctionExpression",
                "ArrowFunctionExpression", "ClassExpression"):
        return kind != "ClassExpression" or node.superClass is None
    if kind == "TemplateLiteral":
        return all(is_pure(expression) for expression in node.expressions)
    if kind == "UnaryExpression":
        return node.operator != "delete" and is_pure(node.argument)
    if kind in ("BinaryExpression", "LogicalExpression"):
        return node.operator not in ("in", "instanceof") and is_pure(node.left) and is_pure(node.right)
    if kind == "ConditionalExpression":
        return is_pure(node.test) and is_pure(node.consequent) and is_pure(node.alternate)
    if kind == "SequenceExpression":
        return all(is_pure(expression) for expression in node.expressions)
    if kind == "ParenthesizedExpression":
        return is_pure(node.expression)
    if kind == "ArrayExpression":
        return all(is_pure(element) for element in node.elements)
    if kind == "ObjectExpression":
        return all(
            prop.type == "ObjectProperty" and not prop.computed and is_pure(prop.value)
            for prop in node.properties
        )
    return False


# Builders

def identifier(name: str) -> Node:
    return Node("Identifier", name=name)


def string_literal(value: str) -> Node:
    return Node("StringLiteral", value=value)


def numeric_literal(value: Any) -> Node:
    return Node("NumericLiteral", value=normalize_number(value))


def boolean_literal(value: bool) -> Node:
    return Node("BooleanLiteral", value=bool(value))


def null_literal() -> Node:
    return Node("NullLiteral")


def array_expression(elements: Optional[list] = None) -> Node:
    return Node("ArrayExpression", elements=list(elements or []))


def unary_expression(operator: str, argument: Node, prefix: bool = True) -> Node:
    return Node("UnaryExpression", operator=operator, argument=argument, prefix=prefix)


def update_expression(operator: str, argument: Node, prefix: bool = False) -> Node:
    return Node("UpdateExpression", operator=operator, argument=argument, prefix=prefix)


def binary_expression(operator: str, left: Node, right: Node) -> Node:
    return Node("BinaryExpression", operator=operator, left=left, right=right)


def logical_expression(operator: str, left: Node, right: Node) -> Node:
    return Node("LogicalExpression", operator=operator, left=left, right=right)


def assignment_expression(operator: str, left: Node, right: Node) -> Node:
    return Node("AssignmentExpression", operator=operator, left=left, right=right)


def conditional_expression(test: Node, consequent: Node, alternate: Node) -> Node:
    return Node("ConditionalExpression", test=test, consequent=consequent, alternate=alternate)


def sequence_expression(expressions: list) -> Node:
    return Node("SequenceExpression", expressions=list(expressions))


def call_expression(callee: Node, arguments: Optional[list] = None) -> Node:
    return Node("CallExpression", callee=callee, arguments=list(arguments or []))


def member_expression(obj: Node, prop: Node, computed: bool = False) -> Node:
    return Node("MemberExpression", object=obj, property=prop, computed=computed)


def expression_statement(expression: Node) -> Node:
    return Node("ExpressionStatement", expression=expression)


def block_statement(body: Optional[list] = None) -> Node:
    return Node("BlockStatement", body=list(body or []), directives=[])


def empty_statement() -> Node:
    return Node("EmptyStatement")


def return_statement(argument: Optional[Node] = None) -> Node:
    return Node("ReturnStatement", argument=argument)


def if_statement(test: Node, consequent: Node, alternate: Optional[Node] = None) -> Node:
    return Node("IfStatement", test=test, consequent=consequent, alternate=alternate)


def for_statement(init: Optional[Node], test: Optional[Node], update: Optional[Node], body: Node) -> Node:
    return Node("ForStatement", init=init, test=test, update=update, body=body)


def switch_case(test: Optional[Node], consequent: list) -> Node:
    return Node("SwitchCase", test=test, consequent=list(consequent))


def switch_statement(discriminant: Node, cases: list) -> Node:
    return Node("SwitchStatement", discriminant=discriminant, cases=list(cases))


def variable_declarator(id: Node, init: Optional[Node] = None) -> Node:
    return Node("VariableDeclarator", id=id, init=init)


def variable_declaration(kind: str, declarations: list) -> Node:
    return Node("VariableDeclaration", kind=kind, declarations=list(declarations))


def function_declaration(id: Node, params: list, body: Node) -> Node:
    return Node("FunctionDeclaration", id=id, params=list(params), body=body,
                generator=False, **{"async": False})


def function_expression(id: Optional[Node], params: list, body: Node) -> Node:
    return Node("FunctionExpression", id=id, params=list(params), body=body,
                generator=False, **{"async": False})


def program(body: list) -> Node:
    return Node("Program", body=list(body), directives=[], sourceType="script")


def to_statement(node: Node) -> Node:
    """Wrap an expression in an expression statement; statements pass through."""
    if is_statement(node):
        return node
    return expression_statement(node)


# JSON conversion

def from_json(data: Any) -> Any:
    """Convert Babel JSON output into Node objects."""
    if isinstance(data, list):
        return [from_json(item) for item in data]
    if isinstance(data, dict):
        if "type" in data and isinstance(data["type"], str):
            fields = {}
            for key, value in data.items():
                if key == "type":
                    continue
                if key in META_KEYS:
                    fields[key] = value
                else:
                    fields[key] = from_json(value)
            node = Node(data["type"])
            for key, value in fields.items():
                setattr(node, key, value)
            return node
        return {key: from_json(value) for key, value in data.items()}
    return data


def to_json(value: Any) -> Any:
    """Convert Node objects back into Babel-compatible JSON data."""
    if isinstance(value, Node):
        data = {"type": value.type}
        for key, item in vars(value).items():
            if key == "type":
                continue
            data[key] = to_json(item)
        return data
    if isinstance(value, list):
        return [to_json(item) for item in value]
    if isinstance(value, dict):
        return {key: to_json(item) for key, item in value.items()}
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


# Fingerprints

def _canonical(value: Any) -> Any:
    if isinstance(value, Node):
        data = {"type": value.type}
        for key, item in vars(value).items():
            if key == "type" or key in META_KEYS:
                continue
            data[key] = _canonical(item)
        return data
    if isinstance(value, list):
        return [_canonical(item) for item in value]
    if isinstance(value, dict):
        return {key: _canonical(item) for key, item in value.items()}
    if isinstance(value, float):
        return repr(normalize_number(value))
    return value


def fingerprint(node: Optional[Node]) -> str:
    """md5 hex digest of a node's canonical form, ignoring positions and comments."""
    text = json.dumps(_canonical(node), sort_keys=True, ensure_ascii=False)
    return hashlib.md5(text.encode("utf-8")).hexdigest()
