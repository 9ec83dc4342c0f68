"""Statement-level rewrites: dead branches, comma statements, inline conditionals."""

from typing import Optional

from dejumble.core.nodes import (
    Node,
    assignment_expression,
    block_statement,
    expression_statement,
    identifier,
    if_statement,
    is_node,
    is_pure,
    is_statement,
    return_statement,
    to_statement,
    unary_expression,
)
from dejumble.core.path import NodePath
from dejumble.core.traverse import traverse
from dejumble.debug import debug_log

# (parent type, key) pairs whose child expression a statement evaluates first.
_LEADING_STATEMENT_SLOTS = frozenset({
    ("ExpressionStatement", "expression"),
    ("ReturnStatement", "argument"),
    ("ThrowStatement", "argument"),
    ("IfStatement", "test"),
    ("SwitchStatement", "discriminant"),
    ("ForStatement", "init"),
})


def _is_dead(node: Optional[Node]) -> bool:
    if is_node(node, "EmptyStatement"):
        return True
    if is_node(node, "BlockStatement"):
        return not node.directives and all(_is_dead(statement) for statement in node.body)
    return False


def _declares_block_scoped(block: Node) -> bool:
    for statement in block.body:
        if is_node(statement, "VariableDeclaration") and statement.kind != "var":
            return True
        if is_node(statement, "ClassDeclaration", "FunctionDeclaration"):
            return True
    return False


def _evaluated_first(parent: Node, key: str, node: Node) -> bool:
    kind = parent.type
    if kind == "AssignmentExpression":
        return key == "right" and parent.operator == "=" and is_node(parent.left, "Identifier")
    if kind == "SequenceExpression":
        return parent.expressions[0] is node
    if kind in ("BinaryExpression", "LogicalExpression"):
        return key == "left"
    if kind in ("CallExpression", "NewExpression"):
        return key == "callee"
    if kind == "MemberExpression":
        return key == "object"
    if kind == "ConditionalExpression":
        return key == "test"
    if kind == "UnaryExpression":
        return parent.operator != "delete"
    if kind == "ParenthesizedExpression":
        return True
    return False


def can_hoist_before_statement(path: NodePath) -> bool:
    """True when nothing in the enclosing statement runs before path's node.

    Code moved in front of such a statement therefore still runs in the same
    order relative to everything else the statement does.
    """
    current = path
    while current.parent is not None:
        parent, key = current.parent, current.key
        parent_path = current.parent_path
        if parent_path is None:
            return False

        if parent.type == "VariableDeclarator" and key == "init":
            declaration = parent_path.parent_path
            return (
                declaration is not None
                and declaration.node.declarations[0] is parent
                and declaration.in_statement_list
            )
        if is_statement(parent):
            if (parent.type, key) not in _LEADING_STATEMENT_SLOTS:
                return False
            if not (parent_path.in_statement_list or parent_path.in_statement_slot):
                return False
            return not is_node(parent_path.parent, "LabeledStatement")
        if not _evaluated_first(parent, key, current.node):
            return False
        current = parent_path
    return False


def remove_dead_else(ast: Node) -> Node:
    """Prune empty branches of if statements.

    A branch is dead when it is ``;``, ``{}`` or a block made only of dead
    statements. ``if (t) {} else {...}`` becomes ``if (!t) {...}``, and an if
    without a live branch is removed, keeping its test when evaluating it may
    have side effects.
    """

    def prune(path: NodePath) -> None:
        node = path.node
        if node.alternate is not None and _is_dead(node.alternate):
            node.alternate = None
        if not _is_dead(node.consequent):
            return
        if node.alternate is not None:
            path.replace_with(if_statement(unary_expression("!", node.test), node.alternate))
        elif is_pure(node.test):
            path.remove()
        else:
            path.replace_with(expression_statement(node.test))

    traverse(ast, {"IfStatement": {"exit": prune}})
    return ast


def remove_useless_if(ast: Node) -> Node:
    """Replace ``if (true)`` / ``if (false)`` with the branch that runs."""

    def prune(path: NodePath) -> None:
        node = path.node
        if not is_node(node.test, "BooleanLiteral"):
            return
        branch = node.consequent if node.test.value else node.alternate
        if branch is None:
            path.remove()
        elif is_node(branch, "BlockStatement") and path.in_statement_list \
                and not _declares_block_scoped(branch):
            path.replace_with_multiple(branch.body)
        else:
            path.replace_with(branch)

    traverse(ast, {"IfStatement": prune})
    return ast


def remove_empty_statements(ast: Node) -> Node:
    """Remove stray ``;`` statements."""

    def remove(path: NodePath) -> None:
        path.remove()

    traverse(ast, {"EmptyStatement": remove})
    return ast


def remove_comma_statements(ast: Node) -> Node:
    """Split comma expressions into separate statements.

    ``return a(), b;`` becomes ``a(); return b;``; the same happens for if
    tests, for initializers, bare expression statements, single-statement
    function bodies and assignment right-hand sides. An assignment is only
    split when nothing in its statement is evaluated before it.
    """

    def split_return(path: NodePath) -> None:
        argument = path.node.argument
        if not is_node(argument, "SequenceExpression"):
            return
        *head, last = argument.expressions
        path.replace_with_multiple([*map(to_statement, head), return_statement(last)])

    def split_if(path: NodePath) -> None:
        node = path.node
        if not is_node(node.test, "SequenceExpression"):
            return
        *head, last = node.test.expressions
        node.test = last
        path.insert_before([to_statement(expression) for expression in head])

    def split_assignment(path: NodePath) -> None:
        node = path.node
        if not is_node(node.right, "SequenceExpression"):
            return
        if not can_hoist_before_statement(path):
            debug_log("debug", "Comma assignment left in place", {"start": getattr(node, "start", None)})
            return
        *head, last = node.right.expressions
        statement = path.get_statement_parent()
        node.right = last
        statement.insert_before([to_statement(expression) for expression in head])

    def split_function_body(path: NodePath) -> None:
        body = path.node.body
        if not is_node(body, "BlockStatement") or len(body.body) != 1:
            return
        statement = body.body[0]
        if not is_node(statement, "ExpressionStatement") or not is_node(statement.expression, "SequenceExpression"):
            return
        body.body = [to_statement(expression) for expression in statement.expression.expressions]

    def split_statement(path: NodePath) -> None:
        expression = path.node.expression
        if not is_node(expression, "SequenceExpression"):
            return
        path.replace_with_multiple([expression_statement(item) for item in expression.expressions])

    def split_for_init(path: NodePath) -> None:
        node = path.node
        if not is_node(node.init, "SequenceExpression"):
            return
        if is_node(path.parent, "LabeledStatement"):
            return
        *head, last = node.init.expressions
        node.init = last
        path.insert_before([to_statement(expression) for expression in head])

    traverse(ast, {
        "ReturnStatement": split_return,
        "IfStatement": split_if,
        "AssignmentExpression": split_assignment,
        "FunctionDeclaration|FunctionExpression|ArrowFunctionExpression": split_function_body,
        "ExpressionStatement": split_statement,
        "ForStatement": split_for_init,
    })
    return ast


def _is_simple_target(node: Node) -> bool:
    if is_node(node, "Identifier"):
        return True
    if not is_node(node, "MemberExpression"):
        return False
    if node.computed and not is_node(node.property, "StringLiteral", "NumericLiteral"):
        return False
    return is_node(node.object, "ThisExpression") or _is_simple_target(node.object)


def rewrite_inline_if(ast: Node) -> Node:
    """Expand ``x = t ? a : b;`` into ``if (t) { x = a; } else { x = b; }``."""

    def expand(path: NodePath) -> None:
        expression = path.node.expression
        if not is_node(expression, "AssignmentExpression") or expression.operator != "=":
            return
        conditional = expression.right
        if not is_node(conditional, "ConditionalExpression"):
            return
        target = expression.left
        if not _is_simple_target(target):
            return
        path.replace_with(if_statement(
            conditional.test,
            block_statement([expression_statement(
                assignment_expression("=", target, conditional.consequent))]),
            block_statement([expression_statement(
                assignment_expression("=", target.clone(), conditional.alternate))]),
        ))

    traverse(ast, {"ExpressionStatement": expand})
    return ast


def rewrite_inline_logical_expression(ast: Node) -> Node:
    """Expand ``&&`` into if statements.

    ``a && b;`` becomes ``if (a) { b; }``. When the value is used,
    ``f(a && b)`` becomes::

        var _temp;
        _temp = a;
        if (_temp) {
          _temp = b;
        }
        f(_temp);

    Expressions that are not evaluated first in their statement stay as they
    are, since hoisting them would reorder side effects.
    """

    def expand(path: NodePath) -> None:
        node = path.node
        if node.operator != "&&":
            return

        if path.key == "expression" and is_node(path.parent, "ExpressionStatement"):
            path.parent_path.replace_with(
                if_statement(node.left, block_statement([expression_statement(node.right)])))
            path.skip()
            return

        if path.scope is None or not can_hoist_before_statement(path):
            return
        owner = path.scope.function_scope().block
        if owner.type != "Program" and not is_node(owner.body, "BlockStatement"):
            return

        temp = path.scope.generate_uid("temp")
        statement = path.get_statement_parent()
        statement.insert_before([
            expression_statement(assignment_expression("=", identifier(temp), node.left)),
            if_statement(identifier(temp), block_statement([
                expression_statement(assignment_expression("=", identifier(temp), node.right)),
            ])),
        ])
        path.replace_with(identifier(temp))
        path.scope.push(identifier(temp))
        debug_log("debug", f"Expanded && into {temp}")

    traverse(ast, {"LogicalExpression": expand})
    return ast
