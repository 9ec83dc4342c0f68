"""Tests for traversal and path edits."""

import pytest

from dejumble.core.nodes import (
    Node,
    call_expression,
    expression_statement,
    identifier,
    numeric_literal,
    program,
)
from dejumble.core.path import NodePath
from dejumble.core.traverse import traverse
from dejumble.errors import TreeEditError


def _callee_names(ast):
    return [statement.expression.callee.name for statement in ast.body]


class TestVisitorDispatch:
    """Tests for visitor keys and enter/exit handlers."""

    def test_pipe_separated_kinds(self, parse):
        """Test one handler can serve several node kinds."""
        seen = []
        traverse(parse("a + 1; b || c;"), {
            "BinaryExpression|LogicalExpression": lambda path: seen.append(path.node.operator),
        })
        assert seen == ["+", "||"]

    def test_enter_and_exit_order(self, parse):
        """Test exit runs after the children were visited."""
        events = []
        traverse(parse("f(a);"), {
            "CallExpression": {
                "enter": lambda path: events.append("enter call"),
                "exit": lambda path: events.append("exit call"),
            },
            "Identifier": lambda path: events.append(path.node.name),
        })
        assert events == ["enter call", "f", "a", "exit call"]

    def test_skip_children(self, parse):
        """Test skip() leaves the subtree unvisited."""
        seen = []

        def skip_calls(path):
            path.skip()

        traverse(parse("f(a); b;"), {
            "CallExpression": skip_calls,
            "Identifier": lambda path: seen.append(path.node.name),
        })
        assert seen == ["b"]

    def test_stop(self, parse):
        """Test stop() ends the traversal."""
        seen = []

        def record(path):
            seen.append(path.node.name)
            path.stop()

        traverse(parse("a; b; c;"), {"Identifier": record})
        assert seen == ["a"]

    def test_paths_carry_scope(self, parse):
        """Test handlers receive the scope the node lives in."""
        scopes = {}

        def record(path):
            scopes[path.node.name] = path.scope.block.type

        traverse(parse("a; function f() { b; }"), {"Identifier": record})
        assert scopes["a"] == "Program"
        assert scopes["b"] == "FunctionDeclaration"


class TestPathEdits:
    """Tests for replacing, inserting and removing nodes."""

    def test_replacement_is_revisited(self, parse):
        """Test a replaced node's replacement goes through the visitor again."""
        seen = []

        def rename(path):
            seen.append(path.node.name)
            if path.node.name == "a":
                path.replace_with(identifier("b"))

        ast = parse("a;")
        traverse(ast, {"Identifier": rename})
        assert seen == ["a", "b"]
        assert ast.body[0].expression.name == "b"

    def test_replace_statement_with_expression_wraps_it(self, parse):
        """Test an expression put in statement position becomes a statement."""
        ast = parse("if (a) b();")

        def replace(path):
            path.replace_with(call_expression(identifier("c")))

        traverse(ast, {"IfStatement": replace})
        assert ast.body[0].type == "ExpressionStatement"
        assert ast.body[0].expression.callee.name == "c"

    def test_replace_multiple_in_statement_list(self, parse):
        """Test several statements are spliced in place of one."""
        ast = parse("a(); b(); c();")

        def split(path):
            if path.node.expression.callee.name == "b":
                path.replace_with_multiple([
                    call_expression(identifier("x")),
                    call_expression(identifier("y")),
                ])

        traverse(ast, {"ExpressionStatement": split})
        assert _callee_names(ast) == ["a", "x", "y", "c"]

    def test_replace_multiple_in_expression_makes_sequence(self, parse):
        """Test several expressions in an expression slot become a sequence."""
        ast = parse("f(a);")

        def split(path):
            if path.node.name == "a":
                path.replace_with_multiple([identifier("x"), identifier("y")])

        traverse(ast, {"Identifier": split})
        assert ast.body[0].expression.arguments[0].type == "SequenceExpression"

    def test_insert_before_is_visited(self, parse):
        """Test statements inserted before the current one are visited."""
        ast = parse("a();")
        seen = []

        def insert(path):
            name = path.node.expression.callee.name
            seen.append(name)
            if name == "a":
                path.insert_before(call_expression(identifier("marker")))

        traverse(ast, {"ExpressionStatement": insert})
        assert _callee_names(ast) == ["marker", "a"]
        assert sorted(seen) == ["a", "marker"]

    def test_insert_after(self, parse):
        """Test inserting after the current statement."""
        ast = parse("a(); b();")

        def insert(path):
            if path.node.expression.callee.name == "a":
                path.insert_after(call_expression(identifier("x")))

        traverse(ast, {"ExpressionStatement": insert})
        assert _callee_names(ast) == ["a", "x", "b"]

    def test_remove_from_list_keeps_walking(self, parse):
        """Test removing a statement does not skip its next sibling."""
        ast = parse("a(); b(); b(); c();")
        seen = []

        def remove(path):
            name = path.node.expression.callee.name
            seen.append(name)
            if name == "b":
                path.remove()

        traverse(ast, {"ExpressionStatement": remove})
        assert _callee_names(ast) == ["a", "c"]
        assert seen == ["a", "b", "b", "c"]

    def test_remove_expression_removes_statement(self, parse):
        """Test removing a statement's expression removes the statement."""
        ast = parse("a(); b();")

        def remove(path):
            if path.node.callee.name == "a":
                path.remove()

        traverse(ast, {"CallExpression": remove})
        assert _callee_names(ast) == ["b"]

    def test_remove_last_declarator_removes_declaration(self, parse):
        """Test a declaration without declarators is removed."""
        ast = parse("var a = 1; b();")
        traverse(ast, {"VariableDeclarator": lambda path: path.remove()})
        assert [statement.type for statement in ast.body] == ["ExpressionStatement"]

    def test_remove_consequent_leaves_empty_block(self, parse):
        """Test the consequent slot is never left empty."""
        ast = parse("if (a) b();")
        traverse(ast, {"ExpressionStatement": lambda path: path.remove()})
        assert ast.body[0].consequent.type == "BlockStatement"
        assert ast.body[0].consequent.body == []

    def test_replacing_shorthand_value_expands_property(self):
        """Test a shorthand property stops being shorthand when its value changes."""
        prop = Node("ObjectProperty", key=identifier("a"), value=identifier("a"),
                    computed=False, shorthand=True)
        ast = program([expression_statement(Node("ObjectExpression", properties=[prop]))])

        def replace(path):
            if path.key == "value":
                path.replace_with(numeric_literal(1))

        traverse(ast, {"Identifier": replace})
        assert prop.shorthand is False
        assert prop.key.name == "a"
        assert prop.value.value == 1

    def test_cannot_replace_root(self, parse):
        """Test the root has no container to edit."""
        with pytest.raises(TreeEditError):
            NodePath(parse("a;")).replace_with(identifier("b"))

    def test_cannot_put_statement_in_expression(self, parse):
        """Test a statement cannot replace an expression operand."""
        ast = parse("a + b;")

        def replace(path):
            path.replace_with(expression_statement(identifier("c")))

        with pytest.raises(TreeEditError):
            traverse(ast, {"BinaryExpression": replace})
