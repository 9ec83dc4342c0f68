"""Tests for string-mixing, switch-flattening and helper-function reversal."""

import pytest

from dejumble.core.nodes import fingerprint
from dejumble.errors import PatternMismatch, UnsupportedBindingShape
from dejumble.transforms import (
    build_helper_registry,
    deobfuscate_cloudflare,
    deobfuscate_mixed_strings,
    get_all_variable_values,
    get_mixed_strings,
    remove_helper_functions,
    unroll_switch_statements,
)
from dejumble.transforms.cloudflare import dotted_chain

MIXED_SETUP = 'var p = "bar,foo,baz"; var s = p.split(","); d(s, 1);'


def _callees(statements):
    return [statement.expression.callee.name for statement in statements
            if statement.type == "ExpressionStatement" and statement.expression.type == "CallExpression"]


class TestDottedChain:
    """Tests for dotted_chain."""

    def test_member_chain(self, parse):
        """Test dot and string-bracket members are named."""
        member = parse('a.b["c"];').body[0].expression
        assert dotted_chain(member) == ["a", "b", "c"]

    def test_this_root(self, parse):
        """Test chains may start at this."""
        member = parse("this.x;").body[0].expression
        assert dotted_chain(member) == ["this", "x"]

    def test_dynamic_property(self, parse):
        """Test a computed variable property cannot be named."""
        with pytest.raises(UnsupportedBindingShape):
            dotted_chain(parse("a[b];").body[0].expression)

    def test_depth_limit(self, parse):
        """Test chains deeper than the limit are refused."""
        member = parse("a.b.c;").body[0].expression
        with pytest.raises(UnsupportedBindingShape):
            dotted_chain(member, max_depth=2)


class TestMixedStrings:
    """Tests for get_mixed_strings and deobfuscate_mixed_strings."""

    def test_recovers_rotated_table(self, parse):
        """Test the payload is split and rotated by the call's count."""
        ast = parse(MIXED_SETUP)
        assert get_mixed_strings(ast, min_length=3) == ["foo", "baz", "bar"]

    def test_removes_setup(self, parse):
        """Test the payload is blanked and the separator and call removed."""
        ast = parse(MIXED_SETUP)
        get_mixed_strings(ast, min_length=3)

        assert len(ast.body) == 2
        assert ast.body[0].declarations[0].init.value == ""
        assert ast.body[1].declarations[0].init.arguments == []

    def test_zero_rotation(self, parse):
        """Test a rotation count of zero keeps the order."""
        ast = parse('var p = "bar,foo,baz"; var s = p.split(","); d(s, 0);')
        assert get_mixed_strings(ast, min_length=3) == ["bar", "foo", "baz"]

    def test_missing_piece_changes_nothing(self, parse):
        """Test nothing is edited unless all three pieces are found."""
        ast = parse('var p = "bar,foo,baz".split(",");')
        before = fingerprint(ast)

        with pytest.raises(PatternMismatch, match="call"):
            get_mixed_strings(ast, min_length=3)
        assert fingerprint(ast) == before

    def test_short_strings_are_not_payloads(self, parse):
        """Test the default minimum length ignores ordinary strings."""
        with pytest.raises(PatternMismatch, match="payload"):
            get_mixed_strings(parse(MIXED_SETUP))

    def test_substitutes_accessor_calls(self, parse):
        """Test b(i) and c(i) become the i-th string."""
        ast = parse(MIXED_SETUP + " x = b(0) + c(2); y = b(7); z = q(0);")
        deobfuscate_mixed_strings(ast, min_length=3)
        x, y, z = (statement.expression.right for statement in ast.body[2:])

        assert (x.left.value, x.right.value) == ("foo", "bar")
        assert y.type == "CallExpression"
        assert z.type == "CallExpression"

    def test_custom_accessor_names(self, parse):
        """Test accessor names are configurable."""
        ast = parse(MIXED_SETUP + " x = q(1);")
        deobfuscate_mixed_strings(ast, min_length=3, accessor_names=["q"])
        assert ast.body[2].expression.right.value == "baz"


class TestUnrollSwitchStatements:
    """Tests for get_all_variable_values and unroll_switch_statements."""

    def test_collects_order_strings(self, parse, flattened_loop):
        """Test loop initializers are recorded with the target name."""
        values = get_all_variable_values(parse(flattened_loop))
        assert [(name, order) for (_, name), order in values.items()] == [("o", "1|0")]

    def test_unrolls_in_order(self, parse, flattened_loop):
        """Test case bodies come out in the order string's order."""
        ast = unroll_switch_statements(parse(flattened_loop))

        assert ast.body[0].expression.left.name == "o"
        assert _callees(ast.body) == ["second", "first"]
        assert not any(statement.type == "ForStatement" for statement in ast.body)

    def test_declaration_initializer(self, parse):
        """Test a var initializer keeps its declaration without the counter."""
        ast = unroll_switch_statements(parse("""
for (var o = "1|2|0".split("|"), i = 0;;) {
    switch (o[i++]) {
        case "0": a(); continue;
        case "1": b(); continue;
        case "2": c(); continue;
    }
    break;
}
"""))
        declaration = ast.body[0]
        assert declaration.type == "VariableDeclaration"
        assert [d.id.name for d in declaration.declarations] == ["o"]
        assert _callees(ast.body) == ["b", "c", "a"]

    def test_order_through_member(self, parse):
        """Test an order string stored on an object is followed."""
        ast = unroll_switch_statements(parse("""
t.q = "2|0|1";
for (o = t.q.split("|"), i = 0;;) {
    switch (o[i++]) {
        case "0": a(); continue;
        case "1": b(); continue;
        case "2": c(); continue;
    }
    break;
}
"""))
        assert _callees(ast.body) == ["c", "a", "b"]

    def test_positional_cases(self, parse):
        """Test cases without distinct string labels are taken by position."""
        ast = unroll_switch_statements(parse("""
for (o = "1|0".split("|"), i = 0;;) {
    switch (o[i++]) {
        case 0: a(); continue;
        case 1: b(); continue;
    }
    break;
}
"""))
        assert _callees(ast.body) == ["b", "a"]

    def test_count_mismatch_leaves_loop(self, parse):
        """Test a loop whose order has more entries than cases is untouched."""
        ast = parse("""
for (o = "1|0|2".split("|"), i = 0;;) {
    switch (o[i++]) {
        case "0": a(); continue;
        case "1": b(); continue;
    }
    break;
}
""")
        before = fingerprint(ast)
        assert fingerprint(unroll_switch_statements(ast)) == before

    def test_multi_statement_case_leaves_loop(self, parse):
        """Test cases with more than one statement are not unrolled."""
        ast = parse("""
for (o = "1|0".split("|"), i = 0;;) {
    switch (o[i++]) {
        case "0": a(); b(); continue;
        case "1": c(); continue;
    }
    break;
}
""")
        before = fingerprint(ast)
        assert fingerprint(unroll_switch_statements(ast)) == before

    @pytest.mark.parametrize("label,statement", [
        ("", "if (a) break;"),
        ("", "if (a) continue;"),
        ("", "{ b(); break; }"),
        ("outer: ", "if (a) { continue outer; }"),
    ])
    def test_jump_out_of_case_leaves_loop(self, parse, label, statement):
        """Test a case whose statement leaves the switch is not lifted out."""
        ast = parse(f"""
{label}for (o = "1|0".split("|"), i = 0;;) {{
    switch (o[i++]) {{
        case "0": {statement} continue;
        case "1": c(); continue;
    }}
    break;
}}
""")
        before = fingerprint(ast)
        assert fingerprint(unroll_switch_statements(ast)) == before

    def test_contained_jumps_are_unrolled(self, parse):
        """Test jumps that target nested loops or functions do not block unrolling."""
        ast = parse("""
for (o = "1|0".split("|"), i = 0;;) {
    switch (o[i++]) {
        case "0": while (x) { if (y) break; } continue;
        case "1": g(function () { for (;;) { break; } }); continue;
    }
    break;
}
""")
        unroll_switch_statements(ast)
        assert [statement.type for statement in ast.body] == [
            "ExpressionStatement", "ExpressionStatement", "WhileStatement",
        ]
        assert ast.body[1].expression.callee.name == "g"

    def test_ordinary_loops_untouched(self, parse):
        """Test loops that are not flattened sequences are ignored."""
        ast = parse("for (i = 0; i < 3; i++) { switch (x) { case 1: a(); } }")
        before = fingerprint(ast)
        assert fingerprint(unroll_switch_statements(ast)) == before


class TestHelperFunctions:
    """Tests for build_helper_registry and remove_helper_functions."""

    def test_registry(self, parse):
        """Test single-return wrappers are recorded by shape."""
        registry = build_helper_registry(parse("""
function h(f, x, y) { return f(x, y); }
function add(a, b) { return a + b; }
o.and = function (a, b) { return a && b; };
function big(a) { a(); return a; }
"""))
        assert sorted(registry) == ["add", "h", "o.and"]
        assert registry["h"].forwards_callee and registry["h"].arity == 3
        assert registry["add"].operator == "+"
        assert registry["o.and"].kind == "LogicalExpression"

    def test_duplicate_names_dropped(self, parse):
        """Test a name defined twice is not trusted."""
        registry = build_helper_registry(parse("""
o.w = function (f, x) { return f(x); };
o.w = function (a, b) { return a - b; };
"""))
        assert "o.w" not in registry

    def test_inlines_forwarding_calls(self, parse):
        """Test h(f, x, y) becomes f(x, y)."""
        ast = remove_helper_functions(parse("""
function h(f, x, y) { return f(x, y); }
var r = h(g, 1, 2);
"""))
        call = ast.body[1].declarations[0].init
        assert call.callee.name == "g"
        assert [argument.value for argument in call.arguments] == [1, 2]

    def test_inlines_member_helpers(self, parse):
        """Test helpers stored on objects are matched by their dotted name."""
        ast = remove_helper_functions(parse("""
var o = {};
o.w = function (f, x) { return f(x); };
o.w(g, 3);
"""))
        call = ast.body[2].expression
        assert call.callee.name == "g"
        assert call.arguments[0].value == 3

    def test_shadowed_helper_untouched(self, parse):
        """Test a call to a different binding with the same name is kept."""
        ast = remove_helper_functions(parse("""
function h(f, x) { return f(x); }
function k(h) { return h(g, 1); }
"""))
        call = ast.body[1].body.body[0].argument
        assert call.callee.name == "h"

    def test_wrong_arity_untouched(self, parse):
        """Test calls with a different argument count are kept."""
        ast = remove_helper_functions(parse("""
function h(f, x) { return f(x); }
h(g, 1, 2);
"""))
        assert ast.body[1].expression.callee.name == "h"

    def test_operator_helpers_kept(self, parse):
        """Test binary wrappers are registered but not inlined."""
        ast = parse("function add(a, b) { return a + b; } add(1, 2);")
        before = fingerprint(ast)
        assert fingerprint(remove_helper_functions(ast)) == before


class TestDeobfuscateCloudflare:
    """Tests for the combined pass."""

    def test_runs_both_stages(self, parse, flattened_loop):
        """Test string reconstruction and unrolling run together."""
        ast = parse(MIXED_SETUP + flattened_loop.replace("first()", "log(b(0))"))
        deobfuscate_cloudflare(ast, min_length=3)

        calls = [statement.expression for statement in ast.body
                 if statement.type == "ExpressionStatement" and statement.expression.type == "CallExpression"]
        assert [call.callee.name for call in calls] == ["second", "log"]
        assert calls[1].arguments[0].value == "foo"

    def test_unmatched_program_unchanged(self, parse):
        """Test a program without the pattern passes through."""
        ast = parse("var a = 1; f(a);")
        before = fingerprint(ast)
        assert fingerprint(deobfuscate_cloudflare(ast)) == before
