"""Tests for the tree model and identifier helpers."""

import pytest

from dejumble.core.identifiers import is_bare_identifier, load_name_pool, pool_name
from dejumble.core.nodes import (
    Node,
    fingerprint,
    identifier,
    is_pure,
    normalize_number,
    numeric_literal,
    to_json,
)


class TestNode:
    """Tests for Node."""

    def test_fields_default_to_empty(self):
        """Test that list fields start as lists and other fields as None."""
        node = Node("IfStatement")
        assert node.test is None
        assert node.alternate is None
        assert Node("BlockStatement").body == []

    def test_children_in_evaluation_order(self, parse):
        """Test children are yielded left to right."""
        ast = parse("a + b;")
        binary = ast.body[0].expression
        assert [child.name for child in binary.children()] == ["a", "b"]

    def test_walk_is_depth_first(self, parse):
        """Test walk visits a node before its descendants."""
        ast = parse("f(a, b);")
        names = [node.name for node in ast.walk() if node.type == "Identifier"]
        assert names == ["f", "a", "b"]

    def test_clone_is_deep(self, parse):
        """Test cloned subtrees share no nodes with the original."""
        ast = parse("f(a);")
        call = ast.body[0].expression
        copy = call.clone()
        copy.arguments[0].name = "b"
        assert call.arguments[0].name == "a"

    def test_to_json(self):
        """Test conversion back to Babel JSON."""
        assert to_json(identifier("x")) == {"type": "Identifier", "name": "x"}


class TestFingerprint:
    """Tests for structural fingerprints."""

    def test_ignores_positions(self, parse):
        """Test whitespace differences do not change the fingerprint."""
        assert fingerprint(parse("a + 1;")) == fingerprint(parse("a   +   1 ;"))

    def test_distinguishes_structure(self, parse):
        """Test different trees have different fingerprints."""
        assert fingerprint(parse("a + 1;")) != fingerprint(parse("a + 2;"))

    def test_integral_floats_match_ints(self):
        """Test 1.0 and 1 fingerprint the same."""
        assert fingerprint(Node("NumericLiteral", value=1.0)) == fingerprint(numeric_literal(1))


class TestNumbers:
    """Tests for number normalization."""

    def test_integral_float_becomes_int(self):
        """Test integral floats collapse to ints."""
        assert normalize_number(3.0) == 3
        assert isinstance(normalize_number(3.0), int)

    def test_fractions_and_negative_zero_kept(self):
        """Test fractional values and -0 stay floats."""
        assert normalize_number(0.5) == 0.5
        assert isinstance(normalize_number(-0.0), float)


class TestIsPure:
    """Tests for the side-effect check."""

    @pytest.mark.parametrize("code", [
        "a;",
        "1 + 2;",
        "[1, 'x', null];",
        "({a: 1, b: [2]});",
        "!a;",
        "(function () { sideEffect(); });",
        "a ? b : c;",
    ])
    def test_pure(self, parse, code):
        """Test expressions without side effects."""
        assert is_pure(parse(code).body[0].expression)

    @pytest.mark.parametrize("code", [
        "f();",
        "a.b;",
        "x = 1;",
        "delete a.b;",
        "a in b;",
        "i++;",
        "({[k]: 1});",
        "new Foo();",
    ])
    def test_impure(self, parse, code):
        """Test expressions that may have side effects."""
        assert not is_pure(parse(code).body[0].expression)

    def test_missing_node_is_pure(self):
        """Test an absent initializer counts as pure."""
        assert is_pure(None)


class TestIdentifiers:
    """Tests for identifier validity and the name pool."""

    @pytest.mark.parametrize("name", ["foo", "$x", "_", "a1", "camelCase", "café", "ĳk"])
    def test_bare_identifiers(self, name):
        """Test names usable after a dot."""
        assert is_bare_identifier(name)

    @pytest.mark.parametrize("name", ["", "1a", "foo-bar", "a b", "class", "true", "var", "x²", "½", "a€"])
    def test_not_bare_identifiers(self, name):
        """Test names that need bracket access."""
        assert not is_bare_identifier(name)

    def test_pool_name_cycles_with_suffix(self):
        """Test the pool wraps around with a round number."""
        pool = ["a", "b"]
        assert [pool_name(pool, i) for i in range(5)] == ["a", "b", "a2", "b2", "a3"]

    def test_pool_name_requires_names(self):
        """Test an empty pool is rejected."""
        with pytest.raises(ValueError):
            pool_name([], 0)

    def test_load_name_pool(self, tmp_path):
        """Test blank lines and comments are skipped."""
        path = tmp_path / "names.txt"
        path.write_text("# readable names\nred\n\ngreen\n  blue  \n", encoding="utf-8")
        assert load_name_pool(path) == ["red", "green", "blue"]

    def test_load_name_pool_rejects_invalid_names(self, tmp_path):
        """Test a reserved word in the pool is an error."""
        path = tmp_path / "names.txt"
        path.write_text("red\nclass\n", encoding="utf-8")
        with pytest.raises(ValueError, match="class"):
            load_name_pool(path)

    def test_load_name_pool_rejects_empty_file(self, tmp_path):
        """Test a pool without names is an error."""
        path = tmp_path / "names.txt"
        path.write_text("# nothing here\n", encoding="utf-8")
        with pytest.raises(ValueError, match="empty"):
            load_name_pool(path)
