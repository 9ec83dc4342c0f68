"""Tests for the pass pipeline."""

from dejumble.config import Config, ParserBackend
from dejumble.core.nodes import fingerprint
from dejumble.pipeline import (
    FunctionPass,
    Pass,
    PassChain,
    PassContext,
    build_pipeline,
    deobfuscate,
    deobfuscate_source,
)

DEFAULT_ORDER = [
    "replace_hex_encoded",
    "remove_comma_statements",
    "delete_unused",
    "replace_with_actual_val",
    "constant_folding",
    "deobfuscate_jsfuck",
    "deobfuscate_object_calls",
    "deobfuscate_hidden_false",
    "remove_useless_if",
    "remove_dead_else",
    "remove_empty_statements",
    "rewrite_inline_if",
    "rename_function_arguments",
    "rename_identifiers",
]


def _no_rename(**kwargs) -> Config:
    return Config(rename_identifiers=False, rename_arguments=False,
                  parser_backend=ParserBackend.ESPRIMA, **kwargs)


class RecordingPass(Pass):
    """Pass that records its name into the context."""

    def __init__(self, name: str, priority: int):
        self.name = name
        self.priority = priority

    def process(self, context: PassContext) -> PassContext:
        context.metadata.setdefault("order", []).append(self.name)
        return context


class SkippedPass(RecordingPass):
    """Pass that never runs."""

    def should_run(self, context: PassContext) -> bool:
        return False


class TestPassChain:
    """Tests for PassChain."""

    def test_runs_in_priority_order(self, parse):
        """Test passes run lowest priority first whatever the insertion order."""
        chain = PassChain()
        chain.add_pass(RecordingPass("late", 20)).add_pass(RecordingPass("early", 10))
        context = chain.run(PassContext(ast=parse("a;")))

        assert context.metadata["order"] == ["early", "late"]
        assert set(context.metadata["timings"]) == {"early", "late"}

    def test_should_run(self, parse):
        """Test passes can opt out."""
        chain = PassChain().add_pass(SkippedPass("skipped", 10)).add_pass(RecordingPass("kept", 20))
        context = chain.run(PassContext(ast=parse("a;")))
        assert context.metadata["order"] == ["kept"]

    def test_combine(self):
        """Test | merges two chains by priority."""
        first = PassChain().add_pass(RecordingPass("a", 10)).add_pass(RecordingPass("c", 30))
        second = PassChain().add_pass(RecordingPass("b", 20))
        assert (first | second).names == ["a", "b", "c"]

    def test_progress_callback(self, parse):
        """Test the callback is called once per pass."""
        seen = []
        chain = PassChain().add_pass(RecordingPass("a", 10)).add_pass(RecordingPass("b", 20))
        chain.run(PassContext(ast=parse("a;")), progress_callback=lambda p: seen.append(p.name))
        assert seen == ["a", "b"]


class TestFunctionPass:
    """Tests for FunctionPass."""

    def test_name_and_description(self):
        """Test name and description come from the function."""

        def shout(ast):
            """Make everything louder.

            More detail here.
            """
            return ast

        pass_ = FunctionPass(shout, 5)
        assert pass_.name == "shout"
        assert pass_.description == "Make everything louder."

    def test_options_are_passed(self, parse):
        """Test keyword options reach the function."""
        received = {}

        def configurable(ast, level=0):
            received["level"] = level
            return ast

        FunctionPass(configurable, 5, level=3).process(PassContext(ast=parse("a;")))
        assert received == {"level": 3}


class TestBuildPipeline:
    """Tests for build_pipeline."""

    def test_default_order(self):
        """Test the default pass list."""
        chain = build_pipeline(Config(cloudflare=False, inline_logical=False,
                                      rename_identifiers=True, rename_arguments=True))
        assert chain.names == DEFAULT_ORDER

    def test_optional_passes(self):
        """Test cloudflare and inline-logical passes slot into place."""
        chain = build_pipeline(Config(cloudflare=True, inline_logical=True,
                                      rename_identifiers=True, rename_arguments=True))
        names = chain.names

        assert names[1:3] == ["deobfuscate_cloudflare", "remove_helper_functions"]
        assert names[-3:] == ["rewrite_inline_logical_expression", "rename_function_arguments",
                              "rename_identifiers"]

    def test_no_rename(self):
        """Test renaming passes can be switched off."""
        names = build_pipeline(_no_rename()).names
        assert "rename_identifiers" not in names
        assert "rename_function_arguments" not in names

    def test_name_pool_file(self, tmp_path, parse):
        """Test a name pool file feeds the renaming passes."""
        pool = tmp_path / "pool.txt"
        pool.write_text("red\ngreen\n", encoding="utf-8")
        config = Config(name_pool_file=pool, rename_identifiers=True, rename_arguments=True,
                        cloudflare=False)
        context = deobfuscate(parse("var a = g(); f(a);"), config)
        assert context.ast.body[0].declarations[0].id.name == "var_red"


class TestDeobfuscate:
    """End-to-end tests over the default pipeline."""

    def test_simplifies_program(self, parse):
        """Test propagation, folding, dot access and dead-if removal together."""
        context = deobfuscate(parse('var x = 5; if (true) { f(x + 1); } g(a["b"]);'), _no_rename())
        body = context.ast.body

        assert [statement.type for statement in body] == ["ExpressionStatement", "ExpressionStatement"]
        assert body[0].expression.arguments[0].value == 6
        member = body[1].expression.arguments[0]
        assert member.computed is False and member.property.name == "b"
        assert "delete_unused" in context.metadata["timings"]

    def test_cloudflare_program(self, parse, flattened_loop):
        """Test unrolling, helper inlining and dead helper removal together."""
        code = "function h(f, x) { return f(x); }\n" + flattened_loop \
            .replace("first()", 'h(alert, "a")') \
            .replace("second()", 'h(alert, "b")')
        body = deobfuscate(parse(code), _no_rename(cloudflare=True)).ast.body

        assert not any(statement.type == "FunctionDeclaration" for statement in body)
        calls = [statement.expression for statement in body[-2:]]
        assert [call.callee.name for call in calls] == ["alert", "alert"]
        assert [call.arguments[0].value for call in calls] == ["b", "a"]

    def test_idempotent(self, parse):
        """Test running the pipeline twice gives the same tree."""
        config = _no_rename()
        ast = deobfuscate(parse('x = (f(), "a" + "b"); if (![]) { y(); }'), config).ast
        before = fingerprint(ast)
        assert fingerprint(deobfuscate(ast, config).ast) == before

    def test_deobfuscate_source(self):
        """Test parsing and deobfuscating straight from source text."""
        ast = deobfuscate_source("f(!![]);", _no_rename())
        assert ast.body[0].expression.arguments[0].value is True
