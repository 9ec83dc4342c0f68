"""Pass pipeline: named rewrites run in priority order over one shared tree."""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from dejumble.config import Config
from dejumble.core.identifiers import DEFAULT_NAME_POOL, load_name_pool
from dejumble.core.nodes import Node, raise_recursion_limit
from dejumble.core.parser import parse_javascript
from dejumble.debug import debug_log
from dejumble.transforms import (
    constant_folding,
    delete_unused,
    deobfuscate_cloudflare,
    deobfuscate_hidden_false,
    deobfuscate_jsfuck,
    deobfuscate_object_calls,
    remove_comma_statements,
    remove_dead_else,
    remove_empty_statements,
    remove_helper_functions,
    remove_useless_if,
    rename_function_arguments,
    rename_identifiers,
    replace_hex_encoded,
    replace_with_actual_val,
    rewrite_inline_if,
    rewrite_inline_logical_expression,
)


@dataclass
class PassContext:
    """Context handed from pass to pass."""
    ast: Node
    file_path: Optional[Path] = None
    metadata: dict[str, Any] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}


class Pass(ABC):
    """Abstract base class for passes."""

    name: str = "base_pass"
    description: str = "Base pass class"
    priority: int = 100  # Lower priority runs first

    @abstractmethod
    def process(self, context: PassContext) -> PassContext:
        """Rewrite the tree and return the updated context.

        Args:
            context: Current processing context

        Returns:
            Updated context with modifications
        """
        pass

    def should_run(self, context: PassContext) -> bool:
        """Determine if this pass should run.

        Args:
            context: Current processing context

        Returns:
            True if pass should run
        """
        return True


class FunctionPass(Pass):
    """Wraps a ``pass_fn(ast, **options) -> ast`` function."""

    def __init__(
        self,
        function: Callable[..., Node],
        priority: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
        **options: Any,
    ):
        self.function = function
        self.priority = priority
        self.name = name or function.__name__
        doc = (function.__doc__ or "").strip()
        self.description = description or (doc.splitlines()[0] if doc else self.name)
        self.options = options

    def __repr__(self) -> str:
        return f"FunctionPass({self.name!r}, priority={self.priority})"

    def process(self, context: PassContext) -> PassContext:
        result = self.function(context.ast, **self.options)
        if result is not None:
            context.ast = result
        return context


class PassChain:
    """Manages a chain of passes to apply sequentially."""

    def __init__(self):
        self.passes: list[Pass] = []

    def __len__(self) -> int:
        return len(self.passes)

    def __iter__(self):
        return iter(self.passes)

    @property
    def names(self) -> list[str]:
        return [p.name for p in self.passes]

    def add_pass(self, pass_: Pass) -> "PassChain":
        """Add a pass to the chain.

        Args:
            pass_: Pass to add

        Returns:
            Self for chaining
        """
        self.passes.append(pass_)
        # Sort by priority; equal priorities keep insertion order
        self.passes.sort(key=lambda p: p.priority)
        return self

    def run(
        self,
        context: PassContext,
        progress_callback: Optional[Callable[[Pass], None]] = None,
    ) -> PassContext:
        """Run all passes in sequence.

        Args:
            context: Initial context
            progress_callback: Called with each pass after it finishes

        Returns:
            Final context after all passes
        """
        raise_recursion_limit()
        timings = context.metadata.setdefault("timings", {})
        for pass_ in self.passes:
            if not pass_.should_run(context):
                continue
            started = time.perf_counter()
            context = pass_.process(context)
            elapsed = time.perf_counter() - started
            timings[pass_.name] = elapsed
            debug_log("debug", f"Pass {pass_.name} finished", {
                "file": context.file_path,
                "seconds": round(elapsed, 4),
            })
            if progress_callback:
                progress_callback(pass_)
        return context

    def __or__(self, other: "PassChain") -> "PassChain":
        """Combine two pass chains."""
        combined = PassChain()
        combined.passes = sorted(
            self.passes + other.passes,
            key=lambda p: p.priority,
        )
        return combined


def build_pipeline(config: Optional[Config] = None) -> PassChain:
    """Build the default pass chain for a configuration.

    Args:
        config: Configuration, defaults loaded from the environment when omitted

    Returns:
        Passes sorted by priority
    """
    config = config or Config()
    pool = load_name_pool(config.name_pool_file) if config.name_pool_file else list(DEFAULT_NAME_POOL)

    chain = PassChain()
    chain.add_pass(FunctionPass(replace_hex_encoded, 10))
    if config.cloudflare:
        chain.add_pass(FunctionPass(
            deobfuscate_cloudflare, 20,
            min_length=config.mixed_string_min_length,
            separators=config.mixed_string_separators,
            accessor_names=list(config.accessor_names),
            max_depth=config.max_chain_depth,
        ))
        chain.add_pass(FunctionPass(remove_helper_functions, 30, max_depth=config.max_chain_depth))
    chain.add_pass(FunctionPass(remove_comma_statements, 40))
    chain.add_pass(FunctionPass(delete_unused, 50))
    chain.add_pass(FunctionPass(replace_with_actual_val, 60))
    chain.add_pass(FunctionPass(constant_folding, 70))
    chain.add_pass(FunctionPass(deobfuscate_jsfuck, 80))
    chain.add_pass(FunctionPass(deobfuscate_object_calls, 90))
    chain.add_pass(FunctionPass(deobfuscate_hidden_false, 100))
    chain.add_pass(FunctionPass(remove_useless_if, 110))
    chain.add_pass(FunctionPass(remove_dead_else, 120))
    chain.add_pass(FunctionPass(remove_empty_statements, 130))
    chain.add_pass(FunctionPass(rewrite_inline_if, 140))
    if config.inline_logical:
        chain.add_pass(FunctionPass(rewrite_inline_logical_expression, 150))
    if config.rename_arguments:
        chain.add_pass(FunctionPass(rename_function_arguments, 160, pool=pool))
    if config.rename_identifiers:
        chain.add_pass(FunctionPass(
            rename_identifiers, 170,
            custom_names=list(config.custom_names),
            pool=pool,
        ))
    return chain


def deobfuscate(ast: Node, config: Optional[Config] = None, file_path: Optional[Path] = None) -> PassContext:
    """Run the default pipeline over a parsed program.

    Args:
        ast: Program node, rewritten in place
        config: Configuration
        file_path: Source file, for logging

    Returns:
        The final context; ``metadata["timings"]`` holds seconds per pass
    """
    chain = build_pipeline(config)
    return chain.run(PassContext(ast=ast, file_path=file_path))


def deobfuscate_source(source_code: str, config: Optional[Config] = None) -> Node:
    """Parse source code and run the default pipeline over it."""
    config = config or Config()
    ast = parse_javascript(
        source_code,
        backend=config.parser_backend.value,
        timeout=config.node_timeout_seconds,
    )
    return deobfuscate(ast, config).ast
