"""Tree rewriting passes.

Every pass has the signature ``pass_fn(ast, **options) -> ast`` and edits
the tree in place.
"""

from dejumble.transforms.bindings import (
    delete_unused,
    find_unused_bindings,
    rename_function_arguments,
    rename_identifiers,
    replace_with_actual_val,
)
from dejumble.transforms.cloudflare import (
    HelperFunction,
    build_helper_registry,
    deobfuscate_cloudflare,
    deobfuscate_mixed_strings,
    get_all_variable_values,
    get_mixed_strings,
    remove_helper_functions,
    unroll_switch_statements,
)
from dejumble.transforms.literals import (
    constant_folding,
    deobfuscate_hidden_false,
    deobfuscate_jsfuck,
    deobfuscate_object_calls,
    replace_hex_encoded,
)
from dejumble.transforms.statements import (
    remove_comma_statements,
    remove_dead_else,
    remove_empty_statements,
    remove_useless_if,
    rewrite_inline_if,
    rewrite_inline_logical_expression,
)

__all__ = [
    "HelperFunction",
    "build_helper_registry",
    "constant_folding",
    "delete_unused",
    "deobfuscate_cloudflare",
    "deobfuscate_hidden_false",
    "deobfuscate_jsfuck",
    "deobfuscate_mixed_strings",
    "deobfuscate_object_calls",
    "find_unused_bindings",
    "get_all_variable_values",
    "get_mixed_strings",
    "remove_comma_statements",
    "remove_dead_else",
    "remove_empty_statements",
    "remove_helper_functions",
    "remove_useless_if",
    "rename_function_arguments",
    "rename_identifiers",
    "replace_hex_encoded",
    "replace_with_actual_val",
    "rewrite_inline_if",
    "rewrite_inline_logical_expression",
    "unroll_switch_statements",
]
