"""Passes that rely on scope information: dead declarations, propagation, renaming."""

from typing import Optional, Sequence

from dejumble.core.identifiers import DEFAULT_NAME_POOL, is_bare_identifier, pool_name
from dejumble.core.nodes import (
    PRIMITIVE_LITERAL_TYPES,
    Node,
    expression_statement,
    is_node,
    is_pure,
)
from dejumble.core.path import NodePath
from dejumble.core.scope import Binding, ScopeTracker
from dejumble.core.traverse import traverse
from dejumble.debug import debug_log


def _declared_binding(path: NodePath) -> Optional[Binding]:
    node = path.node
    if not is_node(node.id, "Identifier") or path.scope is None:
        return None
    return path.scope.binding_for(node.id)


def _is_exported(path: NodePath) -> bool:
    owner = path.parent_path if path.node.type == "VariableDeclarator" else path
    return owner is not None and is_node(owner.parent, "ExportNamedDeclaration", "ExportDefaultDeclaration")


def _is_loop_head(path: NodePath) -> bool:
    declaration = path.parent_path
    return (
        declaration is not None
        and declaration.key == "left"
        and is_node(declaration.parent, "ForInStatement", "ForOfStatement")
    )


def is_unused(binding: Optional[Binding]) -> bool:
    """A binding nothing reads and nothing reassigns."""
    return binding is not None and binding.constant and not binding.referenced


def find_unused_bindings(ast: Node) -> list[Binding]:
    """Declared variables and functions whose binding is unused, in document order."""
    tracker = ScopeTracker(ast)
    unused = []
    seen = set()
    for node in ast.walk():
        if node.type not in ("VariableDeclarator", "FunctionDeclaration"):
            continue
        if not is_node(node.id, "Identifier"):
            continue
        binding = tracker.binding_by_identifier.get(id(node.id))
        if is_unused(binding) and id(binding) not in seen:
            seen.add(id(binding))
            unused.append(binding)
    return unused


def delete_unused(ast: Node) -> Node:
    """Remove declarations whose binding is never referenced or reassigned.

    An initializer that may have side effects survives as an expression
    statement in front of the declaration.
    """

    def remove(path: NodePath) -> None:
        node = path.node
        binding = _declared_binding(path)
        if not is_unused(binding) or _is_exported(path):
            return

        if node.type == "VariableDeclarator":
            if _is_loop_head(path):
                return
            if not is_pure(node.init):
                declaration = path.parent_path
                if declaration is None or not declaration.in_statement_list:
                    return
                declaration.insert_before(expression_statement(node.init))

        debug_log("debug", f"Removing unused {binding.kind} {binding.name}")
        path.remove()

    traverse(ast, {"VariableDeclarator|FunctionDeclaration": remove})
    return ast


def replace_with_actual_val(ast: Node) -> Node:
    """Inline variables that are initialized to a primitive literal and never reassigned.

    ``var x = 5; f(x);`` becomes ``f(5);``.
    """

    def propagate(path: NodePath) -> None:
        node = path.node
        if not is_node(node.init, *PRIMITIVE_LITERAL_TYPES):
            return
        binding = _declared_binding(path)
        if binding is None or not binding.constant or _is_exported(path) or _is_loop_head(path):
            return
        if any(is_node(reference.parent, "ExportSpecifier") for reference in binding.reference_paths):
            return

        for reference in binding.reference_paths:
            reference.replace_with(node.init.clone())
        debug_log("debug", f"Propagated {binding.name}", {"references": binding.references})
        path.remove()

    traverse(ast, {"VariableDeclarator": propagate})
    return ast


def _free_name(candidate: str, names: set[str]) -> str:
    name = candidate
    suffix = 2
    while name in names:
        name = f"{candidate}_{suffix}"
        suffix += 1
    return name


def _check_names(names: Sequence[str]) -> list[str]:
    names = list(names)
    for name in names:
        if not is_bare_identifier(name):
            raise ValueError(f"{name!r} is not a valid identifier")
    return names


def rename_identifiers(
    ast: Node,
    custom_names: Optional[Sequence[str]] = None,
    pool: Optional[Sequence[str]] = None,
) -> Node:
    """Give every declared variable and function a readable name.

    Declarations are named in document order as ``var_`` or ``func_`` plus the
    next name from ``custom_names``, then from ``pool``. A name already used
    anywhere in the program gets a numeric suffix.

    Args:
        ast: Program to rename in place
        custom_names: Names used before the pool, positionally
        pool: Name pool, :data:`DEFAULT_NAME_POOL` when omitted

    Returns:
        The same tree
    """
    custom = _check_names(custom_names or [])
    pool = list(pool or DEFAULT_NAME_POOL)
    renamed: dict[int, Binding] = {}
    counter = 0

    def rename(path: NodePath) -> None:
        nonlocal counter
        node = path.node
        if node.id is None:
            return
        if not is_node(node.id, "Identifier"):
            debug_log("debug", "Skipping destructured declaration", {"type": node.id.type})
            return
        binding = _declared_binding(path)
        if binding is None or id(binding) in renamed:
            return

        prefix = "var_" if node.type == "VariableDeclarator" else "func_"
        base = custom[counter] if counter < len(custom) else pool_name(pool, counter)
        counter += 1
        new_name = _free_name(prefix + base, binding.scope.tracker.names)

        debug_log("debug", f"Renaming {binding.name} -> {new_name}")
        binding.scope.rename(binding.name, new_name)
        renamed[id(binding)] = binding

    traverse(ast, {"VariableDeclarator|FunctionDeclaration": rename})
    return ast


def _param_identifier(param: Node) -> Optional[Node]:
    if is_node(param, "Identifier"):
        return param
    if is_node(param, "AssignmentPattern") and is_node(param.left, "Identifier"):
        return param.left
    if is_node(param, "RestElement") and is_node(param.argument, "Identifier"):
        return param.argument
    return None


def rename_function_arguments(ast: Node, pool: Optional[Sequence[str]] = None) -> Node:
    """Name function parameters ``arg_`` plus the next pool name.

    The counter runs across the whole program so that no two parameters end
    up with the same name.
    """
    pool = list(pool or DEFAULT_NAME_POOL)
    counter = 0

    def rename(path: NodePath) -> None:
        nonlocal counter
        scope = path.scope.tracker.own_scope(path.node)
        for param in path.node.params:
            name_node = _param_identifier(param)
            if name_node is None:
                debug_log("debug", "Skipping destructured parameter", {"type": param.type})
                continue
            binding = scope.binding_for(name_node)
            if binding is None or binding.kind != "param" or name_node is not binding.identifiers[0]:
                continue
            new_name = _free_name("arg_" + pool_name(pool, counter), scope.tracker.names)
            counter += 1
            debug_log("debug", f"Renaming parameter {binding.name} -> {new_name}")
            binding.scope.rename(binding.name, new_name)

    traverse(ast, {
        "FunctionDeclaration|FunctionExpression|ArrowFunctionExpression|ObjectMethod|ClassMethod": rename,
    })
    return ast
