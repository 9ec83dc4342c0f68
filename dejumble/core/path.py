"""Paths: transient handles used to edit the tree during a traversal."""

from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Union

from dejumble.core.nodes import (
    STATEMENT_LISTS,
    STATEMENT_SLOTS,
    Node,
    block_statement,
    identifier,
    is_statement,
    sequence_expression,
    to_statement,
)
from dejumble.errors import TreeEditError

if TYPE_CHECKING:
    from dejumble.core.scope import Scope
    from dejumble.core.traverse import Traversal

# Slots that may legally be left empty after a removal.
_NULLABLE_SLOTS = frozenset({
    ("IfStatement", "alternate"),
    ("ForStatement", "init"),
    ("ForStatement", "test"),
    ("ForStatement", "update"),
    ("ReturnStatement", "argument"),
    ("VariableDeclarator", "init"),
    ("FunctionExpression", "id"),
    ("ClassExpression", "id"),
    ("ClassDeclaration", "superClass"),
    ("ClassExpression", "superClass"),
    ("TryStatement", "handler"),
    ("TryStatement", "finalizer"),
    ("SwitchCase", "test"),
    ("YieldExpression", "argument"),
    ("BreakStatement", "label"),
    ("ContinueStatement", "label"),
    ("CatchClause", "param"),
    ("ExportNamedDeclaration", "declaration"),
    ("ExportNamedDeclaration", "source"),
})


def _as_list(nodes: Union[Node, Iterable[Node]]) -> list[Node]:
    if isinstance(nodes, Node):
        return [nodes]
    return list(nodes)


class NodePath:
    """A node together with its position in the tree.

    Paths find their node in the parent container by identity, so a path stays
    usable while siblings are inserted or removed around it.
    """

    def __init__(
        self,
        node: Node,
        parent: Optional[Node] = None,
        parent_path: Optional["NodePath"] = None,
        key: Optional[str] = None,
        index: Optional[int] = None,
        traversal: Optional["Traversal"] = None,
        scope: Optional["Scope"] = None,
    ):
        self.node = node
        self.parent = parent
        self.parent_path = parent_path
        self.key = key
        self.index = index
        self.traversal = traversal
        self.scope = scope
        self.removed = False
        self.should_skip = False

    def __repr__(self) -> str:
        where = f"{self.parent.type}.{self.key}" if self.parent is not None else "root"
        return f"NodePath({self.node!r} @ {where})"

    @property
    def type(self) -> str:
        return self.node.type

    @property
    def container(self) -> Any:
        if self.parent is None:
            return None
        return getattr(self.parent, self.key, None)

    @property
    def in_list(self) -> bool:
        return isinstance(self.container, list)

    @property
    def in_statement_list(self) -> bool:
        return self.parent is not None and (self.parent.type, self.key) in STATEMENT_LISTS

    @property
    def in_statement_slot(self) -> bool:
        return self.parent is not None and (self.parent.type, self.key) in STATEMENT_SLOTS

    def _resync(self) -> int:
        container = self.container
        if not isinstance(container, list):
            raise TreeEditError(f"{self!r} is not inside a list")
        if self.index is not None and self.index < len(container) and container[self.index] is self.node:
            return self.index
        for position, item in enumerate(container):
            if item is self.node:
                self.index = position
                return position
        raise TreeEditError(f"{self!r} is no longer attached to its parent")

    def _touch(self, container: list, index: int) -> None:
        if self.traversal is not None:
            self.traversal.touch(container, index)

    def _child_scope(self) -> Optional["Scope"]:
        if self.scope is None:
            return None
        own = self.scope.tracker.own_scope(self.node)
        return own or self.scope

    def get(self, key: str) -> Union["NodePath", list["NodePath"], None]:
        """Path (or list of paths) for a child field."""
        value = getattr(self.node, key, None)
        scope = self._child_scope()
        if isinstance(value, list):
            return [
                NodePath(item, self.node, self, key, position, self.traversal, scope)
                for position, item in enumerate(value)
                if isinstance(item, Node)
            ]
        if isinstance(value, Node):
            return NodePath(value, self.node, self, key, None, self.traversal, scope)
        return None

    def find_parent(self, predicate: Callable[["NodePath"], bool]) -> Optional["NodePath"]:
        path = self.parent_path
        while path is not None:
            if predicate(path):
                return path
            path = path.parent_path
        return None

    def get_statement_parent(self) -> "NodePath":
        """Nearest path (self included) that is a statement in a statement position."""
        path: Optional[NodePath] = self
        while path is not None:
            if is_statement(path.node) and (path.in_statement_list or path.in_statement_slot):
                return path
            path = path.parent_path
        raise TreeEditError(f"{self!r} has no statement parent")

    def skip(self) -> None:
        self.should_skip = True

    def stop(self) -> None:
        if self.traversal is not None:
            self.traversal.stopped = True

    # Edits

    def replace_with(self, node: Node) -> None:
        if self.parent is None:
            raise TreeEditError("cannot replace the root node")
        if self.removed:
            raise TreeEditError(f"{self!r} was already removed")
        if is_statement(self.node) and not is_statement(node) and (
            self.in_statement_list or self.in_statement_slot
        ):
            node = to_statement(node)
        elif is_statement(node) and not is_statement(self.node) and not (
            self.in_statement_list or self.in_statement_slot
        ):
            raise TreeEditError(f"cannot put a {node.type} in {self.parent.type}.{self.key}")

        container = self.container
        if isinstance(container, list):
            container[self._resync()] = node
        else:
            setattr(self.parent, self.key, node)
            if self.parent.type == "ObjectProperty" and self.key == "value" and self.parent.shorthand:
                self.parent.shorthand = False
        self.node = node

    def replace_with_multiple(self, nodes: Iterable[Node]) -> None:
        nodes = _as_list(nodes)
        if not nodes:
            self.remove()
            return
        if len(nodes) == 1:
            self.replace_with(nodes[0])
            return
        if self.in_statement_list:
            container = self.container
            position = self._resync()
            container[position:position + 1] = [to_statement(node) for node in nodes]
            self.removed = True
            self._touch(container, position)
        elif self.in_statement_slot:
            self.replace_with(block_statement([to_statement(node) for node in nodes]))
        elif not any(is_statement(node) for node in nodes):
            self.replace_with(sequence_expression(nodes))
        else:
            raise TreeEditError(f"cannot splice statements into {self.parent.type}.{self.key}")

    def insert_before(self, nodes: Union[Node, Iterable[Node]]) -> None:
        nodes = _as_list(nodes)
        if not nodes:
            return
        if self.parent is None:
            raise TreeEditError("cannot insert next to the root node")
        if self.in_statement_list:
            container = self.container
            position = self._resync()
            container[position:position] = [to_statement(node) for node in nodes]
            self.index = position + len(nodes)
            self._touch(container, position)
        elif self.parent.type == "ExpressionStatement" and self.parent_path is not None:
            self.parent_path.insert_before(nodes)
        elif self.in_statement_slot:
            current = self.node
            self.replace_with(block_statement([*map(to_statement, nodes), current]))
        else:
            raise TreeEditError(f"cannot insert before a node in {self.parent.type}.{self.key}")

    def insert_after(self, nodes: Union[Node, Iterable[Node]]) -> None:
        nodes = _as_list(nodes)
        if not nodes:
            return
        if self.parent is None:
            raise TreeEditError("cannot insert next to the root node")
        if self.in_statement_list:
            container = self.container
            position = self._resync()
            container[position + 1:position + 1] = [to_statement(node) for node in nodes]
            self._touch(container, position + 1)
        elif self.parent.type == "ExpressionStatement" and self.parent_path is not None:
            self.parent_path.insert_after(nodes)
        elif self.in_statement_slot:
            current = self.node
            self.replace_with(block_statement([current, *map(to_statement, nodes)]))
        else:
            raise TreeEditError(f"cannot insert after a node in {self.parent.type}.{self.key}")

    def remove(self) -> None:
        if self.parent is None:
            raise TreeEditError("cannot remove the root node")
        if self.removed:
            return
        if not self._apply_removal_hooks():
            self._remove_from_container()
        self.removed = True

    def _apply_removal_hooks(self) -> bool:
        """Keep the parent well formed when removing this node would break it."""
        parent, key, parent_path = self.parent, self.key, self.parent_path
        if parent_path is None:
            return False

        if parent.type == "ExpressionStatement" and key == "expression":
            parent_path.remove()
            return True
        if parent.type == "SequenceExpression" and len(parent.expressions) == 2:
            remaining = [node for node in parent.expressions if node is not self.node]
            if len(remaining) == 1:
                parent_path.replace_with(remaining[0])
                return True
        if parent.type in ("BinaryExpression", "LogicalExpression"):
            parent_path.replace_with(parent.right if key == "left" else parent.left)
            return True
        if parent.type == "VariableDeclaration" and key == "declarations" and len(parent.declarations) == 1:
            parent_path.remove()
            return True
        if (parent.type, key) in STATEMENT_SLOTS and key != "alternate":
            setattr(parent, key, block_statement())
            return True
        return False

    def _remove_from_container(self) -> None:
        parent, key = self.parent, self.key
        container = self.container
        if isinstance(container, list):
            position = self._resync()
            del container[position]
            self._touch(container, position)
        elif (parent.type, key) in _NULLABLE_SLOTS:
            setattr(parent, key, None)
        elif is_statement(self.node):
            setattr(parent, key, block_statement())
        else:
            setattr(parent, key, identifier("undefined"))
