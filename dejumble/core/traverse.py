"""Visitor dispatch over the mutable tree.

A visitor is a dict keyed by node kind. Values are either a callable run on
enter or a dict with ``"enter"`` and/or ``"exit"`` callables. Keys may name
several kinds at once, separated by ``|``::

    traverse(ast, {
        "BinaryExpression|LogicalExpression": fold,
        "IfStatement": {"exit": prune},
    })

Each handler receives a :class:`~dejumble.core.path.NodePath`. When a handler
replaces the node, the replacement is visited in turn; statements inserted
next to the current one are visited when the enclosing list loop reaches them.
"""

from collections import defaultdict
from typing import Callable, Union

from dejumble.core.nodes import Node
from dejumble.core.path import NodePath
from dejumble.core.scope import ScopeTracker

Handler = Callable[[NodePath], None]
Visitor = dict[str, Union[Handler, dict[str, Handler]]]


def _explode(visitor: Visitor) -> tuple[dict[str, list[Handler]], dict[str, list[Handler]]]:
    enter: dict[str, list[Handler]] = defaultdict(list)
    exit: dict[str, list[Handler]] = defaultdict(list)
    for key, handler in visitor.items():
        for kind in key.split("|"):
            kind = kind.strip()
            if callable(handler):
                enter[kind].append(handler)
                continue
            if handler.get("enter"):
                enter[kind].append(handler["enter"])
            if handler.get("exit"):
                exit[kind].append(handler["exit"])
    return dict(enter), dict(exit)


class Traversal:
    """One depth-first walk of a tree with a visitor."""

    def __init__(self, root: Node, visitor: Visitor):
        self.root = root
        self.enter, self.exit = _explode(visitor)
        self.stopped = False
        # id(list) -> lowest index edited while that list was being walked.
        self._touched: dict[int, int] = {}
        self.scopes = ScopeTracker(root, traversal=self)

    def touch(self, container: list, index: int) -> None:
        key = id(container)
        previous = self._touched.get(key)
        self._touched[key] = index if previous is None else min(previous, index)

    def run(self) -> None:
        path = NodePath(self.root, traversal=self, scope=self.scopes.program_scope)
        self.visit(path)

    def _call(self, handlers: dict[str, list[Handler]], path: NodePath) -> None:
        node = path.node
        for handler in handlers.get(node.type, ()):
            handler(path)
            if self.stopped or path.removed or path.node is not node:
                return

    def visit(self, path: NodePath) -> None:
        while not self.stopped:
            node = path.node
            if node is None or path.removed:
                return
            path.should_skip = False

            self._call(self.enter, path)
            if self.stopped or path.removed:
                return
            if path.node is not node:
                continue

            if not path.should_skip:
                self._visit_children(path)
                if self.stopped or path.removed:
                    return
                if path.node is not node:
                    continue

            self._call(self.exit, path)
            if path.removed or path.node is node:
                return

    def _visit_children(self, path: NodePath) -> None:
        node = path.node
        scope = self.scopes.own_scope(node) or path.scope
        for key in node.child_keys():
            if self.stopped or path.removed or path.node is not node:
                return
            value = getattr(node, key, None)
            if isinstance(value, list):
                self._visit_list(path, key, value, scope)
            elif isinstance(value, Node):
                self.visit(NodePath(value, node, path, key, None, self, scope))

    def _visit_list(self, path: NodePath, key: str, container: list, scope) -> None:
        node = path.node
        # Strong references keep ids unique for the lifetime of the loop.
        done: dict[int, Node] = {}
        position = 0
        while position < len(container):
            if self.stopped or path.removed or path.node is not node:
                return
            if getattr(node, key, None) is not container:
                return
            child = container[position]
            if not isinstance(child, Node) or id(child) in done:
                position += 1
                continue
            done[id(child)] = child
            self._touched.pop(id(container), None)
            self.visit(NodePath(child, node, path, key, position, self, scope))
            touched = self._touched.pop(id(container), None)
            position = min(position, touched) if touched is not None else position + 1


def traverse(ast: Node, visitor: Visitor) -> Traversal:
    """Walk ast depth first, dispatching enter/exit handlers by node kind."""
    traversal = Traversal(ast, visitor)
    traversal.run()
    return traversal
