"""Lexical scopes and bindings, collected by crawling the tree."""

from typing import TYPE_CHECKING, Optional

from dejumble.core.nodes import (
    FUNCTION_TYPES,
    Node,
    identifier,
    is_node,
    variable_declaration,
    variable_declarator,
)
from dejumble.core.path import NodePath
from dejumble.errors import TreeEditError

if TYPE_CHECKING:
    from dejumble.core.traverse import Traversal

_BLOCK_SCOPE_TYPES = frozenset({
    "BlockStatement", "ForStatement", "ForInStatement", "ForOfStatement",
    "CatchClause", "SwitchStatement", "StaticBlock",
})

# (parent type, key) pairs where an identifier is a name, not a reference.
_NON_REFERENCE_SLOTS = frozenset({
    ("LabeledStatement", "label"),
    ("BreakStatement", "label"),
    ("ContinueStatement", "label"),
    ("MetaProperty", "meta"),
    ("MetaProperty", "property"),
    ("ImportSpecifier", "imported"),
    ("ExportSpecifier", "exported"),
    ("PrivateName", "id"),
})

_KEYED_TYPES = frozenset({
    "ObjectProperty", "ObjectMethod", "ClassMethod", "ClassProperty", "ClassPrivateProperty",
})


def pattern_identifiers(pattern: Optional[Node]) -> list[tuple[Node, Optional[Node]]]:
    """Identifiers bound by a declaration pattern, paired with their parent node."""
    found = []
    stack: list[tuple[Optional[Node], Optional[Node]]] = [(pattern, None)]
    while stack:
        node, parent = stack.pop()
        if not isinstance(node, Node):
            continue
        if node.type == "Identifier":
            found.append((node, parent))
        elif node.type == "ObjectPattern":
            stack.extend((prop, node) for prop in reversed(node.properties))
        elif node.type == "ObjectProperty":
            stack.append((node.value, node))
        elif node.type == "ArrayPattern":
            stack.extend((element, node) for element in reversed(node.elements))
        elif node.type == "AssignmentPattern":
            stack.append((node.left, node))
        elif node.type == "RestElement":
            stack.append((node.argument, node))
    return found


def _is_reference(node: Node, parent: Optional[Node], key: Optional[str]) -> bool:
    if parent is None:
        return True
    if (parent.type, key) in _NON_REFERENCE_SLOTS:
        return False
    if parent.type in ("MemberExpression", "OptionalMemberExpression"):
        return key != "property" or bool(parent.computed)
    if parent.type in _KEYED_TYPES and key == "key":
        return bool(getattr(parent, "computed", False))
    return True


class Binding:
    """Declaration-plus-references record for one name in one scope."""

    def __init__(self, name: str, kind: str, scope: "Scope", path: NodePath):
        self.name = name
        self.kind = kind
        self.scope = scope
        self.path = path
        self.identifiers: list[Node] = []
        self.reference_paths: list[NodePath] = []
        self.constant_violations: list[NodePath] = []
        # Every identifier node spelling this binding, with its parent node.
        self._sites: list[tuple[Node, Optional[Node]]] = []

    def __repr__(self) -> str:
        return f"Binding({self.name!r}, {self.kind}, refs={len(self.reference_paths)})"

    @property
    def constant(self) -> bool:
        return not self.constant_violations

    @property
    def referenced(self) -> bool:
        return bool(self.reference_paths)

    @property
    def references(self) -> int:
        return len(self.reference_paths)

    def rename(self, new_name: str) -> None:
        """Rename the declaration and every reference, or raise without touching anything."""
        if new_name == self.name:
            return
        if self.scope.get_own_binding(new_name) is not None:
            raise TreeEditError(f"{new_name!r} is already bound in this scope")

        old_name = self.name
        for node, parent in self._sites:
            if node.name != old_name:
                continue
            if is_node(parent, "ObjectProperty") and parent.shorthand:
                parent.shorthand = False
                if parent.key is node:
                    parent.key = identifier(old_name)
            if is_node(parent, "ExportSpecifier") and parent.exported is node:
                parent.exported = identifier(old_name)
            node.name = new_name

        del self.scope.bindings[old_name]
        self.name = new_name
        self.scope.bindings[new_name] = self
        self.scope.tracker.names.add(new_name)


class Scope:
    """One lexical scope: a program, function, or block."""

    def __init__(self, path: NodePath, parent: Optional["Scope"], tracker: "ScopeTracker"):
        self.path = path
        self.block = path.node
        self.parent = parent
        self.tracker = tracker
        self.bindings: dict[str, Binding] = {}

    def __repr__(self) -> str:
        return f"Scope({self.block.type}, {sorted(self.bindings)})"

    @property
    def is_function_scope(self) -> bool:
        return self.block.type == "Program" or self.block.type in FUNCTION_TYPES

    def function_scope(self) -> "Scope":
        scope = self
        while not scope.is_function_scope and scope.parent is not None:
            scope = scope.parent
        return scope

    def get_own_binding(self, name: str) -> Optional[Binding]:
        return self.bindings.get(name)

    def get_binding(self, name: str) -> Optional[Binding]:
        scope: Optional[Scope] = self
        while scope is not None:
            binding = scope.bindings.get(name)
            if binding is not None:
                return binding
            scope = scope.parent
        return None

    def has_binding(self, name: str) -> bool:
        return self.get_binding(name) is not None

    def binding_for(self, node: Node) -> Optional[Binding]:
        """Binding a specific identifier node resolved to during the crawl."""
        return self.tracker.binding_by_identifier.get(id(node))

    def rename(self, old_name: str, new_name: str) -> None:
        binding = self.get_binding(old_name)
        if binding is None:
            raise TreeEditError(f"no binding named {old_name!r}")
        binding.rename(new_name)

    def generate_uid(self, name: str = "temp") -> str:
        """A name not used anywhere in the program: _temp, _temp2, _temp3, ..."""
        base = "_" + name.lstrip("_")
        candidate = base
        counter = 1
        while candidate in self.tracker.names:
            counter += 1
            candidate = f"{base}{counter}"
        self.tracker.names.add(candidate)
        return candidate

    def generate_uid_identifier(self, name: str = "temp") -> Node:
        return identifier(self.generate_uid(name))

    def push(self, id_node: Node, init: Optional[Node] = None) -> None:
        """Declare id_node with `var` at the top of the enclosing function or program."""
        scope = self.function_scope()
        block = scope.block
        if block.type == "Program":
            body = block.body
        elif is_node(block.body, "BlockStatement"):
            body = block.body.body
        else:
            raise TreeEditError(f"cannot declare a variable in an expression-bodied {block.type}")

        declarator = variable_declarator(id_node, init)
        pushed = self.tracker.pushed.get(id(block))
        if pushed is not None and any(item is pushed for item in body):
            pushed.declarations.append(declarator)
        else:
            pushed = variable_declaration("var", [declarator])
            self.tracker.pushed[id(block)] = pushed
            body.insert(0, pushed)
            if self.tracker.traversal is not None:
                self.tracker.traversal.touch(body, 0)

        decl_path = NodePath(declarator, pushed, None, "declarations", None,
                             self.tracker.traversal, scope)
        binding = scope.bindings.get(id_node.name)
        if binding is None:
            binding = Binding(id_node.name, "var", scope, decl_path)
            scope.bindings[id_node.name] = binding
        binding.identifiers.append(id_node)
        binding._sites.append((id_node, declarator))
        self.tracker.binding_by_identifier[id(id_node)] = binding
        self.tracker.names.add(id_node.name)


class ScopeTracker:
    """Scopes of a whole tree, built by one crawl."""

    def __init__(self, root: Node, traversal: Optional["Traversal"] = None):
        self.root = root
        self.traversal = traversal
        self.scopes: dict[int, Scope] = {}
        self.binding_by_identifier: dict[int, Binding] = {}
        self.names: set[str] = set()
        self.pushed: dict[int, Node] = {}
        self.program_scope = self._crawl()

    def own_scope(self, node: Node) -> Optional[Scope]:
        """The scope a node creates, if any."""
        return self.scopes.get(id(node))

    def _creates_scope(self, node: Node, parent: Optional[Node], key: Optional[str]) -> bool:
        if node.type == "Program" or node.type in FUNCTION_TYPES:
            return True
        if node.type not in _BLOCK_SCOPE_TYPES:
            return False
        # A function body shares the function's scope.
        return not (node.type == "BlockStatement" and key == "body" and parent is not None
                    and parent.type in FUNCTION_TYPES)

    def _declare(self, scope: Scope, name_node: Node, parent: Optional[Node], kind: str,
                 path: NodePath, redeclaration_violates: bool = False) -> None:
        name = name_node.name
        binding = scope.bindings.get(name)
        if binding is None:
            binding = Binding(name, kind, scope, path)
            scope.bindings[name] = binding
        elif redeclaration_violates:
            binding.constant_violations.append(path)
        binding.identifiers.append(name_node)
        binding._sites.append((name_node, parent))
        self.binding_by_identifier[id(name_node)] = binding

    def _crawl(self) -> Scope:
        root_path = NodePath(self.root, traversal=self.traversal)
        program_scope = Scope(root_path, None, self)
        self.scopes[id(self.root)] = program_scope
        root_path.scope = program_scope

        declared: set[int] = set()
        violations: list[tuple[Node, Optional[Node], NodePath, Scope]] = []
        references: list[tuple[NodePath, Scope]] = []

        stack = [root_path]
        while stack:
            path = stack.pop()
            node, scope = path.node, path.scope
            if node.type == "Identifier":
                self.names.add(node.name)
                if id(node) not in declared and _is_reference(node, path.parent, path.key):
                    references.append((path, scope))
                continue

            own_scope = scope
            if path.parent is not None and self._creates_scope(node, path.parent, path.key):
                own_scope = Scope(path, scope, self)
                self.scopes[id(node)] = own_scope
            self._collect_declarations(path, scope, own_scope, declared, violations)

            children = []
            for key in node.child_keys():
                value = getattr(node, key, None)
                if isinstance(value, list):
                    children.extend(
                        NodePath(item, node, path, key, position, self.traversal, own_scope)
                        for position, item in enumerate(value) if isinstance(item, Node)
                    )
                elif isinstance(value, Node):
                    children.append(NodePath(value, node, path, key, None, self.traversal, own_scope))
            stack.extend(reversed(children))

        for name_node, parent, violation_path, scope in violations:
            binding = scope.get_binding(name_node.name)
            if binding is None:
                continue
            binding.constant_violations.append(violation_path)
            binding._sites.append((name_node, parent))
            self.binding_by_identifier[id(name_node)] = binding

        for path, scope in references:
            binding = scope.get_binding(path.node.name)
            if binding is None:
                continue
            binding.reference_paths.append(path)
            binding._sites.append((path.node, path.parent))
            self.binding_by_identifier[id(path.node)] = binding
        return program_scope

    def _collect_declarations(self, path: NodePath, scope: Scope, own_scope: Scope,
                              declared: set[int], violations: list) -> None:
        node = path.node
        kind = node.type

        if kind == "VariableDeclaration":
            target = scope.function_scope() if node.kind == "var" else scope
            for position, declarator in enumerate(node.declarations):
                decl_path = NodePath(declarator, node, path, "declarations", position,
                                     self.traversal, scope)
                for name_node, parent in pattern_identifiers(declarator.id):
                    declared.add(id(name_node))
                    self._declare(target, name_node, parent or declarator, node.kind, decl_path,
                                  redeclaration_violates=declarator.init is not None)
        elif kind in FUNCTION_TYPES:
            if is_node(getattr(node, "id", None), "Identifier"):
                declared.add(id(node.id))
                if kind == "FunctionDeclaration":
                    self._declare(scope, node.id, node, "hoisted", path, redeclaration_violates=True)
                elif kind == "FunctionExpression":
                    self._declare(own_scope, node.id, node, "local", path)
            for position, param in enumerate(node.params):
                param_path = NodePath(param, node, path, "params", position, self.traversal, own_scope)
                for name_node, parent in pattern_identifiers(param):
                    declared.add(id(name_node))
                    self._declare(own_scope, name_node, parent or node, "param", param_path)
        elif kind == "ClassDeclaration" and is_node(node.id, "Identifier"):
            declared.add(id(node.id))
            self._declare(scope, node.id, node, "let", path)
        elif kind in ("ImportSpecifier", "ImportDefaultSpecifier", "ImportNamespaceSpecifier"):
            declared.add(id(node.local))
            program_scope = scope
            while program_scope.parent is not None:
                program_scope = program_scope.parent
            self._declare(program_scope, node.local, node, "module", path)
        elif kind == "CatchClause" and node.param is not None:
            for name_node, parent in pattern_identifiers(node.param):
                declared.add(id(name_node))
                self._declare(own_scope, name_node, parent or node, "let", path)
        elif kind == "AssignmentExpression":
            for name_node, parent in pattern_identifiers(node.left):
                declared.add(id(name_node))
                violations.append((name_node, parent or node, path, scope))
        elif kind == "UpdateExpression" and is_node(node.argument, "Identifier"):
            declared.add(id(node.argument))
            violations.append((node.argument, node, path, scope))
        elif kind in ("ForInStatement", "ForOfStatement") and not is_node(node.left, "VariableDeclaration"):
            for name_node, parent in pattern_identifiers(node.left):
                declared.add(id(name_node))
                violations.append((name_node, parent or node, path, scope))
