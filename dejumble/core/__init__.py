"""Core tree machinery: parsing, traversal, scopes, evaluation and printing."""

from dejumble.core.evaluate import Known, UNKNOWN, evaluate
from dejumble.core.generator import beautify_code, generate_code
from dejumble.core.nodes import Node, fingerprint
from dejumble.core.parser import parse_javascript
from dejumble.core.path import NodePath
from dejumble.core.scope import Binding, Scope, ScopeTracker
from dejumble.core.traverse import traverse

__all__ = [
    "Binding",
    "Known",
    "Node",
    "NodePath",
    "Scope",
    "ScopeTracker",
    "UNKNOWN",
    "beautify_code",
    "evaluate",
    "fingerprint",
    "generate_code",
    "parse_javascript",
    "traverse",
]
