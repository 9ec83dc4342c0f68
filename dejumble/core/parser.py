"""JavaScript parsing using Babel via Node.js, with an esprima fallback."""

import json
import shutil
import subprocess
from pathlib import Path
from typing import Any, Optional

import esprima
from esprima.error_handler import Error as EsprimaError
from rich.console import Console

from dejumble.core.nodes import Node, from_json, normalize_number, raise_recursion_limit
from dejumble.errors import ParseError

console = Console()

# Path to the JS parser (in scripts directory)
_PROJECT_ROOT = Path(__file__).parent.parent.parent
_JS_PARSER_PATH = _PROJECT_ROOT / "scripts" / "parse.mjs"

# Exit code parse.mjs uses for syntax errors, as opposed to crashes.
_SYNTAX_ERROR_EXIT = 2

BACKENDS = ("auto", "babel", "esprima")


def check_node_available() -> bool:
    """Check if Node.js is available on the system."""
    return shutil.which("node") is not None


def ensure_babel_installed() -> bool:
    """Ensure Babel dependencies are installed in project root."""
    node_modules = _PROJECT_ROOT / "node_modules"
    if not node_modules.exists():
        if shutil.which("npm") is None:
            return False
        console.print("[yellow]Installing Node.js dependencies...[/yellow]")
        try:
            result = subprocess.run(
                ["npm", "install"],
                cwd=_PROJECT_ROOT,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            console.print(f"[red]Failed to install dependencies: {e}[/red]")
            return False
        if result.returncode != 0:
            console.print(f"[red]npm install failed: {result.stderr}[/red]")
            return False
        console.print("[green]Node.js dependencies installed[/green]")
    return True


def parse_javascript(source_code: str, backend: str = "auto", timeout: int = 60) -> Node:
    """Parse JavaScript source into a Babel-shaped Program node.

    Args:
        source_code: The JavaScript source code to parse
        backend: "babel", "esprima", or "auto" (Babel when Node.js is usable)
        timeout: Seconds to wait for the Node.js parser

    Returns:
        The Program node

    Raises:
        ParseError: The source has a syntax error, or the requested backend
            is unavailable
    """
    if backend not in BACKENDS:
        raise ValueError(f"unknown parser backend {backend!r}")
    raise_recursion_limit()

    if backend == "esprima":
        return _parse_with_esprima(source_code)

    if not check_node_available() or not ensure_babel_installed():
        if backend == "babel":
            raise ParseError("Node.js with @babel/parser is required for the babel backend")
        console.print("[yellow]Node.js not available, falling back to esprima[/yellow]")
        return _parse_with_esprima(source_code)

    try:
        return _parse_with_babel(source_code, timeout)
    except (OSError, subprocess.TimeoutExpired, json.JSONDecodeError) as e:
        if backend == "babel":
            raise ParseError(f"Babel parsing failed: {e}") from e
        console.print(f"[yellow]Babel parsing error: {e}, falling back to esprima[/yellow]")
        return _parse_with_esprima(source_code)


def _parse_with_babel(source_code: str, timeout: int) -> Node:
    payload = {"code": source_code}
    result = subprocess.run(
        ["node", str(_JS_PARSER_PATH), "--stdin"],
        input=json.dumps(payload, ensure_ascii=False),
        capture_output=True,
        text=True,
        timeout=timeout,
    )
    if result.returncode == _SYNTAX_ERROR_EXIT:
        raise ParseError(result.stderr.strip() or "syntax error")
    if result.returncode != 0:
        raise OSError(result.stderr.strip() or "parse.mjs failed")

    program = from_json(json.loads(result.stdout))
    if not isinstance(program, Node) or program.type != "Program":
        raise ParseError("Babel did not return a Program node")
    return program


def _parse_with_esprima(source_code: str) -> Node:
    parsers = [esprima.parseScript]
    if "import" in source_code or "export" in source_code:
        parsers.insert(0, esprima.parseModule)
    error: Optional[EsprimaError] = None
    for parse in parsers:
        try:
            tree = parse(source_code, {"range": True})
        except EsprimaError as e:
            error = error or e
            continue
        return estree_to_babel(tree.toDict())
    raise ParseError(str(error)) from error


# ESTree -> Babel normalization

_DROPPED_KEYS = frozenset({"type", "range", "loc"})


def estree_to_babel(data: Any) -> Any:
    """Convert esprima's ESTree dicts into Babel-shaped nodes."""
    if isinstance(data, list):
        return [estree_to_babel(item) for item in data]
    if not isinstance(data, dict) or "type" not in data:
        return data

    kind = data["type"]
    if kind == "Literal":
        return _convert_literal(data)

    fields = {key: estree_to_babel(value) for key, value in data.items() if key not in _DROPPED_KEYS}
    if "isAsync" in fields:
        fields["async"] = fields.pop("isAsync")
    if "range" in data and data["range"]:
        fields["start"], fields["end"] = data["range"][0], data["range"][1]

    if kind == "Property":
        return _convert_property(fields)
    if kind == "MethodDefinition":
        function = fields.get("value")
        return Node(
            "ClassMethod",
            kind=fields.get("kind") or "method",
            key=fields.get("key"),
            computed=bool(fields.get("computed")),
            static=bool(fields.get("static")),
            params=function.params,
            body=function.body,
            generator=bool(function.generator),
            **{"async": bool(getattr(function, "async", False))},
        )
    if kind == "FieldDefinition":
        kind = "ClassProperty"
    if kind == "TemplateElement":
        fields["value"] = dict(fields.get("value") or {})
    if kind in ("Program", "BlockStatement"):
        _split_directives(fields)

    node = Node(kind)
    for key, value in fields.items():
        setattr(node, key, value)
    return node


def _convert_literal(data: dict) -> Node:
    raw: Optional[str] = data.get("raw")
    value = data.get("value")
    regex = data.get("regex")
    if regex:
        return Node("RegExpLiteral", pattern=regex.get("pattern", ""), flags=regex.get("flags", ""),
                    extra={"raw": raw})
    if isinstance(value, bool):
        return Node("BooleanLiteral", value=value)
    if value is None:
        return Node("NullLiteral")
    if isinstance(value, str):
        return Node("StringLiteral", value=value, extra={"rawValue": value, "raw": raw})
    if isinstance(value, (int, float)):
        value = normalize_number(value)
        return Node("NumericLiteral", value=value, extra={"rawValue": value, "raw": raw})
    raise ParseError(f"unsupported literal {raw!r}")


def _convert_property(fields: dict) -> Node:
    kind = fields.get("kind") or "init"
    value = fields.get("value")
    computed = bool(fields.get("computed"))
    if kind in ("get", "set") or fields.get("method"):
        return Node(
            "ObjectMethod",
            kind="method" if kind == "init" else kind,
            key=fields.get("key"),
            computed=computed,
            params=value.params,
            body=value.body,
            generator=bool(value.generator),
            **{"async": bool(getattr(value, "async", False))},
        )
    return Node(
        "ObjectProperty",
        key=fields.get("key"),
        value=value,
        computed=computed,
        shorthand=bool(fields.get("shorthand")),
    )


def _split_directives(fields: dict) -> None:
    """Move a body's leading "use strict"-style statements into ``directives``."""
    body = fields.get("body") or []
    directives = []
    while body and isinstance(body[0], Node) and body[0].type == "ExpressionStatement" \
            and isinstance(getattr(body[0], "directive", None), str):
        statement = body.pop(0)
        literal = statement.expression
        raw = (literal.extra or {}).get("raw") if isinstance(literal, Node) else None
        directives.append(Node(
            "Directive",
            value=Node("DirectiveLiteral", value=statement.directive,
                       extra={"raw": raw, "rawValue": statement.directive}),
        ))
    fields["body"] = body
    fields["directives"] = directives


def parse_file(file_path: Path, backend: str = "auto", timeout: int = 60) -> Node:
    """Parse a JavaScript file.

    Args:
        file_path: Path to the JavaScript file
        backend: Parser backend, see :func:`parse_javascript`
        timeout: Seconds to wait for the Node.js parser

    Returns:
        The Program node
    """
    source_code = file_path.read_text(encoding="utf-8")
    return parse_javascript(source_code, backend=backend, timeout=timeout)
