"""Code generation from the tree using @babel/generator, plus formatting."""

import json
import subprocess
from pathlib import Path

import jsbeautifier
from rich.console import Console

from dejumble.core.nodes import Node, raise_recursion_limit, to_json
from dejumble.core.parser import check_node_available, ensure_babel_installed
from dejumble.errors import GenerateError

console = Console()

# Path to scripts directory
_PROJECT_ROOT = Path(__file__).parent.parent.parent
_SCRIPTS_DIR = _PROJECT_ROOT / "scripts"


def generate_code(ast: Node, comments: bool = True, timeout: int = 90) -> str:
    """Print a tree back to JavaScript source.

    Args:
        ast: Program node to print
        comments: Whether to keep comments attached to nodes
        timeout: Seconds to wait for Node.js

    Returns:
        Generated source code

    Raises:
        GenerateError: Node.js is unavailable or the generator failed
    """
    if not check_node_available():
        raise GenerateError("Node.js is required to generate code")
    if not ensure_babel_installed():
        raise GenerateError("@babel/generator is not installed")
    raise_recursion_limit()

    generate_script = _SCRIPTS_DIR / "generate.mjs"
    payload = {
        "ast": to_json(ast),
        "options": {
            "comments": comments,
        },
    }

    try:
        result = subprocess.run(
            ["node", str(generate_script), "--stdin"],
            input=json.dumps(payload, ensure_ascii=False),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise GenerateError(f"Babel generation failed: {e}") from e

    if result.returncode != 0:
        raise GenerateError(result.stderr.strip() or "unknown error")
    return result.stdout


def beautify_code(code: str, indent_size: int = 2) -> str:
    """Re-indent generated code with jsbeautifier."""
    options = jsbeautifier.default_options()
    options.indent_size = indent_size
    options.space_in_empty_paren = True
    options.max_preserve_newlines = 2
    return jsbeautifier.beautify(code, options)


def save_output(
    code: str,
    output_path: Path,
    create_dirs: bool = True,
) -> None:
    """Save code to file.

    Args:
        code: Source code to save
        output_path: Path to save to
        create_dirs: Whether to create parent directories
    """
    if create_dirs:
        output_path.parent.mkdir(parents=True, exist_ok=True)

    output_path.write_text(code, encoding="utf-8")
