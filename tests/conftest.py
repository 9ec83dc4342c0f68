"""Pytest configuration and fixtures."""

from typing import Callable

import pytest

from dejumble.core.nodes import Node
from dejumble.core.parser import parse_javascript


@pytest.fixture
def parse() -> Callable[[str], Node]:
    """Parse JavaScript with the pure Python backend."""

    def _parse(code: str) -> Node:
        return parse_javascript(code, backend="esprima")

    return _parse


@pytest.fixture
def flattened_loop() -> str:
    """A switch-flattened loop whose order string runs case 1 then case 0."""
    return """
for (o = "1|0".split("|"), i = 0;;) {
    switch (o[i++]) {
        case "0":
            first();
            continue;
        case "1":
            second();
            continue;
    }
    break;
}
"""


@pytest.fixture
def js_file(tmp_path):
    """Write a JavaScript file into a temporary directory."""

    def _write(name: str, code: str):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(code, encoding="utf-8")
        return path

    return _write
