"""Identifier validity and the pool of readable replacement names."""

import unicodedata
from pathlib import Path
from typing import Sequence

RESERVED_WORDS = frozenset({
    # Keywords
    "break", "case", "catch", "continue", "debugger", "default", "do", "else",
    "finally", "for", "function", "if", "return", "switch", "throw", "try",
    "var", "const", "while", "with", "new", "this", "super", "class", "extends",
    "export", "import", "in", "instanceof", "typeof", "void", "delete",
    # Future reserved words, strict mode included
    "enum", "await", "implements", "interface", "let", "package", "private",
    "protected", "public", "static", "yield",
    # Literals
    "null", "true", "false",
})

# Unicode categories of ID_Start; ID_Continue adds marks, digits and connectors.
_ID_START_CATEGORIES = frozenset({"Lu", "Ll", "Lt", "Lm", "Lo", "Nl"})
_ID_CONTINUE_CATEGORIES = _ID_START_CATEGORIES | {"Mn", "Mc", "Nd", "Pc"}
_ZWNJ_ZWJ = "\u200c\u200d"

DEFAULT_NAME_POOL: tuple[str, ...] = (
    "alpha", "bravo", "charlie", "delta", "echo", "foxtrot", "golf", "hotel",
    "india", "juliet", "kilo", "lima", "mike", "november", "oscar", "papa",
    "quebec", "romeo", "sierra", "tango", "uniform", "victor", "whiskey",
    "xray", "yankee", "zulu", "amber", "basil", "cedar", "dune", "ember",
    "fern", "garnet", "harbor", "iris", "jade", "kelp", "lotus", "maple",
    "nectar", "onyx", "pine", "quartz", "river", "sage", "thistle", "umber",
    "violet", "willow", "yarrow", "zephyr", "acorn", "birch", "clover",
    "daisy", "elm", "flint", "grove", "hazel", "ivy", "juniper", "kestrel",
    "laurel", "moss", "nettle", "oak", "pebble", "quill", "reed", "slate",
    "tulip", "vale", "wren", "aspen", "bramble", "coral", "drift", "fable",
    "glade", "heron", "inlet", "jasper", "knoll", "linden", "meadow",
    "north", "orchid", "prairie", "ridge", "spruce", "tide", "upland",
)


def is_bare_identifier(name: str) -> bool:
    """True when name can be written as a bare identifier (``obj.name``).

    Reserved words are rejected even though ES5 allows them after a dot.
    """
    if not isinstance(name, str) or not name:
        return False
    first, rest = name[0], name[1:]
    if first not in "$_" and unicodedata.category(first) not in _ID_START_CATEGORIES:
        return False
    for char in rest:
        if char not in "$" + _ZWNJ_ZWJ and unicodedata.category(char) not in _ID_CONTINUE_CATEGORIES:
            return False
    return name not in RESERVED_WORDS


def load_name_pool(path: Path) -> list[str]:
    """Read one name per line; blank lines and ``#`` comments are ignored."""
    names = []
    for number, line in enumerate(Path(path).read_text(encoding="utf-8").splitlines(), 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if not is_bare_identifier(line):
            raise ValueError(f"{path}:{number}: {line!r} is not a valid identifier")
        names.append(line)
    if not names:
        raise ValueError(f"{path}: name pool is empty")
    return names


def pool_name(pool: Sequence[str], index: int) -> str:
    """Name at index, cycling with a round suffix once the pool runs out.

    With a pool of ``["a", "b"]``: 0 -> a, 1 -> b, 2 -> a2, 3 -> b2, 4 -> a3.
    """
    if not pool:
        raise ValueError("name pool is empty")
    round_number, position = divmod(index, len(pool))
    name = pool[position]
    return name if round_number == 0 else f"{name}{round_number + 1}"
