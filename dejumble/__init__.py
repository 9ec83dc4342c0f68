"""Dejumble - JavaScript deobfuscation by syntax-tree rewriting."""

__version__ = "0.1.0"
__author__ = "dejumble"

from dejumble.config import Config
from dejumble.core.parser import parse_javascript
from dejumble.core.generator import generate_code
from dejumble.pipeline import build_pipeline, deobfuscate, deobfuscate_source

__all__ = [
    "__version__",
    "Config",
    "build_pipeline",
    "deobfuscate",
    "deobfuscate_source",
    "parse_javascript",
    "generate_code",
]
