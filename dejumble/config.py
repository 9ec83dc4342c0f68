"""Configuration management for dejumble."""

from enum import Enum
from pathlib import Path
from typing import Annotated, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

# Load .env from multiple locations
# 1. Current working directory
load_dotenv()
# 2. Project directory (where this package is installed)
_package_dir = Path(__file__).parent
load_dotenv(_package_dir.parent / ".env")
# 3. Home directory config
load_dotenv(Path.home() / ".config" / "dejumble" / ".env")


class ParserBackend(str, Enum):
    """Supported parser backends."""
    AUTO = "auto"
    BABEL = "babel"
    ESPRIMA = "esprima"


class Config(BaseSettings):
    """Configuration for dejumble."""

    # Parsing Settings
    parser_backend: ParserBackend = Field(default=ParserBackend.AUTO, description="Parser to use: auto, babel or esprima")
    node_timeout_seconds: int = Field(default=90, ge=1, description="Timeout for each Node.js parse/generate call")

    # Control-flow flattening
    cloudflare: bool = Field(default=False, description="Reverse string mixing and switch flattening")
    mixed_string_min_length: int = Field(default=200, ge=1, description="Minimum length of the mixed string payload")
    mixed_string_separators: str = Field(default=",;{}[]", description="Characters accepted as payload separators")
    accessor_names: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["b", "c"], description="Names of the chunk accessor functions")
    max_chain_depth: int = Field(default=16, ge=1, description="Deepest member chain accepted as a helper name")

    # Rewriting Settings
    inline_logical: bool = Field(default=False, description="Expand value-position && into temporaries and if statements")
    rename_identifiers: bool = Field(default=True, description="Give declarations readable names")
    rename_arguments: bool = Field(default=True, description="Give function parameters readable names")
    custom_names: Annotated[list[str], NoDecode] = Field(default_factory=list, description="Names used before the name pool")
    name_pool_file: Optional[Path] = Field(default=None, description="File with one replacement name per line")

    # Output Settings
    output_dir: Optional[Path] = Field(default=None, description="Output directory for deobfuscated files")
    beautify: bool = Field(default=True, description="Format output with jsbeautifier")
    indent_size: int = Field(default=2, ge=0, description="Indent size for formatted output")
    preserve_comments: bool = Field(default=True, description="Preserve comments in output")

    model_config = {
        "env_prefix": "DEJUMBLE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("accessor_names", "custom_names", mode="before")
    @classmethod
    def split_names(cls, v):
        """Accept comma-separated strings for name lists."""
        if isinstance(v, str):
            return [name.strip() for name in v.split(",") if name.strip()]
        return v

    @field_validator("mixed_string_separators")
    @classmethod
    def check_separators(cls, v: str) -> str:
        """Separators must be single characters; an empty set would match nothing."""
        if not v:
            raise ValueError("at least one separator character is required")
        return v
