from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator


class IgnoreMode(StrEnum):
    """When version-control ignore files are honoured."""

    AUTO = auto()
    NEVER = auto()
    ALWAYS = auto()


class ContentsMode(StrEnum):
    """Strategy used to fit file contents into a character budget."""

    HEAD = auto()
    NEST = auto()


class Selection(StrEnum):
    """Outcome of evaluating one path against the rule set.

    `PRUNE_DIRECTORY` only applies to directories and means "do not descend".
    `EXCLUDE` on a directory still allows descending into it.
    """

    INCLUDE = auto()
    EXCLUDE = auto()
    PRUNE_DIRECTORY = auto()


class Verdict(StrEnum):
    """Opinion of a single rule source about a path."""

    INCLUDE = auto()
    EXCLUDE = auto()
    NO_OPINION = auto()


class TruncateType(StrEnum):
    """Which dimension caused a file's content to be cut."""

    NONE = auto()
    LINES = auto()
    BYTES = auto()
    BOTH = auto()


class Language(StrEnum):
    """Code fence languages used in the markdown output."""

    BASH = "bash"
    C = "c"
    CPP = "cpp"
    CSS = "css"
    GO = "go"
    HTML = "html"
    INI = "ini"
    JAVA = "java"
    JAVASCRIPT = "javascript"
    JSON = "json"
    MARKDOWN = "markdown"
    PHP = "php"
    PYTHON = "python"
    RUBY = "ruby"
    RUST = "rust"
    SQL = "sql"
    TOML = "toml"
    TYPESCRIPT = "typescript"
    XML = "xml"
    YAML = "yaml"
    TEXT = "text"


EXT2LANG: dict[str, Language] = {
    ".bash": Language.BASH,
    ".c": Language.C,
    ".cc": Language.CPP,
    ".cfg": Language.INI,
    ".conf": Language.INI,
    ".cpp": Language.CPP,
    ".css": Language.CSS,
    ".cxx": Language.CPP,
    ".go": Language.GO,
    ".h": Language.C,
    ".hpp": Language.CPP,
    ".htm": Language.HTML,
    ".html": Language.HTML,
    ".ini": Language.INI,
    ".java": Language.JAVA,
    ".js": Language.JAVASCRIPT,
    ".json": Language.JSON,
    ".jsx": Language.JAVASCRIPT,
    ".markdown": Language.MARKDOWN,
    ".md": Language.MARKDOWN,
    ".mjs": Language.JAVASCRIPT,
    ".php": Language.PHP,
    ".py": Language.PYTHON,
    ".rb": Language.RUBY,
    ".rs": Language.RUST,
    ".sh": Language.BASH,
    ".sql": Language.SQL,
    ".toml": Language.TOML,
    ".ts": Language.TYPESCRIPT,
    ".tsx": Language.TYPESCRIPT,
    ".txt": Language.TEXT,
    ".xml": Language.XML,
    ".yaml": Language.YAML,
    ".yml": Language.YAML,
    ".zsh": Language.BASH,
}

REPO_METADATA_NAME = ".git"
IGNORE_FILE_NAMES: tuple[str, ...] = (".gitignore", ".ignore")
COLLAPSE_MARKER = "... ({count} lines)"

PROBE_BYTES = 8192
CONTROL_CHAR_RATIO = 0.1


def guess_language(path: Path) -> Language:
    """Guess the code fence language of a file from its extension.

    Args:
        path (Path): the file path to inspect

    Returns:
        Language: the fence language, or Language.TEXT when unknown
    """
    return EXT2LANG.get(path.suffix.lower(), Language.TEXT)


def parse_ext_list(value: str | list[str]) -> list[str]:
    """Parse a comma separated extension list into dotted entries, keeping their case.

    Args:
        value (str | list[str]): e.g. "go,py,.rs" or ["go", ".py"]

    Returns:
        list[str]: e.g. [".go", ".py", ".rs"]
    """
    items = value.split(",") if isinstance(value, str) else [x for v in value for x in v.split(",")]
    out: list[str] = []
    for item in items:
        ext = item.strip()
        if not ext:
            continue
        out.append(ext if ext.startswith(".") else f".{ext}")
    return out


class MatchSpec(BaseModel):
    """Declarative bundle of the filtering rules for one invocation.

    Attributes:
        include_glob: glob patterns a file must match (allow-list mode when non-empty).
        exclude_glob: glob patterns that exclude files and prune directories.
        include_ext: extensions (".rs") a file may match instead of an include glob.
        ignore_mode: when version-control ignore files are honoured.
        use_safety: whether the built-in safety denylist applies.
        case_sensitive: case sensitivity of every glob and extension test.
        global_ignore_file: user-level ignore file, lowest precedence ignore source.
    """

    model_config = ConfigDict(frozen=True)

    include_glob: tuple[str, ...] = Field(default=(), description="Include globs.")
    exclude_glob: tuple[str, ...] = Field(default=(), description="Exclude globs.")
    include_ext: tuple[str, ...] = Field(default=(), description="Include extensions.")
    ignore_mode: IgnoreMode = Field(default=IgnoreMode.AUTO, description="VCS ignore mode.")
    use_safety: bool = Field(default=True, description="Apply the safety denylist.")
    case_sensitive: bool = Field(default=True, description="Case sensitive matching.")
    global_ignore_file: Path | None = Field(default=None, description="Global ignore file.")

    @field_validator("include_ext", mode="before")
    @classmethod
    def _normalize_ext(cls, value: str | list[str] | tuple[str, ...]) -> list[str]:
        return parse_ext_list(list(value) if isinstance(value, tuple) else value)

    def has_includes(self) -> bool:
        """Tell whether any include rule (glob or extension) is configured."""
        return bool(self.include_glob or self.include_ext)

    def respect_vcs_ignores(self, repository_root: Path | None) -> bool:
        """Resolve the ignore mode against the detected repository root.

        Args:
            repository_root (Path | None): the enclosing repository, if any

        Returns:
            bool: True when ignore files must be honoured
        """
        if self.ignore_mode is IgnoreMode.NEVER:
            return False
        if self.ignore_mode is IgnoreMode.ALWAYS:
            return True
        return repository_root is not None
