from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tree_md.config import ContentsMode, IgnoreMode, MatchSpec, parse_ext_list
from tree_md.exceptions import ConfigFileError

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "TREE_MD_"


class Settings(BaseModel):
    """Configuration settings for the tree_md command."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    root: Path = Field(default_factory=Path.cwd, description="Directory to render.")
    include_glob: list[str] = Field(default_factory=list, description="Include glob.")
    exclude_glob: list[str] = Field(default_factory=list, description="Exclude glob.")
    include_ext: list[str] = Field(default_factory=list, description="Include extensions.")
    use_gitignore: IgnoreMode = Field(default=IgnoreMode.AUTO, description="When to honour ignore files.")
    global_ignore_file: Path | None = Field(default=None, description="User-level ignore file.")
    unsafe: bool = Field(default=False, description="Disable the safety denylist.")
    ignore_case: bool = Field(default=False, description="Case insensitive matching.")
    all: bool = Field(default=False, description="Show hidden entries.")
    level: int | None = Field(default=None, ge=1, description="Deepest tree level shown.")

    stdin: bool = Field(default=False, description="Read the paths to show from stdin.")
    null: bool = Field(default=False, description="Stdin entries are NUL separated.")
    expand_dirs: bool = Field(default=False, description="Expand directories listed on stdin.")
    restrict_root: Path | None = Field(default=None, description="Reject stdin paths outside this directory.")

    contents: bool = Field(default=False, description="Append file contents.")
    max_chars: int | None = Field(default=None, ge=0, description="Global character budget for contents.")
    contents_mode: ContentsMode = Field(default=ContentsMode.HEAD, description="Budget strategy.")
    truncate: int | None = Field(default=None, ge=1, description="Per-file byte limit.")
    max_lines: int | None = Field(default=None, ge=1, description="Per-file line limit.")

    output: Path | None = Field(default=None, description="Output file (stdout when unset).")
    config: Path | None = Field(default=None, description="YAML configuration file.")
    log_file: str = Field(default="", description="Log file path.")

    @field_validator("include_glob", "exclude_glob", mode="before")
    @classmethod
    def _split_globs(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return value.split()
        return value

    @field_validator("include_ext", mode="before")
    @classmethod
    def _normalize_ext(cls, value: str | list[str]) -> list[str]:
        return parse_ext_list(value)

    def match_spec(self) -> MatchSpec:
        """Build the filtering rules of this invocation.

        Returns:
            MatchSpec: the rules handed to the selection engine
        """
        return MatchSpec(
            include_glob=tuple(self.include_glob),
            exclude_glob=tuple(self.exclude_glob),
            include_ext=tuple(self.include_ext),
            ignore_mode=self.use_gitignore,
            use_safety=not self.unsafe,
            case_sensitive=not self.ignore_case,
            global_ignore_file=self.global_ignore_file,
        )

    @classmethod
    def load(cls, cli_values: dict[str, Any], env_file: str | Path | None = ENV_FILE) -> Settings:
        """Merge every configuration layer into one Settings.

        Precedence, lowest first: model defaults, `TREE_MD_*` variables (from
        the `.env` file, then the process environment), the YAML config file,
        then the values given on the command line.

        Args:
            cli_values (dict[str, Any]): options explicitly given on the command line
            env_file (str | Path | None): the `.env` file to read

        Raises:
            ConfigFileError: if the YAML config file cannot be used
            pydantic.ValidationError: if a merged value is invalid

        Returns:
            Settings: the merged settings
        """
        env = load_env_settings(env_file)
        config_path = cli_values.get("config") or env.get("config")
        file_values = load_config_file(Path(config_path)) if config_path else {}
        return cls(**{**env, **file_values, **cli_values})


def load_env_settings(env_file: str | Path | None = ENV_FILE) -> dict[str, str]:
    """Collect `TREE_MD_*` variables, the process environment overriding the `.env` file.

    Args:
        env_file (str | Path | None): the `.env` file to read, if any

    Returns:
        dict[str, str]: settings field names mapped to raw values
    """
    raw: dict[str, str | None] = dict(dotenv_values(env_file)) if env_file else {}
    raw.update(os.environ)
    fields = Settings.model_fields
    values: dict[str, str] = {}
    for key, value in raw.items():
        if value is None or not key.upper().startswith(ENV_PREFIX):
            continue
        name = key[len(ENV_PREFIX) :].lower()
        if name in fields:
            values[name] = value
    return values


def load_config_file(path: Path) -> dict[str, Any]:
    """Load a YAML configuration file.

    Keys are named like the Settings fields; dashes are accepted in place of
    underscores ("max-chars").

    Args:
        path (Path): the YAML file

    Raises:
        ConfigFileError: if the file cannot be read or parsed, is not a mapping,
            or holds unknown keys

    Returns:
        dict[str, Any]: the configured values
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigFileError(path=path, reason=str(e)) from e
    except yaml.YAMLError as e:
        raise ConfigFileError(path=path, reason=f"invalid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigFileError(path=path, reason="top-level value must be a mapping")
    values = {str(k).replace("-", "_"): v for k, v in data.items()}
    unknown = sorted(set(values) - set(Settings.model_fields))
    if unknown:
        raise ConfigFileError(path=path, reason=f"unknown keys: {', '.join(unknown)}")
    values.pop("config", None)
    return values
