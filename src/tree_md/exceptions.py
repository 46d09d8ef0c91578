from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar


@dataclass(frozen=True)
class TreeMdError(Exception):
    """Base exception for errors in the tree_md package."""

    def __str__(self) -> str:
        return self.__class__.__name__


@dataclass(frozen=True)
class InvalidPatternError(TreeMdError):
    """Raised when a glob pattern cannot be compiled."""

    pattern: str
    reason: str

    def __str__(self) -> str:
        return f"invalid pattern '{self.pattern}': {self.reason}"


@dataclass(frozen=True)
class ContentReadError(TreeMdError):
    """Raised when a file's content cannot be read as text."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return self.reason


@dataclass(frozen=True)
class BinaryFileError(TreeMdError):
    """Raised when a file looks binary and its content is not shown."""

    path: Path
    size: int
    message: str = "The file looks like binary data."

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class ConfigFileError(TreeMdError):
    """Raised when a configuration file cannot be loaded."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"cannot load config file {self.path}: {self.reason}"


@dataclass(frozen=True)
class PathInputError(TreeMdError):
    """Raised when an explicit path list cannot be turned into a tree."""

    exit_code: ClassVar[int] = 1


@dataclass(frozen=True)
class OutsideRestrictRootError(PathInputError):
    """Raised when an input path lies outside the allowed root."""

    path: Path
    root: Path
    exit_code: ClassVar[int] = 2

    def __str__(self) -> str:
        return f"path '{self.path}' is not within restrict-root directory '{self.root}'"


@dataclass(frozen=True)
class DirectoriesNotAllowedError(PathInputError):
    """Raised when the input names directories but expanding them was not requested."""

    directories: tuple[Path, ...]
    exit_code: ClassVar[int] = 3

    def __str__(self) -> str:
        listed = "\n".join(f"  {d}" for d in self.directories)
        return f"input contains directories but --expand-dirs was not given:\n{listed}"


@dataclass(frozen=True)
class NoValidFilesError(PathInputError):
    """Raised when no usable file is left in the input."""

    exit_code: ClassVar[int] = 4

    def __str__(self) -> str:
        return "no valid files found in the input"
