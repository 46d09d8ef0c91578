"""Version-control ignore semantics without a git binary.

Ignore files are gathered once per traversal root into an immutable
`IgnoreStack`. Every `IgnoreScope` is anchored at the directory its rules
are relative to; for a query, scopes are consulted from lowest to highest
precedence and the last matching rule wins, `!` negations included.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from pathspec.patterns import GitWildMatchPattern
from pathspec.patterns.gitwildmatch import GitWildMatchPatternError

from tree_md.config import IGNORE_FILE_NAMES, REPO_METADATA_NAME
from tree_md.logging import logger
from tree_md.patterns import RelativePath

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence


def find_repository_root(start: Path) -> Path | None:
    """Find the nearest directory at or above `start` holding repository metadata.

    Args:
        start (Path): the directory to start from

    Returns:
        Path | None: the repository root, or None outside any repository
    """
    current = start.resolve()
    for candidate in (current, *current.parents):
        if (candidate / REPO_METADATA_NAME).exists():
            return candidate
    return None


def resolve_git_dir(repository_root: Path) -> Path | None:
    """Locate the metadata directory of a repository.

    A `.git` file (worktree or submodule) is followed through its `gitdir:`
    line, and a `commondir` file inside that directory is honoured so that
    worktrees share the main repository's `info/exclude`.

    Args:
        repository_root (Path): a directory containing `.git`

    Returns:
        Path | None: the metadata directory, or None when it cannot be resolved
    """
    marker = repository_root / REPO_METADATA_NAME
    if marker.is_dir():
        return marker
    try:
        first = marker.read_text(encoding="utf-8").splitlines()[0].strip()
    except (OSError, UnicodeDecodeError, IndexError):
        return None
    if not first.startswith("gitdir:"):
        return None
    git_dir = Path(first.removeprefix("gitdir:").strip())
    if not git_dir.is_absolute():
        git_dir = repository_root / git_dir
    commondir = git_dir / "commondir"
    if commondir.is_file():
        try:
            common = Path(commondir.read_text(encoding="utf-8").strip())
        except (OSError, UnicodeDecodeError):
            return git_dir
        return common if common.is_absolute() else (git_dir / common)
    return git_dir


def default_global_ignore_file() -> Path | None:
    """Return the user-level ignore file git would use by default, if it exists."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    candidate = base / "git" / "ignore"
    return candidate if candidate.is_file() else None


def read_ignore_lines(path: Path) -> list[str]:
    """Read an ignore file, treating any failure as "no rules".

    Args:
        path (Path): the ignore file

    Returns:
        list[str]: the raw lines, or an empty list if the file cannot be read
    """
    try:
        return path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return []
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Ignoring unreadable ignore file %s: %s", path, e)
        return []


def compile_ignore_lines(lines: Iterable[str], source: Path | None = None) -> tuple[GitWildMatchPattern, ...]:
    """Compile gitignore lines, skipping comments, blanks and invalid lines."""
    patterns: list[GitWildMatchPattern] = []
    for line in lines:
        try:
            pattern = GitWildMatchPattern(line)
        except GitWildMatchPatternError as e:
            logger.warning("Skipping invalid ignore rule %r in %s: %s", line, source, e)
            continue
        if pattern.include is not None:
            patterns.append(pattern)
    return tuple(patterns)


@dataclass(frozen=True)
class IgnoreScope:
    """One compiled ignore ruleset anchored at a directory.

    Attributes:
        anchor: absolute directory the rules are relative to.
        patterns: compiled rules, in file order.
        source: the file the rules were read from.
        precedence: position in the stack; higher values override lower ones.
    """

    anchor: Path
    patterns: tuple[GitWildMatchPattern, ...]
    source: Path | None = None
    precedence: int = 0

    @classmethod
    def from_file(cls, path: Path, anchor: Path, precedence: int = 0) -> IgnoreScope:
        return cls(
            anchor=anchor,
            patterns=compile_ignore_lines(read_ignore_lines(path), source=path),
            source=path,
            precedence=precedence,
        )

    def verdict(self, target: Path, *, is_dir: bool) -> bool | None:
        """Evaluate an absolute path against this scope.

        Args:
            target (Path): the absolute path to test
            is_dir (bool): whether the path is a directory

        Returns:
            bool | None: True if ignored, False if re-included by a negation,
                None if no rule matched or the path is outside the anchor
        """
        try:
            rel = target.relative_to(self.anchor).as_posix()
        except ValueError:
            return None
        if rel in {"", "."}:
            return None
        if is_dir:
            rel += "/"
        result: bool | None = None
        for pattern in self.patterns:
            if pattern.match_file(rel) is not None:
                result = bool(pattern.include)
        return result


@dataclass(frozen=True)
class IgnoreStack:
    """Immutable, precomputed stack of ignore scopes for one traversal root."""

    root: Path
    scopes: tuple[IgnoreScope, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls, root: Path) -> IgnoreStack:
        return cls(root=root.resolve(), scopes=())

    @classmethod
    def build(
        cls,
        root: Path,
        *,
        repository_root: Path | None = None,
        global_ignore_file: Path | None = None,
        discover_nested: bool = True,
        ignore_file_names: Sequence[str] = IGNORE_FILE_NAMES,
        prune: Callable[[RelativePath], bool] | None = None,
    ) -> IgnoreStack:
        """Collect every ignore source that applies below `root`.

        Precedence, lowest first: the global ignore file, the repository's
        `info/exclude`, ignore files in the ancestors of `root` (outermost
        first), then ignore files at and below `root` (shallowest first).

        Args:
            root (Path): the traversal root
            repository_root (Path | None): the enclosing repository, if any
            global_ignore_file (Path | None): user-level ignore file
            discover_nested (bool): also collect ignore files below `root`
            ignore_file_names (Sequence[str]): names of per-directory ignore files
            prune (Callable[[RelativePath], bool] | None): directories below `root` the
                walker never enters; their ignore files are not collected

        Returns:
            IgnoreStack: the compiled stack
        """
        root = root.resolve()
        anchor_base = repository_root.resolve() if repository_root else root
        scopes: list[IgnoreScope] = []

        if global_ignore_file is not None:
            scopes.append(IgnoreScope.from_file(global_ignore_file, anchor_base))

        if repository_root is not None:
            git_dir = resolve_git_dir(repository_root)
            if git_dir is not None:
                scopes.append(IgnoreScope.from_file(git_dir / "info" / "exclude", anchor_base))

        stop = repository_root.resolve() if repository_root else None
        chain: list[Path] = []
        if root != stop:
            for directory in root.parents:
                chain.append(directory)
                if directory == stop:
                    break
        if stop is None or stop in chain:
            for directory in reversed(chain):
                scopes.extend(_scopes_in(directory, ignore_file_names))

        stack = cls(root=root, scopes=tuple(scopes))
        stack = stack._with(_scopes_in(root, ignore_file_names))
        if discover_nested:
            stack = stack._discover_below(ignore_file_names, prune)
        stack = cls(
            root=root,
            scopes=tuple(
                IgnoreScope(anchor=s.anchor, patterns=s.patterns, source=s.source, precedence=i)
                for i, s in enumerate(stack.scopes)
            ),
        )
        for scope in stack.scopes:
            logger.debug("Loaded ignore scope", source=str(scope.source), rules=len(scope.patterns))
        return stack

    def _with(self, extra: Iterable[IgnoreScope]) -> IgnoreStack:
        return IgnoreStack(root=self.root, scopes=(*self.scopes, *extra))

    def _discover_below(
        self,
        ignore_file_names: Sequence[str],
        prune: Callable[[RelativePath], bool] | None = None,
    ) -> IgnoreStack:
        stack = self
        for current, dirs, _files in os.walk(self.root):
            base = Path(current)
            kept: list[str] = []
            for name in sorted(dirs):
                child = base / name
                if name == REPO_METADATA_NAME or (child / REPO_METADATA_NAME).exists():
                    continue
                if child.is_symlink():
                    continue
                if stack.is_ignored_path(child, is_dir=True):
                    continue
                rel = RelativePath.from_string(child.relative_to(self.root).as_posix(), is_dir=True)
                if prune is not None and prune(rel):
                    continue
                stack = stack._with(_scopes_in(child, ignore_file_names))
                kept.append(name)
            dirs[:] = kept
        return stack

    def is_ignored_path(self, target: Path, *, is_dir: bool) -> bool:
        """Tell whether an absolute path is ignored by the aggregated rules."""
        result: bool | None = None
        for scope in self.scopes:
            verdict = scope.verdict(target, is_dir=is_dir)
            if verdict is not None:
                result = verdict
        return bool(result)

    def is_ignored(self, path: RelativePath) -> bool:
        """Tell whether a root-relative path is ignored.

        Args:
            path (RelativePath): the path relative to the stack's root; a
                trailing "/" marks a directory

        Returns:
            bool: True when the last matching rule ignores the path
        """
        if not path.parts:
            return False
        return self.is_ignored_path(self.root.joinpath(*path.parts), is_dir=path.looks_like_dir)

    def __len__(self) -> int:
        return len(self.scopes)


def _scopes_in(directory: Path, names: Sequence[str]) -> list[IgnoreScope]:
    scopes: list[IgnoreScope] = []
    for name in names:
        candidate = directory / name
        if candidate.is_file():
            scope = IgnoreScope.from_file(candidate, directory)
            if scope.patterns:
                scopes.append(scope)
    return scopes
