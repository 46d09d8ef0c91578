"""Explicit path lists read from standard input.

Each line (or NUL-separated item with `--null`) names a file or, with
`--expand-dirs`, a directory to expand through the usual selection rules.
Listed files are shown as given; the selection rules only apply to the
contents of expanded directories.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from tree_md.exceptions import DirectoriesNotAllowedError, NoValidFilesError, OutsideRestrictRootError
from tree_md.file_manipulation import walk_tree
from tree_md.logging import logger
from tree_md.selection import RepoBoundaryGuard, SelectionEngine

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tree_md.config import MatchSpec


def read_path_list(stream: TextIO, *, null_delimited: bool = False) -> list[str]:
    """Read path entries from a text stream, dropping blank entries.

    Args:
        stream (TextIO): usually `sys.stdin`
        null_delimited (bool): entries are separated by NUL instead of newlines

    Returns:
        list[str]: the stripped entries
    """
    data = stream.read()
    items = data.split("\0") if null_delimited else data.split("\n")
    return [item.strip() for item in items if item.strip()]


def expand_directory(directory: Path, spec: MatchSpec, *, show_hidden: bool = False) -> list[Path]:
    """List the files the selection rules keep below `directory`."""
    engine = SelectionEngine.compile(spec, directory, skip_hidden=not show_hidden)
    tree = walk_tree(directory, engine, guard=RepoBoundaryGuard(directory), show_hidden=show_hidden)
    return [node.path for node in tree.iter_files()]


def collect_input_paths(
    raw_paths: Sequence[str],
    *,
    base_dir: Path,
    spec: MatchSpec,
    restrict_root: Path | None = None,
    expand_dirs: bool = False,
    show_hidden: bool = False,
) -> list[Path]:
    """Resolve path entries into a sorted, de-duplicated list of files.

    Relative entries are taken relative to `base_dir`. Missing entries are
    logged and skipped.

    Args:
        raw_paths (Sequence[str]): the entries read from the input
        base_dir (Path): directory relative entries are resolved against
        spec (MatchSpec): selection rules used when expanding directories
        restrict_root (Path | None): every entry must lie below this directory
        expand_dirs (bool): expand directory entries instead of rejecting them
        show_hidden (bool): keep hidden entries of expanded directories

    Raises:
        OutsideRestrictRootError: if an entry lies outside `restrict_root`
        DirectoriesNotAllowedError: if directories are listed without `expand_dirs`
        NoValidFilesError: if no file is left
        InvalidPatternError: if a selection pattern is malformed

    Returns:
        list[Path]: absolute, resolved file paths
    """
    allowed = restrict_root.resolve() if restrict_root is not None else None
    files: list[Path] = []
    directories: list[Path] = []
    for raw in raw_paths:
        candidate = Path(raw)
        if not candidate.is_absolute():
            candidate = base_dir / candidate
        if not candidate.exists():
            logger.warning("File not found: %s", candidate)
            continue
        real = candidate.resolve()
        if allowed is not None and not real.is_relative_to(allowed):
            raise OutsideRestrictRootError(path=real, root=allowed)
        (directories if real.is_dir() else files).append(real)

    if directories and not expand_dirs:
        raise DirectoriesNotAllowedError(directories=tuple(directories))
    for directory in directories:
        files.extend(expand_directory(directory, spec, show_hidden=show_hidden))

    unique = sorted(set(files))
    if not unique:
        raise NoValidFilesError()
    return unique


def display_root(paths: Sequence[Path], base_dir: Path) -> Path:
    """Pick the directory the tree is drawn from.

    That is `base_dir` when it contains every path, otherwise the deepest
    directory common to all of them.
    """
    base = base_dir.resolve()
    if all(p.is_relative_to(base) for p in paths):
        return base
    return Path(os.path.commonpath([str(p.parent) for p in paths]))
