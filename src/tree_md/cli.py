"""
tree_md: render a directory tree (and optionally file contents) as Markdown.

Overview
--------
The tree is filtered by a precedence chain of rules: explicit include globs
and extensions, version-control ignore files (`.gitignore`, `.ignore`,
`info/exclude` and the user-level ignore file), explicit exclude globs, then
a built-in safety denylist keeping secrets and build output out of the
document. Nested repositories are never descended into.

With `--contents`, each selected text file is appended in a fenced block.
`--max-chars` fits all contents into one character budget, either by keeping
the same number of head lines of every file (`--contents-mode head`) or by
collapsing deeply indented blocks (`--contents-mode nest`).

Usage
-----
Run `tree-md --help` for full options. Common examples:
    - Rust sources only, without tests:
        tree-md -I "*.rs" -X "tests/**"

    - Tree plus contents under a 20k character budget:
        tree-md -c --max-chars 20000 --output repo.md

    - Everything, secrets included, ignore files disregarded:
        tree-md --unsafe --use-gitignore never -a

    - Two levels deep only:
        tree-md -L 2

    - Files changed on a branch:
        git diff --name-only main | tree-md --stdin -c
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from pydantic import ValidationError

from tree_md.config import ContentsMode, IgnoreMode
from tree_md.exceptions import ConfigFileError, InvalidPatternError, PathInputError
from tree_md.file_manipulation import apply_budget, build_tree_from_paths, load_contents, walk_tree
from tree_md.logging import logger, setup_logging
from tree_md.output_construction import build_markdown
from tree_md.path_input import collect_input_paths, display_root, read_path_list
from tree_md.selection import RepoBoundaryGuard, SelectionEngine
from tree_md.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tree_md.file_manipulation import TreeNode


def build_parser() -> argparse.ArgumentParser:
    # options left unset stay absent so that env and config values are not overridden
    p = argparse.ArgumentParser(
        prog="tree-md",
        description="Render a directory tree (and optionally file contents) as Markdown.",
        argument_default=argparse.SUPPRESS,
    )
    p.add_argument("root", nargs="?", type=Path, help="Directory to render (default: current directory).")

    filters = p.add_argument_group("filtering")
    filters.add_argument(
        "-I",
        "--include",
        dest="include_glob",
        action="append",
        metavar="GLOB",
        help="Only keep files matching GLOB (repeatable).",
    )
    filters.add_argument(
        "-X",
        "--exclude",
        dest="exclude_glob",
        action="append",
        metavar="GLOB",
        help="Drop files and directories matching GLOB (repeatable).",
    )
    filters.add_argument(
        "-e",
        "--include-ext",
        dest="include_ext",
        action="append",
        metavar="LIST",
        help="Only keep files with these extensions, comma separated (e.g. rs,go).",
    )
    filters.add_argument(
        "--use-gitignore",
        choices=[m.value for m in IgnoreMode],
        help="Honour ignore files: auto (inside a repository), never or always.",
    )
    filters.add_argument("--global-ignore-file", type=Path, metavar="PATH", help="User-level ignore file.")
    filters.add_argument("--unsafe", action="store_true", help="Disable the built-in safety denylist.")
    filters.add_argument("--ignore-case", action="store_true", help="Case insensitive pattern matching.")
    filters.add_argument("-a", "--all", action="store_true", help="Show hidden files and directories.")
    filters.add_argument("-L", "--level", type=int, metavar="N", help="Descend at most N directory levels.")

    paths = p.add_argument_group("path input")
    paths.add_argument("--stdin", action="store_true", help="Read the files to show from stdin, one per line.")
    paths.add_argument("--null", action="store_true", help="Stdin entries are NUL separated.")
    paths.add_argument(
        "--expand-dirs",
        action="store_true",
        help="Expand directories listed on stdin through the filtering rules.",
    )
    paths.add_argument(
        "--restrict-root",
        type=Path,
        metavar="DIR",
        help="Reject stdin paths outside DIR.",
    )

    contents = p.add_argument_group("contents")
    contents.add_argument("-c", "--contents", action="store_true", help="Append file contents.")
    contents.add_argument("--max-chars", type=int, metavar="N", help="Fit all contents into N characters.")
    contents.add_argument(
        "--contents-mode",
        choices=[m.value for m in ContentsMode],
        help="How --max-chars truncates: head lines or nested collapse.",
    )
    contents.add_argument("-t", "--truncate", type=int, metavar="BYTES", help="Per-file byte limit.")
    contents.add_argument("--max-lines", type=int, metavar="N", help="Per-file line limit.")

    p.add_argument("-o", "--output", type=Path, metavar="FILE", help="Output file (default: stdout).")
    p.add_argument("--config", type=Path, metavar="FILE", help="YAML configuration file.")
    p.add_argument("--log-file", type=str, metavar="FILE", help="Log file path.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse the command line and merge it with the env and config layers.

    Args:
        argv (Sequence[str] | None): the arguments, `sys.argv[1:]` when None

    Returns:
        Settings: the merged settings (exits with code 2 on usage errors)
    """
    p = build_parser()
    args = p.parse_args(argv)
    try:
        settings = Settings.load(vars(args))
    except ConfigFileError as e:
        p.error(str(e))
    except ValidationError as e:
        p.error(f"invalid settings: {e}")

    if settings.max_chars is not None and not settings.contents:
        p.error("--max-chars requires -c/--contents")
    if settings.max_chars is not None and (settings.truncate is not None or settings.max_lines is not None):
        p.error("--max-chars cannot be combined with -t/--truncate or --max-lines")
    if not settings.stdin and (settings.expand_dirs or settings.null or settings.restrict_root is not None):
        p.error("--expand-dirs, --null and --restrict-root require --stdin")
    if settings.stdin and settings.level is not None:
        p.error("-L/--level cannot be combined with --stdin")
    return settings


def select_tree(settings: Settings, stdin: TextIO | None = None) -> TreeNode:
    """Build the tree to render, by walking the root or from a stdin path list.

    Args:
        settings (Settings): the merged settings
        stdin (TextIO | None): the path list stream, `sys.stdin` when None

    Raises:
        InvalidPatternError: if an include or exclude glob is malformed
        PathInputError: if the stdin path list cannot be used

    Returns:
        TreeNode: the selected tree
    """
    root = settings.root.resolve()
    spec = settings.match_spec()
    if settings.stdin:
        raw = read_path_list(stdin or sys.stdin, null_delimited=settings.null)
        paths = collect_input_paths(
            raw,
            base_dir=root,
            spec=spec,
            restrict_root=settings.restrict_root,
            expand_dirs=settings.expand_dirs,
            show_hidden=settings.all,
        )
        logger.info("Read path list", entries=len(raw), files=len(paths))
        return build_tree_from_paths(display_root(paths, root), paths)

    engine = SelectionEngine.compile(spec, root, skip_hidden=not settings.all)
    logger.info("Compiled selection rules", root=str(root), rules=list(engine.source_names))
    return walk_tree(
        root,
        engine,
        guard=RepoBoundaryGuard(root),
        show_hidden=settings.all,
        max_depth=settings.level,
    )


def render(settings: Settings, stdin: TextIO | None = None) -> tuple[str, int]:
    """Select, read and render the tree described by `settings`.

    Args:
        settings (Settings): the merged settings
        stdin (TextIO | None): the path list stream used with `--stdin`

    Raises:
        InvalidPatternError: if an include or exclude glob is malformed
        PathInputError: if the stdin path list cannot be used

    Returns:
        tuple[str, int]: the markdown document and the number of selected files
    """
    tree = select_tree(settings, stdin)
    files = sum(1 for _ in tree.iter_files())

    contents = []
    if settings.contents:
        contents = load_contents(tree, max_bytes=settings.truncate, max_lines=settings.max_lines)
        if settings.max_chars is not None:
            contents, decision = apply_budget(contents, settings.max_chars, settings.contents_mode)
            if decision.fell_back:
                logger.info("Nested collapse cannot fit the budget, used head lines", lines=decision.value)

    logger.info("Rendered tree", root=str(tree.path), files=files)
    return build_markdown(tree.name, tree, contents), files


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    if settings.log_file:
        setup_logging(settings.log_file)

    if not settings.root.is_dir():
        print(f"error: not a directory: {settings.root}", file=sys.stderr)
        return 1

    try:
        content, files = render(settings)
    except InvalidPatternError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except PathInputError as e:
        print(f"error: {e}", file=sys.stderr)
        return e.exit_code

    if settings.output is None:
        sys.stdout.write(content)
    else:
        settings.output.write_text(content, encoding="utf-8")
        print(f"Wrote {settings.output} files={files}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
