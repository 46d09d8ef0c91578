from __future__ import annotations

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, computed_field

from tree_md.config import CONTROL_CHAR_RATIO, PROBE_BYTES, ContentsMode, Language, Selection, TruncateType, guess_language
from tree_md.exceptions import BinaryFileError, ContentReadError
from tree_md.logging import logger
from tree_md.patterns import RelativePath
from tree_md.truncation import BudgetDecision, ContentBudgetAllocator, TruncationInfo, Truncator, split_lines

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from tree_md.selection import RepoBoundaryGuard, SelectionEngine

NOT_UTF8 = "File is not valid UTF-8 text"
_LINE_END = re.compile(r"(?<=\n)")


class TreeNode(BaseModel):
    """One retained entry of the selected tree.

    Attributes:
        name: entry name (the root uses its directory name).
        rel: path relative to the traversal root, POSIX separators ("" for the root).
        path: absolute path on disk.
        is_dir: whether the entry is a directory.
        children: retained children, directories first, then files, by name.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    rel: str = ""
    path: Path
    is_dir: bool = False
    children: list[TreeNode] = Field(default_factory=list)

    def iter_files(self) -> Iterator[TreeNode]:
        """Yield every file below this node, in display order."""
        for child in self.children:
            if child.is_dir:
                yield from child.iter_files()
            else:
                yield child

    def find(self, rel: str) -> TreeNode | None:
        """Return the node at `rel` (slash separated), or None when it is not retained."""
        node: TreeNode | None = self
        for part in [p for p in rel.strip("/").split("/") if p]:
            if node is None:
                return None
            node = next((c for c in node.children if c.name == part), None)
        return node


class ProbeResult(BaseModel):
    """Outcome of sniffing the head of a file."""

    model_config = ConfigDict(frozen=True)

    is_binary: bool
    is_utf8: bool


class FileContent(BaseModel):
    """Content of one selected file, ready for rendering.

    Attributes:
        rel: path relative to the traversal root.
        path: absolute path on disk.
        text: the (possibly truncated) text, None when unreadable or binary.
        info: truncation record of `text`.
        error: human readable reason when the content cannot be shown.
        binary_size: file size when the file was detected as binary.
        budgeted: whether `text` was cut by the global character budget.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    rel: str
    path: Path
    text: str | None = None
    info: TruncationInfo | None = None
    error: str | None = None
    binary_size: int | None = None
    budgeted: bool = False

    @computed_field
    @property
    def language(self) -> Language:
        """Code fence language guessed from the file extension."""
        return guess_language(self.path)

    @property
    def readable(self) -> bool:
        return self.text is not None


def walk_tree(
    root: Path,
    engine: SelectionEngine,
    *,
    guard: RepoBoundaryGuard | None = None,
    show_hidden: bool = False,
    max_depth: int | None = None,
) -> TreeNode:
    """Walk `root` and keep the entries the selection engine lets through.

    Nested repositories are skipped before the engine is asked about a
    directory. Directories whose retained subtree ends up empty are dropped,
    except directories at `max_depth`, which are listed without being entered.

    Args:
        root (Path): the traversal root
        engine (SelectionEngine): the compiled selection rules
        guard (RepoBoundaryGuard | None): nested repository detection
        show_hidden (bool): keep entries whose name starts with "."
        max_depth (int | None): deepest level shown; the root's children are at level 1

    Returns:
        TreeNode: the retained tree, rooted at `root`
    """
    root = root.resolve()
    tree = TreeNode(name=root.name or str(root), rel="", path=root, is_dir=True)
    _walk_directory(tree, engine, guard, show_hidden, max_depth, 0)
    return tree


def _walk_directory(
    node: TreeNode,
    engine: SelectionEngine,
    guard: RepoBoundaryGuard | None,
    show_hidden: bool,  # noqa: FBT001
    max_depth: int | None,
    depth: int,
) -> None:
    try:
        with os.scandir(node.path) as it:
            entries = sorted(it, key=lambda e: (not e.is_dir(follow_symlinks=False), e.name))
    except OSError as e:
        logger.warning("Cannot list directory %s: %s", node.path, e)
        return

    for entry in entries:
        if not show_hidden and entry.name.startswith("."):
            continue
        entry_path = Path(entry.path)
        rel = f"{node.rel}/{entry.name}" if node.rel else entry.name
        if entry.is_dir(follow_symlinks=False):
            if guard is not None and guard.is_boundary(entry_path):
                logger.debug("Pruning nested repository", path=rel)
                continue
            if engine.select_directory(RelativePath.from_string(rel, is_dir=True)) is Selection.PRUNE_DIRECTORY:
                continue
            child = TreeNode(name=entry.name, rel=rel, path=entry_path, is_dir=True)
            if max_depth is not None and depth + 1 >= max_depth:
                node.children.append(child)
                continue
            _walk_directory(child, engine, guard, show_hidden, max_depth, depth + 1)
            if child.children:
                node.children.append(child)
        elif entry.is_file():
            if engine.select_file(RelativePath.from_string(rel)) is Selection.INCLUDE:
                node.children.append(TreeNode(name=entry.name, rel=rel, path=entry_path))


def build_tree_from_paths(root: Path, paths: Sequence[Path]) -> TreeNode:
    """Arrange an explicit list of files under `root` as a tree.

    Args:
        root (Path): the directory every path is shown relative to
        paths (Sequence[Path]): absolute file paths

    Returns:
        TreeNode: the tree, directories first, then files, by name
    """
    root = root.resolve()
    tree = TreeNode(name=root.name or str(root), rel="", path=root, is_dir=True)
    for path in paths:
        rel = RelativePath.from_root(path, root)
        if rel is None or not rel.parts:
            logger.warning("Skipping path outside %s: %s", root, path)
            continue
        node = tree
        for i, part in enumerate(rel.parts[:-1]):
            child = node.find(part)
            if child is None:
                prefix = rel.parts[: i + 1]
                child = TreeNode(name=part, rel="/".join(prefix), path=root.joinpath(*prefix), is_dir=True)
                node.children.append(child)
            node = child
        if node.find(rel.name) is None:
            node.children.append(TreeNode(name=rel.name, rel=rel.match_str, path=path))
    _sort_children(tree)
    return tree


def _sort_children(node: TreeNode) -> None:
    node.children.sort(key=lambda c: (not c.is_dir, c.name))
    for child in node.children:
        if child.is_dir:
            _sort_children(child)


def _split_keepends(text: str) -> list[str]:
    return [line for line in _LINE_END.split(text) if line]


def build_tree_lines(tree: TreeNode) -> list[str]:
    """Build a visual tree representation of the retained entries.

    Args:
        tree (TreeNode): the retained tree

    Returns:
        list[str]: a list of strings representing the tree structure, suitable for printing
    """
    lines: list[str] = [f"{tree.name}/"]

    def walk(node: TreeNode, prefix: str) -> None:
        for idx, child in enumerate(node.children):
            last = idx == len(node.children) - 1
            branch = "└── " if last else "├── "
            lines.append(prefix + branch + child.name + ("/" if child.is_dir else ""))
            if child.is_dir:
                ext = "    " if last else "│   "
                walk(child, prefix + ext)

    walk(tree, "")
    return lines


def probe_file(path: Path, max_probe: int = PROBE_BYTES) -> ProbeResult:
    """Sniff the head of a file to tell binary data from text.

    A sample is binary when it contains a NUL byte or when more than 10% of
    it are control characters other than tab, line feed and carriage return.

    Args:
        path (Path): the file to probe
        max_probe (int): number of bytes to inspect

    Returns:
        ProbeResult: the probe outcome
    """
    with path.open("rb") as f:
        sample = f.read(max_probe)
    control = sum(1 for b in sample if b < 32 and b not in {9, 10, 13})  # noqa: PLR2004
    is_binary = b"\x00" in sample or control > len(sample) * CONTROL_CHAR_RATIO
    try:
        sample.decode("utf-8")
        is_utf8 = True
    except UnicodeDecodeError as e:
        # a multi-byte character cut at the end of the sample is still text
        is_utf8 = e.start >= len(sample) - 3 and e.reason == "unexpected end of data"
    return ProbeResult(is_binary=is_binary, is_utf8=is_utf8)


def read_text(path: Path) -> str:
    """Read a whole text file.

    Args:
        path (Path): the file to read

    Raises:
        BinaryFileError: if the file looks binary
        ContentReadError: if the file cannot be read or is not valid UTF-8

    Returns:
        str: the decoded content
    """
    try:
        size = path.stat().st_size
        probe = probe_file(path)
        if probe.is_binary:
            raise BinaryFileError(path=path, size=size)
        if not probe.is_utf8:
            raise ContentReadError(path=path, reason=NOT_UTF8)
        data = path.read_bytes()
    except OSError as e:
        raise ContentReadError(path=path, reason=str(e)) from e
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ContentReadError(path=path, reason=NOT_UTF8) from e


def read_text_prefix(
    path: Path,
    max_bytes: int | None = None,
    max_lines: int | None = None,
) -> tuple[str, TruncationInfo]:
    """Read the head of a text file under optional byte and line limits.

    Args:
        path (Path): the file to read
        max_bytes (int | None): keep at most this many bytes (cut on a character boundary)
        max_lines (int | None): keep at most this many lines

    Raises:
        BinaryFileError: if the file looks binary
        ContentReadError: if the file cannot be read or is not valid UTF-8

    Returns:
        tuple[str, TruncationInfo]: the kept text and its truncation record
    """
    text = read_text(path)
    total_bytes = len(text.encode("utf-8"))
    total_lines = len(split_lines(text))

    kept_lines: list[str] = []
    shown_bytes = 0
    cut_by_bytes = cut_by_lines = False
    for line in _split_keepends(text):
        if max_lines is not None and len(kept_lines) >= max_lines:
            cut_by_lines = True
            break
        raw = line.encode("utf-8")
        if max_bytes is not None and shown_bytes + len(raw) > max_bytes:
            partial = raw[: max_bytes - shown_bytes].decode("utf-8", errors="ignore")
            if partial:
                kept_lines.append(partial)
                shown_bytes += len(partial.encode("utf-8"))
            cut_by_bytes = True
            break
        kept_lines.append(line)
        shown_bytes += len(raw)

    kept = "".join(kept_lines)
    if cut_by_bytes and max_lines is not None:
        kind = TruncateType.BOTH
    elif cut_by_bytes:
        kind = TruncateType.BYTES
    elif cut_by_lines and max_bytes is not None:
        kind = TruncateType.BOTH
    elif cut_by_lines:
        kind = TruncateType.LINES
    else:
        kind = TruncateType.NONE
    shown_lines = kept.count("\n") if cut_by_bytes else len(split_lines(kept))
    info = TruncationInfo(
        truncated=kind is not TruncateType.NONE,
        total_lines=total_lines,
        total_bytes=total_bytes,
        shown_lines=shown_lines,
        shown_bytes=shown_bytes,
        truncate_type=kind,
        omitted_lines=max(total_lines - shown_lines, 0) if kind is not TruncateType.NONE else 0,
    )
    return kept, info


def load_contents(
    tree: TreeNode,
    *,
    max_bytes: int | None = None,
    max_lines: int | None = None,
) -> list[FileContent]:
    """Read the content of every retained file.

    A file that cannot be shown is recorded with its reason; it never aborts
    the run.

    Args:
        tree (TreeNode): the retained tree
        max_bytes (int | None): per-file byte limit
        max_lines (int | None): per-file line limit

    Returns:
        list[FileContent]: one entry per file, in display order
    """
    contents: list[FileContent] = []
    for node in tree.iter_files():
        try:
            if max_bytes is not None or max_lines is not None:
                text, info = read_text_prefix(node.path, max_bytes=max_bytes, max_lines=max_lines)
            else:
                text = read_text(node.path)
                info = TruncationInfo.untouched(text)
        except BinaryFileError as e:
            contents.append(FileContent(rel=node.rel, path=node.path, error=str(e), binary_size=e.size))
        except ContentReadError as e:
            logger.warning("Cannot read %s: %s", node.rel, e.reason)
            contents.append(FileContent(rel=node.rel, path=node.path, error=e.reason))
        else:
            contents.append(FileContent(rel=node.rel, path=node.path, text=text, info=info))
    return contents


def apply_budget(
    contents: Sequence[FileContent],
    budget: int,
    strategy: ContentsMode = ContentsMode.HEAD,
) -> tuple[list[FileContent], BudgetDecision]:
    """Fit the readable contents into one global character budget.

    One parameter is chosen for all files, then applied to each of them.

    Args:
        contents (Sequence[FileContent]): the loaded files
        budget (int): the character budget
        strategy (ContentsMode): head-line cut or nested collapse

    Returns:
        tuple[list[FileContent], BudgetDecision]: the truncated contents and the decision
    """
    texts = [c.text for c in contents if c.text is not None]
    decision = ContentBudgetAllocator(strategy).decide(texts, budget)
    truncator = Truncator(decision)
    out: list[FileContent] = []
    for content in contents:
        if content.text is None:
            out.append(content)
            continue
        kept, info = truncator.apply(content.text)
        out.append(content.model_copy(update={"text": kept, "info": info, "budgeted": True}))
    return out, decision
