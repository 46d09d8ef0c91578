from __future__ import annotations

import io
from typing import TYPE_CHECKING

from tree_md.file_manipulation import build_tree_lines
from tree_md.truncation import truncation_message

if TYPE_CHECKING:
    from collections.abc import Sequence

    from tree_md.file_manipulation import FileContent, TreeNode

SIZE_UNITS = ("B", "KB", "MB", "GB")


def format_size(size: int) -> str:
    """Render a byte count for humans.

    Args:
        size (int): a number of bytes

    Returns:
        str: e.g. "100 B", "1.0 KB", "2.5 MB"
    """
    value = float(size)
    for unit in SIZE_UNITS:
        if value < 1024 or unit == SIZE_UNITS[-1]:  # noqa: PLR2004
            return f"{size} B" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} {SIZE_UNITS[-1]}"


def file_section(content: FileContent) -> str:
    """Render the markdown section of one file.

    Args:
        content (FileContent): the loaded (and possibly truncated) file

    Returns:
        str: the section, ending with a blank line
    """
    out = io.StringIO()
    out.write(f"## {content.rel}\n\n")
    if content.binary_size is not None:
        out.write(f"*Binary file ({format_size(content.binary_size)}).*\n\n")
        return out.getvalue()
    if content.text is None:
        out.write(f"*Failed to read content: {content.error}*\n\n")
        return out.getvalue()

    body = content.text.rstrip("\n")
    out.write(f"```{content.language}\n{body}\n```\n")
    info = content.info
    if info is not None and info.truncated:
        if content.budgeted:
            out.write(f"... ({info.omitted_lines} lines omitted)\n")
        else:
            out.write(f"\n{truncation_message(info)}\n")
    out.write("\n")
    return out.getvalue()


def build_markdown(root_name: str, tree: TreeNode, contents: Sequence[FileContent] = ()) -> str:
    """Build the markdown document for a selected tree.

    Args:
        root_name (str): heading of the document, usually the root directory name
        tree (TreeNode): the retained tree
        contents (Sequence[FileContent]): file sections to append, in display order

    Returns:
        str: the markdown document
    """
    out = io.StringIO()
    out.write(f"# {root_name}\n\n")
    out.write("```text\n")
    out.write("\n".join(build_tree_lines(tree)))
    out.write("\n```\n\n")
    for content in contents:
        out.write(file_section(content))
    return out.getvalue().rstrip() + "\n"
