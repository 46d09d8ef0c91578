"""Fitting file contents into a global character budget.

Two strategies pick one parameter for the whole set of files:

- head: keep the first `n` lines of every file, with `n` the largest value
  whose combined output fits the budget;
- nest: collapse runs of lines indented deeper than a threshold into a
  `... (N lines)` marker, with the threshold the highest one that fits.

Both are searches for the extremal parameter satisfying a budget predicate,
done by `find_largest_fitting`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from tree_md.config import COLLAPSE_MARKER, ContentsMode, TruncateType
from tree_md.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


class TruncationInfo(BaseModel):
    """How much of one file's content is shown.

    Attributes:
        truncated: whether anything was left out.
        total_lines: line count of the full content.
        total_bytes: UTF-8 size of the full content.
        shown_lines: original lines kept in the output (collapse markers excluded).
        shown_bytes: UTF-8 size of the kept text.
        truncate_type: which dimension caused the cut.
        omitted_lines: number of original lines left out.
    """

    model_config = ConfigDict(frozen=True)

    truncated: bool = False
    total_lines: int = Field(default=0, ge=0)
    total_bytes: int = Field(default=0, ge=0)
    shown_lines: int = Field(default=0, ge=0)
    shown_bytes: int = Field(default=0, ge=0)
    truncate_type: TruncateType = TruncateType.NONE
    omitted_lines: int = Field(default=0, ge=0)

    @classmethod
    def untouched(cls, text: str) -> TruncationInfo:
        """Info for content shown in full."""
        lines = len(split_lines(text))
        size = len(text.encode("utf-8"))
        return cls(total_lines=lines, total_bytes=size, shown_lines=lines, shown_bytes=size)


class BudgetDecision(BaseModel):
    """The single truncation parameter chosen for a whole render pass.

    Attributes:
        strategy: HEAD (value is a line count) or NEST (value is an indent threshold).
        value: the chosen parameter.
        fell_back: True when NEST was requested but could not fit, so HEAD was used.
    """

    model_config = ConfigDict(frozen=True)

    strategy: ContentsMode
    value: int = Field(ge=0)
    fell_back: bool = False


def split_lines(text: str) -> list[str]:
    """Split text on "\\n"; a final line terminator does not start a new line."""
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def find_largest_fitting(
    low: int,
    high: int,
    fits: Callable[[int], bool],
    *,
    linear: bool = False,
) -> int | None:
    """Find the largest parameter in [low, high] satisfying `fits`.

    Binary mode assumes `fits` is monotone (true up to some point, false
    after it) and needs about log2(high - low) evaluations. Linear mode scans
    downward from `high` and returns the first parameter that fits.

    Args:
        low (int): smallest candidate
        high (int): largest candidate
        fits (Callable[[int], bool]): the budget predicate
        linear (bool): scan downward instead of bisecting

    Returns:
        int | None: the chosen parameter, or None when no candidate fits
    """
    if high < low:
        return None
    if linear:
        for candidate in range(high, low - 1, -1):
            if fits(candidate):
                return candidate
        return None
    if not fits(low):
        return None
    lo, hi = low, high
    while lo < hi:
        mid = (lo + hi + 1) // 2
        if fits(mid):
            lo = mid
        else:
            hi = mid - 1
    return lo


def head_text(text: str, n: int) -> str:
    """Keep the first `n` lines of `text` (the text itself when it has no more than `n`)."""
    lines = split_lines(text)
    if n >= len(lines):
        return text
    return "\n".join(lines[: max(n, 0)])


def total_chars(texts: Sequence[str], n: int) -> int:
    """Combined length of every text cut to its first `n` lines."""
    return sum(len(head_text(text, n)) for text in texts)


def find_head_n(texts: Sequence[str], budget: int) -> int:
    """Pick the largest uniform line count whose combined output fits `budget`.

    Args:
        texts (Sequence[str]): the full contents of every selected file
        budget (int): the character budget

    Returns:
        int: the line count to apply to every file; the longest file's line
            count when everything already fits
    """
    max_lines = max((len(split_lines(text)) for text in texts), default=0)
    if total_chars(texts, max_lines) <= budget:
        return max_lines
    found = find_largest_fitting(0, max_lines, lambda n: total_chars(texts, n) <= budget)
    return found if found is not None else 0


def indent_level(line: str) -> int:
    return len(line) - len(line.lstrip())


def collapse_at_indent(lines: Sequence[str], threshold: int) -> tuple[list[str], int]:
    """Collapse runs of lines indented deeper than `threshold`.

    Blank lines and lines indented at most `threshold` are kept verbatim.
    Each run of consecutive non-blank, deeper lines becomes one
    `... (N lines)` marker.

    Args:
        lines (Sequence[str]): the content, one entry per line
        threshold (int): the deepest indent kept

    Returns:
        tuple[list[str], int]: the resulting lines and the number of lines omitted
    """
    out: list[str] = []
    omitted = 0
    i = 0
    while i < len(lines):
        line = lines[i]
        if not line.strip() or indent_level(line) <= threshold:
            out.append(line)
            i += 1
            continue
        start = i
        while i < len(lines) and lines[i].strip() and indent_level(lines[i]) > threshold:
            i += 1
        count = i - start
        omitted += count
        out.append(COLLAPSE_MARKER.format(count=count))
    return out, omitted


def nest_text(text: str, threshold: int) -> tuple[str, int]:
    """Collapse `text` at `threshold`; returns the text unchanged when nothing collapses."""
    kept, omitted = collapse_at_indent(split_lines(text), threshold)
    if not omitted:
        return text, 0
    return "\n".join(kept), omitted


def max_indent(texts: Sequence[str]) -> int:
    return max(
        (indent_level(line) for text in texts for line in split_lines(text) if line.strip()),
        default=0,
    )


def find_nest_threshold(texts: Sequence[str], budget: int) -> int | None:
    """Pick the highest indent threshold whose combined collapsed output fits `budget`.

    Args:
        texts (Sequence[str]): the full contents of every selected file
        budget (int): the character budget

    Returns:
        int | None: the threshold, or None when even threshold 0 does not fit
    """

    def fits(threshold: int) -> bool:
        return sum(len(nest_text(text, threshold)[0]) for text in texts) <= budget

    return find_largest_fitting(0, max_indent(texts), fits, linear=True)


class ContentBudgetAllocator:
    """Choose the one truncation parameter applied to every file of a render pass."""

    def __init__(self, strategy: ContentsMode = ContentsMode.HEAD) -> None:
        self.strategy = ContentsMode(strategy)

    def decide(self, texts: Sequence[str], budget: int) -> BudgetDecision:
        """Compute the budget decision for the given contents.

        Args:
            texts (Sequence[str]): the full contents of every selected text file
            budget (int): the character budget

        Returns:
            BudgetDecision: the chosen strategy and parameter; a NEST request that
                cannot fit falls back to HEAD with `fell_back` set
        """
        budget = max(budget, 0)
        if self.strategy is ContentsMode.NEST:
            threshold = find_nest_threshold(texts, budget)
            if threshold is not None:
                logger.debug("Budget decision", strategy="nest", threshold=threshold, budget=budget)
                return BudgetDecision(strategy=ContentsMode.NEST, value=threshold)
            logger.debug("Nest collapse cannot fit the budget, falling back to head lines", budget=budget)
            return BudgetDecision(strategy=ContentsMode.HEAD, value=find_head_n(texts, budget), fell_back=True)
        n = find_head_n(texts, budget)
        logger.debug("Budget decision", strategy="head", lines=n, budget=budget)
        return BudgetDecision(strategy=ContentsMode.HEAD, value=n)


class Truncator:
    """Apply a BudgetDecision to individual files."""

    def __init__(self, decision: BudgetDecision) -> None:
        self.decision = decision

    def apply(self, text: str) -> tuple[str, TruncationInfo]:
        """Cut one file's content according to the decision.

        Args:
            text (str): the full content of the file

        Returns:
            tuple[str, TruncationInfo]: the kept text and what was left out
        """
        total_lines = len(split_lines(text))
        total_bytes = len(text.encode("utf-8"))
        if self.decision.strategy is ContentsMode.NEST:
            kept, omitted = nest_text(text, self.decision.value)
        else:
            kept = head_text(text, self.decision.value)
            omitted = total_lines - min(self.decision.value, total_lines)
        info = TruncationInfo(
            truncated=omitted > 0,
            total_lines=total_lines,
            total_bytes=total_bytes,
            shown_lines=total_lines - omitted,
            shown_bytes=len(kept.encode("utf-8")),
            truncate_type=TruncateType.LINES if omitted else TruncateType.NONE,
            omitted_lines=omitted,
        )
        return kept, info


def truncation_message(info: TruncationInfo) -> str:
    """Describe how content was truncated.

    Args:
        info (TruncationInfo): the truncation record of a file

    Returns:
        str: e.g. "[Content truncated: showing first 50 of 100 lines]"
    """
    match info.truncate_type:
        case TruncateType.LINES:
            return f"[Content truncated: showing first {info.shown_lines} of {info.total_lines} lines]"
        case TruncateType.BYTES:
            return f"[Content truncated: showing first {info.shown_bytes} of {info.total_bytes} bytes]"
        case TruncateType.BOTH:
            return (
                f"[Content truncated: showing first {info.shown_lines} of {info.total_lines} lines, "
                f"{info.shown_bytes} of {info.total_bytes} bytes]"
            )
        case _:
            return "[Content truncated]"
