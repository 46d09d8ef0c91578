"""Glob compilation and relative path handling.

Patterns follow the usual file-glob rules: `*` and `?` never cross a `/`,
a `**` segment spans any number of directories, `[...]` is a character
class and `{a,b}` an alternation. A pattern without any `/` applies at any
depth and is rewritten to `**/<pattern>` before compilation.
"""

from __future__ import annotations

import glob
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tree_md.exceptions import InvalidPatternError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from pathlib import Path

_GLOB_META = frozenset("*?[{")


@dataclass(frozen=True)
class RelativePath:
    """A path relative to the traversal root, normalized to `/` separators.

    Attributes:
        value: the slash-separated relative path; a trailing `/` marks a directory.
    """

    value: str

    @classmethod
    def from_root(cls, path: Path, root: Path, *, is_dir: bool = False) -> RelativePath | None:
        """Build a RelativePath for `path` under `root`.

        Args:
            path (Path): the absolute (or root-joined) path of the entry
            root (Path): the traversal root
            is_dir (bool): mark the result as a directory

        Returns:
            RelativePath | None: None when `path` is not under `root`
        """
        try:
            rel = path.relative_to(root)
        except ValueError:
            try:
                rel = path.resolve().relative_to(root.resolve())
            except (OSError, ValueError):
                return None
        return cls.from_string(rel.as_posix(), is_dir=is_dir)

    @classmethod
    def from_string(cls, value: str, *, is_dir: bool = False) -> RelativePath:
        """Build a RelativePath from a relative string, normalizing separators."""
        text = value.replace("\\", "/")
        while text.startswith("./"):
            text = text[2:]
        text = text.lstrip("/")
        if text in {"", "."}:
            text = ""
        if is_dir and text and not text.endswith("/"):
            text += "/"
        return cls(text)

    @property
    def match_str(self) -> str:
        """The path without its directory marker, as used for matching."""
        return self.value.rstrip("/")

    @property
    def looks_like_dir(self) -> bool:
        return self.value.endswith("/")

    @property
    def parts(self) -> tuple[str, ...]:
        stripped = self.match_str
        return tuple(stripped.split("/")) if stripped else ()

    @property
    def name(self) -> str:
        parts = self.parts
        return parts[-1] if parts else ""

    @property
    def suffix(self) -> str:
        """Extension of the final component, dot included ("" when none)."""
        name = self.name
        dot = name.rfind(".")
        if dot <= 0 or dot == len(name) - 1:
            return ""
        return name[dot:]

    def as_directory(self) -> RelativePath:
        return RelativePath.from_string(self.value, is_dir=True)

    def ancestors(self) -> Iterator[str]:
        """Yield every proper ancestor directory, outermost first, without trailing `/`."""
        parts = self.parts
        for i in range(1, len(parts)):
            yield "/".join(parts[:i])

    def __str__(self) -> str:
        return self.value


def normalize_globs(globs: Sequence[str]) -> list[str]:
    """Normalize a sequence of path glob patterns.

    Strips whitespace, drops empty entries and replaces backslashes with
    forward slashes.

    Args:
        globs (Sequence[str]): the glob patterns to normalize

    Returns:
        list[str]: the normalized glob patterns
    """
    out: list[str] = []
    for g in globs:
        g2 = (g or "").strip()
        if not g2:
            continue
        out.append(g2.replace("\\", "/"))
    return out


def normalize_pattern(pattern: str) -> str:
    """Make a pattern without a path separator apply at any depth.

    Args:
        pattern (str): a single glob pattern, e.g. "*.rs" or "src/*.go"

    Returns:
        str: "**/*.rs" for "*.rs"; patterns containing "/" are returned unchanged
    """
    if "/" in pattern:
        return pattern
    return f"**/{pattern}"


def expand_braces(pattern: str) -> list[str]:
    """Expand `{a,b}` alternations into plain glob patterns.

    Args:
        pattern (str): the pattern to expand

    Raises:
        InvalidPatternError: if braces are unbalanced

    Returns:
        list[str]: one pattern per alternative (the pattern itself when it has no braces)
    """
    start = -1
    depth = 0
    for i, ch in enumerate(pattern):
        if ch == "{":
            if depth == 0:
                start = i
            depth += 1
        elif ch == "}":
            if depth == 0:
                raise InvalidPatternError(pattern=pattern, reason="unmatched '}'")
            depth -= 1
            if depth == 0:
                head, body, tail = pattern[:start], pattern[start + 1 : i], pattern[i + 1 :]
                expanded: list[str] = []
                for alternative in _split_alternatives(body):
                    expanded.extend(expand_braces(head + alternative + tail))
                return expanded
    if depth:
        raise InvalidPatternError(pattern=pattern, reason="unclosed '{'")
    return [pattern]


def _split_alternatives(body: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in body:
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        current.append(ch)
    parts.append("".join(current))
    return parts


def _check_character_classes(pattern: str) -> None:
    i = 0
    while i < len(pattern):
        if pattern[i] != "[":
            i += 1
            continue
        j = i + 1
        if j < len(pattern) and pattern[j] in "!^":
            j += 1
        if j < len(pattern) and pattern[j] == "]":
            j += 1
        while j < len(pattern) and pattern[j] != "]":
            if pattern[j] == "/":
                raise InvalidPatternError(pattern=pattern, reason="'/' inside character class")
            j += 1
        if j >= len(pattern):
            raise InvalidPatternError(pattern=pattern, reason="unclosed character class '['")
        i = j + 1


def compile_glob(pattern: str, *, case_sensitive: bool = True) -> list[re.Pattern[str]]:
    """Compile one (already normalized) glob into regular expressions.

    Args:
        pattern (str): the glob pattern
        case_sensitive (bool): whether matching is case sensitive

    Raises:
        InvalidPatternError: if the glob syntax is malformed

    Returns:
        list[re.Pattern[str]]: one compiled expression per brace alternative
    """
    flags = 0 if case_sensitive else re.IGNORECASE
    compiled: list[re.Pattern[str]] = []
    for alternative in expand_braces(pattern):
        _check_character_classes(alternative)
        source = glob.translate(alternative, recursive=True, include_hidden=True, seps="/")
        try:
            compiled.append(re.compile(source, flags))
        except re.error as e:
            raise InvalidPatternError(pattern=pattern, reason=str(e)) from e
    return compiled


def has_glob_meta(segment: str) -> bool:
    return any(ch in _GLOB_META for ch in segment)


class PatternSet:
    """A compiled set of glob patterns sharing one case-sensitivity setting.

    A path matches when any pattern matches the path itself or one of its
    ancestor directories, so a pattern naming a directory also covers the
    whole subtree below it.
    """

    def __init__(
        self,
        patterns: Sequence[str],
        *,
        case_sensitive: bool = True,
        normalize: bool = True,
    ) -> None:
        raw = normalize_globs(patterns)
        self.patterns: tuple[str, ...] = tuple(
            (normalize_pattern(p) if normalize else p).lstrip("/") or p for p in raw
        )
        self.case_sensitive = case_sensitive
        self._anchored = tuple(p for p, orig in zip(self.patterns, raw, strict=True) if "/" in orig)
        self._regexes: tuple[re.Pattern[str], ...] = tuple(
            rx for p in self.patterns for rx in compile_glob(p, case_sensitive=case_sensitive)
        )

    def __bool__(self) -> bool:
        return bool(self._regexes)

    def __len__(self) -> int:
        return len(self.patterns)

    def __repr__(self) -> str:
        return f"PatternSet({list(self.patterns)!r}, case_sensitive={self.case_sensitive})"

    def _match_text(self, text: str) -> bool:
        return any(rx.match(text) for rx in self._regexes)

    def path_matches(self, path: RelativePath | str) -> bool:
        """Tell whether `path` (or one of its ancestors) matches any pattern.

        Args:
            path (RelativePath | str): the relative path; a trailing "/" marks a directory

        Returns:
            bool: True when a pattern matches
        """
        rel = path if isinstance(path, RelativePath) else RelativePath.from_string(path)
        if not self._regexes or not rel.parts:
            return False
        text = rel.match_str
        if self._match_text(text):
            return True
        if rel.looks_like_dir and self._match_text(text + "/"):
            return True
        return any(self._match_text(a) or self._match_text(a + "/") for a in rel.ancestors())

    def literal_prefixes(self) -> list[str]:
        """Return the literal leading directories of the anchored patterns.

        "vendor/**/*.py" yields "vendor"; "src/app/*.rs" yields "src/app";
        recursive (normalized) patterns yield nothing.
        """
        prefixes: list[str] = []
        for pattern in self._anchored:
            for alternative in expand_braces(pattern):
                segments = alternative.strip("/").split("/")[:-1]
                literal: list[str] = []
                for segment in segments:
                    if has_glob_meta(segment):
                        break
                    literal.append(segment)
                if literal:
                    prefixes.append("/".join(literal))
        return prefixes
