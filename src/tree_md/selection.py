"""Include/exclude decisions for paths met during traversal.

Precedence is expressed as an ordered chain of named rule sources. Each
source returns a `Verdict`; the first source with an opinion decides, and a
path nobody has an opinion on is included.

File chain:      include rules -> vcs ignores -> exclude globs -> safety denylist
Directory chain: vcs ignores -> exclude globs -> safety denylist

The include source only exists when include rules are configured. For files
it is allow-list only: a match includes the file outright, anything else is
excluded. For directories it never excludes; an anchored include pattern
reaching into a directory only shields it from explicit exclude globs and
from the safety denylist.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from tree_md.config import REPO_METADATA_NAME, Selection, Verdict
from tree_md.ignore_rules import IgnoreStack, default_global_ignore_file, find_repository_root
from tree_md.patterns import PatternSet, RelativePath
from tree_md.safety import SafetyDenylist

if TYPE_CHECKING:
    from tree_md.config import MatchSpec


class RuleSource(Protocol):
    """A named source of include/exclude opinions."""

    name: str

    def evaluate_file(self, path: RelativePath) -> Verdict: ...

    def evaluate_directory(self, path: RelativePath) -> Verdict: ...


class IncludeRules:
    """Allow-list built from include globs and include extensions."""

    name = "include"

    def __init__(self, globs: PatternSet, extensions: tuple[str, ...], *, case_sensitive: bool) -> None:
        self.globs = globs
        self.case_sensitive = case_sensitive
        self.extensions = frozenset(extensions if case_sensitive else (e.lower() for e in extensions))
        self._targets = tuple(globs.literal_prefixes())

    def matches(self, path: RelativePath) -> bool:
        suffix = path.suffix if self.case_sensitive else path.suffix.lower()
        if suffix and suffix in self.extensions:
            return True
        return self.globs.path_matches(path)

    def evaluate_file(self, path: RelativePath) -> Verdict:
        return Verdict.INCLUDE if self.matches(path) else Verdict.EXCLUDE

    def evaluate_directory(self, path: RelativePath) -> Verdict:
        return Verdict.NO_OPINION

    def targets_inside(self, path: RelativePath) -> bool:
        """Tell whether an anchored include pattern can match something inside `path`.

        That is the case when the pattern's literal directory prefix lies
        inside `path`, or `path` lies inside that prefix.
        """
        directory = path.match_str
        if not self.case_sensitive:
            directory = directory.lower()
        for target in self._targets:
            candidate = target if self.case_sensitive else target.lower()
            if candidate == directory:
                return True
            if candidate.startswith(directory + "/") or directory.startswith(candidate + "/"):
                return True
        return False


class VcsIgnoreRules:
    """Version-control ignore files, aggregated in an IgnoreStack."""

    name = "vcs-ignore"

    def __init__(self, stack: IgnoreStack) -> None:
        self.stack = stack

    def evaluate_file(self, path: RelativePath) -> Verdict:
        return Verdict.EXCLUDE if self.stack.is_ignored(path) else Verdict.NO_OPINION

    def evaluate_directory(self, path: RelativePath) -> Verdict:
        return Verdict.EXCLUDE if self.stack.is_ignored(path.as_directory()) else Verdict.NO_OPINION


class ExcludeGlobRules:
    """Explicit exclude globs given by the user."""

    name = "exclude"

    def __init__(self, globs: PatternSet, include: IncludeRules | None = None) -> None:
        self.globs = globs
        self.include = include

    def evaluate_file(self, path: RelativePath) -> Verdict:
        return Verdict.EXCLUDE if self.globs.path_matches(path) else Verdict.NO_OPINION

    def evaluate_directory(self, path: RelativePath) -> Verdict:
        if not self.globs.path_matches(path.as_directory()):
            return Verdict.NO_OPINION
        if self.include is not None and self.include.targets_inside(path):
            return Verdict.NO_OPINION
        return Verdict.EXCLUDE


class SafetyRules:
    """The built-in safety denylist."""

    name = "safety"

    def __init__(self, denylist: SafetyDenylist, include: IncludeRules | None = None) -> None:
        self.denylist = denylist
        self.include = include

    def evaluate_file(self, path: RelativePath) -> Verdict:
        return Verdict.EXCLUDE if self.denylist.matches(path) else Verdict.NO_OPINION

    def evaluate_directory(self, path: RelativePath) -> Verdict:
        if not self.denylist.matches(path.as_directory()):
            return Verdict.NO_OPINION
        if self.include is not None and self.include.targets_inside(path):
            return Verdict.NO_OPINION
        return Verdict.EXCLUDE


class SelectionEngine:
    """Compiled rule chain answering `select_file` / `select_directory`.

    Build it with `SelectionEngine.compile`; every pattern is compiled there,
    so malformed globs fail before any traversal starts.
    """

    def __init__(self, sources: list[RuleSource], *, has_includes: bool) -> None:
        self.sources: tuple[RuleSource, ...] = tuple(sources)
        self.has_includes = has_includes

    @classmethod
    def compile(
        cls,
        spec: MatchSpec,
        root: Path,
        *,
        ignore_stack: IgnoreStack | None = None,
        repository_root: Path | None = None,
        skip_hidden: bool = False,
    ) -> SelectionEngine:
        """Compile a MatchSpec into a SelectionEngine.

        Args:
            spec (MatchSpec): the filtering rules
            root (Path): the traversal root
            ignore_stack (IgnoreStack | None): a prebuilt stack; built from disk when None
            repository_root (Path | None): the enclosing repository; detected when None
            skip_hidden (bool): the walker skips hidden entries, so ignore files
                below hidden directories are not collected

        Raises:
            InvalidPatternError: if any include or exclude glob is malformed

        Returns:
            SelectionEngine: the compiled engine
        """
        case_sensitive = spec.case_sensitive
        include_globs = PatternSet(spec.include_glob, case_sensitive=case_sensitive)
        exclude_globs = PatternSet(spec.exclude_glob, case_sensitive=case_sensitive)

        include: IncludeRules | None = None
        if spec.has_includes():
            include = IncludeRules(include_globs, spec.include_ext, case_sensitive=case_sensitive)
        pruning: list[RuleSource] = []
        if exclude_globs:
            pruning.append(ExcludeGlobRules(exclude_globs, include))
        if spec.use_safety:
            pruning.append(SafetyRules(SafetyDenylist(case_sensitive=case_sensitive), include))

        def never_walked(path: RelativePath) -> bool:
            if skip_hidden and path.name.startswith("."):
                return True
            return any(source.evaluate_directory(path) is Verdict.EXCLUDE for source in pruning)

        if ignore_stack is None:
            repo = repository_root if repository_root is not None else find_repository_root(root)
            if spec.respect_vcs_ignores(repo):
                global_file = spec.global_ignore_file or default_global_ignore_file()
                ignore_stack = IgnoreStack.build(
                    root,
                    repository_root=repo,
                    global_ignore_file=global_file,
                    prune=never_walked,
                )

        sources: list[RuleSource] = []
        if include is not None:
            sources.append(include)
        if ignore_stack is not None:
            sources.append(VcsIgnoreRules(ignore_stack))
        sources.extend(pruning)
        return cls(sources, has_includes=spec.has_includes())

    @property
    def source_names(self) -> tuple[str, ...]:
        return tuple(source.name for source in self.sources)

    def select_file(self, path: RelativePath) -> Selection:
        """Decide whether a file is part of the output.

        Args:
            path (RelativePath): the file path relative to the traversal root

        Returns:
            Selection: INCLUDE or EXCLUDE
        """
        for source in self.sources:
            verdict = source.evaluate_file(path)
            if verdict is Verdict.INCLUDE:
                return Selection.INCLUDE
            if verdict is Verdict.EXCLUDE:
                return Selection.EXCLUDE
        return Selection.INCLUDE

    def select_directory(self, path: RelativePath) -> Selection:
        """Decide whether the walker descends into a directory.

        Args:
            path (RelativePath): the directory path relative to the traversal root

        Returns:
            Selection: INCLUDE to descend, PRUNE_DIRECTORY to skip the subtree
        """
        for source in self.sources:
            verdict = source.evaluate_directory(path)
            if verdict is Verdict.INCLUDE:
                return Selection.INCLUDE
            if verdict is Verdict.EXCLUDE:
                return Selection.PRUNE_DIRECTORY
        return Selection.INCLUDE


class RepoBoundaryGuard:
    """Detect nested repositories below the traversal root.

    A nested repository is pruned whatever the ignore settings are, so that a
    separate repository's contents never leak into the output.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def is_boundary(self, directory: Path) -> bool:
        """Tell whether `directory` is a repository of its own (or its metadata).

        Args:
            directory (Path): an absolute directory met during traversal

        Returns:
            bool: True when the subtree must be skipped
        """
        resolved = directory.resolve()
        if resolved == self.root:
            return False
        if directory.name == REPO_METADATA_NAME:
            return True
        if (directory / REPO_METADATA_NAME).exists():
            return True
        return is_bare_repository(directory)


def is_bare_repository(directory: Path) -> bool:
    """Heuristic check for a bare repository layout (HEAD, objects/, refs/)."""
    return (
        (directory / "HEAD").is_file()
        and (directory / "objects").is_dir()
        and (directory / "refs").is_dir()
    )
