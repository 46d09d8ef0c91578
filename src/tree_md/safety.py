from __future__ import annotations

from typing import TYPE_CHECKING

from tree_md.patterns import PatternSet

if TYPE_CHECKING:
    from tree_md.patterns import RelativePath

SAFETY_PATTERNS_VERSION = 1

SAFETY_PATTERNS: tuple[str, ...] = (
    # environment files
    ".env",
    ".env.*",
    # ssh material, keys and certificates
    ".ssh/**",
    "**/.ssh/**",
    "*.pem",
    "*.key",
    "*.p12",
    "*.pfx",
    "*_rsa",
    "*_dsa",
    "*_ecdsa",
    "*_ed25519",
    "id_*",
    "*.crt",
    "*.cer",
    "*.der",
    "*.keystore",
    "*.jks",
    # credentials and secrets
    "credentials",
    "credentials.*",
    "secrets",
    "secrets.*",
    # build output
    "**/target/**",
    "**/node_modules/**",
    "**/vendor/**",
    "**/dist/**",
    "**/build/**",
    "**/.build/**",
    "**/out/**",
    # package managers
    "**/.npm/**",
    "**/.yarn/**",
    "**/.pnpm-store/**",
    # ide and editors
    "**/.idea/**",
    "**/.vscode/**",
    "*.swp",
    "*.swo",
    "*~",
    # os artifacts
    ".DS_Store",
    "Thumbs.db",
    "desktop.ini",
    # caches
    "**/.cache/**",
    "**/__pycache__/**",
    "*.pyc",
    "**/.mypy_cache/**",
    "**/.pytest_cache/**",
    "**/.ruff_cache/**",
    # version control internals
    "**/.git/**",
    # logs and scratch space
    "**/logs/**",
    "*.log",
    "**/tmp/**",
    "**/temp/**",
)


class SafetyDenylist:
    """Built-in, lowest-precedence exclude patterns protecting secrets and build output.

    Bare names apply at any depth, so "*.pem" also covers "certs/server.pem".
    """

    version = SAFETY_PATTERNS_VERSION

    def __init__(self, patterns: tuple[str, ...] = SAFETY_PATTERNS, *, case_sensitive: bool = True) -> None:
        self.pattern_set = PatternSet(patterns, case_sensitive=case_sensitive)

    def matches(self, path: RelativePath | str) -> bool:
        """Tell whether a relative path falls under the denylist."""
        return self.pattern_set.path_matches(path)

    def __repr__(self) -> str:
        return f"SafetyDenylist(version={self.version}, patterns={len(self.pattern_set)})"
