"""Canonical exclude rules shared by discovery, eligibility and the watcher.

PRUNABLE_DIRS: directory names never descended into or watched.
    - VCS internals, IDE metadata, build outputs, dependency trees
    - Hidden directories are pruned separately (see is_prunable_dir)

ARTIFACT_PATH_MARKERS: path fragments that disqualify a file wherever they
appear in its path, including above the scanned root.
"""

from __future__ import annotations

from coderag.config.constants import CONFIG_DIR_NAME

PRUNABLE_DIRS: frozenset[str] = frozenset(
    (
        # VCS internals
        ".git",
        ".svn",
        ".hg",
        # IDE metadata
        ".idea",
        ".vscode",
        # Build outputs (Maven, Gradle)
        "target",
        "build",
        ".gradle",
        # Dependencies
        "node_modules",
        # Test sources
        "test",
        # CodeRAG data
        CONFIG_DIR_NAME,
    )
)

ARTIFACT_PATH_MARKERS: tuple[str, ...] = (
    "/target/",
    "/build/",
    "/.git/",
    "/.idea/",
    "/node_modules/",
)


def is_prunable_dir(name: str) -> bool:
    """True if a directory with this name is never scanned or watched."""
    return name in PRUNABLE_DIRS or name.startswith(".")
