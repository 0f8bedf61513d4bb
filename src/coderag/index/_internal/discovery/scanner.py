"""Source discovery: walk a tree and return eligible files."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from coderag.core.errors import IndexingError
from coderag.core.excludes import is_prunable_dir
from coderag.index._internal.discovery.eligibility import EligibilityFilter

log = structlog.get_logger(__name__)


def _walk_with_pruning(root: Path) -> list[Path]:
    """Walk all files, pruning excluded and hidden dirs. Sorted per directory."""
    results: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not is_prunable_dir(d))
        base = Path(dirpath)
        for filename in sorted(filenames):
            if filename.startswith("."):
                continue
            results.append(base / filename)
    return results


@dataclass
class DiscoveryResult:
    files: list[Path] = field(default_factory=list)
    skipped: int = 0


@dataclass
class SourceDiscovery:
    """Finds the files under a root that the segmenter should parse."""

    eligibility: EligibilityFilter = field(default_factory=EligibilityFilter)

    def discover(self, root: Path) -> DiscoveryResult:
        """Return eligible files in deterministic (walk, then name) order.

        Raises:
            IndexingError: root is not a directory.
        """
        if not root.is_dir():
            raise IndexingError.not_a_directory(str(root))

        result = DiscoveryResult()
        for path in _walk_with_pruning(root):
            if not self.eligibility.has_supported_extension(path):
                continue
            if self.eligibility.is_eligible(path):
                result.files.append(path)
            else:
                result.skipped += 1

        log.info(
            "source_discovery_complete",
            root=str(root),
            eligible=len(result.files),
            skipped=result.skipped,
        )
        return result
