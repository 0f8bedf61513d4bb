"""Eligibility pre-filter applied before a file reaches the segmenter.

A file is rejected when:
- its name marks it as a test or generated source
- its path runs through a build-artifact or VCS directory
- it exceeds the size ceiling
- its leading lines contain syntax the segmenter does not support

Rejection is not an error: callers skip the file with an empty result.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from itertools import islice
from pathlib import Path

import structlog

from coderag.config.models import SegmentationConfig
from coderag.core.excludes import ARTIFACT_PATH_MARKERS

log = structlog.get_logger(__name__)

_UNSUPPORTED_TOKENS = ("record ", "sealed ", "permits ", "yield ")
_UNNAMED_VARIABLE = re.compile(r"\b_\s*[,;)]")


def is_test_or_generated_name(file_name: str) -> bool:
    return "Test" in file_name or "test" in file_name or file_name.startswith("Generated")


def has_artifact_marker(path: Path) -> bool:
    posix = "/" + path.as_posix().lstrip("/")
    return any(marker in posix for marker in ARTIFACT_PATH_MARKERS)


def find_unsupported_syntax(preview: str) -> str | None:
    """Return the first unsupported-syntax marker found in preview text."""
    for token in _UNSUPPORTED_TOKENS:
        if token in preview:
            return token.strip()
    if "switch (" in preview and "->" in preview:
        return "switch-arrow"
    if _UNNAMED_VARIABLE.search(preview):
        return "unnamed-variable"
    return None


@dataclass(frozen=True)
class EligibilityFilter:
    """Decides whether a file should be handed to the segmenter."""

    max_file_size_bytes: int = 1024 * 1024
    preview_lines: int = 50
    extensions: tuple[str, ...] = (".java",)

    @classmethod
    def from_config(cls, config: SegmentationConfig, extensions: list[str] | None = None) -> EligibilityFilter:
        return cls(
            max_file_size_bytes=config.max_file_size_bytes,
            preview_lines=config.preview_lines,
            extensions=tuple(extensions) if extensions else (".java",),
        )

    def has_supported_extension(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    def is_eligible(self, path: Path) -> bool:
        if not self.has_supported_extension(path):
            return False
        if is_test_or_generated_name(path.name) or has_artifact_marker(path):
            log.debug("file_ineligible", path=str(path), reason="excluded_path")
            return False

        try:
            size = path.stat().st_size
        except OSError as e:
            # Unreadable files are left to the parser, which reports them
            log.debug("eligibility_precheck_failed", path=str(path), error=str(e))
            return True
        if size > self.max_file_size_bytes:
            log.debug("file_ineligible", path=str(path), reason="too_large", size=size)
            return False

        try:
            with path.open(encoding="utf-8", errors="replace") as f:
                preview = "".join(islice(f, self.preview_lines))
        except OSError as e:
            log.debug("eligibility_precheck_failed", path=str(path), error=str(e))
            return True

        marker = find_unsupported_syntax(preview)
        if marker is not None:
            log.debug("file_ineligible", path=str(path), reason="unsupported_syntax", marker=marker)
            return False
        return True
