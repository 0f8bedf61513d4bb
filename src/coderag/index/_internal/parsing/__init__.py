"""Tree-sitter segmentation of source files."""

from coderag.index._internal.parsing.chunking import (
    content_checksum,
    finalize_id,
    make_base_id,
    split_segment,
    split_windows,
)
from coderag.index._internal.parsing.segmenter import JavaSegmenter, WalkContext, compute_fqn

__all__ = [
    "JavaSegmenter",
    "WalkContext",
    "compute_fqn",
    "content_checksum",
    "finalize_id",
    "make_base_id",
    "split_segment",
    "split_windows",
]
