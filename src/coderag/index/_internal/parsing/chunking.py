"""Content-addressed segment ids and size-bounded chunking.

Ids take the form ``path:startLine:KIND:name:checksum`` where checksum is the
first 8 hex chars of the SHA-256 of the exact segment text. Oversized
segments are split into overlapping windows; the last window always reaches
the end of the original text.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import replace

from coderag.config.constants import ANONYMOUS_NAME, CHECKSUM_HEX_LENGTH, CHUNK_ID_SUFFIX
from coderag.index.models import CodeSegment, SegmentKind

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def content_checksum(content: str) -> str:
    """First 8 hex chars of the SHA-256 digest of content."""
    digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
    return digest[:CHECKSUM_HEX_LENGTH]


def sanitize_name(name: str | None) -> str:
    if not name:
        return ANONYMOUS_NAME
    return _UNSAFE_NAME_CHARS.sub("_", name)


def make_base_id(relative_path: str, start_line: int, kind: SegmentKind, name: str | None) -> str:
    return f"{relative_path}:{start_line}:{kind.value}:{sanitize_name(name)}"


def finalize_id(base_id: str, content: str) -> str:
    return f"{base_id}:{content_checksum(content)}"


def split_windows(length: int, max_length: int, overlap: int) -> list[tuple[int, int]]:
    """Compute [start, end) windows covering ``length`` characters.

    Consecutive windows share ``overlap`` characters. An overlap that is not
    smaller than the window is reduced to a third of it so the walk always
    advances.
    """
    if length <= 0 or max_length <= 0:
        return []
    if overlap >= max_length:
        overlap = max_length // 3

    windows: list[tuple[int, int]] = []
    pos = 0
    while pos < length:
        end = min(pos + max_length, length)
        windows.append((pos, end))
        if end == length:
            break
        pos = end - overlap
    return windows


def split_segment(segment: CodeSegment, base_id: str, max_length: int, overlap: int) -> list[CodeSegment]:
    """Split an oversized segment into chunk segments.

    Segments within the limit are returned unchanged as a single-item list.
    Blank chunks are dropped.
    """
    content = segment.content
    if len(content) <= max_length:
        return [segment]

    windows = split_windows(len(content), max_length, overlap)
    original_id = finalize_id(base_id, content)
    chunks: list[CodeSegment] = []
    for i, (start, end) in enumerate(windows):
        text = content[start:end]
        if not text.strip():
            continue
        chunks.append(
            replace(
                segment,
                id=finalize_id(f"{base_id}{CHUNK_ID_SUFFIX}{i}", text),
                content=text,
                content_checksum=content_checksum(text),
                is_sub_chunk=True,
                original_segment_id=original_id,
                chunk_number=i,
                total_chunks=len(windows),
            )
        )
    return chunks
