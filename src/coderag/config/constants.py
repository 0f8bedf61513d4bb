"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable.
These are wire-format details and implementation limits.

For configurable values, see models.py (SegmentationConfig, IndexerConfig, etc.).
"""

# =============================================================================
# Config Location
# =============================================================================

CONFIG_DIR_NAME = ".coderag"
"""Per-root directory holding config.yaml and log files."""

CONFIG_FILE_NAME = "config.yaml"

# =============================================================================
# Segment Identity
# =============================================================================

CHECKSUM_HEX_LENGTH = 8
"""Hex characters of the SHA-256 content digest appended to segment ids."""

CHUNK_ID_SUFFIX = "_chunk"
"""Joined with the chunk index to form a sub-chunk's base id."""

ANONYMOUS_NAME = "anonymous"
"""Name used in ids for segments without a declared name."""

# =============================================================================
# Vector Store Metadata Keys
# =============================================================================
# Keys written into each entry's metadata map. The incremental updater
# deletes by FILE_PATH_KEY, so it must match what the indexer writes.

FILE_PATH_KEY = "filePath"
CONTENT_KEY = "content"

# =============================================================================
# Progress Milestones
# =============================================================================

PROGRESS_STARTED = 0.05
PROGRESS_DISCOVERED = 0.2
PROGRESS_PARSED = 0.5
