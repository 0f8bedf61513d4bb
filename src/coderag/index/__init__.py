"""Index module - segmentation and vector-store indexing.

This module provides:
- Segmentation: tree-sitter walk producing content-addressed CodeSegments
- Full reindex: discovery -> segmentation -> embedding -> upsert
- Incremental updates: per-file CREATE/MODIFY/DELETE handling

Public API:
- ``coderag.index.models``: data model
- ``coderag.index.ops``: IndexingOrchestrator
- ``coderag.index.updates``: UpdateOrchestrator

Internal implementations are in ``coderag.index._internal/``.
"""
