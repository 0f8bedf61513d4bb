"""External collaborators: embedding gateway and vector store.

``build_embedding_gateway`` and ``build_vector_store`` construct the
configured backend; ``close_backend`` releases whatever HTTP client it holds.
"""

from __future__ import annotations

import contextlib
from concurrent.futures import Executor
from typing import Any

from coderag.backends.embedding import EmbeddingGateway, OllamaEmbeddingGateway
from coderag.backends.vectorstore import ChromaVectorStore, InMemoryVectorStore, VectorStore
from coderag.config.models import EmbeddingConfig, VectorStoreConfig


def build_embedding_gateway(config: EmbeddingConfig, executor: Executor | None = None) -> EmbeddingGateway:
    return OllamaEmbeddingGateway(config, executor=executor)


def build_vector_store(config: VectorStoreConfig) -> VectorStore:
    if config.backend == "memory":
        return InMemoryVectorStore()
    return ChromaVectorStore(config)


def close_backend(backend: object) -> None:
    """Close a gateway or store if it owns a client. Safe to call twice."""
    closer: Any = getattr(backend, "close", None)
    if callable(closer):
        with contextlib.suppress(OSError):
            closer()


__all__ = [
    "ChromaVectorStore",
    "EmbeddingGateway",
    "InMemoryVectorStore",
    "OllamaEmbeddingGateway",
    "VectorStore",
    "build_embedding_gateway",
    "build_vector_store",
    "close_backend",
]
