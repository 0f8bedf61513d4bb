"""Vector store backends.

Two implementations of the ``VectorStore`` protocol:
- ChromaVectorStore: Chroma v2 REST API over httpx
- InMemoryVectorStore: process-local dict with numpy cosine search

Both reject ``delete_by_metadata`` with an empty filter, so a caller bug can
never wipe a whole collection.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

import httpx
import numpy as np
import structlog

from coderag.config.models import VectorStoreConfig
from coderag.core.errors import VectorStoreError
from coderag.index.models import VectorEntry

log = structlog.get_logger(__name__)

Scalar = str | int | float | bool


@runtime_checkable
class VectorStore(Protocol):
    """Collection lifecycle, batched upsert, similarity search, delete, count."""

    def ensure_collection(self, name: str) -> None: ...

    def upsert(self, name: str, entries: Sequence[VectorEntry]) -> None: ...

    def query(
        self,
        name: str,
        vector: Sequence[float],
        k: int,
        where: Mapping[str, Scalar] | None = None,
    ) -> list[VectorEntry]:
        """Nearest entries ordered by the store's distance (closest first)."""
        ...

    def delete_by_ids(self, name: str, ids: Sequence[str]) -> None: ...

    def delete_by_metadata(self, name: str, where: Mapping[str, Scalar]) -> None: ...

    def count(self, name: str) -> int: ...

    def clear_cache(self) -> None: ...


def sanitize_metadata(metadata: Mapping[str, Any]) -> dict[str, Scalar]:
    """Drop None values and JSON-encode anything that is not a scalar."""
    clean: dict[str, Scalar] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            clean[key] = value
        else:
            clean[key] = json.dumps(value, sort_keys=True, default=str)
    return clean


def _matches(metadata: Mapping[str, Any], where: Mapping[str, Scalar] | None) -> bool:
    if not where:
        return True
    return all(metadata.get(k) == v for k, v in where.items())


# =============================================================================
# Chroma
# =============================================================================


class ChromaVectorStore:
    """Chroma v2 REST client.

    Collection name to id lookups are cached; ``clear_cache`` drops the
    cache so a collection recreated out-of-band is found again.
    """

    def __init__(self, config: VectorStoreConfig, *, client: httpx.Client | None = None) -> None:
        self._distance = config.distance_function
        self._prefix = f"/api/v2/tenants/{config.tenant}/databases/{config.database}/collections"
        self._client = client or httpx.Client(
            base_url=config.url.rstrip("/"),
            timeout=httpx.Timeout(config.read_timeout_sec, connect=config.connect_timeout_sec),
        )
        self._ids: dict[str, str] = {}
        self._lock = threading.Lock()

    def close(self) -> None:
        self._client.close()

    def clear_cache(self) -> None:
        with self._lock:
            self._ids.clear()

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    def _call(self, operation: str, method: str, path: str, body: dict[str, Any] | None = None) -> Any:
        try:
            response = self._client.request(method, f"{self._prefix}{path}", json=body)
        except httpx.HTTPError as e:
            raise VectorStoreError.request_failed(operation, str(e)) from e
        if response.status_code >= 400:
            raise VectorStoreError.bad_status(operation, response.status_code, response.text)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise VectorStoreError.request_failed(operation, "invalid JSON response") from e

    def _collection_id(self, name: str) -> str:
        with self._lock:
            cached = self._ids.get(name)
        if cached is not None:
            return cached
        try:
            payload = self._call("get_collection", "GET", f"/{name}")
        except VectorStoreError as e:
            if e.details.get("status") == 404:
                raise VectorStoreError.collection_not_found(name) from e
            raise
        return self._remember(name, payload)

    def _remember(self, name: str, payload: Any) -> str:
        collection_id = payload.get("id") if isinstance(payload, dict) else None
        if not collection_id:
            raise VectorStoreError.collection_not_found(name)
        with self._lock:
            self._ids[name] = str(collection_id)
        return str(collection_id)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def ensure_collection(self, name: str) -> None:
        payload = self._call(
            "ensure_collection",
            "POST",
            "",
            {"name": name, "metadata": {"hnsw:space": self._distance}, "get_or_create": True},
        )
        collection_id = self._remember(name, payload)
        log.info("collection_ready", collection=name, collection_id=collection_id)

    def upsert(self, name: str, entries: Sequence[VectorEntry]) -> None:
        if not entries:
            return
        collection_id = self._collection_id(name)
        self._call(
            "upsert",
            "POST",
            f"/{collection_id}/upsert",
            {
                "ids": [e.id for e in entries],
                "embeddings": [list(e.embedding) for e in entries],
                "metadatas": [sanitize_metadata(e.metadata) for e in entries],
                "documents": [e.document for e in entries],
            },
        )
        log.debug("entries_upserted", collection=name, count=len(entries))

    def query(
        self,
        name: str,
        vector: Sequence[float],
        k: int,
        where: Mapping[str, Scalar] | None = None,
    ) -> list[VectorEntry]:
        collection_id = self._collection_id(name)
        body: dict[str, Any] = {
            "query_embeddings": [list(vector)],
            "n_results": k,
            "include": ["metadatas", "documents", "distances"],
        }
        if where:
            body["where"] = _chroma_where(where)
        payload = self._call("query", "POST", f"/{collection_id}/query", body) or {}

        ids = _first_row(payload.get("ids"))
        documents = _first_row(payload.get("documents"))
        metadatas = _first_row(payload.get("metadatas"))
        distances = _first_row(payload.get("distances"))
        results: list[VectorEntry] = []
        for i, entry_id in enumerate(ids):
            results.append(
                VectorEntry(
                    id=entry_id,
                    embedding=[],
                    metadata=dict(metadatas[i] or {}) if i < len(metadatas) else {},
                    document=(documents[i] or "") if i < len(documents) else "",
                    distance=float(distances[i]) if i < len(distances) and distances[i] is not None else None,
                )
            )
        return results

    def delete_by_ids(self, name: str, ids: Sequence[str]) -> None:
        if not ids:
            return
        collection_id = self._collection_id(name)
        self._call("delete_by_ids", "POST", f"/{collection_id}/delete", {"ids": list(ids)})
        log.debug("entries_deleted", collection=name, count=len(ids))

    def delete_by_metadata(self, name: str, where: Mapping[str, Scalar]) -> None:
        if not where:
            raise VectorStoreError.empty_filter(name)
        collection_id = self._collection_id(name)
        self._call("delete_by_metadata", "POST", f"/{collection_id}/delete", {"where": _chroma_where(where)})
        log.debug("entries_deleted_by_metadata", collection=name, where=dict(where))

    def count(self, name: str) -> int:
        collection_id = self._collection_id(name)
        return int(self._call("count", "GET", f"/{collection_id}/count") or 0)


def _chroma_where(where: Mapping[str, Scalar]) -> dict[str, Any]:
    clauses = [{key: {"$eq": value}} for key, value in where.items()]
    return clauses[0] if len(clauses) == 1 else {"$and": clauses}


def _first_row(value: Any) -> list[Any]:
    if isinstance(value, list) and value and isinstance(value[0], list):
        return value[0]
    return []


# =============================================================================
# In-memory
# =============================================================================


class InMemoryVectorStore:
    """Process-local store with cosine distance. Thread-safe."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, VectorEntry]] = {}
        self._lock = threading.Lock()

    def clear_cache(self) -> None:
        pass

    def _collection(self, name: str) -> dict[str, VectorEntry]:
        collection = self._collections.get(name)
        if collection is None:
            raise VectorStoreError.collection_not_found(name)
        return collection

    def ensure_collection(self, name: str) -> None:
        with self._lock:
            self._collections.setdefault(name, {})

    def upsert(self, name: str, entries: Sequence[VectorEntry]) -> None:
        with self._lock:
            collection = self._collection(name)
            for entry in entries:
                collection[entry.id] = VectorEntry(
                    id=entry.id,
                    embedding=list(entry.embedding),
                    metadata=sanitize_metadata(entry.metadata),
                    document=entry.document,
                )

    def query(
        self,
        name: str,
        vector: Sequence[float],
        k: int,
        where: Mapping[str, Scalar] | None = None,
    ) -> list[VectorEntry]:
        with self._lock:
            candidates = [e for e in self._collection(name).values() if _matches(e.metadata, where)]
        if not candidates or k <= 0:
            return []

        matrix = np.asarray([e.embedding for e in candidates], dtype=np.float32)
        query = np.asarray(vector, dtype=np.float32)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        similarity = np.divide(matrix @ query, norms, out=np.zeros(len(candidates), dtype=np.float32), where=norms > 0)
        distances = 1.0 - similarity
        order = np.argsort(distances, kind="stable")[:k]
        return [
            VectorEntry(
                id=candidates[i].id,
                embedding=list(candidates[i].embedding),
                metadata=dict(candidates[i].metadata),
                document=candidates[i].document,
                distance=float(distances[i]),
            )
            for i in order
        ]

    def delete_by_ids(self, name: str, ids: Sequence[str]) -> None:
        with self._lock:
            collection = self._collection(name)
            for entry_id in ids:
                collection.pop(entry_id, None)

    def delete_by_metadata(self, name: str, where: Mapping[str, Scalar]) -> None:
        if not where:
            raise VectorStoreError.empty_filter(name)
        with self._lock:
            collection = self._collection(name)
            doomed = [entry_id for entry_id, e in collection.items() if _matches(e.metadata, where)]
            for entry_id in doomed:
                del collection[entry_id]

    def count(self, name: str) -> int:
        with self._lock:
            return len(self._collection(name))

    def get(self, name: str, where: Mapping[str, Scalar] | None = None) -> list[VectorEntry]:
        """All entries matching a metadata filter, in insertion order."""
        with self._lock:
            return [e for e in self._collection(name).values() if _matches(e.metadata, where)]
