"""Embedding gateway: text to vector.

``embed_batch`` never fails as a whole for per-item problems. A blank text,
a failed request or a malformed response leaves an empty vector at the
affected positions; callers drop those items. The returned list always has
one entry per input.
"""

from __future__ import annotations

import contextvars
from collections.abc import Sequence
from concurrent.futures import Executor
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

from coderag.config.models import EmbeddingConfig
from coderag.core.errors import EmbeddingError

log = structlog.get_logger(__name__)


@runtime_checkable
class EmbeddingGateway(Protocol):
    """Text to vector, single and batch."""

    def embed(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            EmbeddingError: blank input or backend failure.
        """
        ...

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts in order. Failed items are empty lists."""
        ...


class OllamaEmbeddingGateway:
    """Embedding gateway backed by Ollama's ``/api/embed`` endpoint."""

    def __init__(
        self,
        config: EmbeddingConfig,
        *,
        client: httpx.Client | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._model = config.model
        self._batch_size = max(1, config.batch_size)
        self._executor = executor
        self._client = client or httpx.Client(
            base_url=config.base_url.rstrip("/"),
            timeout=httpx.Timeout(config.read_timeout_sec, connect=config.connect_timeout_sec),
        )

    def close(self) -> None:
        self._client.close()

    def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise EmbeddingError.empty_input()
        vectors = self._request([text])
        if len(vectors) != 1 or not vectors[0]:
            raise EmbeddingError.request_failed("empty embedding returned", model=self._model)
        return vectors[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        results: list[list[float]] = [[] for _ in texts]
        pending = [(i, t) for i, t in enumerate(texts) if t and t.strip()]
        if not pending:
            log.warning("embedding_batch_empty", total=len(texts))
            return results

        batches = [pending[i : i + self._batch_size] for i in range(0, len(pending), self._batch_size)]
        log.info(
            "embedding_batch_started",
            texts=len(texts),
            non_blank=len(pending),
            batches=len(batches),
            batch_size=self._batch_size,
        )

        if self._executor is None:
            outcomes = [self._embed_one_batch(n, len(batches), b) for n, b in enumerate(batches, 1)]
        else:
            futures = [
                self._executor.submit(contextvars.copy_context().run, self._embed_one_batch, n, len(batches), b)
                for n, b in enumerate(batches, 1)
            ]
            outcomes = [f.result() for f in futures]

        for batch, vectors in zip(batches, outcomes, strict=True):
            for (index, _), vector in zip(batch, vectors, strict=True):
                results[index] = vector

        missing = sum(1 for v in results if not v)
        log.info("embedding_batch_complete", texts=len(texts), missing=missing)
        return results

    def _embed_one_batch(self, number: int, total: int, batch: list[tuple[int, str]]) -> list[list[float]]:
        texts = [t for _, t in batch]
        try:
            vectors = self._request(texts)
        except EmbeddingError as e:
            log.error("embedding_request_failed", batch=number, of=total, size=len(batch), error=str(e))
            return [[] for _ in batch]

        if len(vectors) != len(batch):
            log.error(
                "embedding_response_mismatch",
                batch=number,
                of=total,
                expected=len(batch),
                actual=len(vectors),
            )
            return [[] for _ in batch]

        for (index, _), vector in zip(batch, vectors, strict=True):
            if not vector:
                log.warning("embedding_missing", batch=number, index=index)
        return vectors

    def _request(self, texts: list[str]) -> list[list[float]]:
        try:
            response = self._client.post("/api/embed", json={"model": self._model, "input": texts})
        except httpx.HTTPError as e:
            raise EmbeddingError.request_failed(str(e), model=self._model) from e
        if response.status_code >= 400:
            raise EmbeddingError.request_failed(
                f"HTTP {response.status_code}",
                model=self._model,
                body=response.text[:500],
            )
        try:
            payload: Any = response.json()
        except ValueError as e:
            raise EmbeddingError.request_failed("invalid JSON response", model=self._model) from e

        embeddings = payload.get("embeddings") if isinstance(payload, dict) else None
        if not isinstance(embeddings, list):
            raise EmbeddingError.request_failed("response has no 'embeddings' list", model=self._model)
        return [[float(x) for x in vec] if isinstance(vec, list) else [] for vec in embeddings]
