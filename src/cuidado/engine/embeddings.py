"""Embedding providers used for dense retrieval."""

from __future__ import annotations

import hashlib
import logging
import math
from collections.abc import Sequence
from typing import Any
from typing import Protocol
from typing import runtime_checkable

from cuidado.config import EmbeddingConfig
from cuidado.engine.llm_adapters import LLMError
from cuidado.engine.llm_adapters import post_json
from cuidado.engine.llm_adapters import run_with_deadline

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when the embedding backend is unreachable or returns garbage."""


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Turns texts into vectors, one per input, in input order."""

    async def embed(self, texts: Sequence[str]) -> list[list[float]]: ...


def _extract_vectors(data: Any) -> list[list[float]] | None:
    # Ollama returns {"embeddings": [...]}; OpenAI-style returns {"data": [{"embedding": ...}]}.
    if not isinstance(data, dict):
        return None
    raw = data.get("embeddings")
    if raw is None and isinstance(data.get("data"), list):
        raw = [
            item.get("embedding") if isinstance(item, dict) else None
            for item in data["data"]
        ]
    if not isinstance(raw, list):
        return None

    vectors: list[list[float]] = []
    for vector in raw:
        if not isinstance(vector, list) or not all(
            isinstance(x, (int, float)) and not isinstance(x, bool) for x in vector
        ):
            return None
        vectors.append([float(x) for x in vector])
    return vectors


class OllamaEmbeddingAdapter(EmbeddingProvider):
    """Ollama ``/api/embed`` adapter (batched input)."""

    def __init__(
        self,
        *,
        model: str = "nomic-embed-text",
        base_url: str = "http://127.0.0.1:11434",
        timeout_seconds: float = 60.0,
    ) -> None:
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        batch = list(texts)
        if not batch:
            return []
        try:
            data = await run_with_deadline(
                post_json,
                f"{self._base_url}/api/embed",
                {"model": self._model, "input": batch},
                timeout_seconds=self._timeout_seconds,
                deadline_seconds=self._timeout_seconds,
            )
        except LLMError as exc:
            raise EmbeddingError(f"embedding backend failed: {exc}") from exc

        vectors = _extract_vectors(data)
        if vectors is None:
            raise EmbeddingError("embedding response has no usable vectors")
        if len(vectors) != len(batch):
            raise EmbeddingError(
                f"embedding count mismatch: expected={len(batch)} got={len(vectors)}"
            )
        logger.debug("embedded texts=%d dim=%d", len(batch), len(vectors[0]))
        return vectors


class NoopEmbeddingAdapter(EmbeddingProvider):
    """Deterministic hashed bag-of-words vectors; no network."""

    def __init__(self, dimensions: int = 64) -> None:
        self._dimensions = dimensions

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._vector(text) for text in texts]

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self._dimensions
        for word in text.lower().split():
            digest = hashlib.sha256(word.encode("utf-8")).digest()
            vector[int.from_bytes(digest[:4], "big") % self._dimensions] += 1.0
        norm = math.sqrt(sum(x * x for x in vector))
        if norm == 0:
            return vector
        return [x / norm for x in vector]


def build_embedding_provider(config: EmbeddingConfig) -> EmbeddingProvider:
    """Create a concrete embedding provider from ``EmbeddingConfig``."""

    provider = config.provider.strip().lower()
    if provider == "ollama":
        return OllamaEmbeddingAdapter(
            model=config.model,
            base_url=config.base_url,
            timeout_seconds=config.timeout_seconds,
        )
    if provider == "noop":
        return NoopEmbeddingAdapter()
    raise ValueError(
        f"Unsupported embedding provider '{config.provider}'. "
        "Supported providers: ollama, noop."
    )
