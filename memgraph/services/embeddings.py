"""
Embedding provider and vector similarity.
"""

from __future__ import annotations

import threading
from typing import List, Optional, Protocol, Sequence

import httpx
import numpy as np

import memgraph.config as config
from memgraph.errors import DimensionMismatch, EmbeddingProviderError
from memgraph.services.providers import OpenAICompatibleClient, ProviderCircuitBreaker


class EmbeddingProvider(Protocol):
    def embed(self, text: str) -> List[float]: ...

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]: ...


class OpenAIEmbeddingProvider(OpenAICompatibleClient):
    kind = "embedding"
    error_class = EmbeddingProviderError
    timeout_seconds = config.EMBEDDING_TIMEOUT_SECONDS

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        breaker: Optional[ProviderCircuitBreaker] = None,
    ):
        super().__init__(
            api_key,
            provider or config.EMBEDDING_PROVIDER,
            base_url,
            client,
            breaker or ProviderCircuitBreaker(
                failure_threshold=config.EMBEDDING_FAILURE_THRESHOLD,
                cooldown_seconds=config.EMBEDDING_COOLDOWN_SECONDS,
            ),
        )
        self.model = model or config.EMBEDDING_MODEL

    def embed(self, text: str) -> List[float]:
        return self._post_json(
            "embeddings",
            {"model": self.model, "input": text},
            lambda body: list(body["data"][0]["embedding"]),
        )

    def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """One request for the whole batch; results come back keyed by ``index``."""
        if not texts:
            return []
        if len(texts) == 1:
            return [self.embed(texts[0])]
        return self._post_json(
            "embeddings",
            {"model": self.model, "input": list(texts)},
            _vectors_in_order,
        )


def _vectors_in_order(body: dict) -> List[List[float]]:
    items = sorted(body["data"], key=lambda item: item.get("index", 0))
    return [list(item["embedding"]) for item in items]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|); 0.0 when either vector has zero magnitude."""
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b))
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    magnitude = float(np.linalg.norm(vec_a) * np.linalg.norm(vec_b))
    if magnitude == 0.0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / magnitude)


_provider: Optional[EmbeddingProvider] = None
_provider_lock = threading.Lock()


def get_embedding_provider() -> EmbeddingProvider:
    global _provider
    with _provider_lock:
        if _provider is None:
            _provider = OpenAIEmbeddingProvider()
        return _provider


def set_embedding_provider(provider: Optional[EmbeddingProvider]) -> None:
    global _provider
    with _provider_lock:
        _provider = provider


def close_embedding_provider() -> None:
    global _provider
    with _provider_lock:
        close = getattr(_provider, "close", None)
        if close is not None:
            close()
        _provider = None
