import os

os.environ.setdefault("DB_BACKEND", "sqlite")

import json

import httpx
import pytest

from memgraph.errors import DimensionMismatch, EmbeddingProviderError
from memgraph.services.embeddings import OpenAIEmbeddingProvider, cosine_similarity
from memgraph.services.providers import ProviderCircuitBreaker


def _provider(handler, **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    kwargs.setdefault("api_key", "sk-test")
    kwargs.setdefault("provider", "openai")
    return OpenAIEmbeddingProvider(client=client, **kwargs)


def test_cosine_similarity_basics():
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_cosine_similarity_is_symmetric_and_scale_invariant():
    a = [0.3, -1.2, 4.0]
    b = [2.0, 0.5, -0.7]
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
    assert cosine_similarity([value * 10 for value in a], b) == pytest.approx(cosine_similarity(a, b))
    assert -1.0 <= cosine_similarity(a, b) <= 1.0


def test_cosine_similarity_rejects_length_mismatch():
    with pytest.raises(DimensionMismatch):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


def test_embed_posts_model_and_input():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.1, 0.2]}]})

    provider = _provider(handler, model="text-embedding-3-small", base_url="https://api.test/v1")
    assert provider.embed("hello") == [0.1, 0.2]
    assert seen["url"] == "https://api.test/v1/embeddings"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"] == {"model": "text-embedding-3-small", "input": "hello"}


def test_embed_batch_orders_by_index_and_uses_one_request():
    requests = []

    def handler(request):
        requests.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "data": [
                    {"index": 1, "embedding": [2.0]},
                    {"index": 0, "embedding": [1.0]},
                    {"index": 2, "embedding": [3.0]},
                ]
            },
        )

    provider = _provider(handler)
    assert provider.embed_batch(["a", "b", "c"]) == [[1.0], [2.0], [3.0]]
    assert len(requests) == 1
    assert requests[0]["input"] == ["a", "b", "c"]


def test_embed_batch_empty_makes_no_request():
    def handler(request):
        raise AssertionError("no request expected")

    assert _provider(handler).embed_batch([]) == []


def test_embed_batch_single_text_uses_single_input():
    requests = []

    def handler(request):
        requests.append(json.loads(request.content))
        return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.5]}]})

    assert _provider(handler).embed_batch(["only"]) == [[0.5]]
    assert requests[0]["input"] == "only"


def test_missing_api_key_is_reported():
    provider = _provider(lambda request: httpx.Response(200), api_key="")
    with pytest.raises(EmbeddingProviderError, match="OPENAI_API_KEY not configured"):
        provider.embed("hello")


def test_unsupported_provider_is_reported():
    provider = _provider(lambda request: httpx.Response(200), provider="cohere")
    with pytest.raises(EmbeddingProviderError, match="Unsupported embedding provider: cohere"):
        provider.embed("hello")


def test_api_error_detail_is_surfaced():
    def handler(request):
        return httpx.Response(429, json={"error": {"message": "Rate limit exceeded"}})

    with pytest.raises(EmbeddingProviderError, match="OpenAI API error: Rate limit exceeded"):
        _provider(handler).embed("hello")


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"unexpected": True}),
        httpx.Response(200, json={"data": []}),
        httpx.Response(200, text="not json"),
    ],
)
def test_malformed_success_body_is_a_provider_error(response):
    breaker = ProviderCircuitBreaker(failure_threshold=5, cooldown_seconds=60)
    provider = _provider(lambda request: response, breaker=breaker)

    with pytest.raises(EmbeddingProviderError, match="OpenAI API error: malformed response"):
        provider.embed("hello")
    status = breaker.status()
    assert status["consecutive_failures"] == 1
    assert status["last_success_epoch"] is None


def test_malformed_batch_body_is_a_provider_error():
    provider = _provider(lambda request: httpx.Response(200, json={"data": [{"index": 0}]}))
    with pytest.raises(EmbeddingProviderError, match="malformed response"):
        provider.embed_batch(["a", "b"])


def test_circuit_breaker_opens_after_threshold():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, json={"error": {"message": "boom"}})

    breaker = ProviderCircuitBreaker(failure_threshold=2, cooldown_seconds=60)
    provider = _provider(handler, breaker=breaker)
    for _ in range(2):
        with pytest.raises(EmbeddingProviderError):
            provider.embed("hello")
    assert breaker.status()["open"] is True

    with pytest.raises(EmbeddingProviderError, match="circuit breaker open"):
        provider.embed("hello")
    assert len(calls) == 2


def test_breaker_resets_on_success():
    breaker = ProviderCircuitBreaker(failure_threshold=3, cooldown_seconds=60)
    breaker.record_failure("one")
    breaker.record_success()
    status = breaker.status()
    assert status["consecutive_failures"] == 0
    assert status["open"] is False
    assert status["last_success_epoch"] is not None


def test_breaker_closes_after_cooldown():
    now = [0.0]
    breaker = ProviderCircuitBreaker(failure_threshold=1, cooldown_seconds=30, clock=lambda: now[0])
    breaker.record_failure("timeout")
    assert breaker.is_open() is True
    assert breaker.status()["cooldown_remaining_seconds"] == 30
    now[0] = 31.0
    assert breaker.is_open() is False
    assert breaker.status()["last_error"] == "timeout"
