"""
Shared plumbing for the OpenAI-compatible model providers.

Both the embedding and the LLM provider talk JSON over one pooled
``httpx.Client`` and sit behind their own circuit breaker. Failures are
raised as the provider's ``ProviderError`` subclass and never retried here.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional, Type

import httpx

import memgraph.config as config
from memgraph.errors import ProviderError

logger = config.logger


class ProviderCircuitBreaker:
    """Trips after ``failure_threshold`` consecutive failures.

    While tripped, calls are refused for ``cooldown_seconds``; the first
    success afterwards closes it again. Cooldown runs on the monotonic
    clock, reported timestamps are wall-clock epochs.
    """

    def __init__(
        self,
        failure_threshold: int,
        cooldown_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_seconds = max(1, cooldown_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._reopens_at: Optional[float] = None
        self._last_error: Optional[str] = None
        self._last_failure_epoch: Optional[int] = None
        self._last_success_epoch: Optional[int] = None

    def _open_locked(self) -> bool:
        return self._reopens_at is not None and self._clock() < self._reopens_at

    def is_open(self) -> bool:
        with self._lock:
            return self._open_locked()

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._reopens_at = None
            self._last_success_epoch = int(time.time())

    def record_failure(self, error: str) -> None:
        with self._lock:
            self._failures += 1
            self._last_error = error
            self._last_failure_epoch = int(time.time())
            if self._failures >= self.failure_threshold:
                self._reopens_at = self._clock() + self.cooldown_seconds

    def status(self) -> dict:
        with self._lock:
            is_open = self._open_locked()
            return {
                "open": is_open,
                "consecutive_failures": self._failures,
                "cooldown_remaining_seconds": int(self._reopens_at - self._clock()) if is_open else 0,
                "last_error": self._last_error,
                "last_failure_epoch": self._last_failure_epoch,
                "last_success_epoch": self._last_success_epoch,
            }


def error_detail(response: httpx.Response) -> str:
    """Best-effort message from an OpenAI-style error body."""
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"status {response.status_code}"
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return f"status {response.status_code}"


class OpenAICompatibleClient:
    """Base for providers posting JSON to ``{base_url}/<path>``."""

    kind = "model"
    error_class: Type[ProviderError] = ProviderError
    timeout_seconds = 30.0

    def __init__(
        self,
        api_key: Optional[str],
        provider: str,
        base_url: Optional[str],
        client: Optional[httpx.Client],
        breaker: ProviderCircuitBreaker,
    ):
        self.api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self.provider = provider
        self.base_url = (base_url or config.OPENAI_BASE_URL).rstrip("/")
        self.breaker = breaker
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout_seconds),
                limits=httpx.Limits(max_keepalive_connections=10, max_connections=100),
            )
            logger.info("provider_client_opened", extra={"kind": self.kind})
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("provider_client_closed", extra={"kind": self.kind})

    def _post_json(self, path: str, payload: dict, read: Callable[[Any], Any]) -> Any:
        """POST ``payload`` and return ``read(body)``.

        A body that is not JSON or lacks the fields ``read`` expects counts as
        a provider failure, like a transport or HTTP error.
        """
        if self.provider != "openai":
            raise self.error_class(f"Unsupported {self.kind} provider: {self.provider}")
        if not self.api_key:
            raise self.error_class("OPENAI_API_KEY not configured")
        if self.breaker.is_open():
            raise self.error_class("OpenAI API error: circuit breaker open")

        try:
            response = self.client.post(
                f"{self.base_url}/{path}",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
            )
        except httpx.RequestError as exc:
            self.breaker.record_failure(str(exc))
            logger.warning(f"{self.kind}_request_failed", extra={"error": str(exc)})
            raise self.error_class(f"OpenAI API error: {exc}") from exc

        if response.status_code >= 400:
            detail = error_detail(response)
            self.breaker.record_failure(detail)
            logger.warning(f"{self.kind}_request_rejected", extra={"status_code": response.status_code})
            raise self.error_class(f"OpenAI API error: {detail}")

        try:
            result = read(response.json())
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as exc:
            self.breaker.record_failure(f"malformed response: {exc!r}")
            logger.warning(f"{self.kind}_response_malformed", extra={"error": repr(exc)})
            raise self.error_class("OpenAI API error: malformed response") from exc

        self.breaker.record_success()
        return result
