"""
TTL cache for API key validation results.

Cache faults never reach callers: ``try_get`` degrades to a miss and
``try_set``/``try_delete`` to a no-op, each logging a warning.
"""

from __future__ import annotations

import json
import threading
import time
from collections import OrderedDict
from typing import Any, Optional, Protocol

import redis

import memgraph.config as config

logger = config.logger


class KeyCache(Protocol):
    def get(self, key: str) -> Optional[dict]: ...

    def set(self, key: str, value: dict, ttl_seconds: int) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyCache:
    """Process-local cache with per-entry expiry and a bounded entry count."""

    def __init__(self, max_entries: int = 10000):
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, tuple[float, dict]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[dict]:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= now:
                self._entries.pop(key, None)
                return None
            return value

    def set(self, key: str, value: dict, ttl_seconds: int) -> None:
        expires_at = time.monotonic() + ttl_seconds
        with self._lock:
            self._entries[key] = (expires_at, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class RedisKeyCache:
    """Redis-backed cache; values are stored as JSON with SETEX."""

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyCache":
        return cls(redis.from_url(url, socket_timeout=1.0, socket_connect_timeout=1.0))

    def get(self, key: str) -> Optional[dict]:
        raw = self.client.get(key)
        if not raw:
            return None
        return json.loads(raw)

    def set(self, key: str, value: dict, ttl_seconds: int) -> None:
        self.client.setex(key, ttl_seconds, json.dumps(value, default=str))

    def delete(self, key: str) -> None:
        self.client.delete(key)


def try_get(cache: KeyCache, key: str) -> Optional[dict]:
    try:
        return cache.get(key)
    except Exception as exc:
        logger.warning("key_cache_read_failed", extra={"error": str(exc)})
        return None


def try_set(cache: KeyCache, key: str, value: dict, ttl_seconds: int) -> None:
    try:
        cache.set(key, value, ttl_seconds)
    except Exception as exc:
        logger.warning("key_cache_write_failed", extra={"error": str(exc)})


def try_delete(cache: KeyCache, key: str) -> None:
    try:
        cache.delete(key)
    except Exception as exc:
        logger.warning("key_cache_delete_failed", extra={"error": str(exc)})


_key_cache: Optional[Any] = None
_key_cache_lock = threading.Lock()


def get_key_cache() -> KeyCache:
    """Return the process-wide cache, building it from REDIS_URL on first use."""
    global _key_cache
    with _key_cache_lock:
        if _key_cache is None:
            if config.REDIS_URL:
                _key_cache = RedisKeyCache.from_url(config.REDIS_URL)
                logger.info("Redis key cache initialized")
            else:
                _key_cache = InMemoryKeyCache(max_entries=config.KEY_CACHE_MAX_ENTRIES)
        return _key_cache


def set_key_cache(cache: Optional[KeyCache]) -> None:
    global _key_cache
    with _key_cache_lock:
        _key_cache = cache
