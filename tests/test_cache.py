import os

os.environ.setdefault("DB_BACKEND", "sqlite")

import json
from types import SimpleNamespace

from memgraph import cache as cache_module
from memgraph.cache import InMemoryKeyCache, RedisKeyCache, try_delete, try_get, try_set


class FakeRedis:
    def __init__(self):
        self.values = {}
        self.ttls = {}

    def get(self, key):
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self.values[key] = value.encode("utf-8")
        self.ttls[key] = ttl

    def delete(self, key):
        self.values.pop(key, None)


class DownRedis:
    def get(self, key):
        raise ConnectionError("redis down")

    def setex(self, key, ttl, value):
        raise ConnectionError("redis down")

    def delete(self, key):
        raise ConnectionError("redis down")


def test_in_memory_entries_expire(monkeypatch):
    clock = [100.0]
    monkeypatch.setattr(cache_module, "time", SimpleNamespace(monotonic=lambda: clock[0]))
    cache = InMemoryKeyCache()
    cache.set("k", {"id": "1"}, ttl_seconds=60)
    assert cache.get("k") == {"id": "1"}
    clock[0] = 161.0
    assert cache.get("k") is None


def test_in_memory_cache_is_bounded():
    cache = InMemoryKeyCache(max_entries=2)
    cache.set("a", {"n": 1}, 60)
    cache.set("b", {"n": 2}, 60)
    cache.set("c", {"n": 3}, 60)
    assert cache.get("a") is None
    assert cache.get("c") == {"n": 3}
    cache.delete("c")
    assert cache.get("c") is None


def test_redis_cache_stores_json_with_ttl():
    client = FakeRedis()
    cache = RedisKeyCache(client)
    cache.set("apikey:abc", {"id": "key-1", "user": {"tier": "FREE"}}, 60)
    assert client.ttls["apikey:abc"] == 60
    assert json.loads(client.values["apikey:abc"]) == {"id": "key-1", "user": {"tier": "FREE"}}
    assert cache.get("apikey:abc")["user"]["tier"] == "FREE"
    cache.delete("apikey:abc")
    assert cache.get("apikey:abc") is None


def test_cache_faults_degrade_quietly():
    cache = RedisKeyCache(DownRedis())
    assert try_get(cache, "k") is None
    try_set(cache, "k", {"id": "1"}, 60)
    try_delete(cache, "k")
