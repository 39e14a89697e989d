import os

os.environ.setdefault("DB_BACKEND", "sqlite")
os.environ.setdefault("EMBEDDING_PROVIDER", "openai")
os.environ.setdefault("LLM_PROVIDER", "openai")

import re
import uuid

import pytest

from memgraph.cache import InMemoryKeyCache, set_key_cache
from memgraph.db import DB, bind, build_engine
from memgraph.models import Base, Tier
from memgraph.services import accounts, api_keys
from memgraph.services.embeddings import set_embedding_provider
from memgraph.services.llm import set_llm_provider


VOCABULARY = (
    "coffee",
    "tea",
    "python",
    "graph",
    "memory",
    "music",
    "travel",
    "paris",
)


class FakeEmbeddingProvider:
    """Bag-of-words vectors over a fixed vocabulary; explicit vectors win."""

    def __init__(self, vectors=None):
        self.vectors = dict(vectors or {})
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        if text in self.vectors:
            return list(self.vectors[text])
        words = re.findall(r"[a-z]+", text.lower())
        return [float(words.count(term)) for term in VOCABULARY]

    def embed_batch(self, texts):
        return [self.embed(text) for text in texts]


class FakeLLMProvider:
    def __init__(self, result=None):
        self.result = result or {"entities": [], "relations": []}
        self.calls = []

    def extract_entities_and_relations(self, text, entity_types=None, relation_types=None):
        self.calls.append((text, entity_types, relation_types))
        return {
            "entities": [dict(item) for item in self.result.get("entities", [])],
            "relations": [dict(item) for item in self.result.get("relations", [])],
        }


@pytest.fixture
def server_db(tmp_path, monkeypatch):
    db_path = tmp_path / "memgraph.sqlite"
    engine = build_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    previous_engine = DB.engine
    previous_session = DB.SessionLocal
    bind(engine)
    monkeypatch.setattr(api_keys, "_schedule_touch", api_keys._touch_last_used)
    try:
        yield engine
    finally:
        DB.engine = previous_engine
        DB.SessionLocal = previous_session
        engine.dispose()


@pytest.fixture
def db_session(server_db):
    db = DB.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def key_cache():
    cache = InMemoryKeyCache()
    set_key_cache(cache)
    try:
        yield cache
    finally:
        set_key_cache(None)


@pytest.fixture
def embedding_provider():
    provider = FakeEmbeddingProvider()
    set_embedding_provider(provider)
    try:
        yield provider
    finally:
        set_embedding_provider(None)


@pytest.fixture
def llm_provider():
    provider = FakeLLMProvider()
    set_llm_provider(provider)
    try:
        yield provider
    finally:
        set_llm_provider(None)


@pytest.fixture
def make_tenant(server_db):
    """Create an account with one API key; returns ids plus the raw key."""

    def _make(tier=Tier.FREE, email=None, key_name="default"):
        account = accounts.create_account(
            email or f"{uuid.uuid4().hex[:12]}@example.com",
            name="Test Account",
            tier=tier,
        )
        key = api_keys.create(account["id"], key_name)
        return {
            "owner_id": account["id"],
            "api_key_id": key["id"],
            "api_key_name": key["name"],
            "key": key["key"],
        }

    return _make


@pytest.fixture
def tenant(make_tenant):
    return make_tenant()
