import os

os.environ.setdefault("DB_BACKEND", "sqlite")


def test_core_imports():
    import memgraph.models  # noqa: F401
    import memgraph.repositories  # noqa: F401
    import memgraph.services.extraction  # noqa: F401
    import memgraph.services.graph  # noqa: F401
    import app.main  # noqa: F401


def test_core_smoke_lifecycle(tenant, embedding_provider, llm_provider):
    from memgraph.services import extraction, graph, memories

    api_key_id = tenant["api_key_id"]

    stored = memories.create(
        api_key_id,
        memories.MemoryInput(user_id="end-user-1", content="I drink coffee every morning"),
    )
    assert stored["importance"] == 0.5
    assert stored["tags"] == []

    results = memories.search(
        api_key_id,
        "coffee",
        memories.SearchOptions(user_id="end-user-1"),
    )
    assert [result["id"] for result in results] == [stored["id"]]

    llm_provider.result = {
        "entities": [
            {"name": "Alice", "type": "person", "confidence": 0.9},
            {"name": "Acme", "type": "organization"},
        ],
        "relations": [{"source": "alice", "target": "ACME", "type": "works_at", "confidence": 0.8}],
    }
    extracted = extraction.extract_from_text(api_key_id, "end-user-1", "Alice works at Acme")
    assert len(extracted["entities"]) == 2
    assert len(extracted["relations"]) == 1

    alice = next(entity for entity in extracted["entities"] if entity["name"] == "Alice")
    result = graph.traverse(api_key_id, alice["id"])
    assert {node["name"] for node in result["nodes"]} == {"Alice", "Acme"}
    assert len(result["edges"]) == 1
