import os

os.environ.setdefault("DB_BACKEND", "sqlite")

import pytest

from memgraph.errors import ValidationIssue
from memgraph.models import UsageRecord
from memgraph.services import entities as entity_service
from memgraph.services import extraction
from memgraph.services import relations as relation_service
from memgraph.services.extraction import ExtractionOptions


SAMPLE = {
    "entities": [
        {"name": "Alice", "type": "person", "confidence": 0.9, "properties": {"role": "engineer"}},
        {"name": "Acme", "type": "organization", "confidence": 0.8},
        {"name": "Maybe Bob", "type": "person", "confidence": 0.3},
        {"name": "Paris", "type": "place"},
    ],
    "relations": [
        {"source": "alice", "target": "ACME", "type": "works_at", "confidence": 0.95},
        {"source": "Alice", "target": "Paris", "type": "lives_in", "confidence": 0.4},
        {"source": "Alice", "target": "Nowhere", "type": "visited", "confidence": 0.9},
    ],
}


def test_preview_filters_by_confidence_without_persisting(tenant, llm_provider):
    llm_provider.result = SAMPLE
    result = extraction.preview("Alice works at Acme in Paris")

    assert [item["name"] for item in result["entities"]] == ["Alice", "Acme", "Paris"]
    assert result["entities"][2]["confidence"] == 1.0
    assert [item["type"] for item in result["relations"]] == ["works_at", "visited"]
    assert entity_service.list_entities(tenant["api_key_id"]) == []


def test_min_confidence_is_inclusive(tenant, llm_provider):
    llm_provider.result = SAMPLE
    result = extraction.preview("text", ExtractionOptions(min_confidence=0.8))
    assert [item["name"] for item in result["entities"]] == ["Alice", "Acme", "Paris"]

    strict = extraction.preview("text", ExtractionOptions(min_confidence=0.95))
    assert [item["name"] for item in strict["entities"]] == ["Paris"]
    assert [item["type"] for item in strict["relations"]] == ["works_at"]


def test_type_hints_reach_the_provider(tenant, llm_provider):
    extraction.preview(
        "Alice works at Acme",
        ExtractionOptions(entity_types=["person"], relation_types=["works_at"]),
    )
    assert llm_provider.calls == [("Alice works at Acme", ["person"], ["works_at"])]


def test_malformed_items_are_dropped(tenant, llm_provider):
    llm_provider.result = {
        "entities": [{"name": "", "type": "person"}, {"name": "Alice"}, {"name": "Bob", "type": "person"}],
        "relations": [{"source": "Bob", "type": "knows"}],
    }
    result = extraction.preview("text")
    assert [item["name"] for item in result["entities"]] == ["Bob"]
    assert result["relations"] == []


def test_extract_saves_entities_and_resolvable_relations(tenant, llm_provider):
    llm_provider.result = SAMPLE
    api_key_id = tenant["api_key_id"]
    result = extraction.extract_from_text(api_key_id, "end-user-1", "Alice works at Acme in Paris")

    names = {item["name"]: item for item in result["entities"]}
    assert set(names) == {"Alice", "Acme", "Paris"}
    assert names["Alice"]["properties"] == {"role": "engineer"}
    assert names["Alice"]["user_id"] == "end-user-1"

    assert len(result["relations"]) == 1
    works_at = result["relations"][0]
    assert works_at["source_id"] == names["Alice"]["id"]
    assert works_at["target_id"] == names["Acme"]["id"]
    assert works_at["confidence"] == 0.95
    assert len(result["raw_extraction"]["relations"]) == 2

    stored = relation_service.list_relations(api_key_id, "end-user-1")
    assert [relation["id"] for relation in stored] == [works_at["id"]]


def test_repeated_extraction_upserts_entities(tenant, llm_provider):
    llm_provider.result = SAMPLE
    api_key_id = tenant["api_key_id"]
    first = extraction.extract_from_text(api_key_id, "end-user-1", "once")
    second = extraction.extract_from_text(api_key_id, "end-user-1", "twice")

    assert {item["id"] for item in first["entities"]} == {item["id"] for item in second["entities"]}
    assert len(entity_service.list_entities(api_key_id)) == 3


def test_save_to_graph_false_persists_nothing(tenant, llm_provider):
    llm_provider.result = SAMPLE
    result = extraction.extract_from_text(
        tenant["api_key_id"],
        "end-user-1",
        "Alice works at Acme",
        ExtractionOptions(save_to_graph=False),
    )
    assert result["entities"] == []
    assert result["relations"] == []
    assert len(result["raw_extraction"]["entities"]) == 3
    assert entity_service.list_entities(tenant["api_key_id"]) == []


def test_extraction_records_usage(tenant, llm_provider, db_session):
    extraction.extract_from_text(tenant["api_key_id"], "end-user-1", "nothing here")
    extraction.extract_from_text(
        tenant["api_key_id"], "end-user-1", "still nothing", ExtractionOptions(save_to_graph=False)
    )
    records = db_session.query(UsageRecord).filter(UsageRecord.type == "EXTRACTION").all()
    assert len(records) == 2
    assert {record.user_id for record in records} == {tenant["owner_id"]}


def test_extract_from_texts_accumulates(tenant, llm_provider):
    assert extraction.extract_from_texts(tenant["api_key_id"], "end-user-1", []) == {
        "entities": [],
        "relations": [],
        "raw_extraction": {"entities": [], "relations": []},
    }
    assert llm_provider.calls == []

    llm_provider.result = {"entities": [{"name": "Tea", "type": "drink"}], "relations": []}
    result = extraction.extract_from_texts(tenant["api_key_id"], "end-user-1", ["one", "two"])
    assert [call[0] for call in llm_provider.calls] == ["one", "two"]
    assert len(result["entities"]) == 2
    assert len(result["raw_extraction"]["entities"]) == 2


def test_extraction_validates_input(tenant, llm_provider):
    with pytest.raises(ValidationIssue):
        extraction.extract_from_text(tenant["api_key_id"], "end-user-1", "")
    with pytest.raises(ValidationIssue):
        extraction.extract_from_text(tenant["api_key_id"], "", "text")
    with pytest.raises(ValidationIssue):
        extraction.preview("text", ExtractionOptions(min_confidence=2.0))
    assert llm_provider.calls == []
