import os

os.environ.setdefault("DB_BACKEND", "sqlite")

from datetime import date, datetime, timezone

import pytest

from memgraph.errors import NotFoundError, ValidationIssue
from memgraph.repositories import EntityQuery, RelationQuery
from memgraph.services import entities as entity_service
from memgraph.services import relations as relation_service
from memgraph.services.entities import EntityInput
from memgraph.services.relations import RelationInput


def _entity(api_key_id, name, type_="person", user_id="end-user-1", **kwargs):
    return entity_service.create(api_key_id, EntityInput(user_id=user_id, type=type_, name=name, **kwargs))


def _relation(api_key_id, source_id, target_id, type_="knows", user_id="end-user-1", **kwargs):
    return relation_service.create(
        api_key_id,
        RelationInput(user_id=user_id, source_id=source_id, target_id=target_id, type=type_, **kwargs),
    )


def test_create_defaults_confidence(tenant):
    entity = _entity(tenant["api_key_id"], "Alice")
    assert entity["confidence"] == 1.0
    assert entity["properties"] is None


def test_create_always_inserts(tenant):
    first = _entity(tenant["api_key_id"], "Alice")
    second = _entity(tenant["api_key_id"], "Alice")
    assert first["id"] != second["id"]


def test_upsert_matches_name_case_insensitively(tenant):
    api_key_id = tenant["api_key_id"]
    original = entity_service.upsert(
        api_key_id,
        EntityInput(user_id="end-user-1", type="person", name="Alice", properties={"age": 30}, confidence=0.6),
    )
    updated = entity_service.upsert(
        api_key_id,
        EntityInput(user_id="end-user-1", type="person", name="ALICE", properties={"age": 31}, confidence=0.9),
    )
    assert updated["id"] == original["id"]
    assert updated["name"] == "Alice"
    assert updated["properties"] == {"age": 31}
    assert updated["confidence"] == 0.9

    other_type = entity_service.upsert(api_key_id, EntityInput(user_id="end-user-1", type="company", name="alice"))
    other_user = entity_service.upsert(api_key_id, EntityInput(user_id="end-user-2", type="person", name="alice"))
    assert len({original["id"], other_type["id"], other_user["id"]}) == 3


def test_upsert_keeps_properties_when_none_given(tenant):
    api_key_id = tenant["api_key_id"]
    entity_service.upsert(api_key_id, EntityInput(user_id="u", type="person", name="Bob", properties={"k": "v"}))
    again = entity_service.upsert(api_key_id, EntityInput(user_id="u", type="person", name="bob"))
    assert again["properties"] == {"k": "v"}
    assert again["confidence"] == 1.0


def test_create_many_keeps_order_and_dedups(tenant):
    api_key_id = tenant["api_key_id"]
    assert entity_service.create_many(api_key_id, []) == []
    created = entity_service.create_many(
        api_key_id,
        [
            EntityInput(user_id="u", type="person", name="Carol"),
            EntityInput(user_id="u", type="place", name="Paris"),
            EntityInput(user_id="u", type="person", name="carol", confidence=0.4),
        ],
    )
    assert [entity["name"] for entity in created] == ["Carol", "Paris", "Carol"]
    assert created[0]["id"] == created[2]["id"]
    assert created[2]["confidence"] == 0.4


def test_entity_validation(tenant):
    with pytest.raises(ValidationIssue):
        _entity(tenant["api_key_id"], "")
    with pytest.raises(ValidationIssue):
        _entity(tenant["api_key_id"], "Alice", confidence=1.5)


def test_list_and_get_by_type(tenant):
    api_key_id = tenant["api_key_id"]
    _entity(api_key_id, "Alice")
    _entity(api_key_id, "Acme", type_="organization")
    _entity(api_key_id, "Bob", user_id="end-user-2")

    people = entity_service.get_by_type(api_key_id, "end-user-1", "person")
    assert [entity["name"] for entity in people] == ["Alice"]
    everything = entity_service.list_entities(api_key_id, EntityQuery())
    assert len(everything) == 3
    assert len(entity_service.list_entities(api_key_id, EntityQuery(limit=2))) == 2


def test_entities_are_tenant_scoped(make_tenant):
    first = make_tenant()
    second = make_tenant()
    entity = _entity(first["api_key_id"], "Alice")
    assert entity_service.get_by_id(second["api_key_id"], entity["id"]) is None
    assert entity_service.delete(second["api_key_id"], entity["id"]) is False
    assert entity_service.get_by_id(first["api_key_id"], entity["id"])["name"] == "Alice"


def test_delete_entity_removes_touching_relations(tenant):
    api_key_id = tenant["api_key_id"]
    alice = _entity(api_key_id, "Alice")
    bob = _entity(api_key_id, "Bob")
    carol = _entity(api_key_id, "Carol")
    _relation(api_key_id, alice["id"], bob["id"])
    _relation(api_key_id, carol["id"], alice["id"])
    kept = _relation(api_key_id, bob["id"], carol["id"])

    assert entity_service.delete(api_key_id, alice["id"]) is True
    assert entity_service.delete(api_key_id, alice["id"]) is False
    remaining = relation_service.list_relations(api_key_id, "end-user-1")
    assert [relation["id"] for relation in remaining] == [kept["id"]]


def test_owner_level_entity_operations(make_tenant):
    owner = make_tenant()
    stranger = make_tenant()
    alice = _entity(owner["api_key_id"], "Alice")
    _entity(owner["api_key_id"], "Acme", type_="organization")

    listing = entity_service.list_by_user(owner["owner_id"], entity_type="person")
    assert listing["total"] == 1
    assert listing["entities"][0]["id"] == alice["id"]
    assert listing["entities"][0]["api_key_name"] == "default"
    assert entity_service.get_types_by_user(owner["owner_id"]) == ["organization", "person"]

    with pytest.raises(NotFoundError, match="Entity not found"):
        entity_service.delete_owned(stranger["owner_id"], alice["id"])
    entity_service.delete_owned(owner["owner_id"], alice["id"])
    assert entity_service.get_by_id(owner["api_key_id"], alice["id"]) is None


def test_relation_defaults_and_timestamps(tenant):
    api_key_id = tenant["api_key_id"]
    relation = _relation(
        api_key_id,
        "a",
        "b",
        valid_from="2024-01-01T00:00:00Z",
        valid_to=date(2024, 12, 31),
    )
    assert relation["confidence"] == 1.0
    assert relation["valid_from"] == "2024-01-01T00:00:00+00:00"
    assert relation["valid_to"] == "2024-12-31T00:00:00+00:00"

    reversed_window = _relation(
        api_key_id,
        "a",
        "b",
        valid_from=datetime(2025, 1, 1, tzinfo=timezone.utc),
        valid_to=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    assert reversed_window["valid_from"] > reversed_window["valid_to"]

    with pytest.raises(ValidationIssue):
        _relation(api_key_id, "a", "b", valid_from="not a date")


def test_relation_lookups(tenant):
    api_key_id = tenant["api_key_id"]
    ab = _relation(api_key_id, "a", "b", type_="knows")
    ba = _relation(api_key_id, "b", "a", type_="likes")
    _relation(api_key_id, "b", "c", type_="knows")

    assert {relation["id"] for relation in relation_service.get_between(api_key_id, "a", "b")} == {ab["id"], ba["id"]}
    assert {relation["id"] for relation in relation_service.get_by_entity(api_key_id, "a")} == {ab["id"], ba["id"]}
    assert len(relation_service.find_by_type(api_key_id, "knows")) == 2
    typed = relation_service.list_relations(api_key_id, "end-user-1", RelationQuery(type="likes"))
    assert [relation["id"] for relation in typed] == [ba["id"]]

    assert relation_service.delete(api_key_id, ab["id"]) is True
    assert relation_service.delete(api_key_id, ab["id"]) is False


def test_create_many_relations(tenant):
    api_key_id = tenant["api_key_id"]
    assert relation_service.create_many(api_key_id, []) == []
    created = relation_service.create_many(
        api_key_id,
        [
            RelationInput(user_id="u", source_id="a", target_id="b", type="knows"),
            RelationInput(user_id="u", source_id="b", target_id="c", type="knows", confidence=0.7),
        ],
    )
    assert [relation["source_id"] for relation in created] == ["a", "b"]
    assert created[1]["confidence"] == 0.7
