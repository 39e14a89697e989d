"""
Graph store: entities.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

import memgraph.config as config
from memgraph.db import DB
from memgraph.errors import NotFoundError
from memgraph.models import Entity, as_utc
from memgraph.repositories import (
    EntityQuery,
    EntityRepository,
    RelationRepository,
    api_key_ids_for_owner,
)
from memgraph.validators import (
    validate_confidence,
    validate_limit,
    validate_metadata,
    validate_offset,
    validate_required_text,
)


@dataclass
class EntityInput:
    user_id: str
    type: str
    name: str
    properties: Optional[dict] = None
    confidence: Optional[float] = None


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def entity_to_dict(entity: Entity, api_key_name: Optional[str] = None) -> dict:
    data = {
        "id": entity.id,
        "api_key_id": entity.api_key_id,
        "user_id": entity.user_id,
        "type": entity.type,
        "name": entity.name,
        "properties": entity.properties,
        "confidence": entity.confidence,
        "created_at": _iso(entity.created_at),
        "updated_at": _iso(entity.updated_at),
    }
    if api_key_name is not None:
        data["api_key_name"] = api_key_name
    return data


def _validate(data: EntityInput) -> float:
    validate_required_text(data.user_id, "user_id", config.MAX_SHORT_TEXT_LENGTH)
    validate_required_text(data.type, "type", config.MAX_SHORT_TEXT_LENGTH)
    validate_required_text(data.name, "name", config.MAX_SHORT_TEXT_LENGTH)
    validate_metadata(data.properties, "properties")
    confidence = 1.0 if data.confidence is None else float(data.confidence)
    validate_confidence(confidence, "confidence")
    return confidence


def create_in(db, api_key_id: str, data: EntityInput) -> Entity:
    confidence = _validate(data)
    return EntityRepository(db).add(
        api_key_id,
        user_id=data.user_id,
        type=data.type,
        name=data.name,
        properties=data.properties,
        confidence=confidence,
    )


def upsert_in(db, api_key_id: str, data: EntityInput) -> Entity:
    """Update in place on a (user, type, case-insensitive name) match, else insert."""
    confidence = _validate(data)
    repo = EntityRepository(db)
    existing = repo.find_by_identity(api_key_id, data.user_id, data.type, data.name)
    if existing is None:
        return repo.add(
            api_key_id,
            user_id=data.user_id,
            type=data.type,
            name=data.name,
            properties=data.properties,
            confidence=confidence,
        )
    if data.properties is not None:
        existing.properties = data.properties
    existing.confidence = confidence
    db.flush()
    return existing


def create(api_key_id: str, data: EntityInput) -> dict:
    db = DB.SessionLocal()
    try:
        entity = create_in(db, api_key_id, data)
        db.commit()
        return entity_to_dict(entity)
    finally:
        db.close()


def upsert(api_key_id: str, data: EntityInput) -> dict:
    db = DB.SessionLocal()
    try:
        entity = upsert_in(db, api_key_id, data)
        db.commit()
        return entity_to_dict(entity)
    finally:
        db.close()


def create_many(api_key_id: str, items: Sequence[EntityInput]) -> list[dict]:
    if not items:
        return []
    db = DB.SessionLocal()
    try:
        entities = [upsert_in(db, api_key_id, item) for item in items]
        db.commit()
        return [entity_to_dict(entity) for entity in entities]
    finally:
        db.close()


def list_entities(api_key_id: str, query: Optional[EntityQuery] = None) -> list[dict]:
    query = query or EntityQuery()
    if query.limit is not None:
        validate_limit(query.limit, "limit", config.MAX_GRAPH_LIMIT)
    validate_offset(query.offset)
    db = DB.SessionLocal()
    try:
        return [entity_to_dict(row) for row in EntityRepository(db).list(api_key_id, query)]
    finally:
        db.close()


def get_by_id(api_key_id: str, entity_id: str) -> Optional[dict]:
    db = DB.SessionLocal()
    try:
        entity = EntityRepository(db).get(api_key_id, entity_id)
        return entity_to_dict(entity) if entity else None
    finally:
        db.close()


def get_by_type(api_key_id: str, user_id: str, entity_type: str) -> list[dict]:
    return list_entities(api_key_id, EntityQuery(user_id=user_id, type=entity_type, limit=None))


def delete(api_key_id: str, entity_id: str) -> bool:
    """Remove the entity and every relation touching it; missing ids are a no-op."""
    db = DB.SessionLocal()
    try:
        deleted = EntityRepository(db).delete(api_key_id, entity_id)
        if deleted:
            RelationRepository(db).delete_touching(api_key_id, entity_id)
        db.commit()
        return deleted
    finally:
        db.close()


def list_by_user(
    owner_id: str,
    entity_type: Optional[str] = None,
    api_key_id: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> dict:
    validate_limit(limit, "limit", config.MAX_RESULT_LIMIT)
    validate_offset(offset)
    db = DB.SessionLocal()
    try:
        key_ids = api_key_ids_for_owner(db, owner_id)
        if api_key_id is not None:
            key_ids = [key_id for key_id in key_ids if key_id == api_key_id]
        rows, total = EntityRepository(db).list_for_keys(key_ids, entity_type, limit, offset)
        return {
            "entities": [entity_to_dict(entity, key_name) for entity, key_name in rows],
            "total": total,
        }
    finally:
        db.close()


def delete_owned(owner_id: str, entity_id: str) -> None:
    """Delete an entity held by any of the account's keys, with its relations."""
    db = DB.SessionLocal()
    try:
        key_ids = api_key_ids_for_owner(db, owner_id)
        entity = EntityRepository(db).get_for_keys(key_ids, entity_id)
        if entity is None:
            raise NotFoundError("Entity not found")
        tenant = entity.api_key_id
        EntityRepository(db).delete(tenant, entity_id)
        RelationRepository(db).delete_touching(tenant, entity_id)
        db.commit()
    finally:
        db.close()


def get_types_by_user(owner_id: str) -> list[str]:
    db = DB.SessionLocal()
    try:
        key_ids = api_key_ids_for_owner(db, owner_id)
        return EntityRepository(db).distinct_types_for_keys(key_ids)
    finally:
        db.close()
