"""
Graph store: relations.

Relations are inserted as given. Endpoints are not checked against the
entity table, so callers that need referential sanity resolve ids first.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Optional, Sequence, Union

import memgraph.config as config
from memgraph.db import DB
from memgraph.errors import ValidationIssue
from memgraph.models import Relation, as_utc
from memgraph.repositories import RelationQuery, RelationRepository
from memgraph.validators import (
    validate_confidence,
    validate_limit,
    validate_metadata,
    validate_offset,
    validate_required_text,
)

DateLike = Union[str, date, datetime, None]


@dataclass
class RelationInput:
    user_id: str
    source_id: str
    target_id: str
    type: str
    properties: Optional[dict] = None
    confidence: Optional[float] = None
    valid_from: DateLike = None
    valid_to: DateLike = None


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def parse_timestamp(value: DateLike, field: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationIssue(
                f"{field} must be an ISO 8601 date or datetime",
                field=field,
                error_type="invalid_format",
            ) from exc
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValidationIssue(f"{field} must be a date", field=field, error_type="invalid_type")


def relation_to_dict(relation: Relation) -> dict:
    return {
        "id": relation.id,
        "api_key_id": relation.api_key_id,
        "user_id": relation.user_id,
        "source_id": relation.source_id,
        "target_id": relation.target_id,
        "type": relation.type,
        "properties": relation.properties,
        "confidence": relation.confidence,
        "valid_from": _iso(relation.valid_from),
        "valid_to": _iso(relation.valid_to),
        "created_at": _iso(relation.created_at),
        "updated_at": _iso(relation.updated_at),
    }


def create_in(db, api_key_id: str, data: RelationInput) -> Relation:
    validate_required_text(data.user_id, "user_id", config.MAX_SHORT_TEXT_LENGTH)
    validate_required_text(data.source_id, "source_id", config.MAX_SHORT_TEXT_LENGTH)
    validate_required_text(data.target_id, "target_id", config.MAX_SHORT_TEXT_LENGTH)
    validate_required_text(data.type, "type", config.MAX_SHORT_TEXT_LENGTH)
    validate_metadata(data.properties, "properties")
    confidence = 1.0 if data.confidence is None else float(data.confidence)
    validate_confidence(confidence, "confidence")
    return RelationRepository(db).add(
        api_key_id,
        user_id=data.user_id,
        source_id=data.source_id,
        target_id=data.target_id,
        type=data.type,
        properties=data.properties,
        confidence=confidence,
        valid_from=parse_timestamp(data.valid_from, "valid_from"),
        valid_to=parse_timestamp(data.valid_to, "valid_to"),
    )


def create(api_key_id: str, data: RelationInput) -> dict:
    db = DB.SessionLocal()
    try:
        relation = create_in(db, api_key_id, data)
        db.commit()
        return relation_to_dict(relation)
    finally:
        db.close()


def create_many(api_key_id: str, items: Sequence[RelationInput]) -> list[dict]:
    if not items:
        return []
    db = DB.SessionLocal()
    try:
        relations = [create_in(db, api_key_id, item) for item in items]
        db.commit()
        return [relation_to_dict(relation) for relation in relations]
    finally:
        db.close()


def list_relations(api_key_id: str, user_id: str, query: Optional[RelationQuery] = None) -> list[dict]:
    query = query or RelationQuery()
    if query.limit is not None:
        validate_limit(query.limit, "limit", config.MAX_GRAPH_LIMIT)
    validate_offset(query.offset)
    db = DB.SessionLocal()
    try:
        rows = RelationRepository(db).list(
            api_key_id,
            RelationQuery(user_id=user_id, type=query.type, limit=query.limit, offset=query.offset),
        )
        return [relation_to_dict(row) for row in rows]
    finally:
        db.close()


def find_by_type(api_key_id: str, relation_type: str) -> list[dict]:
    db = DB.SessionLocal()
    try:
        rows = RelationRepository(db).list(api_key_id, RelationQuery(type=relation_type, limit=None))
        return [relation_to_dict(row) for row in rows]
    finally:
        db.close()


def get_by_entity(api_key_id: str, entity_id: str) -> list[dict]:
    db = DB.SessionLocal()
    try:
        return [relation_to_dict(row) for row in RelationRepository(db).touching(api_key_id, [entity_id])]
    finally:
        db.close()


def get_between(api_key_id: str, entity_a: str, entity_b: str) -> list[dict]:
    db = DB.SessionLocal()
    try:
        return [relation_to_dict(row) for row in RelationRepository(db).between(api_key_id, entity_a, entity_b)]
    finally:
        db.close()


def delete(api_key_id: str, relation_id: str) -> bool:
    db = DB.SessionLocal()
    try:
        deleted = RelationRepository(db).delete(api_key_id, relation_id)
        db.commit()
        return deleted
    finally:
        db.close()
