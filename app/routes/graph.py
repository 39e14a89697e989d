"""
Graph store and traversal endpoints.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

import memgraph.config as config
from memgraph.errors import NotFoundError, ValidationIssue
from memgraph.repositories import EntityQuery, RelationQuery
from memgraph.services import entities as entity_service
from memgraph.services import graph as graph_service
from memgraph.services import relations as relation_service
from app.deps import TenantContext, require_tenant


router = APIRouter(tags=["graph"])


class EntityIn(BaseModel):
    user_id: str
    type: str
    name: str
    properties: Optional[dict[str, Any]] = None
    confidence: Optional[float] = None


class EntityBatchIn(BaseModel):
    items: list[EntityIn]


class RelationIn(BaseModel):
    user_id: str
    source_id: str
    target_id: str
    type: str
    properties: Optional[dict[str, Any]] = None
    confidence: Optional[float] = None
    valid_from: Optional[str] = None
    valid_to: Optional[str] = None


class RelationBatchIn(BaseModel):
    items: list[RelationIn]


def _check_batch(items: list, field: str) -> None:
    if len(items) > config.MAX_BATCH_ITEMS:
        raise ValidationIssue(
            f"{field} exceeds max items {config.MAX_BATCH_ITEMS}",
            field=field,
            error_type="max_items",
        )


# Entities

@router.post("/v1/entities", status_code=201)
def create_entity(payload: EntityIn, upsert: bool = False, tenant: TenantContext = Depends(require_tenant)):
    data = entity_service.EntityInput(**payload.model_dump())
    if upsert:
        return entity_service.upsert(tenant.api_key_id, data)
    return entity_service.create(tenant.api_key_id, data)


@router.post("/v1/entities/batch", status_code=201)
def create_entities(payload: EntityBatchIn, tenant: TenantContext = Depends(require_tenant)):
    _check_batch(payload.items, "items")
    items = [entity_service.EntityInput(**item.model_dump()) for item in payload.items]
    entities = entity_service.create_many(tenant.api_key_id, items)
    return {"entities": entities, "count": len(entities)}


@router.get("/v1/entities")
def list_entities(
    user_id: Optional[str] = None,
    type: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    tenant: TenantContext = Depends(require_tenant),
):
    entities = entity_service.list_entities(
        tenant.api_key_id,
        EntityQuery(user_id=user_id, type=type, limit=limit, offset=offset),
    )
    return {"entities": entities, "count": len(entities)}


@router.get("/v1/entities/{entity_id}")
def get_entity(entity_id: str, tenant: TenantContext = Depends(require_tenant)):
    entity = entity_service.get_by_id(tenant.api_key_id, entity_id)
    if entity is None:
        raise NotFoundError("Entity not found")
    return entity


@router.get("/v1/entities/{entity_id}/relations")
def get_entity_relations(entity_id: str, tenant: TenantContext = Depends(require_tenant)):
    relations = relation_service.get_by_entity(tenant.api_key_id, entity_id)
    return {"relations": relations, "count": len(relations)}


@router.delete("/v1/entities/{entity_id}")
def delete_entity(entity_id: str, tenant: TenantContext = Depends(require_tenant)):
    return {"deleted": entity_service.delete(tenant.api_key_id, entity_id)}


# Relations

@router.post("/v1/relations", status_code=201)
def create_relation(payload: RelationIn, tenant: TenantContext = Depends(require_tenant)):
    return relation_service.create(tenant.api_key_id, relation_service.RelationInput(**payload.model_dump()))


@router.post("/v1/relations/batch", status_code=201)
def create_relations(payload: RelationBatchIn, tenant: TenantContext = Depends(require_tenant)):
    _check_batch(payload.items, "items")
    items = [relation_service.RelationInput(**item.model_dump()) for item in payload.items]
    relations = relation_service.create_many(tenant.api_key_id, items)
    return {"relations": relations, "count": len(relations)}


@router.get("/v1/relations")
def list_relations(
    user_id: str,
    type: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    tenant: TenantContext = Depends(require_tenant),
):
    relations = relation_service.list_relations(
        tenant.api_key_id,
        user_id,
        RelationQuery(type=type, limit=limit, offset=offset),
    )
    return {"relations": relations, "count": len(relations)}


@router.get("/v1/relations/between")
def relations_between(entity_a: str, entity_b: str, tenant: TenantContext = Depends(require_tenant)):
    relations = relation_service.get_between(tenant.api_key_id, entity_a, entity_b)
    return {"relations": relations, "count": len(relations)}


@router.delete("/v1/relations/{relation_id}")
def delete_relation(relation_id: str, tenant: TenantContext = Depends(require_tenant)):
    return {"deleted": relation_service.delete(tenant.api_key_id, relation_id)}


# Traversal

@router.get("/v1/graph/full")
def full_graph(
    user_id: str,
    limit: Optional[int] = None,
    tenant: TenantContext = Depends(require_tenant),
):
    return graph_service.get_full_graph(tenant.api_key_id, user_id, limit)


@router.get("/v1/graph/traverse/{entity_id}")
def traverse(
    entity_id: str,
    max_depth: int = config.TRAVERSE_DEFAULT_DEPTH,
    entity_types: Optional[list[str]] = Query(default=None),
    relation_types: Optional[list[str]] = Query(default=None),
    limit: Optional[int] = None,
    tenant: TenantContext = Depends(require_tenant),
):
    return graph_service.traverse(
        tenant.api_key_id,
        entity_id,
        graph_service.TraversalOptions(
            max_depth=max_depth,
            entity_types=entity_types,
            relation_types=relation_types,
            limit=limit,
        ),
    )


@router.get("/v1/graph/path")
def find_path(
    from_id: str,
    to_id: str,
    max_depth: Optional[int] = None,
    relation_types: Optional[list[str]] = Query(default=None),
    tenant: TenantContext = Depends(require_tenant),
):
    path = graph_service.find_path(tenant.api_key_id, from_id, to_id, max_depth, relation_types)
    return {"found": path is not None, "path": path}


@router.get("/v1/graph/neighbors/{entity_id}")
def neighbors(
    entity_id: str,
    direction: str = "both",
    relation_types: Optional[list[str]] = Query(default=None),
    tenant: TenantContext = Depends(require_tenant),
):
    found = graph_service.get_neighbors(tenant.api_key_id, entity_id, direction, relation_types)
    return {"neighbors": found, "count": len(found)}
