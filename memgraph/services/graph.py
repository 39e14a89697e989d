"""
Graph traversal over the entity/relation store.

Traversals are breadth-first with an explicit visited set and one frontier
per level. Each level issues a single relation lookup for the whole frontier
and a single batched entity lookup for the neighbors it found, so a level is
fully resolved before the next one starts. Relations are walked in both
directions. Neighbors whose entity cannot be resolved are pruned silently.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import memgraph.config as config
from memgraph.db import DB
from memgraph.errors import ValidationIssue
from memgraph.models import Entity, Relation
from memgraph.repositories import EntityQuery, EntityRepository, RelationRepository
from memgraph.services.entities import entity_to_dict
from memgraph.services.relations import relation_to_dict
from memgraph.validators import validate_depth, validate_limit

DIRECTIONS = {"in", "out", "both"}


@dataclass
class TraversalOptions:
    max_depth: int = 2
    entity_types: Optional[Sequence[str]] = None
    relation_types: Optional[Sequence[str]] = None
    limit: Optional[int] = None


def to_node(entity: Entity) -> dict:
    return {
        "id": entity.id,
        "type": entity.type,
        "name": entity.name,
        "properties": entity.properties,
    }


def to_edge(relation: Relation) -> dict:
    return {
        "id": relation.id,
        "source": relation.source_id,
        "target": relation.target_id,
        "type": relation.type,
        "properties": relation.properties,
        "confidence": relation.confidence,
    }


def _type_filter(values: Optional[Sequence[str]]) -> Optional[set[str]]:
    return set(values) if values else None


def get_full_graph(api_key_id: str, user_id: str, limit: Optional[int] = None) -> dict:
    """Flat dump of up to ``limit`` entities and the relations among them."""
    limit = config.FULL_GRAPH_DEFAULT_LIMIT if limit is None else limit
    validate_limit(limit, "limit", config.MAX_GRAPH_LIMIT)
    db = DB.SessionLocal()
    try:
        entities = EntityRepository(db).list(api_key_id, EntityQuery(user_id=user_id, limit=limit))
        relations = RelationRepository(db).among(api_key_id, [entity.id for entity in entities])
        return {
            "nodes": [to_node(entity) for entity in entities],
            "edges": [to_edge(relation) for relation in relations],
        }
    finally:
        db.close()


def traverse(api_key_id: str, start_id: str, options: Optional[TraversalOptions] = None) -> dict:
    """Bounded BFS from ``start_id``.

    The start node is always included when it exists and is exempt from the
    entity type filter. An edge is kept only if its far endpoint is (or
    becomes) part of the result, so edges never dangle. Once ``limit`` nodes
    are collected, the rest of the current level can still contribute edges
    between collected nodes, and no further level is expanded.
    """
    options = options or TraversalOptions()
    validate_depth(options.max_depth, "max_depth", config.TRAVERSE_MAX_DEPTH)
    if options.limit is not None:
        validate_limit(options.limit, "limit", config.MAX_GRAPH_LIMIT)
    entity_types = _type_filter(options.entity_types)
    relation_types = _type_filter(options.relation_types)

    db = DB.SessionLocal()
    try:
        entity_repo = EntityRepository(db)
        relation_repo = RelationRepository(db)

        start = entity_repo.get(api_key_id, start_id)
        if start is None:
            return {"nodes": [], "edges": []}

        visited = {start.id}
        nodes = [to_node(start)]
        edges: list[dict] = []
        seen_edges: set[str] = set()
        frontier = [start.id]

        for _depth in range(options.max_depth):
            if not frontier:
                break
            frontier_ids = set(frontier)
            candidates: list[tuple[Relation, str]] = []
            for relation in relation_repo.touching(api_key_id, frontier):
                if relation.id in seen_edges:
                    continue
                if relation_types is not None and relation.type not in relation_types:
                    continue
                if relation.source_id in frontier_ids:
                    neighbor_id = relation.target_id
                else:
                    neighbor_id = relation.source_id
                candidates.append((relation, neighbor_id))

            resolved = entity_repo.get_many(
                api_key_id,
                [neighbor_id for _, neighbor_id in candidates if neighbor_id not in visited],
            )

            next_frontier: list[str] = []
            for relation, neighbor_id in candidates:
                if relation.id in seen_edges:
                    continue
                if neighbor_id not in visited:
                    neighbor = resolved.get(neighbor_id)
                    if neighbor is None:
                        continue
                    if entity_types is not None and neighbor.type not in entity_types:
                        continue
                    if options.limit is not None and len(nodes) >= options.limit:
                        continue
                    visited.add(neighbor_id)
                    nodes.append(to_node(neighbor))
                    next_frontier.append(neighbor_id)
                seen_edges.add(relation.id)
                edges.append(to_edge(relation))

            if options.limit is not None and len(nodes) >= options.limit:
                break
            frontier = next_frontier

        return {"nodes": nodes, "edges": edges}
    finally:
        db.close()


def find_path(
    api_key_id: str,
    from_id: str,
    to_id: str,
    max_depth: Optional[int] = None,
    relation_types: Optional[Sequence[str]] = None,
) -> Optional[dict]:
    """Shortest path by hop count, or None if none exists within ``max_depth``."""
    max_depth = config.PATH_DEFAULT_DEPTH if max_depth is None else max_depth
    validate_depth(max_depth, "max_depth", config.TRAVERSE_MAX_DEPTH)
    allowed_types = _type_filter(relation_types)

    db = DB.SessionLocal()
    try:
        entity_repo = EntityRepository(db)
        relation_repo = RelationRepository(db)

        endpoints = entity_repo.get_many(api_key_id, [from_id, to_id])
        if from_id not in endpoints or to_id not in endpoints:
            return None
        if from_id == to_id:
            return {"nodes": [to_node(endpoints[from_id])], "edges": []}

        resolved: dict[str, Entity] = dict(endpoints)
        predecessors: dict[str, tuple[str, Relation]] = {}
        visited = {from_id}
        frontier = [from_id]

        for _depth in range(max_depth):
            if not frontier or to_id in visited:
                break
            frontier_ids = set(frontier)
            discovered: list[tuple[str, str, Relation]] = []
            for relation in relation_repo.touching(api_key_id, frontier):
                if allowed_types is not None and relation.type not in allowed_types:
                    continue
                for current, neighbor in (
                    (relation.source_id, relation.target_id),
                    (relation.target_id, relation.source_id),
                ):
                    if current in frontier_ids and neighbor not in visited:
                        discovered.append((current, neighbor, relation))

            resolved.update(
                entity_repo.get_many(
                    api_key_id,
                    [neighbor for _, neighbor, _ in discovered if neighbor not in resolved],
                )
            )

            next_frontier: list[str] = []
            for current, neighbor, relation in discovered:
                if neighbor in visited or neighbor not in resolved:
                    continue
                visited.add(neighbor)
                predecessors[neighbor] = (current, relation)
                next_frontier.append(neighbor)
            frontier = next_frontier

        if to_id not in predecessors:
            return None

        path_nodes = [to_id]
        path_edges: list[Relation] = []
        current = to_id
        while current != from_id:
            previous, relation = predecessors[current]
            path_edges.append(relation)
            path_nodes.append(previous)
            current = previous
        path_nodes.reverse()
        path_edges.reverse()
        return {
            "nodes": [to_node(resolved[node_id]) for node_id in path_nodes],
            "edges": [to_edge(relation) for relation in path_edges],
        }
    finally:
        db.close()


def get_neighbors(
    api_key_id: str,
    entity_id: str,
    direction: str = "both",
    relation_types: Optional[Sequence[str]] = None,
) -> list[dict]:
    if direction not in DIRECTIONS:
        raise ValidationIssue(
            "direction must be 'in', 'out' or 'both'",
            field="direction",
            error_type="invalid_choice",
        )
    allowed_types = _type_filter(relation_types)

    db = DB.SessionLocal()
    try:
        pairs: list[tuple[Relation, str]] = []
        for relation in RelationRepository(db).touching(api_key_id, [entity_id]):
            outgoing = relation.source_id == entity_id
            if direction == "out" and not outgoing:
                continue
            if direction == "in" and relation.target_id != entity_id:
                continue
            if allowed_types is not None and relation.type not in allowed_types:
                continue
            pairs.append((relation, relation.target_id if outgoing else relation.source_id))

        resolved = EntityRepository(db).get_many(api_key_id, [neighbor_id for _, neighbor_id in pairs])
        neighbors = []
        for relation, neighbor_id in pairs:
            neighbor = resolved.get(neighbor_id)
            if neighbor is None:
                continue
            neighbors.append({"entity": entity_to_dict(neighbor), "relation": relation_to_dict(relation)})
        return neighbors
    finally:
        db.close()
