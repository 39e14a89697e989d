"""
Tenant-scoped repositories for memories, entities and relations.

Every method takes the tenant (API key id) as its first argument and folds it
into the query predicate. Owner-level helpers take the sequence of tenant ids
owned by an account instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from sqlalchemy import desc, func, or_, and_

from memgraph.models import ApiKey, Entity, Memory, Relation


@dataclass(frozen=True)
class MemoryQuery:
    user_id: Optional[str] = None
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    limit: Optional[int] = 20
    offset: int = 0


@dataclass(frozen=True)
class EntityQuery:
    user_id: Optional[str] = None
    type: Optional[str] = None
    limit: Optional[int] = 100
    offset: int = 0


@dataclass(frozen=True)
class RelationQuery:
    user_id: Optional[str] = None
    type: Optional[str] = None
    limit: Optional[int] = 100
    offset: int = 0


def _page(query, limit: Optional[int], offset: int):
    if offset:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return query


def api_key_ids_for_owner(db, owner_id: str) -> list[str]:
    rows = db.query(ApiKey.id).filter(ApiKey.user_id == owner_id).all()
    return [row[0] for row in rows]


class MemoryRepository:
    def __init__(self, db):
        self.db = db

    def _scoped(self, api_key_id: str, query: Optional[MemoryQuery] = None):
        q = self.db.query(Memory).filter(Memory.api_key_id == api_key_id)
        if query is None:
            return q
        if query.user_id is not None:
            q = q.filter(Memory.user_id == query.user_id)
        if query.agent_id is not None:
            q = q.filter(Memory.agent_id == query.agent_id)
        if query.session_id is not None:
            q = q.filter(Memory.session_id == query.session_id)
        return q

    def add(self, api_key_id: str, **values) -> Memory:
        memory = Memory(api_key_id=api_key_id, **values)
        self.db.add(memory)
        self.db.flush()
        return memory

    def get(self, api_key_id: str, memory_id: str) -> Optional[Memory]:
        return self._scoped(api_key_id).filter(Memory.id == memory_id).first()

    def list(self, api_key_id: str, query: MemoryQuery) -> list[Memory]:
        q = self._scoped(api_key_id, query).order_by(desc(Memory.created_at), desc(Memory.id))
        return _page(q, query.limit, query.offset).all()

    def candidates(self, api_key_id: str, query: MemoryQuery) -> list[Memory]:
        """Unpaged scan used by similarity search."""
        return self._scoped(api_key_id, query).all()

    def count(self, api_key_id: str) -> int:
        return self._scoped(api_key_id).count()

    def delete(self, api_key_id: str, memory_id: str) -> bool:
        deleted = (
            self._scoped(api_key_id)
            .filter(Memory.id == memory_id)
            .delete(synchronize_session=False)
        )
        return deleted > 0

    def delete_for_user(self, api_key_id: str, user_id: str) -> int:
        return (
            self._scoped(api_key_id, MemoryQuery(user_id=user_id))
            .delete(synchronize_session=False)
        )

    def list_for_keys(
        self,
        api_key_ids: Sequence[str],
        limit: Optional[int] = 20,
        offset: int = 0,
    ) -> tuple[list[tuple[Memory, str]], int]:
        if not api_key_ids:
            return [], 0
        base = (
            self.db.query(Memory, ApiKey.name)
            .join(ApiKey, ApiKey.id == Memory.api_key_id)
            .filter(Memory.api_key_id.in_(list(api_key_ids)))
        )
        total = base.count()
        rows = _page(
            base.order_by(desc(Memory.created_at), desc(Memory.id)),
            limit,
            offset,
        ).all()
        return [(row[0], row[1]) for row in rows], total

    def get_for_keys(self, api_key_ids: Sequence[str], memory_id: str) -> Optional[Memory]:
        if not api_key_ids:
            return None
        return (
            self.db.query(Memory)
            .filter(Memory.api_key_id.in_(list(api_key_ids)), Memory.id == memory_id)
            .first()
        )


class EntityRepository:
    def __init__(self, db):
        self.db = db

    def _scoped(self, api_key_id: str, query: Optional[EntityQuery] = None):
        q = self.db.query(Entity).filter(Entity.api_key_id == api_key_id)
        if query is None:
            return q
        if query.user_id is not None:
            q = q.filter(Entity.user_id == query.user_id)
        if query.type is not None:
            q = q.filter(Entity.type == query.type)
        return q

    def add(self, api_key_id: str, **values) -> Entity:
        entity = Entity(api_key_id=api_key_id, **values)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, api_key_id: str, entity_id: str) -> Optional[Entity]:
        return self._scoped(api_key_id).filter(Entity.id == entity_id).first()

    def get_many(self, api_key_id: str, entity_ids: Iterable[str]) -> dict[str, Entity]:
        ids = list(set(entity_ids))
        if not ids:
            return {}
        rows = self._scoped(api_key_id).filter(Entity.id.in_(ids)).all()
        return {row.id: row for row in rows}

    def find_by_identity(self, api_key_id: str, user_id: str, type_: str, name: str) -> Optional[Entity]:
        return (
            self._scoped(api_key_id)
            .filter(
                Entity.user_id == user_id,
                Entity.type == type_,
                func.lower(Entity.name) == name.lower(),
            )
            .order_by(Entity.created_at.asc())
            .first()
        )

    def list(self, api_key_id: str, query: EntityQuery) -> list[Entity]:
        q = self._scoped(api_key_id, query).order_by(desc(Entity.created_at), desc(Entity.id))
        return _page(q, query.limit, query.offset).all()

    def delete(self, api_key_id: str, entity_id: str) -> bool:
        deleted = (
            self._scoped(api_key_id)
            .filter(Entity.id == entity_id)
            .delete(synchronize_session=False)
        )
        return deleted > 0

    def list_for_keys(
        self,
        api_key_ids: Sequence[str],
        type_: Optional[str] = None,
        limit: Optional[int] = 20,
        offset: int = 0,
    ) -> tuple[list[tuple[Entity, str]], int]:
        if not api_key_ids:
            return [], 0
        base = (
            self.db.query(Entity, ApiKey.name)
            .join(ApiKey, ApiKey.id == Entity.api_key_id)
            .filter(Entity.api_key_id.in_(list(api_key_ids)))
        )
        if type_ is not None:
            base = base.filter(Entity.type == type_)
        total = base.count()
        rows = _page(base.order_by(desc(Entity.created_at), desc(Entity.id)), limit, offset).all()
        return [(row[0], row[1]) for row in rows], total

    def get_for_keys(self, api_key_ids: Sequence[str], entity_id: str) -> Optional[Entity]:
        if not api_key_ids:
            return None
        return (
            self.db.query(Entity)
            .filter(Entity.api_key_id.in_(list(api_key_ids)), Entity.id == entity_id)
            .first()
        )

    def distinct_types_for_keys(self, api_key_ids: Sequence[str]) -> list[str]:
        if not api_key_ids:
            return []
        rows = (
            self.db.query(Entity.type)
            .filter(Entity.api_key_id.in_(list(api_key_ids)))
            .distinct()
            .order_by(Entity.type.asc())
            .all()
        )
        return [row[0] for row in rows]


class RelationRepository:
    def __init__(self, db):
        self.db = db

    def _scoped(self, api_key_id: str, query: Optional[RelationQuery] = None):
        q = self.db.query(Relation).filter(Relation.api_key_id == api_key_id)
        if query is None:
            return q
        if query.user_id is not None:
            q = q.filter(Relation.user_id == query.user_id)
        if query.type is not None:
            q = q.filter(Relation.type == query.type)
        return q

    def add(self, api_key_id: str, **values) -> Relation:
        relation = Relation(api_key_id=api_key_id, **values)
        self.db.add(relation)
        self.db.flush()
        return relation

    def get(self, api_key_id: str, relation_id: str) -> Optional[Relation]:
        return self._scoped(api_key_id).filter(Relation.id == relation_id).first()

    def list(self, api_key_id: str, query: RelationQuery) -> list[Relation]:
        q = self._scoped(api_key_id, query).order_by(desc(Relation.created_at), desc(Relation.id))
        return _page(q, query.limit, query.offset).all()

    def touching(self, api_key_id: str, entity_ids: Iterable[str]) -> list[Relation]:
        """All relations whose source or target is one of ``entity_ids``."""
        ids = list(set(entity_ids))
        if not ids:
            return []
        return (
            self._scoped(api_key_id)
            .filter(or_(Relation.source_id.in_(ids), Relation.target_id.in_(ids)))
            .order_by(Relation.created_at.asc(), Relation.id.asc())
            .all()
        )

    def among(self, api_key_id: str, entity_ids: Iterable[str]) -> list[Relation]:
        """Relations with both endpoints inside ``entity_ids``."""
        ids = list(set(entity_ids))
        if not ids:
            return []
        return (
            self._scoped(api_key_id)
            .filter(Relation.source_id.in_(ids), Relation.target_id.in_(ids))
            .order_by(Relation.created_at.asc(), Relation.id.asc())
            .all()
        )

    def between(self, api_key_id: str, entity_a: str, entity_b: str) -> list[Relation]:
        return (
            self._scoped(api_key_id)
            .filter(
                or_(
                    and_(Relation.source_id == entity_a, Relation.target_id == entity_b),
                    and_(Relation.source_id == entity_b, Relation.target_id == entity_a),
                )
            )
            .order_by(Relation.created_at.asc(), Relation.id.asc())
            .all()
        )

    def delete(self, api_key_id: str, relation_id: str) -> bool:
        deleted = (
            self._scoped(api_key_id)
            .filter(Relation.id == relation_id)
            .delete(synchronize_session=False)
        )
        return deleted > 0

    def delete_touching(self, api_key_id: str, entity_id: str) -> int:
        return (
            self._scoped(api_key_id)
            .filter(or_(Relation.source_id == entity_id, Relation.target_id == entity_id))
            .delete(synchronize_session=False)
        )
