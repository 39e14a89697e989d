"""
Similarity store: memories with embeddings, semantic search and export.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import memgraph.config as config
from memgraph.db import DB
from memgraph.errors import NotFoundError, QuotaExceeded, ValidationIssue
from memgraph.models import Memory, UsageType, as_utc, utcnow
from memgraph.repositories import MemoryQuery, MemoryRepository, api_key_ids_for_owner
from memgraph.services import quota as quota_service
from memgraph.services import usage as usage_service
from memgraph.services.embeddings import EmbeddingProvider, cosine_similarity, get_embedding_provider
from memgraph.services.subscriptions import get_tier_by_api_key, get_tier_limits
from memgraph.validators import (
    validate_limit,
    validate_metadata,
    validate_offset,
    validate_optional_text,
    validate_required_text,
    validate_string_list,
)

logger = config.logger

CSV_COLUMNS = (
    "id",
    "userId",
    "agentId",
    "sessionId",
    "content",
    "source",
    "importance",
    "tags",
    "apiKeyName",
    "createdAt",
)
EXPORT_FORMATS = {"json", "csv"}


@dataclass
class MemoryInput:
    user_id: str
    content: str
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    metadata: Optional[dict] = None
    source: Optional[str] = None
    importance: Optional[float] = None
    tags: Optional[list[str]] = None


@dataclass
class SearchOptions:
    user_id: str
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    limit: int = 20
    threshold: float = 0.0


@dataclass
class ListOptions:
    limit: int = 20
    offset: int = 0
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    api_key_id: Optional[str] = None


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def memory_to_dict(memory: Memory, api_key_name: Optional[str] = None) -> dict:
    data = {
        "id": memory.id,
        "api_key_id": memory.api_key_id,
        "user_id": memory.user_id,
        "agent_id": memory.agent_id,
        "session_id": memory.session_id,
        "content": memory.content,
        "metadata": memory.meta,
        "source": memory.source,
        "importance": memory.importance,
        "tags": list(memory.tags or []),
        "created_at": _iso(memory.created_at),
        "updated_at": _iso(memory.updated_at),
    }
    if api_key_name is not None:
        data["api_key_name"] = api_key_name
    return data


def _validate_input(data: MemoryInput) -> None:
    validate_required_text(data.user_id, "user_id", config.MAX_SHORT_TEXT_LENGTH)
    validate_required_text(data.content, "content", config.MAX_CONTENT_LENGTH)
    validate_optional_text(data.agent_id, "agent_id", config.MAX_SHORT_TEXT_LENGTH)
    validate_optional_text(data.session_id, "session_id", config.MAX_SHORT_TEXT_LENGTH)
    validate_optional_text(data.source, "source", config.MAX_SHORT_TEXT_LENGTH)
    validate_metadata(data.metadata, "metadata")
    validate_string_list(data.tags, "tags", config.MAX_TAG_ITEMS, config.MAX_SHORT_TEXT_LENGTH)
    if data.importance is not None and not 0.0 <= data.importance <= 1.0:
        raise ValidationIssue(
            "importance must be between 0.0 and 1.0",
            field="importance",
            error_type="out_of_range",
        )


def create(
    api_key_id: str,
    data: MemoryInput,
    provider: Optional[EmbeddingProvider] = None,
) -> dict:
    _validate_input(data)
    check = quota_service.check_memory_quota(api_key_id, 1)
    if not check.allowed:
        raise QuotaExceeded(check.reason or "Memory quota exceeded")

    embedding = (provider or get_embedding_provider()).embed(data.content)

    db = DB.SessionLocal()
    try:
        memory = MemoryRepository(db).add(
            api_key_id,
            user_id=data.user_id,
            agent_id=data.agent_id,
            session_id=data.session_id,
            content=data.content,
            embedding=list(embedding),
            meta=data.metadata,
            source=data.source,
            importance=0.5 if data.importance is None else data.importance,
            tags=list(data.tags or []),
        )
        db.commit()
        result = memory_to_dict(memory)
    finally:
        db.close()

    tier = get_tier_by_api_key(api_key_id)
    if tier is not None and get_tier_limits(tier).unlimited:
        usage_service.record_usage_by_api_key(api_key_id, UsageType.MEMORY)
    return result


def search(
    api_key_id: str,
    query: str,
    options: SearchOptions,
    provider: Optional[EmbeddingProvider] = None,
) -> list[dict]:
    """Linear cosine scan over the user's memories, best match first."""
    validate_required_text(query, "query", config.MAX_QUERY_LENGTH)
    validate_required_text(options.user_id, "user_id", config.MAX_SHORT_TEXT_LENGTH)
    validate_limit(options.limit, "limit", config.MAX_RESULT_LIMIT)

    query_embedding = (provider or get_embedding_provider()).embed(query)

    db = DB.SessionLocal()
    try:
        candidates = MemoryRepository(db).candidates(
            api_key_id,
            MemoryQuery(
                user_id=options.user_id,
                agent_id=options.agent_id,
                session_id=options.session_id,
                limit=None,
            ),
        )
        scored = []
        for memory in candidates:
            if not memory.embedding:
                continue
            similarity = cosine_similarity(query_embedding, memory.embedding)
            if similarity >= options.threshold:
                scored.append((similarity, memory))
        scored.sort(key=lambda item: item[0], reverse=True)
        results = []
        for similarity, memory in scored[: options.limit]:
            entry = memory_to_dict(memory)
            entry["similarity"] = similarity
            results.append(entry)
        return results
    finally:
        db.close()


def list_memories(api_key_id: str, user_id: str, options: Optional[ListOptions] = None) -> list[dict]:
    options = options or ListOptions()
    validate_limit(options.limit, "limit", config.MAX_RESULT_LIMIT)
    validate_offset(options.offset)
    db = DB.SessionLocal()
    try:
        rows = MemoryRepository(db).list(
            api_key_id,
            MemoryQuery(
                user_id=user_id,
                agent_id=options.agent_id,
                session_id=options.session_id,
                limit=options.limit,
                offset=options.offset,
            ),
        )
        return [memory_to_dict(row) for row in rows]
    finally:
        db.close()


def get_by_id(api_key_id: str, memory_id: str) -> Optional[dict]:
    """None for both missing and foreign memories."""
    db = DB.SessionLocal()
    try:
        memory = MemoryRepository(db).get(api_key_id, memory_id)
        return memory_to_dict(memory) if memory else None
    finally:
        db.close()


def delete(api_key_id: str, memory_id: str) -> bool:
    db = DB.SessionLocal()
    try:
        deleted = MemoryRepository(db).delete(api_key_id, memory_id)
        db.commit()
        return deleted
    finally:
        db.close()


def delete_by_user(api_key_id: str, user_id: str) -> int:
    """Remove every memory of one end user within the tenant; returns the count."""
    validate_required_text(user_id, "user_id", config.MAX_SHORT_TEXT_LENGTH)
    db = DB.SessionLocal()
    try:
        deleted = MemoryRepository(db).delete_for_user(api_key_id, user_id)
        db.commit()
    finally:
        db.close()
    logger.info("memories_deleted_for_user", extra={"api_key_id": api_key_id, "count": deleted})
    return deleted


def list_by_user(owner_id: str, options: Optional[ListOptions] = None) -> dict:
    """Memories across every key the account owns, optionally narrowed to one key."""
    options = options or ListOptions()
    validate_limit(options.limit, "limit", config.MAX_RESULT_LIMIT)
    validate_offset(options.offset)
    db = DB.SessionLocal()
    try:
        key_ids = _owner_key_ids(db, owner_id, options.api_key_id)
        rows, total = MemoryRepository(db).list_for_keys(key_ids, options.limit, options.offset)
        return {
            "memories": [memory_to_dict(memory, key_name) for memory, key_name in rows],
            "total": total,
        }
    finally:
        db.close()


def delete_owned(owner_id: str, memory_id: str) -> None:
    """Delete a memory held by any of the account's keys."""
    db = DB.SessionLocal()
    try:
        key_ids = api_key_ids_for_owner(db, owner_id)
        repo = MemoryRepository(db)
        memory = repo.get_for_keys(key_ids, memory_id)
        if memory is None:
            raise NotFoundError("Memory not found")
        repo.delete(memory.api_key_id, memory.id)
        db.commit()
    finally:
        db.close()


def _owner_key_ids(db, owner_id: str, api_key_id: Optional[str]) -> list[str]:
    key_ids = api_key_ids_for_owner(db, owner_id)
    if api_key_id is None:
        return key_ids
    return [key_id for key_id in key_ids if key_id == api_key_id]


def _csv_field(value) -> str:
    if value is None:
        return ""
    text = str(value)
    if any(ch in text for ch in (",", '"', "\n")):
        return '"' + text.replace('"', '""') + '"'
    return text


def _csv_row(memory: dict) -> str:
    values = (
        memory["id"],
        memory["user_id"],
        memory["agent_id"],
        memory["session_id"],
        memory["content"],
        memory["source"],
        memory["importance"],
        ";".join(memory["tags"]),
        memory.get("api_key_name"),
        memory["created_at"],
    )
    return ",".join(_csv_field(value) for value in values)


def to_csv(memories: list[dict]) -> str:
    lines = [",".join(CSV_COLUMNS)]
    lines.extend(_csv_row(memory) for memory in memories)
    return "\n".join(lines)


def export_by_user(
    owner_id: str,
    export_format: str = "json",
    api_key_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict:
    if export_format not in EXPORT_FORMATS:
        raise ValidationIssue(
            "format must be 'json' or 'csv'",
            field="format",
            error_type="invalid_choice",
        )
    db = DB.SessionLocal()
    try:
        key_ids = _owner_key_ids(db, owner_id, api_key_id)
        rows, _ = MemoryRepository(db).list_for_keys(key_ids, limit=None)
        memories = [memory_to_dict(memory, key_name) for memory, key_name in rows]
    finally:
        db.close()

    date_part = (now or utcnow()).strftime("%Y-%m-%d")
    logger.info("memories_exported", extra={"user_id": owner_id, "format": export_format, "count": len(memories)})
    if export_format == "csv":
        return {
            "data": to_csv(memories),
            "content_type": "text/csv",
            "filename": f"memories-export-{date_part}.csv",
        }
    return {
        "data": memories,
        "content_type": "application/json",
        "filename": f"memories-export-{date_part}.json",
    }
