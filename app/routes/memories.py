"""
Similarity store endpoints.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from memgraph.errors import NotFoundError
from memgraph.services import memories as memory_service
from app.deps import TenantContext, require_tenant


router = APIRouter(prefix="/v1/memories", tags=["memories"])


class MemoryIn(BaseModel):
    user_id: str
    content: str
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    source: Optional[str] = None
    importance: Optional[float] = None
    tags: list[str] = Field(default_factory=list)


class SearchIn(BaseModel):
    query: str
    user_id: str
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    limit: int = 20
    threshold: float = 0.0


@router.post("", status_code=201)
def create_memory(payload: MemoryIn, tenant: TenantContext = Depends(require_tenant)):
    return memory_service.create(tenant.api_key_id, memory_service.MemoryInput(**payload.model_dump()))


@router.get("")
def list_memories(
    user_id: str,
    agent_id: Optional[str] = None,
    session_id: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    tenant: TenantContext = Depends(require_tenant),
):
    memories = memory_service.list_memories(
        tenant.api_key_id,
        user_id,
        memory_service.ListOptions(limit=limit, offset=offset, agent_id=agent_id, session_id=session_id),
    )
    return {"memories": memories, "count": len(memories)}


@router.delete("")
def delete_user_memories(user_id: str, tenant: TenantContext = Depends(require_tenant)):
    return {"deleted": memory_service.delete_by_user(tenant.api_key_id, user_id)}


@router.post("/search")
def search_memories(payload: SearchIn, tenant: TenantContext = Depends(require_tenant)):
    results = memory_service.search(
        tenant.api_key_id,
        payload.query,
        memory_service.SearchOptions(
            user_id=payload.user_id,
            agent_id=payload.agent_id,
            session_id=payload.session_id,
            limit=payload.limit,
            threshold=payload.threshold,
        ),
    )
    return {"results": results, "count": len(results)}


@router.get("/{memory_id}")
def get_memory(memory_id: str, tenant: TenantContext = Depends(require_tenant)):
    memory = memory_service.get_by_id(tenant.api_key_id, memory_id)
    if memory is None:
        raise NotFoundError("Memory not found")
    return memory


@router.delete("/{memory_id}")
def delete_memory(memory_id: str, tenant: TenantContext = Depends(require_tenant)):
    return {"deleted": memory_service.delete(tenant.api_key_id, memory_id)}
