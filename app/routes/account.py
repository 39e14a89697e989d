"""
Account-level endpoints: key management, quota, usage, cross-key listing and export.

These act on the account that owns the calling key, so every key an account
holds can see the account's data through them.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from memgraph.services import api_keys
from memgraph.services import entities as entity_service
from memgraph.services import memories as memory_service
from memgraph.services import quota as quota_service
from memgraph.services import usage as usage_service
from app.deps import TenantContext, require_tenant


router = APIRouter(prefix="/v1/account", tags=["account"])


class ApiKeyIn(BaseModel):
    name: str
    expires_at: Optional[datetime] = None


class ApiKeyUpdateIn(BaseModel):
    name: Optional[str] = None
    is_active: Optional[bool] = None


@router.get("/api-keys")
def list_api_keys(tenant: TenantContext = Depends(require_tenant)):
    keys = api_keys.find_all_by_user(tenant.owner_id)
    return {"api_keys": keys, "count": len(keys)}


@router.post("/api-keys", status_code=201)
def create_api_key(payload: ApiKeyIn, tenant: TenantContext = Depends(require_tenant)):
    return api_keys.create(tenant.owner_id, payload.name, payload.expires_at)


@router.get("/api-keys/{api_key_id}")
def get_api_key(api_key_id: str, tenant: TenantContext = Depends(require_tenant)):
    return api_keys.find_one(tenant.owner_id, api_key_id)


@router.patch("/api-keys/{api_key_id}")
def update_api_key(api_key_id: str, payload: ApiKeyUpdateIn, tenant: TenantContext = Depends(require_tenant)):
    return api_keys.update(tenant.owner_id, api_key_id, name=payload.name, is_active=payload.is_active)


@router.delete("/api-keys/{api_key_id}", status_code=204)
def delete_api_key(api_key_id: str, tenant: TenantContext = Depends(require_tenant)):
    api_keys.delete(tenant.owner_id, api_key_id)
    return Response(status_code=204)


@router.get("/quota")
def quota_status(tenant: TenantContext = Depends(require_tenant)):
    return quota_service.get_quota_status(tenant.owner_id)


@router.get("/usage")
def usage_summary(period: Optional[str] = None, tenant: TenantContext = Depends(require_tenant)):
    return usage_service.get_usage_summary(tenant.owner_id, period)


@router.get("/memories")
def account_memories(
    api_key_id: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    tenant: TenantContext = Depends(require_tenant),
):
    return memory_service.list_by_user(
        tenant.owner_id,
        memory_service.ListOptions(limit=limit, offset=offset, api_key_id=api_key_id),
    )


@router.get("/memories/export")
def export_memories(
    format: str = "json",
    api_key_id: Optional[str] = None,
    tenant: TenantContext = Depends(require_tenant),
):
    export = memory_service.export_by_user(tenant.owner_id, format, api_key_id=api_key_id)
    body = export["data"] if format == "csv" else json.dumps(export["data"])
    return Response(
        content=body,
        media_type=export["content_type"],
        headers={"Content-Disposition": f'attachment; filename="{export["filename"]}"'},
    )


@router.delete("/memories/{memory_id}", status_code=204)
def delete_account_memory(memory_id: str, tenant: TenantContext = Depends(require_tenant)):
    memory_service.delete_owned(tenant.owner_id, memory_id)
    return Response(status_code=204)


@router.get("/entities")
def account_entities(
    type: Optional[str] = None,
    api_key_id: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
    tenant: TenantContext = Depends(require_tenant),
):
    return entity_service.list_by_user(tenant.owner_id, type, api_key_id, limit, offset)


@router.get("/entities/types")
def account_entity_types(tenant: TenantContext = Depends(require_tenant)):
    return {"types": entity_service.get_types_by_user(tenant.owner_id)}


@router.delete("/entities/{entity_id}", status_code=204)
def delete_account_entity(entity_id: str, tenant: TenantContext = Depends(require_tenant)):
    entity_service.delete_owned(tenant.owner_id, entity_id)
    return Response(status_code=204)
