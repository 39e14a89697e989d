"""
Dependency helpers for the FastAPI app.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generator, Optional

from fastapi import Header

import memgraph.config as config
from memgraph.db import DB
from memgraph.errors import InvalidKeyFormat, QuotaExceeded
from memgraph.services import api_keys
from memgraph.services import quota as quota_service


@dataclass(frozen=True)
class TenantContext:
    api_key_id: str
    api_key_name: str
    owner_id: str
    tier: str
    is_admin: bool = False

    @staticmethod
    def from_key(record: dict) -> "TenantContext":
        user = record.get("user") or {}
        return TenantContext(
            api_key_id=record["id"],
            api_key_name=record.get("name") or "",
            owner_id=record["user_id"],
            tier=user.get("tier", "FREE"),
            is_admin=bool(user.get("is_admin")),
        )


def get_db_session() -> Generator:
    if DB.SessionLocal is None:
        raise RuntimeError("Database not initialized - SessionLocal is None")
    db = DB.SessionLocal()
    try:
        yield db
    finally:
        db.close()


def extract_api_key(authorization: Optional[str], x_api_key: Optional[str]) -> str:
    if authorization:
        scheme, _, token = authorization.strip().partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    if x_api_key and x_api_key.strip():
        return x_api_key.strip()
    raise InvalidKeyFormat("API key is required")


def require_tenant(
    authorization: Optional[str] = Header(default=None),
    x_api_key: Optional[str] = Header(default=None),
) -> TenantContext:
    """Authenticate the key, apply the monthly API quota, and count the call."""
    tenant = TenantContext.from_key(api_keys.validate_key(extract_api_key(authorization, x_api_key)))
    check = quota_service.check_api_quota(tenant.api_key_id)
    if not check.allowed:
        config.logger.info(
            "api_quota_rejected",
            extra={"api_key_id": tenant.api_key_id, "reason": check.reason},
        )
        raise QuotaExceeded(check.reason or "Monthly API call limit reached")
    quota_service.increment_api_usage_by_api_key(tenant.api_key_id)
    return tenant
