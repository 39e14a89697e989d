"""
Quota enforcement: memory caps per tenant and monthly API call counters per account.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
import uuid

from sqlalchemy.dialects import postgresql, sqlite

import memgraph.config as config
from memgraph.db import DB
from memgraph.models import Memory, Quota, Tier, as_utc, utcnow
from memgraph.repositories import api_key_ids_for_owner
from memgraph.services.subscriptions import (
    get_tier_limits,
    owner_for_api_key,
    tier_for_owner,
)

logger = config.logger

UNLIMITED = -1
API_KEY_NOT_FOUND = "API Key not found"
MONTHLY_LIMIT_REACHED = "Monthly API call limit reached"


@dataclass(frozen=True)
class QuotaCheck:
    allowed: bool
    reason: Optional[str] = None
    limit: Optional[int] = None
    used: Optional[int] = None


def first_day_of_next_month(now: datetime) -> datetime:
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=now.tzinfo or timezone.utc)
    return datetime(now.year, now.month + 1, 1, tzinfo=now.tzinfo or timezone.utc)


def _api_limit_for(tier: Tier) -> int:
    limit = get_tier_limits(tier).monthly_api_limit
    return UNLIMITED if limit is None else limit


def _dialect_insert(db):
    name = db.get_bind().dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"Quota upsert not supported for dialect {name}")


def _new_quota_values(owner_id: str, limit: int, used: int, now: datetime) -> dict:
    return {
        "id": str(uuid.uuid4()),
        "user_id": owner_id,
        "monthly_api_limit": limit,
        "monthly_api_used": used,
        "period_start_at": now,
        "period_end_at": first_day_of_next_month(now),
        "created_at": now,
        "updated_at": now,
    }


def _ensure_quota(db, owner_id: str, tier: Tier, now: Optional[datetime] = None) -> Quota:
    """Create the counter if missing (race-safe) and return it."""
    quota = db.query(Quota).filter(Quota.user_id == owner_id).first()
    if quota is not None:
        return quota
    now = now or utcnow()
    insert = _dialect_insert(db)
    stmt = insert(Quota).values(**_new_quota_values(owner_id, _api_limit_for(tier), 0, now))
    db.execute(stmt.on_conflict_do_nothing(index_elements=["user_id"]))
    db.commit()
    return db.query(Quota).filter(Quota.user_id == owner_id).one()


def check_memory_quota(api_key_id: str, quantity: int = 1) -> QuotaCheck:
    db = DB.SessionLocal()
    try:
        owner_id = owner_for_api_key(db, api_key_id)
        if owner_id is None:
            return QuotaCheck(allowed=False, reason=API_KEY_NOT_FOUND)
        limits = get_tier_limits(tier_for_owner(db, owner_id))
        if limits.memory_limit is None:
            return QuotaCheck(allowed=True)
        used = db.query(Memory).filter(Memory.api_key_id == api_key_id).count()
        if used + quantity >= limits.memory_limit:
            return QuotaCheck(
                allowed=False,
                reason=f"Memory limit reached ({limits.memory_limit})",
                limit=limits.memory_limit,
                used=used,
            )
        return QuotaCheck(allowed=True, limit=limits.memory_limit, used=used)
    finally:
        db.close()


def check_api_quota(api_key_id: str) -> QuotaCheck:
    db = DB.SessionLocal()
    try:
        owner_id = owner_for_api_key(db, api_key_id)
        if owner_id is None:
            return QuotaCheck(allowed=False, reason=API_KEY_NOT_FOUND)
        tier = tier_for_owner(db, owner_id)
        if get_tier_limits(tier).unlimited:
            return QuotaCheck(allowed=True)
        quota = _ensure_quota(db, owner_id, tier)
        if quota.monthly_api_used >= quota.monthly_api_limit:
            return QuotaCheck(
                allowed=False,
                reason=MONTHLY_LIMIT_REACHED,
                limit=quota.monthly_api_limit,
                used=quota.monthly_api_used,
            )
        return QuotaCheck(allowed=True, limit=quota.monthly_api_limit, used=quota.monthly_api_used)
    finally:
        db.close()


def _increment(db, owner_id: str, now: Optional[datetime] = None) -> None:
    now = now or utcnow()
    tier = tier_for_owner(db, owner_id)
    insert = _dialect_insert(db)
    stmt = insert(Quota).values(**_new_quota_values(owner_id, _api_limit_for(tier), 1, now))
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={
            "monthly_api_used": Quota.monthly_api_used + 1,
            "updated_at": now,
        },
    )
    db.execute(stmt)
    db.commit()


def increment_api_usage(owner_id: str, now: Optional[datetime] = None) -> None:
    """Atomically bump the monthly counter, creating it on first use."""
    db = DB.SessionLocal()
    try:
        _increment(db, owner_id, now)
    finally:
        db.close()


def increment_api_usage_by_api_key(api_key_id: str, now: Optional[datetime] = None) -> None:
    db = DB.SessionLocal()
    try:
        owner_id = owner_for_api_key(db, api_key_id)
        if owner_id is None:
            return
        _increment(db, owner_id, now)
    finally:
        db.close()


def _quota_to_dict(quota: Quota) -> dict:
    return {
        "user_id": quota.user_id,
        "monthly_api_limit": None if quota.monthly_api_limit == UNLIMITED else quota.monthly_api_limit,
        "monthly_api_used": quota.monthly_api_used,
        "period_start_at": as_utc(quota.period_start_at).isoformat(),
        "period_end_at": as_utc(quota.period_end_at).isoformat(),
    }


def ensure_quota_exists(owner_id: str) -> dict:
    db = DB.SessionLocal()
    try:
        quota = _ensure_quota(db, owner_id, tier_for_owner(db, owner_id))
        return _quota_to_dict(quota)
    finally:
        db.close()


def get_quota_status(owner_id: str) -> dict:
    db = DB.SessionLocal()
    try:
        tier = tier_for_owner(db, owner_id)
        limits = get_tier_limits(tier)
        key_ids = api_key_ids_for_owner(db, owner_id)
        memories = (
            db.query(Memory).filter(Memory.api_key_id.in_(key_ids)).count() if key_ids else 0
        )
        quota = db.query(Quota).filter(Quota.user_id == owner_id).first()
        return {
            "tier": tier.value,
            "limits": {
                "memories": limits.memory_limit,
                "monthly_api_calls": limits.monthly_api_limit,
            },
            "usage": {
                "memories": memories,
                "api_calls": quota.monthly_api_used if quota else 0,
            },
            "period_end_at": as_utc(quota.period_end_at).isoformat() if quota else None,
        }
    finally:
        db.close()


def reset_monthly_quota(owner_id: str, now: Optional[datetime] = None) -> Optional[dict]:
    """Start a new billing period: zero the counter and move the window."""
    now = now or utcnow()
    db = DB.SessionLocal()
    try:
        quota = db.query(Quota).filter(Quota.user_id == owner_id).first()
        if quota is None:
            return None
        quota.monthly_api_used = 0
        quota.monthly_api_limit = _api_limit_for(tier_for_owner(db, owner_id))
        quota.period_start_at = now
        quota.period_end_at = first_day_of_next_month(now)
        db.commit()
        logger.info("quota_period_reset", extra={"user_id": owner_id})
        return _quota_to_dict(quota)
    finally:
        db.close()
