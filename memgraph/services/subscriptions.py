"""
Tier lookup for accounts and the API keys they own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from memgraph.db import DB
from memgraph.models import ApiKey, Subscription, Tier


@dataclass(frozen=True)
class TierLimits:
    memory_limit: Optional[int]
    monthly_api_limit: Optional[int]

    @property
    def unlimited(self) -> bool:
        return self.memory_limit is None and self.monthly_api_limit is None


TIER_LIMITS: dict[Tier, TierLimits] = {
    Tier.FREE: TierLimits(memory_limit=10_000, monthly_api_limit=1_000),
    Tier.HOBBY: TierLimits(memory_limit=50_000, monthly_api_limit=5_000),
    Tier.ENTERPRISE: TierLimits(memory_limit=None, monthly_api_limit=None),
}


def get_tier_limits(tier: Tier) -> TierLimits:
    return TIER_LIMITS[tier]


def _parse_tier(value: Optional[str]) -> Tier:
    try:
        return Tier(value)
    except ValueError:
        return Tier.FREE


def tier_for_owner(db, owner_id: str) -> Tier:
    subscription = db.query(Subscription).filter(Subscription.user_id == owner_id).first()
    if subscription is None:
        return Tier.FREE
    return _parse_tier(subscription.tier)


def owner_for_api_key(db, api_key_id: str) -> Optional[str]:
    row = db.query(ApiKey.user_id).filter(ApiKey.id == api_key_id).first()
    return row[0] if row else None


def get_tier(owner_id: str) -> Tier:
    db = DB.SessionLocal()
    try:
        return tier_for_owner(db, owner_id)
    finally:
        db.close()


def get_tier_by_api_key(api_key_id: str) -> Optional[Tier]:
    """Tier of the key's owner, or None when the key does not exist."""
    db = DB.SessionLocal()
    try:
        owner_id = owner_for_api_key(db, api_key_id)
        if owner_id is None:
            return None
        return tier_for_owner(db, owner_id)
    finally:
        db.close()


def is_enterprise_by_api_key(api_key_id: str) -> bool:
    return get_tier_by_api_key(api_key_id) == Tier.ENTERPRISE
