"""
Account provisioning used by the operator CLI and tests.
"""

from __future__ import annotations

from typing import Optional

import memgraph.config as config
from memgraph.db import DB
from memgraph.errors import NotFoundError, ValidationIssue
from memgraph.models import Subscription, Tier, User, as_utc, utcnow
from memgraph.services.api_keys import evict_cached_keys
from memgraph.validators import validate_optional_text, validate_required_text

logger = config.logger


def _account_to_dict(user: User, tier: str) -> dict:
    deleted_at = as_utc(user.deleted_at)
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "is_admin": bool(user.is_admin),
        "tier": tier,
        "deleted_at": deleted_at.isoformat() if deleted_at else None,
    }


def create_account(
    email: str,
    name: Optional[str] = None,
    tier: Tier = Tier.FREE,
    is_admin: bool = False,
) -> dict:
    validate_required_text(email, "email", config.MAX_SHORT_TEXT_LENGTH)
    validate_optional_text(name, "name", config.MAX_SHORT_TEXT_LENGTH)
    try:
        tier = Tier(tier)
    except ValueError as exc:
        raise ValidationIssue(f"Unknown tier: {tier}", field="tier", error_type="invalid_choice") from exc

    db = DB.SessionLocal()
    try:
        if db.query(User).filter(User.email == email).first() is not None:
            raise ValidationIssue("email already registered", field="email", error_type="duplicate")
        user = User(email=email, name=name, is_admin=is_admin)
        db.add(user)
        db.flush()
        db.add(Subscription(user_id=user.id, tier=tier.value))
        db.commit()
        logger.info("account_created", extra={"user_id": user.id, "tier": tier.value})
        return _account_to_dict(user, tier.value)
    finally:
        db.close()


def set_tier(owner_id: str, tier: Tier) -> dict:
    tier = Tier(tier)
    db = DB.SessionLocal()
    try:
        user = db.query(User).filter(User.id == owner_id).first()
        if user is None:
            raise NotFoundError("User not found")
        subscription = db.query(Subscription).filter(Subscription.user_id == owner_id).first()
        if subscription is None:
            db.add(Subscription(user_id=owner_id, tier=tier.value))
        else:
            subscription.tier = tier.value
        db.commit()
        return _account_to_dict(user, tier.value)
    finally:
        db.close()


def soft_delete_account(owner_id: str) -> None:
    """Mark the account deleted; its keys stop validating immediately."""
    db = DB.SessionLocal()
    try:
        user = db.query(User).filter(User.id == owner_id, User.deleted_at.is_(None)).first()
        if user is None:
            raise NotFoundError("User not found")
        user.deleted_at = utcnow()
        db.commit()
        logger.info("account_deleted", extra={"user_id": owner_id})
    finally:
        db.close()
    evict_cached_keys(owner_id)
