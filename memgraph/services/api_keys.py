"""
API key issuance and validation.

Keys look like ``mk_<64 hex chars>``; only the sha256 hex digest is stored.
Validation results are cached for a short TTL, and ``last_used_at`` is
written on a detached thread so request latency never waits on it.
"""

from __future__ import annotations

import hashlib
import secrets
import threading
from datetime import datetime
from typing import Optional

import memgraph.config as config
from memgraph.cache import KeyCache, get_key_cache, try_delete, try_get, try_set
from memgraph.db import DB
from memgraph.errors import (
    ApiKeyExpired,
    ApiKeyInactive,
    ApiKeyNotFound,
    InvalidKeyFormat,
    NotFoundError,
    UserDeleted,
)
from memgraph.models import ApiKey, User, as_utc, utcnow
from memgraph.services.subscriptions import tier_for_owner
from memgraph.validators import validate_optional_text, validate_required_text

logger = config.logger

KEY_PREFIX_DISPLAY_LENGTH = 8


def generate_key() -> str:
    return f"{config.API_KEY_PREFIX}{secrets.token_hex(32)}"


def hash_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def _cache_key(key_hash: str) -> str:
    return f"{config.KEY_CACHE_PREFIX}{key_hash}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def _key_to_dict(api_key: ApiKey) -> dict:
    return {
        "id": api_key.id,
        "name": api_key.name,
        "key_prefix": api_key.key_prefix,
        "is_active": api_key.is_active,
        "expires_at": _iso(api_key.expires_at),
        "last_used_at": _iso(api_key.last_used_at),
        "created_at": _iso(api_key.created_at),
    }


def _touch_last_used(api_key_id: str) -> None:
    if DB.SessionLocal is None:
        return
    db = DB.SessionLocal()
    try:
        db.query(ApiKey).filter(ApiKey.id == api_key_id).update(
            {ApiKey.last_used_at: utcnow()},
            synchronize_session=False,
        )
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.warning("api_key_touch_failed", extra={"api_key_id": api_key_id, "error": str(exc)})
    finally:
        db.close()


def _schedule_touch(api_key_id: str) -> threading.Thread:
    thread = threading.Thread(
        target=_touch_last_used,
        args=(api_key_id,),
        name="api-key-last-used",
        daemon=True,
    )
    thread.start()
    return thread


def validate_key(raw_key: Optional[str], cache: Optional[KeyCache] = None) -> dict:
    """Resolve a raw key to its tenant record or raise a KeyValidationError."""
    if not raw_key or not raw_key.startswith(config.API_KEY_PREFIX):
        raise InvalidKeyFormat("Invalid API key format")

    cache = cache or get_key_cache()
    key_hash = hash_key(raw_key)
    cache_key = _cache_key(key_hash)

    cached = try_get(cache, cache_key)
    if cached is not None:
        return cached

    db = DB.SessionLocal()
    try:
        api_key = db.query(ApiKey).filter(ApiKey.key_hash == key_hash).first()
        if api_key is None:
            raise ApiKeyNotFound("Invalid API key")
        if not api_key.is_active:
            raise ApiKeyInactive("API key is inactive")
        expires_at = as_utc(api_key.expires_at)
        if expires_at is not None and expires_at < utcnow():
            raise ApiKeyExpired("API key has expired")
        user = db.query(User).filter(User.id == api_key.user_id).first()
        if user is None or user.deleted_at is not None:
            raise UserDeleted("User account has been deleted")

        result = {
            "id": api_key.id,
            "user_id": api_key.user_id,
            "name": api_key.name,
            "user": {
                "id": user.id,
                "email": user.email,
                "name": user.name,
                "tier": tier_for_owner(db, user.id).value,
                "is_admin": bool(user.is_admin),
            },
        }
    finally:
        db.close()

    try_set(cache, cache_key, result, config.KEY_CACHE_TTL_SECONDS)
    _schedule_touch(result["id"])
    return result


def create(
    owner_id: str,
    name: str,
    expires_at: Optional[datetime] = None,
) -> dict:
    """Issue a new key. The raw key is only ever returned here."""
    validate_required_text(name, "name", config.MAX_SHORT_TEXT_LENGTH)
    raw_key = generate_key()
    db = DB.SessionLocal()
    try:
        if db.query(User).filter(User.id == owner_id, User.deleted_at.is_(None)).first() is None:
            raise NotFoundError("User not found")
        api_key = ApiKey(
            user_id=owner_id,
            name=name,
            key_hash=hash_key(raw_key),
            key_prefix=raw_key[: len(config.API_KEY_PREFIX) + KEY_PREFIX_DISPLAY_LENGTH],
            expires_at=expires_at,
        )
        db.add(api_key)
        db.commit()
        result = _key_to_dict(api_key)
        result["key"] = raw_key
        logger.info("api_key_created", extra={"api_key_id": api_key.id, "user_id": owner_id})
        return result
    finally:
        db.close()


def find_all_by_user(owner_id: str) -> list[dict]:
    db = DB.SessionLocal()
    try:
        keys = (
            db.query(ApiKey)
            .filter(ApiKey.user_id == owner_id)
            .order_by(ApiKey.created_at.desc())
            .all()
        )
        return [_key_to_dict(key) for key in keys]
    finally:
        db.close()


def _owned_key(db, owner_id: str, api_key_id: str) -> ApiKey:
    api_key = (
        db.query(ApiKey)
        .filter(ApiKey.id == api_key_id, ApiKey.user_id == owner_id)
        .first()
    )
    if api_key is None:
        raise NotFoundError("API key not found")
    return api_key


def find_one(owner_id: str, api_key_id: str) -> dict:
    db = DB.SessionLocal()
    try:
        return _key_to_dict(_owned_key(db, owner_id, api_key_id))
    finally:
        db.close()


def update(
    owner_id: str,
    api_key_id: str,
    name: Optional[str] = None,
    is_active: Optional[bool] = None,
    cache: Optional[KeyCache] = None,
) -> dict:
    validate_optional_text(name, "name", config.MAX_SHORT_TEXT_LENGTH)
    db = DB.SessionLocal()
    try:
        api_key = _owned_key(db, owner_id, api_key_id)
        if name is not None:
            api_key.name = name
        if is_active is not None:
            api_key.is_active = is_active
        db.commit()
        if is_active is False:
            try_delete(cache or get_key_cache(), _cache_key(api_key.key_hash))
        return _key_to_dict(api_key)
    finally:
        db.close()


def delete(owner_id: str, api_key_id: str, cache: Optional[KeyCache] = None) -> None:
    db = DB.SessionLocal()
    try:
        api_key = _owned_key(db, owner_id, api_key_id)
        key_hash = api_key.key_hash
        db.delete(api_key)
        db.commit()
        try_delete(cache or get_key_cache(), _cache_key(key_hash))
        logger.info("api_key_deleted", extra={"api_key_id": api_key_id, "user_id": owner_id})
    finally:
        db.close()


def evict_cached_keys(owner_id: str, cache: Optional[KeyCache] = None) -> None:
    """Drop every cached validation of the account's keys."""
    cache = cache or get_key_cache()
    db = DB.SessionLocal()
    try:
        key_hashes = [row.key_hash for row in db.query(ApiKey.key_hash).filter(ApiKey.user_id == owner_id)]
    finally:
        db.close()
    for key_hash in key_hashes:
        try_delete(cache, _cache_key(key_hash))
