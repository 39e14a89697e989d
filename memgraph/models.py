"""
MemGraph Database Models
Accounts, API keys, quotas, memories and the entity/relation graph.
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
import uuid
from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean,
    DateTime, ForeignKey, Index, JSON
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, declarative_base

import memgraph.config as config

JSON_TYPE = JSONB if config.DB_BACKEND == "postgres" else JSON


def _uuid_default() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


Base = declarative_base()

# =============================================================================
# Enums
# =============================================================================

class Tier(str, PyEnum):
    FREE = "FREE"
    HOBBY = "HOBBY"
    ENTERPRISE = "ENTERPRISE"


class UsageType(str, PyEnum):
    MEMORY = "MEMORY"
    API_CALL = "API_CALL"
    EXTRACTION = "EXTRACTION"


# =============================================================================
# Accounts and credentials
# =============================================================================

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255))
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True))  # soft delete

    api_keys = relationship("ApiKey", back_populates="user")
    subscription = relationship("Subscription", back_populates="user", uselist=False)


class ApiKey(Base):
    """A tenant. Every memory, entity and relation hangs off one of these."""
    __tablename__ = "api_keys"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    key_hash = Column(String(64), nullable=False, unique=True)
    key_prefix = Column(String(20), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime(timezone=True))
    last_used_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="api_keys")

    __table_args__ = (
        Index("ix_api_keys_user", "user_id"),
    )


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    tier = Column(String(20), nullable=False, default=Tier.FREE.value)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="subscription")


class Quota(Base):
    """Monthly API call counter, one row per account."""
    __tablename__ = "quotas"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    monthly_api_limit = Column(Integer, nullable=False)
    monthly_api_used = Column(Integer, nullable=False, default=0)
    period_start_at = Column(DateTime(timezone=True), nullable=False)
    period_end_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class UsageRecord(Base):
    __tablename__ = "usage_records"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    api_key_id = Column(String(36))
    type = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    billing_period = Column(String(7), nullable=False)  # YYYY-MM
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_usage_records_user_period", "user_id", "billing_period"),
    )


# =============================================================================
# Memories
# =============================================================================

class Memory(Base):
    __tablename__ = "memories"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    api_key_id = Column(String(36), ForeignKey("api_keys.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(255), nullable=False)
    agent_id = Column(String(255))
    session_id = Column(String(255))
    content = Column(Text, nullable=False)
    embedding = Column(JSON_TYPE)
    meta = Column("metadata", JSON_TYPE)
    source = Column(String(255))
    importance = Column(Float, nullable=False, default=0.5)
    tags = Column(JSON_TYPE, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    api_key = relationship("ApiKey")

    __table_args__ = (
        Index("ix_memories_tenant_user", "api_key_id", "user_id"),
        Index("ix_memories_tenant_created", "api_key_id", "created_at"),
    )


# =============================================================================
# Knowledge graph
# =============================================================================

class Entity(Base):
    __tablename__ = "entities"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    api_key_id = Column(String(36), ForeignKey("api_keys.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(255), nullable=False)
    type = Column(String(100), nullable=False)  # PERSON, ORGANIZATION, ...
    name = Column(String(500), nullable=False)
    properties = Column(JSON_TYPE)
    confidence = Column(Float, nullable=False, default=1.0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    api_key = relationship("ApiKey")

    __table_args__ = (
        Index("ix_entities_tenant_user_type", "api_key_id", "user_id", "type"),
        Index("ix_entities_tenant_name", "api_key_id", "name"),
    )


class Relation(Base):
    """Directed edge. Endpoints are not foreign keys; callers own referential sanity."""
    __tablename__ = "relations"

    id = Column(String(36), primary_key=True, default=_uuid_default)
    api_key_id = Column(String(36), ForeignKey("api_keys.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(255), nullable=False)
    source_id = Column(String(36), nullable=False)
    target_id = Column(String(36), nullable=False)
    type = Column(String(100), nullable=False)
    properties = Column(JSON_TYPE)
    confidence = Column(Float, nullable=False, default=1.0)
    valid_from = Column(DateTime(timezone=True))
    valid_to = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_relations_tenant_source", "api_key_id", "source_id"),
        Index("ix_relations_tenant_target", "api_key_id", "target_id"),
        Index("ix_relations_tenant_type", "api_key_id", "type"),
    )


__all__ = [
    "Base",
    "Tier",
    "UsageType",
    "User",
    "ApiKey",
    "Subscription",
    "Quota",
    "UsageRecord",
    "Memory",
    "Entity",
    "Relation",
    "utcnow",
    "as_utc",
    "JSON_TYPE",
]
