"""Initial schema: accounts, API keys, quotas, usage, memories and the graph.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"
    json_type = postgresql.JSONB() if is_postgres else sa.JSON()

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "api_keys",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("key_hash", sa.String(length=64), nullable=False, unique=True),
        sa.Column("key_prefix", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_api_keys_user", "api_keys", ["user_id"])

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("tier", sa.String(length=20), nullable=False, server_default="FREE"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        *_timestamps(),
    )

    op.create_table(
        "quotas",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("monthly_api_limit", sa.Integer(), nullable=False),
        sa.Column("monthly_api_used", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("period_start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "usage_records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("api_key_id", sa.String(length=36), nullable=True),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("billing_period", sa.String(length=7), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_usage_records_user_period", "usage_records", ["user_id", "billing_period"])

    op.create_table(
        "memories",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "api_key_id",
            sa.String(length=36),
            sa.ForeignKey("api_keys.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("agent_id", sa.String(length=255), nullable=True),
        sa.Column("session_id", sa.String(length=255), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("embedding", json_type, nullable=True),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("source", sa.String(length=255), nullable=True),
        sa.Column("importance", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("tags", json_type, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_memories_tenant_user", "memories", ["api_key_id", "user_id"])
    op.create_index("ix_memories_tenant_created", "memories", ["api_key_id", "created_at"])

    op.create_table(
        "entities",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "api_key_id",
            sa.String(length=36),
            sa.ForeignKey("api_keys.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("properties", json_type, nullable=True),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="1.0"),
        *_timestamps(),
    )
    op.create_index("ix_entities_tenant_user_type", "entities", ["api_key_id", "user_id", "type"])
    op.create_index("ix_entities_tenant_name", "entities", ["api_key_id", "name"])

    op.create_table(
        "relations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "api_key_id",
            sa.String(length=36),
            sa.ForeignKey("api_keys.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("source_id", sa.String(length=36), nullable=False),
        sa.Column("target_id", sa.String(length=36), nullable=False),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("properties", json_type, nullable=True),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="1.0"),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_relations_tenant_source", "relations", ["api_key_id", "source_id"])
    op.create_index("ix_relations_tenant_target", "relations", ["api_key_id", "target_id"])
    op.create_index("ix_relations_tenant_type", "relations", ["api_key_id", "type"])


def downgrade() -> None:
    op.drop_index("ix_relations_tenant_type", table_name="relations")
    op.drop_index("ix_relations_tenant_target", table_name="relations")
    op.drop_index("ix_relations_tenant_source", table_name="relations")
    op.drop_table("relations")

    op.drop_index("ix_entities_tenant_name", table_name="entities")
    op.drop_index("ix_entities_tenant_user_type", table_name="entities")
    op.drop_table("entities")

    op.drop_index("ix_memories_tenant_created", table_name="memories")
    op.drop_index("ix_memories_tenant_user", table_name="memories")
    op.drop_table("memories")

    op.drop_index("ix_usage_records_user_period", table_name="usage_records")
    op.drop_table("usage_records")
    op.drop_table("quotas")
    op.drop_table("subscriptions")
    op.drop_index("ix_api_keys_user", table_name="api_keys")
    op.drop_table("api_keys")
    op.drop_table("users")
