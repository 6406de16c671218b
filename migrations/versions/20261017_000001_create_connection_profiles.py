"""create connection profiles

Revision ID: 20261017_000001
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261017_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "connection_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("profile_name", sa.String(length=200), nullable=False),
        sa.Column("profile_code", sa.String(length=100), nullable=False),
        sa.Column("connection_type", sa.String(length=50), nullable=False),
        sa.Column("server_id", sa.Integer(), nullable=True),
        sa.Column("database_name", sa.String(length=200), nullable=True),
        sa.Column("database_type", sa.String(length=100), nullable=True),
        sa.Column("load_strategy", sa.String(length=50), nullable=False, server_default="full"),
        sa.Column("sync_column_name", sa.String(length=200), nullable=True),
        sa.Column("sync_column_type", sa.String(length=100), nullable=True),
        sa.Column("batch_size", sa.Integer(), nullable=False, server_default="1000"),
        sa.Column("parallel_threads", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("min_pool_size", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("max_pool_size", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("connection_timeout_seconds", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("idle_timeout_seconds", sa.Integer(), nullable=False, server_default="300"),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("retry_backoff_multiplier", sa.Float(), nullable=False, server_default="2.0"),
        sa.Column("circuit_breaker_threshold", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("health_check_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("health_check_query", sa.Text(), nullable=True),
        sa.Column("last_health_check_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_health_check_status", sa.String(length=20), nullable=True),
        sa.Column("data_classification", sa.String(length=50), nullable=False, server_default="internal"),
        sa.Column("contains_pii", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("gdpr_applicable", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("environment", sa.String(length=50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("encryption_key_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by", sa.String(length=200), nullable=True),
        sa.Column("updated_by", sa.String(length=200), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("profile_name", name="uq_connection_profiles_profile_name"),
        sa.UniqueConstraint("profile_code", name="uq_connection_profiles_profile_code"),
        sa.CheckConstraint(
            "max_pool_size >= min_pool_size",
            name="ck_connection_profiles_pool_size_order",
        ),
        sa.CheckConstraint(
            "valid_to IS NULL OR valid_to >= valid_from",
            name="ck_connection_profiles_validity_window",
        ),
    )
    op.create_index("ix_connection_profiles_connection_type", "connection_profiles", ["connection_type"])
    op.create_index("ix_connection_profiles_server_id", "connection_profiles", ["server_id"])
    op.create_index("ix_connection_profiles_data_classification", "connection_profiles", ["data_classification"])
    op.create_index("ix_connection_profiles_environment", "connection_profiles", ["environment"])
    op.create_index("ix_connection_profiles_is_active", "connection_profiles", ["is_active"])
    op.create_index("ix_connection_profiles_valid_to", "connection_profiles", ["valid_to"])


def downgrade() -> None:
    op.drop_index("ix_connection_profiles_valid_to", table_name="connection_profiles")
    op.drop_index("ix_connection_profiles_is_active", table_name="connection_profiles")
    op.drop_index("ix_connection_profiles_environment", table_name="connection_profiles")
    op.drop_index("ix_connection_profiles_data_classification", table_name="connection_profiles")
    op.drop_index("ix_connection_profiles_server_id", table_name="connection_profiles")
    op.drop_index("ix_connection_profiles_connection_type", table_name="connection_profiles")
    op.drop_table("connection_profiles")
