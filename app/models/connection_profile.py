import uuid
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Any

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, Float, Integer, JSON, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


_timestamp_lock = Lock()
_last_timestamp: datetime | None = None


def _wall_clock() -> datetime:
    return datetime.now(timezone.utc)


def _utcnow() -> datetime:
    """Strictly increasing UTC timestamps so created_at preserves insertion order."""
    global _last_timestamp
    with _timestamp_lock:
        now = _wall_clock()
        if _last_timestamp is not None and now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )


class ConnectionProfile(Base, TimestampMixin):
    __tablename__ = "connection_profiles"
    __table_args__ = (
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

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    profile_name: Mapped[str] = mapped_column(String(200), nullable=False)
    profile_code: Mapped[str] = mapped_column(String(100), nullable=False)
    connection_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    server_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    database_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    database_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    load_strategy: Mapped[str] = mapped_column(String(50), nullable=False, default="full")
    sync_column_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    sync_column_type: Mapped[str | None] = mapped_column(String(100), nullable=True)

    batch_size: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    parallel_threads: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    min_pool_size: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    max_pool_size: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    connection_timeout_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    idle_timeout_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    retry_backoff_multiplier: Mapped[float] = mapped_column(Float, nullable=False, default=2.0)
    circuit_breaker_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=5)

    health_check_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    health_check_query: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_health_check_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_health_check_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    data_classification: Mapped[str] = mapped_column(
        String(50), nullable=False, default="internal", index=True
    )
    contains_pii: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    gdpr_applicable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    environment: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_to: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    encryption_key_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    # "metadata" is reserved on declarative classes.
    profile_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata", JSON, nullable=True
    )

    def __repr__(self) -> str:
        return f"<ConnectionProfile {self.profile_code} active={self.is_active}>"
