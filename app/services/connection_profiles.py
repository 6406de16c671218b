from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, TypeVar
from uuid import UUID

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import ConnectionProfile
from app.schemas.connection_profile import (
    AutoDeactivateResult,
    BulkActivateResult,
    ConnectionProfileCreate,
    ConnectionProfileUpdate,
    HealthCheckStatus,
    ProfileOperationError,
    ValidityPeriodUpdate,
    ensure_utc,
)
from app.services.connection_profile_cache import ConnectionProfileReadCache, profile_read_cache
from app.services.profile_validity import is_expired, utcnow

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

# Fields of the update payload that may be explicitly cleared with null.
_NULLABLE_FIELDS = frozenset(
    {
        "server_id",
        "database_name",
        "database_type",
        "sync_column_name",
        "sync_column_type",
        "health_check_query",
        "last_health_check_status",
        "last_health_check_at",
        "valid_to",
        "last_used_at",
        "metadata",
        "updated_by",
    }
)


class ConnectionProfileError(Exception):
    """Base class for connection profile failures caused by the caller."""


class ProfileValidationError(ConnectionProfileError):
    """Raised when a payload is malformed or contradicts a profile invariant."""


class ProfileConflictError(ConnectionProfileError):
    """Raised when a profile name or code is already taken by another profile."""


class ProfileNotFoundError(ConnectionProfileError):
    """Raised when the targeted profile does not exist."""


@dataclass(frozen=True)
class ProfileOutcome:
    profile_id: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def format_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid connection profile payload."


def coerce_profile_id(profile_id: UUID | str) -> UUID:
    if isinstance(profile_id, UUID):
        return profile_id
    try:
        return UUID(str(profile_id))
    except (TypeError, ValueError) as exc:
        raise ProfileNotFoundError(f"Connection profile {profile_id} not found.") from exc


def _normalize_actor(actor_id: Any) -> str | None:
    if actor_id is None:
        return None
    actor = str(actor_id).strip()
    return actor or None


def check_profile_invariants(
    *,
    min_pool_size: int,
    max_pool_size: int,
    valid_from: datetime | None,
    valid_to: datetime | None,
) -> None:
    if max_pool_size < min_pool_size:
        raise ProfileValidationError(
            "max_pool_size must be greater than or equal to min_pool_size."
        )
    if valid_from is None:
        raise ProfileValidationError("valid_from is required.")
    if valid_to is not None and ensure_utc(valid_to) < ensure_utc(valid_from):
        raise ProfileValidationError("valid_to must not be earlier than valid_from.")


class ConnectionProfileService:
    """Own every state transition of a connection profile.

    Each public command is a single read-modify-write committed on the bound
    session after validation passes. Bulk commands commit once per profile so a
    failing item never rolls back the others.
    """

    def __init__(
        self,
        db: Session,
        *,
        clock: Callable[[], datetime] = utcnow,
        cache: ConnectionProfileReadCache | None = None,
    ) -> None:
        self._db = db
        self._clock = clock
        self._cache = cache if cache is not None else profile_read_cache

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    def create(
        self,
        payload: ConnectionProfileCreate | Mapping[str, Any],
        *,
        actor_id: str | None = None,
    ) -> ConnectionProfile:
        data = self._validate(ConnectionProfileCreate, payload)
        check_profile_invariants(
            min_pool_size=data.min_pool_size,
            max_pool_size=data.max_pool_size,
            valid_from=data.valid_from,
            valid_to=data.valid_to,
        )
        self._ensure_unique(profile_name=data.profile_name, profile_code=data.profile_code)

        actor = _normalize_actor(actor_id) or _normalize_actor(data.created_by)
        values = data.model_dump(exclude={"metadata", "created_by"})
        profile = ConnectionProfile(
            **values,
            profile_metadata=data.metadata,
            is_active=True,
            created_by=actor,
            updated_by=actor,
        )
        self._db.add(profile)
        self._commit(profile)
        logger.info("Created connection profile %s (%s)", profile.id, profile.profile_code)
        return profile

    def update(
        self,
        profile_id: UUID | str,
        payload: ConnectionProfileUpdate | Mapping[str, Any],
    ) -> ConnectionProfile:
        data = self._validate(ConnectionProfileUpdate, payload)
        changes = data.model_dump(exclude_unset=True)
        profile = self.get(profile_id)

        for field, value in changes.items():
            if value is None and field not in _NULLABLE_FIELDS:
                raise ProfileValidationError(f"{field} cannot be null.")

        new_name = changes.get("profile_name")
        new_code = changes.get("profile_code")
        self._ensure_unique(
            profile_name=new_name if new_name is not None and new_name != profile.profile_name else None,
            profile_code=new_code if new_code is not None and new_code != profile.profile_code else None,
            exclude_id=profile.id,
        )

        check_profile_invariants(
            min_pool_size=changes.get("min_pool_size", profile.min_pool_size),
            max_pool_size=changes.get("max_pool_size", profile.max_pool_size),
            valid_from=changes.get("valid_from", profile.valid_from),
            valid_to=changes["valid_to"] if "valid_to" in changes else profile.valid_to,
        )

        if changes.get("last_health_check_status") and "last_health_check_at" not in changes:
            changes["last_health_check_at"] = self.now()
        if "metadata" in changes:
            profile.profile_metadata = changes.pop("metadata")
        if "updated_by" in changes:
            changes["updated_by"] = _normalize_actor(changes["updated_by"])

        for field, value in changes.items():
            setattr(profile, field, value)

        self._commit(profile)
        logger.info(
            "Updated connection profile %s (%s): %s",
            profile.id,
            profile.profile_code,
            ", ".join(sorted(changes)) or "no field changes",
        )
        return profile

    def get(self, profile_id: UUID | str) -> ConnectionProfile:
        profile = self._db.get(ConnectionProfile, coerce_profile_id(profile_id))
        if profile is None:
            raise ProfileNotFoundError(f"Connection profile {profile_id} not found.")
        return profile

    def activate(self, profile_id: UUID | str, actor_id: str | None = None) -> ConnectionProfile:
        return self._set_active(profile_id, True, actor_id)

    def deactivate(self, profile_id: UUID | str, actor_id: str | None = None) -> ConnectionProfile:
        return self._set_active(profile_id, False, actor_id)

    def mark_used(self, profile_id: UUID | str) -> ConnectionProfile:
        profile = self.get(profile_id)
        stmt = (
            update(ConnectionProfile)
            .where(ConnectionProfile.id == profile.id)
            # Keep updated_at as-is so marking usage is not reported as an edit.
            .values(last_used_at=self.now(), updated_at=ConnectionProfile.updated_at)
            .execution_options(synchronize_session=False)
        )
        self._db.execute(stmt)
        self._commit(profile)
        logger.debug("Marked connection profile %s as used", profile.id)
        return profile

    def update_health_status(
        self,
        profile_id: UUID | str,
        status: HealthCheckStatus | str,
    ) -> ConnectionProfile:
        try:
            resolved = HealthCheckStatus(status.strip().lower() if isinstance(status, str) else status)
        except (AttributeError, ValueError) as exc:
            raise ProfileValidationError("status must be one of: healthy, unhealthy.") from exc

        profile = self.get(profile_id)
        if not profile.health_check_enabled:
            logger.debug(
                "Recording health status for connection profile %s with health checks disabled",
                profile.id,
            )
        profile.last_health_check_status = resolved.value
        profile.last_health_check_at = self.now()
        self._commit(profile)
        logger.info("Connection profile %s health status is %s", profile.id, resolved.value)
        return profile

    def update_validity_period(
        self,
        profile_id: UUID | str,
        valid_from: datetime | str | None,
        valid_to: datetime | str | None = None,
        actor_id: str | None = None,
    ) -> ConnectionProfile:
        if valid_from is None:
            raise ProfileValidationError("valid_from is required.")
        window = self._validate(
            ValidityPeriodUpdate,
            {"valid_from": valid_from, "valid_to": valid_to, "updated_by": actor_id},
        )
        profile = self.get(profile_id)
        check_profile_invariants(
            min_pool_size=profile.min_pool_size,
            max_pool_size=profile.max_pool_size,
            valid_from=window.valid_from,
            valid_to=window.valid_to,
        )

        profile.valid_from = window.valid_from
        profile.valid_to = window.valid_to
        actor = _normalize_actor(window.updated_by)
        if actor:
            profile.updated_by = actor
        self._commit(profile)
        logger.info(
            "Connection profile %s validity window set to %s .. %s",
            profile.id,
            window.valid_from.isoformat(),
            window.valid_to.isoformat() if window.valid_to else "open-ended",
        )
        return profile

    def bulk_activate(
        self,
        profile_ids: Iterable[UUID | str],
        actor_id: str | None = None,
    ) -> BulkActivateResult:
        ids = list(profile_ids)
        max_ids = get_settings().bulk_activate_max_ids
        if len(ids) > max_ids:
            raise ProfileValidationError(
                f"Bulk activation accepts at most {max_ids} profile ids per call; received {len(ids)}."
            )

        outcomes = [
            self._attempt(profile_id, lambda pid=profile_id: self._set_active(pid, True, actor_id))
            for profile_id in ids
        ]
        errors = [
            ProfileOperationError(id=outcome.profile_id, message=outcome.error or "")
            for outcome in outcomes
            if not outcome.ok
        ]
        activated = sum(1 for outcome in outcomes if outcome.ok)
        logger.info("Bulk activation activated %d of %d connection profiles", activated, len(ids))
        return BulkActivateResult(activated=activated, total=len(ids), errors=errors or None)

    def auto_deactivate_expired(self, actor_id: str | None = None) -> AutoDeactivateResult:
        now = self.now()
        candidates = self._db.execute(
            select(ConnectionProfile)
            .where(
                ConnectionProfile.is_active.is_(True),
                ConnectionProfile.valid_to.is_not(None),
                ConnectionProfile.valid_to < now,
            )
            .order_by(ConnectionProfile.created_at.asc())
        ).scalars().all()
        expired_ids = [profile.id for profile in candidates if is_expired(profile, now)]

        outcomes = [
            self._attempt(profile_id, lambda pid=profile_id: self._set_active(pid, False, actor_id))
            for profile_id in expired_ids
        ]
        errors = [
            ProfileOperationError(id=outcome.profile_id, message=outcome.error or "")
            for outcome in outcomes
            if not outcome.ok
        ]
        deactivated = sum(1 for outcome in outcomes if outcome.ok)
        if expired_ids:
            logger.info(
                "Auto-deactivated %d of %d expired connection profiles",
                deactivated,
                len(expired_ids),
            )
        return AutoDeactivateResult(deactivated=deactivated, errors=errors or None)

    def _set_active(
        self,
        profile_id: UUID | str,
        active: bool,
        actor_id: str | None,
    ) -> ConnectionProfile:
        profile = self.get(profile_id)
        if bool(profile.is_active) == active:
            logger.debug(
                "Connection profile %s already %s",
                profile.id,
                "active" if active else "inactive",
            )
            return profile

        profile.is_active = active
        actor = _normalize_actor(actor_id)
        if actor:
            profile.updated_by = actor
        self._commit(profile)
        logger.info(
            "Connection profile %s %s by %s",
            profile.id,
            "activated" if active else "deactivated",
            actor or "unknown actor",
        )
        return profile

    def _attempt(self, profile_id: UUID | str, action: Callable[[], ConnectionProfile]) -> ProfileOutcome:
        try:
            action()
        except ConnectionProfileError as exc:
            self._db.rollback()
            logger.warning("Connection profile %s skipped: %s", profile_id, exc)
            return ProfileOutcome(profile_id=str(profile_id), error=str(exc))
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.warning("Connection profile %s could not be written: %s", profile_id, exc)
            return ProfileOutcome(profile_id=str(profile_id), error="Unable to update connection profile.")
        return ProfileOutcome(profile_id=str(profile_id))

    def _validate(self, schema: type[SchemaT], payload: Any) -> SchemaT:
        if isinstance(payload, schema):
            return payload
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(exclude_unset=True)
        try:
            return schema.model_validate(payload)
        except PydanticValidationError as exc:
            raise ProfileValidationError(format_validation_error(exc)) from exc

    def _ensure_unique(
        self,
        *,
        profile_name: str | None = None,
        profile_code: str | None = None,
        exclude_id: UUID | None = None,
    ) -> None:
        checks = (
            ("name", ConnectionProfile.profile_name, profile_name),
            ("code", ConnectionProfile.profile_code, profile_code),
        )
        for label, column, value in checks:
            if value is None:
                continue
            existing = self._db.execute(
                select(ConnectionProfile.id).where(column == value).limit(1)
            ).scalar_one_or_none()
            if existing is not None and existing != exclude_id:
                raise ProfileConflictError(f"A connection profile with {label} '{value}' already exists.")

    def _commit(self, profile: ConnectionProfile) -> None:
        try:
            self._db.commit()
        except IntegrityError as exc:
            self._db.rollback()
            raise ProfileConflictError(
                "Connection profile name and code must be unique."
            ) from exc
        self._db.refresh(profile)
        self._cache.invalidate()


__all__ = [
    "ConnectionProfileError",
    "ConnectionProfileService",
    "ProfileConflictError",
    "ProfileNotFoundError",
    "ProfileOutcome",
    "ProfileValidationError",
    "check_profile_invariants",
    "coerce_profile_id",
    "format_validation_error",
]
