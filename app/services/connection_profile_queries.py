from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import ConnectionProfile
from app.schemas.connection_profile import (
    ConnectionProfileListResponse,
    ConnectionProfileRead,
    DataGovernanceStats,
    Pagination,
    ProfileSearchQuery,
    ProfileStatsItem,
    ProfileValidity,
    ensure_utc,
)
from app.services.connection_profile_cache import ConnectionProfileReadCache, profile_read_cache
from app.services.connection_profiles import (
    ProfileNotFoundError,
    ProfileValidationError,
    coerce_profile_id,
    format_validation_error,
)
from app.services.profile_validity import is_effectively_usable, is_expired, utcnow

logger = logging.getLogger(__name__)

_EQUALITY_FILTERS = (
    "server_id",
    "database_name",
    "database_type",
    "connection_type",
    "load_strategy",
    "environment",
    "data_classification",
    "contains_pii",
    "gdpr_applicable",
    "health_check_enabled",
    "is_active",
)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_read_models(rows: list[ConnectionProfile]) -> list[ConnectionProfileRead]:
    return [ConnectionProfileRead.model_validate(row) for row in rows]


def build_search_conditions(query: ProfileSearchQuery) -> list[Any]:
    """Translate a search query into AND-combined SQLAlchemy conditions."""
    conditions: list[Any] = []

    if query.profile_name:
        conditions.append(
            ConnectionProfile.profile_name.ilike(f"%{_escape_like(query.profile_name)}%", escape="\\")
        )
    if query.profile_code:
        conditions.append(
            ConnectionProfile.profile_code.ilike(f"%{_escape_like(query.profile_code)}%", escape="\\")
        )

    for field in _EQUALITY_FILTERS:
        value = getattr(query, field)
        if value is None or value == "":
            continue
        conditions.append(getattr(ConnectionProfile, field) == value)

    if query.min_batch_size is not None:
        conditions.append(ConnectionProfile.batch_size >= query.min_batch_size)
    if query.max_batch_size is not None:
        conditions.append(ConnectionProfile.batch_size <= query.max_batch_size)
    if query.min_parallel_threads is not None:
        conditions.append(ConnectionProfile.parallel_threads >= query.min_parallel_threads)
    if query.max_parallel_threads is not None:
        conditions.append(ConnectionProfile.parallel_threads <= query.max_parallel_threads)

    return conditions


class ConnectionProfileQueryService:
    """Read-only views over the connection profile store.

    Results are pydantic snapshots so they can be shared through the read cache.
    Every method accepts ``skip_cache`` to bypass the cache and hit the store.
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
        self._settings = get_settings()

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    def list_profiles(
        self,
        *,
        limit: int | None = None,
        offset: int = 0,
        skip_cache: bool = False,
    ) -> ConnectionProfileListResponse:
        return self._paged(("list",), [], limit=limit, offset=offset, skip_cache=skip_cache)

    def search(
        self,
        query: ProfileSearchQuery | Mapping[str, Any],
        *,
        limit: int | None = None,
        offset: int = 0,
        skip_cache: bool = False,
    ) -> ConnectionProfileListResponse:
        if not isinstance(query, ProfileSearchQuery):
            try:
                query = ProfileSearchQuery.model_validate(query)
            except PydanticValidationError as exc:
                raise ProfileValidationError(format_validation_error(exc)) from exc
        filters = query.model_dump(exclude_none=True)
        cache_key = ("search", tuple(sorted(filters.items())))
        return self._paged(
            cache_key,
            build_search_conditions(query),
            limit=limit,
            offset=offset,
            skip_cache=skip_cache,
        )

    def by_connection_type(self, connection_type: str, **kwargs: Any) -> ConnectionProfileListResponse:
        return self.search({"connection_type": connection_type}, **kwargs)

    def by_environment(self, environment: str, **kwargs: Any) -> ConnectionProfileListResponse:
        return self.search({"environment": environment}, **kwargs)

    def by_server(self, server_id: int, **kwargs: Any) -> ConnectionProfileListResponse:
        return self.search({"server_id": server_id}, **kwargs)

    def by_classification(self, classification: str, **kwargs: Any) -> ConnectionProfileListResponse:
        return self.search({"data_classification": classification}, **kwargs)

    def by_name(self, name: str, *, skip_cache: bool = False) -> ConnectionProfileRead:
        return self._lookup("name", ConnectionProfile.profile_name, name, skip_cache=skip_cache)

    def by_code(self, code: str, *, skip_cache: bool = False) -> ConnectionProfileRead:
        return self._lookup("code", ConnectionProfile.profile_code, code, skip_cache=skip_cache)

    def check_validity(self, profile_id: UUID | str, *, skip_cache: bool = False) -> ProfileValidity:
        resolved_id = coerce_profile_id(profile_id)

        def load() -> ConnectionProfileRead:
            profile = self._db.get(ConnectionProfile, resolved_id)
            if profile is None:
                raise ProfileNotFoundError(f"Connection profile {profile_id} not found.")
            return ConnectionProfileRead.model_validate(profile)

        # The snapshot may be cached; validity itself is always evaluated now.
        snapshot, _ = self._cache.get_or_load(("profile", resolved_id), load, skip_cache=skip_cache)
        return ProfileValidity(id=snapshot.id, is_valid=is_effectively_usable(snapshot, self.now()))

    def stats_by_connection_type(self, *, skip_cache: bool = False) -> list[ProfileStatsItem]:
        return self._group_counts(ConnectionProfile.connection_type, skip_cache=skip_cache)

    def stats_by_environment(self, *, skip_cache: bool = False) -> list[ProfileStatsItem]:
        return self._group_counts(ConnectionProfile.environment, skip_cache=skip_cache)

    def data_governance_stats(self, *, skip_cache: bool = False) -> DataGovernanceStats:
        def load() -> DataGovernanceStats:
            classification_rows = self._db.execute(
                select(ConnectionProfile.data_classification, func.count())
                .group_by(ConnectionProfile.data_classification)
                .order_by(ConnectionProfile.data_classification.asc())
            ).all()
            pii_count = self._count(ConnectionProfile.contains_pii.is_(True))
            gdpr_count = self._count(ConnectionProfile.gdpr_applicable.is_(True))
            total = self._count()
            return DataGovernanceStats(
                classification_counts={str(key): int(count) for key, count in classification_rows},
                pii_count=pii_count,
                gdpr_count=gdpr_count,
                total=total,
            )

        stats, _ = self._cache.get_or_load(("stats", "governance"), load, skip_cache=skip_cache)
        return stats

    def most_used(self, *, limit: int | None = None, skip_cache: bool = False) -> list[ConnectionProfileRead]:
        resolved_limit = limit or self._settings.most_used_limit

        def load() -> list[ConnectionProfileRead]:
            stmt = (
                select(ConnectionProfile)
                .order_by(
                    ConnectionProfile.last_used_at.is_(None),
                    ConnectionProfile.last_used_at.desc(),
                    ConnectionProfile.created_at.asc(),
                )
                .limit(resolved_limit)
            )
            return _to_read_models(self._db.execute(stmt).scalars().all())

        profiles, _ = self._cache.get_or_load(("most-used", resolved_limit), load, skip_cache=skip_cache)
        return profiles

    def expired(self, *, skip_cache: bool = False) -> list[ConnectionProfileRead]:
        # Cache every bounded profile; expiry is decided against the clock on each call.
        bounded = self._filtered(
            "bounded",
            ConnectionProfile.valid_to.is_not(None),
            skip_cache=skip_cache,
        )
        now = self.now()
        return [profile for profile in bounded if is_expired(profile, now)]

    def active(self, *, skip_cache: bool = False) -> list[ConnectionProfileRead]:
        return self._filtered("active", ConnectionProfile.is_active.is_(True), skip_cache=skip_cache)

    def with_pii(self, *, skip_cache: bool = False) -> list[ConnectionProfileRead]:
        return self._filtered("with-pii", ConnectionProfile.contains_pii.is_(True), skip_cache=skip_cache)

    def health_check_enabled(self, *, skip_cache: bool = False) -> list[ConnectionProfileRead]:
        return self._filtered(
            "health-check-enabled",
            ConnectionProfile.health_check_enabled.is_(True),
            skip_cache=skip_cache,
        )

    def _resolve_page(self, limit: int | None, offset: int) -> tuple[int, int]:
        resolved_limit = limit if limit is not None else self._settings.default_page_size
        resolved_limit = max(1, min(resolved_limit, self._settings.max_page_size))
        return resolved_limit, max(0, offset)

    def _paged(
        self,
        cache_key: tuple,
        conditions: list[Any],
        *,
        limit: int | None,
        offset: int,
        skip_cache: bool,
    ) -> ConnectionProfileListResponse:
        resolved_limit, resolved_offset = self._resolve_page(limit, offset)

        def load() -> ConnectionProfileListResponse:
            total = self._count(*conditions)
            rows = self._db.execute(
                self._ordered(select(ConnectionProfile).where(*conditions))
                .limit(resolved_limit)
                .offset(resolved_offset)
            ).scalars().all()
            return ConnectionProfileListResponse(
                data=_to_read_models(rows),
                count=total,
                pagination=Pagination(
                    limit=resolved_limit,
                    offset=resolved_offset,
                    total=total,
                    has_more=resolved_offset + len(rows) < total,
                ),
            )

        response, source = self._cache.get_or_load(
            (*cache_key, resolved_limit, resolved_offset),
            load,
            skip_cache=skip_cache,
        )
        logger.debug("Connection profile query %s served from %s", cache_key, source)
        return response.model_copy(update={"source": source})

    def _lookup(self, label: str, column: Any, value: str, *, skip_cache: bool) -> ConnectionProfileRead:
        def load() -> ConnectionProfileRead:
            profile = self._db.execute(
                select(ConnectionProfile).where(column == value).limit(1)
            ).scalars().first()
            if profile is None:
                raise ProfileNotFoundError(f"Connection profile with {label} '{value}' not found.")
            return ConnectionProfileRead.model_validate(profile)

        profile, _ = self._cache.get_or_load((label, value), load, skip_cache=skip_cache)
        return profile

    def _filtered(self, key: str, condition: Any, *, skip_cache: bool) -> list[ConnectionProfileRead]:
        def load() -> list[ConnectionProfileRead]:
            rows = self._db.execute(
                self._ordered(select(ConnectionProfile).where(condition))
            ).scalars().all()
            return _to_read_models(rows)

        profiles, _ = self._cache.get_or_load((key,), load, skip_cache=skip_cache)
        return profiles

    def _group_counts(self, column: Any, *, skip_cache: bool) -> list[ProfileStatsItem]:
        def load() -> list[ProfileStatsItem]:
            rows = self._db.execute(
                select(column, func.count().label("count"))
                .group_by(column)
                .order_by(func.count().desc(), column.asc())
            ).all()
            return [ProfileStatsItem(key=str(key), count=int(count)) for key, count in rows]

        items, _ = self._cache.get_or_load(("stats", column.key), load, skip_cache=skip_cache)
        return items

    def _count(self, *conditions: Any) -> int:
        stmt = select(func.count()).select_from(ConnectionProfile).where(*conditions)
        return int(self._db.execute(stmt).scalar_one())

    @staticmethod
    def _ordered(stmt: Select) -> Select:
        return stmt.order_by(ConnectionProfile.created_at.asc(), ConnectionProfile.id.asc())


__all__ = ["ConnectionProfileQueryService", "build_search_conditions"]
