from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.config import get_settings
from app.database import get_db
from app.models import ConnectionProfile
from app.schemas import (
    AutoDeactivateRequest,
    AutoDeactivateResult,
    BulkActivateRequest,
    BulkActivateResult,
    ConnectionProfileCreate,
    ConnectionProfileEnvelope,
    ConnectionProfileListResponse,
    ConnectionProfileRead,
    ConnectionProfileUpdate,
    DataClassification,
    DataGovernanceStats,
    HealthCheckUpdate,
    LoadStrategy,
    ProfileActorPayload,
    ProfileEnvironment,
    ProfileStatsItem,
    ProfileValidity,
    ValidityPeriodUpdate,
)
from app.services.connection_profile_queries import ConnectionProfileQueryService
from app.services.connection_profiles import (
    ConnectionProfileService,
    ProfileConflictError,
    ProfileNotFoundError,
    ProfileValidationError,
)

router = APIRouter(prefix="/connection-profiles", tags=["Connection Profiles"])

settings = get_settings()

ProfileEnvelope = ConnectionProfileEnvelope[ConnectionProfileRead]


def get_profile_service(db: Session = Depends(get_db)) -> ConnectionProfileService:
    return ConnectionProfileService(db)


def get_profile_queries(db: Session = Depends(get_db)) -> ConnectionProfileQueryService:
    return ConnectionProfileQueryService(db)


@contextmanager
def _service_errors() -> Iterator[None]:
    try:
        yield
    except ProfileNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ProfileConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ProfileValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


def _envelope(profile: ConnectionProfile) -> ProfileEnvelope:
    return ProfileEnvelope(data=ConnectionProfileRead.model_validate(profile))


def _listing(profiles: list[ConnectionProfileRead]) -> ConnectionProfileListResponse:
    return ConnectionProfileListResponse(data=profiles, count=len(profiles))


def _page_params(
    limit: Optional[int] = Query(None, ge=1, le=settings.max_page_size),
    offset: int = Query(0, ge=0),
    skip_cache: bool = Query(False, alias="skipCache"),
) -> dict:
    return {"limit": limit, "offset": offset, "skip_cache": skip_cache}


@router.post(
    "",
    response_model=ProfileEnvelope,
    status_code=status.HTTP_201_CREATED,
)
def create_connection_profile(
    payload: ConnectionProfileCreate,
    service: ConnectionProfileService = Depends(get_profile_service),
) -> ProfileEnvelope:
    with _service_errors():
        profile = service.create(payload)
    return _envelope(profile)


@router.get("", response_model=ConnectionProfileListResponse)
def list_connection_profiles(
    page: dict = Depends(_page_params),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileListResponse:
    return queries.list_profiles(**page)


@router.get("/search", response_model=ConnectionProfileListResponse)
def search_connection_profiles(
    profile_name: Optional[str] = Query(None, max_length=200),
    profile_code: Optional[str] = Query(None, max_length=100),
    server_id: Optional[int] = Query(None, ge=1),
    database_name: Optional[str] = Query(None, max_length=200),
    database_type: Optional[str] = Query(None, max_length=100),
    connection_type: Optional[str] = Query(None, max_length=50),
    load_strategy: Optional[LoadStrategy] = Query(None),
    environment: Optional[ProfileEnvironment] = Query(None),
    data_classification: Optional[DataClassification] = Query(None),
    contains_pii: Optional[bool] = Query(None),
    gdpr_applicable: Optional[bool] = Query(None),
    health_check_enabled: Optional[bool] = Query(None),
    is_active: Optional[bool] = Query(None),
    min_batch_size: Optional[int] = Query(None, ge=0),
    max_batch_size: Optional[int] = Query(None, ge=0),
    min_parallel_threads: Optional[int] = Query(None, ge=0),
    max_parallel_threads: Optional[int] = Query(None, ge=0),
    page: dict = Depends(_page_params),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileListResponse:
    filters = {
        "profile_name": profile_name,
        "profile_code": profile_code,
        "server_id": server_id,
        "database_name": database_name,
        "database_type": database_type,
        "connection_type": connection_type,
        "load_strategy": load_strategy,
        "environment": environment,
        "data_classification": data_classification,
        "contains_pii": contains_pii,
        "gdpr_applicable": gdpr_applicable,
        "health_check_enabled": health_check_enabled,
        "is_active": is_active,
        "min_batch_size": min_batch_size,
        "max_batch_size": max_batch_size,
        "min_parallel_threads": min_parallel_threads,
        "max_parallel_threads": max_parallel_threads,
    }
    with _service_errors():
        return queries.search(
            {key: value for key, value in filters.items() if value is not None},
            **page,
        )


@router.post("/bulk-activate", response_model=BulkActivateResult, response_model_exclude_none=True)
def bulk_activate_connection_profiles(
    payload: BulkActivateRequest,
    service: ConnectionProfileService = Depends(get_profile_service),
) -> BulkActivateResult:
    with _service_errors():
        return service.bulk_activate(payload.profile_ids, actor_id=payload.updated_by)


@router.post(
    "/auto-deactivate-expired",
    response_model=AutoDeactivateResult,
    response_model_exclude_none=True,
)
def auto_deactivate_expired_connection_profiles(
    payload: Optional[AutoDeactivateRequest] = Body(None),
    service: ConnectionProfileService = Depends(get_profile_service),
) -> AutoDeactivateResult:
    actor_id = payload.updated_by if payload else None
    return service.auto_deactivate_expired(actor_id=actor_id)


@router.get("/stats/by-connection-type", response_model=ConnectionProfileEnvelope[list[ProfileStatsItem]])
def connection_type_stats(
    skip_cache: bool = Query(False, alias="skipCache"),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileEnvelope[list[ProfileStatsItem]]:
    return ConnectionProfileEnvelope[list[ProfileStatsItem]](
        data=queries.stats_by_connection_type(skip_cache=skip_cache)
    )


@router.get("/stats/by-environment", response_model=ConnectionProfileEnvelope[list[ProfileStatsItem]])
def environment_stats(
    skip_cache: bool = Query(False, alias="skipCache"),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileEnvelope[list[ProfileStatsItem]]:
    return ConnectionProfileEnvelope[list[ProfileStatsItem]](
        data=queries.stats_by_environment(skip_cache=skip_cache)
    )


@router.get("/stats/data-governance", response_model=ConnectionProfileEnvelope[DataGovernanceStats])
def data_governance_stats(
    skip_cache: bool = Query(False, alias="skipCache"),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileEnvelope[DataGovernanceStats]:
    return ConnectionProfileEnvelope[DataGovernanceStats](
        data=queries.data_governance_stats(skip_cache=skip_cache)
    )


@router.get("/most-used", response_model=ConnectionProfileListResponse)
def most_used_connection_profiles(
    limit: Optional[int] = Query(None, ge=1, le=settings.max_page_size),
    skip_cache: bool = Query(False, alias="skipCache"),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileListResponse:
    return _listing(queries.most_used(limit=limit, skip_cache=skip_cache))


@router.get("/active", response_model=ConnectionProfileListResponse)
def active_connection_profiles(
    skip_cache: bool = Query(False, alias="skipCache"),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileListResponse:
    return _listing(queries.active(skip_cache=skip_cache))


@router.get("/expired", response_model=ConnectionProfileListResponse)
def expired_connection_profiles(
    skip_cache: bool = Query(False, alias="skipCache"),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileListResponse:
    return _listing(queries.expired(skip_cache=skip_cache))


@router.get("/with-pii", response_model=ConnectionProfileListResponse)
def connection_profiles_with_pii(
    skip_cache: bool = Query(False, alias="skipCache"),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileListResponse:
    return _listing(queries.with_pii(skip_cache=skip_cache))


@router.get(
    "/health-check-enabled",
    response_model=ConnectionProfileListResponse,
)
def health_check_enabled_connection_profiles(
    skip_cache: bool = Query(False, alias="skipCache"),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileListResponse:
    return _listing(queries.health_check_enabled(skip_cache=skip_cache))


@router.get(
    "/connection-type/{connection_type}",
    response_model=ConnectionProfileListResponse,
)
def connection_profiles_by_type(
    connection_type: str,
    page: dict = Depends(_page_params),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileListResponse:
    with _service_errors():
        return queries.by_connection_type(connection_type, **page)


@router.get(
    "/environment/{environment}",
    response_model=ConnectionProfileListResponse,
)
def connection_profiles_by_environment(
    environment: str,
    page: dict = Depends(_page_params),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileListResponse:
    with _service_errors():
        return queries.by_environment(environment, **page)


@router.get(
    "/server/{server_id}",
    response_model=ConnectionProfileListResponse,
)
def connection_profiles_by_server(
    server_id: int,
    page: dict = Depends(_page_params),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileListResponse:
    with _service_errors():
        return queries.by_server(server_id, **page)


@router.get(
    "/classification/{classification}",
    response_model=ConnectionProfileListResponse,
)
def connection_profiles_by_classification(
    classification: str,
    page: dict = Depends(_page_params),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileListResponse:
    with _service_errors():
        return queries.by_classification(classification, **page)


@router.get("/name/{profile_name:path}", response_model=ProfileEnvelope)
def get_connection_profile_by_name(
    profile_name: str,
    skip_cache: bool = Query(False, alias="skipCache"),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ProfileEnvelope:
    with _service_errors():
        return ProfileEnvelope(data=queries.by_name(profile_name, skip_cache=skip_cache))


@router.get("/code/{profile_code:path}", response_model=ProfileEnvelope)
def get_connection_profile_by_code(
    profile_code: str,
    skip_cache: bool = Query(False, alias="skipCache"),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ProfileEnvelope:
    with _service_errors():
        return ProfileEnvelope(data=queries.by_code(profile_code, skip_cache=skip_cache))


@router.get("/{profile_id}", response_model=ProfileEnvelope)
def get_connection_profile(
    profile_id: UUID,
    service: ConnectionProfileService = Depends(get_profile_service),
) -> ProfileEnvelope:
    with _service_errors():
        return _envelope(service.get(profile_id))


@router.put("/{profile_id}", response_model=ProfileEnvelope)
def update_connection_profile(
    profile_id: UUID,
    payload: ConnectionProfileUpdate,
    service: ConnectionProfileService = Depends(get_profile_service),
) -> ProfileEnvelope:
    with _service_errors():
        return _envelope(service.update(profile_id, payload))


@router.get("/{profile_id}/is-valid", response_model=ConnectionProfileEnvelope[ProfileValidity])
def check_connection_profile_validity(
    profile_id: UUID,
    skip_cache: bool = Query(False, alias="skipCache"),
    queries: ConnectionProfileQueryService = Depends(get_profile_queries),
) -> ConnectionProfileEnvelope[ProfileValidity]:
    with _service_errors():
        validity = queries.check_validity(profile_id, skip_cache=skip_cache)
    return ConnectionProfileEnvelope[ProfileValidity](data=validity)


@router.patch("/{profile_id}/activate", response_model=ProfileEnvelope)
def activate_connection_profile(
    profile_id: UUID,
    payload: Optional[ProfileActorPayload] = Body(None),
    service: ConnectionProfileService = Depends(get_profile_service),
) -> ProfileEnvelope:
    with _service_errors():
        profile = service.activate(profile_id, payload.updated_by if payload else None)
    return _envelope(profile)


@router.patch("/{profile_id}/deactivate", response_model=ProfileEnvelope)
def deactivate_connection_profile(
    profile_id: UUID,
    payload: Optional[ProfileActorPayload] = Body(None),
    service: ConnectionProfileService = Depends(get_profile_service),
) -> ProfileEnvelope:
    with _service_errors():
        profile = service.deactivate(profile_id, payload.updated_by if payload else None)
    return _envelope(profile)


@router.patch("/{profile_id}/mark-used", response_model=ProfileEnvelope)
def mark_connection_profile_used(
    profile_id: UUID,
    service: ConnectionProfileService = Depends(get_profile_service),
) -> ProfileEnvelope:
    with _service_errors():
        return _envelope(service.mark_used(profile_id))


@router.patch("/{profile_id}/health-check", response_model=ProfileEnvelope)
def update_connection_profile_health(
    profile_id: UUID,
    payload: HealthCheckUpdate,
    service: ConnectionProfileService = Depends(get_profile_service),
) -> ProfileEnvelope:
    with _service_errors():
        return _envelope(service.update_health_status(profile_id, payload.status))


@router.patch("/{profile_id}/validity-period", response_model=ProfileEnvelope)
def update_connection_profile_validity(
    profile_id: UUID,
    payload: ValidityPeriodUpdate,
    service: ConnectionProfileService = Depends(get_profile_service),
) -> ProfileEnvelope:
    with _service_errors():
        profile = service.update_validity_period(
            profile_id,
            payload.valid_from,
            payload.valid_to,
            actor_id=payload.updated_by,
        )
    return _envelope(profile)


__all__ = ["router"]
