from app.schemas.connection_profile import (
    AutoDeactivateRequest,
    AutoDeactivateResult,
    BulkActivateRequest,
    BulkActivateResult,
    ConnectionProfileCreate,
    ConnectionProfileEnvelope,
    ConnectionProfileListResponse,
    ConnectionProfileRead,
    ConnectionProfileUpdate,
    ConnectionType,
    DataClassification,
    DataGovernanceStats,
    HealthCheckStatus,
    HealthCheckUpdate,
    LoadStrategy,
    Pagination,
    ProfileActorPayload,
    ProfileEnvironment,
    ProfileOperationError,
    ProfileSearchQuery,
    ProfileStatsItem,
    ProfileValidity,
    ValidityPeriodUpdate,
)

__all__ = [
    "AutoDeactivateRequest",
    "AutoDeactivateResult",
    "BulkActivateRequest",
    "BulkActivateResult",
    "ConnectionProfileCreate",
    "ConnectionProfileEnvelope",
    "ConnectionProfileListResponse",
    "ConnectionProfileRead",
    "ConnectionProfileUpdate",
    "ConnectionType",
    "DataClassification",
    "DataGovernanceStats",
    "HealthCheckStatus",
    "HealthCheckUpdate",
    "LoadStrategy",
    "Pagination",
    "ProfileActorPayload",
    "ProfileEnvironment",
    "ProfileOperationError",
    "ProfileSearchQuery",
    "ProfileStatsItem",
    "ProfileValidity",
    "ValidityPeriodUpdate",
]
