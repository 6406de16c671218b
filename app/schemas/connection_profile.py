import re
from datetime import datetime, time, timezone
from enum import Enum
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar
from uuid import UUID

from pydantic import (
    AfterValidator,
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    SerializerFunctionWrapHandler,
    field_validator,
    model_serializer,
)

_DATE_ONLY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _parse_date_only(value: Any) -> Any:
    if isinstance(value, str):
        candidate = value.strip()
        if _DATE_ONLY_PATTERN.match(candidate):
            parsed = datetime.strptime(candidate, "%Y-%m-%d").date()
            return datetime.combine(parsed, time.min, tzinfo=timezone.utc)
        return candidate
    return value


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDateTime = Annotated[datetime, BeforeValidator(_parse_date_only), AfterValidator(ensure_utc)]


class ConnectionType(str, Enum):
    DATABASE = "database"
    API = "api"
    SFTP = "sftp"
    FTP = "ftp"
    S3 = "s3"
    AZURE_BLOB = "azure_blob"
    KAFKA = "kafka"
    WEBHOOK = "webhook"


class LoadStrategy(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"
    DELTA = "delta"
    CDC = "cdc"
    MERGE = "merge"
    APPEND = "append"
    UPSERT = "upsert"


class ProfileEnvironment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    UAT = "uat"


class DataClassification(str, Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"


class HealthCheckStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


def _normalize_connection_type(value: Any) -> Any:
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, str):
        return value.strip().lower()
    return value


ConnectionTypeValue = Annotated[
    str,
    BeforeValidator(_normalize_connection_type),
    Field(min_length=1, max_length=50),
]


def _stringify_actor(value: Any) -> Any:
    # Console clients send numeric user ids.
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


ActorId = Annotated[Optional[str], BeforeValidator(_stringify_actor), Field(max_length=200)]


class ConnectionProfileBase(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    profile_name: str = Field(..., min_length=1, max_length=200)
    profile_code: str = Field(..., min_length=1, max_length=100)
    connection_type: ConnectionTypeValue
    server_id: Optional[int] = Field(None, ge=1)
    database_name: Optional[str] = Field(None, max_length=200)
    database_type: Optional[str] = Field(None, max_length=100)
    load_strategy: LoadStrategy
    sync_column_name: Optional[str] = Field(None, max_length=200)
    sync_column_type: Optional[str] = Field(None, max_length=100)
    batch_size: int = Field(1000, gt=0)
    parallel_threads: int = Field(1, gt=0)
    min_pool_size: int = Field(1, gt=0)
    max_pool_size: int = Field(10, gt=0)
    connection_timeout_seconds: int = Field(30, gt=0)
    idle_timeout_seconds: int = Field(300, gt=0)
    max_retries: int = Field(3, gt=0)
    retry_backoff_multiplier: float = Field(2.0, gt=0)
    circuit_breaker_threshold: int = Field(5, gt=0)
    health_check_enabled: bool = False
    health_check_query: Optional[str] = None
    data_classification: DataClassification = DataClassification.INTERNAL
    contains_pii: bool = False
    gdpr_applicable: bool = False
    environment: ProfileEnvironment
    valid_from: UtcDateTime
    valid_to: Optional[UtcDateTime] = None
    encryption_key_version: int = Field(1, gt=0)
    metadata: Optional[dict[str, Any]] = None

    @field_validator("profile_name", "profile_code")
    @classmethod
    def _strip_identifier(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class ConnectionProfileCreate(ConnectionProfileBase):
    created_by: ActorId = None


class ConnectionProfileUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    profile_name: Optional[str] = Field(None, min_length=1, max_length=200)
    profile_code: Optional[str] = Field(None, min_length=1, max_length=100)
    connection_type: Optional[ConnectionTypeValue] = None
    server_id: Optional[int] = Field(None, ge=1)
    database_name: Optional[str] = Field(None, max_length=200)
    database_type: Optional[str] = Field(None, max_length=100)
    load_strategy: Optional[LoadStrategy] = None
    sync_column_name: Optional[str] = Field(None, max_length=200)
    sync_column_type: Optional[str] = Field(None, max_length=100)
    batch_size: Optional[int] = Field(None, gt=0)
    parallel_threads: Optional[int] = Field(None, gt=0)
    min_pool_size: Optional[int] = Field(None, gt=0)
    max_pool_size: Optional[int] = Field(None, gt=0)
    connection_timeout_seconds: Optional[int] = Field(None, gt=0)
    idle_timeout_seconds: Optional[int] = Field(None, gt=0)
    max_retries: Optional[int] = Field(None, gt=0)
    retry_backoff_multiplier: Optional[float] = Field(None, gt=0)
    circuit_breaker_threshold: Optional[int] = Field(None, gt=0)
    health_check_enabled: Optional[bool] = None
    health_check_query: Optional[str] = None
    last_health_check_status: Optional[HealthCheckStatus] = None
    last_health_check_at: Optional[UtcDateTime] = None
    data_classification: Optional[DataClassification] = None
    contains_pii: Optional[bool] = None
    gdpr_applicable: Optional[bool] = None
    environment: Optional[ProfileEnvironment] = None
    is_active: Optional[bool] = None
    valid_from: Optional[UtcDateTime] = None
    valid_to: Optional[UtcDateTime] = None
    last_used_at: Optional[UtcDateTime] = None
    encryption_key_version: Optional[int] = Field(None, gt=0)
    metadata: Optional[dict[str, Any]] = None
    updated_by: ActorId = None

    @field_validator("profile_name", "profile_code")
    @classmethod
    def _strip_identifier(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        stripped = value.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped


class ConnectionProfileRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    profile_name: str
    profile_code: str
    connection_type: str
    server_id: Optional[int] = None
    database_name: Optional[str] = None
    database_type: Optional[str] = None
    load_strategy: str
    sync_column_name: Optional[str] = None
    sync_column_type: Optional[str] = None
    batch_size: int
    parallel_threads: int
    min_pool_size: int
    max_pool_size: int
    connection_timeout_seconds: int
    idle_timeout_seconds: int
    max_retries: int
    retry_backoff_multiplier: float
    circuit_breaker_threshold: int
    health_check_enabled: bool
    health_check_query: Optional[str] = None
    last_health_check_at: Optional[UtcDateTime] = None
    last_health_check_status: Optional[str] = None
    data_classification: str
    contains_pii: bool
    gdpr_applicable: bool
    environment: str
    is_active: bool
    valid_from: UtcDateTime
    valid_to: Optional[UtcDateTime] = None
    last_used_at: Optional[UtcDateTime] = None
    encryption_key_version: int
    created_at: UtcDateTime
    updated_at: UtcDateTime
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    # ORM rows expose the JSON column as ``profile_metadata``.
    metadata: Optional[dict[str, Any]] = Field(
        None,
        validation_alias=AliasChoices("profile_metadata", "metadata"),
    )


class ProfileActorPayload(BaseModel):
    updated_by: ActorId = None


class HealthCheckUpdate(BaseModel):
    status: HealthCheckStatus


class ValidityPeriodUpdate(BaseModel):
    valid_from: UtcDateTime
    valid_to: Optional[UtcDateTime] = None
    updated_by: ActorId = None


class BulkActivateRequest(BaseModel):
    profile_ids: list[UUID] = Field(..., min_length=1)
    updated_by: ActorId = None


class ProfileOperationError(BaseModel):
    id: str
    message: str


class BulkActivateResult(BaseModel):
    activated: int
    total: int
    errors: Optional[list[ProfileOperationError]] = None


class AutoDeactivateRequest(BaseModel):
    updated_by: ActorId = None


class AutoDeactivateResult(BaseModel):
    deactivated: int
    errors: Optional[list[ProfileOperationError]] = None


class ProfileSearchQuery(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    profile_name: Optional[str] = None
    profile_code: Optional[str] = None
    server_id: Optional[int] = None
    database_name: Optional[str] = None
    database_type: Optional[str] = None
    connection_type: Optional[ConnectionTypeValue] = None
    load_strategy: Optional[LoadStrategy] = None
    environment: Optional[ProfileEnvironment] = None
    data_classification: Optional[DataClassification] = None
    contains_pii: Optional[bool] = None
    gdpr_applicable: Optional[bool] = None
    health_check_enabled: Optional[bool] = None
    is_active: Optional[bool] = None
    min_batch_size: Optional[int] = Field(None, ge=0)
    max_batch_size: Optional[int] = Field(None, ge=0)
    min_parallel_threads: Optional[int] = Field(None, ge=0)
    max_parallel_threads: Optional[int] = Field(None, ge=0)


class Pagination(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    limit: int
    offset: int
    total: int
    has_more: bool = Field(False, alias="hasMore")


QuerySource = Literal["cache", "database", "database-forced"]

T = TypeVar("T")


class ConnectionProfileEnvelope(BaseModel, Generic[T]):
    success: bool = True
    data: T


class ConnectionProfileListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    data: list[ConnectionProfileRead]
    count: Optional[int] = None
    pagination: Optional[Pagination] = None
    source: Optional[QuerySource] = None

    @model_serializer(mode="wrap")
    def _omit_empty_envelope_fields(self, handler: SerializerFunctionWrapHandler):
        # Only the envelope drops unset keys; profile rows keep their nulls.
        data = handler(self)
        for key in ("count", "pagination", "source"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


class ProfileStatsItem(BaseModel):
    key: str
    count: int


class DataGovernanceStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    classification_counts: dict[str, int] = Field(default_factory=dict, alias="classificationCounts")
    pii_count: int = Field(0, alias="piiCount")
    gdpr_count: int = Field(0, alias="gdprCount")
    total: int = 0


class ProfileValidity(BaseModel):
    id: UUID
    is_valid: bool
