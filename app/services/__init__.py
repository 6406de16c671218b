from app.services.connection_profile_cache import ConnectionProfileReadCache, profile_read_cache
from app.services.connection_profile_queries import ConnectionProfileQueryService
from app.services.connection_profiles import (
    ConnectionProfileError,
    ConnectionProfileService,
    ProfileConflictError,
    ProfileNotFoundError,
    ProfileValidationError,
)
from app.services.profile_validity import is_effectively_usable, is_expired

__all__ = [
    "ConnectionProfileError",
    "ConnectionProfileQueryService",
    "ConnectionProfileReadCache",
    "ConnectionProfileService",
    "ProfileConflictError",
    "ProfileNotFoundError",
    "ProfileValidationError",
    "is_effectively_usable",
    "is_expired",
    "profile_read_cache",
]
