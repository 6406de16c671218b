from app.models.connection_profile import ConnectionProfile, TimestampMixin

__all__ = [
    "ConnectionProfile",
    "TimestampMixin",
]
