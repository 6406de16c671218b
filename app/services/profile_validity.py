"""Validity window evaluation for connection profiles.

Expiry is always derived from ``valid_to`` and the evaluation time; it is never
persisted. ``valid_from`` is not consulted: a profile whose window has not started yet
is still valid while it is active.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from app.schemas.connection_profile import ensure_utc


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_expired(profile: Any, now: datetime | None = None) -> bool:
    valid_to = ensure_utc(getattr(profile, "valid_to", None))
    if valid_to is None:
        return False
    reference = ensure_utc(now) if now is not None else utcnow()
    return valid_to < reference


def is_effectively_usable(profile: Any, now: datetime | None = None) -> bool:
    return bool(getattr(profile, "is_active", False)) and not is_expired(profile, now)


__all__ = ["is_effectively_usable", "is_expired", "utcnow"]
