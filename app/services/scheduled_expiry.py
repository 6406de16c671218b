from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import timezone
from typing import Callable, Generator

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import get_settings
from app.database import SessionLocal
from app.schemas.connection_profile import AutoDeactivateResult
from app.services.connection_profiles import ConnectionProfileService

logger = logging.getLogger(__name__)

EXPIRY_SWEEP_JOB_ID = "connection-profile-expiry-sweep"


class ConnectionProfileExpiryEngine:
    """Background scheduler that periodically deactivates expired connection profiles."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.running:
            return
        settings = get_settings()
        try:
            trigger = self._build_trigger(
                settings.profile_expiry_sweep_cron,
                settings.profile_expiry_sweep_timezone,
            )
        except ValueError as exc:
            logger.warning("Expiry sweep disabled due to invalid cron expression: %s", exc)
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_sweep,
            trigger=trigger,
            id=EXPIRY_SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("Connection profile expiry sweep scheduled (%s)", settings.profile_expiry_sweep_cron)

    def shutdown(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

    def trigger_now(self) -> AutoDeactivateResult | None:
        return self.run_sweep()

    def run_sweep(self) -> AutoDeactivateResult | None:
        actor = get_settings().profile_expiry_sweep_actor
        try:
            with self._session_scope() as session:
                result = ConnectionProfileService(session).auto_deactivate_expired(actor_id=actor)
        except SQLAlchemyError:
            logger.exception("Connection profile expiry sweep failed")
            return None
        if result.errors:
            logger.warning(
                "Expiry sweep could not deactivate %d connection profile(s)",
                len(result.errors),
            )
        return result

    def _build_trigger(self, expression: str, tz_name: str | None) -> CronTrigger:
        tz = timezone.utc
        if tz_name:
            try:
                tz = ZoneInfo(tz_name)
            except ZoneInfoNotFoundError:
                logger.warning("Unknown timezone '%s' for expiry sweep; defaulting to UTC", tz_name)
        return CronTrigger.from_crontab(expression, timezone=tz)

    @contextmanager
    def _session_scope(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        session.expire_on_commit = False
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


profile_expiry_engine = ConnectionProfileExpiryEngine()


__all__ = ["ConnectionProfileExpiryEngine", "EXPIRY_SWEEP_JOB_ID", "profile_expiry_engine"]
