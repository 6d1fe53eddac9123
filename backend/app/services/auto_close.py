"""
End-of-day auto closure of working sessions.

Every session still open (active or paused) is completed at the first daily
cutoff after it started, once that cutoff has passed. Sessions left over
from earlier days (a failed or missed run) are picked up by the next run and
closed at their own day's cutoff. Each session is closed in its own database
session and transaction: one failure is logged, written to the dead letter
queue and reported, and the run moves on.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time, date, timedelta
from typing import Callable, List, Optional

from croniter import croniter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.core.config import settings
from backend.app.core.exceptions import InvalidStateError
from backend.app.core.redis_client import acquire_lock, release_lock
from backend.app.core.timeutils import (
    as_utc, local_instant, local_today, operational_tz, parse_clock, utcnow
)
from backend.app.models.dlq import DeadLetterQueue, DLQStatus
from backend.app.models.enums import OPEN_SESSION_STATUSES
from backend.app.models.working_session import WorkingSession
from backend.app.services.audit import AuditAction, log_event
from backend.app.services.directory import PdvCatalog, UserDirectory
from backend.app.services.gps_tracking import last_valid_sample
from backend.app.services.working_sessions import WorkingSessionManager

logger = logging.getLogger("fieldtrack.auto_close")

TASK_NAME = "close_working_session"
LOCK_KEY = "fieldtrack:auto-close:{day}"


@dataclass
class ClosureFailure:
    session_id: int
    user_id: int
    reason: str


@dataclass
class ClosureReport:
    run_date: date
    cutoff: datetime
    closed: List[int] = field(default_factory=list)
    failed: List[ClosureFailure] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    lock_acquired: bool = True


@dataclass
class _Target:
    session_id: int
    user_id: int
    started_at: datetime
    start_latitude: Optional[float]
    start_longitude: Optional[float]


class SessionAutoCloser:
    """Batch closer for sessions left open past the daily cutoff."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        redis=None,
        user_directory_factory: Callable[[AsyncSession], UserDirectory] = UserDirectory,
        pdv_catalog_factory: Callable[[AsyncSession], PdvCatalog] = PdvCatalog,
        tz_name: Optional[str] = None,
        default_cutoff: Optional[time] = None,
        lock_ttl_seconds: Optional[int] = None
    ):
        self.session_factory = session_factory
        self.redis = redis
        self.user_directory_factory = user_directory_factory
        self.pdv_catalog_factory = pdv_catalog_factory
        self.tz_name = tz_name or settings.operational_timezone
        self.default_cutoff = default_cutoff or parse_clock(settings.auto_close_time)
        self.lock_ttl_seconds = lock_ttl_seconds or settings.auto_close_lock_ttl_seconds

    async def run_daily_closure(
        self,
        cutoff: Optional[time] = None,
        now: Optional[datetime] = None
    ) -> ClosureReport:
        """
        Close every open session whose cutoff has passed.

        A session's cutoff is the cutoff time on the local day it started, or
        on the following day when it started after that day's cutoff. Sessions
        whose cutoff is still ahead of `now` are reported as skipped, so a run
        during the working day leaves live sessions alone.

        Args:
            cutoff: Local wall-clock close time; configured default when omitted
            now: Reference instant used to determine "today" and what has passed

        Returns:
            Report of closed, failed and skipped session ids

        Raises:
            Exception: Only when the work list itself cannot be read
        """
        now = as_utc(now) or utcnow()
        today = local_today(now, self.tz_name)
        clock = cutoff or self.default_cutoff
        cutoff_at = local_instant(today, clock, self.tz_name)
        report = ClosureReport(run_date=today, cutoff=cutoff_at)

        lock_key = LOCK_KEY.format(day=today.isoformat())
        lock_owner = str(uuid.uuid4())
        if self.redis is not None:
            if not await acquire_lock(self.redis, lock_key, lock_owner, self.lock_ttl_seconds):
                logger.warning("Auto closure for %s already running, skipping", today)
                report.lock_acquired = False
                return report

        try:
            targets = await self._load_targets(now)
            logger.info("Auto closure %s: %d open session(s), cutoff %s", today, len(targets), cutoff_at.isoformat())

            for target in targets:
                target_cutoff = self.cutoff_for(target.started_at, clock)
                if target_cutoff > now:
                    logger.info(
                        "Session %s not due until %s, not auto-closed",
                        target.session_id, target_cutoff.isoformat()
                    )
                    report.skipped.append(target.session_id)
                    continue
                await self._close_one(target, target_cutoff, report)
        finally:
            if self.redis is not None:
                await release_lock(self.redis, lock_key, lock_owner)

        logger.info(
            "Auto closure %s finished: closed=%d failed=%d skipped=%d",
            today, len(report.closed), len(report.failed), len(report.skipped)
        )
        return report

    def cutoff_for(self, started_at: datetime, clock: time) -> datetime:
        """First cutoff instant at or after the session start."""
        started_at = as_utc(started_at)
        day = local_today(started_at, self.tz_name)
        cutoff_at = local_instant(day, clock, self.tz_name)
        if started_at > cutoff_at:
            cutoff_at = local_instant(day + timedelta(days=1), clock, self.tz_name)
        return cutoff_at

    async def _load_targets(self, now: datetime) -> List[_Target]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(
                    WorkingSession.id,
                    WorkingSession.user_id,
                    WorkingSession.started_at,
                    WorkingSession.start_latitude,
                    WorkingSession.start_longitude
                ).where(
                    WorkingSession.status.in_(OPEN_SESSION_STATUSES),
                    WorkingSession.started_at <= now
                ).order_by(WorkingSession.started_at, WorkingSession.id)
            )
            return [_Target(*row) for row in result.all()]

    async def _close_one(self, target: _Target, cutoff_at: datetime, report: ClosureReport) -> None:
        async with self.session_factory() as db:
            manager = WorkingSessionManager(
                db,
                user_directory=self.user_directory_factory(db),
                pdv_catalog=self.pdv_catalog_factory(db)
            )
            try:
                last_point = await last_valid_sample(db, target.user_id, target.started_at, cutoff_at)
                if last_point:
                    latitude, longitude = last_point.latitude, last_point.longitude
                else:
                    latitude, longitude = target.start_latitude, target.start_longitude

                await manager.close(
                    target.session_id,
                    end_time=cutoff_at,
                    latitude=latitude,
                    longitude=longitude,
                    automatic=True
                )
            except InvalidStateError:
                logger.info("Session %s already closed, skipping", target.session_id)
                report.skipped.append(target.session_id)
                return
            except Exception as exc:
                logger.exception("Auto closure failed for session %s (user %s)", target.session_id, target.user_id)
                report.failed.append(ClosureFailure(target.session_id, target.user_id, str(exc)))
                await self._record_failure(target, exc)
                return

        report.closed.append(target.session_id)
        await self._mark_processed(target.session_id)

    async def _record_failure(self, target: _Target, exc: Exception) -> None:
        """Upsert a dead letter entry for the session, in its own transaction."""
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(DeadLetterQueue).where(
                        DeadLetterQueue.task_name == TASK_NAME,
                        DeadLetterQueue.reference_id == target.session_id,
                        DeadLetterQueue.status == DLQStatus.FAILED
                    )
                )
                item = result.scalars().first()
                if item:
                    item.retry_count += 1
                    item.error_message = str(exc)
                    item.last_retry_at = utcnow()
                else:
                    db.add(DeadLetterQueue(
                        task_name=TASK_NAME,
                        reference_id=target.session_id,
                        error_message=str(exc),
                        payload={"session_id": target.session_id, "user_id": target.user_id},
                        status=DLQStatus.FAILED
                    ))
                await db.commit()

                await log_event(
                    db=db,
                    action=AuditAction.SESSION_AUTO_CLOSE_FAILED,
                    entity_type="working_session",
                    entity_id=target.session_id,
                    metadata={"error": str(exc)}
                )
        except Exception:
            logger.exception("Could not record auto closure failure for session %s", target.session_id)

    async def _mark_processed(self, session_id: int) -> None:
        async with self.session_factory() as db:
            result = await db.execute(
                select(DeadLetterQueue).where(
                    DeadLetterQueue.task_name == TASK_NAME,
                    DeadLetterQueue.reference_id == session_id,
                    DeadLetterQueue.status == DLQStatus.FAILED
                )
            )
            items = result.scalars().all()
            for item in items:
                item.status = DLQStatus.PROCESSED
            if items:
                await db.commit()


def next_run_at(cron_expr: str, now: Optional[datetime] = None, tz_name: Optional[str] = None) -> datetime:
    """Next cron fire time, evaluated in the operational timezone."""
    local_now = (as_utc(now) or utcnow()).astimezone(operational_tz(tz_name))
    return croniter(cron_expr, local_now).get_next(datetime)


async def auto_close_loop(closer: SessionAutoCloser, cron_expr: Optional[str] = None) -> None:
    """Background loop that runs the daily closure on its cron schedule."""
    cron_expr = cron_expr or settings.auto_close_cron
    logger.info("Auto closure scheduler started (cron '%s', tz %s)", cron_expr, closer.tz_name)

    while True:
        run_at = next_run_at(cron_expr, tz_name=closer.tz_name)
        delay = max((as_utc(run_at) - utcnow()).total_seconds(), 0)
        await asyncio.sleep(delay)

        try:
            await closer.run_daily_closure(now=as_utc(run_at))
        except Exception:
            logger.exception("Auto closure run failed")
