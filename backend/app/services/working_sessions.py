"""
Working session state machine.

    (none) --start--> active <--pause/resume--> paused
    active|paused --close--> completed (terminal)

At most one session per user is open (active or paused). Every transition is
a compare-and-swap UPDATE on the expected source status, so concurrent
writers get exactly one winner; `start` relies on the partial unique index
for the same guarantee. Aggregates are computed once, at close, and never
recomputed.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Sequence

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from backend.app.core.timeutils import as_utc, local_day_bounds, local_today, utcnow, whole_minutes
from backend.app.models.enums import OPEN_SESSION_STATUSES, SessionStatus
from backend.app.models.working_session import WorkingSession
from backend.app.services.audit import AuditAction, log_event_after_commit
from backend.app.services.directory import PdvCatalog, UserDirectory
from backend.app.services.distance import total_distance_km
from backend.app.services.geo import is_valid_coordinate
from backend.app.services.pdv_visits import PdvVisitTracker

logger = logging.getLogger("fieldtrack.sessions")

AUTO_CLOSE_NOTE = "Closed automatically at {cutoff}."
NOTE_SEPARATOR = " | "


@dataclass
class SessionSnapshot:
    """Live metrics for an open session."""
    session: WorkingSession
    current_duration_minutes: int
    pdvs_visited_today: int


class WorkingSessionManager:
    """Orchestrates session transitions and close-time aggregates."""

    def __init__(
        self,
        db: AsyncSession,
        user_directory: Optional[UserDirectory] = None,
        pdv_catalog: Optional[PdvCatalog] = None,
        visit_tracker: Optional[PdvVisitTracker] = None
    ):
        self.db = db
        self.user_directory = user_directory or UserDirectory(db)
        self.pdv_catalog = pdv_catalog or PdvCatalog(db)
        self.visit_tracker = visit_tracker or PdvVisitTracker(db, pdv_catalog=self.pdv_catalog)

    async def get_session(self, session_id: int) -> WorkingSession:
        result = await self.db.execute(
            select(WorkingSession).where(WorkingSession.id == session_id)
        )
        session = result.scalar_one_or_none()
        if not session:
            raise NotFoundError("Working session", session_id)
        return session

    async def find_open_session(self, user_id: int) -> Optional[WorkingSession]:
        result = await self.db.execute(
            select(WorkingSession).where(
                WorkingSession.user_id == user_id,
                WorkingSession.status.in_(OPEN_SESSION_STATUSES)
            )
        )
        return result.scalars().first()

    async def start(
        self,
        user_id: int,
        latitude: float,
        longitude: float,
        notes: Optional[str] = None,
        started_at: Optional[datetime] = None
    ) -> WorkingSession:
        """
        Open a new workday for a representative.

        Raises:
            NotFoundError: Unknown user
            ValidationError: Missing or out-of-range coordinates
            ConflictError: The user already has an open session
        """
        if not is_valid_coordinate(latitude, longitude):
            raise ValidationError(
                "Session start requires valid latitude and longitude",
                details={"latitude": latitude, "longitude": longitude}
            )

        await self.user_directory.get_user(user_id)

        existing = await self.find_open_session(user_id)
        if existing:
            raise ConflictError(
                "User already has an open working session",
                details={"active_session_id": existing.id, "user_id": user_id}
            )

        session = WorkingSession(
            user_id=user_id,
            status=SessionStatus.ACTIVE,
            started_at=as_utc(started_at) or utcnow(),
            start_latitude=latitude,
            start_longitude=longitude,
            total_pdvs_visited=0,
            notes=notes
        )
        self.db.add(session)
        try:
            await self.db.flush()  # Raises IntegrityError if a concurrent start won
        except IntegrityError:
            await self.db.rollback()
            logger.warning("Concurrent session start rejected user_id=%s", user_id)
            raise ConflictError(
                "User already has an open working session",
                details={"user_id": user_id}
            )

        await self.db.commit()
        await self.db.refresh(session)

        logger.info("Session started session_id=%s user_id=%s", session.id, user_id)
        await log_event_after_commit(
            self.db,
            entity=session,
            action=AuditAction.SESSION_STARTED,
            actor_id=user_id,
            entity_type="working_session",
            entity_id=session.id,
            metadata={"latitude": latitude, "longitude": longitude}
        )
        return session

    async def pause(self, session_id: int) -> WorkingSession:
        """active -> paused"""
        session = await self._transition(session_id, (SessionStatus.ACTIVE,), SessionStatus.PAUSED, "pause")
        await log_event_after_commit(
            self.db,
            entity=session,
            action=AuditAction.SESSION_PAUSED,
            actor_id=session.user_id,
            entity_type="working_session",
            entity_id=session.id
        )
        return session

    async def resume(self, session_id: int) -> WorkingSession:
        """paused -> active"""
        session = await self._transition(session_id, (SessionStatus.PAUSED,), SessionStatus.ACTIVE, "resume")
        await log_event_after_commit(
            self.db,
            entity=session,
            action=AuditAction.SESSION_RESUMED,
            actor_id=session.user_id,
            entity_type="working_session",
            entity_id=session.id
        )
        return session

    async def _transition(
        self,
        session_id: int,
        expected: Sequence[SessionStatus],
        target: SessionStatus,
        action: str
    ) -> WorkingSession:
        session = await self.get_session(session_id)
        if session.status not in expected:
            raise InvalidStateError("Working session", session_id, session.status, action)

        await self._compare_and_swap(session, expected, {"status": target}, action)
        logger.info("Session %s session_id=%s user_id=%s", target.value, session.id, session.user_id)
        return session

    async def _compare_and_swap(
        self,
        session: WorkingSession,
        expected: Sequence[SessionStatus],
        values: dict,
        action: str
    ) -> None:
        result = await self.db.execute(
            update(WorkingSession)
            .where(WorkingSession.id == session.id, WorkingSession.status.in_(expected))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            await self.db.refresh(session)
            logger.warning("Lost transition race session_id=%s action=%s", session.id, action)
            raise InvalidStateError("Working session", session.id, session.status, action)

        await self.db.commit()
        await self.db.refresh(session)

    async def close(
        self,
        session_id: int,
        end_time: Optional[datetime] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        notes: Optional[str] = None,
        automatic: bool = False
    ) -> WorkingSession:
        """
        Complete a session and freeze its aggregates.

        Distance and visit count are read before the guarded update; if any
        read fails the transaction is rolled back, the session stays open and
        the error propagates.

        Args:
            session_id: Session to close
            end_time: Close instant; now when omitted
            latitude, longitude: End position
            notes: Free text appended to the session notes
            automatic: Closed by the scheduled job (adds a system note)

        Raises:
            NotFoundError: Unknown session
            InvalidStateError: Session already completed (or closed concurrently)
            ValidationError: Bad coordinates or end before start
        """
        session = await self.get_session(session_id)
        if session.status not in OPEN_SESSION_STATUSES:
            raise InvalidStateError("Working session", session_id, session.status, "close")

        if latitude is not None or longitude is not None:
            if not is_valid_coordinate(latitude, longitude):
                raise ValidationError(
                    "Session close requires valid latitude and longitude",
                    details={"latitude": latitude, "longitude": longitude}
                )

        ended_at = as_utc(end_time) or utcnow()
        started_at = as_utc(session.started_at)
        if ended_at < started_at:
            raise ValidationError(
                "Session cannot end before it started",
                details={"started_at": started_at.isoformat(), "ended_at": ended_at.isoformat()}
            )

        try:
            distance_km = await total_distance_km(self.db, session.user_id, started_at, ended_at)
            route_id = await self.user_directory.assigned_route_id(session.user_id)
            pdvs_visited = await self.visit_tracker.count_completed_in_window(
                session.user_id, started_at, ended_at, route_id=route_id
            )
        except Exception:
            await self.db.rollback()
            raise

        note_parts = [n for n in (session.notes, notes) if n]
        if automatic:
            note_parts.append(AUTO_CLOSE_NOTE.format(cutoff=ended_at.isoformat()))

        await self._compare_and_swap(
            session,
            OPEN_SESSION_STATUSES,
            {
                "status": SessionStatus.COMPLETED,
                "ended_at": ended_at,
                "end_latitude": latitude,
                "end_longitude": longitude,
                "total_duration_minutes": whole_minutes(started_at, ended_at),
                "total_distance_km": distance_km,
                "total_pdvs_visited": pdvs_visited,
                "notes": NOTE_SEPARATOR.join(note_parts) if note_parts else None,
                "closed_by": "system" if automatic else "user",
            },
            "close"
        )

        logger.info(
            "Session closed session_id=%s user_id=%s automatic=%s duration_minutes=%s distance_km=%.3f pdvs_visited=%s",
            session.id, session.user_id, automatic, session.total_duration_minutes,
            distance_km, pdvs_visited
        )
        await log_event_after_commit(
            self.db,
            entity=session,
            action=AuditAction.SESSION_AUTO_CLOSED if automatic else AuditAction.SESSION_CLOSED,
            actor_id=None if automatic else session.user_id,
            entity_type="working_session",
            entity_id=session.id,
            metadata={
                "total_duration_minutes": session.total_duration_minutes,
                "total_distance_km": distance_km,
                "total_pdvs_visited": pdvs_visited
            }
        )
        return session

    async def current_session(self, user_id: int, now: Optional[datetime] = None) -> Optional[SessionSnapshot]:
        """
        The user's open session with live metrics, or None.
        """
        session = await self.find_open_session(user_id)
        if not session:
            return None

        now = as_utc(now) or utcnow()
        day_start, day_end = local_day_bounds(local_today(now))
        visited = await self.visit_tracker.count_valid_checked_in(user_id, day_start, day_end)
        return SessionSnapshot(
            session=session,
            current_duration_minutes=max(whole_minutes(session.started_at, now), 0),
            pdvs_visited_today=visited
        )

    async def history(
        self,
        user_id: int,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 10
    ) -> List[WorkingSession]:
        """Completed sessions of a user, newest first, filtered by local start date."""
        query = select(WorkingSession).where(
            WorkingSession.user_id == user_id,
            WorkingSession.status == SessionStatus.COMPLETED
        )
        if date_from:
            query = query.where(WorkingSession.started_at >= local_day_bounds(date_from)[0])
        if date_to:
            query = query.where(WorkingSession.started_at <= local_day_bounds(date_to)[1])

        result = await self.db.execute(query.order_by(WorkingSession.started_at.desc()).limit(limit))
        return list(result.scalars().all())

    async def count_open_sessions(self, user_id: int) -> int:
        """Should be 0 or 1."""
        result = await self.db.execute(
            select(func.count(WorkingSession.id)).where(
                WorkingSession.user_id == user_id,
                WorkingSession.status.in_(OPEN_SESSION_STATUSES)
            )
        )
        return result.scalar()
