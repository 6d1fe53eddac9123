"""
PDV visit tracking.

Check-in records the representative's distance to the PDV and whether the
geofence check passed; a failed geofence is recorded, not blocked.
Check-out completes the visit and fixes its duration.

State machine:
    in_progress -> completed   (check-out)
    in_progress -> cancelled   (external trigger)
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from backend.app.core.timeutils import as_utc, utcnow, whole_minutes
from backend.app.models.enums import OPEN_SESSION_STATUSES, VisitStatus
from backend.app.models.pdv_visit import PdvVisit
from backend.app.models.working_session import WorkingSession
from backend.app.services.audit import AuditAction, log_event_after_commit
from backend.app.services.directory import PdvCatalog
from backend.app.services.geo import haversine_m, is_valid_coordinate

logger = logging.getLogger("fieldtrack.visits")


class PdvVisitTracker:
    """Check-in/check-out of representatives at points of sale."""

    def __init__(
        self,
        db: AsyncSession,
        pdv_catalog: Optional[PdvCatalog] = None,
        geofence_radius_m: Optional[float] = None
    ):
        self.db = db
        self.pdv_catalog = pdv_catalog or PdvCatalog(db)
        self.geofence_radius_m = (
            geofence_radius_m if geofence_radius_m is not None else settings.geofence_radius_meters
        )

    async def get_visit(self, visit_id: int) -> PdvVisit:
        result = await self.db.execute(select(PdvVisit).where(PdvVisit.id == visit_id))
        visit = result.scalar_one_or_none()
        if not visit:
            raise NotFoundError("PDV visit", visit_id)
        return visit

    async def find_in_progress_visit(self, user_id: int) -> Optional[PdvVisit]:
        result = await self.db.execute(
            select(PdvVisit).where(
                PdvVisit.user_id == user_id,
                PdvVisit.visit_status == VisitStatus.IN_PROGRESS
            ).order_by(PdvVisit.check_in_at.desc())
        )
        return result.scalars().first()

    async def check_in(
        self,
        user_id: int,
        pdv_id: int,
        latitude: float,
        longitude: float,
        recorded_at: Optional[datetime] = None,
        is_mock_location: bool = False,
        notes: Optional[str] = None
    ) -> PdvVisit:
        """
        Check a representative in at a PDV.

        Args:
            user_id: Representative
            pdv_id: Target PDV (catalog id)
            latitude, longitude: Device position at check-in
            recorded_at: Client timestamp; now when omitted
            is_mock_location: Device-reported spoofing flag, kept for audit
            notes: Free text

        Returns:
            The in-progress visit with distance and geofence result

        Raises:
            ValidationError: Coordinates missing or out of range
            NotFoundError: PDV not in catalog
            ConflictError: No open working session, or another visit in progress
        """
        if not is_valid_coordinate(latitude, longitude):
            raise ValidationError(
                "Check-in requires valid latitude and longitude",
                details={"latitude": latitude, "longitude": longitude}
            )

        pdv = await self.pdv_catalog.get_pdv(pdv_id)

        open_session = await self.db.execute(
            select(WorkingSession.id).where(
                WorkingSession.user_id == user_id,
                WorkingSession.status.in_(OPEN_SESSION_STATUSES)
            ).limit(1)
        )
        if open_session.scalar_one_or_none() is None:
            raise ConflictError(
                "Check-in requires an open working session",
                details={"user_id": user_id}
            )

        active_visit = await self.find_in_progress_visit(user_id)
        if active_visit:
            raise ConflictError(
                "User already has a visit in progress",
                details={"active_visit_id": active_visit.id, "active_pdv_id": active_visit.pdv_id}
            )

        distance_m = haversine_m(latitude, longitude, pdv.latitude, pdv.longitude)
        within_geofence = distance_m <= self.geofence_radius_m

        visit = PdvVisit(
            user_id=user_id,
            pdv_id=pdv_id,
            check_in_at=as_utc(recorded_at) or utcnow(),
            latitude=latitude,
            longitude=longitude,
            distance_to_pdv=round(distance_m, 2),
            is_valid=within_geofence,
            used_mock_location=bool(is_mock_location),
            visit_status=VisitStatus.IN_PROGRESS,
            notes=notes
        )
        self.db.add(visit)
        await self.db.commit()
        await self.db.refresh(visit)

        if within_geofence:
            logger.info("Check-in visit_id=%s user_id=%s pdv_id=%s distance_m=%.1f",
                        visit.id, user_id, pdv_id, distance_m)
        else:
            logger.warning(
                "Check-in outside geofence visit_id=%s user_id=%s pdv_id=%s distance_m=%.1f radius_m=%.1f",
                visit.id, user_id, pdv_id, distance_m, self.geofence_radius_m
            )
        return visit

    async def check_out(
        self,
        visit_id: int,
        recorded_at: Optional[datetime] = None,
        notes: Optional[str] = None
    ) -> PdvVisit:
        """
        Complete an in-progress visit.

        Raises:
            NotFoundError: Unknown visit
            InvalidStateError: Visit is not in progress
            ValidationError: Check-out earlier than check-in
        """
        visit = await self.get_visit(visit_id)
        if visit.visit_status != VisitStatus.IN_PROGRESS:
            raise InvalidStateError("PDV visit", visit_id, visit.visit_status, "check out")

        check_out_at = as_utc(recorded_at) or utcnow()
        check_in_at = as_utc(visit.check_in_at)
        if check_out_at < check_in_at:
            raise ValidationError(
                "Check-out cannot be earlier than check-in",
                details={
                    "check_in_at": check_in_at.isoformat(),
                    "check_out_at": check_out_at.isoformat()
                }
            )

        values = {
            "check_out_at": check_out_at,
            "duration_minutes": whole_minutes(check_in_at, check_out_at),
            "visit_status": VisitStatus.COMPLETED,
        }
        if notes:
            values["notes"] = f"{visit.notes}\n\nCheck-out: {notes}" if visit.notes else notes

        await self._transition(visit, VisitStatus.IN_PROGRESS, values, "check out")

        logger.info("Check-out visit_id=%s duration_minutes=%s", visit.id, visit.duration_minutes)
        return visit

    async def cancel(self, visit_id: int) -> PdvVisit:
        """
        Cancel an in-progress visit (triggered outside the visit flow).

        Raises:
            NotFoundError: Unknown visit
            InvalidStateError: Visit is not in progress
        """
        visit = await self.get_visit(visit_id)
        if visit.visit_status != VisitStatus.IN_PROGRESS:
            raise InvalidStateError("PDV visit", visit_id, visit.visit_status, "cancel")

        await self._transition(visit, VisitStatus.IN_PROGRESS, {"visit_status": VisitStatus.CANCELLED}, "cancel")

        logger.info("Visit cancelled visit_id=%s", visit.id)
        await log_event_after_commit(
            self.db,
            entity=visit,
            action=AuditAction.VISIT_CANCELLED,
            entity_type="pdv_visit",
            entity_id=visit.id,
            metadata={"user_id": visit.user_id, "pdv_id": visit.pdv_id}
        )
        return visit

    async def _transition(self, visit: PdvVisit, expected: VisitStatus, values: dict, action: str) -> None:
        # Compare-and-swap on the status: a concurrent writer makes this a no-op.
        result = await self.db.execute(
            update(PdvVisit)
            .where(PdvVisit.id == visit.id, PdvVisit.visit_status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await self.db.rollback()
            await self.db.refresh(visit)
            raise InvalidStateError("PDV visit", visit.id, visit.visit_status, action)

        await self.db.commit()
        await self.db.refresh(visit)

    async def count_completed_in_window(
        self,
        user_id: int,
        start: datetime,
        end: datetime,
        route_id: Optional[int] = None
    ) -> int:
        """
        Count valid completed visits checked in and out within [start, end].

        Args:
            user_id: Representative
            start, end: Window bounds (inclusive)
            route_id: Restrict to PDVs on this route (catalog lookup)

        Returns:
            Number of visits
        """
        query = select(func.count(PdvVisit.id)).where(
            PdvVisit.user_id == user_id,
            PdvVisit.visit_status == VisitStatus.COMPLETED,
            PdvVisit.is_valid.is_(True),
            PdvVisit.check_in_at >= as_utc(start),
            PdvVisit.check_out_at.is_not(None),
            PdvVisit.check_out_at <= as_utc(end)
        )

        if route_id is not None:
            pdv_ids = await self.pdv_catalog.pdv_ids_for_route(route_id)
            if not pdv_ids:
                return 0
            query = query.where(PdvVisit.pdv_id.in_(pdv_ids))

        result = await self.db.execute(query)
        return result.scalar() or 0

    async def count_valid_checked_in(self, user_id: int, start: datetime, end: datetime) -> int:
        """Valid visits (any status) whose check-in falls within [start, end]."""
        result = await self.db.execute(
            select(func.count(PdvVisit.id)).where(
                PdvVisit.user_id == user_id,
                PdvVisit.is_valid.is_(True),
                PdvVisit.check_in_at >= as_utc(start),
                PdvVisit.check_in_at <= as_utc(end)
            )
        )
        return result.scalar() or 0

    async def visits_for_day(self, user_id: int, start: datetime, end: datetime) -> List[PdvVisit]:
        """A representative's visits checked in within [start, end], newest first."""
        result = await self.db.execute(
            select(PdvVisit).where(
                PdvVisit.user_id == user_id,
                PdvVisit.check_in_at >= as_utc(start),
                PdvVisit.check_in_at <= as_utc(end)
            ).order_by(PdvVisit.check_in_at.desc())
        )
        return list(result.scalars().all())
