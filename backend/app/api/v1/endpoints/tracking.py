"""
Supervisor Tracking API Endpoints.

Live map of representatives on duty and per-day route replay.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date
from typing import Optional

from backend.app.core.dependencies import get_visit_tracker
from backend.app.core.timeutils import local_day_bounds, local_today
from backend.app.db.session import get_db
from backend.app.schemas.gps_tracking import GpsSampleResponse
from backend.app.schemas.pdv_visit import PdvVisitResponse
from backend.app.schemas.tracking import LatestLocationsResponse, DailyRouteResponse
from backend.app.services.distance import path_distance_km
from backend.app.services.gps_tracking import latest_valid_per_user, samples_for_day
from backend.app.services.pdv_visits import PdvVisitTracker

router = APIRouter(prefix="/tracking", tags=["Tracking"])


@router.get("/latest", response_model=LatestLocationsResponse)
async def get_latest_locations(
    day: Optional[date] = Query(None, alias="date", description="Local date, today when omitted"),
    db: AsyncSession = Depends(get_db)
):
    """
    Latest valid position of every representative with an open session.

    "Open" means open right now; for a past date only representatives still
    on duty are listed. Use the per-user route for closed workdays.

    Only samples recorded on the requested local date are considered.
    """
    day = day or local_today()
    day_start, day_end = local_day_bounds(day)
    points = await latest_valid_per_user(db, day_start, day_end)
    return LatestLocationsResponse(
        date=day.isoformat(),
        count=len(points),
        locations=[GpsSampleResponse.model_validate(p) for p in points]
    )


@router.get("/users/{user_id}/route", response_model=DailyRouteResponse)
async def get_user_route(
    user_id: int = Path(..., description="Representative ID"),
    day: Optional[date] = Query(None, alias="date", description="Local date, today when omitted"),
    db: AsyncSession = Depends(get_db),
    tracker: PdvVisitTracker = Depends(get_visit_tracker)
):
    """
    Every sample of the day (invalid ones flagged) plus the day's visits.

    Distance only counts valid samples.
    """
    day = day or local_today()
    day_start, day_end = local_day_bounds(day)

    points = await samples_for_day(db, user_id, day_start, day_end)
    valid_points = [p for p in points if p.is_valid]
    visits = await tracker.visits_for_day(user_id, day_start, day_end)

    return DailyRouteResponse(
        user_id=user_id,
        date=day.isoformat(),
        total_distance_km=path_distance_km((p.latitude, p.longitude) for p in valid_points),
        total_points=len(points),
        valid_points=len(valid_points),
        points=[GpsSampleResponse.model_validate(p) for p in points],
        visits=[PdvVisitResponse.model_validate(v) for v in visits]
    )
