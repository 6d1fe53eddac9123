"""
PDV Visit API Endpoints.

Check-in and check-out of representatives at points of sale.
"""

from fastapi import APIRouter, Depends, Path, Body, status
from typing import Optional

from backend.app.core.dependencies import get_visit_tracker
from backend.app.core.timeutils import local_day_bounds, local_today
from backend.app.schemas.pdv_visit import (
    CheckInRequest, CheckOutRequest, PdvVisitResponse, DailyVisitsResponse
)
from backend.app.services.pdv_visits import PdvVisitTracker

router = APIRouter(tags=["PDV Visits"])


@router.post("/pdv-visits/check-in", response_model=PdvVisitResponse, status_code=status.HTTP_201_CREATED)
async def check_in(
    request: CheckInRequest = Body(...),
    tracker: PdvVisitTracker = Depends(get_visit_tracker)
):
    """
    Check in at a PDV.

    A check-in outside the geofence is accepted and stored with is_valid=false.
    """
    visit = await tracker.check_in(
        user_id=request.user_id,
        pdv_id=request.pdv_id,
        latitude=request.latitude,
        longitude=request.longitude,
        recorded_at=request.recorded_at,
        is_mock_location=request.is_mock_location,
        notes=request.notes
    )
    return PdvVisitResponse.model_validate(visit)


@router.post("/pdv-visits/{visit_id}/check-out", response_model=PdvVisitResponse)
async def check_out(
    visit_id: int = Path(..., description="Visit ID"),
    request: Optional[CheckOutRequest] = Body(None),
    tracker: PdvVisitTracker = Depends(get_visit_tracker)
):
    request = request or CheckOutRequest()
    visit = await tracker.check_out(visit_id, recorded_at=request.recorded_at, notes=request.notes)
    return PdvVisitResponse.model_validate(visit)


@router.post("/pdv-visits/{visit_id}/cancel", response_model=PdvVisitResponse)
async def cancel_visit(
    visit_id: int = Path(..., description="Visit ID"),
    tracker: PdvVisitTracker = Depends(get_visit_tracker)
):
    """Cancel an in-progress visit."""
    visit = await tracker.cancel(visit_id)
    return PdvVisitResponse.model_validate(visit)


@router.get("/users/{user_id}/pdv-visits/today", response_model=DailyVisitsResponse)
async def get_today_visits(
    user_id: int = Path(..., description="Representative ID"),
    tracker: PdvVisitTracker = Depends(get_visit_tracker)
):
    today = local_today()
    day_start, day_end = local_day_bounds(today)
    visits = await tracker.visits_for_day(user_id, day_start, day_end)
    return DailyVisitsResponse(
        user_id=user_id,
        date=today.isoformat(),
        visits=[PdvVisitResponse.model_validate(v) for v in visits],
        total_visits=len(visits),
        valid_visits=sum(1 for v in visits if v.is_valid)
    )
