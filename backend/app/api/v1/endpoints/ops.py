"""
Operations API Endpoints.

Manual trigger for the end-of-day closure.
"""

from fastapi import APIRouter, Depends, Body
from typing import Optional

from backend.app.core.dependencies import get_auto_closer
from backend.app.schemas.closure import DailyClosureRequest, ClosureReportResponse
from backend.app.services.auto_close import SessionAutoCloser

router = APIRouter(prefix="/ops", tags=["Ops"])


@router.post("/daily-closure", response_model=ClosureReportResponse)
async def run_daily_closure(
    request: Optional[DailyClosureRequest] = Body(None),
    closer: SessionAutoCloser = Depends(get_auto_closer)
):
    """
    Close every session left open past its cutoff.

    Sessions whose cutoff has not been reached yet are reported as skipped.

    Per-session failures are reported in `failed` and do not fail the request.
    """
    request = request or DailyClosureRequest()
    report = await closer.run_daily_closure(cutoff=request.cutoff)
    return ClosureReportResponse.model_validate(report)
