"""
Daily closure schemas.
"""

from pydantic import BaseModel
from datetime import date, time
from typing import List, Optional

from backend.app.schemas.common import UtcDatetime


class DailyClosureRequest(BaseModel):
    """Manual trigger for the end-of-day closure."""
    cutoff: Optional[time] = None  # Local wall-clock time, configured default when omitted


class ClosureFailureResponse(BaseModel):
    session_id: int
    user_id: int
    reason: str

    class Config:
        from_attributes = True


class ClosureReportResponse(BaseModel):
    """Outcome of one closure run."""
    run_date: date
    cutoff: UtcDatetime
    closed: List[int]
    failed: List[ClosureFailureResponse]
    skipped: List[int]
    lock_acquired: bool

    class Config:
        from_attributes = True
