"""
PDV visit schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional

from backend.app.models.enums import VisitStatus
from backend.app.schemas.common import UtcDatetime


class CheckInRequest(BaseModel):
    """Schema for checking in at a PDV."""
    user_id: int = Field(..., gt=0)
    pdv_id: int = Field(..., gt=0)
    latitude: Optional[float] = Field(None, allow_inf_nan=False)
    longitude: Optional[float] = Field(None, allow_inf_nan=False)
    recorded_at: Optional[datetime] = None
    is_mock_location: bool = False
    notes: Optional[str] = Field(None, max_length=1000)


class CheckOutRequest(BaseModel):
    """Schema for checking out of a PDV."""
    recorded_at: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)


class PdvVisitResponse(BaseModel):
    """Schema for PDV visit response."""
    id: int
    user_id: int
    pdv_id: int
    visit_status: VisitStatus
    check_in_at: UtcDatetime
    check_out_at: Optional[UtcDatetime]
    duration_minutes: Optional[int]
    latitude: float
    longitude: float
    distance_to_pdv: Optional[float]  # meters
    is_valid: bool
    used_mock_location: bool
    notes: Optional[str]

    class Config:
        from_attributes = True


class DailyVisitsResponse(BaseModel):
    """A representative's visits of one day."""
    user_id: int
    date: str
    visits: List[PdvVisitResponse]
    total_visits: int
    valid_visits: int
