"""
Working session schemas.

Schemas for starting, closing and reporting workdays.
"""

from pydantic import BaseModel, Field, field_serializer
from datetime import datetime
from typing import List, Optional

from backend.app.models.enums import SessionStatus
from backend.app.schemas.common import UtcDatetime, round_km


class SessionStartRequest(BaseModel):
    """Schema for opening a workday."""
    user_id: int = Field(..., gt=0)
    latitude: Optional[float] = Field(None, allow_inf_nan=False)
    longitude: Optional[float] = Field(None, allow_inf_nan=False)
    notes: Optional[str] = Field(None, max_length=1000)


class SessionCloseRequest(BaseModel):
    """Schema for closing a workday."""
    end_time: Optional[datetime] = None  # Defaults to now
    latitude: Optional[float] = Field(None, allow_inf_nan=False)
    longitude: Optional[float] = Field(None, allow_inf_nan=False)
    notes: Optional[str] = Field(None, max_length=1000)


class WorkingSessionResponse(BaseModel):
    """Schema for working session response."""
    id: int
    user_id: int
    status: SessionStatus
    started_at: UtcDatetime
    ended_at: Optional[UtcDatetime]
    start_latitude: Optional[float]
    start_longitude: Optional[float]
    end_latitude: Optional[float]
    end_longitude: Optional[float]
    total_duration_minutes: Optional[int]
    total_distance_km: Optional[float]
    total_pdvs_visited: int
    notes: Optional[str]
    closed_by: Optional[str]

    class Config:
        from_attributes = True

    @field_serializer("total_distance_km")
    def serialize_distance(self, value: Optional[float]) -> Optional[float]:
        return round_km(value)


class CurrentSessionResponse(BaseModel):
    """Open session with live metrics."""
    session: WorkingSessionResponse
    current_duration_minutes: int
    pdvs_visited_today: int

    class Config:
        from_attributes = True


class SessionHistoryResponse(BaseModel):
    """Completed sessions of a representative."""
    user_id: int
    sessions: List[WorkingSessionResponse]
    count: int
