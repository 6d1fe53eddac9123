"""
GPS sample schemas.

Ingestion schemas are deliberately lenient: devices upload whatever they
have, and unusable coordinates are stored as invalid samples instead of
being rejected.
"""

from pydantic import BaseModel, Field
from typing import List, Optional

from backend.app.schemas.common import (
    LenientDatetime, LenientFlag, LenientFloat, LenientInt, UtcDatetime
)


class GpsSampleIn(BaseModel):
    """One sample as reported by the device."""
    latitude: LenientFloat = None
    longitude: LenientFloat = None
    accuracy: LenientFloat = None  # meters
    speed: LenientFloat = None  # km/h
    heading: LenientFloat = None  # degrees
    battery_level: LenientInt = None  # 0-100
    is_mock_location: LenientFlag = False
    recorded_at: LenientDatetime = None  # Client clock, defaults to receipt time


class GpsSampleCreate(GpsSampleIn):
    """Schema for pushing a single sample."""
    user_id: int = Field(..., gt=0)


class GpsBatchCreate(BaseModel):
    """Schema for uploading an offline backlog."""
    user_id: int = Field(..., gt=0)
    samples: List[GpsSampleIn]


class GpsSampleResponse(BaseModel):
    """Stored GPS sample."""
    id: int
    user_id: int
    latitude: Optional[float]
    longitude: Optional[float]
    accuracy: Optional[float]
    speed: Optional[float]
    heading: Optional[float]
    battery_level: Optional[int]
    is_mock_location: bool
    is_valid: bool
    recorded_at: UtcDatetime

    class Config:
        from_attributes = True


class GpsBatchResponse(BaseModel):
    """Response after a batch upload."""
    user_id: int
    received: int
    valid: int
