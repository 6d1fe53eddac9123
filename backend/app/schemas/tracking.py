"""
Supervisor tracking schemas.
"""

from pydantic import BaseModel, field_serializer
from typing import List

from backend.app.schemas.common import round_km
from backend.app.schemas.gps_tracking import GpsSampleResponse
from backend.app.schemas.pdv_visit import PdvVisitResponse


class LatestLocationsResponse(BaseModel):
    """Last valid position of every representative on duty."""
    date: str
    count: int
    locations: List[GpsSampleResponse]


class DailyRouteResponse(BaseModel):
    """Full GPS trace of a representative for one day, with visits."""
    user_id: int
    date: str
    total_distance_km: float
    total_points: int
    valid_points: int
    points: List[GpsSampleResponse]
    visits: List[PdvVisitResponse]

    @field_serializer("total_distance_km")
    def serialize_distance(self, value: float) -> float:
        return round_km(value)
