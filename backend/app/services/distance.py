"""
Distance aggregation over GPS tracks.

Sums the great-circle length of consecutive valid samples. No jitter
filtering or minimum-displacement threshold is applied: noisy samples
inflate the total.
"""

from datetime import datetime
from typing import Iterable, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.services.geo import haversine_km
from backend.app.services.gps_tracking import valid_samples_in_range


def path_distance_km(points: Iterable[Tuple[float, float]]) -> float:
    """
    Length of a polyline given as (lat, lon) pairs in travel order.

    Returns:
        Total kilometers, unrounded; 0.0 for fewer than two points
    """
    total = 0.0
    previous = None
    for point in points:
        if previous is not None:
            total += haversine_km(previous[0], previous[1], point[0], point[1])
        previous = point
    return total


async def total_distance_km(
    db: AsyncSession,
    user_id: int,
    start: datetime,
    end: datetime
) -> float:
    """
    Distance travelled by a user within [start, end].

    Args:
        db: Database session
        user_id: Representative
        start, end: Window bounds (inclusive)

    Returns:
        Kilometers as a double; rounding is left to presentation
    """
    samples = await valid_samples_in_range(db, user_id, start, end)
    if len(samples) < 2:
        return 0.0
    return path_distance_km((s.latitude, s.longitude) for s in samples)
