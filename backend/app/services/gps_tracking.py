"""
GPS sample store.

Persists location samples exactly as devices report them and answers the
"latest valid position" and "valid samples in a window" queries. Storage
never rejects a sample; validity is applied at query time.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.timeutils import as_utc, utcnow
from backend.app.models.enums import OPEN_SESSION_STATUSES
from backend.app.models.gps_tracking_point import GpsTrackingPoint
from backend.app.models.working_session import WorkingSession
from backend.app.services.geo import is_valid_coordinate

logger = logging.getLogger("fieldtrack.gps")


def _build_point(
    user_id: int,
    latitude: Any,
    longitude: Any,
    accuracy: Optional[float] = None,
    speed: Optional[float] = None,
    heading: Optional[float] = None,
    battery_level: Optional[int] = None,
    is_mock_location: Optional[bool] = False,
    recorded_at: Optional[datetime] = None
) -> GpsTrackingPoint:
    # Unusable coordinates are stored as NULL so the sample stays auditable
    # but can never satisfy the validity predicate.
    if not is_valid_coordinate(latitude, longitude):
        if latitude is not None or longitude is not None:
            logger.warning(
                "Storing GPS sample with unusable coordinates user_id=%s lat=%r lng=%r",
                user_id, latitude, longitude
            )
        latitude = None
        longitude = None
    else:
        latitude = float(latitude)
        longitude = float(longitude)

    return GpsTrackingPoint(
        user_id=user_id,
        latitude=latitude,
        longitude=longitude,
        accuracy=accuracy,
        speed=speed,
        heading=heading,
        battery_level=battery_level,
        is_mock_location=bool(is_mock_location),
        recorded_at=as_utc(recorded_at) or utcnow()
    )


async def record_sample(
    db: AsyncSession,
    user_id: int,
    latitude: Any,
    longitude: Any,
    accuracy: Optional[float] = None,
    speed: Optional[float] = None,
    heading: Optional[float] = None,
    battery_level: Optional[int] = None,
    is_mock_location: Optional[bool] = False,
    recorded_at: Optional[datetime] = None
) -> GpsTrackingPoint:
    """
    Store a single GPS sample.

    Args:
        db: Database session
        user_id: Representative pushing the sample
        latitude, longitude: Reported coordinates (may be missing or malformed)
        accuracy, speed, heading, battery_level: Optional telemetry
        is_mock_location: Device-reported spoofing flag
        recorded_at: Client timestamp; receipt time when omitted

    Returns:
        Stored point (flagged invalid via its coordinates/mock flag if unusable)
    """
    point = _build_point(
        user_id, latitude, longitude, accuracy, speed, heading,
        battery_level, is_mock_location, recorded_at
    )
    db.add(point)
    await db.commit()
    await db.refresh(point)
    return point


async def record_samples(
    db: AsyncSession,
    user_id: int,
    samples: Iterable[Dict[str, Any]]
) -> List[GpsTrackingPoint]:
    """
    Store a batch of samples in one transaction (offline backlog upload).

    Args:
        db: Database session
        user_id: Representative pushing the samples
        samples: Dicts with the same keys as `record_sample` arguments

    Returns:
        Stored points in input order
    """
    points = [_build_point(user_id, **sample) for sample in samples]
    db.add_all(points)
    await db.commit()
    return points


async def valid_samples_in_range(
    db: AsyncSession,
    user_id: int,
    start: datetime,
    end: datetime
) -> List[GpsTrackingPoint]:
    """
    Valid samples for a user within [start, end], oldest first.
    """
    result = await db.execute(
        select(GpsTrackingPoint).where(
            GpsTrackingPoint.user_id == user_id,
            GpsTrackingPoint.recorded_at >= as_utc(start),
            GpsTrackingPoint.recorded_at <= as_utc(end),
            GpsTrackingPoint.is_valid_clause()
        ).order_by(GpsTrackingPoint.recorded_at.asc(), GpsTrackingPoint.id.asc())
    )
    return list(result.scalars().all())


async def last_valid_sample(
    db: AsyncSession,
    user_id: int,
    start: datetime,
    end: datetime
) -> Optional[GpsTrackingPoint]:
    """Most recent valid sample for a user within [start, end]."""
    result = await db.execute(
        select(GpsTrackingPoint).where(
            GpsTrackingPoint.user_id == user_id,
            GpsTrackingPoint.recorded_at >= as_utc(start),
            GpsTrackingPoint.recorded_at <= as_utc(end),
            GpsTrackingPoint.is_valid_clause()
        ).order_by(GpsTrackingPoint.recorded_at.desc(), GpsTrackingPoint.id.desc()).limit(1)
    )
    return result.scalar_one_or_none()


async def samples_for_day(
    db: AsyncSession,
    user_id: int,
    start: datetime,
    end: datetime
) -> List[GpsTrackingPoint]:
    """
    Every stored sample for a user within [start, end], valid or not.

    Used by audit views; callers must check `is_valid` per point.
    """
    result = await db.execute(
        select(GpsTrackingPoint).where(
            GpsTrackingPoint.user_id == user_id,
            GpsTrackingPoint.recorded_at >= as_utc(start),
            GpsTrackingPoint.recorded_at <= as_utc(end)
        ).order_by(GpsTrackingPoint.recorded_at.asc(), GpsTrackingPoint.id.asc())
    )
    return list(result.scalars().all())


async def latest_valid_per_user(
    db: AsyncSession,
    window_start: datetime,
    window_end: datetime
) -> List[GpsTrackingPoint]:
    """
    Latest valid sample of every user with an open session.

    Session status is read as of now, not as of the window: this is the
    live map, so for a past window only users still on duty appear.
    Full day tracks of finished sessions come from `samples_for_day`.

    One grouped aggregation (max recorded_at per user) joined back to the
    samples; no per-user queries.

    Args:
        db: Database session
        window_start, window_end: Only samples recorded in this window count

    Returns:
        One point per user, ordered by user_id
    """
    window = and_(
        GpsTrackingPoint.recorded_at >= as_utc(window_start),
        GpsTrackingPoint.recorded_at <= as_utc(window_end),
        GpsTrackingPoint.is_valid_clause()
    )

    latest = (
        select(
            GpsTrackingPoint.user_id.label("user_id"),
            func.max(GpsTrackingPoint.recorded_at).label("max_recorded_at")
        )
        .where(window)
        .group_by(GpsTrackingPoint.user_id)
        .subquery()
    )

    open_users = select(WorkingSession.user_id).where(
        WorkingSession.status.in_(OPEN_SESSION_STATUSES)
    )

    result = await db.execute(
        select(GpsTrackingPoint)
        .join(
            latest,
            and_(
                GpsTrackingPoint.user_id == latest.c.user_id,
                GpsTrackingPoint.recorded_at == latest.c.max_recorded_at
            )
        )
        .where(window, GpsTrackingPoint.user_id.in_(open_users))
        .order_by(GpsTrackingPoint.user_id.asc(), GpsTrackingPoint.id.desc())
    )

    # Two samples can share the same recorded_at; keep the last inserted one.
    points: Dict[int, GpsTrackingPoint] = {}
    for point in result.scalars().all():
        points.setdefault(point.user_id, point)
    return list(points.values())
