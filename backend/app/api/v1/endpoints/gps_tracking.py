"""
GPS Ingestion API Endpoints.

Mobile clients push samples continuously, or in batches after being offline.
Samples are always accepted; unusable ones are stored flagged as invalid.
"""

from fastapi import APIRouter, Depends, Body, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.schemas.gps_tracking import (
    GpsSampleCreate, GpsBatchCreate, GpsSampleResponse, GpsBatchResponse
)
from backend.app.services.gps_tracking import record_sample, record_samples

router = APIRouter(prefix="/gps", tags=["GPS Tracking"])


@router.post("/samples", response_model=GpsSampleResponse, status_code=status.HTTP_201_CREATED)
async def push_gps_sample(
    sample: GpsSampleCreate = Body(...),
    db: AsyncSession = Depends(get_db)
):
    """Store one GPS sample."""
    point = await record_sample(db, **sample.model_dump())
    return GpsSampleResponse.model_validate(point)


@router.post("/samples/batch", response_model=GpsBatchResponse, status_code=status.HTTP_201_CREATED)
async def push_gps_batch(
    batch: GpsBatchCreate = Body(...),
    db: AsyncSession = Depends(get_db)
):
    """Store an offline backlog of samples in one transaction."""
    points = await record_samples(
        db,
        batch.user_id,
        [sample.model_dump() for sample in batch.samples]
    )
    return GpsBatchResponse(
        user_id=batch.user_id,
        received=len(points),
        valid=sum(1 for point in points if point.is_valid)
    )
