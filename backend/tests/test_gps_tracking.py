"""
GPS sample store tests.

Storage never rejects a sample; validity is applied when reading.
"""

import pytest
from datetime import timedelta

from backend.app.models.enums import SessionStatus
from backend.app.models.working_session import WorkingSession
from backend.app.services.gps_tracking import (
    record_sample, record_samples, valid_samples_in_range,
    last_valid_sample, samples_for_day, latest_valid_per_user
)
from backend.app.core.timeutils import local_day_bounds
from backend.tests.helpers import lima, WORKDAY, TEST_TZ


async def _open_session(db_session, user_id, status=SessionStatus.ACTIVE):
    session = WorkingSession(
        user_id=user_id,
        status=status,
        started_at=lima(8),
        start_latitude=-12.0464,
        start_longitude=-77.0428
    )
    db_session.add(session)
    await db_session.commit()
    return session


@pytest.mark.asyncio
async def test_malformed_coordinates_are_stored_as_invalid(db_session):
    point = await record_sample(db_session, 1, None, -77.0428, recorded_at=lima(9))
    assert point.id is not None
    assert point.latitude is None
    assert point.is_valid is False

    out_of_range = await record_sample(db_session, 1, 123.0, -77.0428, recorded_at=lima(9, 1))
    assert out_of_range.id is not None
    assert out_of_range.latitude is None
    assert out_of_range.is_valid is False


@pytest.mark.asyncio
async def test_mock_location_is_stored_but_never_valid(db_session):
    point = await record_sample(
        db_session, 1, -12.0464, -77.0428, is_mock_location=True, recorded_at=lima(9)
    )
    assert point.latitude == -12.0464
    assert point.is_valid is False

    start, end = local_day_bounds(WORKDAY, TEST_TZ)
    assert await valid_samples_in_range(db_session, 1, start, end) == []
    assert len(await samples_for_day(db_session, 1, start, end)) == 1


@pytest.mark.asyncio
async def test_valid_samples_are_ordered_and_bounds_inclusive(db_session):
    # Inserted out of order
    await record_sample(db_session, 1, -12.0300, -77.0428, recorded_at=lima(10))
    await record_sample(db_session, 1, -12.0100, -77.0428, recorded_at=lima(8))
    await record_sample(db_session, 1, -12.0200, -77.0428, recorded_at=lima(9))
    await record_sample(db_session, 1, -12.0400, -77.0428, recorded_at=lima(11))

    samples = await valid_samples_in_range(db_session, 1, lima(8), lima(10))
    assert [s.latitude for s in samples] == [-12.0100, -12.0200, -12.0300]

    last = await last_valid_sample(db_session, 1, lima(8), lima(10))
    assert last.latitude == -12.0300


@pytest.mark.asyncio
async def test_batch_upload_stores_everything(db_session):
    points = await record_samples(db_session, 1, [
        {"latitude": -12.0464, "longitude": -77.0428, "recorded_at": lima(9)},
        {"latitude": None, "longitude": None, "recorded_at": lima(9, 1)},
        {"latitude": -12.0465, "longitude": -77.0429, "is_mock_location": True, "recorded_at": lima(9, 2)},
        {"latitude": -12.0466, "longitude": -77.0430, "battery_level": 40, "recorded_at": lima(9, 3)},
    ])
    assert len(points) == 4
    assert [p.is_valid for p in points] == [True, False, False, True]

    start, end = local_day_bounds(WORKDAY, TEST_TZ)
    assert len(await samples_for_day(db_session, 1, start, end)) == 4
    assert len(await valid_samples_in_range(db_session, 1, start, end)) == 2


@pytest.mark.asyncio
async def test_latest_valid_per_user(db_session):
    await _open_session(db_session, 1)
    await _open_session(db_session, 2, status=SessionStatus.PAUSED)
    await _open_session(db_session, 3, status=SessionStatus.COMPLETED)

    await record_sample(db_session, 1, -12.0400, -77.0400, recorded_at=lima(9))
    await record_sample(db_session, 1, -12.0410, -77.0410, recorded_at=lima(10))
    # Newer, but invalid: must not shadow the 10:00 sample
    await record_sample(db_session, 1, -12.0420, -77.0420, is_mock_location=True, recorded_at=lima(11))
    await record_sample(db_session, 1, None, None, recorded_at=lima(12))

    await record_sample(db_session, 2, -12.0500, -77.0500, recorded_at=lima(9, 30))
    # User 3 has no open session
    await record_sample(db_session, 3, -12.0600, -77.0600, recorded_at=lima(10))
    # User 4 has no session at all
    await record_sample(db_session, 4, -12.0700, -77.0700, recorded_at=lima(10))

    start, end = local_day_bounds(WORKDAY, TEST_TZ)
    latest = await latest_valid_per_user(db_session, start, end)

    assert [p.user_id for p in latest] == [1, 2]
    assert latest[0].latitude == -12.0410
    assert latest[1].latitude == -12.0500


@pytest.mark.asyncio
async def test_latest_valid_per_user_respects_window(db_session):
    await _open_session(db_session, 1)
    await record_sample(db_session, 1, -12.0400, -77.0400, recorded_at=lima(9) - timedelta(days=1))

    start, end = local_day_bounds(WORKDAY, TEST_TZ)
    assert await latest_valid_per_user(db_session, start, end) == []


@pytest.mark.asyncio
async def test_latest_for_past_day_lists_only_users_still_on_duty(db_session):
    # User 1 finished the workday, user 2 never closed it
    await _open_session(db_session, 1, status=SessionStatus.COMPLETED)
    await _open_session(db_session, 2)
    await record_sample(db_session, 1, -12.0400, -77.0400, recorded_at=lima(9))
    await record_sample(db_session, 2, -12.0500, -77.0500, recorded_at=lima(9))

    start, end = local_day_bounds(WORKDAY, TEST_TZ)
    latest = await latest_valid_per_user(db_session, start, end)

    assert [p.user_id for p in latest] == [2]
