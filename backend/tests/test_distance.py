"""
Distance aggregation tests.
"""

import pytest

from backend.app.services.distance import path_distance_km, total_distance_km
from backend.app.services.geo import haversine_km
from backend.app.services.gps_tracking import record_sample
from backend.tests.helpers import lima


def test_path_of_fewer_than_two_points_is_zero():
    assert path_distance_km([]) == 0.0
    assert path_distance_km([(-12.0464, -77.0428)]) == 0.0


def test_path_sums_consecutive_pairs():
    points = [(-12.0464, -77.0428), (-12.0374, -77.0428), (-12.0374, -77.0300)]
    expected = haversine_km(*points[0], *points[1]) + haversine_km(*points[1], *points[2])
    assert path_distance_km(points) == pytest.approx(expected)


@pytest.mark.asyncio
async def test_no_samples_means_zero_distance(db_session):
    assert await total_distance_km(db_session, 1, lima(8), lima(21)) == 0.0

    await record_sample(db_session, 1, -12.0464, -77.0428, recorded_at=lima(9))
    assert await total_distance_km(db_session, 1, lima(8), lima(21)) == 0.0


@pytest.mark.asyncio
async def test_invalid_samples_do_not_count(db_session):
    await record_sample(db_session, 1, -12.0464, -77.0428, recorded_at=lima(9))
    # Spoofed jump to Cusco
    await record_sample(db_session, 1, -13.5320, -71.9675, is_mock_location=True, recorded_at=lima(9, 30))
    await record_sample(db_session, 1, -12.0374, -77.0428, recorded_at=lima(10))

    distance = await total_distance_km(db_session, 1, lima(8), lima(21))
    assert distance == pytest.approx(1.0, abs=0.01)


@pytest.mark.asyncio
async def test_distance_is_monotonic_as_samples_arrive(db_session):
    latitudes = [-12.0464, -12.0400, -12.0450, -12.0300, -12.0300]
    previous = 0.0
    for minute, latitude in enumerate(latitudes):
        await record_sample(db_session, 1, latitude, -77.0428, recorded_at=lima(9, minute))
        current = await total_distance_km(db_session, 1, lima(8), lima(21))
        assert current >= previous
        previous = current


@pytest.mark.asyncio
async def test_only_samples_of_the_user_and_window_count(db_session):
    await record_sample(db_session, 1, -12.0464, -77.0428, recorded_at=lima(7))  # before window
    await record_sample(db_session, 1, -12.0374, -77.0428, recorded_at=lima(9))
    await record_sample(db_session, 1, -12.0284, -77.0428, recorded_at=lima(10))
    await record_sample(db_session, 2, -12.1000, -77.0428, recorded_at=lima(9, 30))

    distance = await total_distance_km(db_session, 1, lima(8), lima(21))
    assert distance == pytest.approx(1.0, abs=0.01)
