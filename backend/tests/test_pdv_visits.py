"""
PDV visit tracking tests.

Covers geofence evaluation, the visit state machine and visit counting.
"""

import pytest
from datetime import timedelta

from backend.app.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from backend.app.models.enums import SessionStatus, VisitStatus
from backend.app.models.working_session import WorkingSession
from backend.app.services.audit import AuditAction, get_audit_trail
from backend.app.services.pdv_visits import PdvVisitTracker
from backend.tests.helpers import lima


@pytest.fixture
async def open_session(db_session, representative):
    session = WorkingSession(
        user_id=representative.id,
        status=SessionStatus.ACTIVE,
        started_at=lima(8),
        start_latitude=-12.0464,
        start_longitude=-77.0428
    )
    db_session.add(session)
    await db_session.commit()
    return session


@pytest.fixture
def tracker(db_session):
    return PdvVisitTracker(db_session, geofence_radius_m=150)


@pytest.mark.asyncio
async def test_check_in_inside_geofence(tracker, representative, route_pdvs, open_session):
    pdv = route_pdvs[0]
    visit = await tracker.check_in(
        representative.id, pdv.id, pdv.latitude + 0.0005, pdv.longitude, recorded_at=lima(9)
    )

    assert visit.visit_status == VisitStatus.IN_PROGRESS
    assert visit.is_valid is True
    assert visit.distance_to_pdv == pytest.approx(55.6, abs=1.0)
    assert visit.check_out_at is None
    assert visit.duration_minutes is None


@pytest.mark.asyncio
async def test_check_in_outside_geofence_is_recorded_not_blocked(tracker, representative, route_pdvs, open_session):
    pdv = route_pdvs[0]
    # ~1 km away
    visit = await tracker.check_in(representative.id, pdv.id, pdv.latitude + 0.009, pdv.longitude, recorded_at=lima(9))

    assert visit.id is not None
    assert visit.visit_status == VisitStatus.IN_PROGRESS
    assert visit.is_valid is False
    assert visit.distance_to_pdv > 150


@pytest.mark.asyncio
async def test_check_in_requires_coordinates(tracker, representative, route_pdvs, open_session):
    with pytest.raises(ValidationError):
        await tracker.check_in(representative.id, route_pdvs[0].id, None, -77.0428)

    with pytest.raises(ValidationError):
        await tracker.check_in(representative.id, route_pdvs[0].id, -12.0464, 200.0)


@pytest.mark.asyncio
async def test_check_in_unknown_pdv(tracker, representative, open_session):
    with pytest.raises(NotFoundError):
        await tracker.check_in(representative.id, 9999, -12.0464, -77.0428)


@pytest.mark.asyncio
async def test_check_in_requires_open_session(tracker, representative, route_pdvs):
    with pytest.raises(ConflictError) as exc_info:
        await tracker.check_in(representative.id, route_pdvs[0].id, -12.0464, -77.0428)
    assert "open working session" in exc_info.value.message


@pytest.mark.asyncio
async def test_one_visit_in_progress_at_a_time(tracker, representative, route_pdvs, open_session):
    first = await tracker.check_in(representative.id, route_pdvs[0].id, -12.0464, -77.0428, recorded_at=lima(9))

    with pytest.raises(ConflictError) as exc_info:
        await tracker.check_in(representative.id, route_pdvs[1].id, -12.0374, -77.0428, recorded_at=lima(9, 10))
    assert exc_info.value.details["active_visit_id"] == first.id


@pytest.mark.asyncio
async def test_visit_duration(tracker, representative, route_pdvs, open_session):
    visit = await tracker.check_in(representative.id, route_pdvs[0].id, -12.0464, -77.0428, recorded_at=lima(10))
    visit = await tracker.check_out(visit.id, recorded_at=lima(10, 45))

    assert visit.visit_status == VisitStatus.COMPLETED
    assert visit.duration_minutes == 45


@pytest.mark.asyncio
async def test_visit_duration_truncates_partial_minutes(tracker, representative, route_pdvs, open_session):
    visit = await tracker.check_in(representative.id, route_pdvs[0].id, -12.0464, -77.0428, recorded_at=lima(10))
    visit = await tracker.check_out(visit.id, recorded_at=lima(10, 45) + timedelta(seconds=59))
    assert visit.duration_minutes == 45


@pytest.mark.asyncio
async def test_check_out_before_check_in_is_rejected(tracker, representative, route_pdvs, open_session):
    visit = await tracker.check_in(representative.id, route_pdvs[0].id, -12.0464, -77.0428, recorded_at=lima(10))

    with pytest.raises(ValidationError):
        await tracker.check_out(visit.id, recorded_at=lima(9, 59))

    visit = await tracker.get_visit(visit.id)
    assert visit.visit_status == VisitStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_double_check_out_is_invalid_state(tracker, representative, route_pdvs, open_session):
    visit = await tracker.check_in(representative.id, route_pdvs[0].id, -12.0464, -77.0428, recorded_at=lima(10))
    await tracker.check_out(visit.id, recorded_at=lima(10, 30))

    with pytest.raises(InvalidStateError):
        await tracker.check_out(visit.id, recorded_at=lima(10, 40))

    visit = await tracker.get_visit(visit.id)
    assert visit.duration_minutes == 30


@pytest.mark.asyncio
async def test_check_out_notes_are_appended(tracker, representative, route_pdvs, open_session):
    visit = await tracker.check_in(
        representative.id, route_pdvs[0].id, -12.0464, -77.0428, recorded_at=lima(10), notes="Owner present"
    )
    visit = await tracker.check_out(visit.id, recorded_at=lima(10, 20), notes="Order taken")
    assert visit.notes == "Owner present\n\nCheck-out: Order taken"


@pytest.mark.asyncio
async def test_cancel(db_session, tracker, representative, route_pdvs, open_session):
    visit = await tracker.check_in(representative.id, route_pdvs[0].id, -12.0464, -77.0428, recorded_at=lima(10))
    visit = await tracker.cancel(visit.id)
    assert visit.visit_status == VisitStatus.CANCELLED

    with pytest.raises(InvalidStateError):
        await tracker.check_out(visit.id, recorded_at=lima(10, 30))
    with pytest.raises(InvalidStateError):
        await tracker.cancel(visit.id)

    trail = await get_audit_trail(db_session, entity_type="pdv_visit", entity_id=visit.id)
    assert [entry.action for entry in trail] == [AuditAction.VISIT_CANCELLED]


@pytest.mark.asyncio
async def test_count_completed_in_window(tracker, representative, route_pdvs, open_session):
    on_route, second_on_route, off_route = route_pdvs

    # Valid, completed, on route
    v1 = await tracker.check_in(representative.id, on_route.id, on_route.latitude, on_route.longitude, recorded_at=lima(9))
    await tracker.check_out(v1.id, recorded_at=lima(9, 30))

    # Outside geofence: completed but invalid
    v2 = await tracker.check_in(
        representative.id, second_on_route.id, second_on_route.latitude + 0.01, second_on_route.longitude,
        recorded_at=lima(10)
    )
    await tracker.check_out(v2.id, recorded_at=lima(10, 30))

    # Valid but on another route
    v3 = await tracker.check_in(representative.id, off_route.id, off_route.latitude, off_route.longitude, recorded_at=lima(11))
    await tracker.check_out(v3.id, recorded_at=lima(11, 30))

    # Valid, still in progress
    await tracker.check_in(
        representative.id, second_on_route.id, second_on_route.latitude, second_on_route.longitude, recorded_at=lima(12)
    )

    assert await tracker.count_completed_in_window(representative.id, lima(8), lima(21), route_id=1) == 1
    assert await tracker.count_completed_in_window(representative.id, lima(8), lima(21)) == 2
    assert await tracker.count_completed_in_window(representative.id, lima(8), lima(21), route_id=99) == 0
    # Check-out after the window end does not count
    assert await tracker.count_completed_in_window(representative.id, lima(8), lima(9, 15), route_id=1) == 0
    # Any valid check-in counts for the live view
    assert await tracker.count_valid_checked_in(representative.id, lima(8), lima(21)) == 3


@pytest.mark.asyncio
async def test_visits_for_day_newest_first(tracker, representative, route_pdvs, open_session):
    v1 = await tracker.check_in(representative.id, route_pdvs[0].id, -12.0464, -77.0428, recorded_at=lima(9))
    await tracker.check_out(v1.id, recorded_at=lima(9, 10))
    v2 = await tracker.check_in(representative.id, route_pdvs[1].id, -12.0374, -77.0428, recorded_at=lima(10))

    visits = await tracker.visits_for_day(representative.id, lima(0), lima(23, 59))
    assert [v.id for v in visits] == [v2.id, v1.id]
