"""
Concurrency Tests.

Validates that race conditions are handled correctly: every transition is a
compare-and-swap on the expected status, so the loser of a race sees the
winner's state instead of overwriting it.
"""

import pytest

from backend.app.core.exceptions import ConflictError, InvalidStateError
from backend.app.models.enums import SessionStatus, VisitStatus
from backend.app.services.pdv_visits import PdvVisitTracker
from backend.app.services.working_sessions import WorkingSessionManager
from backend.tests.helpers import lima


@pytest.mark.asyncio
async def test_concurrent_start_loser_gets_conflict(mocker, db_session, representative):
    """A start that passed the pre-check but lost the insert race."""
    manager = WorkingSessionManager(db_session)
    await manager.start(representative.id, -12.0464, -77.0428, started_at=lima(8))

    # Simulate the pre-check running before the winner's insert was visible
    mocker.patch.object(manager, "find_open_session", return_value=None)
    with pytest.raises(ConflictError):
        await manager.start(representative.id, -12.0464, -77.0428, started_at=lima(8, 1))

    mocker.stopall()
    assert await manager.count_open_sessions(representative.id) == 1


@pytest.mark.asyncio
async def test_close_loser_sees_winner_state(db_session, session_factory, representative):
    manager = WorkingSessionManager(db_session)
    session = await manager.start(representative.id, -12.0464, -77.0428, started_at=lima(8))

    # A second writer (e.g. the auto-closer) closes the session first
    async with session_factory() as other_db:
        await WorkingSessionManager(other_db).close(session.id, end_time=lima(17), latitude=-12.0464, longitude=-77.0428)

    # The first writer still holds a stale "active" object
    assert session.status == SessionStatus.ACTIVE
    with pytest.raises(InvalidStateError) as exc_info:
        await manager.close(session.id, end_time=lima(18), latitude=-12.0374, longitude=-77.0428)

    assert exc_info.value.details["current_state"] == "completed"
    assert session.status == SessionStatus.COMPLETED
    assert session.total_duration_minutes == 540
    assert session.end_latitude == -12.0464


@pytest.mark.asyncio
async def test_pause_loser_sees_winner_state(db_session, session_factory, representative):
    manager = WorkingSessionManager(db_session)
    session = await manager.start(representative.id, -12.0464, -77.0428, started_at=lima(8))

    async with session_factory() as other_db:
        await WorkingSessionManager(other_db).close(session.id, end_time=lima(17))

    with pytest.raises(InvalidStateError):
        await manager.pause(session.id)
    assert session.status == SessionStatus.COMPLETED


@pytest.mark.asyncio
async def test_check_out_loser_keeps_winner_duration(db_session, session_factory, representative, route_pdvs):
    await WorkingSessionManager(db_session).start(representative.id, -12.0464, -77.0428, started_at=lima(8))
    tracker = PdvVisitTracker(db_session)
    visit = await tracker.check_in(representative.id, route_pdvs[0].id, -12.0464, -77.0428, recorded_at=lima(9))

    async with session_factory() as other_db:
        await PdvVisitTracker(other_db).check_out(visit.id, recorded_at=lima(9, 20))

    assert visit.visit_status == VisitStatus.IN_PROGRESS
    with pytest.raises(InvalidStateError):
        await tracker.check_out(visit.id, recorded_at=lima(9, 50))

    assert visit.visit_status == VisitStatus.COMPLETED
    assert visit.duration_minutes == 20


@pytest.mark.asyncio
async def test_cancel_loses_to_check_out(db_session, session_factory, representative, route_pdvs):
    await WorkingSessionManager(db_session).start(representative.id, -12.0464, -77.0428, started_at=lima(8))
    tracker = PdvVisitTracker(db_session)
    visit = await tracker.check_in(representative.id, route_pdvs[0].id, -12.0464, -77.0428, recorded_at=lima(9))

    async with session_factory() as other_db:
        await PdvVisitTracker(other_db).check_out(visit.id, recorded_at=lima(9, 20))

    with pytest.raises(InvalidStateError):
        await tracker.cancel(visit.id)
    assert visit.visit_status == VisitStatus.COMPLETED
