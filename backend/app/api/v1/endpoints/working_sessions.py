"""
Working Session API Endpoints.

Representatives open, pause, resume and close their workday.
"""

from fastapi import APIRouter, Depends, Path, Query, Body, status
from datetime import date
from typing import Optional

from backend.app.core.dependencies import get_session_manager
from backend.app.core.exceptions import NotFoundError
from backend.app.schemas.working_session import (
    SessionStartRequest, SessionCloseRequest, WorkingSessionResponse,
    CurrentSessionResponse, SessionHistoryResponse
)
from backend.app.services.working_sessions import WorkingSessionManager

router = APIRouter(tags=["Working Sessions"])


@router.post(
    "/working-sessions",
    response_model=WorkingSessionResponse,
    status_code=status.HTTP_201_CREATED
)
async def start_working_session(
    request: SessionStartRequest = Body(...),
    manager: WorkingSessionManager = Depends(get_session_manager)
):
    """
    Start a workday.

    Returns 409 if the representative already has an active or paused session.
    """
    session = await manager.start(
        user_id=request.user_id,
        latitude=request.latitude,
        longitude=request.longitude,
        notes=request.notes
    )
    return WorkingSessionResponse.model_validate(session)


@router.get("/working-sessions/{session_id}", response_model=WorkingSessionResponse)
async def get_working_session(
    session_id: int = Path(..., description="Working session ID"),
    manager: WorkingSessionManager = Depends(get_session_manager)
):
    session = await manager.get_session(session_id)
    return WorkingSessionResponse.model_validate(session)


@router.post("/working-sessions/{session_id}/pause", response_model=WorkingSessionResponse)
async def pause_working_session(
    session_id: int = Path(..., description="Working session ID"),
    manager: WorkingSessionManager = Depends(get_session_manager)
):
    """Pause an active session (break)."""
    session = await manager.pause(session_id)
    return WorkingSessionResponse.model_validate(session)


@router.post("/working-sessions/{session_id}/resume", response_model=WorkingSessionResponse)
async def resume_working_session(
    session_id: int = Path(..., description="Working session ID"),
    manager: WorkingSessionManager = Depends(get_session_manager)
):
    """Resume a paused session."""
    session = await manager.resume(session_id)
    return WorkingSessionResponse.model_validate(session)


@router.post("/working-sessions/{session_id}/close", response_model=WorkingSessionResponse)
async def close_working_session(
    session_id: int = Path(..., description="Working session ID"),
    request: Optional[SessionCloseRequest] = Body(None),
    manager: WorkingSessionManager = Depends(get_session_manager)
):
    """
    Close a workday.

    Duration, distance travelled and PDVs visited are computed here, once,
    and stored on the session.
    """
    request = request or SessionCloseRequest()
    session = await manager.close(
        session_id,
        end_time=request.end_time,
        latitude=request.latitude,
        longitude=request.longitude,
        notes=request.notes
    )
    return WorkingSessionResponse.model_validate(session)


@router.get("/users/{user_id}/working-sessions/current", response_model=CurrentSessionResponse)
async def get_current_working_session(
    user_id: int = Path(..., description="Representative ID"),
    manager: WorkingSessionManager = Depends(get_session_manager)
):
    """
    The representative's open session with live duration and today's valid visits.

    Returns 404 when no session is open.
    """
    snapshot = await manager.current_session(user_id)
    if snapshot is None:
        raise NotFoundError("Open working session")
    return CurrentSessionResponse.model_validate(snapshot)


@router.get("/users/{user_id}/working-sessions/history", response_model=SessionHistoryResponse)
async def get_working_session_history(
    user_id: int = Path(..., description="Representative ID"),
    date_from: Optional[date] = Query(None, description="First local start date"),
    date_to: Optional[date] = Query(None, description="Last local start date"),
    limit: int = Query(10, ge=1, le=100, description="Maximum sessions to return"),
    manager: WorkingSessionManager = Depends(get_session_manager)
):
    """Completed sessions, newest first."""
    sessions = await manager.history(user_id, date_from=date_from, date_to=date_to, limit=limit)
    return SessionHistoryResponse(
        user_id=user_id,
        sessions=[WorkingSessionResponse.model_validate(s) for s in sessions],
        count=len(sessions)
    )
