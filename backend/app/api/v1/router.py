"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    working_sessions, gps_tracking, pdv_visits, tracking, ops
)

router = APIRouter()

# Session lifecycle
router.include_router(working_sessions.router)

# GPS ingestion
router.include_router(gps_tracking.router)

# PDV check-in/check-out
router.include_router(pdv_visits.router)

# Supervisor views
router.include_router(tracking.router)

# End-of-day closure
router.include_router(ops.router)
