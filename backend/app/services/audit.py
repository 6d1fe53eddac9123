"""
Audit logging service for session lifecycle events.

Provides centralized logging for payroll-grade reporting.
"""

import logging
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog

logger = logging.getLogger("fieldtrack.audit")


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    SESSION_STARTED = "SESSION_STARTED"
    SESSION_PAUSED = "SESSION_PAUSED"
    SESSION_RESUMED = "SESSION_RESUMED"
    SESSION_CLOSED = "SESSION_CLOSED"
    SESSION_AUTO_CLOSED = "SESSION_AUTO_CLOSED"
    SESSION_AUTO_CLOSE_FAILED = "SESSION_AUTO_CLOSE_FAILED"

    VISIT_CANCELLED = "VISIT_CANCELLED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log a lifecycle event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action (None for the system)
        entity_type: Kind of entity affected, e.g. "working_session"
        entity_id: ID of the affected entity
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def log_event_after_commit(db: AsyncSession, entity=None, **event: Any) -> Optional[AuditLog]:
    """
    Audit a change that is already committed.

    The change stands even when the audit write fails: the error is logged,
    the session is rolled back and `entity` is reloaded so callers can keep
    using it.
    """
    try:
        return await log_event(db=db, **event)
    except Exception:
        logger.exception(
            "Audit write failed action=%s entity_type=%s entity_id=%s",
            event.get("action"), event.get("entity_type"), event.get("entity_id")
        )
        await db.rollback()
        if entity is not None:
            await db.refresh(entity)
        return None


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
