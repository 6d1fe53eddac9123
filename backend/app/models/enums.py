"""
Tracking enumerations.

Status values for working sessions and PDV visits.
"""

import enum


class SessionStatus(str, enum.Enum):
    """Working session status enumeration."""
    ACTIVE = "active"  # Workday in progress
    PAUSED = "paused"  # Break, still counts as open
    COMPLETED = "completed"  # Closed by the representative or the auto-closer (terminal)


OPEN_SESSION_STATUSES = (SessionStatus.ACTIVE, SessionStatus.PAUSED)


class VisitStatus(str, enum.Enum):
    """PDV visit status enumeration."""
    IN_PROGRESS = "in_progress"  # Checked in, not yet checked out
    COMPLETED = "completed"  # Checked out
    CANCELLED = "cancelled"  # Cancelled by an external process


def enum_values(enum_cls):
    """Persist enum values (not member names) in the database."""
    return [member.value for member in enum_cls]
