"""
Working Session database model.

One row per representative workday, from start to (manual or automatic) close.
"""

from sqlalchemy import Column, Integer, Float, String, Text, DateTime, Enum, Index, text
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import SessionStatus, enum_values

_OPEN_STATUS_PREDICATE = text("status IN ('active', 'paused')")


class WorkingSession(Base):
    """
    Working Session model.

    GPS samples and PDV visits belong to a session only by time-range
    containment on [started_at, ended_at or now]; there is no foreign key.
    Aggregate totals are written once, at close.
    """
    __tablename__ = "working_sessions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Owner (resolved through the user directory)
    user_id = Column(Integer, nullable=False, index=True)

    # Status
    status = Column(
        Enum(SessionStatus, name="session_status", values_callable=enum_values),
        default=SessionStatus.ACTIVE,
        nullable=False,
    )

    # Window
    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    # Coordinates captured at start and close
    start_latitude = Column(Float, nullable=True)
    start_longitude = Column(Float, nullable=True)
    end_latitude = Column(Float, nullable=True)
    end_longitude = Column(Float, nullable=True)

    # Aggregates (set at close)
    total_duration_minutes = Column(Integer, nullable=True)
    total_pdvs_visited = Column(Integer, default=0, nullable=False)
    total_distance_km = Column(Float, nullable=True)

    notes = Column(Text, nullable=True)
    closed_by = Column(String(20), nullable=True)  # "user" or "system"

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # At most one open session per user
    __table_args__ = (
        Index(
            "uq_working_sessions_open_user", "user_id", unique=True,
            postgresql_where=_OPEN_STATUS_PREDICATE,
            sqlite_where=_OPEN_STATUS_PREDICATE,
        ),
        Index("ix_working_sessions_user_status", "user_id", "status"),
        Index("ix_working_sessions_started_status", "started_at", "status"),
    )

    def __repr__(self):
        return f"<WorkingSession(id={self.id}, user_id={self.user_id}, status='{self.status.value}')>"
