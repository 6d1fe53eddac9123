"""
PDV Visit database model.

A representative's check-in/check-out at a point of sale.
"""

from sqlalchemy import Column, Integer, Float, Boolean, Text, DateTime, Enum, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.enums import VisitStatus, enum_values


class PdvVisit(Base):
    """
    PDV Visit model.

    Created at check-in (in_progress), mutated exactly once by check-out or
    cancellation. `is_valid` records whether the geofence check passed; it
    does not block the visit.
    """
    __tablename__ = "pdv_visits"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # References (external catalogs, no FK)
    user_id = Column(Integer, nullable=False, index=True)
    pdv_id = Column(Integer, nullable=False, index=True)

    # Timing
    check_in_at = Column(DateTime(timezone=True), nullable=False)
    check_out_at = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=True)

    # Status
    visit_status = Column(
        Enum(VisitStatus, name="visit_status", values_callable=enum_values),
        default=VisitStatus.IN_PROGRESS,
        nullable=False,
    )

    # Check-in location and geofence result
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    distance_to_pdv = Column(Float, nullable=True)  # meters
    is_valid = Column(Boolean, default=True, nullable=False)
    used_mock_location = Column(Boolean, default=False, nullable=False)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_pdv_visits_user_check_in", "user_id", "check_in_at"),
        Index("ix_pdv_visits_check_out_status", "check_out_at", "visit_status"),
    )

    def __repr__(self):
        return f"<PdvVisit(id={self.id}, pdv_id={self.pdv_id}, status='{self.visit_status.value}')>"
