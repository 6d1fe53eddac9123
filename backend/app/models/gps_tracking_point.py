"""
GPS Tracking Point database model.

Append-only log of location samples pushed by representatives' devices.
"""

from sqlalchemy import Column, Integer, Float, Boolean, DateTime, Index, and_
from sqlalchemy.sql import func
from backend.app.db.session import Base


class GpsTrackingPoint(Base):
    """
    GPS Tracking Point model.

    Samples are stored as received. Coordinates are nullable so malformed
    samples are kept for audit; `is_valid_clause()` is the filter every
    distance and map query must apply.
    """
    __tablename__ = "gps_tracking_points"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    user_id = Column(Integer, nullable=False, index=True)

    # GPS coordinates
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    accuracy = Column(Float, nullable=True)  # meters
    speed = Column(Float, nullable=True)  # km/h
    heading = Column(Float, nullable=True)  # degrees
    battery_level = Column(Integer, nullable=True)  # 0-100

    # Fraud detection flag reported by the device
    is_mock_location = Column(Boolean, default=False, nullable=False)

    # Timing
    recorded_at = Column(DateTime(timezone=True), nullable=False)  # When GPS was recorded (client clock)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)  # When inserted to DB

    __table_args__ = (
        Index("ix_gps_points_user_recorded", "user_id", "recorded_at"),
        Index("ix_gps_points_user_recorded_mock", "user_id", "recorded_at", "is_mock_location"),
    )

    @classmethod
    def is_valid_clause(cls):
        """SQL predicate for samples usable in tracking and reporting."""
        return and_(
            cls.latitude.is_not(None),
            cls.longitude.is_not(None),
            cls.is_mock_location.is_(False),
        )

    @property
    def is_valid(self) -> bool:
        return self.latitude is not None and self.longitude is not None and not self.is_mock_location

    def __repr__(self):
        return f"<GpsTrackingPoint(user_id={self.user_id}, lat={self.latitude}, lng={self.longitude})>"
