"""
PDV catalog database model.

Points of sale with their registered coordinates and route membership.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean
from backend.app.db.session import Base


class Pdv(Base):
    """Point of sale registered in the catalog."""
    __tablename__ = "pdvs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    route_id = Column(Integer, index=True, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Pdv(id={self.id}, name='{self.name}', route_id={self.route_id})>"
