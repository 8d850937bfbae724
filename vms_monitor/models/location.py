# vms_monitor/models/location.py
"""Facility locations with their visitor capacity (platform-owned, read-only)."""

from sqlalchemy import Boolean, Column, Integer, String

from vms_monitor.database import Base


class Location(Base):
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    max_capacity = Column(Integer, default=10, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<Location {self.name} capacity={self.max_capacity}>"
