# vms_monitor/models/visit.py
"""
Scheduled visits table. Owned by the visitor-management platform;
the monitors only read it.
"""

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from vms_monitor.database import Base


class Visit(Base):
    __tablename__ = "visits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    visitor_id = Column(Integer, nullable=False, index=True)
    visitor_name = Column(String(200))
    host_id = Column(Integer, nullable=False, index=True)
    location_id = Column(Integer, index=True)
    scheduled_start = Column(DateTime, nullable=False, index=True)
    scheduled_end = Column(DateTime, nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)   # see VisitStatus
    checked_in_at = Column(DateTime)
    checked_out_at = Column(DateTime)
    is_deleted = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f"<Visit {self.id} visitor={self.visitor_id} status={self.status}>"
