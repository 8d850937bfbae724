# vms_monitor/models/user.py
"""
Staff users (platform-owned, read-only).
Used to resolve administrator email addresses for external delivery.
"""

from sqlalchemy import Boolean, Column, Integer, String

from vms_monitor.database import Base


class StaffUser(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String(200), nullable=False)
    email = Column(String(200))
    phone = Column(String(50))
    role = Column(String(50), nullable=False, index=True)   # see UserRole
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<StaffUser {self.id} {self.full_name} role={self.role}>"
