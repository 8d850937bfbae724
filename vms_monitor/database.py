# vms_monitor/database.py
"""
Database connection, session management, and table creation.
Uses SQLAlchemy with PostgreSQL. All models are auto-imported here
so create_tables() creates every table in one call.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from vms_monitor.config import settings

_engine_kwargs = {"pool_pre_ping": True, "echo": False}
if not settings.DATABASE_URL.startswith("sqlite"):
    _engine_kwargs.update(pool_size=10, max_overflow=20)

engine = create_engine(settings.DATABASE_URL, **_engine_kwargs)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a DB session and closes it after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables(bind=None):
    """
    Creates all DB tables on startup. Safe to call multiple times.
    Import all models here so SQLAlchemy knows about them.
    """
    # Monitor-owned tables
    from vms_monitor.models.alert import Alert                       # noqa
    from vms_monitor.models.escalation_rule import EscalationRule    # noqa
    from vms_monitor.models.occupancy_sample import OccupancySample  # noqa
    # Platform records (read-only to the monitors)
    from vms_monitor.models.visit import Visit                       # noqa
    from vms_monitor.models.location import Location                 # noqa
    from vms_monitor.models.user import StaffUser                    # noqa

    Base.metadata.create_all(bind=bind or engine)
