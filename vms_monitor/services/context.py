# vms_monitor/services/context.py
"""
Per-tick working context.

Every tick (or tick phase) opens its own DB session, builds the stores and
the notification gateway on top of it, and closes everything on the way out,
including when the phase raises. Nothing session-bound outlives the scope.
"""

from contextlib import asynccontextmanager
from typing import Callable, Optional

from sqlalchemy.orm import Session

from vms_monitor.config import Settings
from vms_monitor.database import SessionLocal
from vms_monitor.services.delivery_channels import DeliveryChannels
from vms_monitor.services.notification_gateway import NotificationGateway
from vms_monitor.services.stores import (
    AlertStore,
    EscalationRuleStore,
    LocationStore,
    OccupancyStore,
    UserStore,
    VisitStore,
)


class TickContext:
    def __init__(self, db: Session, settings: Settings, channels: DeliveryChannels):
        self.db = db
        self.settings = settings
        self.visits = VisitStore(db)
        self.alerts = AlertStore(db)
        self.locations = LocationStore(db)
        self.rules = EscalationRuleStore(db)
        self.occupancy = OccupancyStore(db)
        self.users = UserStore(db)
        self.gateway = NotificationGateway(self.alerts, settings)
        self.channels = channels


@asynccontextmanager
async def tick_scope(
    settings: Settings,
    session_factory: Optional[Callable[[], Session]] = None,
    channels: Optional[DeliveryChannels] = None,
):
    db = (session_factory or SessionLocal)()
    try:
        yield TickContext(db, settings, channels or DeliveryChannels.from_settings(settings))
    except BaseException:
        db.rollback()
        raise
    finally:
        db.close()
