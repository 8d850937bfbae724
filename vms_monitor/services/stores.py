# vms_monitor/services/stores.py
"""
Store layer: thin query objects over one SQLAlchemy session.

A fresh set of stores is built for every tick (see context.tick_scope) and
discarded with the session. Any SQLAlchemy failure surfaces as
TransientStoreError so the calling phase can be abandoned and retried.
"""

import functools
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from vms_monitor.errors import TransientStoreError
from vms_monitor.models.alert import Alert
from vms_monitor.models.enums import AlertPriority, VisitStatus
from vms_monitor.models.escalation_rule import EscalationRule
from vms_monitor.models.location import Location
from vms_monitor.models.occupancy_sample import OccupancySample
from vms_monitor.models.user import StaffUser
from vms_monitor.models.visit import Visit
from vms_monitor.utils.logger import get_logger

logger = get_logger(__name__)


def store_call(fn):
    """Translate driver/ORM errors into TransientStoreError."""
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except SQLAlchemyError as e:
            raise TransientStoreError(f"{type(self).__name__}.{fn.__name__} failed: {e}") from e
    return wrapper


class _BaseStore:
    def __init__(self, db: Session):
        self.db = db

    @store_call
    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

    @store_call
    def savepoint(self):
        """Nested transaction; leaving it with an error rolls back only its own work."""
        return self.db.begin_nested()


class VisitStore(_BaseStore):
    @store_call
    def get_visits_in_range(self, start: datetime, end: datetime) -> List[Visit]:
        """Visits whose scheduled window overlaps [start, end]."""
        return (
            self.db.query(Visit)
            .filter(Visit.scheduled_start <= end, Visit.scheduled_end >= start,
                    Visit.is_deleted.is_(False))
            .order_by(Visit.scheduled_start)
            .all()
        )

    @store_call
    def get_overstayed(self, threshold: datetime) -> List[Visit]:
        """Still-active visits whose scheduled end is at or before threshold."""
        return (
            self.db.query(Visit)
            .filter(Visit.scheduled_end <= threshold,
                    Visit.status == VisitStatus.ACTIVE.value,
                    Visit.checked_out_at.is_(None),
                    Visit.is_deleted.is_(False))
            .order_by(Visit.scheduled_end)
            .all()
        )

    @store_call
    def count_active_at_location(self, location_id: int) -> int:
        return (
            self.db.query(func.count(Visit.id))
            .filter(Visit.location_id == location_id,
                    Visit.status == VisitStatus.ACTIVE.value,
                    Visit.checked_in_at.isnot(None),
                    Visit.checked_out_at.is_(None),
                    Visit.is_deleted.is_(False))
            .scalar()
        ) or 0

    @store_call
    def count_scheduled_between(self, start: datetime, end: datetime) -> int:
        return (
            self.db.query(func.count(Visit.id))
            .filter(Visit.scheduled_start >= start, Visit.scheduled_start < end,
                    Visit.is_deleted.is_(False))
            .scalar()
        ) or 0

    @store_call
    def count_waiting(self, day_start: datetime, now: datetime) -> int:
        """Approved visits due today (up to now) that have not checked in."""
        return (
            self.db.query(func.count(Visit.id))
            .filter(Visit.scheduled_start >= day_start, Visit.scheduled_start <= now,
                    Visit.status == VisitStatus.APPROVED.value,
                    Visit.checked_in_at.is_(None),
                    Visit.is_deleted.is_(False))
            .scalar()
        ) or 0

    @store_call
    def count_in_progress(self) -> int:
        return (
            self.db.query(func.count(Visit.id))
            .filter(Visit.status == VisitStatus.ACTIVE.value,
                    Visit.checked_in_at.isnot(None),
                    Visit.checked_out_at.is_(None),
                    Visit.is_deleted.is_(False))
            .scalar()
        ) or 0


class AlertStore(_BaseStore):
    @store_call
    def exists(self, related_entity_type: str, related_entity_id: int, alert_type: str,
               since: Optional[datetime] = None) -> bool:
        q = self.db.query(Alert.id).filter(
            Alert.related_entity_type == related_entity_type,
            Alert.related_entity_id == related_entity_id,
            Alert.alert_type == alert_type,
        )
        if since is not None:
            q = q.filter(Alert.created_at >= since)
        return q.first() is not None

    @store_call
    def add(self, alert: Alert) -> Optional[Alert]:
        """
        Insert inside a savepoint. A dedup_key conflict means another writer
        already raised this alert; it is rolled back and reported as None.
        """
        try:
            with self.db.begin_nested():
                self.db.add(alert)
                self.db.flush()
        except IntegrityError:
            logger.info(f"[ALERT] Duplicate suppressed by store constraint: {alert.dedup_key}")
            return None
        return alert

    @store_call
    def update(self, alert: Alert) -> Alert:
        self.db.add(alert)
        return alert

    @store_call
    def pending_escalation(self, now: datetime, min_age: timedelta) -> List[Alert]:
        cutoff = now - min_age
        return (
            self.db.query(Alert)
            .filter(Alert.is_acknowledged.is_(False),
                    Alert.is_active.is_(True),
                    Alert.created_at < cutoff,
                    (Alert.expires_at.is_(None)) | (Alert.expires_at > now))
            .order_by(Alert.created_at)
            .all()
        )

    @store_call
    def pending_external(self, since: datetime, limit: int) -> List[Alert]:
        return (
            self.db.query(Alert)
            .filter(Alert.sent_externally.is_(False),
                    Alert.is_active.is_(True),
                    Alert.priority >= int(AlertPriority.CRITICAL),
                    Alert.created_at > since)
            .order_by(Alert.created_at)
            .limit(limit)
            .all()
        )

    @store_call
    def expired(self, now: datetime, limit: int) -> List[Alert]:
        return (
            self.db.query(Alert)
            .filter(Alert.expires_at.isnot(None),
                    Alert.expires_at < now,
                    Alert.is_active.is_(True))
            .order_by(Alert.expires_at)
            .limit(limit)
            .all()
        )


class LocationStore(_BaseStore):
    @store_call
    def get_active_locations(self) -> List[Location]:
        return self.db.query(Location).filter(Location.is_active.is_(True)).order_by(Location.id).all()

    @store_call
    def get(self, location_id: int) -> Optional[Location]:
        return self.db.query(Location).filter(Location.id == location_id).first()


class EscalationRuleStore(_BaseStore):
    @store_call
    def get_enabled_rules(self) -> List[EscalationRule]:
        return (
            self.db.query(EscalationRule)
            .filter(EscalationRule.is_enabled.is_(True), EscalationRule.is_active.is_(True))
            .order_by(EscalationRule.rule_priority, EscalationRule.id)
            .all()
        )


class OccupancyStore(_BaseStore):
    @store_call
    def get_bucket(self, location_id: int, bucket_start: datetime) -> Optional[OccupancySample]:
        return (
            self.db.query(OccupancySample)
            .filter(OccupancySample.location_id == location_id,
                    OccupancySample.bucket_start == bucket_start)
            .first()
        )

    @store_call
    def add(self, sample: OccupancySample) -> OccupancySample:
        self.db.add(sample)
        return sample

    @store_call
    def recent(self, since: datetime) -> List[OccupancySample]:
        """Samples refreshed since `since`, newest bucket first."""
        return (
            self.db.query(OccupancySample)
            .filter(OccupancySample.updated_at >= since)
            .order_by(OccupancySample.bucket_start.desc())
            .all()
        )


class UserStore(_BaseStore):
    @store_call
    def get_by_role(self, role: str) -> List[StaffUser]:
        return (
            self.db.query(StaffUser)
            .filter(StaffUser.role == role, StaffUser.is_active.is_(True))
            .order_by(StaffUser.id)
            .all()
        )
