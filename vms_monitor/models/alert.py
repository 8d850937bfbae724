# vms_monitor/models/alert.py
"""
Alerts table: every notification raised by the monitors, by escalation,
or by other parts of the platform.

Acknowledgment and external delivery are one-way flags; deactivation is
terminal. Rows are never deleted by the monitoring service.
"""

import json
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from vms_monitor.database import Base
from vms_monitor.models.enums import AlertPriority, AlertType
from vms_monitor.utils.timeutils import utcnow

TITLE_MAX = 200
MESSAGE_MAX = 1000


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(TITLE_MAX), nullable=False)
    message = Column(String(MESSAGE_MAX), nullable=False)
    alert_type = Column(String(50), nullable=False, index=True)
    priority = Column(Integer, nullable=False, default=int(AlertPriority.MEDIUM), index=True)

    target_role = Column(String(50))
    target_user_id = Column(Integer, index=True)
    target_location_id = Column(Integer)

    related_entity_type = Column(String(50))
    related_entity_id = Column(Integer)
    payload_data = Column(Text)

    is_acknowledged = Column(Boolean, nullable=False, default=False)
    acknowledged_by = Column(Integer)
    acknowledged_at = Column(DateTime)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    expires_at = Column(DateTime)

    sent_externally = Column(Boolean, nullable=False, default=False)
    sent_externally_at = Column(DateTime)

    escalation_count = Column(Integer, nullable=False, default=0)
    last_escalated_at = Column(DateTime)
    # JSON {rule_id: attempts}; max_attempts is enforced per rule
    rule_attempts = Column(Text)

    # <entity type>:<entity id>:<alert type>:<bucket>: unique across instances
    dedup_key = Column(String(200), unique=True)

    created_at = Column(DateTime, nullable=False, index=True)
    updated_at = Column(DateTime)

    @classmethod
    def create(
        cls,
        title: str,
        message: str,
        alert_type: AlertType,
        priority: AlertPriority,
        target_role: Optional[str] = None,
        target_user_id: Optional[int] = None,
        target_location_id: Optional[int] = None,
        related_entity_type: Optional[str] = None,
        related_entity_id: Optional[int] = None,
        data: Optional[dict] = None,
        dedup_key: Optional[str] = None,
        ttl_hours: Optional[int] = 24,
        now: Optional[datetime] = None,
    ) -> "Alert":
        """Build a new, unacknowledged, active alert (not yet persisted)."""
        now = now or utcnow()
        return cls(
            title=title[:TITLE_MAX],
            message=message[:MESSAGE_MAX],
            alert_type=AlertType(alert_type).value,
            priority=int(priority),
            target_role=target_role,
            target_user_id=target_user_id,
            target_location_id=target_location_id,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
            payload_data=json.dumps(data, default=str) if data is not None else None,
            is_acknowledged=False,
            is_active=True,
            sent_externally=False,
            escalation_count=0,
            dedup_key=dedup_key,
            expires_at=now + timedelta(hours=ttl_hours) if ttl_hours else None,
            created_at=now,
            updated_at=now,
        )

    def acknowledge(self, user_id: int, now: Optional[datetime] = None):
        if self.is_acknowledged:
            return
        now = now or utcnow()
        self.is_acknowledged = True
        self.acknowledged_by = user_id
        self.acknowledged_at = now
        self.updated_at = now

    def mark_sent_externally(self, now: Optional[datetime] = None):
        if self.sent_externally:
            return
        now = now or utcnow()
        self.sent_externally = True
        self.sent_externally_at = now
        self.updated_at = now

    def deactivate(self, now: Optional[datetime] = None):
        if not self.is_active:
            return
        self.is_active = False
        self.updated_at = now or utcnow()

    def attempts_for(self, rule_id: Optional[int]) -> int:
        if rule_id is None or not self.rule_attempts:
            return 0
        return json.loads(self.rule_attempts).get(str(rule_id), 0)

    def record_escalation(self, now: Optional[datetime] = None, rule_id: Optional[int] = None):
        now = now or utcnow()
        self.escalation_count = (self.escalation_count or 0) + 1
        if rule_id is not None:
            attempts = json.loads(self.rule_attempts) if self.rule_attempts else {}
            attempts[str(rule_id)] = attempts.get(str(rule_id), 0) + 1
            self.rule_attempts = json.dumps(attempts)
        self.last_escalated_at = now
        self.updated_at = now

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at is not None and (now or utcnow()) > self.expires_at

    @property
    def priority_level(self) -> AlertPriority:
        return AlertPriority(self.priority)

    @property
    def alert_kind(self) -> Optional[AlertType]:
        """The stored type as an AlertType, or None for a type this service does not know."""
        try:
            return AlertType(self.alert_type)
        except ValueError:
            return None

    @property
    def data(self) -> Optional[dict]:
        return json.loads(self.payload_data) if self.payload_data else None

    def __repr__(self):
        return (f"<Alert {self.id} type={self.alert_type} priority={self.priority} "
                f"ack={self.is_acknowledged} active={self.is_active}>")
