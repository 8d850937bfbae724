# vms_monitor/models/escalation_rule.py
"""
Escalation rules for unacknowledged alerts.
A rule matches on alert type + priority (and optionally target role / location)
and fires its action once the alert is at least delay_minutes old.
Lower rule_priority wins when several rules match the same alert.
"""

from typing import List

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from vms_monitor.database import Base
from vms_monitor.models.enums import EscalationAction


def split_recipients(raw) -> List[str]:
    """Comma-separated recipient column → clean list."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


class EscalationRule(Base):
    __tablename__ = "alert_escalation_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rule_name = Column(String(100), nullable=False, unique=True)

    # Match predicate
    alert_type = Column(String(50), nullable=False, index=True)
    alert_priority = Column(Integer, nullable=False)
    target_role = Column(String(50))        # null = any role
    location_id = Column(Integer)           # null = any location
    delay_minutes = Column(Integer, nullable=False, default=5)

    # Action + targets
    action = Column(String(50), nullable=False)
    escalation_target_role = Column(String(50))
    escalation_target_user_id = Column(Integer)
    escalation_emails = Column(String(500))   # comma separated
    escalation_phones = Column(String(200))   # comma separated

    max_attempts = Column(Integer, nullable=False, default=3)
    rule_priority = Column(Integer, nullable=False, default=10, index=True)
    is_enabled = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    configuration = Column(Text)
    created_at = Column(DateTime)

    def matches(self, alert) -> bool:
        if not self.is_enabled or not self.is_active:
            return False
        if self.alert_type != alert.alert_type:
            return False
        if self.alert_priority != alert.priority:
            return False
        if self.target_role and self.target_role != alert.target_role:
            return False
        if self.location_id is not None and self.location_id != alert.target_location_id:
            return False
        return True

    @property
    def action_kind(self) -> EscalationAction:
        return EscalationAction(self.action)

    @property
    def email_list(self) -> List[str]:
        return split_recipients(self.escalation_emails)

    @property
    def phone_list(self) -> List[str]:
        return split_recipients(self.escalation_phones)

    def __repr__(self):
        return f"<EscalationRule {self.rule_name} action={self.action} prio={self.rule_priority}>"
