# vms_monitor/services/rule_seeder.py
"""
Default escalation rules.

Each severity tier gets a first-response rule (rule_priority 1) and a
follow-up (rule_priority 2). Seeding is idempotent by rule_name: existing
rules, including ones an operator has since edited or disabled, are left
untouched.
"""

from typing import List

from sqlalchemy.orm import Session

from vms_monitor.models.enums import AlertPriority, AlertType, EscalationAction, UserRole
from vms_monitor.models.escalation_rule import EscalationRule
from vms_monitor.utils.logger import get_logger
from vms_monitor.utils.timeutils import utcnow

logger = get_logger(__name__)

EMERGENCY_TYPES = [AlertType.BLACKLIST_ALERT, AlertType.EMERGENCY_ALERT, AlertType.UNKNOWN_FACE]
CRITICAL_TYPES = [AlertType.SYSTEM_ALERT, AlertType.CAPACITY_ALERT]
HIGH_TYPES = [AlertType.VIP_ARRIVAL, AlertType.VISITOR_OVERSTAY]
MEDIUM_TYPES = [AlertType.VISITOR_ARRIVAL, AlertType.VISITOR_CHECKED_IN, AlertType.VISITOR_CHECKED_OUT]
LOW_TYPES = [AlertType.CUSTOM]


def _rule(name, alert_type, priority, delay, action, target_role=None, rule_priority=1, max_attempts=3):
    return {
        "rule_name": name,
        "alert_type": alert_type.value,
        "alert_priority": int(priority),
        "delay_minutes": delay,
        "action": action.value,
        "escalation_target_role": target_role.value if target_role else None,
        "rule_priority": rule_priority,
        "max_attempts": max_attempts,
    }


def default_rules() -> List[dict]:
    admin, reception = UserRole.ADMINISTRATOR, UserRole.RECEPTIONIST
    rules = []

    for t in EMERGENCY_TYPES:
        rules.append(_rule(f"Emergency {t.value} - Immediate Admin", t, AlertPriority.EMERGENCY, 0,
                           EscalationAction.ESCALATE_TO_ROLE, admin))
        rules.append(_rule(f"Emergency {t.value} - Email Admin", t, AlertPriority.EMERGENCY, 5,
                           EscalationAction.SEND_EMAIL, admin, rule_priority=2))

    for t in CRITICAL_TYPES:
        rules.append(_rule(f"Critical {t.value} - Admin Notification", t, AlertPriority.CRITICAL, 0,
                           EscalationAction.ESCALATE_TO_ROLE, admin))
        rules.append(_rule(f"Critical {t.value} - Email Escalation", t, AlertPriority.CRITICAL, 15,
                           EscalationAction.SEND_EMAIL, admin, rule_priority=2))

    for t in HIGH_TYPES:
        rules.append(_rule(f"High {t.value} - Operator Notification", t, AlertPriority.HIGH, 0,
                           EscalationAction.ESCALATE_TO_ROLE, reception))
        rules.append(_rule(f"High {t.value} - Admin Escalation", t, AlertPriority.HIGH, 30,
                           EscalationAction.ESCALATE_TO_ROLE, admin, rule_priority=2))

    for t in MEDIUM_TYPES:
        rules.append(_rule(f"Medium {t.value} - Operator Notification", t, AlertPriority.MEDIUM, 0,
                           EscalationAction.ESCALATE_TO_ROLE, reception))
        rules.append(_rule(f"Medium {t.value} - High Priority Alert", t, AlertPriority.MEDIUM, 60,
                           EscalationAction.CREATE_HIGH_PRIORITY_ALERT, admin, rule_priority=2))

    for t in LOW_TYPES:
        rules.append(_rule(f"Low {t.value} - Log Escalation", t, AlertPriority.LOW, 120,
                           EscalationAction.LOG_CRITICAL_EVENT, max_attempts=1))

    return rules


def seed_default_rules(db: Session) -> int:
    """Insert any missing default rule. Returns how many were added."""
    existing = {name for (name,) in db.query(EscalationRule.rule_name).all()}
    now = utcnow()
    added = 0

    for row in default_rules():
        if row["rule_name"] in existing:
            continue
        db.add(EscalationRule(is_enabled=True, is_active=True, created_at=now, **row))
        added += 1

    db.commit()
    logger.info(f"[ESCALATION] Seeded {added} default escalation rules ({len(existing)} already present)")
    return added
