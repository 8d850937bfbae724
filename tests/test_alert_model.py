"""Unit tests for the Alert / EscalationRule / OccupancySample models."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from datetime import datetime, timedelta
from vms_monitor.models.alert import Alert
from vms_monitor.models.enums import AlertPriority, AlertType, EscalationAction
from vms_monitor.models.escalation_rule import EscalationRule, split_recipients
from vms_monitor.models.occupancy_sample import OccupancySample
from vms_monitor.utils.timeutils import floor_to_bucket, whole_minutes, window_slot

NOW = datetime(2025, 3, 10, 12, 10)


def make_alert(**kwargs):
    defaults = dict(title="Blacklisted person", message="Main gate", alert_type=AlertType.BLACKLIST_ALERT,
                    priority=AlertPriority.EMERGENCY, now=NOW)
    defaults.update(kwargs)
    return Alert.create(**defaults)


def make_rule(**kwargs):
    defaults = dict(rule_name="r", alert_type="BlacklistAlert", alert_priority=5,
                    action="EscalateToRole", is_enabled=True, is_active=True)
    defaults.update(kwargs)
    return EscalationRule(**defaults)


class TestAlert:
    def test_create_defaults(self):
        alert = make_alert(data={"visit_id": 3})

        assert alert.is_acknowledged is False
        assert alert.is_active is True
        assert alert.sent_externally is False
        assert alert.escalation_count == 0
        assert alert.expires_at == NOW + timedelta(hours=24)
        assert alert.priority_level == AlertPriority.EMERGENCY
        assert alert.data == {"visit_id": 3}

    def test_long_title_is_clipped(self):
        alert = make_alert(title="x" * 500)

        assert len(alert.title) == 200

    def test_acknowledge_is_one_way(self):
        alert = make_alert()
        alert.acknowledge(user_id=1, now=NOW)
        alert.acknowledge(user_id=2, now=NOW + timedelta(minutes=5))

        assert alert.is_acknowledged is True
        assert alert.acknowledged_by == 1
        assert alert.acknowledged_at == NOW

    def test_mark_sent_externally_is_one_way(self):
        alert = make_alert()
        alert.mark_sent_externally(NOW)
        alert.mark_sent_externally(NOW + timedelta(hours=1))

        assert alert.sent_externally is True
        assert alert.sent_externally_at == NOW

    def test_deactivate_is_terminal(self):
        alert = make_alert()
        alert.deactivate(NOW)
        alert.deactivate(NOW + timedelta(hours=1))

        assert alert.is_active is False
        assert alert.updated_at == NOW

    def test_record_escalation(self):
        alert = make_alert()
        alert.record_escalation(NOW)
        alert.record_escalation(NOW + timedelta(minutes=5))

        assert alert.escalation_count == 2
        assert alert.last_escalated_at == NOW + timedelta(minutes=5)

    def test_attempts_are_counted_per_rule(self):
        alert = make_alert()
        alert.record_escalation(NOW, rule_id=1)
        alert.record_escalation(NOW + timedelta(minutes=5), rule_id=1)
        alert.record_escalation(NOW + timedelta(minutes=10), rule_id=2)

        assert alert.attempts_for(1) == 2
        assert alert.attempts_for(2) == 1
        assert alert.attempts_for(3) == 0
        assert alert.escalation_count == 3

    def test_unknown_stored_type_has_no_kind(self):
        alert = make_alert()
        assert alert.alert_kind == AlertType.BLACKLIST_ALERT
        alert.alert_type = "LegacyPanicButton"
        assert alert.alert_kind is None

    def test_is_expired(self):
        alert = make_alert(ttl_hours=1)

        assert alert.is_expired(NOW + timedelta(minutes=59)) is False
        assert alert.is_expired(NOW + timedelta(minutes=61)) is True
        assert make_alert(ttl_hours=None).is_expired(NOW + timedelta(days=365)) is False


class TestEscalationRule:
    def test_matches_type_and_priority(self):
        alert = make_alert()

        assert make_rule().matches(alert)
        assert not make_rule(alert_priority=4).matches(alert)
        assert not make_rule(alert_type="UnknownFace").matches(alert)

    def test_disabled_or_inactive_never_matches(self):
        alert = make_alert()

        assert not make_rule(is_enabled=False).matches(alert)
        assert not make_rule(is_active=False).matches(alert)

    def test_optional_role_and_location_filters(self):
        alert = make_alert(target_role="Security", target_location_id=4)

        assert make_rule(target_role="Security", location_id=4).matches(alert)
        assert not make_rule(target_role="Receptionist").matches(alert)
        assert not make_rule(location_id=5).matches(alert)

    def test_recipient_lists(self):
        rule = make_rule(escalation_emails=" a@x.com, ,b@x.com ", escalation_phones=None,
                         action="SendSMS")

        assert rule.email_list == ["a@x.com", "b@x.com"]
        assert rule.phone_list == []
        assert rule.action_kind == EscalationAction.SEND_SMS
        assert split_recipients("") == []


class TestOccupancyAndTime:
    def test_percent_full(self):
        assert OccupancySample(current_count=9, max_capacity=10).percent_full == 90
        assert OccupancySample(current_count=2, max_capacity=3).percent_full == 66
        assert OccupancySample(current_count=2, max_capacity=0).percent_full == 0

    def test_floor_to_bucket(self):
        assert floor_to_bucket(datetime(2025, 3, 10, 12, 14, 59), 5) == datetime(2025, 3, 10, 12, 10)

    def test_whole_minutes_truncates(self):
        assert whole_minutes(timedelta(minutes=14, seconds=59)) == 14

    def test_window_slots_differ_a_window_apart(self):
        assert window_slot(NOW, 60) == window_slot(NOW + timedelta(minutes=49), 60)
        assert window_slot(NOW, 60) != window_slot(NOW + timedelta(minutes=60), 60)
