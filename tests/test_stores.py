"""Unit tests for the SQLAlchemy store layer."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import MagicMock
from datetime import datetime, timedelta
from sqlalchemy.exc import OperationalError
from vms_monitor.errors import TransientStoreError
from vms_monitor.models.alert import Alert
from vms_monitor.models.enums import AlertPriority, AlertType, VisitStatus
from vms_monitor.services.stores import AlertStore, VisitStore

NOW = datetime(2025, 3, 10, 12, 10)


class TestAlertStore:
    def test_add_with_duplicate_dedup_key_returns_none(self, db):
        store = AlertStore(db)
        first = Alert.create("a", "m", AlertType.CAPACITY_ALERT, AlertPriority.MEDIUM, dedup_key="k", now=NOW)
        second = Alert.create("b", "m", AlertType.CAPACITY_ALERT, AlertPriority.MEDIUM, dedup_key="k", now=NOW)

        assert store.add(first) is first
        store.commit()
        assert store.add(second) is None
        store.commit()

        assert db.query(Alert).count() == 1

    def test_exists_honours_since(self, db, make_alert):
        make_alert(related_entity_type="Location", related_entity_id=1, alert_type=AlertType.CAPACITY_ALERT,
                   priority=AlertPriority.MEDIUM, created_at=NOW - timedelta(minutes=90))
        store = AlertStore(db)

        assert store.exists("Location", 1, "CapacityAlert")
        assert not store.exists("Location", 1, "CapacityAlert", since=NOW - timedelta(hours=1))
        assert not store.exists("Location", 2, "CapacityAlert")

    def test_pending_external_filters(self, db, make_alert):
        make_alert(title="critical", priority=AlertPriority.CRITICAL, alert_type=AlertType.SYSTEM_ALERT)
        make_alert(title="high", priority=AlertPriority.HIGH)
        sent = make_alert(title="sent")
        sent.mark_sent_externally(NOW)
        db.commit()

        titles = [a.title for a in AlertStore(db).pending_external(NOW - timedelta(hours=24), 10)]

        assert titles == ["critical"]

    def test_store_errors_are_transient(self):
        db = MagicMock()
        db.query.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))

        with pytest.raises(TransientStoreError):
            AlertStore(db).expired(NOW, 10)


class TestVisitStore:
    def test_visits_in_range_overlap(self, db, make_visit):
        inside = make_visit(NOW - timedelta(minutes=30))
        make_visit(NOW - timedelta(hours=6))
        make_visit(NOW + timedelta(hours=2))

        ids = [v.id for v in VisitStore(db).get_visits_in_range(NOW - timedelta(hours=2), NOW)]

        assert ids == [inside.id]

    def test_overstayed_only_active_not_checked_out(self, db, make_visit):
        end = NOW - timedelta(minutes=90)
        stuck = make_visit(end - timedelta(hours=1), end=end, status=VisitStatus.ACTIVE, checked_in_at=end)
        make_visit(end - timedelta(hours=1), end=end, status=VisitStatus.ACTIVE, checked_in_at=end,
                   checked_out_at=NOW - timedelta(minutes=70))
        make_visit(end - timedelta(hours=1), end=end, status=VisitStatus.COMPLETED)

        ids = [v.id for v in VisitStore(db).get_overstayed(NOW - timedelta(minutes=60))]

        assert ids == [stuck.id]
