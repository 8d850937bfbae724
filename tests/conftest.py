"""Shared fixtures: in-memory SQLite store, test settings and row factories."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from vms_monitor.config import Settings
from vms_monitor.database import create_tables
from vms_monitor.models.alert import Alert
from vms_monitor.models.enums import AlertPriority, AlertType, EscalationAction, UserRole, VisitStatus
from vms_monitor.models.escalation_rule import EscalationRule
from vms_monitor.models.location import Location
from vms_monitor.models.user import StaffUser
from vms_monitor.models.visit import Visit
from vms_monitor.services.delivery_channels import DeliveryChannels

NOW = datetime(2025, 3, 10, 12, 10)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite needs these two hooks for SAVEPOINT / begin_nested to work
    @event.listens_for(engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def session_factory(db):
    """Monitors under test reuse the test session (one in-memory connection)."""
    return lambda: db


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL="sqlite://",
        SMTP_HOST=None,
        TWILIO_ACCOUNT_SID=None,
        TWILIO_AUTH_TOKEN=None,
        TWILIO_FROM_NUMBER=None,
        NOTIFICATION_WEBHOOK_URL=None,
        ATTENDANCE_STARTUP_DELAY_SECONDS=0,
        OCCUPANCY_STARTUP_DELAY_SECONDS=0,
        DISPATCHER_STARTUP_DELAY_SECONDS=0,
    )


@pytest.fixture
def channels(test_settings):
    return DeliveryChannels.from_settings(test_settings)


@pytest.fixture
def make_location(db):
    def _make(name="Lobby", max_capacity=10, is_active=True):
        location = Location(name=name, max_capacity=max_capacity, is_active=is_active)
        db.add(location)
        db.commit()
        return location
    return _make


@pytest.fixture
def make_visit(db):
    counter = {"n": 0}

    def _make(start, end=None, status=VisitStatus.APPROVED, location_id=None, host_id=7,
              visitor_name="Jane Doe", checked_in_at=None, checked_out_at=None):
        counter["n"] += 1
        visit = Visit(
            visitor_id=100 + counter["n"],
            visitor_name=visitor_name,
            host_id=host_id,
            location_id=location_id,
            scheduled_start=start,
            scheduled_end=end or start + timedelta(hours=1),
            status=status.value,
            checked_in_at=checked_in_at,
            checked_out_at=checked_out_at,
            is_deleted=False,
        )
        db.add(visit)
        db.commit()
        return visit
    return _make


@pytest.fixture
def make_user(db):
    def _make(full_name="Admin One", role=UserRole.ADMINISTRATOR, email=None, phone=None, is_active=True):
        user = StaffUser(full_name=full_name, role=role.value, email=email, phone=phone, is_active=is_active)
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def make_alert(db):
    def _make(title="Blacklisted person detected", alert_type=AlertType.BLACKLIST_ALERT,
              priority=AlertPriority.EMERGENCY, created_at=None, target_role=None, ttl_hours=24, **kwargs):
        alert = Alert.create(
            title, f"{title} at main gate", alert_type, priority,
            target_role=target_role, ttl_hours=ttl_hours, now=created_at or NOW - timedelta(minutes=10),
            **kwargs,
        )
        db.add(alert)
        db.commit()
        return alert
    return _make


@pytest.fixture
def make_rule(db):
    def _make(name, action=EscalationAction.ESCALATE_TO_ROLE, alert_type=AlertType.BLACKLIST_ALERT,
              priority=AlertPriority.EMERGENCY, delay_minutes=0, rule_priority=1, max_attempts=3, **kwargs):
        rule = EscalationRule(
            rule_name=name,
            alert_type=alert_type.value,
            alert_priority=int(priority),
            delay_minutes=delay_minutes,
            action=action.value,
            rule_priority=rule_priority,
            max_attempts=max_attempts,
            is_enabled=True,
            is_active=True,
            created_at=NOW,
            **kwargs,
        )
        db.add(rule)
        db.commit()
        return rule
    return _make
