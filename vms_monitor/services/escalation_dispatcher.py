# vms_monitor/services/escalation_dispatcher.py
"""
Alert escalation dispatcher.

Alert lifecycle:  Created → [EscalationApplied]* → Acknowledged | Expired

Each tick runs three independent phases:
  1. escalation        : unacknowledged alerts older than ESCALATION_MIN_AGE
                          are matched against the enabled rules; only the
                          first (lowest rule_priority) eligible rule fires
  2. external delivery : Critical/Emergency alerts not yet sent are emailed
                          to every administrator, then flagged sent
                          (one commit per sweep: at-least-once)
  3. cleanup           : alerts past expires_at are deactivated

Per-alert escalation failures are isolated: they are logged and rolled back
and the sweep moves on to the next alert.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from vms_monitor.config import Settings
from vms_monitor.errors import ChannelDeliveryError, ConfigurationError
from vms_monitor.models.alert import Alert
from vms_monitor.models.enums import (
    ENTITY_ALERT,
    AlertPriority,
    EscalationAction,
    UserRole,
)
from vms_monitor.models.escalation_rule import EscalationRule
from vms_monitor.services.context import TickContext
from vms_monitor.services.monitor import PeriodicMonitor
from vms_monitor.utils.logger import get_logger

logger = get_logger(__name__)

SMS_EXCERPT_CHARS = 100


class AlertEscalationDispatcher(PeriodicMonitor):
    name = "escalation-dispatcher"

    def __init__(self, settings: Settings, **kwargs):
        super().__init__(
            settings,
            interval_seconds=settings.DISPATCHER_INTERVAL_SECONDS,
            recovery_delay_seconds=settings.DISPATCHER_RECOVERY_SECONDS,
            startup_delay_seconds=settings.DISPATCHER_STARTUP_DELAY_SECONDS,
            **kwargs,
        )
        self._unknown_type_alerts = set()
        # Closed action set → one handler each
        self.handlers = {
            EscalationAction.ESCALATE_TO_ROLE: self._escalate_to_role,
            EscalationAction.ESCALATE_TO_USER: self._escalate_to_user,
            EscalationAction.SEND_EMAIL: self._send_email,
            EscalationAction.SEND_SMS: self._send_sms,
            EscalationAction.CREATE_HIGH_PRIORITY_ALERT: self._create_high_priority_alert,
            EscalationAction.LOG_CRITICAL_EVENT: self._log_critical_event,
        }

    async def tick(self, now: Optional[datetime] = None):
        now = now or self.clock()
        await self.run_phases(now, [
            ("escalation", self.process_escalations),
            ("external-delivery", self.deliver_external),
            ("cleanup", self.cleanup_expired),
        ])

    # ── 1. Escalation ───────────────────────────────────────────────────────
    def select_rule(self, alert: Alert, rules: Iterable[EscalationRule],
                    now: datetime) -> Optional[EscalationRule]:
        """First eligible rule by rule_priority, or None."""
        if alert.related_entity_type == ENTITY_ALERT:
            return None  # escalation output is never escalated again
        repeat = timedelta(minutes=self.settings.ESCALATION_REPEAT_MINUTES)
        if alert.last_escalated_at is not None and now - alert.last_escalated_at < repeat:
            return None

        elapsed_minutes = (now - alert.created_at).total_seconds() / 60
        for rule in sorted(rules, key=lambda r: (r.rule_priority, r.id or 0)):
            if not rule.matches(alert):
                continue
            if elapsed_minutes < rule.delay_minutes:
                continue
            if alert.attempts_for(rule.id) >= rule.max_attempts:
                continue
            return rule
        return None

    async def process_escalations(self, ctx: TickContext, now: datetime) -> int:
        min_age = timedelta(minutes=self.settings.ESCALATION_MIN_AGE_MINUTES)
        alerts = ctx.alerts.pending_escalation(now, min_age)
        if not alerts:
            return 0

        rules = ctx.rules.get_enabled_rules()
        if not rules:
            logger.debug(f"[ESCALATION] {len(alerts)} unacknowledged alerts, no enabled rules")
            return 0

        escalated = 0
        for alert in alerts:
            if alert.alert_kind is None:
                if alert.id not in self._unknown_type_alerts:
                    self._unknown_type_alerts.add(alert.id)
                    logger.warning(f"[ESCALATION] Alert {alert.id} has unknown type "
                                   f"'{alert.alert_type}', not escalated")
                continue
            rule = self.select_rule(alert, rules, now)
            if rule is None:
                continue
            alert_id = alert.id
            try:
                await self.execute_action(ctx, rule, alert, now)
                alert.record_escalation(now, rule_id=rule.id)
                ctx.alerts.update(alert)
                ctx.alerts.commit()
                escalated += 1
            except Exception as e:
                ctx.alerts.rollback()
                logger.error(f"[ESCALATION] Alert {alert_id} failed on rule '{rule.rule_name}': {e}",
                             exc_info=True)

        if escalated:
            logger.info(f"[ESCALATION] Escalated {escalated}/{len(alerts)} unacknowledged alerts")
        return escalated

    async def execute_action(self, ctx: TickContext, rule: EscalationRule, alert: Alert, now: datetime):
        action = rule.action_kind
        try:
            await self.handlers[action](ctx, rule, alert, now)
        except ConfigurationError as e:
            logger.info(f"[ESCALATION] {action.value} for alert {alert.id} skipped: {e}")
            return
        logger.info(f"[ESCALATION] {action.value} executed for alert {alert.id} (rule '{rule.rule_name}')")

    async def _escalate_to_role(self, ctx: TickContext, rule: EscalationRule, alert: Alert, now: datetime):
        if not rule.escalation_target_role:
            raise ConfigurationError(f"rule '{rule.rule_name}' has no target role")
        await ctx.gateway.notify_role(
            rule.escalation_target_role,
            f"ESCALATED: {alert.title}",
            f"Alert escalated due to no acknowledgment. Original: {alert.message}",
            alert.alert_kind, AlertPriority.HIGH,
            data={"original_alert_id": alert.id, "rule": rule.rule_name},
            related_entity_type=ENTITY_ALERT,
            related_entity_id=alert.id,
            target_location_id=alert.target_location_id,
            now=now,
        )

    async def _escalate_to_user(self, ctx: TickContext, rule: EscalationRule, alert: Alert, now: datetime):
        if rule.escalation_target_user_id is None:
            raise ConfigurationError(f"rule '{rule.rule_name}' has no target user")
        await ctx.gateway.notify_user(
            rule.escalation_target_user_id,
            f"ESCALATED: {alert.title}",
            f"Alert escalated to you. Original: {alert.message}",
            alert.alert_kind, AlertPriority.HIGH,
            data={"original_alert_id": alert.id, "rule": rule.rule_name},
            related_entity_type=ENTITY_ALERT,
            related_entity_id=alert.id,
            target_location_id=alert.target_location_id,
            now=now,
        )

    def _recipients(self, ctx: TickContext, rule: EscalationRule, explicit: List[str], attr: str) -> List[str]:
        """Explicit rule list, else the contacts of the rule's target role."""
        if explicit:
            return explicit
        if not rule.escalation_target_role:
            return []
        return [getattr(u, attr) for u in ctx.users.get_by_role(rule.escalation_target_role) if getattr(u, attr)]

    async def _send_email(self, ctx: TickContext, rule: EscalationRule, alert: Alert, now: datetime):
        recipients = self._recipients(ctx, rule, rule.email_list, "email")
        if not recipients:
            raise ConfigurationError(f"rule '{rule.rule_name}' has no email recipients")
        subject = f"ESCALATED ALERT: {alert.title}"
        body = (
            f"Alert Details:\n\n"
            f"Title: {alert.title}\n"
            f"Message: {alert.message}\n"
            f"Priority: {alert.priority_level.name.title()}\n"
            f"Time: {alert.created_at:%Y-%m-%d %H:%M:%S} UTC\n\n"
            f"This alert was escalated due to lack of acknowledgment."
        )
        sent = await self._fan_out(ctx.channels.email.send, recipients, subject, body)
        logger.info(f"[ESCALATION] Email for alert {alert.id}: {sent}/{len(recipients)} delivered")

    async def _send_sms(self, ctx: TickContext, rule: EscalationRule, alert: Alert, now: datetime):
        recipients = self._recipients(ctx, rule, rule.phone_list, "phone")
        if not recipients:
            raise ConfigurationError(f"rule '{rule.rule_name}' has no phone recipients")
        text = f"ALERT: {alert.title} - {alert.message[:SMS_EXCERPT_CHARS]}..."
        sent = await self._fan_out(ctx.channels.sms.send, recipients, text)
        logger.info(f"[ESCALATION] SMS for alert {alert.id}: {sent}/{len(recipients)} delivered")

    async def _create_high_priority_alert(self, ctx: TickContext, rule: EscalationRule,
                                          alert: Alert, now: datetime):
        escalated = Alert.create(
            f"HIGH PRIORITY: {alert.title}",
            f"Escalated alert: {alert.message}",
            alert.alert_kind, AlertPriority.CRITICAL,
            target_role=rule.escalation_target_role,
            target_location_id=alert.target_location_id,
            related_entity_type=ENTITY_ALERT,
            related_entity_id=alert.id,
            data={"original_alert_id": alert.id, "rule": rule.rule_name},
            dedup_key=f"{ENTITY_ALERT}:{alert.id}:{alert.alert_type}:escalated",
            ttl_hours=self.settings.ALERT_DEFAULT_TTL_HOURS,
            now=now,
        )
        if ctx.alerts.add(escalated) is None:
            logger.info(f"[ESCALATION] High-priority copy of alert {alert.id} already exists")
            return
        ctx.alerts.commit()
        await ctx.gateway.broadcast(escalated)

    async def _log_critical_event(self, ctx: TickContext, rule: EscalationRule, alert: Alert, now: datetime):
        logger.critical(
            f"ESCALATED ALERT: {alert.title} (ID: {alert.id}) - {alert.message}",
            extra={"alert_id": alert.id, "alert_type": alert.alert_type,
                   "priority": alert.priority, "rule": rule.rule_name, "data": alert.data},
        )

    async def _fan_out(self, send, recipients: List[str], *args) -> int:
        """Send to each recipient; one failure never stops the rest."""
        sent = 0
        for recipient in recipients:
            try:
                await send(recipient, *args)
                sent += 1
            except ChannelDeliveryError as e:
                logger.error(f"[DELIVERY] {e}")
        return sent

    # ── 2. External delivery ────────────────────────────────────────────────
    async def deliver_external(self, ctx: TickContext, now: datetime) -> int:
        s = self.settings
        since = now - timedelta(hours=s.EXTERNAL_DELIVERY_WINDOW_HOURS)
        alerts = ctx.alerts.pending_external(since, s.EXTERNAL_DELIVERY_BATCH_SIZE)
        if not alerts:
            return 0

        admin_emails = [u.email for u in ctx.users.get_by_role(UserRole.ADMINISTRATOR.value) if u.email]
        if not admin_emails:
            logger.info("[DELIVERY] No administrator email addresses on file")

        for alert in alerts:
            await self._email_administrators(ctx, alert, admin_emails)
            alert.mark_sent_externally(now)
            ctx.alerts.update(alert)

        ctx.alerts.commit()
        logger.info(f"[DELIVERY] External sweep processed {len(alerts)} critical alerts")
        return len(alerts)

    async def _email_administrators(self, ctx: TickContext, alert: Alert, emails: List[str]):
        if not emails:
            return
        subject = f"CRITICAL ALERT: {alert.title}"
        body = (
            f"Priority: {alert.priority_level.name.title()}\n"
            f"Time: {alert.created_at:%Y-%m-%d %H:%M:%S} UTC\n"
            f"Message: {alert.message}"
        )
        try:
            sent = await self._fan_out(ctx.channels.email.send, emails, subject, body)
        except ConfigurationError as e:
            logger.info(f"[DELIVERY] Alert {alert.id} not emailed: {e}")
            return
        logger.info(f"[DELIVERY] Alert {alert.id} emailed to {sent}/{len(emails)} administrators")

    # ── 3. Cleanup ──────────────────────────────────────────────────────────
    async def cleanup_expired(self, ctx: TickContext, now: datetime) -> int:
        expired = ctx.alerts.expired(now, self.settings.EXPIRY_CLEANUP_BATCH_SIZE)
        if not expired:
            return 0
        for alert in expired:
            alert.deactivate(now)
            ctx.alerts.update(alert)
        ctx.alerts.commit()
        logger.info(f"[CLEANUP] Deactivated {len(expired)} expired alerts")
        return len(expired)
