# vms_monitor/services/notification_gateway.py
"""
Notification fan-out primitives used by every monitor.

notify_user / notify_role persist an Alert row (always committed immediately,
so other monitors see it on their next tick) and then push it to the live
dashboard hub. broadcast pushes an already-persisted alert. publish_metrics
pushes dashboard numbers without persisting anything.

The hub is an HTTP endpoint (NOTIFICATION_WEBHOOK_URL). A failed push is
logged and never undoes the persisted alert.
"""

from datetime import datetime
from typing import Optional

import httpx

from vms_monitor.config import Settings
from vms_monitor.models.alert import Alert
from vms_monitor.models.enums import AlertPriority, AlertType
from vms_monitor.schemas.alert import AlertEvent
from vms_monitor.schemas.dashboard import DashboardMetrics
from vms_monitor.services.stores import AlertStore
from vms_monitor.utils.logger import get_logger

logger = get_logger(__name__)


class NotificationGateway:
    def __init__(self, alerts: AlertStore, settings: Settings):
        self.alerts = alerts
        self.settings = settings

    async def notify_user(
        self,
        user_id: int,
        title: str,
        message: str,
        alert_type: AlertType,
        priority: AlertPriority = AlertPriority.MEDIUM,
        data: Optional[dict] = None,
        related_entity_type: Optional[str] = None,
        related_entity_id: Optional[int] = None,
        target_location_id: Optional[int] = None,
        dedup_key: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Alert]:
        """Persist + push an alert addressed to one user. None if deduplicated."""
        alert = Alert.create(
            title, message, alert_type, priority,
            target_user_id=user_id,
            target_location_id=target_location_id,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
            data=data,
            dedup_key=dedup_key,
            ttl_hours=self.settings.ALERT_DEFAULT_TTL_HOURS,
            now=now,
        )
        if not self._persist(alert):
            return None
        await self._publish("UserNotification", AlertEvent.model_validate(alert).model_dump(mode="json"))
        logger.info(f"[NOTIFY] user={user_id}: {title}")
        return alert

    async def notify_role(
        self,
        role: str,
        title: str,
        message: str,
        alert_type: AlertType,
        priority: AlertPriority = AlertPriority.MEDIUM,
        data: Optional[dict] = None,
        related_entity_type: Optional[str] = None,
        related_entity_id: Optional[int] = None,
        target_location_id: Optional[int] = None,
        dedup_key: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Alert]:
        """Persist + push an alert addressed to every user holding `role`."""
        alert = Alert.create(
            title, message, alert_type, priority,
            target_role=role,
            target_location_id=target_location_id,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
            data=data,
            dedup_key=dedup_key,
            ttl_hours=self.settings.ALERT_DEFAULT_TTL_HOURS,
            now=now,
        )
        if not self._persist(alert):
            return None
        await self._publish("RoleNotification", AlertEvent.model_validate(alert).model_dump(mode="json"))
        logger.info(f"[NOTIFY] role={role}: {title}")
        return alert

    async def broadcast(self, alert: Alert):
        """Push an already-persisted alert to its role, or to everyone."""
        payload = AlertEvent.model_validate(alert).model_dump(mode="json")
        await self._publish("BulkNotification", payload)
        logger.info(f"[NOTIFY] broadcast alert {alert.id}: {alert.title}")

    async def publish_metrics(self, metrics: DashboardMetrics):
        await self._publish("SystemHealthUpdate", metrics.model_dump(mode="json"))
        logger.debug(
            f"[NOTIFY] metrics: occupancy={metrics.total_occupancy} "
            f"waiting={metrics.waiting_visitors} today={metrics.todays_scheduled}"
        )

    def _persist(self, alert: Alert) -> bool:
        if self.alerts.add(alert) is None:
            return False
        self.alerts.commit()
        return True

    async def _publish(self, event: str, payload: dict):
        url = self.settings.NOTIFICATION_WEBHOOK_URL
        if not url:
            return
        try:
            async with httpx.AsyncClient(timeout=self.settings.NOTIFICATION_WEBHOOK_TIMEOUT_SECONDS) as client:
                response = await client.post(url, json={"event": event, "payload": payload})
                if response.status_code >= 400:
                    logger.warning(f"[NOTIFY] Hub returned HTTP {response.status_code} for {event}")
        except httpx.HTTPError as e:
            logger.warning(f"[NOTIFY] Hub push failed for {event}: {e}")
