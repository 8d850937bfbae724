# vms_monitor/services/attendance_monitor.py
"""
Attendance monitor: delay and no-show alerts for approved visits.

Every tick re-derives everything from the visits table:
  minutes_late >= NO_SHOW_THRESHOLD  → one VisitorNoShow alert per visit
  minutes_late >= DELAY_THRESHOLD    → one VisitorDelayed alert per visit
Visits not yet due, or already checked in, are skipped. Once a visit is in
no-show territory no Delayed alert is raised for it any more.
"""

from datetime import datetime, timedelta
from typing import Optional

from vms_monitor.config import Settings
from vms_monitor.models.enums import ENTITY_VISIT, AlertPriority, AlertType, VisitStatus
from vms_monitor.models.visit import Visit
from vms_monitor.services.context import TickContext
from vms_monitor.services.monitor import PeriodicMonitor
from vms_monitor.utils.logger import get_logger
from vms_monitor.utils.timeutils import whole_minutes

logger = get_logger(__name__)


class AttendanceMonitor(PeriodicMonitor):
    name = "attendance-monitor"

    def __init__(self, settings: Settings, **kwargs):
        super().__init__(
            settings,
            interval_seconds=settings.ATTENDANCE_INTERVAL_SECONDS,
            recovery_delay_seconds=settings.ATTENDANCE_RECOVERY_SECONDS,
            startup_delay_seconds=settings.ATTENDANCE_STARTUP_DELAY_SECONDS,
            **kwargs,
        )

    async def tick(self, now: Optional[datetime] = None):
        now = now or self.clock()
        async with self.scope() as ctx:
            await self.check_attendance(ctx, now)

    async def check_attendance(self, ctx: TickContext, now: datetime) -> int:
        """Returns the number of alerts raised this pass."""
        s = self.settings
        window_start = now - timedelta(hours=s.ATTENDANCE_LOOKBACK_HOURS)
        candidates = [
            v for v in ctx.visits.get_visits_in_range(window_start, now)
            if v.status == VisitStatus.APPROVED.value and v.checked_in_at is None and not v.is_deleted
        ]

        raised = 0
        for visit in candidates:
            if visit.scheduled_start > now:
                continue  # not due yet

            minutes_late = whole_minutes(now - visit.scheduled_start)
            if minutes_late >= s.NO_SHOW_THRESHOLD_MINUTES:
                if await self._raise_once(ctx, visit, AlertType.VISITOR_NO_SHOW, minutes_late, now):
                    raised += 1
            elif minutes_late >= s.DELAY_THRESHOLD_MINUTES:
                if await self._raise_once(ctx, visit, AlertType.VISITOR_DELAYED, minutes_late, now):
                    raised += 1

        logger.debug(f"[ATTENDANCE] Checked {len(candidates)} approved visits, raised {raised} alerts")
        return raised

    async def _raise_once(self, ctx: TickContext, visit: Visit, alert_type: AlertType,
                          minutes_late: int, now: datetime) -> bool:
        if ctx.alerts.exists(ENTITY_VISIT, visit.id, alert_type.value):
            return False

        visitor = visit.visitor_name or f"Visitor #{visit.visitor_id}"
        start = visit.scheduled_start.strftime("%H:%M")
        if alert_type == AlertType.VISITOR_NO_SHOW:
            title = "Visitor No-Show"
            message = f"{visitor} has not arrived for the visit scheduled at {start} ({minutes_late} minutes late)"
            priority = AlertPriority.HIGH
        else:
            title = "Visitor Delayed"
            message = f"{visitor} is {minutes_late} minutes late for the visit scheduled at {start}"
            priority = AlertPriority.MEDIUM

        alert = await ctx.gateway.notify_user(
            visit.host_id, title, message, alert_type, priority,
            data={"visit_id": visit.id, "visitor_id": visit.visitor_id, "minutes_late": minutes_late},
            related_entity_type=ENTITY_VISIT,
            related_entity_id=visit.id,
            target_location_id=visit.location_id,
            dedup_key=f"{ENTITY_VISIT}:{visit.id}:{alert_type.value}:once",
            now=now,
        )
        if alert is None:
            return False
        logger.info(f"[ATTENDANCE] {title} for visit {visit.id} (host={visit.host_id}, {minutes_late} min late)")
        return True
