# vms_monitor/services/occupancy_tracker.py
"""
Occupancy tracker: per-location occupancy, capacity and overstay alerts,
and live dashboard metrics.

Phases run in order each tick, so the capacity check always sees the
sample written a moment earlier by the recompute phase:

  1. recompute : count Active + checked-in + not checked-out visits per
                  location and upsert into the current time bucket
                  (update if the bucket row exists, else insert)
  2. capacity  : fresh samples at/over the threshold raise a CapacityAlert,
                  at most one per location per CAPACITY_DEDUP_MINUTES
  3. overstay  : visits still active OVERSTAY_THRESHOLD_MINUTES past their
                  scheduled end notify the host, once per OVERSTAY_DEDUP_MINUTES
  4. metrics   : aggregate numbers pushed to the dashboard

Counts are recomputed from scratch each time, so missed ticks or restarts
never leave a drifting counter behind.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from vms_monitor.config import Settings
from vms_monitor.errors import TransientStoreError
from vms_monitor.models.enums import ENTITY_LOCATION, ENTITY_VISIT, AlertPriority, AlertType, UserRole
from vms_monitor.models.occupancy_sample import OccupancySample
from vms_monitor.schemas.dashboard import DashboardMetrics
from vms_monitor.services.context import TickContext
from vms_monitor.services.monitor import PeriodicMonitor
from vms_monitor.utils.logger import get_logger
from vms_monitor.utils.timeutils import floor_to_bucket, window_slot

logger = get_logger(__name__)


def latest_per_location(samples: List[OccupancySample]) -> Dict[int, OccupancySample]:
    """Newest-bucket sample for each location (input may be in any order)."""
    latest: Dict[int, OccupancySample] = {}
    for sample in samples:
        current = latest.get(sample.location_id)
        if current is None or sample.bucket_start > current.bucket_start:
            latest[sample.location_id] = sample
    return latest


class OccupancyTracker(PeriodicMonitor):
    name = "occupancy-tracker"

    def __init__(self, settings: Settings, **kwargs):
        super().__init__(
            settings,
            interval_seconds=settings.OCCUPANCY_INTERVAL_SECONDS,
            recovery_delay_seconds=settings.OCCUPANCY_RECOVERY_SECONDS,
            startup_delay_seconds=settings.OCCUPANCY_STARTUP_DELAY_SECONDS,
            **kwargs,
        )

    async def tick(self, now: Optional[datetime] = None):
        now = now or self.clock()
        await self.run_phases(now, [
            ("recompute", self.recompute_occupancy),
            ("capacity", self.check_capacity),
            ("overstay", self.check_overstays),
            ("metrics", self.publish_dashboard_metrics),
        ])

    # ── 1. Recompute ────────────────────────────────────────────────────────
    async def recompute_occupancy(self, ctx: TickContext, now: datetime) -> int:
        bucket = floor_to_bucket(now, self.settings.OCCUPANCY_BUCKET_MINUTES)
        locations = ctx.locations.get_active_locations()
        updated = 0

        for location in locations:
            try:
                with ctx.occupancy.savepoint():
                    self._upsert_sample(ctx, location, bucket, now)
            except TransientStoreError as e:
                logger.error(f"[OCCUPANCY] Skipping {location.name} (id={location.id}): {e}")
                continue
            updated += 1

        ctx.occupancy.commit()  # one batch for every location that succeeded
        return updated

    def _upsert_sample(self, ctx: TickContext, location, bucket: datetime, now: datetime):
        count = ctx.visits.count_active_at_location(location.id)
        sample = ctx.occupancy.get_bucket(location.id, bucket)
        if sample:
            sample.current_count = count
            sample.max_capacity = location.max_capacity
            sample.updated_at = now
        else:
            ctx.occupancy.add(OccupancySample(
                location_id=location.id,
                bucket_start=bucket,
                current_count=count,
                max_capacity=location.max_capacity,
                created_at=now,
                updated_at=now,
            ))
        logger.debug(f"[OCCUPANCY] {location.name}: {count}/{location.max_capacity}")

    # ── 2. Capacity ─────────────────────────────────────────────────────────
    async def check_capacity(self, ctx: TickContext, now: datetime) -> int:
        s = self.settings
        fresh = ctx.occupancy.recent(now - timedelta(minutes=s.CAPACITY_SAMPLE_WINDOW_MINUTES))
        raised = 0

        for location_id, sample in latest_per_location(fresh).items():
            if not sample.max_capacity or sample.max_capacity <= 0:
                continue
            percent = sample.percent_full
            if percent < s.CAPACITY_ALERT_THRESHOLD_PERCENT:
                continue

            dedup_since = now - timedelta(minutes=s.CAPACITY_DEDUP_MINUTES)
            if ctx.alerts.exists(ENTITY_LOCATION, location_id, AlertType.CAPACITY_ALERT.value, since=dedup_since):
                continue

            location = ctx.locations.get(location_id)
            name = location.name if location else f"Location #{location_id}"
            message = (f"Location '{name}' is at {sample.current_count}/{sample.max_capacity} "
                       f"capacity ({percent}%)")
            alert = await ctx.gateway.notify_role(
                UserRole.RECEPTIONIST.value, "Capacity Alert", message,
                AlertType.CAPACITY_ALERT, AlertPriority.MEDIUM,
                data={"location_id": location_id, "current_count": sample.current_count,
                      "max_capacity": sample.max_capacity, "percent_full": percent},
                related_entity_type=ENTITY_LOCATION,
                related_entity_id=location_id,
                target_location_id=location_id,
                dedup_key=(f"{ENTITY_LOCATION}:{location_id}:{AlertType.CAPACITY_ALERT.value}:"
                           f"{window_slot(now, s.CAPACITY_DEDUP_MINUTES)}"),
                now=now,
            )
            if alert is not None:
                raised += 1
                logger.warning(f"[OCCUPANCY] Capacity alert for {name}: {percent}% full")

        return raised

    # ── 3. Overstay ─────────────────────────────────────────────────────────
    async def check_overstays(self, ctx: TickContext, now: datetime) -> int:
        s = self.settings
        threshold = now - timedelta(minutes=s.OVERSTAY_THRESHOLD_MINUTES)
        dedup_since = now - timedelta(minutes=s.OVERSTAY_DEDUP_MINUTES)
        raised = 0

        for visit in ctx.visits.get_overstayed(threshold):
            if ctx.alerts.exists(ENTITY_VISIT, visit.id, AlertType.VISITOR_OVERSTAY.value, since=dedup_since):
                continue

            overstay_minutes = round((now - visit.scheduled_end).total_seconds() / 60)
            visitor = visit.visitor_name or f"Visitor #{visit.visitor_id}"
            message = (f"Your visitor {visitor} has overstayed by {overstay_minutes} minutes "
                       f"(scheduled end: {visit.scheduled_end:%H:%M})")
            alert = await ctx.gateway.notify_user(
                visit.host_id, "Visitor Overstay Alert", message,
                AlertType.VISITOR_OVERSTAY, AlertPriority.MEDIUM,
                data={"visit_id": visit.id, "overstay_minutes": overstay_minutes},
                related_entity_type=ENTITY_VISIT,
                related_entity_id=visit.id,
                target_location_id=visit.location_id,
                dedup_key=(f"{ENTITY_VISIT}:{visit.id}:{AlertType.VISITOR_OVERSTAY.value}:"
                           f"{window_slot(now, s.OVERSTAY_DEDUP_MINUTES)}"),
                now=now,
            )
            if alert is not None:
                raised += 1
                logger.info(f"[OCCUPANCY] Overstay alert for visit {visit.id} "
                            f"(host={visit.host_id}, {overstay_minutes} min)")

        return raised

    # ── 4. Dashboard metrics ────────────────────────────────────────────────
    async def publish_dashboard_metrics(self, ctx: TickContext, now: datetime) -> DashboardMetrics:
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        fresh = ctx.occupancy.recent(now - timedelta(minutes=self.settings.CAPACITY_SAMPLE_WINDOW_MINUTES))

        metrics = DashboardMetrics(
            total_occupancy=sum(s.current_count for s in latest_per_location(fresh).values()),
            todays_scheduled=ctx.visits.count_scheduled_between(day_start, day_start + timedelta(days=1)),
            waiting_visitors=ctx.visits.count_waiting(day_start, now),
            in_progress_visitors=ctx.visits.count_in_progress(),
            last_updated=now,
        )
        await ctx.gateway.publish_metrics(metrics)
        return metrics
