# vms_monitor/services/monitor.py
"""
Shared scheduling harness for the background monitors.

Each monitor is one long-lived asyncio task:

    startup delay → tick → wait(interval) → tick → ...

A tick that raises is logged and followed by a FIXED recovery delay
(RECOVERY_SECONDS) instead of the normal interval. There is no exponential
growth: ticks are idempotent re-scans, so the next one simply starts over.

Shutdown is cooperative. stop() sets an event that every wait point listens
to; a tick that is already running is allowed to finish before the loop
exits, so no phase is cut off halfway through its writes.
"""

import asyncio
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from vms_monitor.config import Settings
from vms_monitor.schemas.monitor import MonitorStatus
from vms_monitor.services.context import tick_scope
from vms_monitor.services.delivery_channels import DeliveryChannels
from vms_monitor.utils.logger import get_logger
from vms_monitor.utils.timeutils import utcnow

logger = get_logger(__name__)


class PeriodicMonitor:
    name = "monitor"

    def __init__(
        self,
        settings: Settings,
        interval_seconds: int,
        recovery_delay_seconds: int,
        startup_delay_seconds: int = 0,
        session_factory: Optional[Callable[[], Session]] = None,
        channels: Optional[DeliveryChannels] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.interval_seconds = interval_seconds
        self.recovery_delay_seconds = recovery_delay_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self.session_factory = session_factory
        self.channels = channels or DeliveryChannels.from_settings(settings)
        self.clock = clock

        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

        self.ticks_completed = 0
        self.consecutive_failures = 0
        self.last_tick_started_at: Optional[datetime] = None
        self.last_tick_finished_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    # ── Work ────────────────────────────────────────────────────────────────
    async def tick(self, now: Optional[datetime] = None):
        raise NotImplementedError

    def scope(self):
        """Scoped per-tick resources (session, stores, gateway, channels)."""
        return tick_scope(self.settings, self.session_factory, self.channels)

    async def run_phases(self, now: datetime, phases):
        """
        Run (label, coroutine_fn) phases in order, each in its own scope.
        A failing phase is logged and skipped; later phases still run.
        The first failure is re-raised afterwards so the loop backs off.
        """
        first_error = None
        for label, phase in phases:
            try:
                async with self.scope() as ctx:
                    await phase(ctx, now)
            except Exception as e:
                logger.error(f"[{self.name}] phase '{label}' failed: {e}", exc_info=True)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    # ── Lifecycle ───────────────────────────────────────────────────────────
    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if self.running:
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(), name=f"monitor-{self.name}")
        return self._task

    async def stop(self):
        """Signal shutdown and wait for the loop to exit on its own."""
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def run(self):
        logger.info(f"🚀 {self.name} started (every {self.interval_seconds}s)")
        if await self._wait(self.startup_delay_seconds):
            logger.info(f"🛑 {self.name} stopped before first tick")
            return

        while not self._stop_event.is_set():
            delay = self.interval_seconds
            self.last_tick_started_at = self.clock()
            try:
                await self.tick()
                self.ticks_completed += 1
                self.consecutive_failures = 0
                self.last_error = None
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.consecutive_failures += 1
                self.last_error = f"{type(e).__name__}: {e}"
                delay = self.recovery_delay_seconds
                logger.error(
                    f"❌ {self.name} tick failed ({self.consecutive_failures} in a row), "
                    f"retrying in {delay}s: {e}",
                    exc_info=True,
                )
            finally:
                self.last_tick_finished_at = self.clock()

            if await self._wait(delay):
                break

        logger.info(f"🛑 {self.name} stopped")

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; returns True as soon as stop is requested."""
        if self._stop_event.is_set():
            return True
        if seconds <= 0:
            return False
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def status(self) -> MonitorStatus:
        return MonitorStatus(
            name=self.name,
            running=self.running,
            interval_seconds=self.interval_seconds,
            recovery_delay_seconds=self.recovery_delay_seconds,
            ticks_completed=self.ticks_completed,
            consecutive_failures=self.consecutive_failures,
            last_tick_started_at=self.last_tick_started_at,
            last_tick_finished_at=self.last_tick_finished_at,
            last_error=self.last_error,
        )
