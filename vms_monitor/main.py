# vms_monitor/main.py
"""
FastAPI application entry point.
Hosts the three background monitors and the health endpoint.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from vms_monitor.routers import health
from vms_monitor.database import create_tables
from vms_monitor.config import settings
from vms_monitor.services.attendance_monitor import AttendanceMonitor
from vms_monitor.services.delivery_channels import DeliveryChannels
from vms_monitor.services.escalation_dispatcher import AlertEscalationDispatcher
from vms_monitor.services.occupancy_tracker import OccupancyTracker
from vms_monitor.utils.logger import get_logger
import time

logger = get_logger(__name__)

app = FastAPI(
    title="VMS Monitor",
    description="Attendance, occupancy and alert-escalation monitors for the visitor management platform.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)
app.state.monitors = []


# ── Request Timing Middleware ────────────────────────────────────────────────
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration = round((time.time() - start) * 1000, 2)
    logger.debug(f"{request.method} {request.url.path} → {response.status_code} ({duration}ms)")
    return response


# ── Global Exception Handler ─────────────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ── Routers ──────────────────────────────────────────────────────────────────
app.include_router(health.router, prefix="/api/v1", tags=["💚 Health"])


def build_monitors(channels: DeliveryChannels):
    return [
        AttendanceMonitor(settings, channels=channels),
        OccupancyTracker(settings, channels=channels),
        AlertEscalationDispatcher(settings, channels=channels),
    ]


# ── Startup ───────────────────────────────────────────────────────────────────
@app.on_event("startup")
async def startup():
    logger.info("🚀 VMS Monitor starting up...")
    create_tables()
    logger.info("✅ Database tables ready")

    channels = DeliveryChannels.from_settings(settings)
    logger.info(f"✉️  Email delivery: {'on' if channels.email.enabled else 'off'} | "
                f"SMS delivery: {'on' if channels.sms.enabled else 'off'}")

    if not settings.MONITORS_ENABLED:
        logger.warning("⚠️  MONITORS_ENABLED=false: background monitors not started")
        return

    app.state.monitors = build_monitors(channels)
    for monitor in app.state.monitors:
        monitor.start()
    logger.info(f"🌐 Listening on http://{settings.BACKEND_HOST}:{settings.BACKEND_PORT}")


@app.on_event("shutdown")
async def shutdown():
    logger.info("🛑 VMS Monitor shutting down...")
    for monitor in app.state.monitors:
        await monitor.stop()
    logger.info("✅ All monitors stopped")
