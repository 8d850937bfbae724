# vms_monitor/utils/logger.py
"""
Centralised logging configuration for the monitoring service.
Logs to console and to a rotating file (logs/monitor.log, 5 MB x 10).

Messages are prefixed with a component tag so one monitor can be grepped
out of the shared file:
  [ATTENDANCE]  delayed / no-show checks
  [OCCUPANCY]   samples, capacity and overstay alerts
  [ESCALATION]  rule selection and escalation actions
  [DELIVERY]    email / SMS sends and the external sweep
  [CLEANUP]     expired-alert deactivation
  [NOTIFY]      hub webhook posts
  [ALERT]       store-level duplicate suppression
The monitor loop itself logs under the monitor name (e.g. occupancy-tracker).
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from vms_monitor.config import settings

LOG_LEVEL = settings.LOG_LEVEL.upper()
LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "logs")

_configured = False


def _configure_root_logger():
    global _configured
    if _configured:
        return
    _configured = True

    fmt = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setLevel(LOG_LEVEL)
    console.setFormatter(fmt)

    root = logging.getLogger()
    root.setLevel(LOG_LEVEL)
    root.addHandler(console)

    # Rotating file handler: keeps last 10 × 5MB log files
    try:
        os.makedirs(LOG_DIR, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=os.path.join(LOG_DIR, "monitor.log"),
            maxBytes=5 * 1024 * 1024,
            backupCount=10,
            encoding="utf-8",
        )
    except OSError as e:
        root.warning(f"File logging disabled, cannot write to {LOG_DIR}: {e}")
        return
    file_handler.setLevel(LOG_LEVEL)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger. Call this at the top of every module."""
    _configure_root_logger()
    return logging.getLogger(name)
