from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class MonitorStatus(BaseModel):
    name: str
    running: bool
    interval_seconds: int
    recovery_delay_seconds: int
    ticks_completed: int
    consecutive_failures: int
    last_tick_started_at: Optional[datetime] = None
    last_tick_finished_at: Optional[datetime] = None
    last_error: Optional[str] = None
