from pydantic import BaseModel
from datetime import datetime


class DashboardMetrics(BaseModel):
    total_occupancy: int        # sum of fresh per-location samples
    todays_scheduled: int       # visits scheduled to start today
    waiting_visitors: int       # approved, due, not yet checked in (queue depth)
    in_progress_visitors: int   # checked in, not checked out
    system_health: str = "Good"
    last_updated: datetime
