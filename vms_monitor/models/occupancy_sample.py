# vms_monitor/models/occupancy_sample.py
"""
Occupancy samples: one row per location per time bucket.
current_count is recomputed from visits on every tick (never incremented),
and the (location_id, bucket_start) pair is unique.
"""

from sqlalchemy import Column, DateTime, Integer, UniqueConstraint

from vms_monitor.database import Base


class OccupancySample(Base):
    __tablename__ = "occupancy_samples"
    __table_args__ = (
        UniqueConstraint("location_id", "bucket_start", name="uq_occupancy_location_bucket"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(Integer, nullable=False, index=True)
    bucket_start = Column(DateTime, nullable=False, index=True)
    current_count = Column(Integer, default=0, nullable=False)
    max_capacity = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False, index=True)

    @property
    def percent_full(self) -> int:
        if not self.max_capacity:
            return 0
        return self.current_count * 100 // self.max_capacity

    def __repr__(self):
        return (f"<OccupancySample loc={self.location_id} bucket={self.bucket_start} "
                f"count={self.current_count}/{self.max_capacity}>")
