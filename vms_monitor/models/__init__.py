# VMS Monitor: Database Models
# Import all models here for SQLAlchemy discovery

from vms_monitor.models.alert import Alert                       # noqa
from vms_monitor.models.escalation_rule import EscalationRule    # noqa
from vms_monitor.models.occupancy_sample import OccupancySample  # noqa
from vms_monitor.models.visit import Visit                       # noqa
from vms_monitor.models.location import Location                 # noqa
from vms_monitor.models.user import StaffUser                    # noqa
