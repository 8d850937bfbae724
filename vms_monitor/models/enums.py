# vms_monitor/models/enums.py
"""
Enumerations shared by the monitor tables.
String enums are stored as their value in String columns; AlertPriority is
stored as its integer so ordering queries (>= Critical) work in SQL.
"""

from enum import Enum, IntEnum


class AlertType(str, Enum):
    VISITOR_ARRIVAL = "VisitorArrival"
    VIP_ARRIVAL = "VipArrival"
    UNKNOWN_FACE = "UnknownFace"
    BLACKLIST_ALERT = "BlacklistAlert"
    VISITOR_CHECKED_IN = "VisitorCheckedIn"
    VISITOR_CHECKED_OUT = "VisitorCheckedOut"
    SYSTEM_ALERT = "SystemAlert"
    CAPACITY_ALERT = "CapacityAlert"
    EMERGENCY_ALERT = "EmergencyAlert"
    VISITOR_OVERSTAY = "VisitorOverstay"
    VISITOR_DELAYED = "VisitorDelayed"
    VISITOR_NO_SHOW = "VisitorNoShow"
    CUSTOM = "Custom"


class AlertPriority(IntEnum):
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4
    EMERGENCY = 5


class EscalationAction(str, Enum):
    ESCALATE_TO_ROLE = "EscalateToRole"
    ESCALATE_TO_USER = "EscalateToUser"
    SEND_EMAIL = "SendEmail"
    SEND_SMS = "SendSMS"
    CREATE_HIGH_PRIORITY_ALERT = "CreateHighPriorityAlert"
    LOG_CRITICAL_EVENT = "LogCriticalEvent"


class VisitStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    REJECTED = "Rejected"
    EXPIRED = "Expired"


class UserRole(str, Enum):
    ADMINISTRATOR = "Administrator"
    RECEPTIONIST = "Receptionist"
    SECURITY = "Security"
    STAFF = "Staff"


# related_entity_type values written by the monitors
ENTITY_VISIT = "Visit"
ENTITY_LOCATION = "Location"
ENTITY_ALERT = "Alert"
