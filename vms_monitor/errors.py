# vms_monitor/errors.py
"""
Error taxonomy for the monitors.

TransientStoreError  : query/save failed; the current phase is abandoned and
                        retried on the next tick.
ChannelDeliveryError : one email/SMS send failed; logged per recipient, the
                        remaining recipients are still attempted.
ConfigurationError   : channel disabled or recipients missing; the action
                        becomes a no-op logged at low severity.
"""


class MonitorError(Exception):
    """Base class for all monitoring-service errors."""


class TransientStoreError(MonitorError):
    pass


class ChannelDeliveryError(MonitorError):
    def __init__(self, channel: str, destination: str, reason: str):
        self.channel = channel
        self.destination = destination
        self.reason = reason
        super().__init__(f"{channel} delivery to {destination} failed: {reason}")


class ConfigurationError(MonitorError):
    pass
