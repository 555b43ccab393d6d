from datetime import datetime, timezone
from typing import Optional


class FleetMonitorError(Exception):
    """Base class for all domain errors raised by the monitoring core."""


class TransportError(FleetMonitorError, RuntimeError):
    """
    The remote command never ran: connect, authentication or network
    failure, or the session timed out.

    Distinct from a command that ran and exited non-zero, which is reported
    as an unsuccessful CommandResult instead.
    """

    def __init__(self, message: str, timestamp: Optional[datetime] = None):
        super().__init__(message)
        self.message = message
        self.timestamp = timestamp or datetime.now(timezone.utc)


class HostNotFoundError(FleetMonitorError, LookupError):
    def __init__(self, host_id: str):
        super().__init__(f"Host {host_id!r} not found")
        self.host_id = host_id


class ThresholdError(FleetMonitorError, ValueError):
    """Rejected threshold update; nothing was changed."""


class InvalidCategoryError(ThresholdError):
    pass


class InvalidThresholdTypeError(ThresholdError):
    pass


class InvalidThresholdValueError(ThresholdError):
    pass
