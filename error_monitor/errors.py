"""
Exceptions raised by the error monitoring package.
"""


class MonitoringError(Exception):
    """Base class for error monitoring failures."""
    pass


class ConfigurationError(MonitoringError):
    """Raised when a configuration update is rejected."""
    pass


class ReportingError(MonitoringError):
    """Raised when an error report cannot be delivered to the server."""
    pass
