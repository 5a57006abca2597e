"""
Exceptions raised by the InfluxDB reporter.
"""


class ReporterError(Exception):
    """Base class for all reporter errors."""


class ConfigError(ReporterError, ValueError):
    """Raised when the reporter configuration is invalid (e.g. a bad destination URL)."""


class ClientConnectionError(ReporterError):
    """Raised when a wire client cannot be built or fails its health check."""


class WriteError(ReporterError):
    """Raised when a batch of points could not be written."""


class PointConstructionError(ReporterError, ValueError):
    """Raised when a point fails validation."""


class DuplicateMetricError(ReporterError, ValueError):
    """Raised when a metric name is already registered."""
