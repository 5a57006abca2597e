"""
Reports the metrics of an in-process registry to InfluxDB.
"""
from .config import ReporterConfig, setup_logging
from .exceptions import (
    ReporterError,
    ConfigError,
    ClientConnectionError,
    WriteError,
    PointConstructionError,
    DuplicateMetricError,
)
from .point import Point, BatchPoints, new_point
from .registry import (
    Registry,
    Counter,
    Gauge,
    GaugeFloat,
    FunctionalGauge,
    Histogram,
    Meter,
    Timer,
    default_registry,
)
from .reporter import (
    Reporter,
    create_reporter,
    influxdb,
    influxdb_with_tags,
    start_reporter,
    stop_reporter,
)
from .system import register_process_metrics

__all__ = [
    'ReporterConfig',
    'setup_logging',
    'ReporterError',
    'ConfigError',
    'ClientConnectionError',
    'WriteError',
    'PointConstructionError',
    'DuplicateMetricError',
    'Point',
    'BatchPoints',
    'new_point',
    'Registry',
    'Counter',
    'Gauge',
    'GaugeFloat',
    'FunctionalGauge',
    'Histogram',
    'Meter',
    'Timer',
    'default_registry',
    'Reporter',
    'create_reporter',
    'influxdb',
    'influxdb_with_tags',
    'start_reporter',
    'stop_reporter',
    'register_process_metrics',
]
