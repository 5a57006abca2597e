"""
Configuration settings for the InfluxDB reporter.
"""
import logging
import os
import socket
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse, ParseResult

from .exceptions import ConfigError


def parse_tags(spec: Optional[str]) -> Dict[str, str]:
    """
    Parse a tag specification string into a tag mapping.

    Args:
        spec (str): Tags in format "key1=value1,key2=value2"

    Returns:
        dict: The parsed tags
    """
    tags = {}
    if not spec or not spec.strip():
        return tags

    for part in spec.split(','):
        if '=' in part:
            key, value = part.split('=', 1)
            if key.strip():
                tags[key.strip()] = value.strip()

    return tags


def _env_flag(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


# Destination configuration
INFLUXDB_URL = os.getenv('INFLUXDB_URL', 'http://localhost:8086')
INFLUXDB_DATABASE = os.getenv('INFLUXDB_DATABASE', 'metrics')
INFLUXDB_MEASUREMENT = os.getenv('INFLUXDB_MEASUREMENT', 'app')
INFLUXDB_USERNAME = os.getenv('INFLUXDB_USERNAME', '')
INFLUXDB_PASSWORD = os.getenv('INFLUXDB_PASSWORD', '')
INFLUXDB_TAGS = parse_tags(os.getenv('INFLUXDB_TAGS', f'host={socket.gethostname()}'))

# Reporting configuration
REPORT_INTERVAL = float(os.getenv('METRICS_REPORT_INTERVAL', '10'))  # seconds
ALIGN_TIMESTAMPS = _env_flag('METRICS_ALIGN_TIMESTAMPS')

# Wire client configuration
HTTP_TIMEOUT = 10  # seconds
PING_INTERVAL = 5  # seconds
PING_TIMEOUT = 1  # seconds
UDP_PAYLOAD_SIZE = 512  # bytes
UDP_DEFAULT_PORT = 8089
WRITE_PRECISION = 's'

# Histogram reservoir size
SAMPLE_SIZE = 1028

# Logging configuration
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


def setup_logging(log_level: str = LOG_LEVEL) -> None:
    """
    Setup logging with the specified log level.

    Args:
        log_level (str): Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def parse_url(url: str) -> ParseResult:
    """
    Parse and validate an InfluxDB destination URL.

    Args:
        url (str): Destination URL, e.g. "http://localhost:8086" or "udp://localhost:8089"

    Returns:
        ParseResult: The parsed URL

    Raises:
        ConfigError: If the URL cannot be parsed or names no host
    """
    try:
        parsed = urlparse(url)
        # Accessing the port validates it
        parsed.port
    except (ValueError, TypeError, AttributeError) as e:
        raise ConfigError(f"unable to parse InfluxDB url {url!r}: {e}") from e

    if not parsed.scheme or not parsed.hostname:
        raise ConfigError(f"unable to parse InfluxDB url {url!r}: missing scheme or host")

    return parsed


@dataclass(frozen=True)
class ReporterConfig:
    """Immutable reporter settings, created once at startup."""
    url: str = INFLUXDB_URL
    database: str = INFLUXDB_DATABASE
    measurement: str = INFLUXDB_MEASUREMENT
    username: str = INFLUXDB_USERNAME
    password: str = INFLUXDB_PASSWORD
    tags: Mapping[str, str] = field(default_factory=dict)
    interval: float = REPORT_INTERVAL
    align: bool = ALIGN_TIMESTAMPS

    def __post_init__(self):
        if self.interval <= 0:
            raise ConfigError(f"reporting interval must be positive, got {self.interval}")
        # The base tags are shared by every tick, keep a private read-only copy
        object.__setattr__(self, 'tags', MappingProxyType(dict(self.tags or {})))

    @classmethod
    def from_env(cls) -> 'ReporterConfig':
        """
        Build a configuration from the environment variables read at import time.

        Returns:
            ReporterConfig: The configuration
        """
        return cls(
            url=INFLUXDB_URL,
            database=INFLUXDB_DATABASE,
            measurement=INFLUXDB_MEASUREMENT,
            username=INFLUXDB_USERNAME,
            password=INFLUXDB_PASSWORD,
            tags=INFLUXDB_TAGS,
            interval=REPORT_INTERVAL,
            align=ALIGN_TIMESTAMPS,
        )
