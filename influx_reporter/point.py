"""
Point and batch models, encoded as InfluxDB line protocol.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Iterable, List, Mapping, Union

import pytz

from .exceptions import ConfigError, PointConstructionError

FieldValue = Union[bool, int, float]

# Nanoseconds per unit of each supported precision
PRECISIONS = {
    'ns': 1,
    'u': 1_000,
    'ms': 1_000_000,
    's': 1_000_000_000,
    'm': 60 * 1_000_000_000,
    'h': 3600 * 1_000_000_000,
}

_MEASUREMENT_ESCAPES = str.maketrans({',': r'\,', ' ': r'\ '})
_KEY_ESCAPES = str.maketrans({',': r'\,', '=': r'\=', ' ': r'\ '})


@dataclass(frozen=True)
class Point:
    """A single data point: one series, its tags, its fields and a timestamp."""
    series: str
    tags: Mapping[str, str]
    fields: Mapping[str, FieldValue]
    timestamp: datetime

    def line(self, precision: str = 's') -> str:
        """
        Encode the point as one line of InfluxDB line protocol.

        Args:
            precision (str): Timestamp precision

        Returns:
            str: The encoded line, without a trailing newline
        """
        key = self.series.translate(_MEASUREMENT_ESCAPES)
        for tag_key in sorted(self.tags):
            tag_value = self.tags[tag_key]
            # InfluxDB drops tags with empty values
            if tag_value == '':
                continue
            key += f",{tag_key.translate(_KEY_ESCAPES)}={tag_value.translate(_KEY_ESCAPES)}"

        fields = ','.join(
            f"{name.translate(_KEY_ESCAPES)}={_format_field(value)}"
            for name, value in sorted(self.fields.items())
        )
        return f"{key} {fields} {timestamp_in(self.timestamp, precision)}"


def _format_field(value: FieldValue) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, int):
        return f"{value}i"
    return repr(float(value))


def timestamp_in(timestamp: datetime, precision: str) -> int:
    """
    Convert a timestamp to an integer in the given precision.

    Args:
        timestamp (datetime): The timestamp; naive values are taken as UTC
        precision (str): One of PRECISIONS

    Returns:
        int: The timestamp as an integer
    """
    if timestamp.tzinfo is None:
        timestamp = pytz.UTC.localize(timestamp)
    epoch = timestamp - datetime(1970, 1, 1, tzinfo=pytz.UTC)
    micros = (epoch.days * 86400 + epoch.seconds) * 1_000_000 + epoch.microseconds
    return (micros * 1000) // PRECISIONS[precision]


def _check_encodable(kind: str, text: str) -> None:
    try:
        text.encode('utf-8')
    except UnicodeEncodeError as e:
        raise PointConstructionError(f"{kind} {text!r} is not valid UTF-8: {e}") from e


def new_point(
    series: str,
    tags: Mapping[str, str],
    fields: Mapping[str, FieldValue],
    timestamp: datetime
) -> Point:
    """
    Build and validate a point.

    The tags and fields are copied, so the caller keeps ownership of the
    mappings it passed in.

    Args:
        series (str): Measurement name, must not be empty
        tags (dict): Tag key/value strings
        fields (dict): Field values, must not be empty
        timestamp (datetime): Point timestamp

    Returns:
        Point: The validated point

    Raises:
        PointConstructionError: If the point is malformed
    """
    if not series:
        raise PointConstructionError("series name is required")
    if not fields:
        raise PointConstructionError(f"point {series!r} has no fields")
    _check_encodable('series', series)

    for key, value in tags.items():
        if not isinstance(key, str) or not key:
            raise PointConstructionError(f"invalid tag key {key!r}")
        if not isinstance(value, str):
            raise PointConstructionError(f"tag {key!r} has non-string value {value!r}")
        _check_encodable('tag key', key)
        _check_encodable('tag value', value)

    for key, value in fields.items():
        if not isinstance(key, str) or not key:
            raise PointConstructionError(f"invalid field key {key!r}")
        _check_encodable('field key', key)
        if not isinstance(value, (bool, int, float)):
            raise PointConstructionError(f"field {key!r} has unsupported type {type(value).__name__}")
        if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
            raise PointConstructionError(f"field {key!r} has unsupported value {value}")

    return Point(
        series=series,
        tags=MappingProxyType(dict(tags)),
        fields=MappingProxyType(dict(fields)),
        timestamp=timestamp,
    )


@dataclass
class BatchPoints:
    """Points bound for one database, written with a single request."""
    database: str
    precision: str = 's'
    points: List[Point] = field(default_factory=list)

    def __post_init__(self):
        if self.precision not in PRECISIONS:
            raise ConfigError(f"unknown precision {self.precision!r}")

    def add_point(self, point: Point) -> None:
        self.points.append(point)

    def add_points(self, points: Iterable[Point]) -> None:
        self.points.extend(points)

    def lines(self) -> List[str]:
        return [point.line(self.precision) for point in self.points]

    def to_line_protocol(self) -> str:
        """
        Encode the whole batch as line protocol.

        Returns:
            str: One line per point, newline separated
        """
        return '\n'.join(self.lines())

    def __len__(self) -> int:
        return len(self.points)
