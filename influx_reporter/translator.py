"""
Translates metric snapshots into InfluxDB points.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Mapping

from .exceptions import PointConstructionError
from .point import FieldValue, Point, new_point
from .registry import Counter, Gauge, Histogram, Meter, Timer

logger = logging.getLogger(__name__)

PERCENTILES = (0.5, 0.75, 0.95, 0.99, 0.999, 0.9999)
PERCENTILE_BUCKETS = ('p50', 'p75', 'p95', 'p99', 'p999', 'p9999')


class MetricKind(Enum):
    """The metric kinds the translator knows how to export."""
    COUNTER = 'count'
    GAUGE = 'gauge'
    HISTOGRAM = 'histogram'
    METER = 'meter'
    TIMER = 'timer'
    UNSUPPORTED = None


def classify(metric: object) -> MetricKind:
    """
    Determine the kind of a metric object.

    Args:
        metric: Any object found in the registry

    Returns:
        MetricKind: The kind, UNSUPPORTED for anything unknown
    """
    if isinstance(metric, Counter):
        return MetricKind.COUNTER
    if isinstance(metric, Gauge):
        return MetricKind.GAUGE
    if isinstance(metric, Timer):
        return MetricKind.TIMER
    if isinstance(metric, Histogram):
        return MetricKind.HISTOGRAM
    if isinstance(metric, Meter):
        return MetricKind.METER
    return MetricKind.UNSUPPORTED


def bucket_tags(bucket: str, tags: Mapping[str, str]) -> Dict[str, str]:
    """
    Copy a tag set and add a ``bucket`` tag to the copy.

    Args:
        bucket (str): Name of the statistic, e.g. "p99"
        tags (dict): Base tags, left untouched

    Returns:
        dict: The new tag set
    """
    tagged = dict(tags)
    tagged['bucket'] = bucket
    return tagged


def histogram_fields(snapshot) -> Dict[str, float]:
    percentiles = snapshot.percentiles(PERCENTILES)
    fields = {
        'count': float(snapshot.count),
        'max': float(snapshot.max),
        'mean': snapshot.mean,
        'min': float(snapshot.min),
        'stddev': snapshot.stddev,
        'variance': snapshot.variance,
    }
    fields.update(zip(PERCENTILE_BUCKETS, percentiles))
    return fields


def meter_fields(snapshot) -> Dict[str, float]:
    return {
        'count': float(snapshot.count),
        'm1': snapshot.rate1,
        'm5': snapshot.rate5,
        'm15': snapshot.rate15,
        'mean': snapshot.rate_mean,
    }


def timer_fields(snapshot) -> Dict[str, float]:
    fields = histogram_fields(snapshot)
    fields.update({
        'm1': snapshot.rate1,
        'm5': snapshot.rate5,
        'm15': snapshot.rate15,
        'meanrate': snapshot.rate_mean,
    })
    return fields


class MetricTranslator:
    """Converts named metrics into points for one series and base tag set."""

    def __init__(self, series: str, tags: Mapping[str, str]):
        """
        Args:
            series (str): Measurement every point is written to
            tags (dict): Base tags shared by every point; never modified
        """
        self.series = series
        self.tags = tags
        self._handlers: Dict[MetricKind, Callable[[str, object, datetime], List[Point]]] = {
            MetricKind.COUNTER: self._translate_counter,
            MetricKind.GAUGE: self._translate_gauge,
            MetricKind.HISTOGRAM: self._bucketed(MetricKind.HISTOGRAM, histogram_fields),
            MetricKind.METER: self._bucketed(MetricKind.METER, meter_fields),
            MetricKind.TIMER: self._bucketed(MetricKind.TIMER, timer_fields),
        }

    def translate(self, name: str, metric: object, timestamp: datetime) -> List[Point]:
        """
        Snapshot one metric and convert it to points.

        Args:
            name (str): Metric name
            metric: The metric object
            timestamp (datetime): Timestamp shared by all points of the tick

        Returns:
            list: The points; empty for unsupported metric kinds
        """
        kind = classify(metric)
        handler = self._handlers.get(kind)
        if handler is None:
            logger.debug("Skipping metric %s of unsupported type %s", name, type(metric).__name__)
            return []
        return handler(name, metric.snapshot(), timestamp)

    def _point(self, tags: Mapping[str, str], fields: Dict[str, FieldValue], timestamp: datetime) -> List[Point]:
        try:
            return [new_point(self.series, tags, fields, timestamp)]
        except PointConstructionError as e:
            logger.debug("Dropping point %s: %s", list(fields), e)
            return []

    def _translate_counter(self, name: str, snapshot, timestamp: datetime) -> List[Point]:
        return self._point(self.tags, {f"{name}.{MetricKind.COUNTER.value}": snapshot.count}, timestamp)

    def _translate_gauge(self, name: str, snapshot, timestamp: datetime) -> List[Point]:
        return self._point(self.tags, {f"{name}.{MetricKind.GAUGE.value}": snapshot.value}, timestamp)

    def _bucketed(self, kind: MetricKind, fields_of: Callable[[object], Dict[str, float]]):
        """Build a handler emitting one bucket-tagged point per statistic."""
        def handler(name: str, snapshot, timestamp: datetime) -> List[Point]:
            points = []
            for bucket, value in fields_of(snapshot).items():
                points.extend(self._point(
                    bucket_tags(bucket, self.tags),
                    {f"{name}.{kind.value}": value},
                    timestamp,
                ))
            return points
        return handler
