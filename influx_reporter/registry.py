"""
In-process metrics registry: counters, gauges, histograms, meters and timers.

Every metric is safe to update from any thread and exposes ``snapshot()``,
which returns an immutable point-in-time copy of its state. The reporter only
reads metrics through those snapshots.
"""
import logging
import math
import random
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Union

import numpy as np

from . import config
from .exceptions import DuplicateMetricError

logger = logging.getLogger(__name__)

Number = Union[int, float]


@dataclass(frozen=True)
class CounterSnapshot:
    count: int


@dataclass(frozen=True)
class GaugeSnapshot:
    value: Number


class HistogramSnapshot:
    """Read-only statistics over the values held by a histogram sample."""

    def __init__(self, count: int, values: Sequence[Number]):
        """
        Args:
            count (int): Number of values ever recorded (not just those sampled)
            values (sequence): The sampled values
        """
        self._count = count
        self._values = np.asarray(values, dtype=float)

    @property
    def count(self) -> int:
        return self._count

    @property
    def values(self) -> List[float]:
        return self._values.tolist()

    @property
    def min(self) -> float:
        return float(self._values.min()) if self._values.size else 0.0

    @property
    def max(self) -> float:
        return float(self._values.max()) if self._values.size else 0.0

    @property
    def mean(self) -> float:
        return float(self._values.mean()) if self._values.size else 0.0

    @property
    def variance(self) -> float:
        return float(self._values.var()) if self._values.size else 0.0

    @property
    def stddev(self) -> float:
        return math.sqrt(self.variance)

    @property
    def sum(self) -> float:
        return float(self._values.sum())

    def percentile(self, p: float) -> float:
        return self.percentiles([p])[0]

    def percentiles(self, ps: Sequence[float]) -> List[float]:
        """
        Compute percentiles of the sampled values.

        Args:
            ps (sequence): Percentiles as fractions, e.g. 0.99

        Returns:
            list: One value per requested percentile (0.0 when the sample is empty)
        """
        if not self._values.size:
            return [0.0 for _ in ps]
        # The weibull method interpolates at position p * (n + 1)
        result = np.percentile(self._values, [p * 100 for p in ps], method='weibull')
        return [float(v) for v in result]


@dataclass(frozen=True)
class MeterSnapshot:
    count: int
    rate1: float
    rate5: float
    rate15: float
    rate_mean: float


class TimerSnapshot(HistogramSnapshot):
    """Histogram statistics of the recorded durations plus the meter rates."""

    def __init__(self, count: int, values: Sequence[Number], meter: MeterSnapshot):
        super().__init__(count, values)
        self.rate1 = meter.rate1
        self.rate5 = meter.rate5
        self.rate15 = meter.rate15
        self.rate_mean = meter.rate_mean


class Counter:
    """A monotonically adjustable integer count."""

    def __init__(self):
        self._lock = threading.Lock()
        self._count = 0

    def inc(self, n: int = 1) -> None:
        with self._lock:
            self._count += n

    def dec(self, n: int = 1) -> None:
        with self._lock:
            self._count -= n

    def clear(self) -> None:
        with self._lock:
            self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def snapshot(self) -> CounterSnapshot:
        return CounterSnapshot(self._count)


class Gauge:
    """Holds an integer value that is set rather than accumulated."""

    def __init__(self, value: Number = 0):
        self._lock = threading.Lock()
        self._value = value

    def update(self, value: int) -> None:
        with self._lock:
            self._value = int(value)

    @property
    def value(self) -> Number:
        return self._value

    def snapshot(self) -> GaugeSnapshot:
        return GaugeSnapshot(self.value)


class GaugeFloat(Gauge):
    """A gauge holding a floating point value."""

    def __init__(self, value: float = 0.0):
        super().__init__(float(value))

    def update(self, value: float) -> None:
        with self._lock:
            self._value = float(value)


class FunctionalGauge(Gauge):
    """A gauge whose value is computed by a callable each time it is read."""

    def __init__(self, func: Callable[[], Number]):
        super().__init__()
        self._func = func

    def update(self, value: Number) -> None:
        raise TypeError("functional gauges cannot be updated")

    @property
    def value(self) -> Number:
        return self._func()


class UniformSample:
    """
    Fixed-size reservoir holding a uniform random sample of every value seen
    (Vitter's algorithm R).
    """

    def __init__(self, reservoir_size: int = config.SAMPLE_SIZE):
        self.reservoir_size = reservoir_size
        self._lock = threading.Lock()
        self._count = 0
        self._values: List[Number] = []

    def update(self, value: Number) -> None:
        with self._lock:
            self._count += 1
            if len(self._values) < self.reservoir_size:
                self._values.append(value)
            else:
                index = random.randrange(self._count)
                if index < self.reservoir_size:
                    self._values[index] = value

    def clear(self) -> None:
        with self._lock:
            self._count = 0
            self._values = []

    def snapshot(self) -> HistogramSnapshot:
        with self._lock:
            return HistogramSnapshot(self._count, list(self._values))


class Histogram:
    """Tracks the statistical distribution of a stream of values."""

    def __init__(self, sample: Optional[UniformSample] = None):
        self.sample = sample or UniformSample()

    def update(self, value: Number) -> None:
        self.sample.update(value)

    def clear(self) -> None:
        self.sample.clear()

    @property
    def count(self) -> int:
        return self.sample.snapshot().count

    def snapshot(self) -> HistogramSnapshot:
        return self.sample.snapshot()


class EWMA:
    """Exponentially-weighted moving average of a per-second rate."""

    TICK_INTERVAL = 5.0  # seconds

    def __init__(self, minutes: float):
        self.alpha = 1 - math.exp(-self.TICK_INTERVAL / 60.0 / minutes)
        self._uncounted = 0
        self._rate = 0.0
        self._initialized = False

    def update(self, n: int) -> None:
        self._uncounted += n

    def tick(self) -> None:
        instant_rate = self._uncounted / self.TICK_INTERVAL
        self._uncounted = 0
        if self._initialized:
            self._rate += self.alpha * (instant_rate - self._rate)
        else:
            self._rate = instant_rate
            self._initialized = True

    @property
    def rate(self) -> float:
        return self._rate


class Meter:
    """
    Counts events and tracks their 1, 5 and 15 minute moving average rates
    plus the mean rate since creation. Rates are per second.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._count = 0
        self._start = clock()
        self._last_tick = self._start
        self._m1 = EWMA(1)
        self._m5 = EWMA(5)
        self._m15 = EWMA(15)

    def _tick_if_necessary(self) -> None:
        now = self._clock()
        age = now - self._last_tick
        if age < EWMA.TICK_INTERVAL:
            return
        self._last_tick = now - age % EWMA.TICK_INTERVAL
        for _ in range(int(age // EWMA.TICK_INTERVAL)):
            self._m1.tick()
            self._m5.tick()
            self._m15.tick()

    def mark(self, n: int = 1) -> None:
        with self._lock:
            self._tick_if_necessary()
            self._count += n
            self._m1.update(n)
            self._m5.update(n)
            self._m15.update(n)

    @property
    def count(self) -> int:
        return self._count

    def snapshot(self) -> MeterSnapshot:
        with self._lock:
            self._tick_if_necessary()
            elapsed = self._clock() - self._start
            return MeterSnapshot(
                count=self._count,
                rate1=self._m1.rate,
                rate5=self._m5.rate,
                rate15=self._m15.rate,
                rate_mean=self._count / elapsed if elapsed > 0 else 0.0,
            )


class Timer:
    """
    Histogram of durations combined with a meter of their rate.

    Durations are recorded in nanoseconds.
    """

    def __init__(self, sample: Optional[UniformSample] = None, meter: Optional[Meter] = None):
        self.histogram = Histogram(sample)
        self.meter = meter or Meter()

    def update(self, seconds: float) -> None:
        self.histogram.update(int(seconds * 1e9))
        self.meter.mark()

    def update_since(self, start: float) -> None:
        """Record the time elapsed since ``start`` (a ``time.perf_counter()`` value)."""
        self.update(time.perf_counter() - start)

    @contextmanager
    def time(self) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.update_since(start)

    @property
    def count(self) -> int:
        return self.histogram.count

    def snapshot(self) -> TimerSnapshot:
        histogram = self.histogram.snapshot()
        return TimerSnapshot(histogram.count, histogram.values, self.meter.snapshot())


class Registry:
    """Thread-safe mapping from metric name to metric object."""

    def __init__(self):
        self._lock = threading.Lock()
        self._metrics: Dict[str, object] = {}

    def register(self, name: str, metric: object) -> object:
        """
        Register a metric under a name.

        Args:
            name (str): Metric name
            metric: The metric object

        Returns:
            The registered metric

        Raises:
            DuplicateMetricError: If the name is already taken
        """
        with self._lock:
            if name in self._metrics:
                raise DuplicateMetricError(f"duplicate metric: {name}")
            self._metrics[name] = metric
        logger.debug("Registered metric %s (%s)", name, type(metric).__name__)
        return metric

    def get_or_register(
        self,
        name: str,
        factory: Callable[[], object],
        kind: Optional[type] = None
    ) -> object:
        """
        Return the metric registered under a name, creating it with factory if missing.

        Args:
            name (str): Metric name
            factory (callable): Builds the metric when it does not exist yet
            kind (type): Type an existing metric must have, if given

        Returns:
            The existing or newly registered metric

        Raises:
            DuplicateMetricError: If the name holds a metric of another kind
        """
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = factory()
                self._metrics[name] = metric
            elif kind is not None and not isinstance(metric, kind):
                raise DuplicateMetricError(
                    f"metric {name} is a {type(metric).__name__}, not a {kind.__name__}"
                )
            return metric

    def get(self, name: str) -> Optional[object]:
        return self._metrics.get(name)

    def unregister(self, name: str) -> bool:
        with self._lock:
            return self._metrics.pop(name, None) is not None

    def each(self, callback: Callable[[str, object], None]) -> None:
        """
        Call ``callback(name, metric)`` for every registered metric.

        The entries are copied under the lock and the callback runs outside
        it, so producers can register or remove metrics meanwhile.
        """
        with self._lock:
            items = list(self._metrics.items())
        for name, metric in items:
            callback(name, metric)

    def counter(self, name: str) -> Counter:
        return self.get_or_register(name, Counter, Counter)

    def gauge(self, name: str) -> Gauge:
        return self.get_or_register(name, Gauge, Gauge)

    def gauge_float(self, name: str) -> GaugeFloat:
        return self.get_or_register(name, GaugeFloat, GaugeFloat)

    def functional_gauge(self, name: str, func: Callable[[], Number]) -> FunctionalGauge:
        return self.get_or_register(name, lambda: FunctionalGauge(func), FunctionalGauge)

    def histogram(self, name: str) -> Histogram:
        return self.get_or_register(name, Histogram, Histogram)

    def meter(self, name: str) -> Meter:
        return self.get_or_register(name, Meter, Meter)

    def timer(self, name: str) -> Timer:
        return self.get_or_register(name, Timer, Timer)

    def __len__(self) -> int:
        return len(self._metrics)

    def __contains__(self, name: str) -> bool:
        return name in self._metrics


# Singleton instance for easy import
default_registry = Registry()
