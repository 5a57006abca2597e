"""
Unit tests for the in-process metrics registry.
"""
import pytest

from influx_reporter.exceptions import DuplicateMetricError
from influx_reporter.registry import (
    Counter,
    FunctionalGauge,
    Gauge,
    GaugeFloat,
    Histogram,
    HistogramSnapshot,
    Meter,
    Registry,
    Timer,
    UniformSample,
)


class TestCounterAndGauges:
    """Test counters and gauges."""

    def test_counter(self):
        counter = Counter()
        counter.inc()
        counter.inc(5)
        counter.dec(2)
        assert counter.count == 4
        assert counter.snapshot().count == 4
        counter.clear()
        assert counter.snapshot().count == 0

    def test_snapshot_is_stable(self):
        counter = Counter()
        counter.inc(3)
        snapshot = counter.snapshot()
        counter.inc(10)
        assert snapshot.count == 3

    def test_gauge_holds_integers(self):
        gauge = Gauge()
        gauge.update(7.9)
        assert gauge.snapshot().value == 7

    def test_gauge_float(self):
        gauge = GaugeFloat()
        gauge.update(0.25)
        assert gauge.snapshot().value == 0.25

    def test_functional_gauge(self):
        values = iter([1, 2])
        gauge = FunctionalGauge(lambda: next(values))
        assert gauge.snapshot().value == 1
        assert gauge.snapshot().value == 2
        with pytest.raises(TypeError):
            gauge.update(3)


class TestHistogram:
    """Test histogram statistics."""

    def test_statistics(self):
        histogram = Histogram()
        for value in range(1, 101):
            histogram.update(value)
        snapshot = histogram.snapshot()
        assert snapshot.count == 100
        assert snapshot.min == 1
        assert snapshot.max == 100
        assert snapshot.mean == pytest.approx(50.5)
        assert snapshot.variance == pytest.approx(833.25)
        assert snapshot.stddev == pytest.approx(833.25 ** 0.5)
        assert snapshot.sum == pytest.approx(5050)
        assert snapshot.percentile(0.5) == pytest.approx(50.5)

    def test_percentiles_are_ordered(self):
        histogram = Histogram()
        for value in range(1000):
            histogram.update(value)
        percentiles = histogram.snapshot().percentiles([0.5, 0.75, 0.95, 0.99, 0.999, 0.9999])
        assert percentiles == sorted(percentiles)
        assert percentiles[-1] <= 999

    def test_empty_histogram(self):
        snapshot = Histogram().snapshot()
        assert snapshot.count == 0
        assert (snapshot.min, snapshot.max, snapshot.mean, snapshot.stddev, snapshot.variance) == (0, 0, 0, 0, 0)
        assert snapshot.percentiles([0.5, 0.99]) == [0.0, 0.0]

    def test_reservoir_is_bounded(self):
        sample = UniformSample(reservoir_size=10)
        for value in range(100):
            sample.update(value)
        snapshot = sample.snapshot()
        assert snapshot.count == 100
        assert len(snapshot.values) == 10
        assert all(0 <= value < 100 for value in snapshot.values)

    def test_snapshot_type(self):
        assert isinstance(Histogram().snapshot(), HistogramSnapshot)


class TestMeterAndTimer:
    """Test meters and timers with a controlled clock."""

    def test_meter_rates(self, fake_clock):
        meter = Meter(clock=fake_clock)
        meter.mark(5)
        fake_clock.now = 5.0
        snapshot = meter.snapshot()
        assert snapshot.count == 5
        assert snapshot.rate1 == pytest.approx(1.0)
        assert snapshot.rate5 == pytest.approx(1.0)
        assert snapshot.rate15 == pytest.approx(1.0)
        assert snapshot.rate_mean == pytest.approx(1.0)

    def test_meter_rates_decay(self, fake_clock):
        meter = Meter(clock=fake_clock)
        meter.mark(50)
        fake_clock.now = 5.0
        first = meter.snapshot()
        fake_clock.now = 65.0
        later = meter.snapshot()
        assert later.rate1 < first.rate1
        assert later.rate15 > later.rate1

    def test_meter_without_ticks(self, fake_clock):
        meter = Meter(clock=fake_clock)
        meter.mark()
        snapshot = meter.snapshot()
        assert snapshot.rate1 == 0.0
        assert snapshot.rate_mean == 0.0

    def test_timer_records_nanoseconds(self, fake_clock):
        timer = Timer(meter=Meter(clock=fake_clock))
        timer.update(0.5)
        timer.update(1.5)
        fake_clock.now = 10.0
        snapshot = timer.snapshot()
        assert snapshot.count == 2
        assert snapshot.min == 5e8
        assert snapshot.max == 1.5e9
        assert snapshot.rate_mean == pytest.approx(0.2)

    def test_timer_context_manager(self):
        timer = Timer()
        with timer.time():
            pass
        assert timer.count == 1
        assert timer.snapshot().min >= 0


class TestRegistry:
    """Test registry bookkeeping and iteration."""

    def test_register_and_get(self, registry):
        counter = registry.register('requests', Counter())
        assert registry.get('requests') is counter
        assert 'requests' in registry
        assert len(registry) == 1

    def test_duplicate_names(self, registry):
        registry.register('requests', Counter())
        with pytest.raises(DuplicateMetricError):
            registry.register('requests', Counter())

    def test_get_or_register(self, registry):
        counter = registry.counter('requests')
        assert registry.counter('requests') is counter
        assert isinstance(registry.gauge('queue'), Gauge)
        assert isinstance(registry.gauge_float('load'), GaugeFloat)
        assert isinstance(registry.functional_gauge('fd', lambda: 3), FunctionalGauge)
        assert isinstance(registry.histogram('sizes'), Histogram)
        assert isinstance(registry.meter('rate'), Meter)
        assert isinstance(registry.timer('latency'), Timer)

    def test_get_or_register_rejects_other_kinds(self, registry):
        registry.gauge('x')
        with pytest.raises(DuplicateMetricError):
            registry.counter('x')
        with pytest.raises(DuplicateMetricError):
            registry.timer('x')
        assert isinstance(registry.get('x'), Gauge)

    def test_unregister(self, registry):
        registry.counter('requests')
        assert registry.unregister('requests') is True
        assert registry.unregister('requests') is False
        assert registry.get('requests') is None

    def test_each_visits_every_metric(self, registry):
        registry.counter('a')
        registry.gauge('b')
        seen = {}
        registry.each(lambda name, metric: seen.setdefault(name, metric))
        assert set(seen) == {'a', 'b'}

    def test_each_tolerates_mutation(self, registry):
        registry.counter('a')
        registry.counter('b')

        def mutate(name, metric):
            registry.unregister('b')
            registry.counter(name + '-new')

        registry.each(mutate)
        assert 'a-new' in registry
