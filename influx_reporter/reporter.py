"""
Periodically reports the metrics of a registry to InfluxDB.

One loop serves two timers: the report timer snapshots the registry and
writes a batch, the ping timer health checks the connection and rebuilds the
client when the check fails. Ticks are handled one at a time.
"""
import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, List, Mapping, Optional, Union

import pytz

from .config import PING_INTERVAL, ReporterConfig, parse_url
from .connection import ConnectionManager
from .exceptions import ClientConnectionError, ConfigError, WriteError
from .point import Point, timestamp_in
from .registry import Registry, default_registry
from .sender import send_points
from .translator import MetricTranslator

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=pytz.UTC)


def align_timestamp(now: datetime, interval: float) -> datetime:
    """
    Truncate a timestamp down to a multiple of the interval since the epoch.

    Args:
        now (datetime): Timestamp to truncate
        interval (float): Interval in seconds

    Returns:
        datetime: The aligned UTC timestamp
    """
    micros = timestamp_in(now, 'u')
    step = max(int(round(interval * 1_000_000)), 1)
    return _EPOCH + timedelta(microseconds=micros - micros % step)


class Reporter:
    """Drives the report and ping timers for one registry and destination."""

    def __init__(
        self,
        registry: Registry,
        reporter_config: ReporterConfig,
        stop_event: Optional[threading.Event] = None,
        ping_interval: float = PING_INTERVAL,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the reporter.

        Args:
            registry: Anything exposing ``each(callback(name, metric))``
            reporter_config (ReporterConfig): Destination and reporting settings
            stop_event (threading.Event, optional): Stops the loop when set; never set by default
            ping_interval (float): Seconds between connection health checks
            clock (callable): Monotonic clock driving the timers

        Raises:
            ConfigError: If the destination URL is invalid
        """
        # Validate the URL up front so a bad one never starts a loop
        parse_url(reporter_config.url)
        self.registry = registry
        self.config = reporter_config
        self.ping_interval = ping_interval
        self.stop_event = stop_event or threading.Event()
        self.connection = ConnectionManager(reporter_config.url, reporter_config.username, reporter_config.password)
        self.translator = MetricTranslator(reporter_config.measurement, reporter_config.tags)
        self.thread: Optional[threading.Thread] = None
        self._clock = clock

    def connect(self) -> None:
        """
        Build the initial client.

        Raises:
            ClientConnectionError: If the client cannot be built
        """
        self.connection.connect()

    def now(self) -> datetime:
        return datetime.now(pytz.UTC)

    def snapshot_time(self, now: Optional[datetime] = None) -> datetime:
        """
        Timestamp for the points of a tick, aligned to the interval if configured.
        """
        now = now or self.now()
        if self.config.align:
            return align_timestamp(now, self.config.interval)
        return now

    def collect(self, timestamp: datetime) -> List[Point]:
        """
        Translate every metric currently in the registry.

        Args:
            timestamp (datetime): Timestamp for all points

        Returns:
            list: Points from all metrics
        """
        points: List[Point] = []

        def visit(name: str, metric: object) -> None:
            try:
                points.extend(self.translator.translate(name, metric, timestamp))
            except Exception as e:
                logger.error("Error collecting metric %s: %s", name, e)

        self.registry.each(visit)
        return points

    def report(self) -> bool:
        """
        Run one report tick: snapshot, translate and send.

        Returns:
            bool: True if a batch was written
        """
        points = self.collect(self.snapshot_time())
        try:
            return send_points(self.connection.client, self.config.database, points)
        except WriteError as e:
            logger.error("unable to send metrics to InfluxDB: %s", e)
            return False

    def ping(self) -> bool:
        """
        Run one ping tick: health check, rebuilding the client on failure.

        Returns:
            bool: True if the health check passed
        """
        try:
            version = self.connection.health_check()
            logger.debug("InfluxDB ping ok (version %s)", version or 'unknown')
            return True
        except ClientConnectionError as e:
            logger.warning("got error while sending a ping to InfluxDB, trying to recreate client: %s", e)

        try:
            self.connection.rebuild()
        except ClientConnectionError as e:
            logger.error("unable to make InfluxDB client: %s", e)
        return False

    def _next_deadline(self, deadline: float, period: float) -> float:
        deadline += period
        now = self._clock()
        # Ticks missed while a slow tick was running are dropped
        while deadline <= now:
            deadline += period
        return deadline

    def run(self) -> None:
        """Run the timer loop on the calling thread until the stop event is set."""
        now = self._clock()
        next_report = now + self.config.interval
        next_ping = now + self.ping_interval
        logger.info(
            "Reporting metrics to %s every %ss (database=%s, measurement=%s)",
            self.config.url, self.config.interval, self.config.database, self.config.measurement
        )

        while not self.stop_event.is_set():
            wait_time = min(next_report, next_ping) - self._clock()
            if wait_time > 0:
                if self.stop_event.wait(wait_time):
                    break
                continue

            if next_report <= next_ping:
                self.report()
                next_report = self._next_deadline(next_report, self.config.interval)
            else:
                self.ping()
                next_ping = self._next_deadline(next_ping, self.ping_interval)

        logger.info("Reporter loop stopped")

    @property
    def running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def start(self) -> None:
        """Start the timer loop on a daemon thread."""
        if self.running:
            logger.warning("Reporter already running")
            return

        self.stop_event.clear()
        self.thread = threading.Thread(target=self._run_thread, name='influx-reporter', daemon=True)
        self.thread.start()

    def _run_thread(self) -> None:
        try:
            self.run()
        finally:
            self.close()

    def close(self) -> None:
        if self.connection.client is not None:
            self.connection.client.close()

    def stop(self) -> None:
        """
        Stop the timer loop and release the client.

        A background loop closes the client itself once its current tick ends,
        so a write still in flight when the join times out keeps its client.
        """
        self.stop_event.set()

        if self.thread is None:
            self.close()
            return

        self.thread.join(timeout=5)
        if self.thread.is_alive():
            logger.warning("Reporter thread did not stop cleanly, client is closed when the current tick ends")
        self.thread = None


def _interval_seconds(interval: Union[float, timedelta]) -> float:
    if isinstance(interval, timedelta):
        return interval.total_seconds()
    return float(interval)


def create_reporter(
    registry: Registry,
    reporter_config: ReporterConfig,
    stop_event: Optional[threading.Event] = None
) -> Optional[Reporter]:
    """
    Build a reporter and its initial client.

    Startup failures are logged and yield None.

    Returns:
        Reporter: A connected reporter, or None if it could not be built
    """
    try:
        reporter = Reporter(registry, reporter_config, stop_event=stop_event)
    except ConfigError as e:
        logger.error("unable to start InfluxDB reporter: %s", e)
        return None

    try:
        reporter.connect()
    except ClientConnectionError as e:
        logger.error("unable to make InfluxDB client: %s", e)
        return None
    return reporter


def influxdb(
    registry: Registry,
    interval: Union[float, timedelta],
    url: str,
    database: str,
    measurement: str,
    username: str,
    password: str,
    align: bool = False,
    stop_event: Optional[threading.Event] = None
) -> None:
    """
    Report the metrics of a registry to InfluxDB every interval.

    Blocks until ``stop_event`` is set (forever when not given). Returns
    immediately, after logging, when the URL is invalid or the client cannot
    be built.
    """
    influxdb_with_tags(
        registry, interval, url, database, measurement, username, password,
        tags={}, align=align, stop_event=stop_event
    )


def influxdb_with_tags(
    registry: Registry,
    interval: Union[float, timedelta],
    url: str,
    database: str,
    measurement: str,
    username: str,
    password: str,
    tags: Mapping[str, str],
    align: bool = False,
    stop_event: Optional[threading.Event] = None
) -> None:
    """
    Like :func:`influxdb`, adding the given tags to every point.
    """
    try:
        reporter_config = ReporterConfig(
            url=url,
            database=database,
            measurement=measurement,
            username=username,
            password=password,
            tags=tags,
            interval=_interval_seconds(interval),
            align=align,
        )
    except ConfigError as e:
        logger.error("unable to start InfluxDB reporter: %s", e)
        return

    reporter = create_reporter(registry, reporter_config, stop_event=stop_event)
    if reporter is not None:
        reporter.run()


# Singleton instance for easy import
default_reporter = None


def start_reporter(
    registry: Optional[Registry] = None,
    reporter_config: Optional[ReporterConfig] = None
) -> Optional[Reporter]:
    """
    Start the default reporter on a background thread.

    Args:
        registry (Registry, optional): Defaults to the default registry
        reporter_config (ReporterConfig, optional): Defaults to the environment configuration

    Returns:
        Reporter: The running reporter, or None if it could not be started
    """
    global default_reporter

    if default_reporter is None:
        default_reporter = create_reporter(
            registry if registry is not None else default_registry,
            reporter_config or ReporterConfig.from_env()
        )
        if default_reporter is None:
            return None

    default_reporter.start()
    return default_reporter


def stop_reporter() -> None:
    """Stop the default reporter."""
    global default_reporter

    if default_reporter:
        default_reporter.stop()
        default_reporter = None
