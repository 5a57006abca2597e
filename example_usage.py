#!/usr/bin/env python3
"""
Example script demonstrating how to report application metrics to InfluxDB.

Configure the destination with INFLUXDB_URL, INFLUXDB_DATABASE and friends
(see influx_reporter/config.py).
"""
import logging
import random
import time

from influx_reporter import (
    ReporterConfig,
    default_registry,
    register_process_metrics,
    setup_logging,
    start_reporter,
    stop_reporter,
)

logger = logging.getLogger(__name__)


def handle_request():
    """Pretend to serve a request and record it."""
    requests_counter = default_registry.counter('requests')
    latency = default_registry.timer('request_latency')
    throughput = default_registry.meter('throughput')
    payload_sizes = default_registry.histogram('payload_size')

    with latency.time():
        time.sleep(random.uniform(0.001, 0.02))
    requests_counter.inc()
    throughput.mark()
    payload_sizes.update(random.randint(100, 5000))
    default_registry.gauge('queue_size').update(random.randint(0, 10))


def main():
    """Main function to run the example."""
    setup_logging()
    register_process_metrics()

    reporter_config = ReporterConfig.from_env()
    if start_reporter(reporter_config=reporter_config) is None:
        logger.error("Reporter could not be started, see the log above.")
        return

    logger.info("Recording metrics for one minute...")
    try:
        deadline = time.time() + 60
        while time.time() < deadline:
            handle_request()
            time.sleep(0.1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
    finally:
        stop_reporter()

    logger.info("Metrics example completed.")


if __name__ == "__main__":
    main()
