"""
Process metrics backed by psutil.
"""
import logging
from typing import Optional

import psutil

from .registry import FunctionalGauge, Registry, default_registry

logger = logging.getLogger(__name__)


def register_process_metrics(
    registry: Optional[Registry] = None,
    prefix: str = 'process',
    process: Optional[psutil.Process] = None
) -> None:
    """
    Register gauges describing the current process.

    Registers ``<prefix>.cpu_percent``, ``<prefix>.memory_rss``,
    ``<prefix>.memory_vms`` and ``<prefix>.num_threads``. Values are read
    from psutil each time the gauges are snapshotted.

    Args:
        registry (Registry, optional): Defaults to the default registry
        prefix (str): Prefix of the metric names
        process (psutil.Process, optional): Process to observe, the current one by default
    """
    registry = registry if registry is not None else default_registry
    process = process or psutil.Process()

    gauges = {
        'cpu_percent': lambda: float(process.cpu_percent(interval=None)),
        'memory_rss': lambda: process.memory_info().rss,
        'memory_vms': lambda: process.memory_info().vms,
        'num_threads': process.num_threads,
    }
    for name, func in gauges.items():
        registry.get_or_register(f"{prefix}.{name}", lambda func=func: FunctionalGauge(func), FunctionalGauge)

    logger.debug("Registered %d process gauges for pid %s", len(gauges), process.pid)
