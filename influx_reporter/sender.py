"""
Sends the points produced by one reporting tick.
"""
import logging
from typing import Sequence

from . import config
from .point import BatchPoints, Point

logger = logging.getLogger(__name__)


def send_points(client, database: str, points: Sequence[Point], precision: str = config.WRITE_PRECISION) -> bool:
    """
    Write all points of a tick as one batch with a single write call.

    There is no retry and no buffering: if the write fails the batch is lost.

    Args:
        client: Wire client exposing ``write(batch)``
        database (str): Target database
        points (list): Points produced this tick
        precision (str): Timestamp precision of the batch

    Returns:
        bool: True if a batch was written, False if there was nothing to send

    Raises:
        WriteError: If the write fails
    """
    if not points:
        logger.debug("No points to send")
        return False

    batch = BatchPoints(database=database, precision=precision)
    batch.add_points(points)
    client.write(batch)
    logger.debug("Sent %d points to database %s", len(batch), database)
    return True
