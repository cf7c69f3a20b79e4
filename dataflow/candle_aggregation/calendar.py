"""
Resolution Calendar

Maps a timestamp to the bucket it belongs to for a given resolution.
Buckets are half-open [start, end) intervals in epoch milliseconds.
"""

from typing import Tuple, Union

from schemas.market_data import Resolution

DAY_MS = Resolution.DAY.width_ms

# 1970-01-01 was a Thursday; weeks start on Monday 00:00 UTC
WEEK_OFFSET_MS = 4 * DAY_MS


def bucket_for(timestamp: int, resolution: Union[Resolution, str]) -> Tuple[int, int]:
    """
    Get the bucket containing a timestamp.

    Args:
        timestamp: Milliseconds since epoch
        resolution: Resolution or its string value (e.g. "15m")

    Returns:
        (bucket_start, bucket_end) with bucket_start <= timestamp < bucket_end

    Raises:
        InvalidResolution: If resolution is not one of the six kinds
    """
    resolution = Resolution.parse(resolution)
    width = resolution.width_ms
    offset = WEEK_OFFSET_MS if resolution is Resolution.WEEK else 0

    start = ((timestamp - offset) // width) * width + offset
    return start, start + width
