"""
Aggregation Errors

Error kinds raised by the candle engine and its persistence boundary.
"""

from typing import Any


class AggregationError(Exception):
    """Base class for candle engine errors"""


class InvalidResolution(AggregationError, ValueError):
    """Resolution value is not one of the tracked kinds"""

    def __init__(self, value: Any):
        self.value = value
        super().__init__(f"Invalid resolution: {value!r}")


class OutOfOrderTrade(AggregationError):
    """
    Trade timestamp falls before the open cursor's bucket.

    Signals a feed-ordering bug in the caller. The trade must be rejected
    and logged, never reordered.
    """

    def __init__(self, trade: Any, bucket_start: int):
        self.trade = trade
        self.bucket_start = bucket_start
        super().__init__(
            f"Trade for {trade.pair_id} at {trade.timestamp} is before "
            f"open bucket start {bucket_start}"
        )


class PersistenceFailure(AggregationError):
    """Storage refused a candle. The candle is immutable and safe to re-save."""

    def __init__(self, candle: Any, attempts: int = 1):
        self.candle = candle
        self.attempts = attempts
        super().__init__(
            f"Failed to save candle {candle.pair_id} {candle.resolution.value} "
            f"@ {candle.bucket_start} after {attempts} attempt(s)"
        )
