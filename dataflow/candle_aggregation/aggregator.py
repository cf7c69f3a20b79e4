"""
Candle Aggregator

Folds one trade into the open candle of a single (pair, resolution) cursor.

The fold either updates the open candle in place or seals it and opens a new
one for the trade's bucket. Buckets that saw no trades between the sealed
candle and the new one are not materialised here; see gaps.fill_gaps for
query-time densification.
"""

import logging
from typing import NamedTuple, Optional

from dataflow.candle_aggregation.calendar import bucket_for
from dataflow.candle_aggregation.errors import OutOfOrderTrade
from schemas.market_data import Candle, Resolution, Trade

logger = logging.getLogger(__name__)


class FoldResult(NamedTuple):
    """Outcome of folding one trade"""
    candle: Candle  # the open candle to keep as the cursor
    sealed: Optional[Candle]  # previous candle, when a rollover happened


def check_order(current: Optional[Candle], trade: Trade) -> None:
    """
    Reject a trade that is older than the open bucket.

    Raises:
        OutOfOrderTrade: If trade.timestamp < current.bucket_start
    """
    if current is not None and trade.timestamp < current.bucket_start:
        raise OutOfOrderTrade(trade, current.bucket_start)


def fold(current: Optional[Candle], trade: Trade, resolution: Resolution) -> FoldResult:
    """
    Fold a trade into the current candle for a resolution.

    Args:
        current: Open candle held by the cursor, or None before the first trade
        trade: Trade to fold; must belong to the candle's pair
        resolution: Resolution the cursor tracks

    Returns:
        FoldResult(candle, sealed). `sealed` is the previous candle, returned
        unmutated, when the trade falls at or after its bucket end.

    Raises:
        OutOfOrderTrade: If the trade is before the open bucket (cursor untouched)
        InvalidResolution: If resolution is not one of the six kinds
        ValueError: If current belongs to another pair or resolution
    """
    resolution = Resolution.parse(resolution)
    bucket_start, bucket_end = bucket_for(trade.timestamp, resolution)

    if current is None:
        return FoldResult(Candle.from_trade(trade, resolution, bucket_start, bucket_end), None)

    if current.resolution is not resolution or current.pair_id != trade.pair_id:
        raise ValueError(
            f"Cursor {current.pair_id}/{current.resolution.value} cannot fold "
            f"trade for {trade.pair_id}/{resolution.value}"
        )

    check_order(current, trade)

    if current.contains(trade.timestamp):
        current.high = max(current.high, trade.price)
        current.low = min(current.low, trade.price)
        current.close = trade.price
        current.volume += trade.volume
        current.trade_count += 1
        current.last_trade_at = trade.timestamp
        return FoldResult(current, None)

    # Rollover: trade.timestamp >= current.bucket_end
    skipped = (bucket_start - current.bucket_end) // resolution.width_ms
    if skipped:
        logger.debug(
            f"{trade.pair_id} {resolution.value}: {skipped} empty bucket(s) "
            f"between {current.bucket_end} and {bucket_start}"
        )

    new_candle = Candle.from_trade(trade, resolution, bucket_start, bucket_end)
    return FoldResult(new_candle, current)
