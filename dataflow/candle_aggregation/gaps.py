"""
Gap Filling

Query-time densification of a sparse candle series. The aggregator never
writes candles for buckets without trades; chart consumers that need one
candle per bucket fill the holes here using the previous close.
"""

from decimal import Decimal
from typing import Iterable, Iterator, Optional

from schemas.market_data import Candle


def flat_candle(previous: Candle, bucket_start: int) -> Candle:
    """Synthetic zero-volume candle carrying the previous close forward"""
    width = previous.resolution.width_ms
    return Candle(
        pair_id=previous.pair_id,
        resolution=previous.resolution,
        bucket_start=bucket_start,
        bucket_end=bucket_start + width,
        open=previous.close,
        high=previous.close,
        low=previous.close,
        close=previous.close,
        volume=Decimal(0),
        trade_count=0,
    )


def fill_gaps(candles: Iterable[Candle], until: Optional[int] = None) -> Iterator[Candle]:
    """
    Yield a dense series from candles sorted by bucket_start.

    Args:
        candles: Candles of a single (pair, resolution), ascending
        until: Optional exclusive end timestamp; flat candles are appended
               after the last real candle up to the bucket containing it

    Raises:
        ValueError: If candles are unsorted or mix pairs/resolutions
    """
    previous: Optional[Candle] = None

    for candle in candles:
        if previous is not None:
            if (candle.pair_id, candle.resolution) != (previous.pair_id, previous.resolution):
                raise ValueError("Cannot fill gaps across pairs or resolutions")
            if candle.bucket_start < previous.bucket_end:
                raise ValueError(
                    f"Candles not sorted: {candle.bucket_start} follows {previous.bucket_start}"
                )

            gap_start = previous.bucket_end
            while gap_start < candle.bucket_start:
                filler = flat_candle(previous, gap_start)
                yield filler
                gap_start = filler.bucket_end

        yield candle
        previous = candle

    if previous is None or until is None:
        return

    gap_start = previous.bucket_end
    while gap_start < until:
        filler = flat_candle(previous, gap_start)
        yield filler
        gap_start = filler.bucket_end
