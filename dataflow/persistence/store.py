"""
Candle Store Interface

The engine only needs two storage calls: save a candle and read back the most
recent candle of a (pair, resolution). Saves are upserts keyed on
(pair_id, resolution, bucket_start), so flushing an open candle and later
sealing it both land on the same row.
"""

import logging
from typing import Dict, List, Optional, Protocol, Tuple

from schemas.market_data import Candle, Resolution

logger = logging.getLogger(__name__)


class CandleStore(Protocol):
    """Storage collaborator used at seal, flush and resume time"""

    async def save_candle(self, candle: Candle) -> None:
        """Insert or replace the candle for its bucket"""
        ...

    async def get_latest_candle(self, pair_id: str, resolution: Resolution) -> Optional[Candle]:
        """Return the candle with the greatest bucket_start, or None"""
        ...


class MemoryCandleStore:
    """
    In-process candle store.

    Keeps detached copies so later in-place updates of an open cursor never
    leak into stored rows.
    """

    def __init__(self):
        self._candles: Dict[Tuple[str, Resolution], Dict[int, Candle]] = {}
        self.saves = 0

    async def save_candle(self, candle: Candle) -> None:
        key = (candle.pair_id, candle.resolution)
        self._candles.setdefault(key, {})[candle.bucket_start] = candle.copy()
        self.saves += 1
        logger.debug(f"Saved {candle.pair_id} {candle.resolution.value} @ {candle.bucket_start}")

    async def get_latest_candle(self, pair_id: str, resolution: Resolution) -> Optional[Candle]:
        buckets = self._candles.get((pair_id, resolution))
        if not buckets:
            return None
        return buckets[max(buckets)].copy()

    def candles(self, pair_id: str, resolution: Resolution) -> List[Candle]:
        """All stored candles for a (pair, resolution), ascending"""
        buckets = self._candles.get((pair_id, resolution), {})
        return [buckets[start].copy() for start in sorted(buckets)]
