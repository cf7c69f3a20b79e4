"""
Pair Coordinator

Owns the aggregation cursors of a single trading pair, one per tracked
resolution, and hands candles to the storage collaborator.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from dataflow.candle_aggregation.aggregator import check_order, fold
from dataflow.candle_aggregation.errors import PersistenceFailure
from dataflow.persistence.store import CandleStore
from schemas.market_data import Candle, Resolution, Trade

logger = logging.getLogger(__name__)


class PairCoordinator:
    """
    Folds the trade stream of one pair into every tracked resolution.

    The coordinator:
    1. Reloads each resolution's open candle from storage on start/resume
    2. Folds every trade into each resolution independently
    3. Live mode: saves sealed candles as soon as a rollover happens
    4. Backfill mode: saves sealed and open candles together every `batch_size` trades

    Not safe for concurrent use: callers serialise access per pair
    (see AggregationManager).

    Example usage:
        coordinator = PairCoordinator("ETH-USDT", store)
        await coordinator.load_cursors()

        sealed = await coordinator.process_trade(trade)
    """

    def __init__(
        self,
        pair_id: str,
        store: CandleStore,
        resolutions: Optional[Sequence[Resolution]] = None,
        save_retries: int = 3,
        retry_delay: float = 0.5,
    ):
        """
        Initialize coordinator for a pair.

        Args:
            pair_id: Trading pair identifier
            store: Storage collaborator
            resolutions: Resolutions to track (default: all six)
            save_retries: Save attempts per candle before it is parked as pending
            retry_delay: Seconds between save attempts
        """
        self.pair_id = pair_id
        self.store = store
        self.resolutions = [Resolution.parse(r) for r in (resolutions or list(Resolution))]
        self.save_retries = max(1, save_retries)
        self.retry_delay = retry_delay

        self._cursors: Dict[Resolution, Optional[Candle]] = {r: None for r in self.resolutions}
        # Sealed candles whose save failed, one per bucket
        self._pending: Dict[Tuple[Resolution, int], Candle] = {}
        # Trades at or before these timestamps were already folded before a restart
        self._resume_marks: Dict[Resolution, Optional[int]] = {r: None for r in self.resolutions}

        # Metrics
        self._trades_folded = 0
        self._candles_sealed = 0

    @property
    def pending(self) -> List[Candle]:
        """Sealed candles whose save has not succeeded yet"""
        return list(self._pending.values())

    def current_candle(self, resolution: Resolution) -> Optional[Candle]:
        """Open, still-forming candle for a resolution"""
        return self._cursors[Resolution.parse(resolution)]

    async def load_cursors(self) -> None:
        """
        Reload every cursor from the store's most recent candle.

        Each cursor's last_trade_at becomes a resume mark: replayed trades at
        or before it are skipped for that resolution only, so resolutions
        stored at different points of an interrupted backfill catch up
        without double counting.
        """
        for resolution in self.resolutions:
            candle = await self.store.get_latest_candle(self.pair_id, resolution)
            self._cursors[resolution] = candle
            self._resume_marks[resolution] = candle.last_trade_at if candle is not None else None
            if candle is not None:
                logger.info(
                    f"Resumed {self.pair_id} {resolution.value} cursor at bucket "
                    f"{candle.bucket_start} ({candle.trade_count} trades, last at {candle.last_trade_at})"
                )

    def _already_folded(self, resolution: Resolution, trade: Trade) -> bool:
        mark = self._resume_marks[resolution]
        if mark is None:
            return False
        if trade.timestamp <= mark:
            return True
        self._resume_marks[resolution] = None
        return False

    def _fold(self, trade: Trade) -> List[Candle]:
        if trade.pair_id != self.pair_id:
            raise ValueError(f"Trade for {trade.pair_id} routed to {self.pair_id} coordinator")

        targets = [r for r in self.resolutions if not self._already_folded(r, trade)]

        # Validate against every cursor first so a rejected trade mutates nothing
        for resolution in targets:
            check_order(self._cursors[resolution], trade)

        sealed = []
        for resolution in targets:
            result = fold(self._cursors[resolution], trade, resolution)
            self._cursors[resolution] = result.candle
            if result.sealed is not None:
                sealed.append(result.sealed)

        if targets:
            self._trades_folded += 1
        self._candles_sealed += len(sealed)
        return sealed

    async def process_trade(self, trade: Trade) -> List[Candle]:
        """
        Live mode: fold one trade and persist any candle it sealed.

        Returns:
            Candles sealed by this trade (already handed to storage)

        Raises:
            OutOfOrderTrade: If the trade precedes any open bucket
        """
        await self.retry_pending()

        sealed = self._fold(trade)
        if sealed:
            await self._save_all(sealed)
        return sealed

    async def backfill(self, trades: Iterable[Trade], batch_size: int = 1000) -> int:
        """
        Seed mode: fold a time-sorted batch of trades.

        Sealed candles are held back and saved together with snapshots of
        all open cursors every `batch_size` trades. Storage therefore only
        ever holds state as of a flush, and an interrupted backfill resumes
        from it.

        Returns:
            Number of trades folded
        """
        batch_size = max(1, batch_size)
        count = 0
        held: List[Candle] = []

        for trade in trades:
            held.extend(self._fold(trade))

            count += 1
            if count % batch_size == 0:
                await self.flush(held)
                held = []
                logger.info(f"Backfill {self.pair_id}: {count} trades, last at {trade.timestamp}")

        if count % batch_size or held:
            await self.flush(held)

        logger.info(f"Backfill {self.pair_id} complete: {count} trades")
        return count

    async def flush(self, sealed: Sequence[Candle] = ()) -> None:
        """
        Save `sealed` candles, then snapshots of all open cursors (they stay open).

        A snapshot that fails to save is not kept pending; the next flush
        supersedes it.
        """
        await self.retry_pending()
        if sealed:
            await self._save_all(list(sealed))

        open_candles = [c.copy() for c in self._cursors.values() if c is not None]
        await self._save_all(open_candles, keep_pending=False)

    async def retry_pending(self) -> None:
        """Re-attempt saves that previously failed"""
        if not self._pending:
            return

        pending = list(self._pending.values())
        self._pending = {}
        logger.info(f"Retrying {len(pending)} pending candle save(s) for {self.pair_id}")
        await self._save_all(pending)

    async def _save_all(self, candles: List[Candle], keep_pending: bool = True) -> None:
        results = await asyncio.gather(
            *(self._save(candle) for candle in candles),
            return_exceptions=True,
        )
        for candle, result in zip(candles, results):
            key = (candle.resolution, candle.bucket_start)
            if result is None:
                # A successful save of the bucket supersedes any parked copy
                self._pending.pop(key, None)
            elif isinstance(result, PersistenceFailure):
                if keep_pending:
                    logger.error(f"{result}; keeping it pending")
                    self._pending[key] = candle
                else:
                    logger.error(f"{result}; next flush will replace it")
            else:
                raise result

    async def _save(self, candle: Candle) -> None:
        """
        Save one candle with retries.

        The cursor has already moved past the candle; a failure here is never
        rolled back into the fold.
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self.save_retries + 1):
            try:
                await self.store.save_candle(candle)
                return
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Save failed for {candle.pair_id} {candle.resolution.value} @ "
                    f"{candle.bucket_start} (attempt {attempt}/{self.save_retries}): {e}"
                )
                if attempt < self.save_retries and self.retry_delay:
                    await asyncio.sleep(self.retry_delay)

        raise PersistenceFailure(candle, self.save_retries) from last_error

    def get_metrics(self) -> Dict[str, object]:
        """Coordinator statistics"""
        return {
            "pair_id": self.pair_id,
            "trades_folded": self._trades_folded,
            "candles_sealed": self._candles_sealed,
            "pending_saves": len(self._pending),
            "cursors": {
                r.value: (c.bucket_start if c is not None else None)
                for r, c in self._cursors.items()
            },
        }
