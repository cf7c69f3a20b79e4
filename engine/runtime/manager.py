"""
Aggregation Manager

Routes trades to per-pair coordinators. Trades of one pair are folded
strictly one at a time; different pairs run concurrently.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from dataflow.candle_aggregation.errors import OutOfOrderTrade
from dataflow.persistence.store import CandleStore
from engine.config.loader import AggregationConfig
from engine.runtime.coordinator import PairCoordinator
from schemas.market_data import Candle, Resolution, Trade

logger = logging.getLogger(__name__)


class AggregationManager:
    """
    Holds one PairCoordinator and one lock per trading pair.

    Coordinators are created on the first trade of a pair and resumed from
    storage before that trade is folded.

    Example usage:
        manager = AggregationManager(store, config)
        sealed = await manager.handle_trade(trade)
        ...
        await manager.close()
    """

    def __init__(self, store: CandleStore, config: Optional[AggregationConfig] = None):
        self.store = store
        self.config = config or AggregationConfig()
        self._coordinators: Dict[str, PairCoordinator] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._rejected = 0

    @property
    def resolutions(self) -> Sequence[Resolution]:
        return self.config.resolutions

    def _lock_for(self, pair_id: str) -> asyncio.Lock:
        if pair_id not in self._locks:
            self._locks[pair_id] = asyncio.Lock()
        return self._locks[pair_id]

    async def _coordinator_for(self, pair_id: str) -> PairCoordinator:
        """Get or create (and resume) the coordinator; caller holds the pair lock"""
        coordinator = self._coordinators.get(pair_id)
        if coordinator is None:
            coordinator = PairCoordinator(
                pair_id,
                self.store,
                resolutions=self.config.resolutions,
                save_retries=self.config.save_retries,
                retry_delay=self.config.retry_delay,
            )
            await coordinator.load_cursors()
            self._coordinators[pair_id] = coordinator
            logger.info(f"Created coordinator for {pair_id}")
        return coordinator

    def accepts(self, pair_id: str) -> bool:
        """Check the pair against the configured whitelist"""
        return not self.config.pairs or pair_id in self.config.pairs

    def coordinator(self, pair_id: str) -> Optional[PairCoordinator]:
        return self._coordinators.get(pair_id)

    async def handle_trade(self, trade: Trade) -> List[Candle]:
        """
        Live mode entry point.

        Out-of-order trades are logged and skipped, never reordered.

        Returns:
            Candles sealed by this trade
        """
        if not self.accepts(trade.pair_id):
            logger.debug(f"Ignoring trade for untracked pair {trade.pair_id}")
            return []

        async with self._lock_for(trade.pair_id):
            coordinator = await self._coordinator_for(trade.pair_id)
            try:
                return await coordinator.process_trade(trade)
            except OutOfOrderTrade as e:
                self._rejected += 1
                logger.warning(f"Rejected trade: {e}")
                return []

    async def backfill(self, pair_id: str, trades: Iterable[Trade], batch_size: Optional[int] = None) -> int:
        """
        Seed mode entry point for one pair.

        Raises:
            OutOfOrderTrade: If the batch is not sorted or overlaps stored history
        """
        async with self._lock_for(pair_id):
            coordinator = await self._coordinator_for(pair_id)
            return await coordinator.backfill(
                trades, batch_size=batch_size or self.config.backfill_batch_size
            )

    async def close(self) -> None:
        """Flush every open cursor, including pairs that appear while closing"""
        flushed = set()
        while True:
            remaining = [
                (pair_id, coordinator)
                for pair_id, coordinator in list(self._coordinators.items())
                if pair_id not in flushed
            ]
            if not remaining:
                break

            for pair_id, coordinator in remaining:
                async with self._lock_for(pair_id):
                    await coordinator.flush()
                flushed.add(pair_id)

        logger.info(f"Flushed {len(self._coordinators)} coordinator(s)")

    def get_metrics(self) -> Dict[str, object]:
        return {
            "pairs": len(self._coordinators),
            "rejected_trades": self._rejected,
            "coordinators": {
                pid: c.get_metrics() for pid, c in self._coordinators.items()
            },
        }
