"""
Trade Seeder

Generates a synthetic random-walk trade history for a pair and backfills
candles for it, from a start time up to now. Resumable: a rerun continues
after the earliest last trade recorded across the stored resolutions.

Environment Variables:
    SEED_PAIR: Pair identifier (default: "BASE-QUOTE")
    SEED_START_PRICE: Price the walk starts from and resets to (default: 15)
    SEED_STEP_MS: Milliseconds between trades (default: 3000)
    SEED_DAYS: History length when nothing is stored yet (default: 1080)
"""

import asyncio
import logging
import os
import random
import time
from decimal import Decimal
from typing import Iterator, Optional

from engine.runtime.main import close_store, load_config, open_store
from engine.runtime.manager import AggregationManager
from schemas.market_data import Resolution, Side, Trade

logger = logging.getLogger(__name__)

DAY_MS = Resolution.DAY.width_ms
PRICE_QUANTUM = Decimal("0.0001")


def next_price(previous: float, max_change_pct: float, rng: random.Random) -> float:
    """Move the price by at most max_change_pct percent in either direction"""
    change = rng.uniform(-max_change_pct, max_change_pct) / 100
    return previous * (1 + change)


def random_walk_trades(
    pair_id: str,
    start_ms: int,
    end_ms: int,
    step_ms: int = 3000,
    start_price: float = 15.0,
    max_change_pct: float = 1.0,
    rng: Optional[random.Random] = None,
) -> Iterator[Trade]:
    """
    Yield one trade every step_ms in [start_ms, end_ms).

    The price resets to start_price whenever the walk drops below 1.
    """
    if step_ms <= 0:
        raise ValueError(f"step_ms must be positive, got {step_ms}")

    rng = rng or random.Random()
    price = start_price
    timestamp = start_ms

    while timestamp < end_ms:
        price = next_price(price, max_change_pct, rng)
        yield Trade(
            pair_id=pair_id,
            side=rng.choice((Side.BUY, Side.SELL)),
            price=Decimal(str(price)).quantize(PRICE_QUANTUM),
            volume=Decimal(rng.randint(1, 10)),
            timestamp=timestamp,
        )

        if price < 1:
            price = start_price
        timestamp += step_ms


async def resume_point(manager: AggregationManager, pair_id: str) -> Optional[int]:
    """
    Earliest last_trade_at across the latest stored candle of every tracked
    resolution, or None if any resolution has nothing stored.

    Resolutions stored further ahead skip the replayed trades they already hold.
    """
    marks = []
    for resolution in manager.resolutions:
        latest = await manager.store.get_latest_candle(pair_id, resolution)
        if latest is None or latest.last_trade_at is None:
            return None
        marks.append(latest.last_trade_at)
    return min(marks) if marks else None


async def seed_trades(
    manager: AggregationManager,
    pair_id: str,
    start_price: float = 15.0,
    step_ms: int = 3000,
    days: int = 1080,
    now_ms: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Backfill synthetic trades for a pair.

    Returns:
        Number of trades folded
    """
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)

    resumed_at = await resume_point(manager, pair_id)
    if resumed_at is not None:
        start_ms = resumed_at + step_ms
        logger.info(f"Resuming seed for {pair_id} from {start_ms}")
    else:
        start_ms = now_ms - days * DAY_MS
        logger.info(f"Seeding {pair_id} from {start_ms} ({days} days)")

    trades = random_walk_trades(pair_id, start_ms, now_ms, step_ms=step_ms, start_price=start_price, rng=rng)
    return await manager.backfill(pair_id, trades)


async def main():
    config = load_config()
    store = await open_store(config)
    manager = AggregationManager(store, config)

    pair_id = os.getenv("SEED_PAIR", "BASE-QUOTE")
    try:
        count = await seed_trades(
            manager,
            pair_id,
            start_price=float(os.getenv("SEED_START_PRICE", "15")),
            step_ms=int(os.getenv("SEED_STEP_MS", "3000")),
            days=int(os.getenv("SEED_DAYS", "1080")),
        )
        logger.info(f"Seeding done: {count} trades for {pair_id}")
    finally:
        await close_store(store)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    asyncio.run(main())
