"""Shared fixtures for candle engine tests."""

from decimal import Decimal

import pytest

from dataflow.persistence.store import MemoryCandleStore
from schemas.market_data import Side, Trade

PAIR = "ETH-USDT"


def make_trade(price, timestamp: int, volume="1", pair_id: str = PAIR, side: Side = Side.BUY) -> Trade:
    """Build a trade from loosely-typed test values."""

    return Trade(
        pair_id=pair_id,
        side=side,
        price=Decimal(str(price)),
        volume=Decimal(str(volume)),
        timestamp=timestamp,
    )


class FlakyStore(MemoryCandleStore):
    """Memory store whose next `failures` saves raise."""

    def __init__(self, failures: int = 0):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def save_candle(self, candle) -> None:
        self.attempts += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("database unavailable")
        await super().save_candle(candle)


@pytest.fixture
def store() -> MemoryCandleStore:
    return MemoryCandleStore()


@pytest.fixture
def minute_trades() -> list[Trade]:
    """Four trades inside the [0, 60000) minute bucket."""

    return [
        make_trade(10, 0, volume="1.5"),
        make_trade(12, 15_000, volume="2"),
        make_trade(9, 30_000, volume="0.5"),
        make_trade(11, 59_999, volume="3"),
    ]
