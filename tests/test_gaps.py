"""Query-time densification of sparse candle series."""

from decimal import Decimal

import pytest

from dataflow.candle_aggregation.gaps import fill_gaps
from schemas.market_data import Candle, Resolution


def minute_candle(start: int, close, pair_id: str = "ETH-USDT") -> Candle:
    price = Decimal(str(close))
    return Candle(pair_id, Resolution.MINUTE, start, start + 60_000, price, price, price, price, Decimal(1), 1)


def test_gaps_are_filled_with_previous_close() -> None:
    series = list(fill_gaps([minute_candle(0, 10), minute_candle(180_000, 12)]))

    assert [c.bucket_start for c in series] == [0, 60_000, 120_000, 180_000]
    for filler in series[1:3]:
        assert filler.open == filler.high == filler.low == filler.close == Decimal(10)
        assert filler.volume == 0
        assert filler.trade_count == 0
    assert series[3].close == Decimal(12)


def test_dense_series_is_unchanged() -> None:
    candles = [minute_candle(0, 10), minute_candle(60_000, 11)]
    assert list(fill_gaps(candles)) == candles


def test_fill_until_extends_series() -> None:
    series = list(fill_gaps([minute_candle(0, 10)], until=150_000))

    assert [c.bucket_start for c in series] == [0, 60_000, 120_000]
    assert series[-1].close == Decimal(10)


def test_empty_input() -> None:
    assert list(fill_gaps([], until=120_000)) == []


def test_unsorted_input_is_rejected() -> None:
    with pytest.raises(ValueError):
        list(fill_gaps([minute_candle(60_000, 10), minute_candle(0, 11)]))


def test_mixed_pairs_are_rejected() -> None:
    with pytest.raises(ValueError):
        list(fill_gaps([minute_candle(0, 10), minute_candle(60_000, 11, pair_id="BTC-USDT")]))
