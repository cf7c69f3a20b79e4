"""Per-pair orchestration across resolutions, persistence and resume."""

from decimal import Decimal

import pytest

from dataflow.candle_aggregation.errors import OutOfOrderTrade
from dataflow.persistence.store import MemoryCandleStore
from engine.runtime.coordinator import PairCoordinator
from schemas.market_data import Candle, Resolution
from tests.conftest import PAIR, FlakyStore, make_trade

MINUTE_AND_HOUR = [Resolution.MINUTE, Resolution.HOUR]


async def test_live_trades_update_all_resolutions(store, minute_trades) -> None:
    coordinator = PairCoordinator(PAIR, store)

    for trade in minute_trades:
        assert await coordinator.process_trade(trade) == []

    for resolution in Resolution:
        candle = coordinator.current_candle(resolution)
        assert candle.open == Decimal(10)
        assert candle.high == Decimal(12)
        assert candle.low == Decimal(9)
        assert candle.close == Decimal(11)
        assert candle.trade_count == 4

    assert store.saves == 0


async def test_rollover_saves_sealed_candle(store, minute_trades) -> None:
    coordinator = PairCoordinator(PAIR, store, resolutions=MINUTE_AND_HOUR)
    for trade in minute_trades:
        await coordinator.process_trade(trade)

    sealed = await coordinator.process_trade(make_trade(15, 70_000))

    assert [c.resolution for c in sealed] == [Resolution.MINUTE]
    stored = store.candles(PAIR, Resolution.MINUTE)
    assert len(stored) == 1
    assert (stored[0].open, stored[0].high, stored[0].low, stored[0].close) == (
        Decimal(10), Decimal(12), Decimal(9), Decimal(11),
    )
    assert stored[0].trade_count == 4

    minute = coordinator.current_candle(Resolution.MINUTE)
    assert minute.bucket_start == 60_000
    assert minute.open == minute.close == Decimal(15)
    assert coordinator.current_candle(Resolution.HOUR).trade_count == 5


async def test_out_of_order_trade_leaves_every_cursor_untouched(store) -> None:
    coordinator = PairCoordinator(PAIR, store, resolutions=MINUTE_AND_HOUR)
    await coordinator.process_trade(make_trade(10, 70_000))

    hour_before = coordinator.current_candle(Resolution.HOUR).copy()

    # Inside the open hour but before the open minute bucket
    with pytest.raises(OutOfOrderTrade):
        await coordinator.process_trade(make_trade(50, 30_000))

    assert coordinator.current_candle(Resolution.HOUR) == hour_before


async def test_trade_for_other_pair_is_refused(store) -> None:
    coordinator = PairCoordinator(PAIR, store)

    with pytest.raises(ValueError):
        await coordinator.process_trade(make_trade(10, 0, pair_id="BTC-USDT"))


async def test_backfill_flushes_open_cursors_every_batch(store) -> None:
    coordinator = PairCoordinator(PAIR, store, resolutions=[Resolution.HOUR])
    trades = [make_trade(10 + i, i * 1000) for i in range(5)]

    count = await coordinator.backfill(trades, batch_size=2)

    assert count == 5
    # flushed after trade 2, 4 and at the end
    assert store.saves == 3
    latest = await store.get_latest_candle(PAIR, Resolution.HOUR)
    assert latest.trade_count == 5
    assert latest.close == Decimal(14)


async def test_flushed_snapshot_is_detached_from_cursor(store) -> None:
    coordinator = PairCoordinator(PAIR, store, resolutions=[Resolution.MINUTE])
    await coordinator.process_trade(make_trade(10, 0))
    await coordinator.flush()

    await coordinator.process_trade(make_trade(20, 1000))

    stored = store.candles(PAIR, Resolution.MINUTE)[0]
    assert stored.trade_count == 1
    assert coordinator.current_candle(Resolution.MINUTE).trade_count == 2


async def test_resume_continues_from_stored_cursor(store) -> None:
    first = PairCoordinator(PAIR, store, resolutions=MINUTE_AND_HOUR)
    await first.backfill([make_trade(10, 0), make_trade(12, 1000)], batch_size=1000)

    resumed = PairCoordinator(PAIR, store, resolutions=MINUTE_AND_HOUR)
    await resumed.load_cursors()
    await resumed.process_trade(make_trade(8, 2000, volume="3"))

    minute = resumed.current_candle(Resolution.MINUTE)
    assert minute.open == Decimal(10)
    assert minute.high == Decimal(12)
    assert minute.low == Decimal(8)
    assert minute.volume == Decimal(5)
    assert minute.trade_count == 3


async def test_backfill_rejects_unsorted_batch(store) -> None:
    coordinator = PairCoordinator(PAIR, store, resolutions=[Resolution.MINUTE])

    with pytest.raises(OutOfOrderTrade):
        await coordinator.backfill([make_trade(10, 120_000), make_trade(11, 0)])


async def test_failed_save_is_retried_before_giving_up() -> None:
    store = FlakyStore(failures=2)
    coordinator = PairCoordinator(PAIR, store, resolutions=[Resolution.MINUTE], save_retries=3, retry_delay=0)

    await coordinator.process_trade(make_trade(10, 0))
    await coordinator.process_trade(make_trade(11, 60_000))

    assert store.attempts == 3
    assert len(store.candles(PAIR, Resolution.MINUTE)) == 1
    assert coordinator.pending == []


async def test_exhausted_save_is_kept_pending_and_cursor_moves_on() -> None:
    store = FlakyStore(failures=2)
    coordinator = PairCoordinator(PAIR, store, resolutions=[Resolution.MINUTE], save_retries=2, retry_delay=0)

    await coordinator.process_trade(make_trade(10, 0))
    sealed = await coordinator.process_trade(make_trade(11, 60_000))

    assert coordinator.pending == sealed
    assert store.candles(PAIR, Resolution.MINUTE) == []
    assert coordinator.current_candle(Resolution.MINUTE).bucket_start == 60_000

    # next trade retries the pending save first
    await coordinator.process_trade(make_trade(12, 61_000))

    assert coordinator.pending == []
    stored = store.candles(PAIR, Resolution.MINUTE)
    assert len(stored) == 1
    assert stored[0].close == Decimal(10)
    assert stored[0].trade_count == 1
    assert coordinator.current_candle(Resolution.MINUTE).trade_count == 2


async def test_metrics(store, minute_trades) -> None:
    coordinator = PairCoordinator(PAIR, store, resolutions=[Resolution.MINUTE])
    for trade in minute_trades:
        await coordinator.process_trade(trade)
    await coordinator.process_trade(make_trade(15, 70_000))

    metrics = coordinator.get_metrics()
    assert metrics["trades_folded"] == 5
    assert metrics["candles_sealed"] == 1
    assert metrics["cursors"] == {"1m": 60_000}


def test_default_tracks_all_resolutions() -> None:
    coordinator = PairCoordinator(PAIR, MemoryCandleStore())
    assert coordinator.resolutions == list(Resolution)


async def test_failed_snapshot_does_not_overwrite_later_sealed_candle() -> None:
    store = FlakyStore(failures=1)
    coordinator = PairCoordinator(PAIR, store, resolutions=[Resolution.MINUTE], save_retries=1, retry_delay=0)
    trades = [make_trade(10, 0), make_trade(11, 1000), make_trade(12, 2000), make_trade(13, 60_000)]

    # first flush (snapshot of bucket 0 with 2 trades) fails
    await coordinator.backfill(trades, batch_size=2)

    assert coordinator.pending == []
    stored = store.candles(PAIR, Resolution.MINUTE)[0]
    assert stored.bucket_start == 0
    assert stored.trade_count == 3
    assert stored.close == Decimal(12)


async def test_resume_skips_trades_each_resolution_already_holds(store) -> None:
    await store.save_candle(Candle(
        pair_id=PAIR, resolution=Resolution.MINUTE, bucket_start=0, bucket_end=60_000,
        open=Decimal(10), high=Decimal(10), low=Decimal(10), close=Decimal(10),
        volume=Decimal(4), trade_count=4, last_trade_at=9_000,
    ))
    await store.save_candle(Candle(
        pair_id=PAIR, resolution=Resolution.HOUR, bucket_start=0, bucket_end=3_600_000,
        open=Decimal(10), high=Decimal(10), low=Decimal(10), close=Decimal(10),
        volume=Decimal(2), trade_count=2, last_trade_at=3_000,
    ))

    coordinator = PairCoordinator(PAIR, store, resolutions=MINUTE_AND_HOUR)
    await coordinator.load_cursors()
    await coordinator.backfill([make_trade(10, 6_000), make_trade(10, 9_000), make_trade(10, 12_000)])

    minute = await store.get_latest_candle(PAIR, Resolution.MINUTE)
    hour = await store.get_latest_candle(PAIR, Resolution.HOUR)
    assert minute.trade_count == hour.trade_count == 5
    assert minute.last_trade_at == hour.last_trade_at == 12_000
