"""
Candle Aggregation Service

Subscribes to live trades from NATS, folds them through the
AggregationManager and publishes every sealed candle.
"""

import logging
from decimal import InvalidOperation
from typing import List

from dataflow.adapters.nats_client import NatsClient, Topics
from engine.runtime.manager import AggregationManager
from schemas.market_data import Candle, Trade

logger = logging.getLogger(__name__)


class CandleAggregationService:
    """Live trade feed -> candles"""

    def __init__(self, nats_client: NatsClient, manager: AggregationManager):
        self.nats = nats_client
        self.manager = manager

    async def _handle_trade(self, msg) -> None:
        """Handle incoming trade message"""
        try:
            trade = Trade.from_json(msg.data.decode())
        except (ValueError, KeyError, InvalidOperation) as e:
            logger.error(f"Failed to parse trade: {e}")
            return

        logger.debug(f"Received trade: {trade.pair_id} {trade.side.value} {trade.volume} @ {trade.price}")

        sealed = await self.manager.handle_trade(trade)
        await self._publish_candles(sealed)

    async def _publish_candles(self, candles: List[Candle]) -> None:
        for candle in candles:
            topic = Topics.candles(candle.pair_id, candle.resolution.value)
            try:
                await self.nats.publish_json(topic, candle.to_json())
                logger.info(
                    f"Sealed candle: {candle.pair_id} {candle.resolution.value} "
                    f"O={candle.open} H={candle.high} L={candle.low} C={candle.close} "
                    f"V={candle.volume} trades={candle.trade_count}"
                )
            except Exception as e:
                logger.error(f"Failed to publish candle: {e}")

    async def start(self) -> None:
        """Start consuming trades"""
        resolutions = [r.value for r in self.manager.resolutions]
        logger.info(f"Starting candle aggregation for resolutions: {resolutions}")
        # No queue group: one consumer sees every trade of a pair, in order
        await self.nats.subscribe(Topics.all_trades(), self._handle_trade)
        logger.info("Candle aggregation started")

    async def stop(self) -> None:
        """Drain the trade subscription, then flush open candles"""
        await self.nats.drain_subscriptions()
        await self.manager.close()
        logger.info("Candle aggregation stopped")
