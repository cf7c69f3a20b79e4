"""
Candle Engine - Main Entry Point

Runs the live candle aggregation service: trades in over NATS, candles out
to storage and back onto NATS.
"""

import asyncio
import logging
import os
from pathlib import Path

from dataflow.adapters.nats_client import NatsClient, NatsConfig
from dataflow.candle_aggregation.service import CandleAggregationService
from dataflow.persistence.store import CandleStore, MemoryCandleStore
from dataflow.persistence.timescale import TimescaleCandleStore
from engine.config.loader import AggregationConfig, ConfigLoader, DEFAULT_CONFIG_FILE
from engine.runtime.manager import AggregationManager

logger = logging.getLogger(__name__)


def load_config() -> AggregationConfig:
    """
    Load config from CONFIG_DIR/aggregation.yaml if present, else defaults.

    DATABASE_URL overrides store.database_url.
    """
    config_dir = Path(os.getenv("CONFIG_DIR", "config"))

    if (config_dir / DEFAULT_CONFIG_FILE).exists():
        config = ConfigLoader(config_dir).load()
    else:
        logger.info(f"No {DEFAULT_CONFIG_FILE} in {config_dir}, using defaults")
        config = AggregationConfig()

    db_url = os.getenv("DATABASE_URL")
    if db_url:
        config.store.database_url = db_url

    return config


async def open_store(config: AggregationConfig) -> CandleStore:
    """Create and connect the configured candle store"""
    if config.store.backend == "memory":
        logger.warning("Using in-memory candle store; candles are lost on exit")
        return MemoryCandleStore()

    store = TimescaleCandleStore(config.store.database_url)
    await store.connect()
    await store.ensure_schema()
    return store


async def close_store(store: CandleStore) -> None:
    if isinstance(store, TimescaleCandleStore):
        await store.close()


async def main():
    """
    Main entry point for the live service.

    Environment Variables:
        CONFIG_DIR: Config directory path (default: "config")
        DATABASE_URL: TimescaleDB URL (overrides config)
        NATS_SERVERS: NATS server URLs (default: "nats://localhost:4222")
        NATS_CLIENT_NAME: NATS client name (default: "candle-engine")
    """
    config = load_config()

    logger.info("=" * 60)
    logger.info("Candle Engine Starting")
    logger.info("=" * 60)

    store = await open_store(config)
    manager = AggregationManager(store, config)

    nats_client = NatsClient(NatsConfig.from_env())
    service = CandleAggregationService(nats_client, manager)

    try:
        await nats_client.connect()
        await service.start()
        logger.info("Candle engine running. Press Ctrl+C to stop.")

        while True:
            await asyncio.sleep(60)
            metrics = manager.get_metrics()
            logger.info(
                f"Metrics: {metrics['pairs']} pairs, "
                f"{metrics['rejected_trades']} rejected trades"
            )

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Shutting down...")
    finally:
        await service.stop()
        await nats_client.close()
        await close_store(store)
        logger.info("Candle engine stopped")


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    asyncio.run(main())
