"""
NATS Client Adapter

Async NATS client used to receive live trades and announce sealed candles.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

import nats
from nats.aio.client import Client as NatsConnection
from nats.aio.msg import Msg

logger = logging.getLogger(__name__)


@dataclass
class NatsConfig:
    """NATS connection configuration"""
    servers: list[str] = field(default_factory=lambda: ["nats://localhost:4222"])
    name: str = "candle-engine"
    reconnect_time_wait: float = 2.0
    max_reconnect_attempts: int = -1  # Infinite reconnects
    ping_interval: int = 20
    max_outstanding_pings: int = 3

    @classmethod
    def from_env(cls, prefix: str = "NATS") -> "NatsConfig":
        """Create config from environment variables"""
        servers = os.getenv(f"{prefix}_SERVERS", "nats://localhost:4222")
        return cls(
            servers=[s.strip() for s in servers.split(",") if s.strip()],
            name=os.getenv(f"{prefix}_CLIENT_NAME", "candle-engine"),
        )


class NatsClient:
    """
    Thin pub/sub wrapper around nats-py.

    Topic Patterns:
    - trades.raw.{pair}            - Executed trades, one JSON Trade per message
    - candles.{pair}.{resolution}  - Sealed candles
    """

    def __init__(self, config: Optional[NatsConfig] = None):
        self.config = config or NatsConfig()
        self._nc: Optional[NatsConnection] = None
        self._subscriptions: dict[str, Any] = {}
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Check if client is connected"""
        return self._connected and self._nc is not None and self._nc.is_connected

    async def connect(self) -> None:
        """Establish connection to NATS server"""
        if self._connected:
            return

        async def error_handler(e):
            logger.error(f"NATS error: {e}")

        async def disconnected_handler():
            logger.warning("NATS disconnected")
            self._connected = False

        async def reconnected_handler():
            logger.info("NATS reconnected")
            self._connected = True

        try:
            self._nc = await nats.connect(
                servers=self.config.servers,
                name=self.config.name,
                reconnect_time_wait=self.config.reconnect_time_wait,
                max_reconnect_attempts=self.config.max_reconnect_attempts,
                ping_interval=self.config.ping_interval,
                max_outstanding_pings=self.config.max_outstanding_pings,
                error_cb=error_handler,
                disconnected_cb=disconnected_handler,
                reconnected_cb=reconnected_handler,
            )
            self._connected = True
            logger.info(f"Connected to NATS: {self.config.servers}")
        except Exception as e:
            logger.error(f"Failed to connect to NATS: {e}")
            raise

    async def close(self) -> None:
        """Drain and close the connection"""
        if self._nc:
            await self._nc.drain()
            self._connected = False
            logger.info("NATS connection closed")

    async def drain_subscriptions(self) -> None:
        """Stop receiving, letting already-buffered messages reach their callbacks"""
        for subject, sub in list(self._subscriptions.items()):
            await sub.drain()
            del self._subscriptions[subject]
            logger.info(f"Drained {subject}")

    async def publish_json(self, subject: str, data: str) -> None:
        """Publish a JSON string to a subject"""
        if not self.is_connected:
            raise RuntimeError("NATS client not connected")
        payload = data.encode("utf-8")
        await self._nc.publish(subject, payload)
        logger.debug(f"Published to {subject}: {len(payload)} bytes")

    async def subscribe(
        self,
        subject: str,
        callback: Callable[[Msg], Awaitable[None]],
        queue: Optional[str] = None,
    ) -> None:
        """
        Subscribe to a NATS subject.

        Args:
            subject: Subject pattern (supports wildcards: *, >)
            callback: Async callback for received messages
            queue: Optional queue group for load balancing
        """
        if not self.is_connected:
            raise RuntimeError("NATS client not connected")

        if queue:
            sub = await self._nc.subscribe(subject, queue=queue, cb=callback)
        else:
            sub = await self._nc.subscribe(subject, cb=callback)

        self._subscriptions[subject] = sub
        logger.info(f"Subscribed to {subject}" + (f" (queue: {queue})" if queue else ""))


class Topics:
    """NATS subject builders"""

    @staticmethod
    def _sanitize(name: str) -> str:
        """Keep only characters valid in a subject token"""
        return "".join(c if c.isalnum() or c in "-_" else "_" for c in name)

    @staticmethod
    def trades_raw(pair_id: str) -> str:
        """Trade subject for a pair"""
        return f"trades.raw.{Topics._sanitize(pair_id)}"

    @staticmethod
    def all_trades() -> str:
        """Subscribe to trades of every pair"""
        return "trades.raw.*"

    @staticmethod
    def candles(pair_id: str, resolution: str) -> str:
        """Sealed candle subject for a pair and resolution"""
        return f"candles.{Topics._sanitize(pair_id)}.{resolution}"
