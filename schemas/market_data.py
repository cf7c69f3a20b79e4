"""
Market Data Types

Core market data types used throughout the candle engine.
These types are used for NATS messaging and TimescaleDB persistence.
"""

from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
import json

from dataflow.candle_aggregation.errors import InvalidResolution

MINUTE_MS = 60_000


class Side(str, Enum):
    """Taker side of an executed trade"""
    BUY = "buy"
    SELL = "sell"


class Resolution(str, Enum):
    """Fixed candle widths tracked by the engine"""
    MINUTE = "1m"
    FIFTEEN_MINUTES = "15m"
    HOUR = "1h"
    FOUR_HOURS = "4h"
    DAY = "1d"
    WEEK = "1w"

    @property
    def width_ms(self) -> int:
        """Bucket width in milliseconds"""
        return _WIDTHS_MS[self]

    @classmethod
    def parse(cls, value: Union["Resolution", str]) -> "Resolution":
        """
        Coerce a resolution or its string value.

        Raises:
            InvalidResolution: If value is not one of the six kinds
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InvalidResolution(value) from None


_WIDTHS_MS = {
    Resolution.MINUTE: MINUTE_MS,
    Resolution.FIFTEEN_MINUTES: 15 * MINUTE_MS,
    Resolution.HOUR: 60 * MINUTE_MS,
    Resolution.FOUR_HOURS: 4 * 60 * MINUTE_MS,
    Resolution.DAY: 24 * 60 * MINUTE_MS,
    Resolution.WEEK: 7 * 24 * 60 * MINUTE_MS,
}


@dataclass(frozen=True)
class Trade:
    """Executed trade for a trading pair"""
    pair_id: str
    side: Side
    price: Decimal
    volume: Decimal  # base-asset units
    timestamp: int  # ms since epoch

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "pair_id": self.pair_id,
            "side": self.side.value,
            "price": str(self.price),
            "volume": str(self.volume),
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        """Serialize to JSON string"""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Trade":
        """Create Trade from dictionary"""
        return cls(
            pair_id=data["pair_id"],
            side=Side(data["side"]),
            price=Decimal(str(data["price"])),
            volume=Decimal(str(data["volume"])),
            timestamp=int(data["timestamp"]),
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Trade":
        """Deserialize from JSON string"""
        return cls.from_dict(json.loads(json_str))


@dataclass
class Candle:
    """OHLCV candle for one (pair, resolution) bucket"""
    pair_id: str
    resolution: Resolution
    bucket_start: int  # ms, inclusive
    bucket_end: int  # ms, exclusive
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal = Decimal(0)
    trade_count: int = 0
    last_trade_at: Optional[int] = None  # timestamp of the last folded trade

    @classmethod
    def from_trade(cls, trade: Trade, resolution: Resolution, bucket_start: int, bucket_end: int) -> "Candle":
        """Open a candle whose first trade is `trade`"""
        return cls(
            pair_id=trade.pair_id,
            resolution=resolution,
            bucket_start=bucket_start,
            bucket_end=bucket_end,
            open=trade.price,
            high=trade.price,
            low=trade.price,
            close=trade.price,
            volume=trade.volume,
            trade_count=1,
            last_trade_at=trade.timestamp,
        )

    def contains(self, timestamp: int) -> bool:
        """Check if timestamp falls inside [bucket_start, bucket_end)"""
        return self.bucket_start <= timestamp < self.bucket_end

    def copy(self) -> "Candle":
        """Detached snapshot that later in-place updates won't touch"""
        return replace(self)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "pair_id": self.pair_id,
            "resolution": self.resolution.value,
            "bucket_start": self.bucket_start,
            "bucket_end": self.bucket_end,
            "open": str(self.open),
            "high": str(self.high),
            "low": str(self.low),
            "close": str(self.close),
            "volume": str(self.volume),
            "trade_count": self.trade_count,
            "last_trade_at": self.last_trade_at,
        }

    def to_json(self) -> str:
        """Serialize to JSON string"""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Candle":
        """Create Candle from dictionary"""
        return cls(
            pair_id=data["pair_id"],
            resolution=Resolution.parse(data["resolution"]),
            bucket_start=int(data["bucket_start"]),
            bucket_end=int(data["bucket_end"]),
            open=Decimal(str(data["open"])),
            high=Decimal(str(data["high"])),
            low=Decimal(str(data["low"])),
            close=Decimal(str(data["close"])),
            volume=Decimal(str(data.get("volume", 0))),
            trade_count=int(data.get("trade_count", 0)),
            last_trade_at=int(data["last_trade_at"]) if data.get("last_trade_at") is not None else None,
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Candle":
        """Deserialize from JSON string"""
        return cls.from_dict(json.loads(json_str))
