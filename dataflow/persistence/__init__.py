"""
Candle Persistence

Storage collaborators for sealed and flushed candles.
"""

from dataflow.persistence.store import CandleStore, MemoryCandleStore
from dataflow.persistence.timescale import TimescaleCandleStore

__all__ = ["CandleStore", "MemoryCandleStore", "TimescaleCandleStore"]
