"""
Runtime Module

Per-pair cursor coordination and the live service entry point.
"""

from .coordinator import PairCoordinator
from .manager import AggregationManager

__all__ = [
    "PairCoordinator",
    "AggregationManager",
]
