"""
Config Module

YAML engine configuration loading and validation.
"""

from .loader import AggregationConfig, ConfigLoader, StoreConfig

__all__ = [
    "AggregationConfig",
    "ConfigLoader",
    "StoreConfig",
]
