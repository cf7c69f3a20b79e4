"""
NATS Adapters

NATS client wrapper for the live trade feed and candle announcements.
"""

from dataflow.adapters.nats_client import NatsClient, NatsConfig, Topics

__all__ = ["NatsClient", "NatsConfig", "Topics"]
