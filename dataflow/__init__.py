"""
Dataflow Layer

Event I/O layer for the candle engine. Contains:
- candle_aggregation: Trade to candle folding
- persistence: Candle storage (memory, TimescaleDB)
- ingestion: Synthetic trade seeding
- adapters: NATS client adapters
"""
