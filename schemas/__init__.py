"""
Candle Engine - Message Types

Trade and candle records shared by aggregation, persistence and messaging.
"""
