"""
Engine Layer

Configuration and runtime orchestration of the candle engine.
"""
