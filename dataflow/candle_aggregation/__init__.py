"""
Candle Aggregation

Folds executed trades into OHLCV candles for several resolutions at once:
1m, 15m, 1h, 4h, 1d and 1w.
"""
