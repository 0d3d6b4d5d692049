"""
Market Data Module - bar sources for backtests.
"""

from .alpaca import AlpacaMarketData, normalize_timeframe
from .csv_source import CsvBarSource, save_csv
from .provider import MarketDataProvider, filter_window

__all__ = [
    "AlpacaMarketData",
    "CsvBarSource",
    "MarketDataProvider",
    "filter_window",
    "normalize_timeframe",
    "save_csv",
]
