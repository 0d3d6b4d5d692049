"""
tradesim - backtesting engine with risk management, position management and
a technical indicator library.
"""

__version__ = "0.1.0"
