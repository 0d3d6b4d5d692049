"""
Storage Module - persistence for finished backtest results.
"""

from .json_sink import JsonResultSink, ResultSink

__all__ = ["JsonResultSink", "ResultSink"]
