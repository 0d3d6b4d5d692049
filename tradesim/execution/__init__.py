"""
Execution Module - trade intents and the paper sink that records them.
"""

from .paper import (
    ExecutionSink,
    OrderIntent,
    OrderResult,
    PaperExecutionSink,
    PaperPosition,
)

__all__ = [
    "ExecutionSink",
    "OrderIntent",
    "OrderResult",
    "PaperExecutionSink",
    "PaperPosition",
]
