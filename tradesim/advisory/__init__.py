"""
Advisory Module - recommendation contract and the gateway around advisors.
"""

from .gateway import Advisor, AdvisoryGateway, AdvisoryRequest, RateLimiter, RetryPolicy
from .models import (
    ChartPattern,
    KeyLevels,
    Recommendation,
    SignalFlags,
    TradeRecommendation,
    validate_recommendation,
)
from .ollama import OllamaAdvisor
from .prompts import build_analysis_prompt

__all__ = [
    # Gateway
    "Advisor",
    "AdvisoryGateway",
    "AdvisoryRequest",
    "RateLimiter",
    "RetryPolicy",
    # Contract
    "ChartPattern",
    "KeyLevels",
    "Recommendation",
    "SignalFlags",
    "TradeRecommendation",
    "validate_recommendation",
    # Advisors
    "OllamaAdvisor",
    "build_analysis_prompt",
]
