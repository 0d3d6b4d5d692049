"""
Advisory Gateway - the asynchronous boundary between the engine and an advisor.

Wraps any Advisor with:
- A per-call timeout
- Bounded retries with exponential backoff for transient failures
- Optional request pacing (RateLimiter)
- Bounds validation of the returned Recommendation

The engine awaits one gateway call per sampled bar. Whatever goes wrong in
here surfaces as a single AdvisoryUnavailable, so the bar can be skipped.
"""

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from tradesim.advisory.models import Recommendation, validate_recommendation
from tradesim.core.config import DEFAULT_ENGINE
from tradesim.core.errors import AdvisoryUnavailable
from tradesim.core.models import Bar

if TYPE_CHECKING:
    from tradesim.analysis.technical import TechnicalSignals
    from tradesim.backtest.models import Trade

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdvisoryRequest:
    """Everything an advisor gets to look at for one bar."""

    symbol: str
    timeframe: str
    balance: float
    open_positions: Sequence["Trade"]
    technical_signals: "TechnicalSignals"
    bars: Sequence[Bar] = field(default_factory=tuple)  # Trailing analysis window

    @property
    def current_price(self) -> float | None:
        return self.bars[-1].close if self.bars else None


class Advisor(Protocol):
    """Source of trade recommendations (an LLM, a rule-based strategy, a script)."""

    async def analyze(self, request: AdvisoryRequest) -> Recommendation: ...


@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff for transient advisor failures.

    The first call is not a retry: up to 1 + max_retries calls are made.
    """

    max_retries: int = 3
    base_delay: float = 1.0  # Seconds before the first retry
    multiplier: float = 2.0
    max_delay: float = 30.0

    def delay(self, retry: int) -> float:
        """Delay before retry number `retry` (0-based), capped at max_delay."""
        return min(self.base_delay * self.multiplier**retry, self.max_delay)


class RateLimiter:
    """Enforces a minimum interval between consecutive calls."""

    def __init__(self, min_interval: float) -> None:
        """
        Args:
            min_interval: Seconds that must pass between calls (0 disables pacing)
        """
        self.min_interval = min_interval
        self._last_call: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until the next call is allowed."""
        async with self._lock:
            if self._last_call is not None and self.min_interval > 0:
                wait = self.min_interval - (time.monotonic() - self._last_call)
                if wait > 0:
                    logger.debug(f"Rate limit: waiting {wait:.2f}s")
                    await asyncio.sleep(wait)
            self._last_call = time.monotonic()


class AdvisoryGateway:
    """
    Timeout, retry, pacing and validation around an Advisor.

    Usage:
        gateway = AdvisoryGateway(OllamaAdvisor(), retry=RetryPolicy(max_retries=3))
        recommendation = await gateway.request(request)
    """

    def __init__(
        self,
        advisor: Advisor,
        retry: RetryPolicy | None = None,
        rate_limiter: RateLimiter | None = None,
        timeout: float = 30.0,
        default_risk_percentage: float = DEFAULT_ENGINE.risk_per_trade,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            advisor: Recommendation source
            retry: Backoff policy (defaults to 3 retries from 1s)
            rate_limiter: Optional pacing between calls
            timeout: Seconds allowed per advisor call
            default_risk_percentage: Risk % assumed when a recommendation has none
        """
        self.advisor = advisor
        self.retry = retry or RetryPolicy()
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.default_risk_percentage = default_risk_percentage

        self.calls_made = 0
        self.failures = 0

    async def _call(self, request: AdvisoryRequest) -> Recommendation:
        if self.rate_limiter:
            await self.rate_limiter.acquire()
        self.calls_made += 1
        return await asyncio.wait_for(self.advisor.analyze(request), timeout=self.timeout)

    async def request(self, request: AdvisoryRequest) -> Recommendation:
        """
        Get a validated recommendation.

        Args:
            request: Analysis inputs for the current bar

        Returns:
            Recommendation that passed bounds validation

        Raises:
            AdvisoryUnavailable: Retries exhausted, or the recommendation is out of bounds
        """
        last_error: Exception | None = None

        for attempt in range(self.retry.max_retries + 1):
            if attempt > 0:
                delay = self.retry.delay(attempt - 1)
                logger.info(
                    f"Retrying advisory for {request.symbol} in {delay:.1f}s "
                    f"(retry {attempt}/{self.retry.max_retries})"
                )
                await asyncio.sleep(delay)

            try:
                recommendation = await self._call(request)
                break
            except asyncio.TimeoutError as e:
                logger.warning(f"Advisory timed out after {self.timeout:.1f}s")
                last_error = e
            except Exception as e:
                logger.warning(f"Advisory error: {e}")
                last_error = e
        else:
            self.failures += 1
            raise AdvisoryUnavailable(
                f"Advisory failed after {self.retry.max_retries + 1} attempts: {last_error}",
                symbol=request.symbol,
                attempts=self.retry.max_retries + 1,
                last_error=str(last_error),
            ) from last_error

        check = validate_recommendation(
            recommendation,
            request.balance,
            default_risk_percentage=self.default_risk_percentage,
        )
        if not check:
            self.failures += 1
            raise AdvisoryUnavailable(
                f"Recommendation rejected: {check.reason}",
                symbol=request.symbol,
                reason=check.reason,
            )

        return recommendation
