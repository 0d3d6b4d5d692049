#!/usr/bin/env python3
"""
Tests for the recommendation contract, the advisory gateway and the Ollama advisor.

Run with:
    python -m pytest tests/test_advisory.py -v
"""

import asyncio
import json
import sys
from datetime import datetime, timedelta
from pathlib import Path

import httpx
import pytest

# Add project root to path for standalone execution
sys.path.insert(0, str(Path(__file__).parent.parent))

# ruff: noqa: E402
from tradesim.advisory import (
    AdvisoryGateway,
    AdvisoryRequest,
    OllamaAdvisor,
    RateLimiter,
    Recommendation,
    RetryPolicy,
    TradeRecommendation,
    build_analysis_prompt,
    validate_recommendation,
)
from tradesim.analysis import analyze_market
from tradesim.core.errors import AdvisoryUnavailable
from tradesim.core.models import Bar

SAMPLE = {
    "trend": "bullish",
    "confidence": 80,
    "key_levels": {"support": [95], "resistance": [115]},
    "signals": {"ema_pullback": True, "mean_reversion": False, "breakout": False},
    "recommendation": {
        "action": "buy",
        "entry_price": 100,
        "stop_loss": 95,
        "take_profit": 110,
        "risk_percentage": 1,
        "reasoning": "Pullback to EMA20",
        "timeframe": "1Day",
    },
    "patterns": [
        {"name": "bull flag", "confidence": 70, "location": {"start_index": 2, "end_index": 8}}
    ],
}


def make_request(balance: float = 100000.0) -> AdvisoryRequest:
    start = datetime(2024, 1, 1)
    bars = tuple(
        Bar(start + timedelta(days=i), 99.0 + i, 100.0 + i, 98.0 + i, 99.5 + i, 1000.0)
        for i in range(30)
    )
    return AdvisoryRequest(
        symbol="AAPL",
        timeframe="1Day",
        balance=balance,
        open_positions=(),
        technical_signals=analyze_market(bars),
        bars=bars,
    )


def recommendation(**rec_overrides) -> Recommendation:
    rec = {
        "action": "buy",
        "entry_price": 100.0,
        "stop_loss": 95.0,
        "take_profit": 110.0,
        "risk_percentage": 1.0,
    }
    rec.update(rec_overrides)
    return Recommendation(
        trend="bullish", confidence=80.0, recommendation=TradeRecommendation(**rec)
    )


class StaticAdvisor:
    """Fails `failures` times, then returns `result`."""

    def __init__(self, result: Recommendation, failures: int = 0):
        self.result = result
        self.failures = failures
        self.calls = 0

    async def analyze(self, request):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("connection refused")
        return self.result


class SlowAdvisor:
    async def analyze(self, request):
        await asyncio.sleep(1.0)
        return Recommendation.hold()


def no_wait(max_retries: int = 3) -> RetryPolicy:
    return RetryPolicy(max_retries=max_retries, base_delay=0.0)


class TestRecommendationParsing:
    """Tests for Recommendation.from_text / from_dict."""

    def test_parse_json(self):
        rec = Recommendation.from_text(json.dumps(SAMPLE))

        assert rec.action == "buy"
        assert rec.confidence == 80.0
        assert rec.recommendation.entry_price == 100.0
        assert rec.key_levels.support == [95.0]
        assert rec.signals.ema_pullback
        assert rec.patterns[0].name == "bull flag"
        assert rec.patterns[0].end_index == 8
        assert rec.recommendation.risk_reward_ratio == 2.0

    def test_parse_fenced_json(self):
        text = "```json\n" + json.dumps(SAMPLE) + "\n```"
        assert Recommendation.from_text(text).action == "buy"

    def test_round_trip_shape(self):
        rec = Recommendation.from_text(json.dumps(SAMPLE))
        assert rec.to_dict()["recommendation"]["take_profit"] == 110.0
        assert rec.to_dict()["patterns"][0]["location"]["start_index"] == 2

    def test_malformed_json(self):
        with pytest.raises(AdvisoryUnavailable) as exc:
            Recommendation.from_text("I think you should buy")
        assert exc.value.kind == "advisory_unavailable"

    def test_invalid_action(self):
        data = json.loads(json.dumps(SAMPLE))
        data["recommendation"]["action"] = "short"
        with pytest.raises(AdvisoryUnavailable):
            Recommendation.from_dict(data)

    def test_missing_confidence(self):
        data = json.loads(json.dumps(SAMPLE))
        del data["confidence"]
        with pytest.raises(AdvisoryUnavailable):
            Recommendation.from_dict(data)

    def test_non_numeric_price(self):
        data = json.loads(json.dumps(SAMPLE))
        data["recommendation"]["stop_loss"] = "below support"
        with pytest.raises(AdvisoryUnavailable):
            Recommendation.from_dict(data)

    def test_hold(self):
        rec = Recommendation.hold("Nothing to do")
        assert rec.action == "hold"
        assert not rec.recommendation.is_actionable


class TestValidateRecommendation:
    """Tests for validate_recommendation bounds."""

    def test_valid_buy(self):
        assert validate_recommendation(recommendation(), 100000.0).is_valid

    def test_valid_sell(self):
        rec = recommendation(action="sell", stop_loss=105.0, take_profit=90.0)
        assert validate_recommendation(rec, 100000.0).is_valid

    def test_hold_without_prices(self):
        assert validate_recommendation(Recommendation.hold(), 100000.0).is_valid

    def test_confidence_out_of_range(self):
        rec = Recommendation(
            trend="bullish", confidence=150.0, recommendation=TradeRecommendation(action="hold")
        )
        assert not validate_recommendation(rec, 100000.0)

    def test_wrong_price_order(self):
        result = validate_recommendation(recommendation(stop_loss=105.0), 100000.0)
        assert not result
        assert "Buy requires" in result.reason

    def test_missing_prices(self):
        assert not validate_recommendation(recommendation(take_profit=None), 100000.0)

    def test_risk_reward_out_of_range(self):
        assert not validate_recommendation(recommendation(take_profit=125.0), 100000.0)
        assert not validate_recommendation(recommendation(take_profit=102.0), 100000.0)

    def test_risk_percentage_out_of_range(self):
        assert not validate_recommendation(recommendation(risk_percentage=5.0), 100000.0)

    def test_risk_per_unit_exceeds_budget(self):
        """$5 of risk per unit against a $1 budget (1% of $100)."""
        result = validate_recommendation(recommendation(), 100.0)
        assert not result
        assert "exceeds risk budget" in result.reason


class TestRetryPolicy:
    def test_backoff(self):
        policy = RetryPolicy(base_delay=1.0, multiplier=2.0, max_delay=30.0)
        assert [policy.delay(i) for i in range(6)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]


class TestAdvisoryGateway:
    """Tests for retry, timeout and validation in the gateway."""

    def test_success(self):
        advisor = StaticAdvisor(recommendation())
        gateway = AdvisoryGateway(advisor, retry=no_wait())

        rec = asyncio.run(gateway.request(make_request()))

        assert rec.action == "buy"
        assert gateway.calls_made == 1
        assert gateway.failures == 0

    def test_transient_failure_retried(self):
        advisor = StaticAdvisor(recommendation(), failures=2)
        gateway = AdvisoryGateway(advisor, retry=no_wait())

        rec = asyncio.run(gateway.request(make_request()))

        assert rec.action == "buy"
        assert advisor.calls == 3

    def test_gives_up_after_max_retries(self):
        advisor = StaticAdvisor(recommendation(), failures=10)
        gateway = AdvisoryGateway(advisor, retry=no_wait(max_retries=2))

        with pytest.raises(AdvisoryUnavailable) as exc:
            asyncio.run(gateway.request(make_request()))

        assert advisor.calls == 3
        assert exc.value.params["attempts"] == 3
        assert "connection refused" in exc.value.params["last_error"]
        assert gateway.failures == 1

    def test_timeout(self):
        gateway = AdvisoryGateway(SlowAdvisor(), retry=no_wait(max_retries=1), timeout=0.01)

        with pytest.raises(AdvisoryUnavailable):
            asyncio.run(gateway.request(make_request()))

        assert gateway.calls_made == 2

    def test_rejected_recommendation_not_retried(self):
        advisor = StaticAdvisor(recommendation(take_profit=150.0))
        gateway = AdvisoryGateway(advisor, retry=no_wait())

        with pytest.raises(AdvisoryUnavailable) as exc:
            asyncio.run(gateway.request(make_request()))

        assert advisor.calls == 1
        assert "Risk-reward" in exc.value.message

    def test_rate_limiter_spaces_calls(self):
        limiter = RateLimiter(min_interval=0.05)
        gateway = AdvisoryGateway(
            StaticAdvisor(Recommendation.hold()), retry=no_wait(), rate_limiter=limiter
        )

        async def two_calls():
            loop = asyncio.get_running_loop()
            started = loop.time()
            await gateway.request(make_request())
            await gateway.request(make_request())
            return loop.time() - started

        assert asyncio.run(two_calls()) >= 0.04


class TestPrompt:
    def test_prompt_contents(self):
        prompt = build_analysis_prompt(make_request())

        assert "Instrument: AAPL on the 1Day timeframe" in prompt
        assert "Last close: 128.50" in prompt
        assert "Balance: $100,000.00" in prompt
        assert "- Trend: bullish" in prompt
        assert '"recommendation"' in prompt


class TestOllamaAdvisor:
    """Ollama advisor against a mocked HTTP transport."""

    def make_advisor(self, handler) -> OllamaAdvisor:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return OllamaAdvisor(base_url="http://ollama.test", model="mistral", client=client)

    def test_analyze(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "message": {"role": "assistant", "content": json.dumps(SAMPLE)},
                    "prompt_eval_count": 120,
                    "eval_count": 80,
                },
            )

        advisor = self.make_advisor(handler)
        rec = asyncio.run(advisor.analyze(make_request()))

        assert rec.action == "buy"
        assert seen["url"] == "http://ollama.test/api/chat"
        assert seen["body"]["model"] == "mistral"
        assert seen["body"]["format"] == "json"
        assert seen["body"]["stream"] is False
        assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]
        assert advisor.total_tokens == 200

    def test_http_error_raises(self):
        advisor = self.make_advisor(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(advisor.analyze(make_request()))

    def test_garbage_response(self):
        advisor = self.make_advisor(
            lambda request: httpx.Response(200, json={"message": {"content": "not json"}})
        )

        with pytest.raises(AdvisoryUnavailable):
            asyncio.run(advisor.analyze(make_request()))

    def test_is_available(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": []})

        assert asyncio.run(self.make_advisor(handler).is_available())

    def test_gateway_retries_http_errors(self):
        calls = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(503, text="loading model")
            return httpx.Response(200, json={"message": {"content": json.dumps(SAMPLE)}})

        gateway = AdvisoryGateway(self.make_advisor(handler), retry=no_wait())
        rec = asyncio.run(gateway.request(make_request()))

        assert rec.action == "buy"
        assert calls["n"] == 2
