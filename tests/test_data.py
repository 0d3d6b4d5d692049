#!/usr/bin/env python3
"""
Tests for market data sources (CSV files and the Alpaca client).

Run with:
    python -m pytest tests/test_data.py -v
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

# Add project root to path for standalone execution
sys.path.insert(0, str(Path(__file__).parent.parent))

# ruff: noqa: E402
from tradesim.core.errors import DataUnavailable
from tradesim.core.models import Bar
from tradesim.data import (
    AlpacaMarketData,
    CsvBarSource,
    filter_window,
    normalize_timeframe,
    save_csv,
)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_bars(count: int) -> list[Bar]:
    return [
        Bar(START + timedelta(days=i), 100.0 + i, 101.0 + i, 99.0 + i, 100.5 + i, 1000.0 * i)
        for i in range(count)
    ]


def alpaca_bar(day: int) -> dict:
    return {
        "t": (START + timedelta(days=day)).isoformat().replace("+00:00", "Z"),
        "o": 100 + day,
        "h": 101 + day,
        "l": 99 + day,
        "c": 100.5 + day,
        "v": 5000,
    }


class TestFilterWindow:
    def test_inclusive_bounds(self):
        bars = make_bars(10)
        window = filter_window(bars, bars[2].timestamp, bars[5].timestamp)
        assert [b.timestamp for b in window] == [b.timestamp for b in bars[2:6]]

    def test_naive_bounds_treated_as_utc(self):
        bars = make_bars(10)
        window = filter_window(bars, datetime(2024, 1, 3), None)
        assert window[0].timestamp == bars[2].timestamp
        assert len(window) == 8

    def test_open_bounds(self):
        assert len(filter_window(make_bars(4), None, None)) == 4
        assert filter_window([], START, None) == []


class TestCsvBarSource:
    """Tests for CsvBarSource."""

    def test_round_trip(self, tmp_path):
        path = save_csv(make_bars(5), tmp_path / "data" / "TEST_1Day.csv")
        source = CsvBarSource(path)

        assert source.bar_count == 5
        assert source.start_time == START
        assert list(source.stream()) == make_bars(5)
        assert "5 bars" in repr(source)

    def test_rows_sorted(self, tmp_path):
        path = tmp_path / "unsorted.csv"
        path.write_text(
            "timestamp,open,high,low,close,volume\n"
            "2024-01-02T00:00:00Z,2,3,1,2.5,10\n"
            "2024-01-01T00:00:00Z,1,2,0.5,1.5,10\n"
        )
        bars = CsvBarSource(path).get_bars("TEST", "1Day", limit=10)
        assert [b.close for b in bars] == [1.5, 2.5]

    def test_get_bars_window_and_limit(self, tmp_path):
        path = save_csv(make_bars(10), tmp_path / "bars.csv")
        source = CsvBarSource(path)

        bars = source.get_bars("TEST", "1Day", limit=3, start=START, end=START + timedelta(days=6))
        # Most recent 3 bars of the 7 inside the window
        assert [b.timestamp.day for b in bars] == [5, 6, 7]

    def test_missing_file(self, tmp_path):
        with pytest.raises(DataUnavailable):
            CsvBarSource(tmp_path / "nope.csv")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.csv"
        path.write_text("timestamp,open,high,low,close,volume\n")
        with pytest.raises(DataUnavailable):
            CsvBarSource(path)

    def test_malformed_row(self, tmp_path):
        path = tmp_path / "bad.csv"
        path.write_text("timestamp,open,high,low,close,volume\n2024-01-01,abc,1,1,1,1\n")
        with pytest.raises(DataUnavailable) as exc:
            CsvBarSource(path)
        assert exc.value.params["line"] == 2

    def test_window_without_bars(self, tmp_path):
        source = CsvBarSource(save_csv(make_bars(3), tmp_path / "bars.csv"))
        with pytest.raises(DataUnavailable):
            source.get_bars("TEST", "1Day", limit=10, start=datetime(2030, 1, 1))


class TestAlpacaMarketData:
    """Alpaca client against a mocked HTTP transport."""

    def make_client(self, handler) -> AlpacaMarketData:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return AlpacaMarketData("key", "secret", base_url="https://alpaca.test", client=client)

    def test_normalize_timeframe(self):
        assert normalize_timeframe("1d") == "1Day"
        assert normalize_timeframe("1Hour") == "1Hour"
        with pytest.raises(ValueError):
            normalize_timeframe("3w")

    def test_pagination(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if "page_token" not in request.url.params:
                return httpx.Response(
                    200, json={"bars": [alpaca_bar(1), alpaca_bar(0)], "next_page_token": "p2"}
                )
            return httpx.Response(200, json={"bars": [alpaca_bar(2)], "next_page_token": None})

        data = self.make_client(handler)
        bars = data.get_bars("AAPL", "1d", limit=10, start=START, end=START + timedelta(days=5))

        assert [b.close for b in bars] == [100.5, 101.5, 102.5]
        assert bars[0].timestamp == START
        assert len(requests) == 2
        first, second = requests
        assert first.url.path == "/v2/stocks/AAPL/bars"
        assert first.url.params["timeframe"] == "1Day"
        assert first.url.params["limit"] == "10"
        assert first.headers["APCA-API-KEY-ID"] == "key"
        assert second.url.params["page_token"] == "p2"
        assert second.url.params["limit"] == "8"

    def test_limit_stops_paging(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(
                200, json={"bars": [alpaca_bar(0), alpaca_bar(1)], "next_page_token": "more"}
            )

        bars = self.make_client(handler).get_bars("AAPL", "1Day", limit=2, start=START)
        assert len(bars) == 2
        assert len(calls) == 1

    def test_http_error(self):
        data = self.make_client(lambda request: httpx.Response(403, json={"message": "forbidden"}))
        with pytest.raises(DataUnavailable) as exc:
            data.get_bars("AAPL", "1Day", limit=10, start=START)
        assert exc.value.kind == "data_unavailable"

    def test_no_bars(self):
        data = self.make_client(lambda request: httpx.Response(200, json={"bars": None}))
        with pytest.raises(DataUnavailable):
            data.get_bars("AAPL", "1Day", limit=10, start=START)

    def test_naive_bounds_sent_as_utc(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(200, json={"bars": [alpaca_bar(0)], "next_page_token": None})

        data = self.make_client(handler)
        data.get_bars("AAPL", "1Day", 10, start=datetime(2024, 1, 1), end=datetime(2024, 6, 30))

        assert seen["start"] == "2024-01-01T00:00:00+00:00"
        assert seen["end"] == "2024-06-30T00:00:00+00:00"

    def test_aware_bounds_converted_to_utc(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(200, json={"bars": [alpaca_bar(0)], "next_page_token": None})

        new_york = timezone(timedelta(hours=-5))
        data = self.make_client(handler)
        data.get_bars("AAPL", "1Day", 10, start=datetime(2024, 1, 1, 9, 30, tzinfo=new_york))

        assert seen["start"] == "2024-01-01T14:30:00+00:00"
        assert seen["end"].endswith("+00:00")
