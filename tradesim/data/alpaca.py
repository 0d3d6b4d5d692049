"""
Alpaca Market Data client.

Downloads historical bars from Alpaca's v2 stock bars endpoint.
"""

import logging
from datetime import datetime, timedelta, timezone

import httpx

from tradesim.core.errors import DataUnavailable
from tradesim.core.models import Bar

logger = logging.getLogger(__name__)

ALPACA_DATA_URL = "https://data.alpaca.markets"

# Maximum bars per request (Alpaca limit)
MAX_LIMIT = 10000

# Accepted timeframe spellings -> Alpaca timeframe
TIMEFRAMES = {
    "1m": "1Min",
    "1min": "1Min",
    "5m": "5Min",
    "5min": "5Min",
    "15m": "15Min",
    "15min": "15Min",
    "1h": "1Hour",
    "1hour": "1Hour",
    "4h": "4Hour",
    "4hour": "4Hour",
    "1d": "1Day",
    "1day": "1Day",
}

# Duration of one bar, used to derive a start date from a bar count
TIMEFRAME_SPAN = {
    "1Min": timedelta(minutes=1),
    "5Min": timedelta(minutes=5),
    "15Min": timedelta(minutes=15),
    "1Hour": timedelta(hours=1),
    "4Hour": timedelta(hours=4),
    "1Day": timedelta(days=1),
}


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime; aware values are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_timeframe(timeframe: str) -> str:
    """Map "1h", "1Hour", "1hour" ... to Alpaca's spelling."""
    key = timeframe.lower()
    if key not in TIMEFRAMES:
        raise ValueError(f"Unsupported timeframe: {timeframe}")
    return TIMEFRAMES[key]


class AlpacaMarketData:
    """
    Fetches historical bars from Alpaca.

    Usage:
        data = AlpacaMarketData(key_id, secret_key)
        bars = data.get_bars("AAPL", "1Day", limit=200)
    """

    def __init__(
        self,
        key_id: str,
        secret_key: str,
        base_url: str = ALPACA_DATA_URL,
        feed: str = "iex",
        client: httpx.Client | None = None,
    ):
        """
        Initialize the client.

        Args:
            key_id: APCA-API-KEY-ID
            secret_key: APCA-API-SECRET-KEY
            base_url: Market data host
            feed: Data feed ("iex" for free accounts, "sip" for paid)
            client: Optional preconfigured httpx client
        """
        self.base_url = base_url.rstrip("/")
        self.feed = feed
        self.client = client or httpx.Client(timeout=30.0)
        self._headers = {
            "APCA-API-KEY-ID": key_id,
            "APCA-API-SECRET-KEY": secret_key,
        }

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    @staticmethod
    def _parse_bar(data: dict) -> Bar:
        return Bar(
            timestamp=datetime.fromisoformat(data["t"].replace("Z", "+00:00")),
            open=float(data["o"]),
            high=float(data["h"]),
            low=float(data["l"]),
            close=float(data["c"]),
            volume=float(data.get("v", 0)),
        )

    def get_bars(
        self,
        symbol: str,
        timeframe: str,
        limit: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Bar]:
        """
        Fetch historical bars.

        Without a start date, the window reaches back `limit` bars from end.
        Pages are followed until `limit` bars are collected.

        Args:
            symbol: Ticker (e.g., "AAPL")
            timeframe: Bar size ("1Min", "1Hour", "1Day", or "1m"/"1h"/"1d")
            limit: Maximum bars to return
            start: Window start (inclusive)
            end: Window end (defaults to now)

        Returns:
            Bars sorted by timestamp ascending

        Raises:
            DataUnavailable: HTTP failure or no bars in the window
        """
        alpaca_timeframe = normalize_timeframe(timeframe)
        # Alpaca expects RFC-3339 with an offset; naive bounds are taken as UTC
        end = as_utc(end) if end else datetime.now(timezone.utc)
        if start is None:
            start = end - TIMEFRAME_SPAN[alpaca_timeframe] * limit
        start = as_utc(start)

        url = f"{self.base_url}/v2/stocks/{symbol}/bars"
        bars: list[Bar] = []
        page_token: str | None = None

        while len(bars) < limit:
            params: dict[str, str | int] = {
                "timeframe": alpaca_timeframe,
                "start": start.isoformat(),
                "end": end.isoformat(),
                "limit": min(limit - len(bars), MAX_LIMIT),
                "feed": self.feed,
                "adjustment": "raw",
            }
            if page_token:
                params["page_token"] = page_token

            try:
                response = self.client.get(url, params=params, headers=self._headers)
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(f"Alpaca request failed for {symbol}: {e}")
                raise DataUnavailable(
                    f"Alpaca request failed: {e}", symbol=symbol, timeframe=alpaca_timeframe
                ) from e

            data = response.json()
            bars.extend(self._parse_bar(item) for item in data.get("bars") or [])

            page_token = data.get("next_page_token")
            if not page_token:
                break

        if not bars:
            raise DataUnavailable(
                f"No bars returned for {symbol} ({alpaca_timeframe})",
                symbol=symbol,
                timeframe=alpaca_timeframe,
                start=start.isoformat(),
                end=end.isoformat(),
            )

        bars.sort(key=lambda bar: bar.timestamp)
        logger.info(f"Fetched {len(bars)} {alpaca_timeframe} bars for {symbol}")
        return bars[:limit]
