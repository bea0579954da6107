"""Historical bar and live quote provider adapters."""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

import requests

from trade_journal.errors import ProviderError
from trade_journal.market_data.models import PriceBar, Quote
from trade_journal.market_data.throttle import RateLimiter
from trade_journal.symbols.models import AssetClass, NormalizedSymbol

logger = logging.getLogger(__name__)


class MarketDataProvider:
    name = "provider"
    resolution = "1"

    def ticker_for(self, symbol: NormalizedSymbol) -> Optional[str]:  # pragma: no cover - interface
        raise NotImplementedError

    def fetch_bars(
        self,
        ticker: str,
        asset_class: AssetClass,
        start: datetime,
        end: datetime,
    ) -> list[PriceBar]:  # pragma: no cover - interface
        raise NotImplementedError

    def fetch_quote(self, ticker: str, asset_class: AssetClass) -> Optional[Quote]:  # pragma: no cover - interface
        """Latest price for ``ticker``; ``None`` when the provider has no quote."""
        raise NotImplementedError


def _epoch_ms_to_dt(value: float) -> datetime:
    return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)


def _epoch_ns_to_dt(value: float) -> datetime:
    return datetime.fromtimestamp(float(value) / 1_000_000_000.0, tz=timezone.utc)


class _HttpProvider(MarketDataProvider):
    api_key_env = ""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = 10.0,
        rate_limiter: Optional[RateLimiter] = None,
    ) -> None:
        self.api_key = api_key or os.environ.get(self.api_key_env)
        if base_url:
            self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds
        self.rate_limiter = rate_limiter

    def _get(self, url: str, params: dict[str, Any]) -> Any:
        if not self.api_key:
            raise ProviderError(f"{self.name} API key not configured", provider=self.name)
        if self.rate_limiter is not None:
            waited = self.rate_limiter.acquire()
            if waited > 0:
                logger.debug("%s rate limited, waited %.2fs", self.name, waited)
        try:
            response = self.session.get(url, params=params, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            raise ProviderError(f"{self.name} request failed: {exc}", provider=self.name) from exc
        if response.status_code != 200:
            raise ProviderError(f"{self.name} HTTP {response.status_code}", provider=self.name)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"{self.name} returned invalid JSON", provider=self.name) from exc


class PolygonProvider(_HttpProvider):
    """Polygon.io minute aggregates. Free tier allows five calls per minute."""

    name = "polygon"
    api_key_env = "POLYGON_API_KEY"
    base_url = "https://api.polygon.io"

    def ticker_for(self, symbol: NormalizedSymbol) -> Optional[str]:
        return symbol.primary_ticker

    def fetch_bars(self, ticker, asset_class, start, end) -> list[PriceBar]:
        url = (
            f"{self.base_url}/v2/aggs/ticker/{ticker}/range/1/minute/"
            f"{start.date().isoformat()}/{(end - timedelta(microseconds=1)).date().isoformat()}"
        )
        payload = self._get(url, {"adjusted": "true", "sort": "asc", "limit": 50000, "apiKey": self.api_key})
        if not isinstance(payload, dict):
            raise ProviderError("polygon returned unexpected payload", provider=self.name)
        if str(payload.get("status", "")).upper() == "ERROR":
            raise ProviderError(payload.get("error") or "polygon error status", provider=self.name)
        return [
            PriceBar(
                time=_epoch_ms_to_dt(row["t"]),
                open=float(row["o"]),
                high=float(row["h"]),
                low=float(row["l"]),
                close=float(row["c"]),
                volume=float(row.get("v", 0.0) or 0.0),
            )
            for row in payload.get("results") or []
        ]

    def fetch_quote(self, ticker, asset_class) -> Optional[Quote]:
        # Last-trade covers equities only.
        if asset_class != AssetClass.STOCK:
            return None
        payload = self._get(f"{self.base_url}/v2/last/trade/{ticker}", {"apiKey": self.api_key})
        if not isinstance(payload, dict):
            raise ProviderError("polygon returned unexpected payload", provider=self.name)
        if str(payload.get("status", "")).upper() == "ERROR":
            raise ProviderError(payload.get("error") or "polygon error status", provider=self.name)
        result = payload.get("results")
        if not result or result.get("p") is None:
            return None
        return Quote(
            price=float(result["p"]),
            time=_epoch_ns_to_dt(result["t"]) if result.get("t") else None,
        )

class FinnhubProvider(_HttpProvider):
    """Finnhub candles, routed to the stock, forex or crypto endpoint."""

    name = "finnhub"
    api_key_env = "FINNHUB_API_KEY"
    base_url = "https://finnhub.io/api/v1"

    _ENDPOINTS = {
        AssetClass.FOREX: "forex/candle",
        AssetClass.METAL: "forex/candle",
        AssetClass.COMMODITY: "forex/candle",
        AssetClass.CRYPTO: "crypto/candle",
    }

    def ticker_for(self, symbol: NormalizedSymbol) -> Optional[str]:
        return symbol.secondary_ticker

    def fetch_bars(self, ticker, asset_class, start, end) -> list[PriceBar]:
        endpoint = self._ENDPOINTS.get(asset_class, "stock/candle")
        payload = self._get(
            f"{self.base_url}/{endpoint}",
            {
                "symbol": ticker,
                "resolution": self.resolution,
                "from": int(start.timestamp()),
                "to": int(end.timestamp()),
                "token": self.api_key,
            },
        )
        if not isinstance(payload, dict):
            raise ProviderError("finnhub returned unexpected payload", provider=self.name)
        if payload.get("error"):
            raise ProviderError(str(payload["error"]), provider=self.name)
        if payload.get("s") != "ok" or not payload.get("t"):
            return []
        bars: list[PriceBar] = []
        volumes = payload.get("v") or [0.0] * len(payload["t"])
        for ts, o, h, l, c, v in zip(payload["t"], payload["o"], payload["h"], payload["l"], payload["c"], volumes):
            bars.append(
                PriceBar(
                    time=datetime.fromtimestamp(int(ts), tz=timezone.utc),
                    open=float(o),
                    high=float(h),
                    low=float(l),
                    close=float(c),
                    volume=float(v or 0.0),
                )
            )
        return bars

    def fetch_quote(self, ticker, asset_class) -> Optional[Quote]:
        payload = self._get(f"{self.base_url}/quote", {"symbol": ticker, "token": self.api_key})
        if not isinstance(payload, dict):
            raise ProviderError("finnhub returned unexpected payload", provider=self.name)
        if payload.get("error"):
            raise ProviderError(str(payload["error"]), provider=self.name)
        # c == 0 and pc == 0 is how Finnhub reports an unknown symbol.
        if not payload.get("c") and not payload.get("pc"):
            return None
        return Quote(
            price=float(payload["c"]),
            time=datetime.fromtimestamp(int(payload["t"]), tz=timezone.utc) if payload.get("t") else None,
            change=float(payload["d"]) if payload.get("d") is not None else None,
            change_pct=float(payload["dp"]) if payload.get("dp") is not None else None,
        )

class InMemoryProvider(MarketDataProvider):
    """Serves preloaded bars and quotes; used for offline replays and tests."""

    def __init__(
        self,
        name: str = "memory",
        bars: Optional[dict[str, Iterable[PriceBar]]] = None,
        use_secondary_ticker: bool = False,
        quotes: Optional[dict[str, Quote]] = None,
    ) -> None:
        self.name = name
        self.use_secondary_ticker = use_secondary_ticker
        self._bars: dict[str, list[PriceBar]] = {}
        self.quotes: dict[str, Quote] = dict(quotes or {})
        self.calls: list[tuple[str, datetime, datetime]] = []
        self.quote_calls: list[str] = []
        for ticker, series in (bars or {}).items():
            self.add_bars(ticker, series)

    def add_bars(self, ticker: str, bars: Iterable[PriceBar]) -> None:
        self._bars.setdefault(ticker, []).extend(bars)
        self._bars[ticker].sort(key=lambda bar: bar.time)

    def ticker_for(self, symbol: NormalizedSymbol) -> Optional[str]:
        return symbol.secondary_ticker if self.use_secondary_ticker else symbol.primary_ticker

    def fetch_bars(self, ticker, asset_class, start, end) -> list[PriceBar]:
        self.calls.append((ticker, start, end))
        return [bar for bar in self._bars.get(ticker, []) if start <= bar.time < end]

    def fetch_quote(self, ticker, asset_class) -> Optional[Quote]:
        self.quote_calls.append(ticker)
        return self.quotes.get(ticker)
