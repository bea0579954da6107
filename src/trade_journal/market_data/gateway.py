"""Market data gateway with ordered provider fallback and caching."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Sequence, TypeVar

from trade_journal.errors import ProviderEmpty, ProviderError, UnsupportedSymbol
from trade_journal.market_data.cache import TTLCache
from trade_journal.market_data.models import PriceBar, PriceRange, ProviderStatus, Quote, QuoteLookup, RangeLookup
from trade_journal.market_data.providers import MarketDataProvider
from trade_journal.symbols.models import NormalizedSymbol

logger = logging.getLogger(__name__)

BAR_RESOLUTION = timedelta(minutes=1)
FETCH_LOCK_STRIPES = 64

T = TypeVar("T")


def minute_floor(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc).replace(second=0, microsecond=0)


def day_bounds(instant: datetime) -> tuple[datetime, datetime]:
    start = minute_floor(instant).replace(hour=0, minute=0)
    return start, start + timedelta(days=1)


def closest_bar(bars: Sequence[PriceBar], instant: datetime) -> Optional[PriceBar]:
    if not bars:
        return None
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    best = bars[0]
    best_diff = abs((best.time - instant).total_seconds())
    for bar in bars[1:]:
        diff = abs((bar.time - instant).total_seconds())
        if diff < best_diff:
            best, best_diff = bar, diff
    return best


def bar_for_minute(
    bars: Sequence[PriceBar],
    minute: datetime,
    max_distance: timedelta = BAR_RESOLUTION,
) -> Optional[PriceBar]:
    """The bar opening at ``minute``, else its nearest neighbour within ``max_distance``."""
    bar = closest_bar(bars, minute)
    if bar is None or abs(bar.time - minute) > max_distance:
        return None
    return bar


class MarketDataGateway:
    """Resolve historical minute ranges and live quotes across providers.

    Providers are tried in order. Each range lookup fetches the whole UTC
    day of one-minute bars and caches it, so later lookups on the same day
    reuse the series. Concurrent misses on the same provider, ticker and
    day wait for the first fetch rather than issuing their own.
    """

    def __init__(
        self,
        providers: Sequence[MarketDataProvider],
        range_cache: Optional[TTLCache] = None,
        live_cache: Optional[TTLCache] = None,
        series_cache: Optional[TTLCache] = None,
        quote_cache: Optional[TTLCache] = None,
        max_attempts: int = 2,
        retry_backoff_seconds: float = 5.0,
        sleep: Optional[Callable[[float], None]] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not providers:
            raise ValueError("At least one market data provider is required")
        self.providers = list(providers)
        self.range_cache = range_cache if range_cache is not None else TTLCache(ttl_seconds=3600.0)
        self.live_cache = live_cache if live_cache is not None else TTLCache(ttl_seconds=15.0)
        self.series_cache = series_cache if series_cache is not None else TTLCache(ttl_seconds=300.0)
        self.quote_cache = quote_cache if quote_cache is not None else TTLCache(ttl_seconds=15.0)
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff_seconds = retry_backoff_seconds
        self._sleep = sleep or time.sleep
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._fetch_locks = tuple(threading.Lock() for _ in range(FETCH_LOCK_STRIPES))

    @property
    def provider_names(self) -> list[str]:
        return [provider.name for provider in self.providers]

    def get_range(self, symbol: NormalizedSymbol, instant: datetime) -> RangeLookup:
        statuses = {provider.name: ProviderStatus.NOT_ATTEMPTED for provider in self.providers}
        if not symbol.is_supported:
            return RangeLookup(range=None, provider="none", statuses=statuses)

        minute = minute_floor(instant)
        for provider in self.providers:
            ticker = provider.ticker_for(symbol)
            if not ticker:
                continue
            try:
                price_range = self._provider_range(provider, ticker, symbol, minute)
            except ProviderError as exc:
                logger.warning("%s failed for %s: %s", provider.name, ticker, exc)
                statuses[provider.name] = ProviderStatus.ERROR
                continue
            if price_range is None:
                logger.info("%s has no bar for %s at %s", provider.name, ticker, minute.isoformat())
                statuses[provider.name] = ProviderStatus.EMPTY
                continue
            statuses[provider.name] = ProviderStatus.SUCCESS
            return RangeLookup(range=price_range, provider=provider.name, statuses=statuses)

        return RangeLookup(range=None, provider="none", statuses=statuses)

    def require_range(self, symbol: NormalizedSymbol, instant: datetime) -> PriceRange:
        """Like get_range, but raise when no provider produced a range."""
        if not symbol.is_supported:
            raise UnsupportedSymbol(symbol.reason or "Symbol not supported", symbol=symbol.original)
        lookup = self.get_range(symbol, instant)
        if lookup.range is not None:
            return lookup.range
        statuses = {name: status.value for name, status in lookup.statuses.items()}
        if ProviderStatus.ERROR in lookup.statuses.values():
            raise ProviderError(f"All providers failed for {symbol.original}", statuses=statuses)
        raise ProviderEmpty(f"No market data for {symbol.original}", statuses=statuses)

    def get_quote(self, symbol: NormalizedSymbol) -> QuoteLookup:
        statuses = {provider.name: ProviderStatus.NOT_ATTEMPTED for provider in self.providers}
        if not symbol.is_supported:
            return QuoteLookup(quote=None, provider="none", statuses=statuses)

        for provider in self.providers:
            ticker = provider.ticker_for(symbol)
            if not ticker:
                continue
            try:
                quote = self._provider_quote(provider, ticker, symbol)
            except ProviderError as exc:
                logger.warning("%s quote failed for %s: %s", provider.name, ticker, exc)
                statuses[provider.name] = ProviderStatus.ERROR
                continue
            if quote is None:
                statuses[provider.name] = ProviderStatus.EMPTY
                continue
            statuses[provider.name] = ProviderStatus.SUCCESS
            return QuoteLookup(quote=quote, provider=provider.name, statuses=statuses)

        return QuoteLookup(quote=None, provider="none", statuses=statuses)

    def get_quotes(self, symbols: Iterable[NormalizedSymbol]) -> dict[str, QuoteLookup]:
        """Quotes keyed by the caller's original symbol; provider limiters pace the calls."""
        return {symbol.original: self.get_quote(symbol) for symbol in symbols}

    def clear_cache(self) -> None:
        self.range_cache.clear()
        self.live_cache.clear()
        self.series_cache.clear()
        self.quote_cache.clear()

    def _fetch_lock(self, key: tuple) -> threading.Lock:
        return self._fetch_locks[hash(key) % len(self._fetch_locks)]

    def _cached_range(self, key: tuple) -> Optional[PriceRange]:
        cached = self.range_cache.get(key) or self.live_cache.get(key)
        if cached is not None:
            logger.debug("range cache hit %s", key)
        return cached

    def _provider_range(
        self,
        provider: MarketDataProvider,
        ticker: str,
        symbol: NormalizedSymbol,
        minute: datetime,
    ) -> Optional[PriceRange]:
        key = (provider.name, ticker, minute.isoformat())
        cached = self._cached_range(key)
        if cached is not None:
            return cached
        with self._fetch_lock((provider.name, ticker, minute.date().isoformat())):
            cached = self._cached_range(key)
            if cached is not None:
                return cached
            bar = bar_for_minute(self._fetch_day(provider, ticker, symbol, minute), minute)
            if bar is None:
                return None
            price_range = PriceRange.from_bar(bar)
            self._store(key, minute, price_range)
            return price_range

    def _store(self, key: tuple, minute: datetime, price_range: PriceRange) -> None:
        latest = minute
        if price_range.time is not None and price_range.time > latest:
            latest = price_range.time
        if latest + BAR_RESOLUTION > self._now():
            self.live_cache.set(key, price_range)
        else:
            self.range_cache.set(key, price_range)

    def _fetch_day(
        self,
        provider: MarketDataProvider,
        ticker: str,
        symbol: NormalizedSymbol,
        minute: datetime,
    ) -> list[PriceBar]:
        start, end = day_bounds(minute)
        series_key = (provider.name, ticker, start.date().isoformat())
        cached = self.series_cache.get(series_key)
        if cached is not None:
            fetched_at, bars = cached
            # A series only answers for minutes that had closed when it was fetched.
            if minute + BAR_RESOLUTION <= fetched_at:
                return bars
            logger.debug("series %s fetched at %s predates %s", series_key, fetched_at, minute)

        fetched_at = self._now()
        bars = self._call(provider, lambda: provider.fetch_bars(ticker, symbol.asset_class, start, end))
        if bars:
            self.series_cache.set(series_key, (fetched_at, bars))
        return bars

    def _provider_quote(
        self,
        provider: MarketDataProvider,
        ticker: str,
        symbol: NormalizedSymbol,
    ) -> Optional[Quote]:
        key = (provider.name, ticker)
        cached = self.quote_cache.get(key)
        if cached is not None:
            return cached
        with self._fetch_lock(("quote",) + key):
            cached = self.quote_cache.get(key)
            if cached is not None:
                return cached
            quote = self._call(provider, lambda: provider.fetch_quote(ticker, symbol.asset_class))
            if quote is not None:
                self.quote_cache.set(key, quote)
            return quote

    def _call(self, provider: MarketDataProvider, request: Callable[[], T]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            try:
                return request()
            except ProviderError as exc:
                error = exc
            except Exception as exc:
                error = ProviderError(f"{provider.name} unexpected failure: {exc}", provider=provider.name)
            if attempt == self.max_attempts:
                raise error
            logger.debug("%s attempt %d failed: %s", provider.name, attempt, error)
            if self.retry_backoff_seconds > 0:
                self._sleep(self.retry_backoff_seconds)
        raise ProviderError(f"{provider.name} was not attempted", provider=provider.name)
