"""Historical and live market data access."""

from trade_journal.market_data.cache import TTLCache
from trade_journal.market_data.gateway import MarketDataGateway, bar_for_minute, closest_bar, day_bounds, minute_floor
from trade_journal.market_data.models import PriceBar, PriceRange, ProviderStatus, Quote, QuoteLookup, RangeLookup
from trade_journal.market_data.providers import (
    FinnhubProvider,
    InMemoryProvider,
    MarketDataProvider,
    PolygonProvider,
)
from trade_journal.market_data.throttle import RateLimiter, ThrottleDecision

__all__ = [
    "FinnhubProvider",
    "InMemoryProvider",
    "MarketDataGateway",
    "MarketDataProvider",
    "PolygonProvider",
    "PriceBar",
    "PriceRange",
    "ProviderStatus",
    "Quote",
    "QuoteLookup",
    "RangeLookup",
    "RateLimiter",
    "TTLCache",
    "ThrottleDecision",
    "bar_for_minute",
    "closest_bar",
    "day_bounds",
    "minute_floor",
]
