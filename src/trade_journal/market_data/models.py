"""Market data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class ProviderStatus(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    ERROR = "error"
    NOT_ATTEMPTED = "not_attempted"


@dataclass(frozen=True)
class PriceBar:
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class PriceRange:
    low: float
    high: float
    open: float
    close: float
    time: Optional[datetime] = None

    @property
    def midpoint(self) -> float:
        return (self.low + self.high) / 2

    @classmethod
    def from_bar(cls, bar: PriceBar) -> "PriceRange":
        return cls(low=bar.low, high=bar.high, open=bar.open, close=bar.close, time=bar.time)


@dataclass(frozen=True)
class RangeLookup:
    range: Optional[PriceRange]
    provider: str = "none"
    statuses: dict[str, ProviderStatus] = field(default_factory=dict)

    @property
    def found(self) -> bool:
        return self.range is not None


@dataclass(frozen=True)
class Quote:
    """Latest traded or quoted price for a ticker."""

    price: float
    time: Optional[datetime] = None
    change: Optional[float] = None
    change_pct: Optional[float] = None


@dataclass(frozen=True)
class QuoteLookup:
    quote: Optional[Quote]
    provider: str = "none"
    statuses: dict[str, ProviderStatus] = field(default_factory=dict)

    @property
    def found(self) -> bool:
        return self.quote is not None
