"""Symbol identity models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AssetClass(str, Enum):
    FOREX = "forex"
    CRYPTO = "crypto"
    STOCK = "stock"
    METAL = "metal"
    INDEX = "index"
    COMMODITY = "commodity"
    UNSUPPORTED = "unsupported"

    @property
    def uses_pips(self) -> bool:
        return self == AssetClass.FOREX

    @property
    def uses_ticks(self) -> bool:
        return self in {AssetClass.METAL, AssetClass.INDEX, AssetClass.COMMODITY}


@dataclass(frozen=True)
class NormalizedSymbol:
    original: str
    asset_class: AssetClass
    is_supported: bool
    primary_ticker: Optional[str] = None
    secondary_ticker: Optional[str] = None
    base: Optional[str] = None
    quote: Optional[str] = None
    pip_size: float = 0.01
    reason: Optional[str] = None

    @property
    def canonical(self) -> Optional[str]:
        return self.primary_ticker or self.secondary_ticker


@dataclass(frozen=True)
class InstrumentSpec:
    asset_class: AssetClass
    pip_size: Optional[float] = None
    pip_value: Optional[float] = None
    tick_size: Optional[float] = None
    tick_value: Optional[float] = None

    @property
    def increment(self) -> float:
        if self.pip_size is not None:
            return self.pip_size
        if self.tick_size is not None:
            return self.tick_size
        return 0.01
