"""Verification inputs, per-leg results and batch summaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from trade_journal.market_data.models import ProviderStatus


class LegStatus(str, Enum):
    REALISTIC = "realistic"
    IMPOSSIBLE_LOW = "impossible_low"
    IMPOSSIBLE_HIGH = "impossible_high"
    SUSPICIOUS_PRECISION = "suspicious_precision"
    UNKNOWN = "unknown"

    @property
    def is_impossible(self) -> bool:
        return self in {LegStatus.IMPOSSIBLE_LOW, LegStatus.IMPOSSIBLE_HIGH}


class LegSide(str, Enum):
    ENTRY = "entry"
    EXIT = "exit"


@dataclass(frozen=True)
class TradeToVerify:
    id: str
    symbol: str
    side: str
    entry_price: float
    entry_time: datetime
    exit_price: Optional[float] = None
    exit_time: Optional[datetime] = None
    quantity: Optional[float] = None
    instrument_type: Optional[str] = None

    @property
    def has_exit(self) -> bool:
        return self.exit_price is not None and self.exit_time is not None


@dataclass(frozen=True)
class LegVerification:
    side: LegSide
    fill_price: float
    timestamp: datetime
    status: LegStatus
    score: float
    notes: str
    provider: str = "none"
    market_low: Optional[float] = None
    market_high: Optional[float] = None
    market_open: Optional[float] = None
    market_close: Optional[float] = None
    deviation: Optional[float] = None


@dataclass(frozen=True)
class TradeVerificationResult:
    trade_id: str
    verified: bool
    score: float
    entry: LegVerification
    exit: Optional[LegVerification]
    suspicious_flag: bool
    impossible_flag: bool
    original_symbol: str
    normalized_symbol: Optional[str]
    asset_class: str
    provider: str
    provider_statuses: dict[str, ProviderStatus] = field(default_factory=dict)
    unsupported_reason: Optional[str] = None
    notes: str = ""

    @property
    def legs(self) -> list[LegVerification]:
        return [self.entry] if self.exit is None else [self.entry, self.exit]

    @property
    def has_unknown_leg(self) -> bool:
        return any(leg.status == LegStatus.UNKNOWN for leg in self.legs)


@dataclass(frozen=True)
class VerificationSummary:
    total: int
    verified: int
    impossible: int
    suspicious: int
    unknown: int
    average_score: float
    verification_rate: float
    verified_by_provider: dict[str, int] = field(default_factory=dict)
