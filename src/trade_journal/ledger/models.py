"""Ledger data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from trade_journal.errors import InvalidRequest
from trade_journal.symbols.models import AssetClass, InstrumentSpec


class Side(str, Enum):
    LONG = "long"
    SHORT = "short"

    @classmethod
    def parse(cls, value: object) -> "Side":
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        if text in {"long", "buy"}:
            return cls.LONG
        if text in {"short", "sell"}:
            return cls.SHORT
        raise InvalidRequest(f"side must be buy/sell/long/short, got {value!r}")

    @property
    def is_long(self) -> bool:
        return self == Side.LONG


@dataclass(frozen=True)
class Lot:
    id: str
    owner: str
    symbol: str
    side: Side
    quantity: float
    entry_price: float
    entry_time: datetime
    asset_class: AssetClass = AssetClass.STOCK
    pip_size: Optional[float] = None
    pip_value: Optional[float] = None
    tick_size: Optional[float] = None
    tick_value: Optional[float] = None
    is_open: bool = True
    exit_price: Optional[float] = None
    exit_time: Optional[datetime] = None
    pnl: Optional[float] = None
    pnl_pct: Optional[float] = None
    pips: Optional[float] = None
    ticks: Optional[float] = None
    parent_id: Optional[str] = None

    @property
    def spec(self) -> InstrumentSpec:
        return InstrumentSpec(
            asset_class=self.asset_class,
            pip_size=self.pip_size,
            pip_value=self.pip_value,
            tick_size=self.tick_size,
            tick_value=self.tick_value,
        )

    @property
    def cost_basis(self) -> float:
        return self.entry_price * self.quantity


@dataclass(frozen=True)
class EntryEvent:
    owner: str
    symbol: str
    side: Side
    price: float
    quantity: float
    timestamp: datetime
    instrument_type: Optional[str] = None


@dataclass(frozen=True)
class ExitEvent:
    owner: str
    symbol: str
    price: float
    quantity: float
    timestamp: datetime


@dataclass(frozen=True)
class PnLBreakdown:
    pnl: float
    pnl_pct: float
    asset_class: AssetClass
    pips: Optional[float] = None
    pip_value: Optional[float] = None
    ticks: Optional[float] = None
    tick_value: Optional[float] = None


@dataclass(frozen=True)
class EntryResult:
    lot_id: str
    owner: str
    symbol: str
    asset_class: AssetClass
    spec: InstrumentSpec


@dataclass(frozen=True)
class LotClose:
    lot_id: str
    quantity_closed: float
    pnl: float
    pnl_pct: float
    fully_closed: bool
    source_lot_id: Optional[str] = None


@dataclass(frozen=True)
class FifoMatch:
    still_open: list[Lot]
    closed: list[Lot]
    closes: list[LotClose]
    unmatched_quantity: float = 0.0


@dataclass(frozen=True)
class ExitResult:
    owner: str
    symbol: str
    closes: list[LotClose]
    pnl: float
    pnl_pct: float
    matched_quantity: float
    unmatched_quantity: float = 0.0
    warnings: list[str] = field(default_factory=list)
