"""Realized profit and loss for a single fill pair."""

from __future__ import annotations

import math
from typing import Optional

from trade_journal.errors import InvalidRequest
from trade_journal.ledger.models import PnLBreakdown, Side
from trade_journal.symbols.models import AssetClass, InstrumentSpec
from trade_journal.symbols.normalizer import instrument_spec, normalize_symbol


def is_positive_amount(value: object) -> bool:
    """True for a finite number strictly above zero (rejects NaN, inf and bools)."""
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def _round2(value: float) -> float:
    return round(value + 0.0, 2)


def _resolve_spec(asset_class: AssetClass, symbol: Optional[str], spec: Optional[InstrumentSpec]) -> InstrumentSpec:
    if spec is not None:
        return spec
    if symbol:
        normalized = normalize_symbol(symbol, asset_class.value)
        if normalized.is_supported:
            return instrument_spec(normalized)
    if asset_class.uses_pips:
        return InstrumentSpec(asset_class=asset_class, pip_size=0.0001, pip_value=0.0001)
    if asset_class.uses_ticks:
        return InstrumentSpec(asset_class=asset_class, tick_size=0.01, tick_value=1.0)
    return InstrumentSpec(asset_class=asset_class)


def calculate_pnl(
    side: Side | str,
    entry_price: float,
    exit_price: float,
    quantity: float,
    asset_class: AssetClass | str,
    symbol: Optional[str] = None,
    spec: Optional[InstrumentSpec] = None,
) -> PnLBreakdown:
    """Return realized PnL, PnL% and the pip/tick breakdown where it applies.

    Forex scales the price difference by pips, metals, indices and
    commodities by ticks, everything else is ``diff * quantity``. All
    outputs are rounded to two decimals.
    """
    side = side if isinstance(side, Side) else Side.parse(side)
    asset_class = AssetClass(asset_class)
    if not is_positive_amount(quantity):
        raise InvalidRequest("quantity must be a positive finite number")
    if not (is_positive_amount(entry_price) and is_positive_amount(exit_price)):
        raise InvalidRequest("prices must be positive finite numbers")

    diff = exit_price - entry_price if side.is_long else entry_price - exit_price
    spec = _resolve_spec(asset_class, symbol, spec)

    pips = ticks = None
    if asset_class.uses_pips and spec.pip_size:
        pips = diff / spec.pip_size
        pnl = pips * quantity * spec.pip_size
    elif asset_class.uses_ticks and spec.tick_size:
        ticks = diff / spec.tick_size
        pnl = ticks * quantity * (spec.tick_value if spec.tick_value is not None else 1.0)
    else:
        pnl = diff * quantity

    cost_basis = entry_price * quantity
    pnl_pct = pnl / cost_basis * 100 if cost_basis > 0 else 0.0

    return PnLBreakdown(
        pnl=_round2(pnl),
        pnl_pct=_round2(pnl_pct),
        asset_class=asset_class,
        pips=_round2(pips) if pips is not None else None,
        pip_value=spec.pip_value if pips is not None else None,
        ticks=_round2(ticks) if ticks is not None else None,
        tick_value=spec.tick_value if ticks is not None else None,
    )
