"""Excursion and R-multiple statistics over closed lots."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from trade_journal.ledger.models import Lot, Side
from trade_journal.market_data.models import PriceBar

BREAKEVEN_BAND = 0.01
MIN_SAMPLES_FOR_ACCURACY = 30


@dataclass(frozen=True)
class Excursion:
    mae: float
    mfe: float


@dataclass(frozen=True)
class LotMetrics:
    lot_id: str
    mae: float
    mfe: float
    estimated_risk: float
    r_multiple: float


@dataclass(frozen=True)
class TradeMetricsSummary:
    total_trades: int
    wins: int
    losses: int
    breakeven: int
    win_rate: Optional[float]
    average_r: float
    total_r: float
    positive_r_pct: float
    r_variance: float
    accuracy_score: Optional[float]
    per_lot: list[LotMetrics]


def excursions(bars: Sequence[PriceBar], entry_price: float, side: Side) -> Excursion:
    """Largest adverse and favourable move from entry over the holding bars."""
    mae = 0.0
    mfe = 0.0
    for bar in bars:
        if side.is_long:
            adverse, favourable = entry_price - bar.low, bar.high - entry_price
        else:
            adverse, favourable = bar.high - entry_price, entry_price - bar.low
        mae = max(mae, adverse)
        mfe = max(mfe, favourable)
    return Excursion(mae=mae, mfe=mfe)


def estimate_risk(mae: float, entry_price: float, quantity: float, realized_pnl: Optional[float] = None) -> float:
    # Falls back to 2% of position value without excursion data; never below the realized loss.
    min_risk = abs(realized_pnl) if realized_pnl is not None and realized_pnl < 0 else 0.0
    mae_risk = mae * quantity
    calculated = mae_risk if mae_risk > 0 else entry_price * quantity * 0.02
    return max(calculated, min_risk, 0.01)


def r_multiple(pnl: float, risk: float) -> float:
    if risk <= 0:
        return 0.0
    return pnl / risk


def variance(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    mean = sum(values) / len(values)
    return sum((value - mean) ** 2 for value in values) / len(values)


def accuracy_score(average_r: float, positive_r_pct: float, r_variance: float) -> float:
    avg_r_score = min(40.0, max(0.0, (average_r + 1) * 10))
    positive_r_score = positive_r_pct * 0.4
    variance_penalty = min(20.0, max(0.0, (r_variance - 1) * 5))
    total = avg_r_score + positive_r_score + (20.0 - variance_penalty)
    return min(100.0, max(0.0, total))


def summarize_closed_lots(
    lots: Sequence[Lot],
    bars_by_lot: Optional[Mapping[str, Sequence[PriceBar]]] = None,
    fees_by_lot: Optional[Mapping[str, float]] = None,
) -> TradeMetricsSummary:
    bars_by_lot = bars_by_lot or {}
    fees_by_lot = fees_by_lot or {}
    per_lot: list[LotMetrics] = []
    wins = losses = breakeven = 0

    for lot in lots:
        if lot.is_open or lot.pnl is None:
            continue
        net_pnl = lot.pnl - fees_by_lot.get(lot.id, 0.0)
        excursion = excursions(bars_by_lot.get(lot.id, ()), lot.entry_price, lot.side)
        risk = estimate_risk(excursion.mae, lot.entry_price, lot.quantity, net_pnl)
        per_lot.append(LotMetrics(lot.id, excursion.mae, excursion.mfe, risk, r_multiple(net_pnl, risk)))
        if net_pnl > BREAKEVEN_BAND:
            wins += 1
        elif net_pnl < -BREAKEVEN_BAND:
            losses += 1
        else:
            breakeven += 1

    r_values = [item.r_multiple for item in per_lot]
    total = wins + losses + breakeven
    average_r = sum(r_values) / len(r_values) if r_values else 0.0
    positive_r_pct = (sum(1 for r in r_values if r > 0) / len(r_values) * 100) if r_values else 0.0
    r_var = variance(r_values)
    return TradeMetricsSummary(
        total_trades=total,
        wins=wins,
        losses=losses,
        breakeven=breakeven,
        win_rate=(wins / total * 100) if total else None,
        average_r=average_r,
        total_r=sum(r_values),
        positive_r_pct=positive_r_pct,
        r_variance=r_var,
        accuracy_score=(
            accuracy_score(average_r, positive_r_pct, r_var) if len(r_values) >= MIN_SAMPLES_FOR_ACCURACY else None
        ),
        per_lot=per_lot,
    )
