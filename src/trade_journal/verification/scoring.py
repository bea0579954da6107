"""Per-leg authenticity scoring of a fill against a one-minute market range."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from trade_journal.market_data.models import PriceRange
from trade_journal.symbols.models import AssetClass, NormalizedSymbol
from trade_journal.verification.models import LegSide, LegStatus, LegVerification

NEUTRAL_SCORE = 0.5
SUSPICIOUS_SCORE = 0.3
PRECISION_BAND = 0.1
NO_DATA_NOTE = "No market data available from any provider"

# (max deviation from midpoint, score, note)
DEVIATION_BANDS = (
    (0.001, 1.0, "Excellent fill - very close to midpoint"),
    (0.005, 0.9, "Good fill - within normal range"),
    (0.01, 0.75, "Acceptable fill - moderate deviation"),
)
FALLBACK_BAND = (0.6, "High deviation fill - near edge of range")


def tolerance_for(symbol: NormalizedSymbol, fill_price: float) -> float:
    if symbol.asset_class == AssetClass.FOREX:
        return 2 * symbol.pip_size
    if symbol.asset_class == AssetClass.CRYPTO:
        return fill_price * 0.001
    return fill_price * 0.0005


def unknown_leg(side: LegSide, fill_price: float, timestamp: datetime, notes: str) -> LegVerification:
    return LegVerification(
        side=side,
        fill_price=fill_price,
        timestamp=timestamp,
        status=LegStatus.UNKNOWN,
        score=NEUTRAL_SCORE,
        notes=notes,
    )


def score_leg(
    side: LegSide,
    fill_price: float,
    timestamp: datetime,
    symbol: NormalizedSymbol,
    price_range: Optional[PriceRange],
    provider: str = "none",
) -> LegVerification:
    """Classify one fill against the market range of its minute.

    Unsupported symbols and missing ranges yield a neutral ``unknown`` leg.
    A fill outside the range by more than the asset-class tolerance is
    impossible and scores 0; a fill sitting on the low or high within a
    tenth of the tolerance is flagged as suspiciously precise.
    """
    if not symbol.is_supported:
        return unknown_leg(side, fill_price, timestamp, symbol.reason or "Symbol not supported")
    if price_range is None:
        return unknown_leg(side, fill_price, timestamp, NO_DATA_NOTE)

    low, high = price_range.low, price_range.high
    midpoint = price_range.midpoint
    tolerance = tolerance_for(symbol, fill_price)
    deviation = abs(fill_price - midpoint) / midpoint if midpoint else None
    via = f"(via {provider})"

    if fill_price < low - tolerance:
        status, score = LegStatus.IMPOSSIBLE_LOW, 0.0
        notes = f"Fill price {fill_price} is below market low {low:.4f} {via}"
    elif fill_price > high + tolerance:
        status, score = LegStatus.IMPOSSIBLE_HIGH, 0.0
        notes = f"Fill price {fill_price} is above market high {high:.4f} {via}"
    else:
        band = tolerance * PRECISION_BAND
        near_low = abs(fill_price - low) < band
        if near_low or abs(fill_price - high) < band:
            status, score = LegStatus.SUSPICIOUS_PRECISION, SUSPICIOUS_SCORE
            notes = f"Fill price matches market {'low' if near_low else 'high'} suspiciously precisely {via}"
        else:
            status = LegStatus.REALISTIC
            score, label = FALLBACK_BAND
            for limit, band_score, band_label in DEVIATION_BANDS:
                if deviation is not None and deviation < limit:
                    score, label = band_score, band_label
                    break
            notes = f"{label} {via}"

    return LegVerification(
        side=side,
        fill_price=fill_price,
        timestamp=timestamp,
        status=status,
        score=score,
        notes=notes,
        provider=provider,
        market_low=low,
        market_high=high,
        market_open=price_range.open,
        market_close=price_range.close,
        deviation=deviation,
    )
