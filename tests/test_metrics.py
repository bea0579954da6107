from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from trade_journal.ledger import Lot, Side, excursions, summarize_closed_lots
from trade_journal.ledger.metrics import accuracy_score, estimate_risk, r_multiple, variance
from trade_journal.market_data import PriceBar

T0 = datetime(2024, 6, 3, 14, 30, tzinfo=timezone.utc)


def _closed(lot_id: str, pnl: float, side: Side = Side.LONG) -> Lot:
    return Lot(
        id=lot_id,
        owner="user-1",
        symbol="AAPL",
        side=side,
        quantity=10,
        entry_price=100.0,
        entry_time=T0,
        is_open=False,
        exit_price=100.0 + pnl / 10,
        exit_time=T0 + timedelta(hours=1),
        pnl=pnl,
        pnl_pct=pnl / 10,
    )


def test_excursions_by_side() -> None:
    bars = [
        PriceBar(time=T0, open=100, high=104, low=97, close=103),
        PriceBar(time=T0 + timedelta(minutes=1), open=103, high=108, low=95, close=106),
    ]
    long = excursions(bars, 100.0, Side.LONG)
    short = excursions(bars, 100.0, Side.SHORT)
    assert (long.mae, long.mfe) == (5.0, 8.0)
    assert (short.mae, short.mfe) == (8.0, 5.0)
    assert excursions([], 100.0, Side.LONG).mae == 0.0


def test_estimate_risk_floors() -> None:
    assert estimate_risk(5.0, 100.0, 10, realized_pnl=-20.0) == 50.0
    assert estimate_risk(0.0, 100.0, 10) == 20.0
    assert estimate_risk(0.0, 100.0, 10, realized_pnl=-80.0) == 80.0
    assert r_multiple(50.0, 0.0) == 0.0
    assert variance([1.0]) == 0.0
    assert variance([1.0, 3.0]) == 1.0


def test_summary_without_enough_samples() -> None:
    lots = [_closed("a", 100.0), _closed("b", -50.0), _closed("c", 0.0)]
    summary = summarize_closed_lots(lots)

    assert (summary.wins, summary.losses, summary.breakeven) == (1, 1, 1)
    assert summary.win_rate == pytest.approx(100 / 3)
    assert [item.r_multiple for item in summary.per_lot] == [5.0, -1.0, 0.0]
    assert summary.total_r == 4.0
    assert summary.positive_r_pct == pytest.approx(100 / 3)
    assert summary.accuracy_score is None


def test_summary_uses_bars_and_skips_open_lots() -> None:
    open_lot = Lot(id="open", owner="u", symbol="AAPL", side=Side.LONG, quantity=1, entry_price=100.0, entry_time=T0)
    bars = {"a": [PriceBar(time=T0, open=100, high=112, low=96, close=110)]}
    summary = summarize_closed_lots([_closed("a", 100.0), open_lot], bars_by_lot=bars)

    assert summary.total_trades == 1
    item = summary.per_lot[0]
    assert (item.mae, item.mfe) == (4.0, 12.0)
    assert item.estimated_risk == 40.0
    assert item.r_multiple == 2.5


def test_accuracy_score_after_thirty_trades() -> None:
    lots = [_closed(f"l{index}", 40.0) for index in range(30)]
    summary = summarize_closed_lots(lots)
    assert summary.average_r == pytest.approx(2.0)
    assert summary.r_variance == pytest.approx(0.0)
    assert summary.accuracy_score == pytest.approx(accuracy_score(2.0, 100.0, 0.0))
    assert summary.accuracy_score == pytest.approx(90.0)
