"""Pure FIFO matching of an exit quantity against open lots."""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Optional

from trade_journal.ledger.models import FifoMatch, Lot, LotClose
from trade_journal.ledger.pnl import calculate_pnl

QUANTITY_EPSILON = 1e-9


def new_lot_id() -> str:
    return uuid.uuid4().hex


def fifo_order(lots: Iterable[Lot]) -> list[Lot]:
    return sorted((lot for lot in lots if lot.is_open), key=lambda lot: (lot.entry_time, lot.id))


def match_fifo(
    open_lots: Iterable[Lot],
    exit_quantity: float,
    exit_price: float,
    exit_time: datetime,
    id_factory: Optional[Callable[[], str]] = None,
) -> FifoMatch:
    """Consume ``exit_quantity`` against the oldest open lots first.

    Nothing is mutated: fully consumed lots come back closed, a partially
    consumed lot comes back open with its reduced quantity alongside a new
    closed record for the consumed part. Quantity beyond total exposure is
    returned as ``unmatched_quantity``.
    """
    id_factory = id_factory or new_lot_id
    remaining = float(exit_quantity)
    still_open: list[Lot] = []
    closed: list[Lot] = []
    closes: list[LotClose] = []

    for lot in fifo_order(open_lots):
        if remaining <= QUANTITY_EPSILON:
            still_open.append(lot)
            continue

        if remaining >= lot.quantity - QUANTITY_EPSILON:
            breakdown = calculate_pnl(lot.side, lot.entry_price, exit_price, lot.quantity, lot.asset_class, spec=lot.spec)
            closed.append(
                replace(
                    lot,
                    is_open=False,
                    exit_price=exit_price,
                    exit_time=exit_time,
                    pnl=breakdown.pnl,
                    pnl_pct=breakdown.pnl_pct,
                    pips=breakdown.pips,
                    ticks=breakdown.ticks,
                )
            )
            closes.append(LotClose(lot.id, lot.quantity, breakdown.pnl, breakdown.pnl_pct, fully_closed=True))
            remaining -= lot.quantity
            continue

        breakdown = calculate_pnl(lot.side, lot.entry_price, exit_price, remaining, lot.asset_class, spec=lot.spec)
        split = replace(
            lot,
            id=id_factory(),
            quantity=remaining,
            is_open=False,
            exit_price=exit_price,
            exit_time=exit_time,
            pnl=breakdown.pnl,
            pnl_pct=breakdown.pnl_pct,
            pips=breakdown.pips,
            ticks=breakdown.ticks,
            parent_id=lot.id,
        )
        closed.append(split)
        still_open.append(replace(lot, quantity=lot.quantity - remaining))
        closes.append(
            LotClose(split.id, remaining, breakdown.pnl, breakdown.pnl_pct, fully_closed=False, source_lot_id=lot.id)
        )
        remaining = 0.0

    unmatched = remaining if remaining > QUANTITY_EPSILON else 0.0
    return FifoMatch(still_open=still_open, closed=closed, closes=closes, unmatched_quantity=unmatched)
