"""Lot accounting: PnL, FIFO matching and persistence."""

from trade_journal.ledger.fifo import QUANTITY_EPSILON, fifo_order, match_fifo
from trade_journal.ledger.ledger import PositionLedger
from trade_journal.ledger.metrics import TradeMetricsSummary, excursions, summarize_closed_lots
from trade_journal.ledger.models import (
    EntryEvent,
    EntryResult,
    ExitEvent,
    ExitResult,
    FifoMatch,
    Lot,
    LotClose,
    PnLBreakdown,
    Side,
)
from trade_journal.ledger.pnl import calculate_pnl
from trade_journal.ledger.store import InMemoryLotStore, LotStore, SQLiteLotStore

__all__ = [
    "EntryEvent",
    "EntryResult",
    "ExitEvent",
    "ExitResult",
    "FifoMatch",
    "InMemoryLotStore",
    "Lot",
    "LotClose",
    "LotStore",
    "PnLBreakdown",
    "PositionLedger",
    "QUANTITY_EPSILON",
    "SQLiteLotStore",
    "Side",
    "TradeMetricsSummary",
    "calculate_pnl",
    "excursions",
    "fifo_order",
    "match_fifo",
    "summarize_closed_lots",
]
