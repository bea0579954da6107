"""Position ledger: entry fills open lots, exit fills FIFO-close them."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from trade_journal.errors import InvalidRequest, NoOpenPosition
from trade_journal.ledger.fifo import QUANTITY_EPSILON, match_fifo, new_lot_id
from trade_journal.ledger.models import EntryEvent, EntryResult, ExitEvent, ExitResult, Lot
from trade_journal.ledger.pnl import is_positive_amount
from trade_journal.ledger.store import LotStore
from trade_journal.symbols.normalizer import SymbolNormalizer, default_normalizer, instrument_spec


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _clean_symbol(symbol: str) -> str:
    cleaned = (symbol or "").strip().upper()
    if not cleaned:
        raise InvalidRequest("symbol is required")
    return cleaned


class _KeyedLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], threading.RLock] = {}

    def get(self, key: tuple[str, str]) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock


class PositionLedger:
    def __init__(
        self,
        store: LotStore,
        normalizer: Optional[SymbolNormalizer] = None,
        audit_log: Optional[object] = None,
        tick_value: float = 1.0,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.store = store
        self.normalizer = normalizer or default_normalizer()
        self.tick_value = tick_value
        self._audit_log = audit_log
        self._id_factory = id_factory or new_lot_id
        self._locks = _KeyedLocks()

    def _log(self, event: str, payload: dict) -> None:
        if self._audit_log is None:
            return
        self._audit_log.log(event, payload)

    def lock_for(self, owner: str, symbol: str) -> threading.RLock:
        return self._locks.get((owner, _clean_symbol(symbol)))

    def open_position(self, event: EntryEvent) -> EntryResult:
        if not event.owner:
            raise InvalidRequest("owner is required")
        if not is_positive_amount(event.quantity):
            raise InvalidRequest("quantity must be a positive finite number", field="quantity")
        if not is_positive_amount(event.price):
            raise InvalidRequest("price must be a positive finite number", field="price")
        symbol = _clean_symbol(event.symbol)

        normalized = self.normalizer.normalize(symbol, event.instrument_type)
        spec = instrument_spec(normalized, tick_value=self.tick_value)
        lot = Lot(
            id=self._id_factory(),
            owner=event.owner,
            symbol=symbol,
            side=event.side,
            quantity=float(event.quantity),
            entry_price=float(event.price),
            entry_time=_utc(event.timestamp),
            asset_class=spec.asset_class,
            pip_size=spec.pip_size,
            pip_value=spec.pip_value,
            tick_size=spec.tick_size,
            tick_value=spec.tick_value,
        )
        with self._locks.get((event.owner, symbol)):
            self.store.add(lot)
        self._log(
            "lot_opened",
            {
                "lot_id": lot.id,
                "owner": lot.owner,
                "symbol": symbol,
                "side": lot.side.value,
                "quantity": lot.quantity,
                "price": lot.entry_price,
                "asset_class": lot.asset_class.value,
            },
        )
        return EntryResult(lot_id=lot.id, owner=lot.owner, symbol=symbol, asset_class=lot.asset_class, spec=spec)

    def close_position(self, event: ExitEvent) -> ExitResult:
        if not event.owner:
            raise InvalidRequest("owner is required")
        if not is_positive_amount(event.quantity):
            raise InvalidRequest("quantity must be a positive finite number", field="quantity")
        if not is_positive_amount(event.price):
            raise InvalidRequest("price must be a positive finite number", field="price")
        symbol = _clean_symbol(event.symbol)
        exit_time = _utc(event.timestamp)

        with self._locks.get((event.owner, symbol)):
            open_lots = self.store.open_lots(event.owner, symbol)
            if not open_lots:
                self._log("exit_rejected", {"owner": event.owner, "symbol": symbol, "reason": "no_open_position"})
                raise NoOpenPosition(f"No open position for {symbol}", owner=event.owner, symbol=symbol)

            match = match_fifo(open_lots, event.quantity, event.price, exit_time, id_factory=self._id_factory)

            originals = {lot.id: lot for lot in open_lots}
            updated = [lot for lot in match.still_open + match.closed if lot.id in originals and lot != originals[lot.id]]
            created = [lot for lot in match.closed if lot.id not in originals]
            self.store.apply(updated, created)

        for close in match.closes:
            self._log(
                "lot_closed" if close.fully_closed else "lot_split",
                {
                    "lot_id": close.lot_id,
                    "source_lot_id": close.source_lot_id,
                    "owner": event.owner,
                    "symbol": symbol,
                    "quantity": close.quantity_closed,
                    "price": event.price,
                    "pnl": close.pnl,
                    "pnl_pct": close.pnl_pct,
                },
            )

        warnings: list[str] = []
        if match.unmatched_quantity > QUANTITY_EPSILON:
            warnings.append("unmatched_exit_quantity")
            self._log(
                "unmatched_exit_quantity",
                {
                    "owner": event.owner,
                    "symbol": symbol,
                    "requested": event.quantity,
                    "unmatched": match.unmatched_quantity,
                },
            )

        closes = match.closes
        total_pnl = round(sum(close.pnl for close in closes), 2)
        mean_pct = round(sum(close.pnl_pct for close in closes) / len(closes), 2) if closes else 0.0
        return ExitResult(
            owner=event.owner,
            symbol=symbol,
            closes=closes,
            pnl=total_pnl,
            pnl_pct=mean_pct,
            matched_quantity=sum(close.quantity_closed for close in closes),
            unmatched_quantity=match.unmatched_quantity,
            warnings=warnings,
        )

    def open_lots(self, owner: str, symbol: str) -> list[Lot]:
        return self.store.open_lots(owner, _clean_symbol(symbol))

    def lots(self, owner: str, symbol: Optional[str] = None) -> list[Lot]:
        return self.store.lots(owner, _clean_symbol(symbol) if symbol is not None else None)

    def net_exposure(self, owner: str, symbol: str) -> float:
        return sum(lot.quantity for lot in self.open_lots(owner, symbol))
