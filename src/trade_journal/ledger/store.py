"""Lot persistence: an in-memory store and a SQLite store."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from trade_journal.errors import ServerError
from trade_journal.ledger.models import Lot, Side
from trade_journal.symbols.models import AssetClass


class LotStore:
    def add(self, lot: Lot) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def get(self, lot_id: str) -> Optional[Lot]:  # pragma: no cover - interface
        raise NotImplementedError

    def open_lots(self, owner: str, symbol: str) -> list[Lot]:  # pragma: no cover - interface
        raise NotImplementedError

    def lots(self, owner: str, symbol: Optional[str] = None) -> list[Lot]:  # pragma: no cover - interface
        raise NotImplementedError

    def apply(self, updated: Iterable[Lot], created: Iterable[Lot]) -> None:  # pragma: no cover - interface
        """Atomically write reduced/closed lots and insert split-off records."""
        raise NotImplementedError

    def entries_between(
        self, owner: str, symbol: str, side: Side, start: datetime, end: datetime
    ) -> list[Lot]:
        return [
            lot
            for lot in self.lots(owner, symbol)
            if lot.parent_id is None and lot.side == side and start <= lot.entry_time <= end
        ]

    def close(self) -> None:
        return None


def _sort_key(lot: Lot) -> tuple:
    return (lot.entry_time, lot.id)


def _check_transition(current: Lot, new: Lot) -> None:
    if not current.is_open:
        raise ServerError(f"Lot {current.id} is already closed", lot_id=current.id)
    if new.quantity > current.quantity:
        raise ServerError(f"Lot {current.id} quantity may only decrease", lot_id=current.id)


class InMemoryLotStore(LotStore):
    def __init__(self) -> None:
        self._lots: dict[str, Lot] = {}
        self._lock = threading.Lock()

    def add(self, lot: Lot) -> None:
        with self._lock:
            if lot.id in self._lots:
                raise ServerError(f"Lot {lot.id} already exists", lot_id=lot.id)
            self._lots[lot.id] = lot

    def get(self, lot_id: str) -> Optional[Lot]:
        with self._lock:
            return self._lots.get(lot_id)

    def open_lots(self, owner: str, symbol: str) -> list[Lot]:
        with self._lock:
            lots = [l for l in self._lots.values() if l.owner == owner and l.symbol == symbol and l.is_open]
        return sorted(lots, key=_sort_key)

    def lots(self, owner: str, symbol: Optional[str] = None) -> list[Lot]:
        with self._lock:
            lots = [l for l in self._lots.values() if l.owner == owner and (symbol is None or l.symbol == symbol)]
        return sorted(lots, key=_sort_key)

    def apply(self, updated: Iterable[Lot], created: Iterable[Lot]) -> None:
        updated = list(updated)
        created = list(created)
        with self._lock:
            for lot in updated:
                current = self._lots.get(lot.id)
                if current is None:
                    raise ServerError(f"Lot {lot.id} not found", lot_id=lot.id)
                _check_transition(current, lot)
            for lot in created:
                if lot.id in self._lots:
                    raise ServerError(f"Lot {lot.id} already exists", lot_id=lot.id)
            for lot in updated + created:
                self._lots[lot.id] = lot


_COLUMNS = (
    "id, owner, symbol, side, quantity, entry_price, entry_time, asset_class, pip_size, pip_value, "
    "tick_size, tick_value, is_open, exit_price, exit_time, pnl, pnl_pct, pips, ticks, parent_id"
)


def _serialize_dt(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    if value.endswith("Z"):
        value = value.replace("Z", "+00:00")
    return datetime.fromisoformat(value)


def _row_to_lot(row: tuple) -> Lot:
    return Lot(
        id=row[0],
        owner=row[1],
        symbol=row[2],
        side=Side(row[3]),
        quantity=float(row[4]),
        entry_price=float(row[5]),
        entry_time=_parse_dt(row[6]),
        asset_class=AssetClass(row[7]),
        pip_size=row[8],
        pip_value=row[9],
        tick_size=row[10],
        tick_value=row[11],
        is_open=bool(row[12]),
        exit_price=row[13],
        exit_time=_parse_dt(row[14]),
        pnl=row[15],
        pnl_pct=row[16],
        pips=row[17],
        ticks=row[18],
        parent_id=row[19],
    )


def _lot_to_row(lot: Lot) -> tuple:
    return (
        lot.id,
        lot.owner,
        lot.symbol,
        lot.side.value,
        lot.quantity,
        lot.entry_price,
        _serialize_dt(lot.entry_time),
        lot.asset_class.value,
        lot.pip_size,
        lot.pip_value,
        lot.tick_size,
        lot.tick_value,
        1 if lot.is_open else 0,
        lot.exit_price,
        _serialize_dt(lot.exit_time),
        lot.pnl,
        lot.pnl_pct,
        lot.pips,
        lot.ticks,
        lot.parent_id,
    )


class SQLiteLotStore(LotStore):
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._conn()

    def _conn(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = sqlite3.connect(self.path)
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS lots (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    side TEXT NOT NULL,
                    quantity REAL NOT NULL CHECK (quantity > 0),
                    entry_price REAL NOT NULL,
                    entry_time TEXT NOT NULL,
                    asset_class TEXT NOT NULL,
                    pip_size REAL,
                    pip_value REAL,
                    tick_size REAL,
                    tick_value REAL,
                    is_open INTEGER NOT NULL,
                    exit_price REAL,
                    exit_time TEXT,
                    pnl REAL,
                    pnl_pct REAL,
                    pips REAL,
                    ticks REAL,
                    parent_id TEXT
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS lots_owner_symbol ON lots (owner, symbol, is_open)")
            conn.commit()
            self._local.conn = conn
        return conn

    def add(self, lot: Lot) -> None:
        conn = self._conn()
        try:
            with conn:
                conn.execute(f"INSERT INTO lots ({_COLUMNS}) VALUES ({', '.join('?' * 20)})", _lot_to_row(lot))
        except sqlite3.IntegrityError as exc:
            raise ServerError(f"Lot {lot.id} could not be stored: {exc}", lot_id=lot.id) from exc

    def get(self, lot_id: str) -> Optional[Lot]:
        row = self._conn().execute(f"SELECT {_COLUMNS} FROM lots WHERE id = ?", (lot_id,)).fetchone()
        if not row:
            return None
        return _row_to_lot(row)

    def open_lots(self, owner: str, symbol: str) -> list[Lot]:
        rows = self._conn().execute(
            f"SELECT {_COLUMNS} FROM lots WHERE owner = ? AND symbol = ? AND is_open = 1",
            (owner, symbol),
        ).fetchall()
        return sorted((_row_to_lot(row) for row in rows), key=_sort_key)

    def lots(self, owner: str, symbol: Optional[str] = None) -> list[Lot]:
        if symbol is None:
            rows = self._conn().execute(f"SELECT {_COLUMNS} FROM lots WHERE owner = ?", (owner,)).fetchall()
        else:
            rows = self._conn().execute(
                f"SELECT {_COLUMNS} FROM lots WHERE owner = ? AND symbol = ?", (owner, symbol)
            ).fetchall()
        return sorted((_row_to_lot(row) for row in rows), key=_sort_key)

    def apply(self, updated: Iterable[Lot], created: Iterable[Lot]) -> None:
        conn = self._conn()
        try:
            with conn:
                for lot in updated:
                    row = conn.execute(
                        "SELECT quantity, is_open FROM lots WHERE id = ?", (lot.id,)
                    ).fetchone()
                    if row is None:
                        raise ServerError(f"Lot {lot.id} not found", lot_id=lot.id)
                    current = replace(lot, quantity=float(row[0]), is_open=bool(row[1]))
                    _check_transition(current, lot)
                    conn.execute(
                        "UPDATE lots SET quantity = ?, is_open = ?, exit_price = ?, exit_time = ?, "
                        "pnl = ?, pnl_pct = ?, pips = ?, ticks = ? WHERE id = ? AND is_open = 1",
                        (
                            lot.quantity,
                            1 if lot.is_open else 0,
                            lot.exit_price,
                            _serialize_dt(lot.exit_time),
                            lot.pnl,
                            lot.pnl_pct,
                            lot.pips,
                            lot.ticks,
                            lot.id,
                        ),
                    )
                for lot in created:
                    conn.execute(
                        f"INSERT INTO lots ({_COLUMNS}) VALUES ({', '.join('?' * 20)})", _lot_to_row(lot)
                    )
        except sqlite3.IntegrityError as exc:
            raise ServerError(f"Lot update failed: {exc}") from exc

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            return
        conn.close()
        self._local.conn = None
