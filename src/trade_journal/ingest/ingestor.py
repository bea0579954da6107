"""Validation and dispatch of raw entry/exit fill payloads."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from trade_journal.errors import DuplicateFill, InvalidRequest, JournalError, ServerError
from trade_journal.ledger.ledger import PositionLedger
from trade_journal.ledger.models import EntryEvent, ExitEvent, Side
from trade_journal.ledger.pnl import is_positive_amount

logger = logging.getLogger(__name__)

EPOCH_MILLIS_THRESHOLD = 10_000_000_000


def parse_timestamp(value: Any) -> datetime:
    """Accept epoch seconds, epoch milliseconds or an ISO-8601 string; return UTC."""
    if isinstance(value, datetime):
        return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)
    if isinstance(value, bool) or value is None:
        raise InvalidRequest("timestamp is required")
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidRequest("timestamp is required")
        try:
            value = float(text)
        except ValueError:
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
            except ValueError as exc:
                raise InvalidRequest(f"invalid timestamp: {text}") from exc
            return parse_timestamp(parsed)
    if not isinstance(value, (int, float)):
        raise InvalidRequest(f"invalid timestamp: {value!r}")
    seconds = value / 1000.0 if abs(value) >= EPOCH_MILLIS_THRESHOLD else float(value)
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise InvalidRequest(f"invalid timestamp: {value!r}") from exc


def _require(payload: Mapping[str, Any], key: str) -> Any:
    value = payload.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidRequest(f"{key} is required", field=key)
    return value


def _positive(payload: Mapping[str, Any], key: str) -> float:
    raw = _require(payload, key)
    if isinstance(raw, bool):
        raise InvalidRequest(f"{key} must be a number", field=key)
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidRequest(f"{key} must be a number", field=key) from exc
    if not is_positive_amount(value):
        raise InvalidRequest(f"{key} must be a positive finite number", field=key)
    return value


class TradeIngestor:
    def __init__(
        self,
        ledger: PositionLedger,
        duplicate_window_seconds: float = 5.0,
        audit_log: Optional[object] = None,
    ) -> None:
        self.ledger = ledger
        self.duplicate_window = timedelta(seconds=duplicate_window_seconds)
        self._audit_log = audit_log

    def _log(self, event: str, payload: dict) -> None:
        if self._audit_log is None:
            return
        self._audit_log.log(event, payload)

    def ingest_entry(self, payload: Mapping[str, Any]) -> dict:
        owner = str(_require(payload, "owner"))
        symbol = str(_require(payload, "symbol")).strip().upper()
        side = Side.parse(_require(payload, "side"))
        price = _positive(payload, "price")
        quantity = _positive(payload, "quantity")
        timestamp = parse_timestamp(_require(payload, "timestamp"))
        event = EntryEvent(
            owner=owner,
            symbol=symbol,
            side=side,
            price=price,
            quantity=quantity,
            timestamp=timestamp,
            instrument_type=payload.get("instrument_type"),
        )

        with self.ledger.lock_for(owner, symbol):
            existing = self.ledger.store.entries_between(
                owner, symbol, side, timestamp - self.duplicate_window, timestamp + self.duplicate_window
            )
            if existing:
                self._log("duplicate_rejected", {"owner": owner, "symbol": symbol, "lot_id": existing[0].id})
                raise DuplicateFill(
                    f"Duplicate {side.value} fill for {symbol} within {self.duplicate_window.total_seconds():g}s",
                    lot_id=existing[0].id,
                )
            result = self.ledger.open_position(event)

        return {
            "success": True,
            "status": "stored",
            "lot_id": result.lot_id,
            "symbol": result.symbol,
            "side": side.value,
            "asset_class": result.asset_class.value,
            "pip_size": result.spec.pip_size,
            "pip_value": result.spec.pip_value,
            "tick_size": result.spec.tick_size,
            "tick_value": result.spec.tick_value,
        }

    def ingest_exit(self, payload: Mapping[str, Any]) -> dict:
        event = ExitEvent(
            owner=str(_require(payload, "owner")),
            symbol=str(_require(payload, "symbol")).strip().upper(),
            price=_positive(payload, "price"),
            quantity=_positive(payload, "quantity"),
            timestamp=parse_timestamp(_require(payload, "timestamp")),
        )
        result = self.ledger.close_position(event)
        return {
            "success": True,
            "status": "closed",
            "symbol": result.symbol,
            "closes": [
                {
                    "lot_id": close.lot_id,
                    "source_lot_id": close.source_lot_id,
                    "quantity": close.quantity_closed,
                    "pnl": close.pnl,
                    "pnl_pct": close.pnl_pct,
                    "fully_closed": close.fully_closed,
                }
                for close in result.closes
            ],
            "pnl": result.pnl,
            "pnl_pct": result.pnl_pct,
            "matched_quantity": result.matched_quantity,
            "unmatched_quantity": result.unmatched_quantity,
            "warnings": list(result.warnings),
        }

    def handle(self, action: str, payload: Mapping[str, Any]) -> dict:
        """Webhook-style entry point: errors come back as status dicts."""
        try:
            if action == "entry":
                return self.ingest_entry(payload)
            if action == "exit":
                return self.ingest_exit(payload)
            raise InvalidRequest(f"unknown action: {action}", action=action)
        except JournalError as exc:
            return exc.to_dict()
        except Exception as exc:
            logger.exception("ingest %s failed", action)
            return ServerError(str(exc)).to_dict()
