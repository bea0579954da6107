from __future__ import annotations

import itertools
from datetime import datetime, timezone

import pytest

from trade_journal.errors import DuplicateFill, InvalidRequest
from trade_journal.ingest import TradeIngestor, parse_timestamp
from trade_journal.ledger import InMemoryLotStore, PositionLedger, Side
from trade_journal.monitoring import AuditLog

T0 = datetime(2024, 6, 3, 14, 30, tzinfo=timezone.utc)
T0_SECONDS = 1717425000


def _ingestor(audit_log=None) -> TradeIngestor:
    counter = itertools.count(1)
    ledger = PositionLedger(InMemoryLotStore(), id_factory=lambda: f"lot-{next(counter)}")
    return TradeIngestor(ledger, audit_log=audit_log)


def _entry(**overrides) -> dict:
    payload = {
        "owner": "user-1",
        "symbol": "AAPL",
        "side": "buy",
        "price": 100.0,
        "quantity": 10,
        "timestamp": T0_SECONDS,
    }
    payload.update(overrides)
    return payload


@pytest.mark.parametrize(
    "value",
    [T0_SECONDS, T0_SECONDS * 1000, str(T0_SECONDS), "2024-06-03T14:30:00Z", "2024-06-03T16:30:00+02:00", T0],
)
def test_parse_timestamp_formats(value) -> None:
    assert parse_timestamp(value) == T0


@pytest.mark.parametrize("value", [None, "", "yesterday", True, [1]])
def test_parse_timestamp_rejects_garbage(value) -> None:
    with pytest.raises(InvalidRequest):
        parse_timestamp(value)


def test_entry_is_stored_with_normalized_symbol_and_side() -> None:
    ingestor = _ingestor()
    response = ingestor.ingest_entry(_entry(symbol="  aapl ", side="sell", timestamp=T0_SECONDS * 1000))

    assert response["status"] == "stored"
    assert response["lot_id"] == "lot-1"
    assert response["symbol"] == "AAPL"
    assert response["side"] == "short"
    assert response["asset_class"] == "stock"
    lot = ingestor.ledger.store.get("lot-1")
    assert lot.side == Side.SHORT
    assert lot.entry_time == T0


def test_forex_entry_reports_pip_metadata() -> None:
    response = _ingestor().ingest_entry(_entry(symbol="EURUSD", price=1.085, quantity=10000))
    assert response["asset_class"] == "forex"
    assert response["pip_size"] == 0.0001


def test_duplicate_within_window_rejected(tmp_path) -> None:
    audit = AuditLog(tmp_path / "audit.jsonl")
    ingestor = _ingestor(audit_log=audit)
    ingestor.ingest_entry(_entry())

    with pytest.raises(DuplicateFill) as excinfo:
        ingestor.ingest_entry(_entry(timestamp=T0_SECONDS + 4))
    assert excinfo.value.status == "duplicate"
    assert excinfo.value.details["lot_id"] == "lot-1"
    assert len(audit.read("duplicate_rejected")) == 1

    assert ingestor.ingest_entry(_entry(timestamp=T0_SECONDS + 6))["status"] == "stored"
    assert ingestor.ingest_entry(_entry(side="sell", timestamp=T0_SECONDS + 1))["status"] == "stored"
    assert ingestor.ingest_entry(_entry(owner="user-2"))["status"] == "stored"


def test_exit_returns_closes() -> None:
    ingestor = _ingestor()
    ingestor.ingest_entry(_entry(quantity=4))
    response = ingestor.ingest_exit(
        {"owner": "user-1", "symbol": "aapl", "price": 110.0, "quantity": 1, "timestamp": "2024-06-03T15:00:00Z"}
    )

    assert response["status"] == "closed"
    assert response["pnl"] == 10.0
    assert response["pnl_pct"] == 10.0
    assert response["closes"] == [
        {
            "lot_id": "lot-2",
            "source_lot_id": "lot-1",
            "quantity": 1.0,
            "pnl": 10.0,
            "pnl_pct": 10.0,
            "fully_closed": False,
        }
    ]
    assert response["warnings"] == []


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"price": None}, "price"),
        ({"price": "abc"}, "price"),
        ({"quantity": -1}, "quantity"),
        ({"quantity": float("nan")}, "quantity"),
        ({"quantity": "inf"}, "quantity"),
        ({"price": float("inf")}, "price"),
        ({"owner": ""}, "owner"),
        ({"symbol": "   "}, "symbol"),
    ],
)
def test_invalid_entry_payloads(overrides: dict, field: str) -> None:
    with pytest.raises(InvalidRequest) as excinfo:
        _ingestor().ingest_entry(_entry(**overrides))
    assert excinfo.value.details["field"] == field


def test_handle_maps_errors_to_status() -> None:
    ingestor = _ingestor()
    assert ingestor.handle("entry", _entry(side="flat"))["status"] == "invalid_request"
    assert ingestor.handle("exit", _entry())["status"] == "no_open_position"
    assert ingestor.handle("entry", _entry())["success"] is True
    assert ingestor.handle("entry", _entry())["status"] == "duplicate"
    assert ingestor.handle("cancel", _entry())["status"] == "invalid_request"


def test_over_exit_warning_in_response() -> None:
    ingestor = _ingestor()
    ingestor.ingest_entry(_entry(quantity=2))
    response = ingestor.ingest_exit(_entry(quantity=5, price=101.0, timestamp=T0_SECONDS + 60))
    assert response["matched_quantity"] == 2
    assert response["unmatched_quantity"] == pytest.approx(3.0)
    assert response["warnings"] == ["unmatched_exit_quantity"]
