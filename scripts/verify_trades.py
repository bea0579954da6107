from __future__ import annotations

import argparse
import json
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from trade_journal.config import load_config
from trade_journal.ingest import parse_timestamp
from trade_journal.runtime import build_services, create_run_context
from trade_journal.verification import TradeToVerify


def _json_default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _load_trades(path: Path) -> list[TradeToVerify]:
    rows = json.loads(path.read_text(encoding="utf-8"))
    trades = []
    for row in rows:
        exit_time = row.get("exit_timestamp")
        trades.append(
            TradeToVerify(
                id=str(row["id"]),
                symbol=row["symbol"],
                side=row.get("side", "buy"),
                entry_price=float(row["entry_price"]),
                entry_time=parse_timestamp(row["entry_timestamp"]),
                exit_price=float(row["exit_price"]) if row.get("exit_price") is not None else None,
                exit_time=parse_timestamp(exit_time) if exit_time is not None else None,
                quantity=row.get("quantity"),
                instrument_type=row.get("instrument_type"),
            )
        )
    return trades


def main() -> None:
    parser = argparse.ArgumentParser(description="Verify trade fills against historical market ranges.")
    parser.add_argument("--config", required=True)
    parser.add_argument("--trades", required=True, help="JSON array of trades")
    parser.add_argument("--output", required=True)
    args = parser.parse_args()

    config_path = Path(args.config)
    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    config = load_config(config_path)
    context = create_run_context(config_path, config.run_id_prefix)
    services = build_services(config, context=context)
    trades = _load_trades(Path(args.trades))

    def report(completed: int, total: int) -> None:
        print(f"verified {completed}/{total}")

    try:
        batch = services.verifier.verify_batch(trades, on_progress=report)
    finally:
        services.close()

    payload = {
        "run_id": context.run_id,
        "config_hash": context.config_hash,
        "summary": asdict(batch.summary),
        "results": [asdict(result) for result in batch.results],
    }
    output_path.write_text(json.dumps(payload, indent=2, default=_json_default), encoding="utf-8")
    summary = batch.summary
    print(f"{summary.verified}/{summary.total} verified, average score {summary.average_score:.2f} -> {output_path}")


if __name__ == "__main__":
    main()
