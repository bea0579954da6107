from __future__ import annotations

import argparse
import json
from dataclasses import replace
from pathlib import Path

from trade_journal.config import load_config
from trade_journal.runtime import build_services, create_run_context


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay a JSONL file of entry/exit fills into the ledger.")
    parser.add_argument("--config", required=True)
    parser.add_argument("--fills", required=True, help="JSONL, one {action, ...payload} per line")
    parser.add_argument("--db", help="Override ledger.sqlite_path")
    args = parser.parse_args()

    config_path = Path(args.config)
    config = load_config(config_path)
    if args.db:
        config = replace(config, ledger=replace(config.ledger, store="sqlite", sqlite_path=args.db))
    context = create_run_context(config_path, config.run_id_prefix)
    services = build_services(config, context=context)

    owners: set[str] = set()
    failures = 0
    try:
        lines = Path(args.fills).read_text(encoding="utf-8").splitlines()
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            fill = json.loads(line)
            action = fill.pop("action", "entry")
            response = services.ingestor.handle(action, fill)
            if not response.get("success"):
                failures += 1
                print(f"line {number}: {response['status']} {response.get('reason', '')}")
            elif fill.get("owner"):
                owners.add(str(fill["owner"]))

        for owner in sorted(owners):
            lots = services.ledger.lots(owner)
            open_lots = [lot for lot in lots if lot.is_open]
            realized = sum(lot.pnl or 0.0 for lot in lots if not lot.is_open)
            print(f"{owner}: {len(open_lots)} open lots, {len(lots) - len(open_lots)} closed, realized {realized:.2f}")
    finally:
        services.close()

    print(f"replayed {len(lines)} lines, {failures} rejected")


if __name__ == "__main__":
    main()
