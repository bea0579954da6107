import argparse
from pathlib import Path

from trade_journal.config import freeze_config, load_config, verify_config_lock


def main() -> None:
    parser = argparse.ArgumentParser(description="Validate a journal config and write its hash lock file.")
    parser.add_argument("config")
    parser.add_argument("--lock", help="Lock file path (default: <config>.lock.json)")
    args = parser.parse_args()

    path = Path(args.config)
    load_config(path)
    lock_path = freeze_config(path, args.lock)
    status = "ok" if verify_config_lock(path, lock_path) else "mismatch"
    print(f"Frozen {path} -> {lock_path} ({status})")


if __name__ == "__main__":
    main()
