"""Load and freeze configuration files."""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml

from trade_journal.config.models import (
    JournalConfig,
    LedgerConfig,
    MarketDataConfig,
    MonitoringConfig,
    ProviderConfig,
    VerificationConfig,
)

LEDGER_STORES = ("sqlite", "memory")


def load_config(path: str | Path) -> JournalConfig:
    path = Path(path)
    data = _load_yaml(path)

    name = _require(data, "name")
    version = str(_require(data, "version"))
    run_id_prefix = data.get("run_id_prefix", name)

    return JournalConfig(
        name=name,
        version=version,
        run_id_prefix=run_id_prefix,
        market_data=_parse_market_data(_require(data, "market_data")),
        verification=_parse_verification(data.get("verification", {})),
        ledger=_parse_ledger(data.get("ledger", {})),
        monitoring=_parse_monitoring(data.get("monitoring", {})),
    )


def compute_config_hash(path: str | Path) -> str:
    path = Path(path)
    content = path.read_bytes()
    return hashlib.sha256(content).hexdigest()


def _lock_path_for(path: Path, lock_path: Optional[str | Path]) -> Path:
    if lock_path is None:
        return path.with_suffix(path.suffix + ".lock.json")
    return Path(lock_path)


def freeze_config(path: str | Path, lock_path: Optional[str | Path] = None) -> Path:
    path = Path(path)
    lock_path = _lock_path_for(path, lock_path)
    payload = {
        "config_path": str(path),
        "config_hash": compute_config_hash(path),
        "frozen_at_utc": datetime.now(timezone.utc).isoformat(),
    }
    lock_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return lock_path


def verify_config_lock(path: str | Path, lock_path: Optional[str | Path] = None) -> bool:
    path = Path(path)
    lock_path = _lock_path_for(path, lock_path)
    if not lock_path.exists():
        return False
    payload = json.loads(lock_path.read_text(encoding="utf-8"))
    return payload.get("config_hash") == compute_config_hash(path)


def _load_yaml(path: Path) -> dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError("Config must be a mapping")
    return data


def _require(data: dict[str, Any], key: str) -> Any:
    if key not in data:
        raise ValueError(f"Missing required config key: {key}")
    return data[key]


def _positive_int(value: Any, key: str) -> int:
    number = int(value)
    if number <= 0:
        raise ValueError(f"Invalid {key}: {value}")
    return number


def _parse_provider(data: dict[str, Any]) -> ProviderConfig:
    return ProviderConfig(
        name=str(_require(data, "name")).lower(),
        api_key_env=data.get("api_key_env"),
        base_url=data.get("base_url"),
        timeout_seconds=float(data.get("timeout_seconds", 10.0)),
        min_seconds_between_requests=float(data.get("min_seconds_between_requests", 0.0)),
        max_requests_per_day=int(data.get("max_requests_per_day", 0)),
        enabled=bool(data.get("enabled", True)),
    )


def _parse_market_data(data: dict[str, Any]) -> MarketDataConfig:
    providers = [_parse_provider(item) for item in _require(data, "providers")]
    if not providers:
        raise ValueError("market_data.providers must not be empty")
    return MarketDataConfig(
        providers=providers,
        range_cache_ttl_seconds=float(data.get("range_cache_ttl_seconds", 3600.0)),
        live_cache_ttl_seconds=float(data.get("live_cache_ttl_seconds", 15.0)),
        series_cache_ttl_seconds=float(data.get("series_cache_ttl_seconds", 300.0)),
        quote_cache_ttl_seconds=float(data.get("quote_cache_ttl_seconds", 15.0)),
        cache_max_entries=_positive_int(data.get("cache_max_entries", 10_000), "cache_max_entries"),
        max_attempts=_positive_int(data.get("max_attempts", 2), "max_attempts"),
        retry_backoff_seconds=float(data.get("retry_backoff_seconds", 5.0)),
    )


def _parse_verification(data: dict[str, Any]) -> VerificationConfig:
    max_workers = data.get("max_workers")
    return VerificationConfig(
        batch_size=_positive_int(data.get("batch_size", 5), "batch_size"),
        batch_delay_seconds=float(data.get("batch_delay_seconds", 0.3)),
        max_workers=_positive_int(max_workers, "max_workers") if max_workers is not None else None,
    )


def _parse_ledger(data: dict[str, Any]) -> LedgerConfig:
    store = str(data.get("store", "sqlite")).lower()
    if store not in LEDGER_STORES:
        raise ValueError(f"Invalid ledger.store: {store}")
    return LedgerConfig(
        store=store,
        sqlite_path=str(data.get("sqlite_path", "runtime/journal.db")),
        tick_value=float(data.get("tick_value", 1.0)),
        duplicate_window_seconds=float(data.get("duplicate_window_seconds", 5.0)),
    )


def _parse_monitoring(data: dict[str, Any]) -> MonitoringConfig:
    return MonitoringConfig(
        audit_log_path=str(data.get("audit_log_path", "runtime/audit.jsonl")),
    )


def serialize_config(config: JournalConfig) -> dict[str, Any]:
    return asdict(config)
