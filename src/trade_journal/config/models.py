"""Configuration models for journal services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    api_key_env: Optional[str] = None
    base_url: Optional[str] = None
    timeout_seconds: float = 10.0
    min_seconds_between_requests: float = 0.0
    max_requests_per_day: int = 0
    enabled: bool = True


@dataclass(frozen=True)
class MarketDataConfig:
    providers: list[ProviderConfig] = field(default_factory=list)
    range_cache_ttl_seconds: float = 3600.0
    live_cache_ttl_seconds: float = 15.0
    series_cache_ttl_seconds: float = 300.0
    quote_cache_ttl_seconds: float = 15.0
    cache_max_entries: int = 10_000
    max_attempts: int = 2
    retry_backoff_seconds: float = 5.0


@dataclass(frozen=True)
class VerificationConfig:
    batch_size: int = 5
    batch_delay_seconds: float = 0.3
    max_workers: Optional[int] = None


@dataclass(frozen=True)
class LedgerConfig:
    store: str = "sqlite"
    sqlite_path: str = "runtime/journal.db"
    tick_value: float = 1.0
    duplicate_window_seconds: float = 5.0


@dataclass(frozen=True)
class MonitoringConfig:
    audit_log_path: str = "runtime/audit.jsonl"


@dataclass(frozen=True)
class JournalConfig:
    name: str
    version: str
    run_id_prefix: str
    market_data: MarketDataConfig
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
