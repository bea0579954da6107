"""Wire journal components from a loaded config."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from trade_journal.config.models import JournalConfig, LedgerConfig, MarketDataConfig, ProviderConfig
from trade_journal.ingest.ingestor import TradeIngestor
from trade_journal.ledger.ledger import PositionLedger
from trade_journal.ledger.store import InMemoryLotStore, LotStore, SQLiteLotStore
from trade_journal.market_data.cache import TTLCache
from trade_journal.market_data.gateway import MarketDataGateway
from trade_journal.market_data.providers import FinnhubProvider, MarketDataProvider, PolygonProvider
from trade_journal.market_data.throttle import RateLimiter
from trade_journal.monitoring.audit import AuditLog
from trade_journal.runtime.context import RunContext
from trade_journal.symbols.normalizer import SymbolNormalizer, default_normalizer
from trade_journal.verification.engine import VerificationEngine

PROVIDER_TYPES: dict[str, Callable[..., MarketDataProvider]] = {
    "polygon": PolygonProvider,
    "finnhub": FinnhubProvider,
}


@dataclass
class JournalServices:
    ledger: PositionLedger
    ingestor: TradeIngestor
    gateway: MarketDataGateway
    verifier: VerificationEngine
    audit_log: Optional[AuditLog] = None

    def close(self) -> None:
        self.ledger.store.close()


def build_provider(config: ProviderConfig, session: Optional[requests.Session] = None) -> MarketDataProvider:
    factory = PROVIDER_TYPES.get(config.name)
    if factory is None:
        raise ValueError(f"Unknown market data provider: {config.name}")
    limiter = None
    if config.min_seconds_between_requests > 0 or config.max_requests_per_day > 0:
        limiter = RateLimiter(
            min_seconds_between_requests=config.min_seconds_between_requests,
            max_requests_per_day=config.max_requests_per_day,
        )
    api_key = os.environ.get(config.api_key_env) if config.api_key_env else None
    return factory(
        api_key=api_key,
        base_url=config.base_url,
        session=session,
        timeout_seconds=config.timeout_seconds,
        rate_limiter=limiter,
    )


def build_gateway(config: MarketDataConfig, session: Optional[requests.Session] = None) -> MarketDataGateway:
    providers = [build_provider(item, session=session) for item in config.providers if item.enabled]
    return MarketDataGateway(
        providers,
        range_cache=TTLCache(ttl_seconds=config.range_cache_ttl_seconds, max_entries=config.cache_max_entries),
        live_cache=TTLCache(ttl_seconds=config.live_cache_ttl_seconds, max_entries=config.cache_max_entries),
        series_cache=TTLCache(ttl_seconds=config.series_cache_ttl_seconds, max_entries=config.cache_max_entries),
        quote_cache=TTLCache(ttl_seconds=config.quote_cache_ttl_seconds, max_entries=config.cache_max_entries),
        max_attempts=config.max_attempts,
        retry_backoff_seconds=config.retry_backoff_seconds,
    )


def build_store(config: LedgerConfig) -> LotStore:
    if config.store == "memory":
        return InMemoryLotStore()
    return SQLiteLotStore(config.sqlite_path)


def build_services(
    config: JournalConfig,
    context: Optional[RunContext] = None,
    gateway: Optional[MarketDataGateway] = None,
    store: Optional[LotStore] = None,
    normalizer: Optional[SymbolNormalizer] = None,
) -> JournalServices:
    audit_log = None
    if context is not None:
        audit_log = AuditLog(config.monitoring.audit_log_path, run_id=context.run_id, config_hash=context.config_hash)
    normalizer = normalizer or default_normalizer()
    gateway = gateway or build_gateway(config.market_data)
    ledger = PositionLedger(
        store or build_store(config.ledger),
        normalizer=normalizer,
        audit_log=audit_log,
        tick_value=config.ledger.tick_value,
    )
    ingestor = TradeIngestor(
        ledger,
        duplicate_window_seconds=config.ledger.duplicate_window_seconds,
        audit_log=audit_log,
    )
    verifier = VerificationEngine(
        gateway,
        normalizer=normalizer,
        batch_size=config.verification.batch_size,
        batch_delay_seconds=config.verification.batch_delay_seconds,
        max_workers=config.verification.max_workers,
        audit_log=audit_log,
    )
    return JournalServices(ledger=ledger, ingestor=ingestor, gateway=gateway, verifier=verifier, audit_log=audit_log)
