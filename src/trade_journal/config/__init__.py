"""Config loading and freezing."""

from trade_journal.config.loader import (
    compute_config_hash,
    freeze_config,
    load_config,
    serialize_config,
    verify_config_lock,
)
from trade_journal.config.models import (
    JournalConfig,
    LedgerConfig,
    MarketDataConfig,
    MonitoringConfig,
    ProviderConfig,
    VerificationConfig,
)

__all__ = [
    "JournalConfig",
    "LedgerConfig",
    "MarketDataConfig",
    "MonitoringConfig",
    "ProviderConfig",
    "VerificationConfig",
    "compute_config_hash",
    "freeze_config",
    "load_config",
    "serialize_config",
    "verify_config_lock",
]
