"""Runtime context and component wiring."""

from trade_journal.runtime.builders import (
    JournalServices,
    build_gateway,
    build_provider,
    build_services,
    build_store,
)
from trade_journal.runtime.context import RunContext, create_run_context

__all__ = [
    "JournalServices",
    "RunContext",
    "build_gateway",
    "build_provider",
    "build_services",
    "build_store",
    "create_run_context",
]
