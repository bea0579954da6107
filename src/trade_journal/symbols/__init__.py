"""Symbol normalization."""

from trade_journal.symbols.models import AssetClass, InstrumentSpec, NormalizedSymbol
from trade_journal.symbols.normalizer import (
    SymbolNormalizer,
    default_normalizer,
    instrument_spec,
    normalize_symbol,
    pip_size_for,
    strip_prefix,
)

__all__ = [
    "AssetClass",
    "InstrumentSpec",
    "NormalizedSymbol",
    "SymbolNormalizer",
    "default_normalizer",
    "instrument_spec",
    "normalize_symbol",
    "pip_size_for",
    "strip_prefix",
]
