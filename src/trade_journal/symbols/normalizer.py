"""Map broker and platform tickers to a canonical asset identity.

Classification is heuristic. An explicit instrument-type hint always wins over
pattern detection; ambiguous tickers (a six letter stock symbol made of two
currency codes, a stock that shares a crypto prefix) may be misclassified
without a hint.
"""

from __future__ import annotations

import re
import threading
from typing import Iterable, Optional

from trade_journal.symbols.models import AssetClass, InstrumentSpec, NormalizedSymbol

FOREX_CURRENCIES = frozenset(
    {
        "EUR", "USD", "GBP", "JPY", "CHF", "AUD", "CAD", "NZD", "HKD", "SGD",
        "SEK", "DKK", "NOK", "MXN", "ZAR", "TRY", "PLN", "CNY", "CNH", "INR",
        "BRL", "RUB", "KRW", "THB", "MYR", "IDR", "PHP", "CZK", "HUF", "ILS",
    }
)

CRYPTO_BASES = frozenset(
    {
        "BTC", "ETH", "XRP", "LTC", "BCH", "ADA", "DOT", "LINK", "BNB", "SOL",
        "DOGE", "SHIB", "AVAX", "MATIC", "UNI", "ATOM", "XLM", "ALGO", "VET",
        "FIL", "AAVE", "EOS", "XTZ", "THETA", "XMR", "NEO", "DASH", "ZEC", "COMP",
        "MKR", "SNX", "YFI", "SUSHI", "CRV", "BAT", "ENJ", "MANA", "SAND", "AXS",
        "FTM", "ONE", "NEAR", "FLOW", "HBAR", "ICP", "EGLD", "XEC", "QNT", "APE",
    }
)
# Longest first so SHIB is tried before shorter overlapping bases.
_CRYPTO_BASES_ORDERED = sorted(CRYPTO_BASES, key=len, reverse=True)

CRYPTO_QUOTES = ("USDT", "USDC", "BUSD", "USD", "EUR", "GBP", "BTC", "ETH")
STABLE_QUOTES = frozenset({"USDT", "USDC", "BUSD"})

METAL_PREFIXES = ("XAU", "XAG", "XPT", "XPD")
METAL_ALIASES = {"GOLD": "XAUUSD", "SILVER": "XAGUSD", "PLATINUM": "XPTUSD", "PALLADIUM": "XPDUSD"}

# keyword -> (primary ticker, secondary ticker)
INDEX_TICKERS: dict[str, tuple[Optional[str], Optional[str]]] = {
    "SPX": ("I:SPX", "^GSPC"),
    "SPX500": ("I:SPX", "^GSPC"),
    "US500": ("I:SPX", "^GSPC"),
    "US30": ("I:DJI", "^DJI"),
    "DJI": ("I:DJI", "^DJI"),
    "DJ30": ("I:DJI", "^DJI"),
    "NAS100": ("I:NDX", "^NDX"),
    "US100": ("I:NDX", "^NDX"),
    "NDX": ("I:NDX", "^NDX"),
    "USTEC": ("I:NDX", "^NDX"),
    "VIX": ("I:VIX", "^VIX"),
    "RUT": ("I:RUT", "^RUT"),
    "US2000": ("I:RUT", "^RUT"),
    "GER40": (None, "^GDAXI"),
    "DE40": (None, "^GDAXI"),
    "DAX": (None, "^GDAXI"),
    "UK100": (None, "^FTSE"),
    "FTSE": (None, "^FTSE"),
    "JP225": (None, "^N225"),
    "NIKKEI": (None, "^N225"),
}

COMMODITY_TICKERS: dict[str, tuple[Optional[str], Optional[str]]] = {
    "WTI": (None, "OANDA:WTICO_USD"),
    "USOIL": (None, "OANDA:WTICO_USD"),
    "XTIUSD": (None, "OANDA:WTICO_USD"),
    "CRUDE": (None, "OANDA:WTICO_USD"),
    "BRENT": (None, "OANDA:BCO_USD"),
    "UKOIL": (None, "OANDA:BCO_USD"),
    "XBRUSD": (None, "OANDA:BCO_USD"),
    "NATGAS": (None, "OANDA:NATGAS_USD"),
    "XNGUSD": (None, "OANDA:NATGAS_USD"),
    "COPPER": (None, "OANDA:XCU_USD"),
    "XCUUSD": (None, "OANDA:XCU_USD"),
    "CORN": (None, "OANDA:CORN_USD"),
    "WHEAT": (None, "OANDA:WHEAT_USD"),
    "SOYBEAN": (None, "OANDA:SOYBN_USD"),
    "SUGAR": (None, "OANDA:SUGAR_USD"),
}

FOREX_VENUES = ("FX:", "FOREX:", "OANDA:", "FXCM:", "C:")
CRYPTO_VENUES = (
    "BINANCE:", "CRYPTO:", "COINBASE:", "KRAKEN:", "BITSTAMP:", "BITFINEX:",
    "GEMINI:", "KUCOIN:", "BYBIT:", "HUOBI:", "OKX:", "MEXC:", "X:",
)
STOCK_VENUES = ("NASDAQ:", "NYSE:", "AMEX:", "ARCA:", "BATS:", "IEX:")
FUTURES_VENUES = ("CME:", "NYMEX:", "COMEX:", "CBOT:", "ICE:", "EUREX:")
INDEX_VENUES = ("I:", "TVC:", "INDEX:")

_ALL_PREFIXES = FOREX_VENUES + CRYPTO_VENUES + STOCK_VENUES + FUTURES_VENUES + INDEX_VENUES

_HINTS: dict[str, AssetClass | str] = {
    "forex": AssetClass.FOREX,
    "fx": AssetClass.FOREX,
    "crypto": AssetClass.CRYPTO,
    "stock": AssetClass.STOCK,
    "stocks": AssetClass.STOCK,
    "equity": AssetClass.STOCK,
    "metal": AssetClass.METAL,
    "metals": AssetClass.METAL,
    "index": AssetClass.INDEX,
    "indices": AssetClass.INDEX,
    "commodity": AssetClass.COMMODITY,
    "commodities": AssetClass.COMMODITY,
    "futures": "futures",
    "future": "futures",
    "options": "options",
    "option": "options",
}

_FUTURES_PATTERN = re.compile(r"^(/[A-Z0-9]+|[A-Z]{1,3}[FGHJKMNQUVXZ]\d{1,2}!?|[A-Z]{1,3}1!)$")
_OPTIONS_PATTERN = re.compile(r"^[A-Z]{1,6}\d{6}[CP]\d{8}$")


def strip_prefix(symbol: str) -> str:
    upper = symbol.upper()
    for prefix in _ALL_PREFIXES:
        if upper.startswith(prefix):
            return symbol[len(prefix):]
    return symbol


def _split_pair(clean: str) -> Optional[tuple[str, str]]:
    for sep in ("/", "-", "_"):
        if sep in clean:
            parts = clean.split(sep)
            if len(parts) == 2 and parts[0] and parts[1]:
                return parts[0], parts[1]
    return None


def _crypto_pair(clean: str) -> Optional[tuple[str, str]]:
    pair = _split_pair(clean)
    if pair is not None:
        base, quote = pair
        if base in CRYPTO_BASES and quote in CRYPTO_QUOTES:
            return base, quote
        return None
    for base in _CRYPTO_BASES_ORDERED:
        if not clean.startswith(base):
            continue
        remainder = clean[len(base):]
        if remainder == "":
            return base, "USD"
        if remainder in CRYPTO_QUOTES:
            return base, remainder
    return None


def _forex_pair(clean: str) -> Optional[tuple[str, str]]:
    pair = _split_pair(clean)
    if pair is not None:
        base, quote = pair
        if base in FOREX_CURRENCIES and quote in FOREX_CURRENCIES:
            return base, quote
        return None
    if len(clean) == 6 and clean[:3] in FOREX_CURRENCIES and clean[3:] in FOREX_CURRENCIES:
        return clean[:3], clean[3:]
    return None


def _metal_pair(clean: str) -> Optional[tuple[str, str]]:
    clean = METAL_ALIASES.get(clean, clean)
    flat = clean.replace("/", "").replace("-", "").replace("_", "")
    for prefix in METAL_PREFIXES:
        if flat.startswith(prefix):
            quote = flat[len(prefix):] or "USD"
            return prefix, quote
    return None


def _detect(upper: str, clean: str) -> AssetClass | str:
    if upper.startswith(FOREX_VENUES):
        if _metal_pair(clean) is not None:
            return AssetClass.METAL
        if clean in COMMODITY_TICKERS:
            return AssetClass.COMMODITY
        return AssetClass.FOREX
    if upper.startswith(CRYPTO_VENUES):
        return AssetClass.CRYPTO
    if upper.startswith(STOCK_VENUES):
        return AssetClass.STOCK
    if upper.startswith(FUTURES_VENUES):
        return "futures"
    if upper.startswith(INDEX_VENUES):
        return AssetClass.INDEX

    if _metal_pair(clean) is not None:
        return AssetClass.METAL
    if _forex_pair(clean) is not None:
        return AssetClass.FOREX
    if _crypto_pair(clean) is not None:
        return AssetClass.CRYPTO
    if clean in INDEX_TICKERS:
        return AssetClass.INDEX
    if clean in COMMODITY_TICKERS:
        return AssetClass.COMMODITY
    if _OPTIONS_PATTERN.match(clean):
        return "options"
    if _FUTURES_PATTERN.match(clean):
        return "futures"
    # Anything unrecognised is treated as an equity ticker.
    return AssetClass.STOCK


def pip_size_for(asset_class: AssetClass, base: Optional[str] = None, quote: Optional[str] = None) -> float:
    if asset_class == AssetClass.FOREX:
        return 0.01 if quote == "JPY" else 0.0001
    if asset_class == AssetClass.METAL:
        return 0.1 if base == "XAU" else 0.01
    return 0.01


class SymbolNormalizer:
    """Pure normalization with a bounded (raw, hint) keyed cache; oldest entries go first."""

    def __init__(self, max_entries: int = 4096) -> None:
        self.max_entries = max_entries
        self._cache: dict[tuple[str, str], NormalizedSymbol] = {}
        self._lock = threading.Lock()

    def normalize(self, symbol: Optional[str], instrument_type: Optional[str] = None) -> NormalizedSymbol:
        raw = symbol if isinstance(symbol, str) else ("" if symbol is None else str(symbol))
        key = (raw, (instrument_type or "").strip().lower())
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached
        result = self._normalize(raw, key[1])
        with self._lock:
            if key not in self._cache and self.max_entries > 0:
                while len(self._cache) >= self.max_entries:
                    del self._cache[next(iter(self._cache))]
            self._cache[key] = result
        return result

    def normalize_many(self, items: Iterable[tuple[str, Optional[str]]]) -> list[NormalizedSymbol]:
        return [self.normalize(symbol, hint) for symbol, hint in items]

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def cache_stats(self) -> dict:
        with self._lock:
            return {"size": len(self._cache), "symbols": sorted({raw for raw, _ in self._cache})}

    def _normalize(self, raw: str, hint: str) -> NormalizedSymbol:
        trimmed = raw.strip()
        if not trimmed:
            return NormalizedSymbol(
                original=raw,
                asset_class=AssetClass.UNSUPPORTED,
                is_supported=False,
                reason="Empty symbol",
            )

        upper = trimmed.upper()
        clean = strip_prefix(upper)
        detected = _HINTS.get(hint) or _detect(upper, clean)

        if detected in {"futures", "options"}:
            return NormalizedSymbol(
                original=raw,
                asset_class=AssetClass.UNSUPPORTED,
                is_supported=False,
                reason=f"{detected} not supported by data provider",
            )

        asset_class = AssetClass(detected)
        base, quote, primary, secondary = self._tickers(asset_class, clean)
        supported = primary is not None or secondary is not None
        return NormalizedSymbol(
            original=raw,
            asset_class=asset_class if supported else AssetClass.UNSUPPORTED,
            is_supported=supported,
            primary_ticker=primary,
            secondary_ticker=secondary,
            base=base,
            quote=quote,
            pip_size=pip_size_for(asset_class, base, quote),
            reason=None if supported else "Could not convert to supported format",
        )

    def _tickers(self, asset_class: AssetClass, clean: str):
        if asset_class == AssetClass.FOREX:
            pair = _forex_pair(clean) or _split_pair(clean)
            if pair is None and len(clean) == 6 and clean.isalpha():
                pair = (clean[:3], clean[3:])
            if pair is None:
                flat = re.sub(r"[^A-Z]", "", clean)
                return None, None, (f"C:{flat}" if flat else None), None
            base, quote = pair
            return base, quote, f"C:{base}{quote}", f"OANDA:{base}_{quote}"

        if asset_class == AssetClass.CRYPTO:
            pair = _crypto_pair(clean) or _split_pair(clean)
            if pair is None:
                flat = re.sub(r"[^A-Z0-9]", "", clean)
                if not flat:
                    return None, None, None, None
                return None, None, f"X:{flat}", f"BINANCE:{flat}"
            base, quote = pair
            primary_quote = "USD" if quote in STABLE_QUOTES else quote
            secondary_quote = "USDT" if quote in STABLE_QUOTES or quote == "USD" else quote
            return base, quote, f"X:{base}{primary_quote}", f"BINANCE:{base}{secondary_quote}"

        if asset_class == AssetClass.METAL:
            pair = _metal_pair(clean)
            if pair is None:
                return None, None, None, None
            base, quote = pair
            return base, quote, f"C:{base}{quote}", f"OANDA:{base}_{quote}"

        if asset_class == AssetClass.INDEX:
            primary, secondary = INDEX_TICKERS.get(clean, (f"I:{clean}", None))
            return None, None, primary, secondary

        if asset_class == AssetClass.COMMODITY:
            primary, secondary = COMMODITY_TICKERS.get(clean, (None, None))
            return None, None, primary, secondary

        if not re.match(r"^[A-Z0-9.\-]+$", clean):
            return None, None, None, None
        return None, None, clean, clean


def instrument_spec(normalized: NormalizedSymbol, tick_value: float = 1.0) -> InstrumentSpec:
    asset_class = normalized.asset_class
    if asset_class.uses_pips:
        return InstrumentSpec(
            asset_class=asset_class,
            pip_size=normalized.pip_size,
            pip_value=normalized.pip_size,
        )
    if asset_class.uses_ticks:
        return InstrumentSpec(
            asset_class=asset_class,
            tick_size=normalized.pip_size,
            tick_value=tick_value,
        )
    return InstrumentSpec(asset_class=asset_class)


_default = SymbolNormalizer()


def normalize_symbol(symbol: Optional[str], instrument_type: Optional[str] = None) -> NormalizedSymbol:
    return _default.normalize(symbol, instrument_type)


def default_normalizer() -> SymbolNormalizer:
    return _default
