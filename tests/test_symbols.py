from __future__ import annotations

import pytest

from trade_journal.symbols import (
    AssetClass,
    SymbolNormalizer,
    instrument_spec,
    normalize_symbol,
    pip_size_for,
    strip_prefix,
)


def test_binance_crypto_pair_collapses_stable_quote_for_primary() -> None:
    result = normalize_symbol("BINANCE:BTCUSDT")
    assert result.asset_class == AssetClass.CRYPTO
    assert result.is_supported
    assert (result.base, result.quote) == ("BTC", "USDT")
    assert result.primary_ticker == "X:BTCUSD"
    assert result.secondary_ticker == "BINANCE:BTCUSDT"


def test_slash_forex_pair() -> None:
    result = normalize_symbol("EUR/USD")
    assert result.asset_class == AssetClass.FOREX
    assert result.primary_ticker == "C:EURUSD"
    assert result.secondary_ticker == "OANDA:EUR_USD"
    assert result.pip_size == 0.0001


def test_plain_stock_ticker() -> None:
    result = normalize_symbol("AAPL")
    assert result.asset_class == AssetClass.STOCK
    assert result.primary_ticker == "AAPL"
    assert result.secondary_ticker == "AAPL"
    assert result.canonical == "AAPL"


def test_venue_prefixed_stock() -> None:
    result = normalize_symbol("NASDAQ:TSLA")
    assert result.asset_class == AssetClass.STOCK
    assert result.primary_ticker == "TSLA"


def test_jpy_quote_uses_two_decimal_pip() -> None:
    result = normalize_symbol("USDJPY")
    assert result.asset_class == AssetClass.FOREX
    assert result.pip_size == 0.01


def test_gold_alias_is_metal() -> None:
    result = normalize_symbol("GOLD")
    assert result.asset_class == AssetClass.METAL
    assert result.primary_ticker == "C:XAUUSD"
    assert result.pip_size == 0.1


def test_index_keyword() -> None:
    result = normalize_symbol("US500")
    assert result.asset_class == AssetClass.INDEX
    assert result.primary_ticker == "I:SPX"


def test_commodity_without_primary_ticker_still_supported() -> None:
    result = normalize_symbol("USOIL")
    assert result.asset_class == AssetClass.COMMODITY
    assert result.primary_ticker is None
    assert result.secondary_ticker == "OANDA:WTICO_USD"
    assert result.is_supported


@pytest.mark.parametrize("symbol,reason", [("ESZ4", "futures"), ("AAPL240621C00190000", "options")])
def test_derivatives_are_unsupported(symbol: str, reason: str) -> None:
    result = normalize_symbol(symbol)
    assert not result.is_supported
    assert result.asset_class == AssetClass.UNSUPPORTED
    assert result.reason == f"{reason} not supported by data provider"


def test_empty_symbol() -> None:
    result = normalize_symbol("   ")
    assert not result.is_supported
    assert result.reason == "Empty symbol"


def test_hint_overrides_detection() -> None:
    assert normalize_symbol("CADCHF").asset_class == AssetClass.FOREX
    assert normalize_symbol("CADCHF", "stock").asset_class == AssetClass.STOCK
    assert normalize_symbol("SOLUSD", "crypto").asset_class == AssetClass.CRYPTO
    assert normalize_symbol("ES", "futures").reason == "futures not supported by data provider"


def test_cache_keyed_by_symbol_and_hint() -> None:
    normalizer = SymbolNormalizer()
    first = normalizer.normalize("ETHUSD")
    assert normalizer.normalize("ETHUSD") is first
    normalizer.normalize("ETHUSD", "crypto")
    assert normalizer.cache_stats()["size"] == 2
    normalizer.clear_cache()
    assert normalizer.cache_stats()["size"] == 0



def test_cache_evicts_oldest_beyond_cap() -> None:
    normalizer = SymbolNormalizer(max_entries=2)
    first = normalizer.normalize("AAPL")
    normalizer.normalize("MSFT")
    normalizer.normalize("EURUSD")
    assert normalizer.cache_stats() == {"size": 2, "symbols": ["EURUSD", "MSFT"]}
    assert normalizer.normalize("AAPL") is not first
    assert normalizer.normalize("AAPL") == first


def test_unrecognised_ticker_shapes_default_to_stock() -> None:
    assert normalize_symbol("BRK.B").asset_class == AssetClass.STOCK
    assert normalize_symbol("ABCDEFGH").asset_class == AssetClass.STOCK

def test_strip_prefix_and_pip_sizes() -> None:
    assert strip_prefix("OANDA:EUR_USD") == "EUR_USD"
    assert strip_prefix("AAPL") == "AAPL"
    assert pip_size_for(AssetClass.METAL, "XAG", "USD") == 0.01
    assert pip_size_for(AssetClass.STOCK) == 0.01


def test_instrument_spec_per_asset_class() -> None:
    forex = instrument_spec(normalize_symbol("GBPUSD"))
    assert forex.pip_size == 0.0001 and forex.tick_size is None

    metal = instrument_spec(normalize_symbol("XAUUSD"), tick_value=2.5)
    assert metal.tick_size == 0.1 and metal.tick_value == 2.5

    stock = instrument_spec(normalize_symbol("MSFT"))
    assert stock.pip_size is None and stock.tick_size is None
