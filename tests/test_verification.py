from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone

import pytest

from trade_journal.market_data import InMemoryProvider, MarketDataGateway, PriceBar, PriceRange, ProviderStatus
from trade_journal.monitoring import AuditLog
from trade_journal.symbols import normalize_symbol
from trade_journal.verification import (
    LegSide,
    LegStatus,
    LegVerification,
    TradeToVerify,
    VerificationEngine,
    merge_statuses,
    score_leg,
    tolerance_for,
)
from trade_journal.verification.engine import combine_legs
from trade_journal.verification.scoring import NO_DATA_NOTE

T0 = datetime(2024, 6, 3, 14, 30, tzinfo=timezone.utc)
AAPL_BAR = PriceBar(time=T0, open=100.0, high=101.0, low=99.0, close=100.5)
WIDE = PriceRange(low=90.0, high=110.0, open=100.0, close=100.0)


def _engine(sleeps: list | None = None, audit_log=None, **kwargs) -> VerificationEngine:
    polygon = InMemoryProvider(
        "polygon",
        {
            "AAPL": [AAPL_BAR, PriceBar(time=T0 + timedelta(minutes=30), open=104.0, high=105.0, low=103.0, close=104.5)],
            "C:EURUSD": [PriceBar(time=T0, open=1.0850, high=1.0860, low=1.0840, close=1.0855)],
        },
    )
    finnhub = InMemoryProvider("finnhub", use_secondary_ticker=True)
    gateway = MarketDataGateway([polygon, finnhub], sleep=lambda _: None)
    recorder = sleeps if sleeps is not None else []
    return VerificationEngine(gateway, sleep=recorder.append, audit_log=audit_log, **kwargs)


def _trade(trade_id: str = "t1", symbol: str = "AAPL", entry: float = 100.02, exit_price=None, **kwargs) -> TradeToVerify:
    return TradeToVerify(
        id=trade_id,
        symbol=symbol,
        side="buy",
        entry_price=entry,
        entry_time=T0 + timedelta(seconds=10),
        exit_price=exit_price,
        exit_time=T0 + timedelta(minutes=30, seconds=5) if exit_price is not None else None,
        **kwargs,
    )


def _leg(score: float, status: LegStatus = LegStatus.REALISTIC, side: LegSide = LegSide.ENTRY) -> LegVerification:
    return LegVerification(
        side=side, fill_price=100.0, timestamp=T0, status=status, score=score, notes="", provider="polygon"
    )


@pytest.mark.parametrize(
    "fill,status,score",
    [
        (100.02, LegStatus.REALISTIC, 1.0),
        (100.3, LegStatus.REALISTIC, 0.9),
        (99.2, LegStatus.REALISTIC, 0.75),
        (98.9, LegStatus.IMPOSSIBLE_LOW, 0.0),
        (101.2, LegStatus.IMPOSSIBLE_HIGH, 0.0),
        (99.001, LegStatus.SUSPICIOUS_PRECISION, 0.3),
        (100.999, LegStatus.SUSPICIOUS_PRECISION, 0.3),
    ],
)
def test_score_leg_against_stock_range(fill: float, status: LegStatus, score: float) -> None:
    leg = score_leg(LegSide.ENTRY, fill, T0, normalize_symbol("AAPL"), PriceRange.from_bar(AAPL_BAR), "polygon")
    assert leg.status == status
    assert leg.score == score
    assert leg.market_low == 99.0 and leg.market_high == 101.0
    assert leg.provider == "polygon"
    assert "(via polygon)" in leg.notes


def test_fill_within_tolerance_outside_range_is_not_impossible() -> None:
    # Tolerance for stocks is 0.05% of the fill price.
    leg = score_leg(LegSide.ENTRY, 98.96, T0, normalize_symbol("AAPL"), PriceRange.from_bar(AAPL_BAR))
    assert not leg.status.is_impossible


def test_high_deviation_inside_wide_range() -> None:
    leg = score_leg(LegSide.EXIT, 102.0, T0, normalize_symbol("AAPL"), WIDE)
    assert leg.status == LegStatus.REALISTIC
    assert leg.score == 0.6
    assert leg.deviation == pytest.approx(0.02)


def test_tolerance_by_asset_class() -> None:
    assert tolerance_for(normalize_symbol("EURUSD"), 1.1) == pytest.approx(0.0002)
    assert tolerance_for(normalize_symbol("USDJPY"), 150.0) == pytest.approx(0.02)
    assert tolerance_for(normalize_symbol("BTCUSD"), 60000.0) == pytest.approx(60.0)
    assert tolerance_for(normalize_symbol("AAPL"), 200.0) == pytest.approx(0.1)


def test_unsupported_and_missing_data_are_neutral() -> None:
    unsupported = score_leg(LegSide.ENTRY, 5000.0, T0, normalize_symbol("ESZ4"), None)
    assert unsupported.status == LegStatus.UNKNOWN
    assert unsupported.score == 0.5
    assert unsupported.notes == "futures not supported by data provider"

    missing = score_leg(LegSide.ENTRY, 400.0, T0, normalize_symbol("MSFT"), None)
    assert missing.status == LegStatus.UNKNOWN
    assert missing.score == 0.5
    assert missing.notes == NO_DATA_NOTE
    assert missing.market_low is None


def test_verified_threshold() -> None:
    symbol = normalize_symbol("AAPL")
    trade = _trade()
    passing = combine_legs(trade, symbol, _leg(0.72), None, [])
    failing = combine_legs(trade, symbol, _leg(0.69), None, [])
    assert passing.verified
    assert not failing.verified


def test_impossible_leg_forces_unverified() -> None:
    symbol = normalize_symbol("AAPL")
    result = combine_legs(
        _trade(exit_price=104.0),
        symbol,
        _leg(1.0),
        _leg(0.0, LegStatus.IMPOSSIBLE_LOW, LegSide.EXIT),
        [],
    )
    assert result.impossible_flag
    assert result.score == 0.5
    assert not result.verified


def test_unknown_leg_blocks_verification() -> None:
    result = combine_legs(
        _trade(exit_price=104.0),
        normalize_symbol("AAPL"),
        _leg(1.0),
        _leg(0.5, LegStatus.UNKNOWN, LegSide.EXIT),
        [],
    )
    assert result.score == 0.75
    assert not result.verified
    assert result.has_unknown_leg


def test_merge_statuses() -> None:
    assert merge_statuses([ProviderStatus.ERROR, ProviderStatus.SUCCESS]) == ProviderStatus.SUCCESS
    assert merge_statuses([ProviderStatus.EMPTY, ProviderStatus.ERROR]) == ProviderStatus.ERROR
    assert merge_statuses([ProviderStatus.NOT_ATTEMPTED] * 2) == ProviderStatus.NOT_ATTEMPTED
    assert merge_statuses([ProviderStatus.NOT_ATTEMPTED, ProviderStatus.EMPTY]) == ProviderStatus.EMPTY


def test_verify_round_trip_trade() -> None:
    result = _engine().verify_trade(_trade(exit_price=104.3))
    assert result.verified
    assert result.score == pytest.approx(0.95)
    assert result.entry.status == LegStatus.REALISTIC
    assert result.exit.side == LegSide.EXIT
    assert result.provider == "polygon"
    assert result.normalized_symbol == "AAPL"
    assert result.asset_class == "stock"
    assert result.provider_statuses == {
        "polygon": ProviderStatus.SUCCESS,
        "finnhub": ProviderStatus.NOT_ATTEMPTED,
    }
    assert result.notes.startswith("Entry: Excellent fill")


def test_verify_forex_trade_uses_pip_tolerance() -> None:
    result = _engine().verify_trade(_trade(symbol="EUR/USD", entry=1.0835))
    assert result.entry.status == LegStatus.IMPOSSIBLE_LOW
    assert result.impossible_flag
    assert not result.verified


def test_verify_unsupported_trade() -> None:
    result = _engine().verify_trade(_trade(symbol="ESZ4", entry=5300.0))
    assert not result.verified
    assert result.entry.status == LegStatus.UNKNOWN
    assert result.unsupported_reason == "futures not supported by data provider"
    assert result.notes.startswith("Symbol: futures not supported")
    assert set(result.provider_statuses.values()) == {ProviderStatus.NOT_ATTEMPTED}


def test_verify_without_market_data() -> None:
    result = _engine().verify_trade(_trade(symbol="MSFT", entry=420.0))
    assert result.entry.notes == NO_DATA_NOTE
    assert result.score == 0.5
    assert result.provider == "none"
    assert result.provider_statuses == {"polygon": ProviderStatus.EMPTY, "finnhub": ProviderStatus.EMPTY}


def test_gateway_exception_becomes_unknown_leg() -> None:
    class ExplodingGateway:
        provider_names = ["polygon"]

        def get_range(self, symbol, instant):
            raise RuntimeError("socket closed")

    engine = VerificationEngine(ExplodingGateway(), sleep=lambda _: None)
    results = engine.verify_trades([_trade(), _trade("t2")])
    assert [result.entry.status for result in results] == [LegStatus.UNKNOWN, LegStatus.UNKNOWN]
    assert results[0].provider_statuses == {"polygon": ProviderStatus.ERROR}


def test_batch_progress_strictly_increasing(tmp_path) -> None:
    sleeps: list[float] = []
    audit = AuditLog(tmp_path / "audit.jsonl")
    engine = _engine(sleeps=sleeps, audit_log=audit)
    trades = [_trade(f"t{index}") for index in range(12)]
    progress: list[tuple[int, int]] = []

    results = engine.verify_trades(trades, on_progress=lambda done, total: progress.append((done, total)))

    assert [result.trade_id for result in results] == [trade.id for trade in trades]
    assert progress == [(5, 12), (10, 12), (12, 12)]
    assert sleeps == [0.3, 0.3]
    assert len(audit.read("trade_verified")) == 12
    assert [event["payload"]["completed"] for event in audit.read("batch_progress")] == [5, 10, 12]



def test_group_lookups_for_one_minute_share_a_single_fetch() -> None:
    class SlowProvider(InMemoryProvider):
        def fetch_bars(self, ticker, asset_class, start, end):
            time.sleep(0.1)
            return super().fetch_bars(ticker, asset_class, start, end)

    provider = SlowProvider("polygon", {"AAPL": [AAPL_BAR]})
    engine = VerificationEngine(MarketDataGateway([provider], sleep=lambda _: None), sleep=lambda _: None)

    results = engine.verify_trades([_trade(f"t{index}") for index in range(5)])

    assert [result.entry.status for result in results] == [LegStatus.REALISTIC] * 5
    assert len(provider.calls) == 1

def test_batch_cancellation_stops_after_group() -> None:
    engine = _engine()
    trades = [_trade(f"t{index}") for index in range(12)]

    batch = engine.verify_batch(trades, on_progress=lambda done, total: False)

    assert batch.cancelled
    assert len(batch.results) == 5
    assert batch.summary.total == 5


def test_batch_summary_counts() -> None:
    engine = _engine(batch_size=2)
    trades = [
        _trade("ok"),
        _trade("low", entry=98.0),
        _trade("edge", entry=99.001),
        _trade("unsupported", symbol="ESZ4", entry=5300.0),
    ]
    batch = engine.verify_batch(trades)
    summary = batch.summary

    assert not batch.cancelled
    assert summary.total == 4
    assert summary.verified == 1
    assert summary.impossible == 1
    assert summary.suspicious == 1
    assert summary.unknown == 1
    assert summary.average_score == pytest.approx((1.0 + 0.0 + 0.3 + 0.5) / 4)
    assert summary.verification_rate == 25.0
    assert summary.verified_by_provider == {"polygon": 1}
    assert engine.summarize(batch.results) == summary


def test_empty_batch() -> None:
    progress: list = []
    batch = _engine().verify_batch([], on_progress=lambda *args: progress.append(args))
    assert batch.results == []
    assert batch.summary.total == 0
    assert batch.summary.average_score == 0.0
    assert progress == []
