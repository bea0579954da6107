"""Trade and batch verification against historical market ranges."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

from trade_journal.market_data.gateway import MarketDataGateway
from trade_journal.market_data.models import ProviderStatus, RangeLookup
from trade_journal.symbols.models import NormalizedSymbol
from trade_journal.symbols.normalizer import SymbolNormalizer, default_normalizer
from trade_journal.verification.models import (
    LegSide,
    LegStatus,
    LegVerification,
    TradeToVerify,
    TradeVerificationResult,
    VerificationSummary,
)
from trade_journal.verification.scoring import score_leg

logger = logging.getLogger(__name__)

VERIFIED_THRESHOLD = 0.7

ProgressCallback = Callable[[int, int], Optional[bool]]


@dataclass(frozen=True)
class BatchVerification:
    results: list[TradeVerificationResult]
    summary: VerificationSummary
    cancelled: bool = False


def merge_statuses(statuses: Sequence[ProviderStatus]) -> ProviderStatus:
    if not statuses:
        return ProviderStatus.NOT_ATTEMPTED
    if ProviderStatus.SUCCESS in statuses:
        return ProviderStatus.SUCCESS
    if ProviderStatus.ERROR in statuses:
        return ProviderStatus.ERROR
    if all(status == ProviderStatus.NOT_ATTEMPTED for status in statuses):
        return ProviderStatus.NOT_ATTEMPTED
    return ProviderStatus.EMPTY


def combine_legs(
    trade: TradeToVerify,
    symbol: NormalizedSymbol,
    entry: LegVerification,
    exit_leg: Optional[LegVerification],
    lookups: Sequence[RangeLookup],
) -> TradeVerificationResult:
    legs = [entry] if exit_leg is None else [entry, exit_leg]
    score = sum(leg.score for leg in legs) / len(legs)
    impossible = any(leg.status.is_impossible for leg in legs)
    suspicious = any(leg.status == LegStatus.SUSPICIOUS_PRECISION for leg in legs)
    unknown = any(leg.status == LegStatus.UNKNOWN for leg in legs)
    verified = symbol.is_supported and not impossible and score >= VERIFIED_THRESHOLD and not unknown

    provider = next((leg.provider for leg in legs if leg.provider != "none"), "none")
    names: list[str] = []
    for lookup in lookups:
        for name in lookup.statuses:
            if name not in names:
                names.append(name)
    statuses = {
        name: merge_statuses([lookup.statuses[name] for lookup in lookups if name in lookup.statuses])
        for name in names
    }

    notes = []
    if not symbol.is_supported:
        notes.append(f"Symbol: {symbol.reason or 'Unsupported'}")
    notes.append(f"Entry: {entry.notes}")
    if exit_leg is not None:
        notes.append(f"Exit: {exit_leg.notes}")

    return TradeVerificationResult(
        trade_id=trade.id,
        verified=verified,
        score=score,
        entry=entry,
        exit=exit_leg,
        suspicious_flag=suspicious,
        impossible_flag=impossible,
        original_symbol=trade.symbol,
        normalized_symbol=symbol.canonical,
        asset_class=symbol.asset_class.value,
        provider=provider,
        provider_statuses=statuses,
        unsupported_reason=None if symbol.is_supported else symbol.reason,
        notes=" | ".join(notes),
    )


def summarize(results: Iterable[TradeVerificationResult]) -> VerificationSummary:
    results = list(results)
    total = len(results)
    verified = [result for result in results if result.verified]
    by_provider: dict[str, int] = {}
    for result in verified:
        by_provider[result.provider] = by_provider.get(result.provider, 0) + 1
    return VerificationSummary(
        total=total,
        verified=len(verified),
        impossible=sum(1 for result in results if result.impossible_flag),
        suspicious=sum(1 for result in results if result.suspicious_flag and not result.impossible_flag),
        unknown=sum(1 for result in results if result.has_unknown_leg),
        average_score=sum(result.score for result in results) / total if total else 0.0,
        verification_rate=len(verified) / total * 100 if total else 0.0,
        verified_by_provider=by_provider,
    )


class VerificationEngine:
    def __init__(
        self,
        gateway: MarketDataGateway,
        normalizer: Optional[SymbolNormalizer] = None,
        batch_size: int = 5,
        batch_delay_seconds: float = 0.3,
        max_workers: Optional[int] = None,
        sleep: Optional[Callable[[float], None]] = None,
        audit_log: Optional[object] = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.gateway = gateway
        self.normalizer = normalizer or default_normalizer()
        self.batch_size = batch_size
        self.batch_delay_seconds = batch_delay_seconds
        self.max_workers = max_workers or batch_size * 2
        self._sleep = sleep or time.sleep
        self._audit_log = audit_log

    def _log(self, event: str, payload: dict) -> None:
        if self._audit_log is None:
            return
        self._audit_log.log(event, payload)

    def verify_trade(self, trade: TradeToVerify) -> TradeVerificationResult:
        symbol = self.normalizer.normalize(trade.symbol, trade.instrument_type)
        entry_lookup = self._lookup(symbol, trade.entry_time)
        exit_lookup = self._lookup(symbol, trade.exit_time) if trade.has_exit else None
        return self._finish(trade, symbol, entry_lookup, exit_lookup)

    def verify_trades(
        self,
        trades: Sequence[TradeToVerify],
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[TradeVerificationResult]:
        return self._run(trades, on_progress)[0]

    def verify_batch(
        self,
        trades: Sequence[TradeToVerify],
        on_progress: Optional[ProgressCallback] = None,
    ) -> BatchVerification:
        results, cancelled = self._run(trades, on_progress)
        return BatchVerification(results=results, summary=summarize(results), cancelled=cancelled)

    def summarize(self, results: Iterable[TradeVerificationResult]) -> VerificationSummary:
        return summarize(results)

    def _run(
        self,
        trades: Sequence[TradeToVerify],
        on_progress: Optional[ProgressCallback],
    ) -> tuple[list[TradeVerificationResult], bool]:
        trades = list(trades)
        total = len(trades)
        results: list[TradeVerificationResult] = []
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            for start in range(0, total, self.batch_size):
                group = trades[start : start + self.batch_size]
                results.extend(self._verify_group(pool, group))
                completed = len(results)
                self._log("batch_progress", {"completed": completed, "total": total})
                if on_progress is not None and on_progress(completed, total) is False:
                    if completed < total:
                        logger.info("verification cancelled after %s of %s trades", completed, total)
                        return results, True
                if completed < total and self.batch_delay_seconds > 0:
                    self._sleep(self.batch_delay_seconds)
        return results, False

    def _verify_group(self, pool: ThreadPoolExecutor, group: Sequence[TradeToVerify]) -> list[TradeVerificationResult]:
        symbols = [self.normalizer.normalize(trade.symbol, trade.instrument_type) for trade in group]
        entry_futures = [pool.submit(self._lookup, symbol, trade.entry_time) for trade, symbol in zip(group, symbols)]
        exit_futures = [
            pool.submit(self._lookup, symbol, trade.exit_time) if trade.has_exit else None
            for trade, symbol in zip(group, symbols)
        ]
        results = []
        for trade, symbol, entry_future, exit_future in zip(group, symbols, entry_futures, exit_futures):
            exit_lookup = exit_future.result() if exit_future is not None else None
            results.append(self._finish(trade, symbol, entry_future.result(), exit_lookup))
        return results

    def _lookup(self, symbol: NormalizedSymbol, instant: datetime) -> RangeLookup:
        try:
            return self.gateway.get_range(symbol, instant)
        except Exception:
            logger.warning("range lookup failed for %s at %s", symbol.original, instant, exc_info=True)
            statuses = {name: ProviderStatus.ERROR for name in self.gateway.provider_names}
            return RangeLookup(range=None, provider="none", statuses=statuses)

    def _finish(
        self,
        trade: TradeToVerify,
        symbol: NormalizedSymbol,
        entry_lookup: RangeLookup,
        exit_lookup: Optional[RangeLookup],
    ) -> TradeVerificationResult:
        entry = score_leg(
            LegSide.ENTRY, trade.entry_price, trade.entry_time, symbol, entry_lookup.range, entry_lookup.provider
        )
        exit_leg = None
        lookups = [entry_lookup]
        if exit_lookup is not None:
            exit_leg = score_leg(
                LegSide.EXIT, trade.exit_price, trade.exit_time, symbol, exit_lookup.range, exit_lookup.provider
            )
            lookups.append(exit_lookup)
        result = combine_legs(trade, symbol, entry, exit_leg, lookups)
        self._log(
            "trade_verified",
            {
                "trade_id": result.trade_id,
                "symbol": result.original_symbol,
                "verified": result.verified,
                "score": result.score,
                "impossible": result.impossible_flag,
                "suspicious": result.suspicious_flag,
                "provider": result.provider,
            },
        )
        return result
