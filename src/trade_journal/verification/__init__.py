"""Fill authenticity verification."""

from trade_journal.verification.engine import BatchVerification, VerificationEngine, merge_statuses, summarize
from trade_journal.verification.models import (
    LegSide,
    LegStatus,
    LegVerification,
    TradeToVerify,
    TradeVerificationResult,
    VerificationSummary,
)
from trade_journal.verification.scoring import score_leg, tolerance_for

__all__ = [
    "BatchVerification",
    "LegSide",
    "LegStatus",
    "LegVerification",
    "TradeToVerify",
    "TradeVerificationResult",
    "VerificationEngine",
    "VerificationSummary",
    "merge_statuses",
    "score_leg",
    "summarize",
    "tolerance_for",
]
