"""
Revenue Module.

Revenue sources and records, and the bridge that recognizes, posts and
reverses revenue in the journal ledger.
"""

from ledger_modules.revenue.bridge import RevenueLedgerBridge
from ledger_modules.revenue.config import RevenueConfig
from ledger_modules.revenue.models import (
    ApprovalStatus,
    Revenue,
    RevenueJournalResult,
    RevenueSource,
    RevenueStatus,
    UnearnedRevenueTerms,
)
from ledger_modules.revenue.service import RevenueService

__all__ = [
    "ApprovalStatus",
    "Revenue",
    "RevenueConfig",
    "RevenueJournalResult",
    "RevenueLedgerBridge",
    "RevenueService",
    "RevenueSource",
    "RevenueStatus",
    "UnearnedRevenueTerms",
]
