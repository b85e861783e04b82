"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
    JournalEntryStatusChange,
)
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    "Account",
    "AccountType",
    "NormalBalance",
    "JournalEntry",
    "JournalEntryLine",
    "JournalEntryStatus",
    "JournalEntryStatusChange",
    "SequenceCounter",
]
