"""Selectors for the ledger kernel (read side)."""

from ledger_kernel.selectors.journal_selector import JournalSelector

__all__ = ["JournalSelector"]
