"""Ledger kernel services (write side)."""

from ledger_kernel.services.audit_service import (
    AuditAction,
    AuditRecord,
    AuditService,
    InMemoryAuditSink,
    LoggingAuditSink,
)
from ledger_kernel.services.chart_of_accounts import ChartOfAccounts
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditAction",
    "AuditRecord",
    "AuditService",
    "ChartOfAccounts",
    "InMemoryAuditSink",
    "JournalService",
    "LoggingAuditSink",
    "SequenceService",
]
