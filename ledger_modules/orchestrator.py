"""
ledger_modules.orchestrator -- wiring for ledger and module services.

Responsibility:
    Creates every service once per session from the active settings and
    wires them together, so callers never assemble services by hand.

Usage:
    from ledger_modules.orchestrator import LedgerOrchestrator

    ledger = LedgerOrchestrator(session, clock=clock)
    revenue = ledger.revenue.create_revenue(...)
    ledger.bridge.post_revenue_to_gl(revenue.id, actor_id)
    ledger.receivables.record_payment(...)

Non-goals:
    - Does NOT own the session lifecycle. Each service commits its own
      operations (see ``BaseService``).
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from ledger_config import LedgerSettings, get_active_config
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.services.audit_service import AuditService, AuditSink
from ledger_kernel.services.chart_of_accounts import ChartOfAccounts
from ledger_kernel.services.journal_service import JournalService
from ledger_modules.receivables.config import ReceivablesConfig
from ledger_modules.receivables.service import DebtorDirectory, ReceivableService
from ledger_modules.revenue.bridge import RevenueLedgerBridge
from ledger_modules.revenue.config import RevenueConfig
from ledger_modules.revenue.service import RevenueService


class LedgerOrchestrator:
    """
    Service container for one session.

    Guarantees:
        - All services share the same Session, Clock and AuditService.
        - ``journal`` commits per operation; the bridge runs its own
          journal instance inside the bridge's transaction.
    """

    def __init__(
        self,
        session: Session,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        debtor_directory: DebtorDirectory | None = None,
    ) -> None:
        self.session = session
        self.settings = settings or get_active_config()
        self.clock = clock or SystemClock()

        journal_settings = self.settings.journal
        self.receivables_config = ReceivablesConfig.from_settings(
            self.settings.receivables, decimal_places=self.settings.decimal_places
        )
        self.revenue_config = RevenueConfig.from_settings(
            self.settings.revenue,
            sequence_width=self.settings.receivables.sequence_width,
            decimal_places=self.settings.decimal_places,
        )

        self.audit = AuditService(session, self.clock, audit_sink)
        self.chart = ChartOfAccounts(session, self.clock, self.audit)
        self.journal = self._journal_service(manage_transaction=True)
        self.entries = JournalSelector(session, journal_settings.balance_tolerance)

        self.receivables = ReceivableService(
            session,
            config=self.receivables_config,
            clock=self.clock,
            audit=self.audit,
            debtor_directory=debtor_directory,
        )
        self.revenue = RevenueService(
            session,
            config=self.revenue_config,
            receivables_config=self.receivables_config,
            clock=self.clock,
            audit=self.audit,
            debtor_directory=debtor_directory,
        )
        self.bridge = RevenueLedgerBridge(
            session,
            config=self.revenue_config,
            journal=self._journal_service(manage_transaction=False),
            clock=self.clock,
            audit=self.audit,
        )

    def _journal_service(self, manage_transaction: bool) -> JournalService:
        journal_settings = self.settings.journal
        return JournalService(
            self.session,
            clock=self.clock,
            audit=self.audit,
            chart=ChartOfAccounts(
                self.session, self.clock, self.audit, manage_transaction=False
            ),
            balance_tolerance=journal_settings.balance_tolerance,
            code_prefix=journal_settings.code_prefix,
            sequence_width=journal_settings.sequence_width,
            manage_transaction=manage_transaction,
            decimal_places=self.settings.decimal_places,
        )
