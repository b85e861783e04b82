"""
RevenueLedgerBridge -- drives the journal ledger from revenue records.

Account resolution:
    credit  the revenue source's ``account_code``, else the configured
            default revenue account
    debit   the bank account for bank payment methods (BANK_TRANSFER,
            CHECK by default), else the cash account

Every bridge call is one transaction: the revenue row is locked, the
journal service runs inside the same transaction (``manage_transaction=
False``) and the revenue's ``journal_entry_id`` moves with the entry.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineInput
from ledger_kernel.domain.lifecycle import JournalEntryStatus
from ledger_kernel.exceptions import (
    EntryAlreadyPostedError,
    EntryNotPostedError,
    JournalEntryExistsError,
    RevenueNotFoundError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import JournalEntry
from ledger_kernel.services.audit_service import AuditAction, AuditService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_service import JournalService
from ledger_modules.revenue.config import RevenueConfig
from ledger_modules.revenue.models import RevenueJournalResult
from ledger_modules.revenue.orm import RevenueModel
from ledger_modules.revenue.service import REVENUE_MODULE, linked_entry, live_entry

logger = get_logger("modules.revenue.bridge")


class RevenueLedgerBridge(BaseService):
    """
    Recognition, posting and reversal of revenue in the journal ledger.

    ``journal`` must be built with ``manage_transaction=False``; the
    bridge owns the commit.
    """

    def __init__(
        self,
        session: Session,
        config: RevenueConfig | None = None,
        journal: JournalService | None = None,
        clock: Clock | None = None,
        audit: AuditService | None = None,
        manage_transaction: bool = True,
    ):
        super().__init__(session, manage_transaction)
        self._config = config or RevenueConfig()
        self._clock = clock or SystemClock()
        self._audit = audit or AuditService(session, self._clock)
        self._journal = journal or JournalService(
            session, self._clock, self._audit, manage_transaction=False
        )

    def resolve_accounts(self, revenue: RevenueModel) -> tuple[str, str]:
        """(debit account code, credit account code) for a revenue."""
        credit = (
            revenue.source.account_code
            if revenue.source is not None and revenue.source.account_code
            else self._config.default_revenue_account
        )
        return self._config.debit_account_for(revenue.payment_method), credit

    def create_revenue_journal_entry(
        self, revenue_id: UUID, actor_id: UUID
    ) -> RevenueJournalResult:
        """
        Create the DRAFT recognition entry and link it to the revenue.

        Raises:
            JournalEntryExistsError: the revenue already links a live entry.
            AccountNotFoundError: a resolved account is missing or inactive.
        """
        with self._unit_of_work("create_revenue_journal_entry"):
            revenue = self._load_for_update(revenue_id)
            existing = live_entry(self.session, revenue)
            if existing is not None:
                raise JournalEntryExistsError(revenue.code, existing.code)
            entry = self._recognize(revenue, actor_id)
            result = _result(revenue, entry)
        return result

    def post_revenue_to_gl(self, revenue_id: UUID, actor_id: UUID) -> RevenueJournalResult:
        """
        Post the revenue's entry, creating it first when missing.

        Raises:
            EntryAlreadyPostedError: the linked entry is already POSTED.
            EntryNotDraftError: the linked entry was adjusted.
        """
        with self._unit_of_work("post_revenue_to_gl"):
            revenue = self._load_for_update(revenue_id)
            entry = live_entry(self.session, revenue)
            if entry is None:
                entry = self._recognize(revenue, actor_id)
            elif entry.status == JournalEntryStatus.POSTED:
                raise EntryAlreadyPostedError(entry.code)

            entry = self._journal.post(entry.id, actor_id)

            self._audit.record(
                AuditAction.REVENUE_POST_TO_GL,
                module=REVENUE_MODULE,
                record_id=revenue.id,
                actor_id=actor_id,
                after={"revenue_code": revenue.code, "entry_code": entry.code},
            )
            logger.info(
                "revenue_posted_to_gl",
                extra={
                    "revenue_code": revenue.code,
                    "entry_code": entry.code,
                    "amount": revenue.amount,
                },
            )
            result = _result(revenue, entry)
        return result

    def reverse_revenue(
        self,
        revenue_id: UUID,
        reason: str,
        actor_id: UUID,
        post_immediately: bool = False,
    ) -> RevenueJournalResult:
        """
        Reverse the revenue's POSTED entry.

        The reversal is left in DRAFT unless ``post_immediately``.

        Raises:
            EntryNotPostedError: no entry, or the entry is not POSTED.
            EntryAlreadyReversedError: the entry was reversed already.
        """
        with self._unit_of_work("reverse_revenue"):
            revenue = self._load_for_update(revenue_id)
            entry = linked_entry(self.session, revenue)
            if entry is None:
                raise EntryNotPostedError(revenue.code, "NONE")
            if entry.status == JournalEntryStatus.DRAFT:
                raise EntryNotPostedError(entry.code, entry.status)

            reversal = self._journal.create_reversal(entry.id, reason, actor_id)
            if post_immediately:
                reversal = self._journal.post(reversal.id, actor_id)

            self._audit.record(
                AuditAction.REVENUE_REVERSE,
                module=REVENUE_MODULE,
                record_id=revenue.id,
                actor_id=actor_id,
                after={
                    "revenue_code": revenue.code,
                    "entry_code": entry.code,
                    "reversal_code": reversal.code,
                    "reason": reason,
                },
            )
            logger.info(
                "revenue_reversed",
                extra={
                    "revenue_code": revenue.code,
                    "entry_code": entry.code,
                    "reversal_code": reversal.code,
                    "reversal_posted": post_immediately,
                },
            )
            result = _result(revenue, entry, reversal)
        return result

    def is_revenue_posted(self, revenue_id: UUID) -> bool:
        revenue = self.session.get(RevenueModel, revenue_id)
        if revenue is None or revenue.is_deleted:
            raise RevenueNotFoundError(str(revenue_id))
        entry = linked_entry(self.session, revenue)
        return entry is not None and entry.status == JournalEntryStatus.POSTED

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _recognize(self, revenue: RevenueModel, actor_id: UUID) -> JournalEntry:
        debit_account, credit_account = self.resolve_accounts(revenue)
        label = revenue.description or revenue.code
        entry = self._journal.create_auto(
            module=self._config.module_name,
            reference_id=revenue.code,
            description=f"Revenue recognition - {label}",
            entry_date=revenue.date_recorded,
            lines=[
                LineInput(
                    account_code=debit_account,
                    debit=revenue.amount,
                    description=f"Cash received - {label}",
                ),
                LineInput(
                    account_code=credit_account,
                    credit=revenue.amount,
                    description=f"Revenue earned - {label}",
                ),
            ],
            actor_id=actor_id,
        )
        revenue.journal_entry_id = entry.id
        revenue.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "revenue_journal_entry_created",
            extra={
                "revenue_code": revenue.code,
                "entry_code": entry.code,
                "debit_account": debit_account,
                "credit_account": credit_account,
            },
        )
        return entry

    def _load_for_update(self, revenue_id: UUID) -> RevenueModel:
        revenue = self.session.execute(
            select(RevenueModel)
            .where(RevenueModel.id == revenue_id, RevenueModel.is_deleted.is_(False))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if revenue is None:
            raise RevenueNotFoundError(str(revenue_id))
        return revenue


def _result(
    revenue: RevenueModel,
    entry: JournalEntry,
    reversal: JournalEntry | None = None,
) -> RevenueJournalResult:
    return RevenueJournalResult(
        revenue_id=revenue.id,
        revenue_code=revenue.code,
        journal_entry_id=entry.id,
        journal_entry_code=entry.code,
        journal_entry_status=entry.status,
        reversal_entry_id=reversal.id if reversal else None,
        reversal_entry_code=reversal.code if reversal else None,
    )
