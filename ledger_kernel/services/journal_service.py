"""
JournalService -- the journal ledger engine.

Responsibility:
    Creates, validates, posts, adjusts and reverses journal entries.
    Every entry is balanced (total debits equal total credits within the
    configured tolerance) and every line has exactly one positive side.

Lifecycle (see ``domain/lifecycle.py``):

    DRAFT --post--> POSTED --adjust--> ADJUSTED
      |                   \\--reverse--> REVERSED
      \\--delete--> DELETED (soft)

    Only DRAFT entries are edited, deleted or posted. ADJUSTED and REVERSED
    are reached once from POSTED; because status is a single column the
    second correction of the same entry fails with a conflict. Each change
    is also appended to ``journal_entry_status_changes``.

Concurrency:
    Entries are loaded with ``SELECT ... FOR UPDATE`` and carry a version
    counter, so two concurrent ``post`` calls cannot both succeed; the
    loser gets ``EntryAlreadyPostedError`` or ``ConcurrencyError``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import LineInput, ValidatedLine, ValidatedLines
from ledger_kernel.domain.lifecycle import JOURNAL_ENTRY_LIFECYCLE, JournalEntryStatus
from ledger_kernel.domain.money import DEFAULT_TOLERANCE, ZERO, to_money
from ledger_kernel.exceptions import (
    EmptyEntryError,
    EntryAlreadyPostedError,
    EntryAlreadyReversedError,
    EntryNotDraftError,
    EntryNotPostedError,
    InvalidLineError,
    JournalEntryNotFoundError,
    UnbalancedEntryError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatusChange,
)
from ledger_kernel.services.audit_service import AuditAction, AuditService
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.chart_of_accounts import ChartOfAccounts
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal")

JOURNAL_MODULE = "journal"


class JournalService(BaseService):
    """
    Journal entry operations.

    Each public method is one transaction (see ``BaseService``). Pass
    ``manage_transaction=False`` to run inside a caller's transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit: AuditService | None = None,
        chart: ChartOfAccounts | None = None,
        balance_tolerance: Decimal = DEFAULT_TOLERANCE,
        code_prefix: str = "JE",
        sequence_width: int = 4,
        manage_transaction: bool = True,
        decimal_places: int = 2,
    ):
        super().__init__(session, manage_transaction)
        self._clock = clock or SystemClock()
        self._audit = audit or AuditService(session, self._clock)
        self._chart = chart or ChartOfAccounts(
            session, self._clock, self._audit, manage_transaction=False
        )
        self._sequences = SequenceService(session)
        self._tolerance = balance_tolerance
        self._code_prefix = code_prefix
        self._sequence_width = sequence_width
        self._decimal_places = decimal_places

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_auto(
        self,
        module: str,
        reference_id: str,
        description: str,
        entry_date: date,
        lines: list[LineInput],
        actor_id: UUID,
    ) -> JournalEntry:
        """
        Create a balanced DRAFT entry on behalf of a source module.

        Raises:
            EmptyEntryError, InvalidLineError, UnbalancedEntryError,
            AccountNotFoundError: all ``ValidationError``.
        """
        with self._unit_of_work("create_auto"):
            validated = self.validate_lines(lines)
            entry = self._new_entry(
                description=description,
                entry_date=entry_date,
                module=module,
                reference_id=str(reference_id),
                reference=f"{module}:{reference_id}",
                validated=validated,
                actor_id=actor_id,
            )
            self._audit.record(
                AuditAction.JOURNAL_ENTRY_CREATE,
                module=JOURNAL_MODULE,
                record_id=entry.id,
                actor_id=actor_id,
                after=_snapshot(entry),
            )
            logger.info(
                "journal_entry_created",
                extra={
                    "entry_id": str(entry.id),
                    "entry_code": entry.code,
                    "source_module": module,
                    "reference_id": str(reference_id),
                    "line_count": len(validated.lines),
                    "total_debit": validated.total_debit,
                },
            )
        return entry

    def create_adjustment(
        self,
        adjustment_of_id: UUID,
        lines: list[LineInput],
        actor_id: UUID,
        description: str | None = None,
        entry_date: date | None = None,
    ) -> JournalEntry:
        """
        Create a DRAFT correction of a POSTED entry and mark it ADJUSTED.

        Raises:
            JournalEntryNotFoundError: original missing or deleted.
            EntryNotPostedError: original is not POSTED.
        """
        with self._unit_of_work("create_adjustment"):
            original = self._load_for_update(adjustment_of_id)
            if original.status != JournalEntryStatus.POSTED:
                raise EntryNotPostedError(original.code, original.status)

            validated = self.validate_lines(lines)
            before = _snapshot(original)
            entry = self._new_entry(
                description=(
                    f"Adjustment of {original.code}: "
                    f"{description or original.description}"
                ),
                entry_date=entry_date or self._clock.today(),
                module=original.module,
                reference_id=original.reference_id,
                reference=f"ADJUSTMENT:{original.code}",
                validated=validated,
                actor_id=actor_id,
            )
            entry.adjustment_of = original
            self._transition(
                original, JournalEntryStatus.ADJUSTED, actor_id,
                reason=description, related_entry_id=entry.id,
            )
            self.session.flush()

            self._audit.record(
                AuditAction.JOURNAL_ENTRY_ADJUST,
                module=JOURNAL_MODULE,
                record_id=original.id,
                actor_id=actor_id,
                before=before,
                after={**_snapshot(original), "adjustment_code": entry.code},
            )
            logger.info(
                "journal_entry_adjusted",
                extra={
                    "original_code": original.code,
                    "adjustment_code": entry.code,
                    "adjustment_id": str(entry.id),
                },
            )
        return entry

    def create_reversal(
        self,
        reversal_of_id: UUID,
        reason: str,
        actor_id: UUID,
        entry_date: date | None = None,
    ) -> JournalEntry:
        """
        Create a DRAFT entry mirroring a POSTED one with sides swapped.

        The original moves to REVERSED. Accounts are taken from the original
        lines as-is, so a since-deactivated account can still be reversed.

        Raises:
            JournalEntryNotFoundError: original missing or deleted.
            EntryAlreadyReversedError: original already REVERSED or has a
                live reversal.
            EntryNotPostedError: original is not POSTED.
        """
        with self._unit_of_work("create_reversal"):
            original = self._load_for_update(reversal_of_id)

            existing = self.session.execute(
                select(JournalEntry.code).where(
                    JournalEntry.reversal_of_id == original.id,
                    JournalEntry.is_deleted.is_(False),
                )
            ).scalars().first()
            if original.status == JournalEntryStatus.REVERSED or existing:
                raise EntryAlreadyReversedError(original.code, existing)
            if original.status != JournalEntryStatus.POSTED:
                raise EntryNotPostedError(original.code, original.status)

            mirrored = tuple(
                ValidatedLine(
                    line_number=line.line_number,
                    account_id=line.account_id,
                    account_code=line.account_code,
                    debit=line.credit,
                    credit=line.debit,
                    description=f"Reversal: {line.description or ''}".rstrip(),
                )
                for line in original.active_lines
            )
            validated = ValidatedLines(
                lines=mirrored,
                total_debit=original.total_credits,
                total_credit=original.total_debits,
            )
            before = _snapshot(original)
            entry = self._new_entry(
                description=f"Reversal of {original.code}: {reason}",
                entry_date=entry_date or self._clock.today(),
                module=original.module,
                reference_id=original.reference_id,
                reference=f"REVERSAL:{original.code}",
                validated=validated,
                actor_id=actor_id,
            )
            entry.reversal_of = original
            self._transition(
                original, JournalEntryStatus.REVERSED, actor_id,
                reason=reason, related_entry_id=entry.id,
            )
            self.session.flush()

            self._audit.record(
                AuditAction.JOURNAL_ENTRY_REVERSE,
                module=JOURNAL_MODULE,
                record_id=original.id,
                actor_id=actor_id,
                before=before,
                after={**_snapshot(original), "reversal_code": entry.code},
            )
            logger.info(
                "journal_entry_reversed",
                extra={
                    "original_code": original.code,
                    "reversal_code": entry.code,
                    "reversal_id": str(entry.id),
                },
            )
        return entry

    def update_draft(
        self,
        entry_id: UUID,
        actor_id: UUID,
        description: str | None = None,
        entry_date: date | None = None,
        lines: list[LineInput] | None = None,
    ) -> JournalEntry:
        """Edit a DRAFT entry; ``lines`` replaces the whole line set."""
        with self._unit_of_work("update_draft"):
            entry = self._load_for_update(entry_id)
            if entry.status != JournalEntryStatus.DRAFT:
                raise EntryNotDraftError(entry.code, entry.status)

            before = _snapshot(entry)
            if description is not None:
                entry.description = description
            if entry_date is not None:
                entry.entry_date = entry_date
            if lines is not None:
                validated = self.validate_lines(lines)
                entry.lines = _build_lines(validated)
            entry.updated_by_id = actor_id
            self.session.flush()

            self._audit.record(
                AuditAction.JOURNAL_ENTRY_UPDATE,
                module=JOURNAL_MODULE,
                record_id=entry.id,
                actor_id=actor_id,
                before=before,
                after=_snapshot(entry),
            )
            logger.info(
                "journal_entry_updated",
                extra={
                    "entry_code": entry.code,
                    "lines_replaced": lines is not None,
                },
            )
        return entry

    def delete_draft(self, entry_id: UUID, reason: str, actor_id: UUID) -> JournalEntry:
        """Soft-delete a DRAFT entry and its lines."""
        with self._unit_of_work("delete_draft"):
            entry = self._load_for_update(entry_id)
            if entry.status != JournalEntryStatus.DRAFT:
                raise EntryNotDraftError(entry.code, entry.status)

            now = self._clock.now()
            self._transition(entry, JournalEntryStatus.DELETED, actor_id, reason=reason)
            entry.is_deleted = True
            entry.deleted_at = now
            entry.deleted_by_id = actor_id
            entry.deletion_reason = reason
            for line in entry.lines:
                line.is_deleted = True
                line.deleted_at = now
            self.session.flush()

            self._audit.record(
                AuditAction.JOURNAL_ENTRY_DELETE,
                module=JOURNAL_MODULE,
                record_id=entry.id,
                actor_id=actor_id,
                after={"code": entry.code, "reason": reason},
            )
            logger.info(
                "journal_entry_deleted",
                extra={"entry_code": entry.code, "reason": reason},
            )
        return entry

    def post(self, entry_id: UUID, actor_id: UUID) -> JournalEntry:
        """
        Post a DRAFT entry. The entry is immutable afterwards except for
        the single move to ADJUSTED or REVERSED.

        Raises:
            EntryAlreadyPostedError: entry is POSTED already.
            EntryNotDraftError: entry is ADJUSTED/REVERSED.
            UnbalancedEntryError: lines no longer balance.
        """
        with self._unit_of_work("post"):
            entry = self._load_for_update(entry_id)
            with LogContext.bind(entry_id=str(entry.id), actor_id=str(actor_id)):
                if entry.status == JournalEntryStatus.POSTED:
                    raise EntryAlreadyPostedError(entry.code)
                if entry.status != JournalEntryStatus.DRAFT:
                    raise EntryNotDraftError(entry.code, entry.status)
                if not entry.active_lines:
                    raise EmptyEntryError()
                if not self.is_balanced(entry):
                    raise UnbalancedEntryError(entry.total_debits, entry.total_credits)

                self._transition(entry, JournalEntryStatus.POSTED, actor_id)
                entry.posted_by_id = actor_id
                entry.posted_at = self._clock.now()
                self.session.flush()

                self._audit.record(
                    AuditAction.JOURNAL_ENTRY_POST,
                    module=JOURNAL_MODULE,
                    record_id=entry.id,
                    actor_id=actor_id,
                    before={"status": JournalEntryStatus.DRAFT.value},
                    after=_snapshot(entry),
                )
                logger.info(
                    "journal_entry_posted",
                    extra={
                        "entry_code": entry.code,
                        "total_debit": entry.total_debits,
                    },
                )
        return entry

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_lines(self, lines: list[LineInput]) -> ValidatedLines:
        """
        Normalize amounts, check the one-sided rule and the balance, then
        resolve every account code.
        """
        if not lines:
            raise EmptyEntryError()

        amounts: list[tuple[Decimal, Decimal]] = []
        for number, line in enumerate(lines, start=1):
            try:
                debit = to_money(line.debit, "debit", self._decimal_places)
                credit = to_money(line.credit, "credit", self._decimal_places)
            except (TypeError, ValueError) as exc:
                raise InvalidLineError(number, str(exc)) from exc
            if debit < ZERO or credit < ZERO:
                raise InvalidLineError(number, "Debit and credit amounts must not be negative")
            if debit == ZERO and credit == ZERO:
                raise InvalidLineError(number, "Either debit or credit must be greater than zero")
            if debit > ZERO and credit > ZERO:
                raise InvalidLineError(number, "A line cannot have both debit and credit amounts")
            amounts.append((debit, credit))

        total_debit = sum((d for d, _ in amounts), ZERO)
        total_credit = sum((c for _, c in amounts), ZERO)
        if abs(total_debit - total_credit) >= self._tolerance:
            logger.info(
                "journal_entry_unbalanced",
                extra={"total_debit": total_debit, "total_credit": total_credit},
            )
            raise UnbalancedEntryError(total_debit, total_credit)

        accounts = self._chart.require_accounts([line.account_code for line in lines])

        return ValidatedLines(
            lines=tuple(
                ValidatedLine(
                    line_number=number,
                    account_id=accounts[line.account_code].id,
                    account_code=line.account_code,
                    debit=debit,
                    credit=credit,
                    description=line.description,
                )
                for number, (line, (debit, credit)) in enumerate(
                    zip(lines, amounts), start=1
                )
            ),
            total_debit=total_debit,
            total_credit=total_credit,
        )

    def is_balanced(self, entry: JournalEntry) -> bool:
        return entry.is_balanced(self._tolerance)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_for_update(self, entry_id: UUID) -> JournalEntry:
        entry = self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.id == entry_id, JournalEntry.is_deleted.is_(False))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entry is None:
            raise JournalEntryNotFoundError(str(entry_id))
        return entry

    def _next_code(self) -> str:
        return self._sequences.next_code(
            self._code_prefix,
            str(self._clock.today().year),
            self._sequence_width,
        )

    def _new_entry(
        self,
        description: str,
        entry_date: date,
        module: str | None,
        reference_id: str | None,
        reference: str | None,
        validated: ValidatedLines,
        actor_id: UUID,
    ) -> JournalEntry:
        entry = JournalEntry(
            code=self._next_code(),
            entry_date=entry_date,
            description=description,
            module=module,
            reference_id=reference_id,
            reference=reference,
            status=JournalEntryStatus.DRAFT.value,
            created_by_id=actor_id,
            is_deleted=False,
        )
        entry.lines = _build_lines(validated)
        entry.status_history.append(
            JournalEntryStatusChange(
                sequence=1,
                from_status=None,
                to_status=JournalEntryStatus.DRAFT.value,
                changed_by_id=actor_id,
                changed_at=self._clock.now(),
            )
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def _transition(
        self,
        entry: JournalEntry,
        to_status: JournalEntryStatus,
        actor_id: UUID,
        reason: str | None = None,
        related_entry_id: UUID | None = None,
    ) -> None:
        from_status = entry.status
        JOURNAL_ENTRY_LIFECYCLE.require(from_status, to_status)
        entry.status = to_status.value
        entry.updated_by_id = actor_id
        entry.status_history.append(
            JournalEntryStatusChange(
                sequence=len(entry.status_history) + 1,
                from_status=from_status,
                to_status=to_status.value,
                changed_by_id=actor_id,
                changed_at=self._clock.now(),
                reason=reason,
                related_entry_id=related_entry_id,
            )
        )


def _build_lines(validated: ValidatedLines) -> list[JournalEntryLine]:
    return [
        JournalEntryLine(
            account_id=line.account_id,
            account_code=line.account_code,
            line_number=line.line_number,
            debit=line.debit,
            credit=line.credit,
            description=line.description,
            is_deleted=False,
        )
        for line in validated.lines
    ]


def _snapshot(entry: JournalEntry) -> dict:
    return {
        "code": entry.code,
        "status": entry.status,
        "entry_date": entry.entry_date,
        "total_debit": entry.total_debits,
        "total_credit": entry.total_credits,
    }
