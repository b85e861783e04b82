"""
Module: ledger_kernel.selectors.journal_selector
Responsibility: Read-only queries over journal entries, returning frozen
    ``JournalEntryView`` snapshots (domain/dtos.py), never ORM rows.

Lookups return None when nothing matches; ``require_entry`` is the variant
that raises ``JournalEntryNotFoundError``.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.dtos import (
    EntryFilters,
    EntryLink,
    JournalEntryView,
    JournalLineView,
    Page,
    StatusChangeView,
)
from ledger_kernel.domain.money import DEFAULT_TOLERANCE
from ledger_kernel.exceptions import JournalEntryNotFoundError
from ledger_kernel.models.journal import JournalEntry

MAX_PAGE_SIZE = 100


class JournalSelector:

    def __init__(self, session: Session, balance_tolerance=DEFAULT_TOLERANCE):
        self.session = session
        self._tolerance = balance_tolerance

    def get_entry(self, entry_id: UUID, include_deleted: bool = False) -> JournalEntryView | None:
        """Entry with lines, status history and links in both directions."""
        query = select(JournalEntry).where(JournalEntry.id == entry_id)
        if not include_deleted:
            query = query.where(JournalEntry.is_deleted.is_(False))
        entry = self.session.execute(query).scalar_one_or_none()
        if entry is None:
            return None
        return self._to_view(entry, with_links=True)

    def require_entry(self, entry_id: UUID) -> JournalEntryView:
        view = self.get_entry(entry_id)
        if view is None:
            raise JournalEntryNotFoundError(str(entry_id))
        return view

    def get_by_code(self, code: str) -> JournalEntryView | None:
        entry = self.session.execute(
            select(JournalEntry).where(JournalEntry.code == code)
        ).scalar_one_or_none()
        return self._to_view(entry, with_links=True) if entry else None

    def list_entries(
        self,
        filters: EntryFilters | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page[JournalEntryView]:
        """
        Filtered, paginated listing ordered by entry date then code, newest
        first. ``module`` matches the ``"{module}:"`` reference prefix and
        ``code`` is a case-insensitive substring match.
        """
        filters = filters or EntryFilters()
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        conditions = []
        if not filters.include_deleted:
            conditions.append(JournalEntry.is_deleted.is_(False))
        if filters.status:
            conditions.append(JournalEntry.status == filters.status)
        if filters.date_from:
            conditions.append(JournalEntry.entry_date >= filters.date_from)
        if filters.date_to:
            conditions.append(JournalEntry.entry_date <= filters.date_to)
        if filters.module:
            conditions.append(JournalEntry.reference.startswith(f"{filters.module}:"))
        if filters.reference:
            conditions.append(JournalEntry.reference == filters.reference)
        if filters.code:
            conditions.append(JournalEntry.code.ilike(f"%{filters.code}%"))

        total = self.session.execute(
            select(func.count()).select_from(JournalEntry).where(*conditions)
        ).scalar_one()

        entries = self.session.execute(
            select(JournalEntry)
            .where(*conditions)
            .order_by(JournalEntry.entry_date.desc(), JournalEntry.code.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return Page(
            items=tuple(self._to_view(e, with_links=False) for e in entries),
            page=page,
            limit=limit,
            total=total,
        )

    def _related(self, column, entry_id: UUID) -> tuple[EntryLink, ...]:
        rows = self.session.execute(
            select(JournalEntry)
            .where(column == entry_id, JournalEntry.is_deleted.is_(False))
            .order_by(JournalEntry.code)
        ).scalars().all()
        return tuple(_link(row) for row in rows)

    def _to_view(self, entry: JournalEntry, with_links: bool) -> JournalEntryView:
        adjustments: tuple[EntryLink, ...] = ()
        reversals: tuple[EntryLink, ...] = ()
        if with_links:
            adjustments = self._related(JournalEntry.adjustment_of_id, entry.id)
            reversals = self._related(JournalEntry.reversal_of_id, entry.id)

        return JournalEntryView(
            id=entry.id,
            code=entry.code,
            entry_date=entry.entry_date,
            description=entry.description,
            module=entry.module,
            reference_id=entry.reference_id,
            reference=entry.reference,
            status=entry.status,
            total_debit=entry.total_debits,
            total_credit=entry.total_credits,
            is_balanced=entry.is_balanced(self._tolerance),
            prepared_by_id=entry.created_by_id,
            posted_by_id=entry.posted_by_id,
            posted_at=entry.posted_at,
            is_deleted=entry.is_deleted,
            lines=tuple(
                JournalLineView(
                    line_number=line.line_number,
                    account_code=line.account_code,
                    debit=line.debit,
                    credit=line.credit,
                    description=line.description,
                )
                for line in entry.lines
                if entry.is_deleted or not line.is_deleted
            ),
            adjustment_of=_link(entry.adjustment_of) if entry.adjustment_of else None,
            reversal_of=_link(entry.reversal_of) if entry.reversal_of else None,
            adjustments=adjustments,
            reversals=reversals,
            status_history=tuple(
                StatusChangeView(
                    sequence=change.sequence,
                    from_status=change.from_status,
                    to_status=change.to_status,
                    changed_by_id=change.changed_by_id,
                    changed_at=change.changed_at,
                    reason=change.reason,
                )
                for change in entry.status_history
            ),
        )


def _link(entry: JournalEntry) -> EntryLink:
    return EntryLink(id=entry.id, code=entry.code, status=entry.status)
