"""
ORM immutability enforcement.

Verifies:
- POSTED journal entries and their lines cannot be modified
- Journal entries are never physically deleted
- Status history rows and installment payments are append-only
- Account structure is frozen once a posted line references it
- DRAFT entries stay editable
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.dtos import LineInput
from ledger_kernel.exceptions import ConflictError, ImmutabilityViolationError
from ledger_modules.receivables.orm import InstallmentPaymentModel


def _lines(amount="75.00"):
    return [LineInput("1010", debit=amount), LineInput("4000", credit=amount)]


@pytest.fixture
def draft(ledger, seeded_accounts, test_actor_id):
    return ledger.journal.create_auto(
        "revenue", "REV-1", "Charter deposit", date(2024, 1, 15), _lines(), test_actor_id,
    )


@pytest.fixture
def posted(ledger, draft, test_actor_id):
    return ledger.journal.post(draft.id, test_actor_id)


class TestPostedEntryImmutability:

    def test_description_frozen(self, session, posted):
        posted.description = "Rewritten history"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert isinstance(exc_info.value, ConflictError)
        assert exc_info.value.entity_type == "JournalEntry"
        session.rollback()

    def test_entry_date_frozen(self, session, posted):
        posted.entry_date = date(2023, 12, 31)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_status_cannot_go_back_to_draft(self, session, posted):
        posted.status = "DRAFT"
        with pytest.raises(ImmutabilityViolationError, match="Cannot change status"):
            session.flush()
        session.rollback()

    def test_line_amount_frozen(self, session, posted):
        posted.lines[0].debit = Decimal("999.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "JournalEntryLine"
        session.rollback()

    def test_line_cannot_be_removed(self, session, posted):
        posted.lines.pop()
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_entry_cannot_be_physically_deleted(self, session, draft):
        session.delete(draft)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_reversed_entry_frozen(self, ledger, session, posted, test_actor_id):
        ledger.journal.create_reversal(posted.id, "refund", test_actor_id)
        posted.description = "Changed after reversal"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_violation_is_logged(self, captured_logs, session, posted):
        posted.description = "Rewritten history"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["entity_type"] == "JournalEntry"
        assert blocked[0]["field"] == "description"


class TestDraftEntryIsEditable:

    def test_draft_fields_and_lines_change(self, session, draft):
        draft.description = "Charter deposit (revised)"
        draft.lines[0].description = "Cash desk"
        session.flush()
        session.commit()
        assert draft.description == "Charter deposit (revised)"


class TestAppendOnlyRecords:

    def test_status_history_row_frozen(self, session, posted):
        posted.status_history[0].reason = "backdated"
        with pytest.raises(ImmutabilityViolationError, match="Append-only"):
            session.flush()
        session.rollback()

    def test_installment_payment_frozen(self, ledger, session, test_actor_id):
        receivable = ledger.receivables.create_with_schedule(
            total_amount=Decimal("200.00"),
            due_date=date(2024, 2, 1),
            actor_id=test_actor_id,
            debtor_name="Coastal Tours",
        )
        installment = receivable.installments[0]
        ledger.receivables.record_payment(
            installment.id, Decimal("50.00"), date(2024, 1, 20), test_actor_id,
        )

        payment = session.query(InstallmentPaymentModel).one()
        payment.amount_applied = Decimal("5.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        session.delete(session.query(InstallmentPaymentModel).one())
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestAccountStructure:

    def test_code_frozen_after_posting(self, session, seeded_accounts, posted):
        seeded_accounts["4000"].code = "4001"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Account"
        session.rollback()

    def test_unreferenced_account_can_be_renumbered(self, session, seeded_accounts, posted):
        seeded_accounts["5000"].code = "5001"
        session.flush()

    def test_account_referenced_only_by_draft_can_change(self, session, seeded_accounts, draft):
        seeded_accounts["4000"].account_type = "EQUITY"
        session.flush()

    def test_name_can_change_after_posting(self, session, seeded_accounts, posted):
        seeded_accounts["4000"].name = "Miscellaneous Revenue"
        session.flush()
