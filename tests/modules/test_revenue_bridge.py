"""
Tests for RevenueLedgerBridge.

Validates:
- Account resolution from source account and payment method
- Recognition entry creation, single live entry per revenue
- Posting and reversal through the journal ledger
- Bridge failures leave revenue and journal untouched
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.dtos import EntryFilters
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    EntryAlreadyPostedError,
    EntryAlreadyReversedError,
    EntryNotPostedError,
    JournalEntryExistsError,
    RevenueNotFoundError,
)
from ledger_modules.revenue.orm import RevenueModel
from ledger_modules.revenue.service import linked_entry, live_entry


@pytest.fixture
def bridge(ledger):
    return ledger.bridge


@pytest.fixture
def rental_by_transfer(ledger, revenue_sources, test_actor_id):
    return ledger.revenue.create_revenue(
        source_id=revenue_sources["rental"].id,
        amount="18000.00",
        date_recorded=date(2024, 1, 12),
        actor_id=test_actor_id,
        description="School field trip charter",
        payment_method="BANK_TRANSFER",
        payment_reference="TRX-5521",
    )


@pytest.fixture
def other_in_cash(ledger, revenue_sources, test_actor_id):
    return ledger.revenue.create_revenue(
        source_id=revenue_sources["other"].id,
        amount="1200.00",
        date_recorded=date(2024, 1, 14),
        actor_id=test_actor_id,
        description="Scrap tires",
        payment_method="CASH",
    )


def _lines_by_account(ledger, entry_id):
    view = ledger.entries.get_entry(entry_id)
    return {line.account_code: (line.debit, line.credit) for line in view.lines}


class TestAccountResolution:

    def test_source_account_and_bank(self, ledger, bridge, rental_by_transfer, test_actor_id):
        result = bridge.create_revenue_journal_entry(rental_by_transfer.id, test_actor_id)

        assert _lines_by_account(ledger, result.journal_entry_id) == {
            "1020": (Decimal("18000.00"), Decimal("0")),
            "4100": (Decimal("0"), Decimal("18000.00")),
        }

    def test_default_account_and_cash(self, ledger, bridge, other_in_cash, test_actor_id):
        result = bridge.create_revenue_journal_entry(other_in_cash.id, test_actor_id)

        assert _lines_by_account(ledger, result.journal_entry_id) == {
            "1010": (Decimal("1200.00"), Decimal("0")),
            "4000": (Decimal("0"), Decimal("1200.00")),
        }

    @pytest.mark.parametrize(
        "method, account",
        [("CHECK", "1020"), ("check", "1020"), ("GCASH", "1010"), (None, "1010")],
    )
    def test_debit_account_by_method(self, ledger, method, account):
        assert ledger.revenue_config.debit_account_for(method) == account


class TestCreateRevenueJournalEntry:

    def test_draft_entry_linked_to_revenue(
        self, ledger, bridge, rental_by_transfer, test_actor_id,
    ):
        result = bridge.create_revenue_journal_entry(rental_by_transfer.id, test_actor_id)

        assert result.revenue_code == rental_by_transfer.code
        assert result.journal_entry_status == "DRAFT"
        assert ledger.revenue.get_revenue(rental_by_transfer.id).journal_entry_id == (
            result.journal_entry_id
        )

        view = ledger.entries.get_entry(result.journal_entry_id)
        assert view.module == "REVENUE"
        assert view.reference_id == rental_by_transfer.code
        assert view.reference == f"REVENUE:{rental_by_transfer.code}"
        assert view.entry_date == date(2024, 1, 12)
        assert view.description == "Revenue recognition - School field trip charter"
        assert [line.description for line in view.lines] == [
            "Cash received - School field trip charter",
            "Revenue earned - School field trip charter",
        ]

    def test_second_entry_is_conflict(self, bridge, rental_by_transfer, test_actor_id):
        first = bridge.create_revenue_journal_entry(rental_by_transfer.id, test_actor_id)

        with pytest.raises(JournalEntryExistsError) as exc_info:
            bridge.create_revenue_journal_entry(rental_by_transfer.id, test_actor_id)
        assert exc_info.value.entry_code == first.journal_entry_code

    def test_unknown_revenue(self, bridge, seeded_accounts, test_actor_id):
        with pytest.raises(RevenueNotFoundError):
            bridge.create_revenue_journal_entry(uuid4(), test_actor_id)

    def test_missing_account_leaves_revenue_unlinked(
        self, ledger, bridge, rental_by_transfer, test_actor_id,
    ):
        ledger.chart.deactivate_account("4100", test_actor_id)

        with pytest.raises(AccountNotFoundError):
            bridge.create_revenue_journal_entry(rental_by_transfer.id, test_actor_id)

        assert ledger.revenue.get_revenue(rental_by_transfer.id).journal_entry_id is None
        assert ledger.entries.list_entries().total == 0


class TestPostRevenueToGL:

    def test_creates_and_posts(self, ledger, bridge, other_in_cash, audit_sink, test_actor_id):
        result = bridge.post_revenue_to_gl(other_in_cash.id, test_actor_id)

        assert result.journal_entry_status == "POSTED"
        assert bridge.is_revenue_posted(other_in_cash.id)
        view = ledger.entries.get_entry(result.journal_entry_id)
        assert view.posted_by_id == test_actor_id
        assert audit_sink.actions()[-3:] == [
            "JOURNAL_ENTRY_CREATE",
            "JOURNAL_ENTRY_POST",
            "REVENUE_POST_TO_GL",
        ]

    def test_posts_existing_draft(self, bridge, other_in_cash, test_actor_id):
        draft = bridge.create_revenue_journal_entry(other_in_cash.id, test_actor_id)
        assert not bridge.is_revenue_posted(other_in_cash.id)

        posted = bridge.post_revenue_to_gl(other_in_cash.id, test_actor_id)

        assert posted.journal_entry_id == draft.journal_entry_id

    def test_second_post_is_conflict(self, bridge, other_in_cash, test_actor_id):
        bridge.post_revenue_to_gl(other_in_cash.id, test_actor_id)
        with pytest.raises(EntryAlreadyPostedError):
            bridge.post_revenue_to_gl(other_in_cash.id, test_actor_id)

    def test_logs_posting(self, bridge, captured_logs, other_in_cash, test_actor_id):
        result = bridge.post_revenue_to_gl(other_in_cash.id, test_actor_id)

        posted = next(r for r in captured_logs() if r["message"] == "revenue_posted_to_gl")
        assert posted["revenue_code"] == other_in_cash.code
        assert posted["entry_code"] == result.journal_entry_code
        assert Decimal(posted["amount"]) == Decimal("1200")


class TestReverseRevenue:

    def test_reverse_without_entry(self, bridge, other_in_cash, test_actor_id):
        with pytest.raises(EntryNotPostedError) as exc_info:
            bridge.reverse_revenue(other_in_cash.id, "no entry", test_actor_id)
        assert exc_info.value.status == "NONE"

    def test_reverse_draft_entry(self, bridge, other_in_cash, test_actor_id):
        bridge.create_revenue_journal_entry(other_in_cash.id, test_actor_id)
        with pytest.raises(EntryNotPostedError):
            bridge.reverse_revenue(other_in_cash.id, "still draft", test_actor_id)

    def test_reversal_left_in_draft(self, ledger, bridge, other_in_cash, test_actor_id):
        posted = bridge.post_revenue_to_gl(other_in_cash.id, test_actor_id)

        result = bridge.reverse_revenue(other_in_cash.id, "customer refund", test_actor_id)

        assert result.journal_entry_id == posted.journal_entry_id
        assert result.journal_entry_status == "REVERSED"
        reversal = ledger.entries.get_entry(result.reversal_entry_id)
        assert reversal.status == "DRAFT"
        assert reversal.reversal_of.id == posted.journal_entry_id
        assert _lines_by_account(ledger, reversal.id) == {
            "1010": (Decimal("0"), Decimal("1200.00")),
            "4000": (Decimal("1200.00"), Decimal("0")),
        }
        assert not bridge.is_revenue_posted(other_in_cash.id)

    def test_reversal_posted_immediately(self, ledger, bridge, other_in_cash, test_actor_id):
        bridge.post_revenue_to_gl(other_in_cash.id, test_actor_id)

        result = bridge.reverse_revenue(
            other_in_cash.id, "customer refund", test_actor_id, post_immediately=True,
        )

        assert ledger.entries.get_entry(result.reversal_entry_id).status == "POSTED"
        page = ledger.entries.list_entries(EntryFilters(status="POSTED"))
        assert page.total == 1

    def test_second_reversal_is_conflict(self, bridge, other_in_cash, test_actor_id):
        bridge.post_revenue_to_gl(other_in_cash.id, test_actor_id)
        bridge.reverse_revenue(other_in_cash.id, "first", test_actor_id)

        with pytest.raises(EntryAlreadyReversedError):
            bridge.reverse_revenue(other_in_cash.id, "second", test_actor_id)

    def test_can_recognize_again_after_reversal(self, bridge, other_in_cash, test_actor_id):
        first = bridge.post_revenue_to_gl(other_in_cash.id, test_actor_id)
        bridge.reverse_revenue(other_in_cash.id, "wrong date", test_actor_id, post_immediately=True)

        again = bridge.create_revenue_journal_entry(other_in_cash.id, test_actor_id)

        assert again.journal_entry_id != first.journal_entry_id
        assert again.journal_entry_status == "DRAFT"

    def test_reversal_audited(self, bridge, audit_sink, other_in_cash, test_actor_id):
        bridge.post_revenue_to_gl(other_in_cash.id, test_actor_id)
        bridge.reverse_revenue(other_in_cash.id, "refund", test_actor_id)

        record = audit_sink.records[-1]
        assert record.action == "REVENUE_REVERSE"
        assert record.after["reason"] == "refund"


class TestIsRevenuePosted:

    def test_unknown_revenue(self, bridge, seeded_accounts):
        with pytest.raises(RevenueNotFoundError):
            bridge.is_revenue_posted(uuid4())

    def test_fresh_revenue_not_posted(self, bridge, other_in_cash):
        assert bridge.is_revenue_posted(other_in_cash.id) is False


class TestEntryLookup:
    """``linked_entry`` / ``live_entry`` are shared by the bridge and RevenueService."""

    def test_no_entry(self, session, other_in_cash):
        row = session.get(RevenueModel, other_in_cash.id)
        assert linked_entry(session, row) is None
        assert live_entry(session, row) is None

    def test_draft_is_live(self, session, bridge, other_in_cash, test_actor_id):
        result = bridge.create_revenue_journal_entry(other_in_cash.id, test_actor_id)
        row = session.get(RevenueModel, other_in_cash.id)
        assert live_entry(session, row).id == result.journal_entry_id

    def test_reversed_entry_is_linked_but_not_live(
        self, session, bridge, other_in_cash, test_actor_id,
    ):
        posted = bridge.post_revenue_to_gl(other_in_cash.id, test_actor_id)
        bridge.reverse_revenue(other_in_cash.id, "refund", test_actor_id)

        row = session.get(RevenueModel, other_in_cash.id)
        assert linked_entry(session, row).id == posted.journal_entry_id
        assert live_entry(session, row) is None

    def test_deleted_draft_is_neither(self, ledger, session, bridge, other_in_cash, test_actor_id):
        result = bridge.create_revenue_journal_entry(other_in_cash.id, test_actor_id)
        ledger.journal.delete_draft(result.journal_entry_id, "typo", test_actor_id)

        row = session.get(RevenueModel, other_in_cash.id)
        assert linked_entry(session, row) is None
        assert live_entry(session, row) is None
