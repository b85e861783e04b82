"""
ORM-level immutability enforcement.

SQLAlchemy fires ``before_update``/``before_delete`` mapper events while a
flush is being executed. The listeners below inspect attribute history and
raise ``ImmutabilityViolationError`` before any SQL for a frozen row is
sent:

Entity                   | Frozen when
-------------------------|--------------------------------------------------
JournalEntry             | status was POSTED/ADJUSTED/REVERSED/DELETED before
                         | the flush (only the POSTED -> ADJUSTED/REVERSED
                         | status change itself is let through); never
                         | physically deleted
JournalEntryLine         | parent entry was not DRAFT before the flush
JournalEntryStatusChange | always (append-only)
InstallmentPaymentModel  | always (append-only)
Account                  | code/type/normal balance, once a posted line
                         | references the account

The check asks what the status WAS, not what it IS, so that the posting
flush (DRAFT -> POSTED) itself passes.

Register once at startup:

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.domain.lifecycle import JOURNAL_ENTRY_LIFECYCLE, JournalEntryStatus
from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

FROZEN_ENTRY_STATUSES = frozenset({
    JournalEntryStatus.POSTED.value,
    JournalEntryStatus.ADJUSTED.value,
    JournalEntryStatus.REVERSED.value,
    JournalEntryStatus.DELETED.value,
})

LEDGER_STATUSES = (
    JournalEntryStatus.POSTED.value,
    JournalEntryStatus.ADJUSTED.value,
    JournalEntryStatus.REVERSED.value,
)

# Bookkeeping attributes that may change on a frozen entry
_ENTRY_METADATA_FIELDS = frozenset({
    "updated_at",
    "updated_by_id",
    "version",
    "status_history",
})

ACCOUNT_STRUCTURAL_FIELDS = frozenset({"code", "account_type", "normal_balance"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _status_before_flush(entry) -> str:
    history = get_history(entry, "status")
    if history.deleted:
        return history.deleted[0]
    return entry.status


# =============================================================================
# Journal entries
# =============================================================================


def _check_journal_entry_immutability(mapper, connection, target):
    old_status = _status_before_flush(target)
    if old_status not in FROZEN_ENTRY_STATUSES:
        return

    status_history = get_history(target, "status")
    if status_history.added:
        new_status = status_history.added[0]
        if not JOURNAL_ENTRY_LIFECYCLE.can_transition(old_status, new_status):
            raise _blocked(
                "JournalEntry", target.id, "UPDATE",
                f"Cannot change status from {old_status} to {new_status}",
                field="status",
            )

    for attr in inspect(target).attrs:
        if attr.key in _ENTRY_METADATA_FIELDS or attr.key == "status":
            continue
        if attr.history.has_changes():
            raise _blocked(
                "JournalEntry", target.id, "UPDATE",
                f"Cannot modify field '{attr.key}' on {old_status} journal entry",
                field=attr.key,
            )


def _check_journal_entry_delete(mapper, connection, target):
    raise _blocked(
        "JournalEntry", target.id, "DELETE",
        "Journal entries are never physically deleted",
    )


def _parent_status(connection, line) -> str | None:
    if line.entry is not None:
        return _status_before_flush(line.entry)

    from ledger_kernel.models.journal import JournalEntry

    return connection.execute(
        select(JournalEntry.__table__.c.status).where(
            JournalEntry.__table__.c.id == str(line.journal_entry_id)
        )
    ).scalar_one_or_none()


def _check_journal_line_immutability(mapper, connection, target):
    status = _parent_status(connection, target)
    if status in FROZEN_ENTRY_STATUSES:
        raise _blocked(
            "JournalEntryLine", target.id, "UPDATE",
            f"Lines cannot be modified once the entry is {status}",
        )


def _check_journal_line_delete(mapper, connection, target):
    status = _parent_status(connection, target)
    if status in FROZEN_ENTRY_STATUSES:
        raise _blocked(
            "JournalEntryLine", target.id, "DELETE",
            f"Lines cannot be deleted once the entry is {status}",
        )


def _check_append_only(mapper, connection, target):
    raise _blocked(
        type(target).__name__, target.id, "UPDATE/DELETE",
        "Append-only record",
    )


# =============================================================================
# Accounts
# =============================================================================


def _account_has_posted_references(connection, account_id) -> bool:
    from ledger_kernel.models.journal import JournalEntry, JournalEntryLine

    entries = JournalEntry.__table__
    lines = JournalEntryLine.__table__
    found = connection.execute(
        select(lines.c.id)
        .join(entries, lines.c.journal_entry_id == entries.c.id)
        .where(lines.c.account_id == str(account_id))
        .where(entries.c.status.in_(LEDGER_STATUSES))
        .limit(1)
    ).first()
    return found is not None


def _check_account_structural_immutability(mapper, connection, target):
    changed = sorted(
        field for field in ACCOUNT_STRUCTURAL_FIELDS
        if get_history(target, field).has_changes()
    )
    if not changed:
        return

    if _account_has_posted_references(connection, target.id):
        raise _blocked(
            "Account", target.id, "UPDATE",
            f"Cannot modify {changed} on an account referenced by posted entries",
            fields=changed,
        )


# =============================================================================
# Registration
# =============================================================================


def _listener_table():
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.journal import (
        JournalEntry,
        JournalEntryLine,
        JournalEntryStatusChange,
    )
    from ledger_modules.receivables.orm import InstallmentPaymentModel

    return (
        (JournalEntry, "before_update", _check_journal_entry_immutability),
        (JournalEntry, "before_delete", _check_journal_entry_delete),
        (JournalEntryLine, "before_update", _check_journal_line_immutability),
        (JournalEntryLine, "before_delete", _check_journal_line_delete),
        (JournalEntryStatusChange, "before_update", _check_append_only),
        (JournalEntryStatusChange, "before_delete", _check_append_only),
        (InstallmentPaymentModel, "before_update", _check_append_only),
        (InstallmentPaymentModel, "before_delete", _check_append_only),
        (Account, "before_update", _check_account_structural_immutability),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
    logger.debug("immutability_listeners_registered")


def unregister_immutability_listeners() -> None:
    """Remove the listeners. TESTS ONLY."""
    for target, event_name, listener_fn in _listener_table():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
