"""
BaseService -- common transaction handling for ledger services.

Every public mutating operation runs inside ``self._unit_of_work(name)``:

    with self._unit_of_work("post_entry"):
        ...  # load with FOR UPDATE, validate, mutate, flush

When the service owns the transaction (``manage_transaction=True``, the
default) the block commits on success and rolls back on any exception, so
an operation is all-or-nothing. A service built with
``manage_transaction=False`` only flushes and leaves commit/rollback to
the enclosing operation; the revenue bridge uses this to record a revenue
update and its journal entry in one transaction.

A stale optimistic-version write (``StaleDataError``) is re-raised as
``ConcurrencyError``.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.exceptions import ConcurrencyError
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.base")


class BaseService(ABC):
    """Abstract base class for ledger services."""

    def __init__(self, session: Session, manage_transaction: bool = True):
        self.session = session
        self._manage_transaction = manage_transaction

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[None]:
        try:
            yield
            if self._manage_transaction:
                self.session.commit()
            else:
                self.session.flush()
        except StaleDataError as exc:
            self._abort(operation)
            raise ConcurrencyError(operation) from exc
        except Exception:
            self._abort(operation)
            raise

    def _abort(self, operation: str) -> None:
        if not self._manage_transaction:
            return
        self.session.rollback()
        logger.warning(
            "operation_rolled_back",
            extra={"operation": operation, "service": type(self).__name__},
            exc_info=True,
        )
