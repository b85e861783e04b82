"""
ChartOfAccounts -- account code registry.

The journal service resolves every line's account code through
``lookup_account``/``require_accounts``; only active, non-deleted accounts
resolve. ``create_account`` and ``deactivate_account`` are the
administrative side used by seeding and tests.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import AccountNotFoundError, DuplicateAccountError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import (
    DEFAULT_NORMAL_BALANCE,
    Account,
    AccountType,
    NormalBalance,
)
from ledger_kernel.services.audit_service import AuditAction, AuditService
from ledger_kernel.services.base import BaseService

logger = get_logger("services.chart_of_accounts")


class ChartOfAccounts(BaseService):

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit: AuditService | None = None,
        manage_transaction: bool = True,
    ):
        super().__init__(session, manage_transaction)
        self._clock = clock or SystemClock()
        self._audit = audit or AuditService(session, self._clock)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def lookup_account(self, code: str) -> Account | None:
        """Active account for ``code``, or None."""
        return self.session.execute(
            select(Account).where(
                Account.code == code,
                Account.is_active.is_(True),
                Account.is_deleted.is_(False),
            )
        ).scalar_one_or_none()

    def require_accounts(self, codes: list[str]) -> dict[str, Account]:
        """
        Resolve a batch of codes.

        Raises:
            AccountNotFoundError: listing every code that did not resolve.
        """
        wanted = sorted(set(codes))
        found = self.session.execute(
            select(Account).where(
                Account.code.in_(wanted),
                Account.is_active.is_(True),
                Account.is_deleted.is_(False),
            )
        ).scalars().all()
        by_code = {account.code: account for account in found}
        missing = [code for code in wanted if code not in by_code]
        if missing:
            logger.info("account_lookup_failed", extra={"missing_codes": missing})
            raise AccountNotFoundError(missing)
        return by_code

    def list_accounts(self, include_inactive: bool = False) -> list[Account]:
        query = select(Account).where(Account.is_deleted.is_(False))
        if not include_inactive:
            query = query.where(Account.is_active.is_(True))
        return list(self.session.execute(query.order_by(Account.code)).scalars())

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def create_account(
        self,
        code: str,
        name: str,
        account_type: AccountType,
        actor_id: UUID,
        normal_balance: NormalBalance | None = None,
        description: str | None = None,
    ) -> Account:
        with self._unit_of_work("create_account"):
            existing = self.session.execute(
                select(Account.id).where(Account.code == code)
            ).first()
            if existing is not None:
                raise DuplicateAccountError(code)

            account_type = AccountType(account_type)
            balance_side = NormalBalance(
                normal_balance or DEFAULT_NORMAL_BALANCE[account_type]
            )
            account = Account(
                code=code,
                name=name,
                account_type=account_type.value,
                normal_balance=balance_side.value,
                description=description,
                is_active=True,
                created_by_id=actor_id,
            )
            self.session.add(account)
            self.session.flush()

            self._audit.record(
                AuditAction.ACCOUNT_CREATE,
                module="chart_of_accounts",
                record_id=account.id,
                actor_id=actor_id,
                after={"code": code, "name": name, "account_type": account_type.value},
            )
            logger.info(
                "account_created",
                extra={"account_code": code, "account_type": account_type.value},
            )
        return account

    def deactivate_account(self, code: str, actor_id: UUID) -> Account:
        with self._unit_of_work("deactivate_account"):
            account = self.lookup_account(code)
            if account is None:
                raise AccountNotFoundError([code])
            account.is_active = False
            account.updated_by_id = actor_id
            self._audit.record(
                AuditAction.ACCOUNT_DEACTIVATE,
                module="chart_of_accounts",
                record_id=account.id,
                actor_id=actor_id,
                before={"is_active": True},
                after={"is_active": False},
            )
            logger.info("account_deactivated", extra={"account_code": code})
        return account
