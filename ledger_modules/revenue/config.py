"""
Revenue Configuration Schema.

Account codes the revenue bridge posts to, and the revenue code format.
Runtime values come from ``ledger_config.get_active_config().revenue``.
"""

from dataclasses import dataclass
from typing import Self

from ledger_config.schema import RevenueSettings
from ledger_kernel.logging_config import get_logger

logger = get_logger("modules.revenue.config")


@dataclass
class RevenueConfig:
    """
    Configuration schema for the revenue module.

    A revenue credits its source's ``account_code`` when set, otherwise
    ``default_revenue_account``. The debit goes to ``bank_account`` for the
    payment methods in ``bank_payment_methods`` and to ``cash_account``
    for everything else.
    """

    revenue_code_prefix: str = "REV-OTH"
    module_name: str = "REVENUE"
    sequence_width: int = 4
    decimal_places: int = 2

    default_revenue_account: str = "4000"
    cash_account: str = "1010"
    bank_account: str = "1020"
    bank_payment_methods: tuple[str, ...] = ("BANK_TRANSFER", "CHECK")

    def __post_init__(self):
        for name in (
            "revenue_code_prefix",
            "module_name",
            "default_revenue_account",
            "cash_account",
            "bank_account",
        ):
            value = getattr(self, name)
            if not value or not str(value).strip():
                raise ValueError(f"{name} cannot be empty")
        if self.sequence_width < 1:
            raise ValueError("sequence_width must be positive")
        if self.decimal_places < 0:
            raise ValueError("decimal_places cannot be negative")
        self.bank_payment_methods = tuple(m.upper() for m in self.bank_payment_methods)

        logger.debug(
            "revenue_config_initialized",
            extra={
                "module_name": self.module_name,
                "default_revenue_account": self.default_revenue_account,
                "cash_account": self.cash_account,
                "bank_account": self.bank_account,
            },
        )

    @classmethod
    def from_settings(
        cls, settings: RevenueSettings, sequence_width: int = 4, decimal_places: int = 2
    ) -> Self:
        return cls(
            revenue_code_prefix=settings.revenue_code_prefix,
            module_name=settings.module_name,
            sequence_width=sequence_width,
            decimal_places=decimal_places,
            default_revenue_account=settings.default_revenue_account,
            cash_account=settings.cash_account,
            bank_account=settings.bank_account,
            bank_payment_methods=tuple(settings.bank_payment_methods),
        )

    def debit_account_for(self, payment_method: str | None) -> str:
        if payment_method and payment_method.upper() in self.bank_payment_methods:
            return self.bank_account
        return self.cash_account
