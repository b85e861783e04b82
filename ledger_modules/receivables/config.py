"""
Receivables Configuration Schema.

Defines the structure and defaults for receivables settings. Runtime
values come from ``ledger_config.get_active_config().receivables``.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from ledger_config.schema import OverpaymentPolicy, ReceivableSettings
from ledger_kernel.logging_config import get_logger

logger = get_logger("modules.receivables.config")


@dataclass
class ReceivablesConfig:
    """
    Configuration schema for the receivables module.

        config = ReceivablesConfig.from_settings(get_active_config().receivables)
    """

    receivable_code_prefix: str = "RCV"
    payment_revenue_code_prefix: str = "REV-PAY"
    sequence_width: int = 4

    # Money precision for every amount this module accepts
    decimal_places: int = 2

    # Schedule total must match the receivable total within this amount
    schedule_tolerance: Decimal = Decimal("0.01")

    overpayment_policy: OverpaymentPolicy = OverpaymentPolicy.REJECT

    # Debtor name used when the directory lookup fails
    placeholder_debtor_name: str = "Unknown - Pending Sync"

    def __post_init__(self):
        if not self.receivable_code_prefix or not self.receivable_code_prefix.strip():
            raise ValueError("receivable_code_prefix cannot be empty")
        if not self.payment_revenue_code_prefix or not self.payment_revenue_code_prefix.strip():
            raise ValueError("payment_revenue_code_prefix cannot be empty")
        if self.sequence_width < 1:
            raise ValueError("sequence_width must be positive")
        if self.decimal_places < 0:
            raise ValueError("decimal_places cannot be negative")
        if self.schedule_tolerance < 0:
            raise ValueError("schedule_tolerance cannot be negative")
        if not isinstance(self.overpayment_policy, OverpaymentPolicy):
            self.overpayment_policy = OverpaymentPolicy(self.overpayment_policy)
        if not self.placeholder_debtor_name or not self.placeholder_debtor_name.strip():
            raise ValueError("placeholder_debtor_name cannot be empty")

        logger.debug(
            "receivables_config_initialized",
            extra={
                "receivable_code_prefix": self.receivable_code_prefix,
                "schedule_tolerance": self.schedule_tolerance,
                "overpayment_policy": self.overpayment_policy.value,
            },
        )

    @classmethod
    def from_settings(cls, settings: ReceivableSettings, decimal_places: int = 2) -> Self:
        return cls(
            decimal_places=decimal_places,
            receivable_code_prefix=settings.receivable_code_prefix,
            payment_revenue_code_prefix=settings.payment_revenue_code_prefix,
            sequence_width=settings.sequence_width,
            schedule_tolerance=settings.schedule_tolerance,
            overpayment_policy=settings.overpayment_policy,
            placeholder_debtor_name=settings.placeholder_debtor_name,
        )
