"""Named counter rows backing document numbering."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class SequenceCounter(Base):
    """
    One row per sequence name (e.g. ``"JE-2024"``, ``"RCV-202401"``).

    Rows are locked with ``SELECT ... FOR UPDATE`` while incremented.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(nullable=False, default=0)
