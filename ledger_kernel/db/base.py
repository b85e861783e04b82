"""
Module: ledger_kernel.db.base
Responsibility: Declarative base classes for every ORM model in the ledger,
    the UUID primary key convention and the column type map for money and
    timestamps.
Architecture position: Kernel > DB. Lowest-level import target; must not
    import models, services or modules.

Invariants enforced:
    - Every row gets a uuid4 primary key stored as a 36-char string.
    - Decimal maps to Numeric(38, 9); money is never a float column.
    - TrackedBase rows always record who created them.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36) so SQLite and PostgreSQL behave the same."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return PyUUID(value)


class Base(DeclarativeBase):
    """
    Declarative base for all ledger models.

    Provides the UUID primary key and a type_annotation_map so that
    ``Mapped[Decimal]`` columns are always Numeric(38, 9) and
    ``Mapped[datetime]`` columns are always timezone-aware.
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with audit timestamps and actor ids.

    ``updated_at`` and ``updated_by_id`` are bookkeeping metadata and may
    change even on rows whose financial fields are frozen.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    created_by_id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    updated_by_id: Mapped[PyUUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )


UUID = PyUUID
