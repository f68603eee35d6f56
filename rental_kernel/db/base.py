"""
Declarative base and shared column conventions for the billing tables.

Every table gets a uuid4 primary key stored as text, so the same schema
runs on SQLite and PostgreSQL.  Money columns declared as ``Decimal`` are
Numeric(12, 2); floats are never used for amounts.  Tables that users edit
(leases, invoices, invoice items, allocations) extend TrackedBase and carry
who created and last changed each row.

This module imports nothing from the rest of the package.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

MONEY = Numeric(12, 2)


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, VARCHAR(36) in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> str | None:
        return None if value is None else str(value)

    def process_result_value(self, value: Any, dialect: Any) -> PyUUID | None:
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        PyUUID: UUIDString(),
        Decimal: MONEY,
        datetime: DateTime(timezone=True),
        date: Date,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Adds creation/modification timestamps and the acting user ids."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())
    created_by_id: Mapped[PyUUID] = mapped_column()
    updated_by_id: Mapped[PyUUID | None] = mapped_column()


UUID = PyUUID
