"""Database layer - engine, base classes, money helpers, and retry."""

from rental_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from rental_kernel.db.engine import (
    create_engine_from_url,
    create_session_factory,
    create_tables,
    drop_tables,
    session_scope,
)
from rental_kernel.db.types import round_money, to_money, validate_currency

__all__ = [
    "create_engine_from_url",
    "create_session_factory",
    "create_tables",
    "drop_tables",
    "session_scope",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "round_money",
    "to_money",
    "validate_currency",
]
