"""
Module: rental_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/base.py and
    models/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses or computed
      values, not ORM instances.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC
from enum import Enum
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from rental_kernel.db.base import Base
from rental_kernel.exceptions import InvalidStatusFilterError

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Selectors accept a Session from the caller, perform read-only queries,
    and return DTOs or computed results.
    """

    def __init__(self, session: Session):
        self.session = session


StatusType = TypeVar("StatusType", bound=Enum)


def status_filter(entity: str, status_cls: type[StatusType], value: StatusType | str) -> StatusType:
    """Coerce a listing status filter; unknown values raise InvalidStatusFilterError."""
    if isinstance(value, status_cls):
        return value
    try:
        return status_cls(value)
    except ValueError:
        raise InvalidStatusFilterError(entity, str(value)) from None
