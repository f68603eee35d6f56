"""
BaseService -- abstract base for all flush-only billing components.

Responsibility:
    Provides the common constructor and session-handling contract for
    every component that writes: the lease lifecycle manager, invoice
    ledger, item manager, allocation ledger and lease invoice generator.
    They receive a SQLAlchemy ``Session`` and use ``session.flush()`` --
    never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: components flush within the caller's
    transaction and never commit or roll back.  The caller
    (BillingService, the batch generator, or a test) owns the unit of work,
    so a status change and its dependent writes land atomically.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from rental_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all flush-only services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only query methods -- those belong in
          selectors.
    """

    def __init__(self, session: Session):
        self.session = session
