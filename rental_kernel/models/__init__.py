"""Kernel-owned ORM models: collaborator references and the audit trail."""

from rental_kernel.models.audit_event import AuditAction, BillingAuditEvent
from rental_kernel.models.reference import (
    Organization,
    Payment,
    Property,
    Unit,
    UnitStatus,
    User,
)

__all__ = [
    "AuditAction",
    "BillingAuditEvent",
    "Organization",
    "Payment",
    "Property",
    "Unit",
    "UnitStatus",
    "User",
]
