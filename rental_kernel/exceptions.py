"""
Typed Exception Hierarchy for the Rental Billing Core.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from RentalBillingError:

    RentalBillingError (base)
    |
    +-- NotFoundError
    |   +-- OrganizationNotFoundError
    |   +-- PropertyNotFoundError
    |   +-- UnitNotFoundError
    |   +-- TenantNotFoundError
    |   +-- LeaseNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- InvoiceItemNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- ValidationError
    |   +-- InvalidStatusTransitionError
    |   +-- TransitionGuardError
    |   +-- InvalidStatusFilterError
    |   +-- InvalidLeaseTermsError
    |   +-- LeaseFieldLockedError
    |   +-- LeaseNotDeletableError
    |   +-- LeaseNotRenewableError
    |   +-- LeaseNotActiveError
    |   +-- InvoiceNotDraftError
    |   +-- InvoiceNotVoidableError
    |   +-- InvoiceNotPayableError
    |   +-- InvoiceNotRemindableError
    |   +-- InvalidAmountError
    |   +-- OverAllocationError
    |   +-- InvalidBillingPeriodError
    |   +-- InvalidCurrencyError
    |
    +-- ConflictError
    |   +-- LeaseOverlapError
    |   +-- UnitUnavailableError
    |   +-- DuplicateInvoiceNumberError
    |   +-- InvoiceAlreadyExistsError
    |   +-- DuplicateAllocationError
    |
    +-- InfrastructureError
        +-- TransientDatabaseError
        +-- InternalBillingError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Not found       | NOT_FOUND (+ specific)      | Row missing or outside caller's org
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_STATUS_TRANSITION   | Edge not in the workflow table
                | TRANSITION_GUARD_FAILED     | Edge exists but its guard rejects it
                | INVALID_STATUS_FILTER       | Listing filtered by an unknown status
                | INVALID_LEASE_TERMS         | Dates, rent, due day out of range
                | LEASE_FIELD_LOCKED          | Editing a locked field on a live lease
                | LEASE_NOT_DELETABLE         | Deleting a non-draft lease
                | LEASE_NOT_RENEWABLE         | Renewing a lease not active/ended
                | LEASE_NOT_ACTIVE            | Invoicing a lease that is not active
                | INVOICE_NOT_DRAFT           | Editing an issued/locked invoice
                | INVOICE_NOT_VOIDABLE        | Voiding paid or allocated invoice
                | INVOICE_NOT_PAYABLE         | Allocating to draft/void/paid invoice
                | INVOICE_NOT_REMINDABLE      | Reminder for a non-issued/overdue invoice
                | INVALID_AMOUNT              | Quantity/price/amount out of range
                | OVER_ALLOCATION             | Allocation beyond balance or payment
                | INVALID_BILLING_PERIOD      | Month/year/due day out of range
                | INVALID_CURRENCY            | Not ISO 4217, or currency mismatch
----------------|-----------------------------|-----------------------------------------
Conflict        | LEASE_OVERLAP               | Dates intersect an active lease
                | UNIT_UNAVAILABLE            | Unit occupied/reserved
                | DUPLICATE_INVOICE_NUMBER    | Number reused within organization
                | INVOICE_ALREADY_EXISTS      | Lease already invoiced for period
                | DUPLICATE_ALLOCATION        | Payment already applied to invoice
----------------|-----------------------------|-----------------------------------------
Infrastructure  | TRANSIENT_DATABASE_ERROR    | Serialization failure / deadlock
                | INTERNAL_ERROR              | Anything else from the store

===============================================================================
HANDLING PATTERNS
===============================================================================

NotFound, Validation and Conflict errors are *operational*: the caller gets
``e.code`` and the structured attributes, the transaction is rolled back,
and the operation is never retried.  ``TransientDatabaseError`` is raised
only after the retry budget is exhausted.  ``InternalBillingError`` carries
a generic message; the underlying cause is logged, not returned.

    try:
        service.allocate_payment(org_id, actor_id, payment_id, invoice_id, amount)
    except OverAllocationError as e:
        return {"error": e.code, "balance": e.available}
"""


class RentalBillingError(Exception):
    """
    Base exception for all rental billing errors.

    Every subclass has a ``code`` class attribute for machine-readable
    identification.  ``operational`` is False only for infrastructure
    failures.
    """

    code: str = "RENTAL_BILLING_ERROR"
    operational: bool = True


# Not found


class NotFoundError(RentalBillingError):
    """Base exception for missing or out-of-scope entities."""

    code: str = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"{entity} not found")
        else:
            super().__init__(f"{entity} not found: {entity_id}")


class OrganizationNotFoundError(NotFoundError):
    code: str = "ORGANIZATION_NOT_FOUND"

    def __init__(self, organization_id: str):
        super().__init__("Organization", organization_id)


class PropertyNotFoundError(NotFoundError):
    code: str = "PROPERTY_NOT_FOUND"

    def __init__(self, property_id: str):
        super().__init__("Property", property_id)


class UnitNotFoundError(NotFoundError):
    code: str = "UNIT_NOT_FOUND"

    def __init__(self, unit_id: str):
        super().__init__("Unit", unit_id)


class TenantNotFoundError(NotFoundError):
    code: str = "TENANT_NOT_FOUND"

    def __init__(self, tenant_user_id: str):
        super().__init__("Tenant", tenant_user_id)


class LeaseNotFoundError(NotFoundError):
    code: str = "LEASE_NOT_FOUND"

    def __init__(self, lease_id: str):
        super().__init__("Lease", lease_id)


class InvoiceNotFoundError(NotFoundError):
    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        super().__init__("Invoice", invoice_id)


class InvoiceItemNotFoundError(NotFoundError):
    code: str = "INVOICE_ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        super().__init__("Invoice item", item_id)


class PaymentNotFoundError(NotFoundError):
    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        super().__init__("Payment", payment_id)


# Validation


class ValidationError(RentalBillingError):
    """Base exception for rejected state changes and invalid input."""

    code: str = "VALIDATION_ERROR"


class InvalidStatusTransitionError(ValidationError):
    """Requested status edge is not in the workflow table."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, entity: str, from_status: str, to_status: str):
        self.entity = entity
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid {entity} status transition from {from_status} to {to_status}"
        )


class InvalidStatusFilterError(ValidationError):
    code: str = "INVALID_STATUS_FILTER"

    def __init__(self, entity: str, status: str):
        self.entity = entity
        self.status = status
        super().__init__(f"Unknown {entity} status filter: {status}")


class TransitionGuardError(ValidationError):
    """Status edge exists but its guard condition is not satisfied."""

    code: str = "TRANSITION_GUARD_FAILED"

    def __init__(self, entity: str, from_status: str, to_status: str, guard: str, reason: str):
        self.entity = entity
        self.from_status = from_status
        self.to_status = to_status
        self.guard = guard
        self.reason = reason
        super().__init__(
            f"Cannot move {entity} from {from_status} to {to_status}: {reason}"
        )


class InvalidLeaseTermsError(ValidationError):
    code: str = "INVALID_LEASE_TERMS"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid lease {field}: {reason}")


class LeaseFieldLockedError(ValidationError):
    """Attempt to change a locked field on an active or terminated lease."""

    code: str = "LEASE_FIELD_LOCKED"

    def __init__(self, lease_id: str, status: str, fields: list[str]):
        self.lease_id = lease_id
        self.status = status
        self.fields = fields
        super().__init__(
            f"Cannot update {', '.join(fields)} on {status} lease {lease_id}"
        )


class LeaseNotDeletableError(ValidationError):
    code: str = "LEASE_NOT_DELETABLE"

    def __init__(self, lease_id: str, status: str):
        self.lease_id = lease_id
        self.status = status
        super().__init__(f"Only draft leases can be deleted (lease {lease_id} is {status})")


class LeaseNotRenewableError(ValidationError):
    code: str = "LEASE_NOT_RENEWABLE"

    def __init__(self, lease_id: str, status: str):
        self.lease_id = lease_id
        self.status = status
        super().__init__(
            f"Only active or ended leases can be renewed (lease {lease_id} is {status})"
        )


class LeaseNotActiveError(ValidationError):
    code: str = "LEASE_NOT_ACTIVE"

    def __init__(self, lease_id: str, status: str):
        self.lease_id = lease_id
        self.status = status
        super().__init__(
            f"Can only generate invoices for active leases (lease {lease_id} is {status})"
        )


class InvoiceNotDraftError(ValidationError):
    """Invoice or its items are locked because the invoice left draft."""

    code: str = "INVOICE_NOT_DRAFT"

    def __init__(self, invoice_id: str, status: str, action: str):
        self.invoice_id = invoice_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} on {status} invoice {invoice_id}; only draft invoices are editable"
        )


class InvoiceNotVoidableError(ValidationError):
    code: str = "INVOICE_NOT_VOIDABLE"

    def __init__(self, invoice_id: str, reason: str):
        self.invoice_id = invoice_id
        self.reason = reason
        super().__init__(f"Cannot void invoice {invoice_id}: {reason}")


class InvoiceNotRemindableError(ValidationError):
    code: str = "INVOICE_NOT_REMINDABLE"

    def __init__(self, invoice_id: str, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(
            f"Reminders can only be sent for issued or overdue invoices (invoice {invoice_id} is {status})"
        )


class InvoiceNotPayableError(ValidationError):
    code: str = "INVOICE_NOT_PAYABLE"

    def __init__(self, invoice_id: str, status: str):
        self.invoice_id = invoice_id
        self.status = status
        super().__init__(f"Cannot allocate payment to {status} invoice {invoice_id}")


class InvalidAmountError(ValidationError):
    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value}: {reason}")


class OverAllocationError(ValidationError):
    """Allocation exceeds the invoice balance or the unapplied payment amount."""

    code: str = "OVER_ALLOCATION"

    def __init__(self, target: str, target_id: str, requested: str, available: str):
        self.target = target
        self.target_id = target_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Over-allocation on {target} {target_id}: "
            f"requested {requested}, available {available}"
        )


class InvalidBillingPeriodError(ValidationError):
    code: str = "INVALID_BILLING_PERIOD"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid billing period: {reason}")


class InvalidCurrencyError(ValidationError):
    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str, reason: str = "not a valid ISO 4217 code"):
        self.currency = currency
        self.reason = reason
        super().__init__(f"Invalid currency '{currency}': {reason}")


# Conflict


class ConflictError(RentalBillingError):
    """Base exception for uniqueness and availability conflicts."""

    code: str = "CONFLICT"


class LeaseOverlapError(ConflictError):
    code: str = "LEASE_OVERLAP"

    def __init__(self, unit_id: str, conflicting_lease_ids: list[str]):
        self.unit_id = unit_id
        self.conflicting_lease_ids = conflicting_lease_ids
        super().__init__(
            f"Lease dates conflict with existing lease(s) for unit {unit_id}: "
            f"{', '.join(conflicting_lease_ids)}"
        )


class UnitUnavailableError(ConflictError):
    code: str = "UNIT_UNAVAILABLE"

    def __init__(self, unit_id: str, unit_status: str):
        self.unit_id = unit_id
        self.unit_status = unit_status
        super().__init__(f"Unit {unit_id} is not available for leasing (status {unit_status})")


class DuplicateInvoiceNumberError(ConflictError):
    code: str = "DUPLICATE_INVOICE_NUMBER"

    def __init__(self, organization_id: str, invoice_number: str):
        self.organization_id = organization_id
        self.invoice_number = invoice_number
        super().__init__(
            f"Invoice number {invoice_number} already exists in organization {organization_id}"
        )


class InvoiceAlreadyExistsError(ConflictError):
    code: str = "INVOICE_ALREADY_EXISTS"

    def __init__(self, lease_id: str, year: int, month: int, invoice_id: str):
        self.lease_id = lease_id
        self.year = year
        self.month = month
        self.invoice_id = invoice_id
        super().__init__(
            f"Lease {lease_id} already invoiced for {year}-{month:02d} (invoice {invoice_id})"
        )


class DuplicateAllocationError(ConflictError):
    code: str = "DUPLICATE_ALLOCATION"

    def __init__(self, payment_id: str, invoice_id: str):
        self.payment_id = payment_id
        self.invoice_id = invoice_id
        super().__init__(f"Payment {payment_id} is already allocated to invoice {invoice_id}")


# Infrastructure


class InfrastructureError(RentalBillingError):
    """Base exception for store failures. Not operational."""

    code: str = "INFRASTRUCTURE_ERROR"
    operational: bool = False


class TransientDatabaseError(InfrastructureError):
    """Serialization failure or deadlock that survived every retry."""

    code: str = "TRANSIENT_DATABASE_ERROR"

    def __init__(self, operation: str, attempts: int):
        self.operation = operation
        self.attempts = attempts
        super().__init__(f"{operation} failed after {attempts} attempt(s) due to concurrent updates")


class InternalBillingError(InfrastructureError):
    """Generic surface for unexpected store failures; details stay in the log."""

    code: str = "INTERNAL_ERROR"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__("Internal server error")
