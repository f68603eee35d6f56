"""
Invoicing Workflows.

State machine for the invoice lifecycle.  Payment states are entered by
allocation; manual changes to them must pass the balance guards.
"""

from rental_kernel.domain.workflow import Guard, Transition, Workflow
from rental_kernel.logging_config import get_logger
from rental_modules.invoicing.models import InvoiceStatus

logger = get_logger("modules.invoicing.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

BALANCE_ZERO = Guard(
    name="balance_zero",
    description="Invoice balance is zero",
)

BALANCE_PARTIAL = Guard(
    name="balance_partial",
    description="Invoice balance is above zero and below the total",
)

NO_ALLOCATIONS = Guard(
    name="no_allocations",
    description="Invoice is not paid and no payment has been allocated to it",
)


# -----------------------------------------------------------------------------
# Invoice Workflow
# -----------------------------------------------------------------------------

_DRAFT = InvoiceStatus.DRAFT.value
_ISSUED = InvoiceStatus.ISSUED.value
_PARTIAL = InvoiceStatus.PARTIALLY_PAID.value
_PAID = InvoiceStatus.PAID.value
_VOID = InvoiceStatus.VOID.value
_OVERDUE = InvoiceStatus.OVERDUE.value

INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Rental invoice lifecycle",
    initial_state=_DRAFT,
    states=(_DRAFT, _ISSUED, _PARTIAL, _PAID, _VOID, _OVERDUE),
    transitions=(
        Transition(_DRAFT, _ISSUED, action="issue"),
        Transition(_DRAFT, _VOID, action="void", guard=NO_ALLOCATIONS),
        Transition(_ISSUED, _PARTIAL, action="apply_payment", guard=BALANCE_PARTIAL),
        Transition(_ISSUED, _PAID, action="apply_payment", guard=BALANCE_ZERO),
        Transition(_ISSUED, _VOID, action="void", guard=NO_ALLOCATIONS),
        Transition(_ISSUED, _OVERDUE, action="mark_overdue"),
        Transition(_PARTIAL, _PAID, action="apply_payment", guard=BALANCE_ZERO),
        Transition(_PARTIAL, _VOID, action="void", guard=NO_ALLOCATIONS),
        Transition(_PAID, _VOID, action="void", guard=NO_ALLOCATIONS),
        Transition(_OVERDUE, _PARTIAL, action="apply_payment", guard=BALANCE_PARTIAL),
        Transition(_OVERDUE, _PAID, action="apply_payment", guard=BALANCE_ZERO),
        Transition(_OVERDUE, _VOID, action="void", guard=NO_ALLOCATIONS),
    ),
    terminal_states=(_VOID,),
)

logger.debug(
    "invoice_workflow_registered",
    extra={
        "workflow_name": INVOICE_WORKFLOW.name,
        "state_count": len(INVOICE_WORKFLOW.states),
        "transition_count": len(INVOICE_WORKFLOW.transitions),
    },
)
