"""
Lease Workflows.

State machine for the lease lifecycle, and the unit occupancy status each
target lease status implies.
"""

from rental_kernel.domain.workflow import Guard, Transition, Workflow
from rental_kernel.logging_config import get_logger
from rental_kernel.models.reference import UnitStatus
from rental_modules.lease.models import LeaseStatus

logger = get_logger("modules.lease.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

UNIT_AVAILABLE = Guard(
    name="unit_available",
    description="Unit is vacant or unavailable (or reserved by this lease)",
)

NO_OVERLAP = Guard(
    name="no_overlapping_lease",
    description="No other active or pending lease on the unit intersects the lease dates",
)


# -----------------------------------------------------------------------------
# Lease Workflow
# -----------------------------------------------------------------------------

_DRAFT = LeaseStatus.DRAFT.value
_PENDING = LeaseStatus.PENDING_MOVE_IN.value
_ACTIVE = LeaseStatus.ACTIVE.value
_ENDED = LeaseStatus.ENDED.value
_TERMINATED = LeaseStatus.TERMINATED.value
_CANCELLED = LeaseStatus.CANCELLED.value

LEASE_WORKFLOW = Workflow(
    name="lease",
    description="Lease lifecycle from draft through move-in to exit",
    initial_state=_DRAFT,
    states=(_DRAFT, _PENDING, _ACTIVE, _ENDED, _TERMINATED, _CANCELLED),
    transitions=(
        Transition(_DRAFT, _ACTIVE, action="activate", guard=UNIT_AVAILABLE),
        Transition(_DRAFT, _PENDING, action="reserve", guard=UNIT_AVAILABLE),
        Transition(_DRAFT, _CANCELLED, action="cancel"),
        Transition(_PENDING, _ACTIVE, action="move_in", guard=NO_OVERLAP),
        Transition(_PENDING, _CANCELLED, action="cancel"),
        Transition(_ACTIVE, _ENDED, action="end"),
        Transition(_ACTIVE, _TERMINATED, action="terminate"),
    ),
    terminal_states=(_ENDED, _TERMINATED, _CANCELLED),
)

# Unit status written when a lease enters each status.
UNIT_STATUS_ON_ENTRY: dict[LeaseStatus, UnitStatus] = {
    LeaseStatus.ACTIVE: UnitStatus.OCCUPIED,
    LeaseStatus.PENDING_MOVE_IN: UnitStatus.RESERVED,
    LeaseStatus.ENDED: UnitStatus.VACANT,
    LeaseStatus.TERMINATED: UnitStatus.VACANT,
    LeaseStatus.CANCELLED: UnitStatus.VACANT,
}

logger.debug(
    "lease_workflow_registered",
    extra={
        "workflow_name": LEASE_WORKFLOW.name,
        "state_count": len(LEASE_WORKFLOW.states),
        "transition_count": len(LEASE_WORKFLOW.transitions),
    },
)
