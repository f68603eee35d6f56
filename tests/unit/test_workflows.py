"""Lease and invoice state machine definitions."""

import pytest

from rental_kernel.domain.workflow import Transition, Workflow
from rental_kernel.exceptions import InvalidStatusTransitionError, ValidationError
from rental_modules.invoicing.workflows import BALANCE_ZERO, INVOICE_WORKFLOW, NO_ALLOCATIONS
from rental_modules.lease.workflows import LEASE_WORKFLOW, UNIT_STATUS_ON_ENTRY
from rental_modules.lease.models import LeaseStatus
from rental_kernel.models.reference import UnitStatus


class TestLeaseWorkflow:
    @pytest.mark.parametrize("from_state,to_state", [
        ("draft", "active"),
        ("draft", "pendingMoveIn"),
        ("draft", "cancelled"),
        ("pendingMoveIn", "active"),
        ("pendingMoveIn", "cancelled"),
        ("active", "ended"),
        ("active", "terminated"),
    ])
    def test_allowed_edges(self, from_state, to_state):
        assert LEASE_WORKFLOW.require("lease", from_state, to_state).to_state == to_state

    @pytest.mark.parametrize("from_state,to_state", [
        ("active", "draft"),
        ("ended", "active"),
        ("terminated", "active"),
        ("cancelled", "draft"),
        ("draft", "ended"),
        ("active", "cancelled"),
    ])
    def test_rejected_edges_name_both_states(self, from_state, to_state):
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            LEASE_WORKFLOW.require("lease", from_state, to_state)
        assert exc_info.value.from_status == from_state
        assert exc_info.value.to_status == to_state
        assert isinstance(exc_info.value, ValidationError)

    def test_terminal_states_have_no_targets(self):
        for state in LEASE_WORKFLOW.terminal_states:
            assert LEASE_WORKFLOW.targets_from(state) == ()

    def test_unit_status_on_entry(self):
        assert UNIT_STATUS_ON_ENTRY[LeaseStatus.ACTIVE] is UnitStatus.OCCUPIED
        assert UNIT_STATUS_ON_ENTRY[LeaseStatus.PENDING_MOVE_IN] is UnitStatus.RESERVED
        for status in (LeaseStatus.ENDED, LeaseStatus.TERMINATED, LeaseStatus.CANCELLED):
            assert UNIT_STATUS_ON_ENTRY[status] is UnitStatus.VACANT


class TestInvoiceWorkflow:
    def test_void_is_terminal(self):
        assert INVOICE_WORKFLOW.targets_from("void") == ()

    def test_paid_cannot_return_to_issued(self):
        with pytest.raises(InvalidStatusTransitionError):
            INVOICE_WORKFLOW.require("invoice", "paid", "issued")

    def test_draft_cannot_jump_to_paid(self):
        with pytest.raises(InvalidStatusTransitionError):
            INVOICE_WORKFLOW.require("invoice", "draft", "paid")

    def test_payment_edges_carry_balance_guard(self):
        for from_state in ("issued", "partiallyPaid", "overdue"):
            assert INVOICE_WORKFLOW.find(from_state, "paid").guard == BALANCE_ZERO

    def test_void_edges_carry_allocation_guard(self):
        void_edges = [t for t in INVOICE_WORKFLOW.transitions if t.to_state == "void"]
        assert {t.from_state for t in void_edges} == {"draft", "issued", "partiallyPaid", "paid", "overdue"}
        assert all(t.guard == NO_ALLOCATIONS for t in void_edges)

    def test_overdue_reachable_from_issued_only(self):
        sources = {t.from_state for t in INVOICE_WORKFLOW.transitions if t.to_state == "overdue"}
        assert sources == {"issued"}


class TestWorkflowDefinition:
    def test_unknown_initial_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="nowhere",
                states=("a", "b"),
                transitions=(),
            )

    def test_transition_out_of_terminal_state_rejected(self):
        with pytest.raises(ValueError):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("b", "a", action="reopen"),),
                terminal_states=("b",),
            )
