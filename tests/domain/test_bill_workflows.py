"""
Tests for the exit and entry bill state machines.
"""

import pytest

from warehouse_kernel.domain.workflow import (
    ENTRY_BILL_WORKFLOW,
    EXIT_BILL_WORKFLOW,
    Transition,
    Workflow,
    resolve_transition,
)
from warehouse_kernel.exceptions import AlreadyCompletedError, InvalidStateTransitionError


class TestExitBillWorkflow:

    def test_draft_can_complete(self):
        t = resolve_transition("exit", "draft", "complete", bill_id="b1")
        assert t.to_state == "completed"
        assert t.mutates_ledger

    def test_draft_can_cancel(self):
        t = resolve_transition("exit", "draft", "cancel", bill_id="b1")
        assert t.to_state == "cancelled"
        assert not t.mutates_ledger

    def test_exit_bills_have_no_verification(self):
        with pytest.raises(InvalidStateTransitionError):
            resolve_transition("exit", "draft", "verify", bill_id="b1")

    def test_completed_cannot_be_completed_again(self):
        with pytest.raises(AlreadyCompletedError) as exc_info:
            resolve_transition("exit", "completed", "complete", bill_id="b1", bill_number="EXB-1-000001")
        assert exc_info.value.bill_number == "EXB-1-000001"

    def test_cancelled_is_terminal(self):
        with pytest.raises(InvalidStateTransitionError, match="terminal"):
            resolve_transition("exit", "cancelled", "update_items", bill_id="b1")


class TestEntryBillWorkflow:

    def test_draft_to_verified_to_completed(self):
        assert resolve_transition("entry", "draft", "verify", bill_id="b").to_state == "verified"
        assert resolve_transition("entry", "verified", "complete", bill_id="b").to_state == "completed"

    def test_draft_cannot_complete_without_verification(self):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            resolve_transition("entry", "draft", "complete", bill_id="b")
        assert exc_info.value.current_status == "draft"
        assert "verify" in exc_info.value.reason

    def test_verified_cannot_be_cancelled(self):
        with pytest.raises(InvalidStateTransitionError):
            resolve_transition("entry", "verified", "cancel", bill_id="b")

    def test_verified_cannot_be_verified_again(self):
        with pytest.raises(InvalidStateTransitionError):
            resolve_transition("entry", "verified", "verify", bill_id="b")

    def test_append_only_on_draft(self):
        resolve_transition("entry", "draft", "append_item", bill_id="b")
        with pytest.raises(InvalidStateTransitionError):
            resolve_transition("entry", "verified", "append_item", bill_id="b")

    def test_completed_entry_is_already_completed(self):
        with pytest.raises(AlreadyCompletedError):
            resolve_transition("entry", "completed", "complete", bill_id="b")


class TestWorkflowDefinition:

    def test_terminal_states_have_no_exits(self):
        for workflow in (EXIT_BILL_WORKFLOW, ENTRY_BILL_WORKFLOW):
            for state in workflow.terminal_states:
                assert workflow.actions_from(state) == ()

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow(
                name="broken",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "b", action="go"),),
            )

    def test_unknown_status_value_rejected(self):
        with pytest.raises(ValueError):
            resolve_transition("exit", "shipped", "complete", bill_id="b")
