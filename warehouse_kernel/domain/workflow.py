"""
Transfer bill workflows (``warehouse_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the exit and entry bill state machines and the single
function that resolves an action against a bill's current state.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``verified`` and ``completed`` bills cannot be cancelled.
* Completing a completed bill is ``AlreadyCompletedError``, never a second
  application of ledger effects.
"""

from __future__ import annotations

from dataclasses import dataclass

from warehouse_kernel.domain.dtos import BillStatus, BillType
from warehouse_kernel.exceptions import AlreadyCompletedError, InvalidStateTransitionError


@dataclass(frozen=True)
class Transition:
    """A valid state transition.  ``mutates_ledger`` marks stock effects."""

    from_state: str
    to_state: str
    action: str
    mutates_ledger: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for one bill type."""

    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self):
        if self.initial_state not in self.states:
            raise ValueError(f"{self.name}: initial state {self.initial_state!r} is not a state")
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(f"{self.name}: transition {t} references an unknown state")

    def find(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None

    def actions_from(self, state: str) -> tuple[str, ...]:
        return tuple(t.action for t in self.transitions if t.from_state == state)


EXIT_BILL_WORKFLOW = Workflow(
    name="exit_bill",
    description="Company stock leaving for a franchise",
    initial_state=BillStatus.DRAFT.value,
    states=(
        BillStatus.DRAFT.value,
        BillStatus.COMPLETED.value,
        BillStatus.CANCELLED.value,
    ),
    transitions=(
        Transition("draft", "draft", action="update_items"),
        Transition("draft", "completed", action="complete", mutates_ledger=True),
        Transition("draft", "cancelled", action="cancel"),
    ),
    terminal_states=(BillStatus.COMPLETED.value, BillStatus.CANCELLED.value),
)

ENTRY_BILL_WORKFLOW = Workflow(
    name="entry_bill",
    description="Stock arriving at a franchise, verified before it is booked",
    initial_state=BillStatus.DRAFT.value,
    states=(
        BillStatus.DRAFT.value,
        BillStatus.VERIFIED.value,
        BillStatus.COMPLETED.value,
        BillStatus.CANCELLED.value,
    ),
    transitions=(
        Transition("draft", "draft", action="append_item"),
        Transition("draft", "verified", action="verify"),
        Transition("verified", "completed", action="complete", mutates_ledger=True),
        Transition("draft", "cancelled", action="cancel"),
    ),
    terminal_states=(BillStatus.COMPLETED.value, BillStatus.CANCELLED.value),
)

WORKFLOWS: dict[BillType, Workflow] = {
    BillType.EXIT: EXIT_BILL_WORKFLOW,
    BillType.ENTRY: ENTRY_BILL_WORKFLOW,
}


def resolve_transition(
    bill_type: BillType | str,
    current_status: BillStatus | str,
    action: str,
    *,
    bill_id: str,
    bill_number: str = "",
) -> Transition:
    """
    Return the transition for ``action`` or raise.

    Raises:
        AlreadyCompletedError: action is ``complete`` on a completed bill.
        InvalidStateTransitionError: any other action not allowed from the
            current status (including actions unknown to the bill type).
    """
    workflow = WORKFLOWS[BillType(bill_type)]
    status = BillStatus(current_status).value

    transition = workflow.find(status, action)
    if transition is not None:
        return transition

    if action == "complete" and status == BillStatus.COMPLETED.value:
        raise AlreadyCompletedError(bill_id=bill_id, bill_number=bill_number)

    allowed = workflow.actions_from(status)
    reason = (
        f"allowed actions for a {workflow.name} in '{status}': {', '.join(allowed)}"
        if allowed
        else f"'{status}' is terminal for a {workflow.name}"
    )
    raise InvalidStateTransitionError(
        bill_id=bill_id,
        current_status=status,
        action=action,
        reason=reason,
    )
