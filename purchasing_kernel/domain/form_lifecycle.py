"""
Form lifecycle (``purchasing_kernel.domain.form_lifecycle``).

Responsibility
--------------
Declares the state machine shared by every form envelope (payment orders,
invoices, down payments, returns) and derives a form's state from the two
persisted status columns.

Architecture position
---------------------
**Kernel domain layer** -- pure.  The form lifecycle service evaluates
the guards named here against a locked, freshly read form row.

Invariants enforced
-------------------
* ``approval_status`` leaves pending exactly once, to approved or rejected.
* Cancellation can only be requested on an approved form, and its status
  leaves pending exactly once.
* ``rejected`` and ``cancellation_approved`` are terminal.
* A rejected cancellation leaves the form approved; the cancellation may
  be requested again.
"""

from __future__ import annotations

from enum import Enum, IntEnum

from purchasing_kernel.domain.workflow import Guard, Transition, Workflow


class ApprovalStatus(IntEnum):
    PENDING = 0
    APPROVED = 1
    REJECTED = -1


class CancellationStatus(IntEnum):
    PENDING = 0
    APPROVED = 1
    REJECTED = -1


class FormState(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING_CANCELLATION = "pending_cancellation"
    CANCELLATION_APPROVED = "cancellation_approved"
    CANCELLATION_REJECTED = "cancellation_rejected"


class FormAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CANCELLATION = "request_cancellation"
    APPROVE_CANCELLATION = "approve_cancellation"
    REJECT_CANCELLATION = "reject_cancellation"


def form_state(
    approval_status: int | None,
    cancellation_status: int | None,
) -> FormState:
    """Derive the lifecycle state from the persisted status pair.

    Cancellation status wins once set, because it can only be set on an
    approved form.
    """
    if cancellation_status == CancellationStatus.PENDING:
        return FormState.PENDING_CANCELLATION
    if cancellation_status == CancellationStatus.APPROVED:
        return FormState.CANCELLATION_APPROVED
    if approval_status is None:
        return FormState.DRAFT
    if approval_status == ApprovalStatus.PENDING:
        return FormState.PENDING_APPROVAL
    if approval_status == ApprovalStatus.REJECTED:
        return FormState.REJECTED
    if cancellation_status == CancellationStatus.REJECTED:
        return FormState.CANCELLATION_REJECTED
    return FormState.APPROVED


# Either status hands the form's reservations back to the documents.
RELEASING_APPROVAL_STATUS = ApprovalStatus.REJECTED
RELEASING_CANCELLATION_STATUS = CancellationStatus.APPROVED


def reserves_balance(
    approval_status: int | None,
    cancellation_status: int | None,
) -> bool:
    """True while a form's detail lines still consume referenced balances.

    ``Form.reserves_balance`` renders the same rule as SQL.
    """
    return (
        approval_status != RELEASING_APPROVAL_STATUS
        and cancellation_status != RELEASING_CANCELLATION_STATUS
    )


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

NOT_SUBMITTED = Guard(
    name="not_submitted",
    description="approval status is unset",
)
SELECTED_APPROVER = Guard(
    name="selected_approver",
    description="acting user is the form's request_approval_to",
)
REASON_PROVIDED = Guard(
    name="reason_provided",
    description="a non-empty reason of at most 255 characters is given",
)
SELECTED_CANCELLATION_APPROVER = Guard(
    name="selected_cancellation_approver",
    description="acting user is the form's request_cancellation_to",
)


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

FORM_WORKFLOW = Workflow(
    name="form",
    description="Approval and cancellation lifecycle of a form envelope",
    initial_state=FormState.DRAFT.value,
    states=tuple(s.value for s in FormState),
    transitions=(
        Transition(
            from_state=FormState.DRAFT.value,
            to_state=FormState.PENDING_APPROVAL.value,
            action=FormAction.SUBMIT.value,
            guard=NOT_SUBMITTED,
            activity="Created",
        ),
        Transition(
            from_state=FormState.PENDING_APPROVAL.value,
            to_state=FormState.APPROVED.value,
            action=FormAction.APPROVE.value,
            guard=SELECTED_APPROVER,
            activity="Approved",
        ),
        Transition(
            from_state=FormState.PENDING_APPROVAL.value,
            to_state=FormState.REJECTED.value,
            action=FormAction.REJECT.value,
            guard=REASON_PROVIDED,
            releases_balance=True,
            activity="Rejected",
        ),
        Transition(
            from_state=FormState.APPROVED.value,
            to_state=FormState.PENDING_CANCELLATION.value,
            action=FormAction.REQUEST_CANCELLATION.value,
            guard=REASON_PROVIDED,
            activity="Cancellation Requested",
        ),
        Transition(
            from_state=FormState.CANCELLATION_REJECTED.value,
            to_state=FormState.PENDING_CANCELLATION.value,
            action=FormAction.REQUEST_CANCELLATION.value,
            guard=REASON_PROVIDED,
            activity="Cancellation Requested",
        ),
        Transition(
            from_state=FormState.PENDING_CANCELLATION.value,
            to_state=FormState.CANCELLATION_APPROVED.value,
            action=FormAction.APPROVE_CANCELLATION.value,
            guard=SELECTED_CANCELLATION_APPROVER,
            releases_balance=True,
            activity="Cancellation Approved",
        ),
        Transition(
            from_state=FormState.PENDING_CANCELLATION.value,
            to_state=FormState.CANCELLATION_REJECTED.value,
            action=FormAction.REJECT_CANCELLATION.value,
            guard=SELECTED_CANCELLATION_APPROVER,
            activity="Cancellation Rejected",
        ),
    ),
    terminal_states=(
        FormState.REJECTED.value,
        FormState.CANCELLATION_APPROVED.value,
    ),
)


def transition_for(state: FormState, action: FormAction) -> Transition | None:
    return FORM_WORKFLOW.transition_for(state.value, action.value)
