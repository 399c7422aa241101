"""
purchasing_kernel.services.form_lifecycle_service -- Form state transitions.

Responsibility:
    Applies the FORM_WORKFLOW transitions (submit, approve, reject,
    request cancellation, approve/reject cancellation) to a form, records
    the matching user activity, and asks the BalanceLedger to refresh the
    done flags of every document the form's order references.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.
    Flush-only: the caller (PaymentOrderService) owns commit/rollback.

Invariants enforced:
    - Every transition locks the form row and re-reads it before any guard
      is evaluated, so two concurrent approvals cannot both see "pending".
    - approval_status leaves pending once; cancellation_status leaves
      pending once.  Anything else raises before a column is written.
    - Rejection and cancellation approval release the order's reserved
      balances in the same unit of work that changes the status.

Failure modes:
    - ValidationError: reason missing, empty or longer than 255.
    - FormAlreadyProcessedError: approve/reject/submit on a decided form.
    - NotSelectedApproverError: acting user is not the routed approver.
    - CancellationNotAllowedError: cancellation requested on a form that
      is not approved.
    - CancellationNotRequestedError: cancellation decided while none is
      pending.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from purchasing_kernel.db.locking import lock_rows
from purchasing_kernel.domain.clock import Clock, SystemClock
from purchasing_kernel.domain.form_lifecycle import (
    ApprovalStatus,
    CancellationStatus,
    FormAction,
    transition_for,
)
from purchasing_kernel.domain.request_validation import validate_reason
from purchasing_kernel.domain.workflow import Transition
from purchasing_kernel.exceptions import (
    CancellationNotAllowedError,
    CancellationNotRequestedError,
    FormAlreadyProcessedError,
    NotSelectedApproverError,
    ValidationError,
)
from purchasing_kernel.logging_config import get_logger
from purchasing_kernel.models.form import Form
from purchasing_kernel.models.purchase import PurchasePaymentOrder, Referenceable
from purchasing_kernel.services.activity_service import ActivityRecorder
from purchasing_kernel.services.balance_ledger import BalanceLedger
from purchasing_kernel.services.base import BaseService

logger = get_logger("services.form_lifecycle")


def _require_reason(reason: object) -> str:
    cleaned, result = validate_reason(reason)
    if not result.is_valid:
        raise ValidationError(result.messages)
    return cleaned


class FormLifecycleService(BaseService):
    """
    Guarded state transitions on form envelopes.

    Every public method returns the locked, updated Form.
    """

    def __init__(
        self,
        session,
        ledger: BalanceLedger,
        activity_recorder: ActivityRecorder,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._ledger = ledger
        self._activities = activity_recorder
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lock(self, form: Form) -> Form:
        locked = lock_rows(self.session, Form, [form.id])
        return locked[form.id]

    def _transition(self, form: Form, action: FormAction) -> Transition:
        state = form.state
        transition = transition_for(state, action)
        if transition is not None:
            return transition

        logger.info(
            "form_transition_refused",
            extra={"number": form.number, "action": action.value, "state": state.value},
        )
        if action in (FormAction.SUBMIT, FormAction.APPROVE, FormAction.REJECT):
            raise FormAlreadyProcessedError(form.number, form.approval_status)
        if action is FormAction.REQUEST_CANCELLATION:
            raise CancellationNotAllowedError(form.number, state.value)
        raise CancellationNotRequestedError(form.number)

    def _referenced_documents(self, form: Form) -> list[Referenceable]:
        if form.formable_type != PurchasePaymentOrder.formable_type:
            return []
        order = self.session.scalars(
            select(PurchasePaymentOrder).where(PurchasePaymentOrder.id == form.formable_id)
        ).one()
        return self._ledger.documents_of(order, locked=True)

    def _finish(
        self,
        form: Form,
        transition: Transition,
        actor_id: UUID,
        *,
        activity: str | None = None,
        documents: list[Referenceable] | None = None,
    ) -> Form:
        form.updated_by_id = actor_id
        self.session.flush()
        if documents is None:
            documents = self._referenced_documents(form)
        if documents:
            self._ledger.refresh_done(documents)
        self._activities.record(form, activity or transition.activity, actor_id)
        logger.info(
            "form_transitioned",
            extra={
                "number": form.number,
                "action": transition.action,
                "from_state": transition.from_state,
                "to_state": transition.to_state,
                "releases_balance": transition.releases_balance,
                "actor_id": str(actor_id),
            },
        )
        return form

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    def submit(self, form: Form, request_approval_to: UUID, actor_id: UUID) -> Form:
        """Route a draft form to its approver.

        Does not refresh done flags; the caller already holds the locks on
        the referenced documents and refreshes them itself.
        """
        form = self._lock(form)
        transition = self._transition(form, FormAction.SUBMIT)
        form.request_approval_to = request_approval_to
        form.approval_status = ApprovalStatus.PENDING.value
        form.done = False
        return self._finish(form, transition, actor_id, documents=[])

    def approve(self, form: Form, actor_id: UUID) -> Form:
        form = self._lock(form)
        transition = self._transition(form, FormAction.APPROVE)
        if form.request_approval_to != actor_id:
            raise NotSelectedApproverError(actor_id)
        form.approval_status = ApprovalStatus.APPROVED.value
        form.approval_by = actor_id
        form.approval_at = self._clock.now()
        return self._finish(form, transition, actor_id)

    def reject(
        self,
        form: Form,
        actor_id: UUID,
        reason: object,
        *,
        activity: str | None = None,
        quote_number: bool = False,
    ) -> Form:
        """Reject a pending form and release what its order reserved.

        ``activity`` overrides the recorded activity name and
        ``quote_number`` names the form in the forbidden message; both are
        used by the e-mail rejection path.
        """
        cleaned = _require_reason(reason)
        form = self._lock(form)
        transition = self._transition(form, FormAction.REJECT)
        if form.request_approval_to != actor_id:
            raise NotSelectedApproverError(actor_id, form.number if quote_number else None)
        form.approval_status = ApprovalStatus.REJECTED.value
        form.approval_by = actor_id
        form.approval_at = self._clock.now()
        form.approval_reason = cleaned
        return self._finish(form, transition, actor_id, activity=activity)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def request_cancellation(
        self,
        form: Form,
        actor_id: UUID,
        request_cancellation_to: UUID,
        reason: object,
    ) -> Form:
        cleaned = _require_reason(reason)
        form = self._lock(form)
        transition = self._transition(form, FormAction.REQUEST_CANCELLATION)
        form.cancellation_status = CancellationStatus.PENDING.value
        form.request_cancellation_to = request_cancellation_to
        form.request_cancellation_by = actor_id
        form.request_cancellation_at = self._clock.now()
        form.request_cancellation_reason = cleaned
        form.cancellation_approval_at = None
        form.cancellation_approval_by = None
        form.cancellation_approval_reason = None
        return self._finish(form, transition, actor_id, documents=[])

    def approve_cancellation(self, form: Form, actor_id: UUID) -> Form:
        form = self._lock(form)
        transition = self._transition(form, FormAction.APPROVE_CANCELLATION)
        if form.request_cancellation_to != actor_id:
            raise NotSelectedApproverError(actor_id)
        form.cancellation_status = CancellationStatus.APPROVED.value
        form.cancellation_approval_by = actor_id
        form.cancellation_approval_at = self._clock.now()
        return self._finish(form, transition, actor_id)

    def reject_cancellation(self, form: Form, actor_id: UUID, reason: object) -> Form:
        cleaned = _require_reason(reason)
        form = self._lock(form)
        transition = self._transition(form, FormAction.REJECT_CANCELLATION)
        if form.request_cancellation_to != actor_id:
            raise NotSelectedApproverError(actor_id)
        form.cancellation_status = CancellationStatus.REJECTED.value
        form.cancellation_approval_by = actor_id
        form.cancellation_approval_at = self._clock.now()
        form.cancellation_approval_reason = cleaned
        # Balances stay reserved: the order remains approved.
        return self._finish(form, transition, actor_id, documents=[])
