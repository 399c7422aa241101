"""
PaymentOrderService -- entry point for every payment order operation.

Responsibility:
    Checks the acting user's permission, runs one operation of the
    builder or the form lifecycle inside a single unit of work, commits
    it, dispatches the follow-up notification and returns the serialized
    order.

Architecture position:
    Kernel > Services -- imperative shell, owns transaction boundaries.
    The HTTP layer (out of scope) calls these methods and maps the typed
    errors of ``purchasing_kernel.exceptions`` to status codes.

Operations:
    create_order          "create purchase payment order"
    approve / reject      "approve purchase payment order"
    reject_by_token       authorized by the signed token itself
    request_cancellation  "delete purchase payment order"
    approve_cancellation  "approve purchase payment order"
    reject_cancellation   "approve purchase payment order"

Invariants enforced:
    - All writes of an operation commit together or not at all
      (auto_commit=True); with auto_commit=False the caller owns the
      transaction and nothing is committed or rolled back here.
    - Notifications are sent only after commit.  With auto_commit=False
      they wait for the caller's outermost commit and are dropped on
      rollback.  A failing dispatcher (or token issuer) is logged and
      never undoes the committed operation.

Audit relevance:
    Every invocation is logged with correlation_id, actor_id and timing.
    Form transitions are recorded as user activities.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import Any, TypeVar
from uuid import UUID
from uuid import uuid4 as _uuid4

from sqlalchemy import event
from sqlalchemy.orm import Session

from purchasing_kernel.domain.clock import Clock, SystemClock
from purchasing_kernel.exceptions import (
    PaymentOrderNotFoundError,
    PermissionDeniedError,
    PurchasingError,
)
from purchasing_kernel.logging_config import LogContext, get_logger
from purchasing_kernel.models.form import Form
from purchasing_kernel.models.purchase import PurchasePaymentOrder
from purchasing_kernel.selectors.payment_order_selector import PaymentOrderSelector
from purchasing_kernel.services.activity_service import (
    ActivityRecorder,
    ApprovalRequestMessage,
    CancellationRequestMessage,
    DatabaseActivityRecorder,
    IdentityProvider,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    Permission,
)
from purchasing_kernel.services.balance_ledger import BalanceLedger
from purchasing_kernel.services.form_lifecycle_service import FormLifecycleService
from purchasing_kernel.services.journal_checker import JournalChecker
from purchasing_kernel.services.payment_order_builder import PaymentOrderBuilder
from purchasing_kernel.services.sequence_service import SequenceService
from purchasing_kernel.services.token_service import ApprovalTokenService

logger = get_logger("services.payment_order")

T = TypeVar("T")

REJECTED_BY_EMAIL = "Rejected By Email"


class PaymentOrderService:
    """
    Create, approve, reject and cancel purchase payment orders.

    Every public method returns ``PaymentOrderSelector.serialize(order)``
    or raises a ``PurchasingError`` subclass.
    """

    def __init__(
        self,
        session: Session,
        identity: IdentityProvider,
        token_service: ApprovalTokenService,
        *,
        dispatcher: NotificationDispatcher | None = None,
        activity_recorder: ActivityRecorder | None = None,
        clock: Clock | None = None,
        auto_commit: bool = True,
        form_prefix: str = "PP",
        increment_width: int = 3,
        journal_feature: str = "purchase",
        account_payable_name: str = "account payable",
        down_payment_name: str = "down payment",
        tenant: str | None = None,
    ):
        self._session = session
        self._identity = identity
        self._tokens = token_service
        self._dispatcher = dispatcher or LoggingNotificationDispatcher()
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._tenant = tenant

        self._ledger = BalanceLedger(session)
        self._lifecycle = FormLifecycleService(
            session,
            self._ledger,
            activity_recorder or DatabaseActivityRecorder(session, self._clock),
            self._clock,
        )
        self._journal = JournalChecker(
            session,
            feature=journal_feature,
            account_payable_name=account_payable_name,
            down_payment_name=down_payment_name,
        )
        self._builder = PaymentOrderBuilder(
            session,
            self._ledger,
            SequenceService(session, increment_width=increment_width),
            self._journal,
            self._lifecycle,
            form_prefix=form_prefix,
        )
        self._selector = PaymentOrderSelector(session)

        self._outbox: list[tuple[Callable[[Any], None], str, Callable[[], Any]]] = []
        self._committed = False
        if not auto_commit:
            event.listen(session, "after_commit", self._on_commit)
            event.listen(session, "after_transaction_end", self._on_transaction_end)

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        actor_id: UUID | None,
        work: Callable[[], T],
        *,
        payment_order_id: UUID | None = None,
    ) -> T:
        with LogContext.bind(
            correlation_id=str(_uuid4()),
            actor_id=str(actor_id) if actor_id else None,
            tenant=self._tenant,
            payment_order_id=str(payment_order_id) if payment_order_id else None,
        ):
            logger.info(f"{operation}_started")
            t0 = time.monotonic()
            try:
                result = work()
                if self._auto_commit:
                    self._session.commit()
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.info(f"{operation}_completed", extra={"duration_ms": duration_ms})
                return result
            except PurchasingError as exc:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                logger.warning(
                    f"{operation}_refused",
                    extra={
                        "duration_ms": duration_ms,
                        "error_code": exc.code,
                        "error_message": exc.message,
                    },
                )
                raise
            except Exception:
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    f"{operation}_failed",
                    extra={"duration_ms": duration_ms},
                    exc_info=True,
                )
                raise

    def _require_permission(self, user_id: UUID, permission: str) -> None:
        if not self._identity.has_permission(user_id, permission):
            raise PermissionDeniedError(user_id, permission)

    def _load(self, payment_order_id: UUID) -> tuple[PurchasePaymentOrder, Form]:
        order = self._selector.get(payment_order_id)
        form = self._selector.get_form(payment_order_id) if order is not None else None
        if order is None or form is None:
            raise PaymentOrderNotFoundError(payment_order_id)
        return order, form

    def _notify(
        self, send: Callable[[Any], None], form_number: str, build: Callable[[], Any]
    ) -> None:
        if self._auto_commit:
            self._dispatch(send, form_number, build)
        else:
            self._outbox.append((send, form_number, build))

    def _dispatch(
        self, send: Callable[[Any], None], form_number: str, build: Callable[[], Any]
    ) -> None:
        message = None
        try:
            message = build()
            send(message)
        except Exception:
            logger.error(
                "notification_dispatch_failed",
                extra={
                    "form_number": form_number,
                    "notification": type(message).__name__ if message is not None else None,
                },
                exc_info=True,
            )

    def _on_commit(self, session: Session) -> None:
        self._committed = True

    def _on_transaction_end(self, session: Session, transaction: Any) -> None:
        if transaction.parent is not None:
            # A savepoint ending says nothing about the outer transaction.
            self._committed = False
            return
        pending, self._outbox = self._outbox, []
        committed, self._committed = self._committed, False
        if not pending:
            return
        if not committed:
            logger.info("notifications_discarded", extra={"count": len(pending)})
            return
        for send, form_number, build in pending:
            self._dispatch(send, form_number, build)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_order(self, maker_id: UUID, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Validate, persist and submit a new payment order."""

        def work() -> tuple[PurchasePaymentOrder, Form]:
            self._require_permission(maker_id, Permission.CREATE)
            command = self._builder.parse(payload)
            branch_id = self._identity.default_branch_id(maker_id)
            result = self._builder.build(maker_id, branch_id, command)
            return result.order, result.form

        order, form = self._run("payment_order_create", maker_id, work)

        form_id, number, order_id = form.id, form.number, order.id
        approver_id = form.request_approval_to
        self._notify(
            self._dispatcher.send_approval_request,
            number,
            lambda: ApprovalRequestMessage(
                form_id=form_id,
                form_number=number,
                payment_order_id=order_id,
                approver_id=approver_id,
                requested_by=maker_id,
                reject_token=self._tokens.issue(order_id, approver_id),
            ),
        )
        return self._selector.serialize(order, form)

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    def approve(self, payment_order_id: UUID, actor_id: UUID) -> dict[str, Any]:
        def work() -> tuple[PurchasePaymentOrder, Form]:
            self._require_permission(actor_id, Permission.APPROVE)
            order, form = self._load(payment_order_id)
            return order, self._lifecycle.approve(form, actor_id)

        order, form = self._run(
            "payment_order_approve", actor_id, work, payment_order_id=payment_order_id
        )
        return self._selector.serialize(order, form)

    def reject(self, payment_order_id: UUID, actor_id: UUID, reason: object) -> dict[str, Any]:
        def work() -> tuple[PurchasePaymentOrder, Form]:
            self._require_permission(actor_id, Permission.APPROVE)
            order, form = self._load(payment_order_id)
            return order, self._lifecycle.reject(form, actor_id, reason)

        order, form = self._run(
            "payment_order_reject", actor_id, work, payment_order_id=payment_order_id
        )
        return self._selector.serialize(order, form)

    def reject_by_token(self, token: str, reason: object) -> dict[str, Any]:
        """Reject from an e-mail link; the token names the order and the approver.

        Besides the regular rejection, the order's form and the forms of
        every referenced document get ``edited_number``/``edited_notes``
        stamped so the released documents can be told apart.
        """

        def work() -> tuple[PurchasePaymentOrder, Form]:
            claims = self._tokens.verify(token)
            order, form = self._load(claims.payment_order_id)
            form = self._lifecycle.reject(
                form,
                claims.user_id,
                reason,
                activity=REJECTED_BY_EMAIL,
                quote_number=True,
            )
            for document in self._ledger.documents_of(order):
                self._stamp_edited(document.form)
            self._stamp_edited(form)
            self._session.flush()
            return order, form

        order, form = self._run("payment_order_reject_by_token", None, work)
        return self._selector.serialize(order, form)

    @staticmethod
    def _stamp_edited(form: Form | None) -> None:
        if form is None:
            return
        if form.edited_number is None:
            form.edited_number = form.number
        if form.edited_notes is None:
            form.edited_notes = form.notes

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def request_cancellation(
        self,
        payment_order_id: UUID,
        actor_id: UUID,
        request_cancellation_to: UUID,
        reason: object,
    ) -> dict[str, Any]:
        def work() -> tuple[PurchasePaymentOrder, Form]:
            self._require_permission(actor_id, Permission.DELETE)
            order, form = self._load(payment_order_id)
            form = self._lifecycle.request_cancellation(
                form, actor_id, request_cancellation_to, reason
            )
            return order, form

        order, form = self._run(
            "payment_order_request_cancellation",
            actor_id,
            work,
            payment_order_id=payment_order_id,
        )

        message = CancellationRequestMessage(
            form_id=form.id,
            form_number=form.number,
            payment_order_id=order.id,
            approver_id=request_cancellation_to,
            requested_by=actor_id,
            reason=form.request_cancellation_reason,
        )
        self._notify(self._dispatcher.send_cancellation_request, message.form_number, lambda: message)
        return self._selector.serialize(order, form)

    def approve_cancellation(self, payment_order_id: UUID, actor_id: UUID) -> dict[str, Any]:
        def work() -> tuple[PurchasePaymentOrder, Form]:
            self._require_permission(actor_id, Permission.APPROVE)
            order, form = self._load(payment_order_id)
            return order, self._lifecycle.approve_cancellation(form, actor_id)

        order, form = self._run(
            "payment_order_approve_cancellation",
            actor_id,
            work,
            payment_order_id=payment_order_id,
        )
        return self._selector.serialize(order, form)

    def reject_cancellation(
        self, payment_order_id: UUID, actor_id: UUID, reason: object
    ) -> dict[str, Any]:
        def work() -> tuple[PurchasePaymentOrder, Form]:
            self._require_permission(actor_id, Permission.APPROVE)
            order, form = self._load(payment_order_id)
            return order, self._lifecycle.reject_cancellation(form, actor_id, reason)

        order, form = self._run(
            "payment_order_reject_cancellation",
            actor_id,
            work,
            payment_order_id=payment_order_id,
        )
        return self._selector.serialize(order, form)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, payment_order_id: UUID) -> dict[str, Any]:
        order, form = self._load(payment_order_id)
        return self._selector.serialize(order, form)

    def list_available_for_settlement(self, supplier_id: UUID | None = None) -> list[dict[str, Any]]:
        return [
            self._selector.serialize(order)
            for order in self._selector.list_available_for_settlement(supplier_id)
        ]
