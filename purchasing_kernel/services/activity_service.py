"""
Activity and notification hooks.

Responsibility:
    Interfaces for the side effects that follow a form transition, and
    the default implementations the kernel ships with:

    * ActivityRecorder -- appends a user activity entry inside the unit
      of work ("Created", "Approved", "Rejected", ...).
    * NotificationDispatcher -- sends approval and cancellation requests.
      Called only after the unit of work has committed.
    * IdentityProvider -- resolves a user's default branch and feature
      permissions.  Supplied by the host application.

Architecture position:
    Kernel > Services.  FormLifecycleService records activities;
    PaymentOrderService dispatches notifications and checks identity.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from purchasing_kernel.domain.clock import Clock, SystemClock
from purchasing_kernel.logging_config import get_logger
from purchasing_kernel.models.activity import UserActivity
from purchasing_kernel.models.form import Form

logger = get_logger("services.activity")


class Permission:
    """Feature permission keys checked before each operation."""

    CREATE = "create purchase payment order"
    APPROVE = "approve purchase payment order"
    DELETE = "delete purchase payment order"


@runtime_checkable
class IdentityProvider(Protocol):
    def default_branch_id(self, user_id: UUID) -> UUID | None:
        ...

    def has_permission(self, user_id: UUID, permission: str) -> bool:
        ...


@runtime_checkable
class ActivityRecorder(Protocol):
    def record(self, form: Form, activity: str, user_id: UUID) -> None:
        ...


@dataclass(frozen=True)
class ApprovalRequestMessage:
    """Payload handed to the dispatcher after an order is created."""

    form_id: UUID
    form_number: str
    payment_order_id: UUID
    approver_id: UUID
    requested_by: UUID
    reject_token: str


@dataclass(frozen=True)
class CancellationRequestMessage:
    form_id: UUID
    form_number: str
    payment_order_id: UUID
    approver_id: UUID
    requested_by: UUID
    reason: str


@runtime_checkable
class NotificationDispatcher(Protocol):
    def send_approval_request(self, message: ApprovalRequestMessage) -> None:
        ...

    def send_cancellation_request(self, message: CancellationRequestMessage) -> None:
        ...


class DatabaseActivityRecorder:
    """Writes UserActivity rows in the caller's transaction."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def record(self, form: Form, activity: str, user_id: UUID) -> None:
        entry = UserActivity(
            table_type=form.formable_type,
            table_id=form.formable_id,
            number=form.edited_number or form.number,
            date=self._clock.now(),
            user_id=user_id,
            activity=activity,
        )
        self._session.add(entry)
        self._session.flush()
        logger.info(
            "user_activity_recorded",
            extra={"number": entry.number, "activity": activity, "user_id": str(user_id)},
        )


class LoggingNotificationDispatcher:
    """Dispatcher that only logs; used when no mail transport is wired."""

    def send_approval_request(self, message: ApprovalRequestMessage) -> None:
        logger.info(
            "approval_request_dispatched",
            extra={
                "form_number": message.form_number,
                "approver_id": str(message.approver_id),
            },
        )

    def send_cancellation_request(self, message: CancellationRequestMessage) -> None:
        logger.info(
            "cancellation_request_dispatched",
            extra={
                "form_number": message.form_number,
                "approver_id": str(message.approver_id),
            },
        )

