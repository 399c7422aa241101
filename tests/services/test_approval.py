"""
Approve and reject through PaymentOrderService: guards, stamps, activities
and the balance released by a rejection.
"""

from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from purchasing_kernel.exceptions import (
    FormAlreadyProcessedError,
    NotSelectedApproverError,
    PaymentOrderNotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from purchasing_kernel.models import UserActivity
from purchasing_kernel.services.activity_service import Permission
from purchasing_kernel.services.balance_ledger import BalanceLedger


def _full_invoice(seed):
    return dict(
        invoices=[{"id": str(seed.invoice.id), "amount": 220000}],
        downPayments=[],
        returns=[],
        others=[],
        totalInvoiceAmount=220000,
        totalDownPaymentAmount=0,
        totalReturnAmount=0,
        totalOtherAmount=0,
        totalAmount=220000,
    )


def _activities(session, order_id) -> list[str]:
    return list(
        session.scalars(
            select(UserActivity.activity)
            .where(UserActivity.table_id == UUID(order_id))
            .order_by(UserActivity.date, UserActivity.activity)
        )
    )


@pytest.fixture
def order(create_order):
    return create_order()


# ============================================================================
# Approve
# ============================================================================


class TestApprove:
    def test_approve(self, service, order, seed, clock, session):
        result = service.approve(UUID(order["id"]), seed.approver_id)

        form = result["form"]
        assert form["approvalStatus"] == 1
        assert form["approvalBy"] == str(seed.approver_id)
        assert form["approvalAt"].startswith("2022-12-03T09:00:00")
        assert form["updatedBy"] == str(seed.approver_id)
        assert "Approved" in _activities(session, order["id"])

    def test_only_selected_approver(self, service, order, seed):
        with pytest.raises(NotSelectedApproverError) as exc:
            service.approve(UUID(order["id"]), seed.other_user_id)
        assert exc.value.message == "Forbidden - You are not the selected approver"
        assert exc.value.http_status == 403

    def test_second_approval_conflicts(self, service, order, seed):
        service.approve(UUID(order["id"]), seed.approver_id)
        with pytest.raises(FormAlreadyProcessedError) as exc:
            service.approve(UUID(order["id"]), seed.approver_id)
        assert exc.value.message == "Form already approved"

    def test_conflict_reported_regardless_of_requester(self, service, order, seed):
        service.approve(UUID(order["id"]), seed.approver_id)
        with pytest.raises(FormAlreadyProcessedError):
            service.approve(UUID(order["id"]), seed.other_user_id)

    def test_approve_after_reject(self, service, order, seed):
        service.reject(UUID(order["id"]), seed.approver_id, "wrong amount")
        with pytest.raises(FormAlreadyProcessedError) as exc:
            service.approve(UUID(order["id"]), seed.approver_id)
        assert exc.value.message == "Form already rejected"

    def test_permission(self, service, order, seed, identity):
        identity.deny(seed.approver_id, Permission.APPROVE)
        with pytest.raises(PermissionDeniedError):
            service.approve(UUID(order["id"]), seed.approver_id)

    def test_unknown_order(self, service, seed):
        with pytest.raises(PaymentOrderNotFoundError):
            service.approve(uuid4(), seed.approver_id)

    def test_approval_keeps_reservation(self, service, create_order, seed, form_of):
        order = create_order(**_full_invoice(seed))
        service.approve(UUID(order["id"]), seed.approver_id)
        assert form_of(seed.invoice).done is True


# ============================================================================
# Reject
# ============================================================================


class TestReject:
    def test_reject(self, service, order, seed, session):
        result = service.reject(UUID(order["id"]), seed.approver_id, "  wrong supplier ")

        form = result["form"]
        assert form["approvalStatus"] == -1
        assert form["approvalReason"] == "wrong supplier"
        assert form["approvalBy"] == str(seed.approver_id)
        assert "Rejected" in _activities(session, order["id"])

    @pytest.mark.parametrize(
        "reason, message",
        [
            (None, '"reason" is required'),
            ("", '"reason" is not allowed to be empty'),
            ("r" * 256, '"reason" length must be less than or equal to 255 characters long'),
        ],
    )
    def test_reason_rules(self, service, order, seed, reason, message):
        with pytest.raises(ValidationError) as exc:
            service.reject(UUID(order["id"]), seed.approver_id, reason)
        assert exc.value.message == message

    def test_only_selected_approver(self, service, order, seed):
        with pytest.raises(NotSelectedApproverError):
            service.reject(UUID(order["id"]), seed.other_user_id, "no")

    def test_second_rejection_conflicts(self, service, order, seed):
        service.reject(UUID(order["id"]), seed.approver_id, "no")
        with pytest.raises(FormAlreadyProcessedError) as exc:
            service.reject(UUID(order["id"]), seed.approver_id, "still no")
        assert exc.value.message == "Form already rejected"

    def test_rejection_releases_balance(self, service, create_order, seed, session, form_of):
        order = create_order(**_full_invoice(seed))
        assert form_of(seed.invoice).done is True

        service.reject(UUID(order["id"]), seed.approver_id, "duplicate")

        assert form_of(seed.invoice).done is False
        assert BalanceLedger(session).available(seed.invoice) == Decimal("220000")

    def test_released_balance_can_be_ordered_again(self, service, create_order, seed):
        order = create_order(**_full_invoice(seed))
        service.reject(UUID(order["id"]), seed.approver_id, "duplicate")

        again = create_order(**_full_invoice(seed))
        assert again["form"]["number"] == "PP2212002"


class TestLogging:
    def test_operation_logs_carry_context(self, service, order, seed, captured_logs):
        service.approve(UUID(order["id"]), seed.approver_id)

        logs = captured_logs()
        completed = [r for r in logs if r["message"] == "payment_order_approve_completed"]
        assert len(completed) == 1
        assert completed[0]["actor_id"] == str(seed.approver_id)
        assert completed[0]["payment_order_id"] == order["id"]
        assert completed[0]["tenant"] == "test_dev"
        assert "duration_ms" in completed[0]

    def test_refusal_is_logged_with_code(self, service, order, seed, captured_logs):
        with pytest.raises(NotSelectedApproverError):
            service.approve(UUID(order["id"]), seed.other_user_id)

        refused = [r for r in captured_logs() if r["message"] == "payment_order_approve_refused"]
        assert refused[0]["error_code"] == "NOT_SELECTED_APPROVER"
