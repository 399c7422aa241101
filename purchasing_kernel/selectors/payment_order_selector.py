"""
Module: purchasing_kernel.selectors.payment_order_selector
Responsibility: Read access to payment orders and their response shape.
Architecture position: Kernel > Selectors.  Read-only.

The serialized shape is the camelCase mapping the HTTP layer returns:
UUIDs as strings, amounts as plain decimal strings, dates and datetimes
as ISO-8601.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import and_, or_, select

from purchasing_kernel.domain.amounts import format_amount
from purchasing_kernel.domain.dtos import ReferenceType
from purchasing_kernel.domain.form_lifecycle import ApprovalStatus, CancellationStatus
from purchasing_kernel.models.form import Form
from purchasing_kernel.models.purchase import (
    PurchasePaymentOrder,
    PurchasePaymentOrderDetail,
)
from purchasing_kernel.selectors.base import BaseSelector

_FORM_FIELDS = (
    ("id", "id"),
    ("branchId", "branch_id"),
    ("number", "number"),
    ("editedNumber", "edited_number"),
    ("editedNotes", "edited_notes"),
    ("date", "date"),
    ("notes", "notes"),
    ("done", "done"),
    ("incrementNumber", "increment_number"),
    ("incrementGroup", "increment_group"),
    ("formableId", "formable_id"),
    ("formableType", "formable_type"),
    ("requestApprovalTo", "request_approval_to"),
    ("approvalBy", "approval_by"),
    ("approvalAt", "approval_at"),
    ("approvalReason", "approval_reason"),
    ("approvalStatus", "approval_status"),
    ("requestCancellationTo", "request_cancellation_to"),
    ("requestCancellationBy", "request_cancellation_by"),
    ("requestCancellationAt", "request_cancellation_at"),
    ("requestCancellationReason", "request_cancellation_reason"),
    ("cancellationApprovalAt", "cancellation_approval_at"),
    ("cancellationApprovalBy", "cancellation_approval_by"),
    ("cancellationApprovalReason", "cancellation_approval_reason"),
    ("cancellationStatus", "cancellation_status"),
    ("createdBy", "created_by_id"),
    ("updatedBy", "updated_by_id"),
    ("createdAt", "created_at"),
    ("updatedAt", "updated_at"),
)


def _value(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return format_amount(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def serialize_form(form: Form | None) -> dict[str, Any] | None:
    if form is None:
        return None
    return {key: _value(getattr(form, attr)) for key, attr in _FORM_FIELDS}


def _reference_detail(detail: PurchasePaymentOrderDetail) -> dict[str, Any]:
    return {
        "id": str(detail.id),
        "purchasePaymentOrderId": str(detail.purchase_payment_order_id),
        "amount": format_amount(detail.amount),
        "referenceableId": str(detail.referenceable_id),
        "referenceableType": detail.referenceable_type,
    }


def _other_detail(detail: PurchasePaymentOrderDetail) -> dict[str, Any]:
    return {
        "id": str(detail.id),
        "purchasePaymentOrderId": str(detail.purchase_payment_order_id),
        "chartOfAccountId": str(detail.chart_of_account_id),
        "allocationId": _value(detail.allocation_id),
        "amount": format_amount(detail.amount),
        "notes": detail.notes,
    }


class PaymentOrderSelector(BaseSelector):
    def get(self, order_id: UUID) -> PurchasePaymentOrder | None:
        return self.session.get(PurchasePaymentOrder, order_id)

    def get_form(self, order_id: UUID) -> Form | None:
        return self.session.scalars(
            select(Form).where(
                Form.formable_id == order_id,
                Form.formable_type == PurchasePaymentOrder.formable_type,
            )
        ).one_or_none()

    @staticmethod
    def serialize(order: PurchasePaymentOrder, form: Form | None = None) -> dict[str, Any]:
        """The response shape of every payment order operation."""
        return {
            "id": str(order.id),
            "paymentType": order.payment_type,
            "supplierId": str(order.supplier_id),
            "supplierName": order.supplier_name,
            "amount": format_amount(order.amount),
            "invoices": [
                _reference_detail(d) for d in order.details_of(ReferenceType.PURCHASE_INVOICE)
            ],
            "downPayments": [
                _reference_detail(d)
                for d in order.details_of(ReferenceType.PURCHASE_DOWN_PAYMENT)
            ],
            "returns": [
                _reference_detail(d) for d in order.details_of(ReferenceType.PURCHASE_RETURN)
            ],
            "others": [_other_detail(d) for d in order.other_details],
            "form": serialize_form(form if form is not None else order.form),
        }

    def list_available_for_settlement(
        self, supplier_id: UUID | None = None
    ) -> list[PurchasePaymentOrder]:
        """Approved, not done orders with no pending or approved cancellation.

        These are the orders a cash-out or bank-out may still settle.
        """
        stmt = (
            select(PurchasePaymentOrder)
            .join(
                Form,
                and_(
                    Form.formable_id == PurchasePaymentOrder.id,
                    Form.formable_type == PurchasePaymentOrder.formable_type,
                ),
            )
            .where(
                Form.approval_status == ApprovalStatus.APPROVED.value,
                Form.done.is_(False),
                or_(
                    Form.cancellation_status.is_(None),
                    Form.cancellation_status == CancellationStatus.REJECTED.value,
                ),
            )
            .order_by(Form.date, Form.number)
        )
        if supplier_id is not None:
            stmt = stmt.where(PurchasePaymentOrder.supplier_id == supplier_id)
        return list(self.session.scalars(stmt).all())
