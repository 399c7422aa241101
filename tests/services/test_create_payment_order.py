"""
PaymentOrderService.create_order: the success path and every business rule
in the order the builder applies them.
"""

from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy import delete, func, select

from purchasing_kernel.exceptions import (
    AmountMismatchError,
    ChartOfAccountNotFoundError,
    DownPaymentExceedsInvoiceError,
    MissingJournalSettingError,
    NoDefaultBranchError,
    OverAllocatedError,
    PermissionDeniedError,
    ReferencedDocumentNotFoundError,
    ReturnExceedsInvoiceError,
    SupplierNotFoundError,
    ValidationError,
)
from purchasing_kernel.models import (
    Form,
    PurchaseInvoice,
    PurchasePaymentOrder,
    PurchasePaymentOrderDetail,
    SettingJournal,
    UserActivity,
)
from purchasing_kernel.services.activity_service import Permission
from purchasing_kernel.services.balance_ledger import BalanceLedger


def _order_count(session) -> int:
    return session.scalar(select(func.count()).select_from(PurchasePaymentOrder))


def _invoice_only(seed, amount):
    return dict(
        invoices=[{"id": str(seed.invoice.id), "amount": amount}],
        downPayments=[],
        returns=[],
        others=[],
        totalInvoiceAmount=amount,
        totalDownPaymentAmount=0,
        totalReturnAmount=0,
        totalOtherAmount=0,
        totalAmount=amount,
    )


# ============================================================================
# Success
# ============================================================================


class TestCreateSuccess:
    def test_reference_scenario(self, create_order, seed):
        order = create_order()

        assert order["paymentType"] == "cash"
        assert order["supplierId"] == str(seed.supplier.id)
        assert order["supplierName"] == seed.supplier.name
        assert order["amount"] == "65000"
        assert [d["amount"] for d in order["invoices"]] == ["100000"]
        assert [d["referenceableType"] for d in order["downPayments"]] == ["PurchaseDownPayment"]
        assert [d["referenceableId"] for d in order["returns"]] == [str(seed.purchase_return.id)]
        assert [(o["chartOfAccountId"], o["amount"]) for o in order["others"]] == [
            (str(seed.expense.id), "5000"),
            (str(seed.income.id), "10000"),
        ]

        form = order["form"]
        assert form["number"] == "PP2212001"
        assert form["incrementNumber"] == 1
        assert form["incrementGroup"] == 202212
        assert form["branchId"] == str(seed.branch_id)
        assert form["date"] == "2022-12-03"
        assert form["approvalStatus"] == 0
        assert form["requestApprovalTo"] == str(seed.approver_id)
        assert form["createdBy"] == str(seed.maker_id)
        assert form["updatedBy"] == str(seed.maker_id)
        assert form["formableType"] == "PurchasePaymentOrder"
        assert form["formableId"] == order["id"]
        assert form["done"] is False

    def test_persisted_in_one_unit(self, create_order, session):
        order = create_order()

        session.expire_all()
        persisted = session.get(PurchasePaymentOrder, UUID(order["id"]))
        assert persisted.amount == Decimal("65000")
        assert [d.position for d in persisted.details] == [0, 1, 2, 3, 4]
        activity = session.scalars(
            select(UserActivity).where(UserActivity.table_id == persisted.id)
        ).one()
        assert (activity.activity, activity.number) == ("Created", "PP2212001")

    def test_numbers_increment_within_month(self, create_order, seed):
        create_order()
        second = create_order(**_invoice_only(seed, 100000))
        assert second["form"]["number"] == "PP2212002"
        assert second["form"]["incrementNumber"] == 2

    def test_supplier_name_defaults_to_supplier(self, create_order, seed):
        order = create_order(supplierName=None)
        assert order["supplierName"] == seed.supplier.name

    def test_notes_are_trimmed(self, create_order):
        order = create_order(notes="   settle december   ")
        assert order["form"]["notes"] == "settle december"

    def test_approval_request_dispatched_with_token(self, create_order, dispatcher, token_service, seed):
        order = create_order()

        [message] = dispatcher.approval_requests
        assert message.form_number == "PP2212001"
        assert message.approver_id == seed.approver_id
        assert message.requested_by == seed.maker_id
        claims = token_service.verify(message.reject_token)
        assert str(claims.payment_order_id) == order["id"]
        assert claims.user_id == seed.approver_id

    def test_failing_dispatcher_does_not_undo_create(self, create_order, dispatcher, session, captured_logs):
        dispatcher.fail = True
        order = create_order()

        assert _order_count(session) == 1
        assert order["form"]["number"] == "PP2212001"
        assert any(r["message"] == "notification_dispatch_failed" for r in captured_logs())


class TestDoneFlags:
    def test_full_allocation_marks_document_done(self, create_order, seed, form_of):
        create_order(**_invoice_only(seed, 220000))
        assert form_of(seed.invoice).done is True

    def test_partial_allocation_leaves_document_open(self, create_order, seed, form_of, session):
        create_order(**_invoice_only(seed, 219999))
        assert form_of(seed.invoice).done is False
        assert BalanceLedger(session).available(seed.invoice) == Decimal("1")


# ============================================================================
# Failures, in rule order
# ============================================================================


class TestCreateFailures:
    def test_permission(self, service, identity, seed, make_payload, session):
        identity.deny(seed.maker_id, Permission.CREATE)
        with pytest.raises(PermissionDeniedError) as exc:
            service.create_order(seed.maker_id, make_payload())
        assert exc.value.message == "Forbidden"
        assert _order_count(session) == 0

    def test_shape_single_error(self, create_order):
        with pytest.raises(ValidationError) as exc:
            create_order(paymentType=None)
        assert exc.value.message == '"paymentType" is required'

    def test_shape_several_errors(self, create_order):
        with pytest.raises(ValidationError) as exc:
            create_order(paymentType=None, date=None)
        assert exc.value.message == "invalid data"
        assert exc.value.meta == ['"paymentType" is required', '"date" is required']

    def test_line_amount_minimum(self, create_order):
        with pytest.raises(ValidationError) as exc:
            create_order(invoices=[{"id": str(uuid4()), "amount": 0}])
        assert exc.value.message == '"invoices[0].amount" must be greater than or equal to 1'

    def test_default_branch(self, create_order, identity, seed):
        identity.branches[seed.maker_id] = None
        with pytest.raises(NoDefaultBranchError) as exc:
            create_order()
        assert exc.value.message == "please set default branch to create this form"

    def test_unknown_invoice_checked_before_down_payment(self, create_order):
        missing_invoice, missing_dp = uuid4(), uuid4()
        with pytest.raises(ReferencedDocumentNotFoundError) as exc:
            create_order(
                invoices=[{"id": str(missing_invoice), "amount": 100000}],
                downPayments=[{"id": str(missing_dp), "amount": 20000}],
            )
        assert exc.value.message == f"purchase invoice with id {missing_invoice} not exist"

    def test_unknown_down_payment(self, create_order):
        missing = uuid4()
        with pytest.raises(ReferencedDocumentNotFoundError) as exc:
            create_order(downPayments=[{"id": str(missing), "amount": 20000}])
        assert exc.value.message == f"purchase down payment with id {missing} not exist"

    def test_unknown_return(self, create_order):
        missing = uuid4()
        with pytest.raises(ReferencedDocumentNotFoundError) as exc:
            create_order(returns=[{"id": str(missing), "amount": 10000}])
        assert exc.value.message == f"purchase return with id {missing} not exist"

    def test_invoice_without_form(self, create_order, seed, session):
        unposted = PurchaseInvoice(
            supplier_id=seed.supplier.id, amount=Decimal("50000"), created_by_id=seed.maker_id
        )
        session.add(unposted)
        session.commit()

        with pytest.raises(ReferencedDocumentNotFoundError) as exc:
            create_order(invoices=[{"id": str(unposted.id), "amount": 50000}])
        assert exc.value.message == f"purchase invoice with id {unposted.id} not exist"
        assert exc.value.http_status == 404

    def test_unknown_chart_of_account(self, create_order, seed):
        missing = uuid4()
        with pytest.raises(ChartOfAccountNotFoundError) as exc:
            create_order(
                others=[
                    {"coaId": str(seed.expense.id), "amount": 5000},
                    {"coaId": str(missing), "amount": 10000},
                ]
            )
        assert exc.value.message == f"chart of account with id {missing} not exist"

    def test_unknown_supplier(self, create_order):
        with pytest.raises(SupplierNotFoundError) as exc:
            create_order(supplierId=str(uuid4()))
        assert exc.value.message == "supplier not exist"

    def test_over_allocation(self, create_order, seed):
        with pytest.raises(OverAllocatedError) as exc:
            create_order(**_invoice_only(seed, 230000))
        assert exc.value.message == (
            "form PI2212001 order more than available, available 220000 ordered 230000"
        )

    def test_over_allocation_counts_pending_orders(self, create_order, seed):
        create_order(**_invoice_only(seed, 150000))
        with pytest.raises(OverAllocatedError) as exc:
            create_order(**_invoice_only(seed, 100000))
        assert exc.value.available == Decimal("70000")
        assert exc.value.ordered == Decimal("100000")

    def test_over_allocation_sums_lines_of_same_document(self, create_order, seed):
        payload = _invoice_only(seed, 240000)
        payload["invoices"] = [
            {"id": str(seed.invoice.id), "amount": 120000},
            {"id": str(seed.invoice.id), "amount": 120000},
        ]
        with pytest.raises(OverAllocatedError) as exc:
            create_order(**payload)
        assert exc.value.ordered == Decimal("240000")

    @pytest.mark.parametrize(
        "field, value, message",
        [
            ("totalInvoiceAmount", 90000, "incorect total invoice amount, expected 100000 received 90000"),
            ("totalDownPaymentAmount", 0, "incorect total down payment amount, expected 20000 received 0"),
            ("totalReturnAmount", 1, "incorect total return amount, expected 10000 received 1"),
            ("totalOtherAmount", 5000, "incorect total other amount, expected -5000 received 5000"),
            ("totalAmount", 75000, "incorect total amount, expected 65000 received 75000"),
        ],
    )
    def test_declared_totals(self, create_order, field, value, message):
        with pytest.raises(AmountMismatchError) as exc:
            create_order(**{field: value})
        assert exc.value.message == message

    def test_down_payment_more_than_invoice(self, create_order, seed):
        with pytest.raises(DownPaymentExceedsInvoiceError):
            create_order(
                invoices=[{"id": str(seed.invoice.id), "amount": 10000}],
                returns=[],
                others=[],
                totalInvoiceAmount=10000,
                totalReturnAmount=0,
                totalOtherAmount=0,
                totalAmount=-10000,
            )

    def test_return_more_than_invoice(self, create_order, seed):
        with pytest.raises(ReturnExceedsInvoiceError):
            create_order(
                invoices=[{"id": str(seed.invoice.id), "amount": 5000}],
                downPayments=[],
                others=[],
                totalInvoiceAmount=5000,
                totalDownPaymentAmount=0,
                totalOtherAmount=0,
                totalAmount=-5000,
            )

    def test_notes_too_long(self, create_order):
        with pytest.raises(ValidationError) as exc:
            create_order(notes="n" * 256)
        assert exc.value.message == (
            '"notes" length must be less than or equal to 255 characters long'
        )

    def test_missing_account_payable_setting(self, create_order, session):
        session.execute(delete(SettingJournal).where(SettingJournal.name == "account payable"))
        session.commit()
        with pytest.raises(MissingJournalSettingError) as exc:
            create_order()
        assert exc.value.message == "Journal purchase account - account payable not found"

    def test_failure_writes_nothing(self, create_order, seed, session):
        with pytest.raises(AmountMismatchError):
            create_order(totalAmount=1)

        assert _order_count(session) == 0
        assert session.scalar(select(func.count()).select_from(PurchasePaymentOrderDetail)) == 0
        forms = session.scalars(
            select(Form).where(Form.formable_type == "PurchasePaymentOrder")
        ).all()
        assert forms == []
        assert BalanceLedger(session).available(seed.invoice) == Decimal("220000")
