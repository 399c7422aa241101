"""
Typed exception hierarchy for the purchasing kernel.

Every error raised by the kernel carries:
  1. A typed class (catch by type, not by message).
  2. A `code` class attribute (machine-readable, API-safe).
  3. A `status_category` and `http_status` so a thin HTTP layer can map
     the error without inspecting it.
  4. Structured attributes for every value quoted in the message.

Messages are reproduced verbatim for existing clients, which match on
them exactly.  Do not reword them (including the "incorect" spelling in
AmountMismatchError).

    PurchasingError (base)
    |
    +-- ValidationError                      bad_request   400
    |
    +-- NotFoundError                        not_found     404
    |   +-- ReferencedDocumentNotFoundError
    |   +-- SupplierNotFoundError
    |   +-- ChartOfAccountNotFoundError
    |   +-- PaymentOrderNotFoundError
    |
    +-- ForbiddenError                       forbidden     403
    |   +-- PermissionDeniedError
    |   +-- NotSelectedApproverError
    |   +-- InvalidApprovalTokenError
    |
    +-- ConflictError                        unprocessable 422
    |   +-- NoDefaultBranchError
    |   +-- OverAllocatedError
    |   +-- AmountMismatchError
    |   +-- DownPaymentExceedsInvoiceError
    |   +-- ReturnExceedsInvoiceError
    |   +-- MissingJournalSettingError
    |   +-- FormAlreadyProcessedError
    |   +-- CancellationNotRequestedError
    |   +-- CancellationNotAllowedError
    |
    +-- JournalImbalanceError                unprocessable 422 (fatal)

JournalImbalanceError is deliberately outside ConflictError: it signals a
broken posting derivation, not a user-correctable request.
"""

from decimal import Decimal
from typing import Any

from purchasing_kernel.domain.amounts import format_amount as _fmt


class PurchasingError(Exception):
    """Base exception for all purchasing kernel errors."""

    code: str = "PURCHASING_ERROR"
    status_category: str = "unprocessable"
    http_status: int = 422

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# bad_request
# ---------------------------------------------------------------------------


class ValidationError(PurchasingError):
    """
    Request shape violation.

    A single field error surfaces its own message; several collapse into
    "invalid data" with the individual messages in `meta`.
    """

    code: str = "VALIDATION_ERROR"
    status_category: str = "bad_request"
    http_status: int = 400

    def __init__(self, messages: list[str] | str):
        if isinstance(messages, str):
            messages = [messages]
        self.meta = list(messages)
        super().__init__(self.meta[0] if len(self.meta) == 1 else "invalid data")


# ---------------------------------------------------------------------------
# not_found
# ---------------------------------------------------------------------------


class NotFoundError(PurchasingError):
    code: str = "NOT_FOUND"
    status_category: str = "not_found"
    http_status: int = 404


class ReferencedDocumentNotFoundError(NotFoundError):
    """A referenced invoice, down payment or return does not exist or has no form."""

    code: str = "REFERENCED_DOCUMENT_NOT_FOUND"

    def __init__(self, kind: str, document_id: Any):
        self.kind = kind
        self.document_id = str(document_id)
        super().__init__(f"{kind} with id {document_id} not exist")


class SupplierNotFoundError(NotFoundError):
    code: str = "SUPPLIER_NOT_FOUND"

    def __init__(self, supplier_id: Any):
        self.supplier_id = str(supplier_id)
        super().__init__("supplier not exist")


class ChartOfAccountNotFoundError(NotFoundError):
    code: str = "CHART_OF_ACCOUNT_NOT_FOUND"

    def __init__(self, chart_of_account_id: Any):
        self.chart_of_account_id = str(chart_of_account_id)
        super().__init__(f"chart of account with id {chart_of_account_id} not exist")


class PaymentOrderNotFoundError(NotFoundError):
    code: str = "PAYMENT_ORDER_NOT_FOUND"

    def __init__(self, payment_order_id: Any):
        self.payment_order_id = str(payment_order_id)
        super().__init__(f"payment order with id {payment_order_id} not exist")


# ---------------------------------------------------------------------------
# forbidden
# ---------------------------------------------------------------------------


class ForbiddenError(PurchasingError):
    code: str = "FORBIDDEN"
    status_category: str = "forbidden"
    http_status: int = 403


class PermissionDeniedError(ForbiddenError):
    """The acting user lacks the feature permission for the operation."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, user_id: Any, permission: str):
        self.user_id = str(user_id)
        self.permission = permission
        super().__init__("Forbidden")


class NotSelectedApproverError(ForbiddenError):
    """The acting user is not the approver the form was routed to."""

    code: str = "NOT_SELECTED_APPROVER"

    def __init__(self, user_id: Any, form_number: str | None = None):
        self.user_id = str(user_id)
        self.form_number = form_number
        if form_number:
            message = f"Forbidden - You are not the selected approver for form {form_number}"
        else:
            message = "Forbidden - You are not the selected approver"
        super().__init__(message)


class InvalidApprovalTokenError(ForbiddenError):
    code: str = "INVALID_APPROVAL_TOKEN"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Forbidden - invalid approval token: {reason}")


# ---------------------------------------------------------------------------
# unprocessable
# ---------------------------------------------------------------------------


class ConflictError(PurchasingError):
    """Business-rule or state violation; the request is well-formed."""

    code: str = "CONFLICT"


class NoDefaultBranchError(ConflictError):
    code: str = "NO_DEFAULT_BRANCH"

    def __init__(self, user_id: Any):
        self.user_id = str(user_id)
        super().__init__("please set default branch to create this form")


class OverAllocatedError(ConflictError):
    """Ordered amount exceeds the document's remaining available balance."""

    code: str = "OVER_ALLOCATED"

    def __init__(self, form_number: str, available: Decimal, ordered: Decimal):
        self.form_number = form_number
        self.available = available
        self.ordered = ordered
        super().__init__(
            f"form {form_number} order more than available, "
            f"available {_fmt(available)} ordered {_fmt(ordered)}"
        )


class AmountMismatchError(ConflictError):
    """
    A declared subtotal or the grand total disagrees with its lines.

    label is one of "invoice", "down payment", "return", "other", or None
    for the grand total.

    The "other" total is signed debit-positive: lines on debit accounts
    add, lines on credit accounts subtract, and the grand total is
    invoices - down payments - returns + others.  Older clients declared
    totalOtherAmount the other way round (credit minus debit, subtracted
    from the grand total); a single 5000 credit line that they sent as
    5000 is now refused with "expected -5000 received 5000".
    """

    code: str = "AMOUNT_MISMATCH"

    def __init__(self, label: str | None, expected: Decimal, received: Decimal):
        self.label = label
        self.expected = expected
        self.received = received
        subject = f"total {label} amount" if label else "total amount"
        super().__init__(
            f"incorect {subject}, expected {_fmt(expected)} received {_fmt(received)}"
        )


class DownPaymentExceedsInvoiceError(ConflictError):
    code: str = "DOWN_PAYMENT_EXCEEDS_INVOICE"

    def __init__(self, down_payment_total: Decimal, invoice_total: Decimal):
        self.down_payment_total = down_payment_total
        self.invoice_total = invoice_total
        super().__init__(
            "total down payment more than total invoice, "
            f"total down payment: {_fmt(down_payment_total)} > "
            f"total invoice: {_fmt(invoice_total)}"
        )


class ReturnExceedsInvoiceError(ConflictError):
    code: str = "RETURN_EXCEEDS_INVOICE"

    def __init__(self, return_total: Decimal, invoice_total: Decimal):
        self.return_total = return_total
        self.invoice_total = invoice_total
        super().__init__(
            "total return more than total invoice, "
            f"total return: {_fmt(return_total)} > "
            f"total invoice: {_fmt(invoice_total)}"
        )


class MissingJournalSettingError(ConflictError):
    code: str = "MISSING_JOURNAL_SETTING"

    def __init__(self, feature: str, name: str):
        self.feature = feature
        self.name = name
        super().__init__(f"Journal {feature} account - {name} not found")


class FormAlreadyProcessedError(ConflictError):
    code: str = "FORM_ALREADY_PROCESSED"

    def __init__(self, form_number: str, approval_status: int | None):
        self.form_number = form_number
        self.approval_status = approval_status
        verb = "rejected" if approval_status == -1 else "approved"
        super().__init__(f"Form already {verb}")


class CancellationNotRequestedError(ConflictError):
    code: str = "CANCELLATION_NOT_REQUESTED"

    def __init__(self, form_number: str):
        self.form_number = form_number
        super().__init__("form not requested to be delete")


class CancellationNotAllowedError(ConflictError):
    """Cancellation may only be requested for an approved form."""

    code: str = "CANCELLATION_NOT_ALLOWED"

    def __init__(self, form_number: str, state: str):
        self.form_number = form_number
        self.state = state
        super().__init__(f"form {form_number} cannot be cancelled while {state}")


# ---------------------------------------------------------------------------
# fatal
# ---------------------------------------------------------------------------


class JournalImbalanceError(PurchasingError):
    """Derived journal does not balance; creation is aborted."""

    code: str = "JOURNAL_IMBALANCE"

    def __init__(self, debit: Decimal, credit: Decimal):
        self.debit = debit
        self.credit = credit
        super().__init__(
            f"journal is not balance, debit {_fmt(debit)} credit {_fmt(credit)}"
        )
