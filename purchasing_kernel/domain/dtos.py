"""
Data Transfer Objects for the purchasing kernel domain layer.

Immutable value objects passed between the request parser, the builder,
the journal checker and the services.  They carry no ORM state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class ReferenceType(str, Enum):
    """Type tag of a document a payment order line can settle."""

    PURCHASE_INVOICE = "PurchaseInvoice"
    PURCHASE_DOWN_PAYMENT = "PurchaseDownPayment"
    PURCHASE_RETURN = "PurchaseReturn"

    @property
    def label(self) -> str:
        """Human label used in client-facing messages."""
        return _REFERENCE_LABELS[self]


_REFERENCE_LABELS = {
    ReferenceType.PURCHASE_INVOICE: "purchase invoice",
    ReferenceType.PURCHASE_DOWN_PAYMENT: "purchase down payment",
    ReferenceType.PURCHASE_RETURN: "purchase return",
}


class LineSide(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


# ---------------------------------------------------------------------------
# Validation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldError:
    """A single request-shape error, rendered as ``"<field>" <rule>``."""

    code: str
    message: str
    field: str | None = None


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: tuple[FieldError, ...] = field(default_factory=tuple)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(is_valid=True, errors=())

    @classmethod
    def failure(cls, *errors: FieldError) -> ValidationResult:
        return cls(is_valid=False, errors=tuple(errors))

    @property
    def messages(self) -> list[str]:
        return [e.message for e in self.errors]

    def __bool__(self) -> bool:
        return self.is_valid


# ---------------------------------------------------------------------------
# Create command
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReferenceLine:
    """A settlement line against an invoice, down payment or return."""

    document_id: UUID
    amount: Decimal


@dataclass(frozen=True)
class OtherLine:
    """A free-form expense/income adjustment posted to a chart of account."""

    chart_of_account_id: UUID
    amount: Decimal
    notes: str | None = None
    allocation_id: UUID | None = None


@dataclass(frozen=True)
class DeclaredTotals:
    """Subtotals and grand total as declared by the maker."""

    invoice: Decimal
    down_payment: Decimal
    return_: Decimal
    other: Decimal
    total: Decimal


@dataclass(frozen=True)
class CreatePaymentOrderCommand:
    """
    A parsed, shape-valid create request.

    Business rules (existence, availability, totals) are not yet checked.
    """

    payment_type: str
    supplier_id: UUID
    date: date
    request_approval_to: UUID
    invoices: tuple[ReferenceLine, ...]
    totals: DeclaredTotals
    down_payments: tuple[ReferenceLine, ...] = ()
    returns: tuple[ReferenceLine, ...] = ()
    others: tuple[OtherLine, ...] = ()
    supplier_name: str | None = None
    notes: str | None = None

    def lines_by_type(self) -> dict[ReferenceType, tuple[ReferenceLine, ...]]:
        """Settlement lines keyed by type, in the order they are validated."""
        return {
            ReferenceType.PURCHASE_INVOICE: self.invoices,
            ReferenceType.PURCHASE_DOWN_PAYMENT: self.down_payments,
            ReferenceType.PURCHASE_RETURN: self.returns,
        }


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OtherPosting:
    """An other line with its chart of account's polarity resolved."""

    chart_of_account_id: UUID
    amount: Decimal
    is_debit: bool


@dataclass(frozen=True)
class JournalAccounts:
    """Tenant account mapping the journal is derived against."""

    account_payable_id: UUID
    down_payment_id: UUID | None = None


@dataclass(frozen=True)
class JournalPosting:
    chart_of_account_id: UUID
    side: LineSide
    amount: Decimal
    source: str


@dataclass(frozen=True)
class JournalCheckResult:
    is_balance: bool
    debit: Decimal
    credit: Decimal
    postings: tuple[JournalPosting, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "isBalance": self.is_balance,
            "debit": self.debit,
            "credit": self.credit,
        }
