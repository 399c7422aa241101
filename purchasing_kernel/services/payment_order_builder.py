"""
PaymentOrderBuilder -- validates a create request and persists the aggregate.

Responsibility:
    Turns a create request into a PurchasePaymentOrder with its detail
    lines and Form, applying the business rules in a fixed order so the
    first failing rule is the one reported:

        1.  request shape
        2.  maker default branch
        3.  referenced documents exist (invoices, down payments, returns),
            then every other line's chart of account
        4.  supplier exists
        5.  lock the documents, then ordered <= available per document
        6.  declared subtotals and grand total equal the line sums
        7.  down payments <= invoices
        8.  returns <= invoices
        9.  notes trimmed and <= 255 characters
        10. journal account settings exist

    On success it allocates the form number, persists the aggregate,
    submits the form for approval, checks the journal balance and refreshes
    the referenced documents' done flags.

Architecture position:
    Kernel > Services.  Flush-only; PaymentOrderService commits.

Invariants enforced:
    - Referenced documents are locked before their balances are read, in
      (type, id) order, so two concurrent orders cannot both reserve the
      same remaining balance.
    - Nothing is written before every rule has passed.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from purchasing_kernel.domain.amounts import ZERO
from purchasing_kernel.domain.dtos import (
    CreatePaymentOrderCommand,
    JournalAccounts,
    JournalCheckResult,
    OtherPosting,
)
from purchasing_kernel.domain.journal import expected_total_amount, signed_other_total
from purchasing_kernel.domain.request_validation import (
    build_create_command,
    normalize_notes,
    validate_create_request,
)
from purchasing_kernel.exceptions import (
    AmountMismatchError,
    DownPaymentExceedsInvoiceError,
    NoDefaultBranchError,
    OverAllocatedError,
    ReferencedDocumentNotFoundError,
    ReturnExceedsInvoiceError,
    SupplierNotFoundError,
    ValidationError,
)
from purchasing_kernel.logging_config import get_logger
from purchasing_kernel.models.form import Form
from purchasing_kernel.models.purchase import (
    PurchasePaymentOrder,
    PurchasePaymentOrderDetail,
    Referenceable,
    Supplier,
)
from purchasing_kernel.services.balance_ledger import BalanceLedger
from purchasing_kernel.services.base import BaseService
from purchasing_kernel.services.form_lifecycle_service import FormLifecycleService
from purchasing_kernel.services.journal_checker import JournalChecker
from purchasing_kernel.services.sequence_service import SequenceService

logger = get_logger("services.payment_order_builder")


@dataclass(frozen=True)
class BuildResult:
    order: PurchasePaymentOrder
    form: Form
    journal: JournalCheckResult


def _sum(lines) -> Decimal:
    return sum((line.amount for line in lines), ZERO)


class PaymentOrderBuilder(BaseService):
    def __init__(
        self,
        session,
        ledger: BalanceLedger,
        sequence: SequenceService,
        journal_checker: JournalChecker,
        lifecycle: FormLifecycleService,
        *,
        form_prefix: str = "PP",
    ):
        super().__init__(session)
        self._ledger = ledger
        self._sequence = sequence
        self._journal = journal_checker
        self._lifecycle = lifecycle
        self._form_prefix = form_prefix

    # ------------------------------------------------------------------
    # Rule 1: shape
    # ------------------------------------------------------------------

    @staticmethod
    def parse(payload: Mapping[str, Any]) -> CreatePaymentOrderCommand:
        result = validate_create_request(payload)
        if not result.is_valid:
            raise ValidationError(result.messages)
        return build_create_command(payload)

    # ------------------------------------------------------------------
    # Rules 3-5
    # ------------------------------------------------------------------

    def _require_documents(self, command: CreatePaymentOrderCommand) -> None:
        for reference_type, lines in command.lines_by_type().items():
            found = self._ledger.load(reference_type, (line.document_id for line in lines))
            for line in lines:
                # A document without its form was never posted.
                doc = found.get(line.document_id)
                if doc is None or doc.form is None:
                    raise ReferencedDocumentNotFoundError(reference_type.label, line.document_id)

    def _require_supplier(self, supplier_id: UUID) -> Supplier:
        supplier = self.session.get(Supplier, supplier_id)
        if supplier is None:
            raise SupplierNotFoundError(supplier_id)
        return supplier

    def _lock_and_check_available(
        self, command: CreatePaymentOrderCommand
    ) -> list[Referenceable]:
        locked: list[Referenceable] = []
        for reference_type, lines in command.lines_by_type().items():
            if not lines:
                continue
            ordered: dict[UUID, Decimal] = {}
            for line in lines:
                ordered[line.document_id] = ordered.get(line.document_id, ZERO) + line.amount

            documents = self._ledger.lock(reference_type, ordered)
            for document_id in ordered:
                if document_id not in documents:
                    raise ReferencedDocumentNotFoundError(reference_type.label, document_id)
            # Locked docs in lock order so refresh_done sees them the same way.
            docs = [documents[i] for i in sorted(documents, key=str)]
            balances = self._ledger.available_many(docs)
            for doc in docs:
                available = balances[(reference_type, doc.id)]
                if ordered[doc.id] > available:
                    raise OverAllocatedError(doc.form.number, available, ordered[doc.id])
            locked.extend(docs)
        return locked

    # ------------------------------------------------------------------
    # Rules 6-8
    # ------------------------------------------------------------------

    @staticmethod
    def _check_totals(
        command: CreatePaymentOrderCommand, others: list[OtherPosting]
    ) -> Decimal:
        invoice_total = _sum(command.invoices)
        down_payment_total = _sum(command.down_payments)
        return_total = _sum(command.returns)
        other_total = signed_other_total(others)
        totals = command.totals

        for label, expected, received in (
            ("invoice", invoice_total, totals.invoice),
            ("down payment", down_payment_total, totals.down_payment),
            ("return", return_total, totals.return_),
            ("other", other_total, totals.other),
        ):
            if expected != received:
                raise AmountMismatchError(label, expected, received)

        total = expected_total_amount(invoice_total, down_payment_total, return_total, other_total)
        if total != totals.total:
            raise AmountMismatchError(None, total, totals.total)

        if down_payment_total > invoice_total:
            raise DownPaymentExceedsInvoiceError(down_payment_total, invoice_total)
        if return_total > invoice_total:
            raise ReturnExceedsInvoiceError(return_total, invoice_total)
        return total

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(
        self,
        maker_id: UUID,
        branch_id: UUID,
        command: CreatePaymentOrderCommand,
        supplier: Supplier,
        total: Decimal,
        notes: str | None,
    ) -> tuple[PurchasePaymentOrder, Form]:
        number = self._sequence.next_form_number(branch_id, self._form_prefix, command.date)

        order = PurchasePaymentOrder(
            payment_type=command.payment_type,
            supplier_id=supplier.id,
            supplier_name=command.supplier_name or supplier.name,
            amount=total,
        )
        details = [
            PurchasePaymentOrderDetail(
                amount=line.amount,
                referenceable_id=line.document_id,
                referenceable_type=reference_type.value,
            )
            for reference_type, lines in command.lines_by_type().items()
            for line in lines
        ]
        details.extend(
            PurchasePaymentOrderDetail(
                amount=other.amount,
                chart_of_account_id=other.chart_of_account_id,
                allocation_id=other.allocation_id,
                notes=other.notes,
            )
            for other in command.others
        )
        for position, detail in enumerate(details):
            detail.position = position
            order.details.append(detail)

        self.session.add(order)
        self.session.flush()

        form = Form(
            branch_id=branch_id,
            formable_id=order.id,
            formable_type=PurchasePaymentOrder.formable_type,
            number=number.number,
            date=command.date,
            notes=notes,
            done=False,
            increment_number=number.increment_number,
            increment_group=number.increment_group,
            created_by_id=maker_id,
            updated_by_id=maker_id,
        )
        self.session.add(form)
        self.session.flush()
        return order, form

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def build(
        self,
        maker_id: UUID,
        branch_id: UUID | None,
        command: CreatePaymentOrderCommand,
    ) -> BuildResult:
        """Apply rules 2-10 and persist; see the module docstring."""
        if branch_id is None:
            raise NoDefaultBranchError(maker_id)

        self._require_documents(command)
        others = self._journal.other_postings(command.others)
        supplier = self._require_supplier(command.supplier_id)
        locked = self._lock_and_check_available(command)
        total = self._check_totals(command, others)

        notes, notes_result = normalize_notes(command.notes)
        if not notes_result.is_valid:
            raise ValidationError(notes_result.messages)

        accounts: JournalAccounts = self._journal.accounts(
            needs_down_payment=bool(command.down_payments)
        )

        order, form = self._persist(maker_id, branch_id, command, supplier, total, notes)
        form = self._lifecycle.submit(form, command.request_approval_to, maker_id)

        journal = self._journal.assert_balanced(
            total,
            [line.amount for line in command.invoices],
            [line.amount for line in command.down_payments],
            [line.amount for line in command.returns],
            others,
            accounts,
        )
        self._ledger.refresh_done(locked)

        logger.info(
            "payment_order_built",
            extra={
                "form_number": form.number,
                "payment_order_id": str(order.id),
                "amount": total,
                "detail_count": len(order.details),
            },
        )
        return BuildResult(order=order, form=form, journal=journal)
