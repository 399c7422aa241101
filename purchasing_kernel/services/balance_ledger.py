"""
BalanceLedger -- available-to-settle balances of referenceable documents.

Responsibility:
    Derives ``available = amount - reserved`` for invoices, down payments
    and returns, where ``reserved`` sums the detail lines of every payment
    order that still holds its reservation (``Form.reserves_balance``:
    not rejected, not cancellation-approved).  Keeps each document
    form's ``done`` flag in step with that balance.

Architecture position:
    Kernel > Services.  Called by PaymentOrderBuilder (over-allocation
    check after locking) and FormLifecycleService (done recomputation
    after approve, reject and cancellation approval).

Invariants enforced:
    - available is never persisted.  Every read recomputes it from the
      detail rows, so repeated reads with no intervening writes agree.
    - available is never negative.  A negative derivation means the data
      was over-allocated outside this kernel; it is clamped to zero and
      logged at WARNING.
    - done == (available == 0) after every refresh_done() call.  A
      released reservation flips done back to False.
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, select

from purchasing_kernel.db.locking import lock_rows
from purchasing_kernel.domain.amounts import ZERO
from purchasing_kernel.domain.dtos import ReferenceType
from purchasing_kernel.logging_config import get_logger
from purchasing_kernel.models.form import Form
from purchasing_kernel.models.purchase import (
    REFERENCEABLE_MODELS,
    PurchasePaymentOrder,
    PurchasePaymentOrderDetail,
    Referenceable,
)
from purchasing_kernel.services.base import BaseService

logger = get_logger("services.balance_ledger")


class BalanceLedger(BaseService):
    """Resolver for the available balance of settleable documents."""

    def reserved(
        self, reference_type: ReferenceType, document_ids: Iterable[UUID]
    ) -> dict[UUID, Decimal]:
        """Sum of live reservations per document id (missing ids -> 0)."""
        ids = list(set(document_ids))
        if not ids:
            return {}

        Detail = PurchasePaymentOrderDetail
        stmt = (
            select(Detail.referenceable_id, func.sum(Detail.amount))
            .join(PurchasePaymentOrder, Detail.purchase_payment_order_id == PurchasePaymentOrder.id)
            .join(
                Form,
                and_(
                    Form.formable_id == PurchasePaymentOrder.id,
                    Form.formable_type == PurchasePaymentOrder.formable_type,
                ),
            )
            .where(
                Detail.referenceable_type == reference_type.value,
                Detail.referenceable_id.in_(ids),
                Form.reserves_balance,
            )
            .group_by(Detail.referenceable_id)
        )
        sums = {doc_id: Decimal(total or 0) for doc_id, total in self.session.execute(stmt)}
        return {doc_id: sums.get(doc_id, ZERO) for doc_id in ids}

    def available_many(
        self, documents: Sequence[Referenceable]
    ) -> dict[tuple[ReferenceType, UUID], Decimal]:
        by_type: dict[ReferenceType, list[Referenceable]] = {}
        for doc in documents:
            by_type.setdefault(doc.reference_type, []).append(doc)

        result: dict[tuple[ReferenceType, UUID], Decimal] = {}
        for reference_type, docs in by_type.items():
            reserved = self.reserved(reference_type, (d.id for d in docs))
            for doc in docs:
                available = doc.amount - reserved[doc.id]
                if available < ZERO:
                    logger.warning(
                        "available_balance_negative",
                        extra={
                            "reference_type": reference_type.value,
                            "document_id": str(doc.id),
                            "amount": doc.amount,
                            "reserved": reserved[doc.id],
                        },
                    )
                    available = ZERO
                result[(reference_type, doc.id)] = available
        return result

    def available(self, document: Referenceable) -> Decimal:
        return self.available_many([document])[(document.reference_type, document.id)]

    def load(self, reference_type: ReferenceType, document_ids: Iterable[UUID]) -> dict[UUID, Referenceable]:
        """Read documents without locking them."""
        model = REFERENCEABLE_MODELS[reference_type]
        ids = list(set(document_ids))
        if not ids:
            return {}
        rows = self.session.scalars(select(model).where(model.id.in_(ids))).all()
        return {row.id: row for row in rows}

    def lock(self, reference_type: ReferenceType, document_ids: Iterable[UUID]) -> dict[UUID, Referenceable]:
        """Lock documents and re-read them; see db.locking.lock_rows."""
        return lock_rows(self.session, REFERENCEABLE_MODELS[reference_type], document_ids)

    def documents_of(self, order: PurchasePaymentOrder, *, locked: bool = False) -> list[Referenceable]:
        """Every document an order's settlement lines reference, in type order."""
        documents: list[Referenceable] = []
        for reference_type in ReferenceType:
            ids = [d.referenceable_id for d in order.details_of(reference_type)]
            loader = self.lock if locked else self.load
            found = loader(reference_type, ids)
            documents.extend(found[i] for i in sorted(found, key=str))
        return documents

    def refresh_done(self, documents: Sequence[Referenceable]) -> list[Referenceable]:
        """Set each document form's done flag from its balance.

        Returns the documents whose flag changed.
        """
        if not documents:
            return []
        self.session.flush()
        balances = self.available_many(documents)
        changed: list[Referenceable] = []
        for doc in documents:
            done = balances[(doc.reference_type, doc.id)] == ZERO
            form = doc.form
            if form is None:
                logger.warning(
                    "referenced_document_without_form",
                    extra={"reference_type": doc.reference_type.value, "document_id": str(doc.id)},
                )
                continue
            if form.done != done:
                form.done = done
                changed.append(doc)
        self.session.flush()
        if changed:
            logger.info(
                "document_done_flags_refreshed",
                extra={
                    "changed": [f"{d.reference_type.value}:{d.id}" for d in changed],
                    "checked": len(documents),
                },
            )
        return changed
