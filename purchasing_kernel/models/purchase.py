"""
Module: purchasing_kernel.models.purchase
Responsibility: ORM persistence for suppliers, the documents a payment order
    settles (invoices, down payments, returns) and the payment order itself.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - Every formable document owns exactly one Form, joined on
      (formable_type, formable_id).
    - A payment order detail is either a settlement line
      (referenceable_id + referenceable_type) or an other line
      (chart_of_account_id), never both, never neither.
    - Detail amounts are strictly positive.
    - "available" is never persisted; BalanceLedger derives it from the
      details of orders that still reserve balance.

Design:
    The polymorphic reference is a type tag plus id, resolved through
    REFERENCEABLE_MODELS.  Each referenceable model satisfies the
    Referenceable protocol, so the ledger can work on any of them
    without knowing which one it holds.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, ClassVar, Protocol
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from purchasing_kernel.db.base import Base, TrackedBase, UUIDString
from purchasing_kernel.domain.dtos import ReferenceType

if TYPE_CHECKING:
    from purchasing_kernel.models.accounting import ChartOfAccount
    from purchasing_kernel.models.form import Form


class Referenceable(Protocol):
    """What the balance ledger needs from a settleable document."""

    reference_type: ClassVar[ReferenceType]
    id: UUID
    amount: Decimal
    form: Form


class _HasForm:
    """Mixin giving a formable model a read-only link to its Form."""

    formable_type: ClassVar[str]

    @declared_attr
    def form(cls) -> Mapped[Form]:
        return relationship(
            "Form",
            primaryjoin=(
                f"and_(foreign(Form.formable_id) == {cls.__name__}.id, "
                f"Form.formable_type == '{cls.formable_type}')"
            ),
            uselist=False,
            viewonly=True,
        )


class Supplier(Base):
    __tablename__ = "suppliers"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)


class _ReferenceableDocument(_HasForm, TrackedBase):
    __abstract__ = True

    reference_type: ClassVar[ReferenceType]

    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("suppliers.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    # Bumped by db.locking.lock_rows once the row is locked.
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} amount={self.amount}>"


class PurchaseInvoice(_ReferenceableDocument):
    __tablename__ = "purchase_invoices"

    reference_type = ReferenceType.PURCHASE_INVOICE
    formable_type = ReferenceType.PURCHASE_INVOICE.value


class PurchaseDownPayment(_ReferenceableDocument):
    __tablename__ = "purchase_down_payments"

    reference_type = ReferenceType.PURCHASE_DOWN_PAYMENT
    formable_type = ReferenceType.PURCHASE_DOWN_PAYMENT.value


class PurchaseReturn(_ReferenceableDocument):
    __tablename__ = "purchase_returns"

    reference_type = ReferenceType.PURCHASE_RETURN
    formable_type = ReferenceType.PURCHASE_RETURN.value


REFERENCEABLE_MODELS: dict[ReferenceType, type[_ReferenceableDocument]] = {
    ReferenceType.PURCHASE_INVOICE: PurchaseInvoice,
    ReferenceType.PURCHASE_DOWN_PAYMENT: PurchaseDownPayment,
    ReferenceType.PURCHASE_RETURN: PurchaseReturn,
}


class PurchasePaymentOrder(_HasForm, Base):
    """A maker's order to settle supplier documents, pending approval."""

    __tablename__ = "purchase_payment_orders"

    formable_type = "PurchasePaymentOrder"

    payment_type: Mapped[str] = mapped_column(String(50), nullable=False)
    supplier_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("suppliers.id"), nullable=False
    )
    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    details: Mapped[list[PurchasePaymentOrderDetail]] = relationship(
        back_populates="payment_order",
        order_by="PurchasePaymentOrderDetail.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def details_of(self, reference_type: ReferenceType) -> list[PurchasePaymentOrderDetail]:
        return [d for d in self.details if d.referenceable_type == reference_type.value]

    @property
    def other_details(self) -> list[PurchasePaymentOrderDetail]:
        return [d for d in self.details if d.chart_of_account_id is not None]

    def __repr__(self) -> str:
        return f"<PurchasePaymentOrder {self.id} amount={self.amount}>"


class PurchasePaymentOrderDetail(Base):
    __tablename__ = "purchase_payment_order_details"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_order_details_positive_amount"),
        CheckConstraint(
            "(referenceable_id IS NOT NULL AND referenceable_type IS NOT NULL "
            "AND chart_of_account_id IS NULL) OR "
            "(referenceable_id IS NULL AND referenceable_type IS NULL "
            "AND chart_of_account_id IS NOT NULL)",
            name="ck_payment_order_details_one_shape",
        ),
        Index(
            "ix_payment_order_details_referenceable",
            "referenceable_type",
            "referenceable_id",
        ),
    )

    purchase_payment_order_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("purchase_payment_orders.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    referenceable_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    referenceable_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    chart_of_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("chart_of_accounts.id"), nullable=True
    )
    allocation_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(255), nullable=True)

    payment_order: Mapped[PurchasePaymentOrder] = relationship(back_populates="details")
    chart_of_account: Mapped[ChartOfAccount | None] = relationship()
