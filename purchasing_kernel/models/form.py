"""
Module: purchasing_kernel.models.form
Responsibility: ORM persistence for the form envelope shared by every
    formable document (payment orders, invoices, down payments, returns).
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - One form per formable document: UNIQUE(formable_type, formable_id).
    - Form numbers are unique per branch: UNIQUE(branch_id, number).
    - approval_status and cancellation_status hold only -1, 0, 1 or NULL.
    - Status columns are mutated only by FormLifecycleService.

Audit relevance:
    approval_* and request_cancellation_* / cancellation_* columns record
    who decided what and when.  Rows are never deleted; rejection and
    cancellation are state transitions.
"""

from __future__ import annotations

import datetime as dt
from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    SmallInteger,
    String,
    UniqueConstraint,
    and_,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column

from purchasing_kernel.db.base import TrackedBase, UUIDString
from purchasing_kernel.domain.form_lifecycle import (
    RELEASING_APPROVAL_STATUS,
    RELEASING_CANCELLATION_STATUS,
    FormState,
    form_state,
)
from purchasing_kernel.domain.form_lifecycle import reserves_balance as _reserves_balance


class Form(TrackedBase):
    """Approval/cancellation envelope of a formable document."""

    __tablename__ = "forms"

    __table_args__ = (
        UniqueConstraint("branch_id", "number", name="uq_forms_branch_number"),
        UniqueConstraint("formable_type", "formable_id", name="uq_forms_formable"),
        CheckConstraint(
            "approval_status IS NULL OR approval_status IN (-1, 0, 1)",
            name="ck_forms_approval_status",
        ),
        CheckConstraint(
            "cancellation_status IS NULL OR cancellation_status IN (-1, 0, 1)",
            name="ck_forms_cancellation_status",
        ),
        Index("ix_forms_increment", "branch_id", "increment_group"),
    )

    branch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    formable_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    formable_type: Mapped[str] = mapped_column(String(50), nullable=False)

    number: Mapped[str] = mapped_column(String(50), nullable=False)
    edited_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    edited_notes: Mapped[str | None] = mapped_column(String(255), nullable=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    notes: Mapped[str | None] = mapped_column(String(255), nullable=True)
    done: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    increment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    increment_group: Mapped[int] = mapped_column(Integer, nullable=False)

    request_approval_to: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approval_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approval_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approval_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approval_status: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)

    request_cancellation_to: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    request_cancellation_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    request_cancellation_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    request_cancellation_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancellation_approval_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    cancellation_approval_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    cancellation_approval_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cancellation_status: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)

    # Bumped by db.locking.lock_rows once the row is locked.
    lock_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @property
    def state(self) -> FormState:
        return form_state(self.approval_status, self.cancellation_status)

    def __repr__(self) -> str:
        return f"<Form {self.number} {self.formable_type} state={self.state.value}>"

    @hybrid_property
    def reserves_balance(self) -> bool:
        return _reserves_balance(self.approval_status, self.cancellation_status)

    @reserves_balance.expression
    def reserves_balance(cls):
        # IS DISTINCT FROM keeps NULL statuses reserving, as in Python.
        return and_(
            cls.approval_status.is_distinct_from(RELEASING_APPROVAL_STATUS.value),
            cls.cancellation_status.is_distinct_from(RELEASING_CANCELLATION_STATUS.value),
        )
