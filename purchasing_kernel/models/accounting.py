"""
Module: purchasing_kernel.models.accounting
Responsibility: Chart of accounts and the per-tenant setting journal that
    maps posting roles (feature + name) to accounts.
Architecture position: Kernel > Models.

Invariants enforced:
    - A setting journal entry is unique per (feature, name).
    - ChartOfAccountType.is_debit fixes the polarity of every account of
      that type; other lines on a payment order post on that side.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from purchasing_kernel.db.base import Base, UUIDString


class ChartOfAccountType(Base):
    __tablename__ = "chart_of_account_types"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    alias: Mapped[str] = mapped_column(String(100), nullable=False)
    is_debit: Mapped[bool] = mapped_column(Boolean, nullable=False)


class ChartOfAccount(Base):
    __tablename__ = "chart_of_accounts"

    type_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("chart_of_account_types.id"), nullable=False
    )
    number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    alias: Mapped[str] = mapped_column(String(255), nullable=False)

    type: Mapped[ChartOfAccountType] = relationship(lazy="joined")

    @property
    def is_debit(self) -> bool:
        return self.type.is_debit

    def __repr__(self) -> str:
        return f"<ChartOfAccount {self.number} {self.name}>"


class SettingJournal(Base):
    """Maps a posting role, e.g. ("purchase", "account payable"), to an account."""

    __tablename__ = "setting_journals"

    __table_args__ = (
        UniqueConstraint("feature", "name", name="uq_setting_journals_feature_name"),
    )

    feature: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    chart_of_account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("chart_of_accounts.id"), nullable=False
    )

    chart_of_account: Mapped[ChartOfAccount] = relationship()
