"""
Module: purchasing_kernel.models.activity
Responsibility: Append-only user activity log ("Created", "Approved", ...).
Architecture position: Kernel > Models.  Written by DatabaseActivityRecorder.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from purchasing_kernel.db.base import Base, UUIDString


class UserActivity(Base):
    __tablename__ = "user_activities"

    __table_args__ = (
        Index("ix_user_activities_number", "number"),
        Index("ix_user_activities_table", "table_type", "table_id"),
    )

    table_type: Mapped[str] = mapped_column(String(50), nullable=False)
    table_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    number: Mapped[str] = mapped_column(String(50), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    activity: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return f"<UserActivity {self.number} {self.activity}>"
