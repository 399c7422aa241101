"""
SequenceService -- form number allocation via locked counter rows.

Responsibility:
    Allocates form numbers of the shape ``<prefix><YYMM><NNN>`` from a
    counter keyed by (branch, prefix, increment group).  The increment
    group is the ``YYYYMM`` of the form date, so numbering restarts at
    001 every month.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by
    PaymentOrderBuilder while it persists a new form.

Invariants enforced:
    - The locked counter row is the sole source of truth for the next
      increment.  MAX(increment_number) + 1 is never used.
    - The increment is only visible once the caller's transaction
      commits; a rollback gives the number back.

Failure modes:
    - IntegrityError: concurrent counter creation race, handled with a
      savepoint rollback and retry.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import BigInteger, Integer, String, UniqueConstraint, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from purchasing_kernel.db.base import Base, UUIDString
from purchasing_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class FormNumberCounter(Base):
    """One row per (branch, prefix, month) numbering sequence."""

    __tablename__ = "form_number_counters"

    __table_args__ = (
        UniqueConstraint(
            "branch_id", "prefix", "increment_group",
            name="uq_form_number_counters_key",
        ),
    )

    branch_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    prefix: Mapped[str] = mapped_column(String(20), nullable=False)
    increment_group: Mapped[int] = mapped_column(Integer, nullable=False)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


@dataclass(frozen=True)
class FormNumber:
    number: str
    increment_number: int
    increment_group: int


def increment_group_of(form_date: date) -> int:
    """YYYYMM as an integer, e.g. 202212."""
    return form_date.year * 100 + form_date.month


def format_form_number(prefix: str, form_date: date, increment: int, width: int = 3) -> str:
    """PP + 2212 + 001 -> PP2212001."""
    return f"{prefix}{form_date:%y%m}{increment:0{width}d}"


class SequenceService:
    """
    Transactional form number allocation.

    Non-goals:
        Does NOT call ``session.commit()`` -- the caller owns the unit
        of work.
    """

    def __init__(self, session: Session, *, increment_width: int = 3):
        self._session = session
        self._width = increment_width

    def _locked_counter(
        self, branch_id: UUID, prefix: str, group: int
    ) -> FormNumberCounter | None:
        return self._session.execute(
            select(FormNumberCounter)
            .where(
                FormNumberCounter.branch_id == branch_id,
                FormNumberCounter.prefix == prefix,
                FormNumberCounter.increment_group == group,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_increment(self, branch_id: UUID, prefix: str, group: int) -> int:
        counter = self._locked_counter(branch_id, prefix, group)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = FormNumberCounter(
                    branch_id=branch_id,
                    prefix=prefix,
                    increment_group=group,
                    current_value=1,
                )
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "form_number_counter_created",
                    extra={"prefix": prefix, "increment_group": group},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "form_number_counter_race_retry",
                    extra={"prefix": prefix, "increment_group": group},
                )
                savepoint.rollback()
                counter = self._locked_counter(branch_id, prefix, group)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        return counter.current_value

    def next_form_number(self, branch_id: UUID, prefix: str, form_date: date) -> FormNumber:
        """Allocate the next number for a form dated ``form_date``."""
        group = increment_group_of(form_date)
        increment = self.next_increment(branch_id, prefix, group)
        number = format_form_number(prefix, form_date, increment, self._width)
        logger.debug(
            "form_number_allocated",
            extra={"number": number, "increment_group": group, "increment_number": increment},
        )
        return FormNumber(number=number, increment_number=increment, increment_group=group)

    def current_value(self, branch_id: UUID, prefix: str, group: int) -> int | None:
        counter = self._session.execute(
            select(FormNumberCounter).where(
                FormNumberCounter.branch_id == branch_id,
                FormNumberCounter.prefix == prefix,
                FormNumberCounter.increment_group == group,
            )
        ).scalar_one_or_none()
        return counter.current_value if counter else None
