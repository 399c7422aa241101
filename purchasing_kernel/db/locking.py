"""
Module: purchasing_kernel.db.locking
Responsibility: Pessimistic locking of rows that a unit of work is about to
    check and then write against (referenced documents, forms).
Architecture position: Kernel > DB.  Used by services only.

Invariants enforced:
    - Rows are locked in ascending id order so two units of work locking
      overlapping sets cannot deadlock on each other.
    - The lock is taken by SELECT ... ORDER BY id FOR UPDATE, so row locks
      are acquired in that order.  On SQLite, where FOR UPDATE is not
      rendered, BEGIN IMMEDIATE already holds the database write lock.
    - Locked rows are read with populate_existing, discarding any stale
      identity-map state loaded earlier in the session, so every guard
      evaluated afterwards sees committed state.
    - lock_version is bumped only after the rows are locked.
"""

from collections.abc import Iterable
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from purchasing_kernel.logging_config import get_logger

logger = get_logger("db.locking")

T = TypeVar("T")


def lock_rows(session: Session, model: type[T], ids: Iterable[UUID]) -> dict[UUID, T]:
    """
    Lock rows of `model` by id and return them freshly loaded.

    The model must carry an integer `lock_version` column.  Ids that do not
    exist are simply absent from the result.
    """
    ordered = sorted(set(ids), key=str)
    if not ordered:
        return {}

    rows = session.scalars(
        select(model)
        .where(model.id.in_(ordered))
        .order_by(model.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).all()
    for row in rows:
        row.lock_version = row.lock_version + 1
    session.flush()

    logger.debug(
        "rows_locked",
        extra={"table": model.__tablename__, "count": len(rows)},
    )
    return {row.id: row for row in rows}
