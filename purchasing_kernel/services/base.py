"""
BaseService -- abstract base for kernel services.

Responsibility:
    Common constructor and session contract for every write service.
    Services use ``session.flush()`` inside the caller's transaction and
    never commit or roll back themselves; PaymentOrderService owns the
    unit of work.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for write services.

    Guarantees:
        The service never calls ``session.commit()`` or
        ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
