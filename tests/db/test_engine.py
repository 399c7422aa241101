"""
Transactional scope and row locking.
"""

from decimal import Decimal

import pytest
from sqlalchemy import event, func, select

from purchasing_kernel.db.engine import get_session, session_scope
from purchasing_kernel.db.locking import lock_rows
from purchasing_kernel.models import PurchaseInvoice, Supplier


def _supplier_count(session) -> int:
    return session.scalar(select(func.count()).select_from(Supplier))


class TestSessionScope:
    def test_commits_on_success(self, engine):
        with session_scope() as session:
            session.add(Supplier(name="PT Maju"))

        check = get_session()
        assert _supplier_count(check) == 1
        check.close()

    def test_rolls_back_on_error(self, engine):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(Supplier(name="PT Maju"))
                session.flush()
                raise RuntimeError("boom")

        check = get_session()
        assert _supplier_count(check) == 0
        check.close()


class TestLockRows:
    def test_bumps_version_and_rereads(self, session, seed):
        before = seed.invoice.lock_version
        locked = lock_rows(session, type(seed.invoice), [seed.invoice.id, seed.invoice.id])

        assert list(locked) == [seed.invoice.id]
        assert locked[seed.invoice.id].lock_version == before + 1

    def test_empty_ids(self, session, seed):
        assert lock_rows(session, Supplier, []) == {}

    def test_rows_returned_in_id_order(self, session, seed):
        extra = [
            PurchaseInvoice(supplier_id=seed.supplier.id, amount=Decimal("1000"), created_by_id=seed.maker_id)
            for _ in range(3)
        ]
        session.add_all(extra)
        session.flush()
        ids = [doc.id for doc in extra] + [seed.invoice.id]

        locked = lock_rows(session, PurchaseInvoice, reversed(ids))

        assert list(locked) == sorted(ids, key=str)

    def test_locking_select_runs_before_version_bump(self, session, seed, engine):
        statements = []

        def record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement.lstrip().split()[0].upper())

        event.listen(engine, "before_cursor_execute", record)
        try:
            lock_rows(session, PurchaseInvoice, [seed.invoice.id])
        finally:
            event.remove(engine, "before_cursor_execute", record)

        assert "UPDATE" in statements
        assert statements.index("SELECT") < statements.index("UPDATE")
