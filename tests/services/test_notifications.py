"""
Notification timing: messages go out only once the operation is committed.

With auto_commit=False the caller owns the transaction, so the approval
and cancellation requests wait for the caller's outermost commit and are
dropped when the caller rolls back.
"""

from uuid import UUID

import pytest
from sqlalchemy import func, select

from purchasing_kernel.models import PurchasePaymentOrder
from purchasing_kernel.services.payment_order_service import PaymentOrderService


@pytest.fixture
def caller_owned(session, identity, token_service, dispatcher, clock):
    return PaymentOrderService(
        session,
        identity,
        token_service,
        dispatcher=dispatcher,
        clock=clock,
        auto_commit=False,
    )


def _order_count(session) -> int:
    return session.scalar(select(func.count()).select_from(PurchasePaymentOrder))


class TestCallerOwnedTransaction:
    def test_nothing_sent_before_commit(self, caller_owned, seed, make_payload, dispatcher):
        caller_owned.create_order(seed.maker_id, make_payload())
        assert dispatcher.approval_requests == []

    def test_sent_after_caller_commit(
        self, caller_owned, seed, make_payload, dispatcher, session, token_service
    ):
        order = caller_owned.create_order(seed.maker_id, make_payload())
        session.commit()

        [message] = dispatcher.approval_requests
        assert message.form_number == "PP2212001"
        claims = token_service.verify(message.reject_token)
        assert str(claims.payment_order_id) == order["id"]

    def test_dropped_on_caller_rollback(
        self, caller_owned, seed, make_payload, dispatcher, session, captured_logs
    ):
        caller_owned.create_order(seed.maker_id, make_payload())
        session.rollback()

        assert dispatcher.approval_requests == []
        assert _order_count(session) == 0
        assert any(r["message"] == "notifications_discarded" for r in captured_logs())

    def test_savepoint_commit_does_not_release(
        self, caller_owned, seed, make_payload, dispatcher, session
    ):
        with session.begin_nested():
            caller_owned.create_order(seed.maker_id, make_payload())
        assert dispatcher.approval_requests == []

        session.rollback()
        assert dispatcher.approval_requests == []

    def test_queue_is_empty_for_the_next_transaction(
        self, caller_owned, seed, make_payload, dispatcher, session
    ):
        caller_owned.create_order(seed.maker_id, make_payload())
        session.rollback()
        session.commit()

        assert dispatcher.approval_requests == []

    def test_cancellation_request_waits_for_commit(
        self, caller_owned, seed, make_payload, dispatcher, session
    ):
        order = caller_owned.create_order(seed.maker_id, make_payload())
        caller_owned.approve(UUID(order["id"]), seed.approver_id)
        session.commit()

        caller_owned.request_cancellation(
            UUID(order["id"]), seed.maker_id, seed.approver_id, "duplicate"
        )
        assert dispatcher.cancellation_requests == []

        session.commit()
        [message] = dispatcher.cancellation_requests
        assert message.reason == "duplicate"


class _BrokenTokenService:
    def __init__(self, inner):
        self._inner = inner

    def issue(self, payment_order_id, user_id):
        raise RuntimeError("signing key unavailable")

    def verify(self, token):
        return self._inner.verify(token)


class TestTokenFailure:
    def test_token_failure_does_not_undo_create(
        self, session, identity, token_service, dispatcher, clock, seed, make_payload, captured_logs
    ):
        service = PaymentOrderService(
            session, identity, _BrokenTokenService(token_service), dispatcher=dispatcher, clock=clock
        )

        order = service.create_order(seed.maker_id, make_payload())

        assert order["form"]["number"] == "PP2212001"
        assert _order_count(session) == 1
        assert dispatcher.approval_requests == []
        failures = [r for r in captured_logs() if r["message"] == "notification_dispatch_failed"]
        assert failures and failures[0]["form_number"] == "PP2212001"
