"""
Pytest fixtures for the purchasing kernel test suite.

Provides:
- A fresh database per test (temporary SQLite file, or DATABASE_URL)
- Seeded reference data: supplier, chart of accounts, setting journals and
  an approved invoice, down payment and return with their forms
- A fake identity provider, a recording notification dispatcher and a
  deterministic clock
- A PaymentOrderService wired to all of the above
- A create-request payload builder

Environment Variables:
- DATABASE_URL: optional PostgreSQL URL.  When unset each test runs
  against a SQLite file under pytest's tmp_path.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Any
from uuid import UUID, uuid4

import pytest

from purchasing_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from purchasing_kernel.domain.clock import DeterministicClock
from purchasing_kernel.domain.form_lifecycle import ApprovalStatus
from purchasing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from purchasing_kernel.models import (
    ChartOfAccount,
    ChartOfAccountType,
    Form,
    PurchaseDownPayment,
    PurchaseInvoice,
    PurchaseReturn,
    SettingJournal,
    Supplier,
)
from purchasing_kernel.services.activity_service import (
    ApprovalRequestMessage,
    CancellationRequestMessage,
)
from purchasing_kernel.services.payment_order_service import PaymentOrderService
from purchasing_kernel.services.token_service import ApprovalTokenService

TEST_TOKEN_SECRET = "test-approval-secret-0123456789abcdef"
ORDER_DATE = date(2022, 12, 3)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture purchasing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.approve(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_order_approve_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("purchasing_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'purchasing.db'}"


@pytest.fixture
def engine(database_url):
    """Engine with all tables created; dropped and disposed after the test."""
    eng = init_engine_from_url(database_url, pool_size=10, max_overflow=5)
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session(engine):
    """One session per test.

    On SQLite every transaction holds the database write lock, so tests
    that need a second session must commit or roll this one back first.
    """
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Collaborators
# =============================================================================


class FakeIdentityProvider:
    """Every known user has every permission unless denied."""

    def __init__(self):
        self.branches: dict[UUID, UUID | None] = {}
        self.denied: set[tuple[UUID, str]] = set()

    def default_branch_id(self, user_id: UUID) -> UUID | None:
        return self.branches.get(user_id)

    def has_permission(self, user_id: UUID, permission: str) -> bool:
        return (user_id, permission) not in self.denied

    def deny(self, user_id: UUID, permission: str) -> None:
        self.denied.add((user_id, permission))


class RecordingNotificationDispatcher:
    """Keeps every message; raises instead when ``fail`` is set."""

    def __init__(self):
        self.approval_requests: list[ApprovalRequestMessage] = []
        self.cancellation_requests: list[CancellationRequestMessage] = []
        self.fail = False

    def send_approval_request(self, message: ApprovalRequestMessage) -> None:
        if self.fail:
            raise RuntimeError("mail transport down")
        self.approval_requests.append(message)

    def send_cancellation_request(self, message: CancellationRequestMessage) -> None:
        if self.fail:
            raise RuntimeError("mail transport down")
        self.cancellation_requests.append(message)


@pytest.fixture
def clock():
    return DeterministicClock()


@pytest.fixture
def identity():
    return FakeIdentityProvider()


@pytest.fixture
def dispatcher():
    return RecordingNotificationDispatcher()


@pytest.fixture
def token_service(clock):
    return ApprovalTokenService(TEST_TOKEN_SECRET, clock=clock)


# =============================================================================
# Seed data
# =============================================================================


@dataclass
class Seed:
    maker_id: UUID
    approver_id: UUID
    other_user_id: UUID
    branch_id: UUID
    supplier: Supplier
    account_payable: ChartOfAccount
    down_payment_account: ChartOfAccount
    expense: ChartOfAccount
    income: ChartOfAccount
    invoice: PurchaseInvoice
    down_payment: PurchaseDownPayment
    purchase_return: PurchaseReturn


def add_document(session, model, *, supplier, amount, number, created_by, branch_id):
    """Persist an approved referenceable document with its form."""
    doc = model(supplier_id=supplier.id, amount=Decimal(amount), created_by_id=created_by)
    session.add(doc)
    session.flush()
    session.add(
        Form(
            branch_id=branch_id,
            formable_id=doc.id,
            formable_type=model.formable_type,
            number=number,
            date=ORDER_DATE,
            done=False,
            increment_number=int(number[-3:]),
            increment_group=202212,
            approval_status=ApprovalStatus.APPROVED.value,
            created_by_id=created_by,
        )
    )
    session.flush()
    return doc


@pytest.fixture
def seed(session, identity) -> Seed:
    maker_id, approver_id, other_user_id, branch_id = uuid4(), uuid4(), uuid4(), uuid4()
    identity.branches[maker_id] = branch_id

    supplier = Supplier(name="PT Sumber Makmur", address="Jl. Merdeka 1", phone="0211234567")
    session.add(supplier)

    asset = ChartOfAccountType(name="current asset", alias="aset lancar", is_debit=True)
    liability = ChartOfAccountType(name="current liability", alias="hutang lancar", is_debit=False)
    expense_type = ChartOfAccountType(name="expense", alias="beban", is_debit=True)
    income_type = ChartOfAccountType(name="other income", alias="pendapatan lain", is_debit=False)
    session.add_all([asset, liability, expense_type, income_type])
    session.flush()

    account_payable = ChartOfAccount(type_id=liability.id, number="21101", name="account payable", alias="hutang usaha")
    down_payment_account = ChartOfAccount(type_id=asset.id, number="11601", name="purchase down payment", alias="uang muka pembelian")
    expense = ChartOfAccount(type_id=expense_type.id, number="61101", name="freight expense", alias="beban angkut")
    income = ChartOfAccount(type_id=income_type.id, number="71101", name="purchase discount", alias="potongan pembelian")
    session.add_all([account_payable, down_payment_account, expense, income])
    session.flush()

    session.add_all(
        [
            SettingJournal(feature="purchase", name="account payable", chart_of_account_id=account_payable.id),
            SettingJournal(feature="purchase", name="down payment", chart_of_account_id=down_payment_account.id),
        ]
    )
    session.flush()

    common = dict(supplier=supplier, created_by=maker_id, branch_id=branch_id)
    invoice = add_document(session, PurchaseInvoice, amount="220000", number="PI2212001", **common)
    down_payment = add_document(session, PurchaseDownPayment, amount="30000", number="PDP2212001", **common)
    purchase_return = add_document(session, PurchaseReturn, amount="11000", number="PR2212001", **common)
    # Committed so a rolled-back operation under test keeps the seed.
    session.commit()

    return Seed(
        maker_id=maker_id,
        approver_id=approver_id,
        other_user_id=other_user_id,
        branch_id=branch_id,
        supplier=supplier,
        account_payable=account_payable,
        down_payment_account=down_payment_account,
        expense=expense,
        income=income,
        invoice=invoice,
        down_payment=down_payment,
        purchase_return=purchase_return,
    )


# =============================================================================
# Service and payloads
# =============================================================================


@pytest.fixture
def service(session, identity, token_service, dispatcher, clock):
    return PaymentOrderService(
        session,
        identity,
        token_service,
        dispatcher=dispatcher,
        clock=clock,
        tenant="test_dev",
    )


@pytest.fixture
def make_payload(seed):
    """
    Build a create request.  Defaults to the reference scenario:

        invoice 100000, down payment 20000, return 10000,
        other debit 5000, other credit 10000 -> total 65000
    """

    def _make(**overrides: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "paymentType": "cash",
            "supplierId": str(seed.supplier.id),
            "supplierName": seed.supplier.name,
            "date": ORDER_DATE.isoformat(),
            "requestApprovalTo": str(seed.approver_id),
            "notes": "payment for december invoices",
            "invoices": [{"id": str(seed.invoice.id), "amount": 100000}],
            "downPayments": [{"id": str(seed.down_payment.id), "amount": 20000}],
            "returns": [{"id": str(seed.purchase_return.id), "amount": 10000}],
            "others": [
                {"coaId": str(seed.expense.id), "notes": "freight", "amount": 5000, "allocationId": None},
                {"coaId": str(seed.income.id), "notes": "discount", "amount": 10000, "allocationId": None},
            ],
            "totalInvoiceAmount": 100000,
            "totalDownPaymentAmount": 20000,
            "totalReturnAmount": 10000,
            "totalOtherAmount": -5000,
            "totalAmount": 65000,
        }
        payload.update(overrides)
        return payload

    return _make


@pytest.fixture
def create_order(service, seed, make_payload):
    """Create an order as the seeded maker; returns the serialized order."""

    def _create(**overrides: Any) -> dict[str, Any]:
        return service.create_order(seed.maker_id, make_payload(**overrides))

    return _create


@pytest.fixture
def form_of(session):
    """Re-read a document's form from the database."""

    def _form_of(document) -> Form:
        session.expire_all()
        return session.get(type(document), document.id).form

    return _form_of
