"""
Journal derivation (``purchasing_kernel.domain.journal``).

Responsibility
--------------
Derives the double-entry postings of a payment order from its lines and
reports whether debits equal credits.  Also owns the sign convention of
the order's totals, so the builder and the checker cannot disagree.

Posting rules
-------------
* Invoices           -> debit  account payable
* Down payments      -> credit down payment account
* Returns            -> credit account payable
* Other lines        -> their own chart of account, debit when the
                        account type is debit-polarity, credit otherwise
* Order total amount -> credit account payable (debit when negative)

Sign convention
---------------
``total = invoices - down_payments - returns + others`` where each other
line counts positive on a debit-polarity account and negative on a
credit-polarity one.

Architecture position
---------------------
**Kernel domain layer** -- pure, no I/O.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from purchasing_kernel.domain.amounts import ZERO
from purchasing_kernel.domain.dtos import (
    JournalAccounts,
    JournalCheckResult,
    JournalPosting,
    LineSide,
    OtherPosting,
)


def _sum(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, ZERO)


def signed_other_total(others: Iterable[OtherPosting]) -> Decimal:
    return _sum(o.amount if o.is_debit else -o.amount for o in others)


def expected_total_amount(
    invoice_total: Decimal,
    down_payment_total: Decimal,
    return_total: Decimal,
    other_total: Decimal,
) -> Decimal:
    return invoice_total - down_payment_total - return_total + other_total


def derive_postings(
    total_amount: Decimal,
    invoices: Sequence[Decimal],
    down_payments: Sequence[Decimal],
    returns: Sequence[Decimal],
    others: Sequence[OtherPosting],
    accounts: JournalAccounts,
) -> tuple[JournalPosting, ...]:
    """Build postings in a stable order: invoices, down payments, returns,
    others, then the order total."""
    if down_payments and accounts.down_payment_id is None:
        raise ValueError("down payment lines require a down payment account")

    postings: list[JournalPosting] = []
    ap = accounts.account_payable_id

    for amount in invoices:
        postings.append(JournalPosting(ap, LineSide.DEBIT, amount, "invoice"))
    for amount in down_payments:
        postings.append(
            JournalPosting(accounts.down_payment_id, LineSide.CREDIT, amount, "down_payment")
        )
    for amount in returns:
        postings.append(JournalPosting(ap, LineSide.CREDIT, amount, "return"))
    for other in others:
        side = LineSide.DEBIT if other.is_debit else LineSide.CREDIT
        postings.append(JournalPosting(other.chart_of_account_id, side, other.amount, "other"))

    if total_amount >= ZERO:
        postings.append(JournalPosting(ap, LineSide.CREDIT, total_amount, "payment_order"))
    else:
        postings.append(JournalPosting(ap, LineSide.DEBIT, -total_amount, "payment_order"))

    return tuple(postings)


def check_balance(postings: Sequence[JournalPosting]) -> JournalCheckResult:
    debit = _sum(p.amount for p in postings if p.side is LineSide.DEBIT)
    credit = _sum(p.amount for p in postings if p.side is LineSide.CREDIT)
    return JournalCheckResult(
        is_balance=debit == credit,
        debit=debit,
        credit=credit,
        postings=tuple(postings),
    )
