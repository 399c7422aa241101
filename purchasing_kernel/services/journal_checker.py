"""
JournalChecker -- balance check of a payment order's derived journal.

Responsibility:
    Resolves the tenant's account mapping from SettingJournal rows and the
    polarity of each other line's chart of account, then delegates the
    posting derivation to ``purchasing_kernel.domain.journal``.

Architecture position:
    Kernel > Services.  Read-only against the session; called by
    PaymentOrderBuilder before and after the order is persisted.

Failure modes:
    - MissingJournalSettingError: the account payable role (or the down
      payment role when down payment lines exist) has no setting row.
    - ChartOfAccountNotFoundError: an other line names an unknown account.
    - JournalImbalanceError: raised by assert_balanced() only.
"""

from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from purchasing_kernel.domain.dtos import (
    JournalAccounts,
    JournalCheckResult,
    OtherLine,
    OtherPosting,
)
from purchasing_kernel.domain.journal import check_balance, derive_postings
from purchasing_kernel.exceptions import (
    ChartOfAccountNotFoundError,
    JournalImbalanceError,
    MissingJournalSettingError,
)
from purchasing_kernel.logging_config import get_logger
from purchasing_kernel.models.accounting import ChartOfAccount, SettingJournal
from purchasing_kernel.services.base import BaseService

logger = get_logger("services.journal_checker")


class JournalChecker(BaseService):
    def __init__(
        self,
        session,
        *,
        feature: str = "purchase",
        account_payable_name: str = "account payable",
        down_payment_name: str = "down payment",
    ):
        super().__init__(session)
        self._feature = feature
        self._account_payable_name = account_payable_name
        self._down_payment_name = down_payment_name

    def _setting_account(self, name: str) -> UUID:
        setting = self.session.scalars(
            select(SettingJournal).where(
                SettingJournal.feature == self._feature,
                SettingJournal.name == name,
            )
        ).one_or_none()
        if setting is None:
            raise MissingJournalSettingError(self._feature, name)
        return setting.chart_of_account_id

    def accounts(self, needs_down_payment: bool = False) -> JournalAccounts:
        """Resolve the account mapping, failing on a missing setting row."""
        account_payable_id = self._setting_account(self._account_payable_name)
        down_payment_id = (
            self._setting_account(self._down_payment_name) if needs_down_payment else None
        )
        return JournalAccounts(account_payable_id, down_payment_id)

    def other_postings(self, others: Sequence[OtherLine]) -> list[OtherPosting]:
        """Attach each other line's chart of account polarity."""
        ids = {o.chart_of_account_id for o in others}
        if not ids:
            return []
        rows = self.session.scalars(
            select(ChartOfAccount).where(ChartOfAccount.id.in_(ids))
        ).all()
        by_id = {row.id: row for row in rows}
        postings = []
        for other in others:
            account = by_id.get(other.chart_of_account_id)
            if account is None:
                raise ChartOfAccountNotFoundError(other.chart_of_account_id)
            postings.append(
                OtherPosting(other.chart_of_account_id, other.amount, account.is_debit)
            )
        return postings

    def check(
        self,
        amount: Decimal,
        invoices: Sequence[Decimal],
        down_payments: Sequence[Decimal],
        returns: Sequence[Decimal],
        others: Sequence[OtherPosting],
        accounts: JournalAccounts | None = None,
    ) -> JournalCheckResult:
        if accounts is None:
            accounts = self.accounts(needs_down_payment=bool(down_payments))
        postings = derive_postings(amount, invoices, down_payments, returns, others, accounts)
        result = check_balance(postings)
        logger.debug(
            "journal_checked",
            extra={
                "is_balance": result.is_balance,
                "debit": result.debit,
                "credit": result.credit,
                "posting_count": len(postings),
            },
        )
        return result

    def assert_balanced(
        self,
        amount: Decimal,
        invoices: Sequence[Decimal],
        down_payments: Sequence[Decimal],
        returns: Sequence[Decimal],
        others: Sequence[OtherPosting],
        accounts: JournalAccounts | None = None,
    ) -> JournalCheckResult:
        result = self.check(amount, invoices, down_payments, returns, others, accounts)
        if not result.is_balance:
            logger.error(
                "journal_imbalance",
                extra={"debit": result.debit, "credit": result.credit},
            )
            raise JournalImbalanceError(result.debit, result.credit)
        return result
