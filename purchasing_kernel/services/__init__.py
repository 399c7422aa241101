"""
Write services of the purchasing kernel.

PaymentOrderService is the entry point; the other services are its
collaborators and are flush-only.
"""

from purchasing_kernel.services.activity_service import (
    ActivityRecorder,
    ApprovalRequestMessage,
    CancellationRequestMessage,
    DatabaseActivityRecorder,
    IdentityProvider,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    Permission,
)
from purchasing_kernel.services.balance_ledger import BalanceLedger
from purchasing_kernel.services.form_lifecycle_service import FormLifecycleService
from purchasing_kernel.services.journal_checker import JournalChecker
from purchasing_kernel.services.payment_order_builder import BuildResult, PaymentOrderBuilder
from purchasing_kernel.services.payment_order_service import PaymentOrderService
from purchasing_kernel.services.sequence_service import SequenceService
from purchasing_kernel.services.token_service import ApprovalTokenPayload, ApprovalTokenService

__all__ = [
    "ActivityRecorder",
    "ApprovalRequestMessage",
    "ApprovalTokenPayload",
    "ApprovalTokenService",
    "BalanceLedger",
    "BuildResult",
    "CancellationRequestMessage",
    "DatabaseActivityRecorder",
    "FormLifecycleService",
    "IdentityProvider",
    "JournalChecker",
    "LoggingNotificationDispatcher",
    "NotificationDispatcher",
    "PaymentOrderBuilder",
    "PaymentOrderService",
    "Permission",
    "SequenceService",
]
