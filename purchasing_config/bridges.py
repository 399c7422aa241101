"""
Config -> Kernel Bridges.

Functions that turn a loaded PurchasingConfig into kernel services.  They
live in purchasing_config (the producer) because the kernel must NEVER
import purchasing_config.

Usage:
    from purchasing_config import get_active_config
    from purchasing_config.bridges import build_payment_order_service

    config = get_active_config("acme")
    service = build_payment_order_service(session, config, identity)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from purchasing_config.schema import PurchasingConfig
from purchasing_kernel.domain.clock import Clock
from purchasing_kernel.services.activity_service import (
    ActivityRecorder,
    IdentityProvider,
    NotificationDispatcher,
)
from purchasing_kernel.services.payment_order_service import PaymentOrderService
from purchasing_kernel.services.token_service import ApprovalTokenService


def build_token_service(
    config: PurchasingConfig, clock: Clock | None = None
) -> ApprovalTokenService:
    settings = config.approval_token
    return ApprovalTokenService(
        settings.secret,
        ttl=settings.ttl,
        algorithm=settings.algorithm,
        clock=clock,
    )


def build_payment_order_service(
    session: Session,
    config: PurchasingConfig,
    identity: IdentityProvider,
    *,
    dispatcher: NotificationDispatcher | None = None,
    activity_recorder: ActivityRecorder | None = None,
    clock: Clock | None = None,
    auto_commit: bool = True,
) -> PaymentOrderService:
    """Wire a PaymentOrderService with the tenant's numbering, journal
    names and approval token settings."""
    return PaymentOrderService(
        session,
        identity,
        build_token_service(config, clock),
        dispatcher=dispatcher,
        activity_recorder=activity_recorder,
        clock=clock,
        auto_commit=auto_commit,
        form_prefix=config.payment_order.form_prefix,
        increment_width=config.payment_order.increment_width,
        journal_feature=config.journal.feature,
        account_payable_name=config.journal.account_payable,
        down_payment_name=config.journal.down_payment,
        tenant=config.tenant,
    )
