"""
ApprovalTokenService -- signed, expiring capability tokens for e-mail links.

Responsibility:
    Issues and verifies the token embedded in an approval request e-mail.
    The token carries ``{paymentOrderId, userId}`` and lets the holder
    reject that order without a session, as that user.

Architecture position:
    Kernel > Services.  PaymentOrderService issues a token when it
    dispatches an approval request and verifies it in reject_by_token().

Invariants enforced:
    - Tokens are HS256-signed with the tenant's approval token secret.
    - A token is only accepted for its own purpose; session or reset
      tokens signed with the same secret are refused.
    - Expiry is judged against the injected Clock, so issuing and
      verifying agree on what "now" is.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from uuid import UUID

import jwt
from jwt.exceptions import PyJWTError

from purchasing_kernel.domain.clock import Clock, SystemClock
from purchasing_kernel.exceptions import InvalidApprovalTokenError
from purchasing_kernel.logging_config import get_logger

logger = get_logger("services.token")

TOKEN_PURPOSE = "payment_order_approval"


@dataclass(frozen=True)
class ApprovalTokenPayload:
    payment_order_id: UUID
    user_id: UUID


class ApprovalTokenService:
    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta = timedelta(days=7),
        algorithm: str = "HS256",
        clock: Clock | None = None,
    ):
        if not secret:
            raise ValueError("approval token secret must not be empty")
        self._secret = secret
        self._ttl = ttl
        self._algorithm = algorithm
        self._clock = clock or SystemClock()

    def issue(self, payment_order_id: UUID, user_id: UUID) -> str:
        now = self._clock.now()
        claims: dict[str, Any] = {
            "paymentOrderId": str(payment_order_id),
            "userId": str(user_id),
            "purpose": TOKEN_PURPOSE,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> ApprovalTokenPayload:
        """Decode a token or raise InvalidApprovalTokenError."""
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat"], "verify_exp": False, "verify_iat": False},
            )
        except PyJWTError as exc:
            logger.warning("approval_token_rejected", extra={"reason": type(exc).__name__})
            raise InvalidApprovalTokenError("signature or format invalid") from exc

        if claims.get("purpose") != TOKEN_PURPOSE:
            raise InvalidApprovalTokenError("wrong purpose")
        if claims["exp"] <= self._clock.now().timestamp():
            logger.warning("approval_token_rejected", extra={"reason": "expired"})
            raise InvalidApprovalTokenError("expired")

        try:
            return ApprovalTokenPayload(
                payment_order_id=UUID(claims["paymentOrderId"]),
                user_id=UUID(claims["userId"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidApprovalTokenError("payload incomplete") from exc
