"""Read-only selectors over the purchasing kernel's tables."""

from purchasing_kernel.selectors.base import BaseSelector
from purchasing_kernel.selectors.payment_order_selector import (
    PaymentOrderSelector,
    serialize_form,
)

__all__ = ["BaseSelector", "PaymentOrderSelector", "serialize_form"]
