"""SQLAlchemy ORM models for the purchasing kernel."""

from purchasing_kernel.models.accounting import (
    ChartOfAccount,
    ChartOfAccountType,
    SettingJournal,
)
from purchasing_kernel.models.activity import UserActivity
from purchasing_kernel.models.form import Form
from purchasing_kernel.models.purchase import (
    REFERENCEABLE_MODELS,
    PurchaseDownPayment,
    PurchaseInvoice,
    PurchasePaymentOrder,
    PurchasePaymentOrderDetail,
    PurchaseReturn,
    Referenceable,
    Supplier,
)

__all__ = [
    "ChartOfAccount",
    "ChartOfAccountType",
    "SettingJournal",
    "UserActivity",
    "Form",
    "REFERENCEABLE_MODELS",
    "PurchaseDownPayment",
    "PurchaseInvoice",
    "PurchasePaymentOrder",
    "PurchasePaymentOrderDetail",
    "PurchaseReturn",
    "Referenceable",
    "Supplier",
]
