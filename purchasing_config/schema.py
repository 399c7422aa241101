"""
PurchasingConfig schema.

Typed, frozen view of a tenant's configuration set.  YAML files under
``purchasing_config/sets/`` are parsed into these types by the loader and
handed to the kernel through ``purchasing_config.bridges``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentOrderSettings:
    """Numbering and text limits of purchase payment order forms."""

    form_prefix: str = "PP"
    increment_width: int = 3


@dataclass(frozen=True)
class JournalSettings:
    """Names of the setting journal rows the balance check resolves."""

    feature: str = "purchase"
    account_payable: str = "account payable"
    down_payment: str = "down payment"


@dataclass(frozen=True)
class ApprovalTokenSettings:
    secret: str
    ttl_seconds: int = 7 * 24 * 3600
    algorithm: str = "HS256"

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self.ttl_seconds)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PurchasingConfig:
    """A loaded, validated configuration set.

    ``checksum`` is computed over the parsed YAML, before any environment
    override is applied, so it identifies the reviewed source file.
    """

    config_id: str
    version: int
    tenant: str
    payment_order: PaymentOrderSettings
    journal: JournalSettings
    approval_token: ApprovalTokenSettings
    checksum: str = ""
