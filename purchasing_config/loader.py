"""
Configuration Loader (``purchasing_config.loader``).

Responsibility
--------------
Loads a configuration set YAML file and parses it into the frozen
dataclasses of ``purchasing_config.schema``.  Runtime callers go through
``purchasing_config.get_active_config()``; this module is its tooling.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError`` from ``validate_config``.
"""

from __future__ import annotations

import hashlib
import json
import re
from pathlib import Path
from typing import Any

import yaml

from purchasing_config.schema import (
    ApprovalTokenSettings,
    JournalSettings,
    PaymentOrderSettings,
    PurchasingConfig,
)

SUPPORTED_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})

_PREFIX_PATTERN = re.compile(r"^[A-Z]{1,8}$")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_payment_order(data: dict[str, Any]) -> PaymentOrderSettings:
    return PaymentOrderSettings(
        form_prefix=data.get("form_prefix", "PP"),
        increment_width=int(data.get("increment_width", 3)),
    )


def parse_journal(data: dict[str, Any]) -> JournalSettings:
    return JournalSettings(
        feature=data.get("feature", "purchase"),
        account_payable=data.get("account_payable", "account payable"),
        down_payment=data.get("down_payment", "down payment"),
    )


def parse_approval_token(data: dict[str, Any]) -> ApprovalTokenSettings:
    return ApprovalTokenSettings(
        secret=data["secret"],
        ttl_seconds=int(data.get("ttl_seconds", 7 * 24 * 3600)),
        algorithm=data.get("algorithm", "HS256"),
    )


def parse_config(data: dict[str, Any]) -> PurchasingConfig:
    """Parse a whole configuration set mapping."""
    return PurchasingConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        tenant=data["tenant"],
        payment_order=parse_payment_order(data.get("payment_order") or {}),
        journal=parse_journal(data.get("journal") or {}),
        approval_token=parse_approval_token(data["approval_token"]),
        checksum=compute_checksum(data),
    )


def validate_config(config: PurchasingConfig) -> list[str]:
    """Return every problem found; an empty list means valid."""
    errors: list[str] = []
    if not _PREFIX_PATTERN.match(config.payment_order.form_prefix):
        errors.append(
            f"payment_order.form_prefix must be 1-8 upper-case letters, "
            f"got {config.payment_order.form_prefix!r}"
        )
    if not 1 <= config.payment_order.increment_width <= 9:
        errors.append("payment_order.increment_width must be between 1 and 9")
    for name in ("feature", "account_payable", "down_payment"):
        if not getattr(config.journal, name):
            errors.append(f"journal.{name} must not be empty")
    if not config.approval_token.secret:
        errors.append("approval_token.secret must not be empty")
    if config.approval_token.ttl_seconds <= 0:
        errors.append("approval_token.ttl_seconds must be positive")
    if config.approval_token.algorithm not in SUPPORTED_ALGORITHMS:
        errors.append(
            f"approval_token.algorithm must be one of {sorted(SUPPORTED_ALGORITHMS)}"
        )
    return errors
