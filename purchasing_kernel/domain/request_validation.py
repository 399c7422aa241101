"""
Request validation (``purchasing_kernel.domain.request_validation``).

Responsibility
--------------
Shape checks for the camelCase mappings the HTTP layer hands to the
kernel, and conversion of a valid mapping into a
``CreatePaymentOrderCommand``.  Every message is rendered as
``"<field path>" <rule>``, the format existing clients match on.

Architecture position
---------------------
**Kernel domain layer** -- pure.  Returns ``ValidationResult``; the
service layer turns failures into ``exceptions.ValidationError``.

Business rules (existence, availability, totals) are not checked here.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any
from uuid import UUID

from purchasing_kernel.domain.amounts import to_decimal
from purchasing_kernel.domain.dtos import (
    CreatePaymentOrderCommand,
    DeclaredTotals,
    FieldError,
    OtherLine,
    ReferenceLine,
    ValidationResult,
)

MAX_TEXT_LENGTH = 255
MIN_LINE_AMOUNT = Decimal("1")

REQUIRED_FIELDS: tuple[str, ...] = (
    "paymentType",
    "supplierId",
    "date",
    "requestApprovalTo",
    "invoices",
    "totalInvoiceAmount",
    "totalDownPaymentAmount",
    "totalReturnAmount",
    "totalOtherAmount",
    "totalAmount",
)

TOTAL_FIELDS: tuple[str, ...] = REQUIRED_FIELDS[5:]


def _err(code: str, path: str, rule: str) -> FieldError:
    return FieldError(code=code, message=f'"{path}" {rule}', field=path)


def _required(path: str) -> FieldError:
    return _err("any.required", path, "is required")


def parse_uuid(value: Any) -> UUID | None:
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str):
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


def parse_date(value: Any) -> dt.date | None:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return dt.datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _check_amount(path: str, value: Any, minimum: Decimal | None) -> list[FieldError]:
    if value is None:
        return [_required(path)]
    amount = to_decimal(value)
    if amount is None:
        return [_err("number.base", path, "must be a number")]
    if minimum is not None and amount < minimum:
        return [_err("number.min", path, f"must be greater than or equal to {minimum}")]
    return []


def _check_uuid(path: str, value: Any) -> list[FieldError]:
    if value is None:
        return [_required(path)]
    if parse_uuid(value) is None:
        return [_err("string.guid", path, "must be a valid GUID")]
    return []


def _check_lines(
    name: str,
    lines: Any,
    id_key: str,
    *,
    min_items: int = 0,
) -> list[FieldError]:
    if not isinstance(lines, Sequence) or isinstance(lines, (str, bytes)):
        return [_err("array.base", name, "must be an array")]
    if len(lines) < min_items:
        return [_err("array.min", name, f"must contain at least {min_items} items")]

    errors: list[FieldError] = []
    for index, line in enumerate(lines):
        prefix = f"{name}[{index}]"
        if not isinstance(line, Mapping):
            errors.append(_err("object.base", prefix, "must be of type object"))
            continue
        errors.extend(_check_uuid(f"{prefix}.{id_key}", line.get(id_key)))
        errors.extend(_check_amount(f"{prefix}.amount", line.get("amount"), MIN_LINE_AMOUNT))
        if id_key == "coaId":
            allocation_id = line.get("allocationId")
            if allocation_id is not None:
                errors.extend(_check_uuid(f"{prefix}.allocationId", allocation_id))
            notes = line.get("notes")
            if notes is not None and not isinstance(notes, str):
                errors.append(_err("string.base", f"{prefix}.notes", "must be a string"))
    return errors


def validate_create_request(payload: Mapping[str, Any]) -> ValidationResult:
    """Collect every shape error of a create request, in field order."""
    errors: list[FieldError] = [
        _required(name) for name in REQUIRED_FIELDS if payload.get(name) is None
    ]
    if errors:
        return ValidationResult.failure(*errors)

    if not isinstance(payload["paymentType"], str) or not payload["paymentType"].strip():
        errors.append(_err("string.base", "paymentType", "must be a string"))
    errors.extend(_check_uuid("supplierId", payload["supplierId"]))
    if parse_date(payload["date"]) is None:
        errors.append(_err("date.base", "date", "must be a valid date"))
    errors.extend(_check_uuid("requestApprovalTo", payload["requestApprovalTo"]))

    supplier_name = payload.get("supplierName")
    if supplier_name is not None and not isinstance(supplier_name, str):
        errors.append(_err("string.base", "supplierName", "must be a string"))
    notes = payload.get("notes")
    if notes is not None and not isinstance(notes, str):
        errors.append(_err("string.base", "notes", "must be a string"))

    errors.extend(_check_lines("invoices", payload["invoices"], "id", min_items=1))
    for name in ("downPayments", "returns"):
        if payload.get(name) is not None:
            errors.extend(_check_lines(name, payload[name], "id"))
    if payload.get("others") is not None:
        errors.extend(_check_lines("others", payload["others"], "coaId"))

    for name in TOTAL_FIELDS:
        errors.extend(_check_amount(name, payload[name], None))

    if errors:
        return ValidationResult.failure(*errors)
    return ValidationResult.success()


def build_create_command(payload: Mapping[str, Any]) -> CreatePaymentOrderCommand:
    """Convert a mapping that passed ``validate_create_request``."""

    def refs(name: str) -> tuple[ReferenceLine, ...]:
        return tuple(
            ReferenceLine(document_id=parse_uuid(line["id"]), amount=to_decimal(line["amount"]))
            for line in payload.get(name) or ()
        )

    others = tuple(
        OtherLine(
            chart_of_account_id=parse_uuid(line["coaId"]),
            amount=to_decimal(line["amount"]),
            notes=line.get("notes"),
            allocation_id=parse_uuid(line.get("allocationId")),
        )
        for line in payload.get("others") or ()
    )

    return CreatePaymentOrderCommand(
        payment_type=payload["paymentType"],
        supplier_id=parse_uuid(payload["supplierId"]),
        supplier_name=payload.get("supplierName"),
        date=parse_date(payload["date"]),
        notes=payload.get("notes"),
        request_approval_to=parse_uuid(payload["requestApprovalTo"]),
        invoices=refs("invoices"),
        down_payments=refs("downPayments"),
        returns=refs("returns"),
        others=others,
        totals=DeclaredTotals(
            invoice=to_decimal(payload["totalInvoiceAmount"]),
            down_payment=to_decimal(payload["totalDownPaymentAmount"]),
            return_=to_decimal(payload["totalReturnAmount"]),
            other=to_decimal(payload["totalOtherAmount"]),
            total=to_decimal(payload["totalAmount"]),
        ),
    )


def _check_text(name: str, value: str) -> ValidationResult:
    if len(value) > MAX_TEXT_LENGTH:
        return ValidationResult.failure(
            _err(
                "string.max",
                name,
                f"length must be less than or equal to {MAX_TEXT_LENGTH} characters long",
            )
        )
    return ValidationResult.success()


def normalize_notes(notes: str | None) -> tuple[str | None, ValidationResult]:
    """Trim notes and check the trimmed length."""
    if notes is None:
        return None, ValidationResult.success()
    trimmed = notes.strip()
    return trimmed, _check_text("notes", trimmed)


def validate_reason(reason: Any) -> tuple[str | None, ValidationResult]:
    """A rejection or cancellation reason: required, non-empty, <= 255."""
    if reason is None:
        return None, ValidationResult.failure(_required("reason"))
    if not isinstance(reason, str):
        return None, ValidationResult.failure(_err("string.base", "reason", "must be a string"))
    trimmed = reason.strip()
    if not trimmed:
        return None, ValidationResult.failure(
            _err("string.empty", "reason", "is not allowed to be empty")
        )
    return trimmed, _check_text("reason", trimmed)
