"""
Pure domain layer.

Value objects and rules with NO dependencies on the ORM, the database,
wall-clock time or other I/O.  Everything here is immutable and
deterministic.
"""

from purchasing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from purchasing_kernel.domain.dtos import (
    CreatePaymentOrderCommand,
    DeclaredTotals,
    FieldError,
    JournalAccounts,
    JournalCheckResult,
    JournalPosting,
    LineSide,
    OtherLine,
    OtherPosting,
    ReferenceLine,
    ReferenceType,
    ValidationResult,
)
from purchasing_kernel.domain.form_lifecycle import (
    FORM_WORKFLOW,
    ApprovalStatus,
    CancellationStatus,
    FormAction,
    FormState,
    form_state,
)
from purchasing_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "CreatePaymentOrderCommand",
    "DeclaredTotals",
    "FieldError",
    "JournalAccounts",
    "JournalCheckResult",
    "JournalPosting",
    "LineSide",
    "OtherLine",
    "OtherPosting",
    "ReferenceLine",
    "ReferenceType",
    "ValidationResult",
    "FORM_WORKFLOW",
    "ApprovalStatus",
    "CancellationStatus",
    "FormAction",
    "FormState",
    "form_state",
    "Guard",
    "Transition",
    "Workflow",
]
