"""Payroll sign-off services."""

from payroll_signoff.services.edit_buffer import EmployeeEditBuffer, EmployeeRow, RowSaveOutcome
from payroll_signoff.services.errors import (
    EligibilityCheckUnavailable,
    FieldAccessDeniedError,
    InvalidTransitionError,
    LockValidationError,
    PayrollError,
    PayrollNotFoundError,
    PayrollPreconditionError,
)
from payroll_signoff.services.finalization_service import PayrollFinalizationService
from payroll_signoff.services.month_progression import PayrollMonthNavigator
from payroll_signoff.services.snapshot_service import SnapshotService
from payroll_signoff.services.state_machine import CycleStateMachine, CycleStatus
from payroll_signoff.services.store import PayrollStore
from payroll_signoff.services.types import BulkLockResult, LockRole, LockStats

__all__ = [
    "EmployeeEditBuffer",
    "EmployeeRow",
    "RowSaveOutcome",
    "EligibilityCheckUnavailable",
    "FieldAccessDeniedError",
    "InvalidTransitionError",
    "LockValidationError",
    "PayrollError",
    "PayrollNotFoundError",
    "PayrollPreconditionError",
    "PayrollFinalizationService",
    "PayrollMonthNavigator",
    "SnapshotService",
    "CycleStateMachine",
    "CycleStatus",
    "PayrollStore",
    "BulkLockResult",
    "LockRole",
    "LockStats",
]
