"""Pending per-row edits for the employee payroll grid.

Edits accumulate in memory, keyed by employee, until the row is saved or
cancelled. While a row is dirty its pending values are shown in place of
the persisted ones. Nothing here is persisted until ``save_row``, which
first checks the month and the editing role's access.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable
from uuid import UUID

from payroll_signoff.models import (
    EMPLOYEE_EDITABLE_FIELDS,
    PAYROLL_EDITABLE_FIELDS,
    Employee,
    MonthlyPayroll,
    PayrollCycle,
)
from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.errors import FieldAccessDeniedError, PayrollPreconditionError
from payroll_signoff.services.month_progression import find_cycle, is_month_accessible
from payroll_signoff.services.state_machine import HrSigned, derive_status, is_finalized
from payroll_signoff.services.store import PayrollStore
from payroll_signoff.services.types import LockRole, SaveAllResult

logger = logging.getLogger(__name__)

NO_SELECTION = "Nil"

# (type field, amount field, error key) checked before every save
TYPE_AMOUNT_RULES = (
    ("deduction_type", "deduction_amount", "deduction"),
    ("addition_type", "addition_amount", "addition"),
    ("incentive_type", "incentive_amount", "incentive"),
)

DECIMAL_FIELDS = frozenset({
    "current_salary",
    "employee_salary",
    "deduction_amount",
    "addition_amount",
    "incentive_amount",
    "pf_amount",
    "esi_amount",
})

DATE_FIELDS = frozenset({"joining_date", "end_date"})


def to_amount(value: Any) -> Decimal:
    """Parse an amount the way the grid does: blank or garbage is zero."""
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def _coerce(field_name: str, value: Any) -> Any:
    if field_name in DECIMAL_FIELDS:
        return to_amount(value)
    if field_name in DATE_FIELDS and isinstance(value, str):
        return date.fromisoformat(value) if value else None
    return value


@dataclass
class EmployeeRow:
    """An employee with their payroll row for the month being edited."""

    employee: Employee
    payroll: MonthlyPayroll | None = None

    @property
    def id(self) -> UUID:
        return self.employee.id


@dataclass
class PendingEdit:
    """Unsaved changes for one employee, split by target table."""

    employee: dict[str, Any] = field(default_factory=dict)
    payroll: dict[str, Any] = field(default_factory=dict)
    is_dirty: bool = False


class RowSaveOutcome(str, Enum):
    NOTHING_TO_SAVE = "nothing_to_save"
    SAVED = "saved"
    INVALID = "invalid"
    REFUSED = "refused"
    FAILED = "failed"


class EmployeeEditBuffer:
    """Map of employee id to pending edits, owned by one page controller.

    ``role`` is the editing role; ``None`` edits as an admin, who may touch
    every editable field and ignores per-employee locks. Nobody may edit a
    month that is finalized or not open yet.
    """

    def __init__(
        self,
        store: PayrollStore,
        month: PayrollMonth,
        start: PayrollMonth,
        role: LockRole | None = None,
    ):
        self.store = store
        self.month = month
        self.start = start
        self.role = role
        self.edits: dict[UUID, PendingEdit] = {}
        self.cycle: PayrollCycle | None = None
        self.editable_fields: frozenset[str] | None = None
        self.last_error: str | None = None

    # ----- access -----

    async def check_editable(self) -> PayrollCycle | None:
        """Resolve the month's cycle, refusing months that cannot be edited.

        Raises PayrollPreconditionError when the month is not open yet, is
        finalized, or is already signed off by the buffer's role. Also
        loads the fields the role may edit.
        """
        cycles = await self.store.list_cycles()
        cycle = find_cycle(cycles, self.month)
        if is_finalized(cycle):
            raise PayrollPreconditionError(
                f"Payroll {self.month} is finalized; edits are not allowed"
            )
        if cycle is None and not is_month_accessible(self.month, cycles, self.start):
            raise PayrollPreconditionError(f"Payroll {self.month} is not open for editing")
        if self.role is LockRole.HR and isinstance(derive_status(cycle), HrSigned):
            raise PayrollPreconditionError(
                f"HR has signed off payroll {self.month}; HR edits are closed"
            )

        if self.role is not None:
            self.editable_fields = await self.store.editable_fields(self.role)
        self.cycle = cycle
        return cycle

    async def _refusal(self, row: EmployeeRow, edit: PendingEdit) -> str | None:
        if self.role is None:
            return None
        if self.editable_fields is not None:
            denied = sorted((set(edit.employee) | set(edit.payroll)) - self.editable_fields)
            if denied:
                return f"{self.role.label} may not edit: {', '.join(denied)}"
        if self.cycle is not None:
            lock = await self.store.get_lock(row.id, self.cycle.id)
            if lock is not None:
                locked = lock.hr_locked if self.role is LockRole.HR else lock.finance_locked
                if locked:
                    return f"Employee is locked by {self.role.label}"
        return None

    # ----- editing -----

    def update_field(
        self,
        employee_id: UUID,
        field_name: str,
        value: Any,
        is_payroll_field: bool,
    ) -> None:
        """Record a pending value.

        Raises ValueError for a field the grid never edits, and
        FieldAccessDeniedError once ``check_editable`` has loaded the
        role's fields and this one is not among them.
        """
        allowed = PAYROLL_EDITABLE_FIELDS if is_payroll_field else EMPLOYEE_EDITABLE_FIELDS
        if field_name not in allowed:
            raise ValueError(f"Field {field_name!r} is not editable")
        if self.editable_fields is not None and field_name not in self.editable_fields:
            raise FieldAccessDeniedError(field_name, self.role)

        edit = self.edits.setdefault(employee_id, PendingEdit())
        target = edit.payroll if is_payroll_field else edit.employee
        target[field_name] = value
        edit.is_dirty = True

    def cancel_row(self, employee_id: UUID) -> None:
        self.edits.pop(employee_id, None)

    def is_dirty(self, employee_id: UUID) -> bool:
        edit = self.edits.get(employee_id)
        return edit is not None and edit.is_dirty

    @property
    def dirty_employee_ids(self) -> list[UUID]:
        return [employee_id for employee_id, edit in self.edits.items() if edit.is_dirty]

    def get_display_value(self, row: EmployeeRow, field_name: str, is_payroll_field: bool) -> Any:
        """Pending value while the row is dirty, else the persisted one."""
        edit = self.edits.get(row.id)
        if edit is not None and edit.is_dirty:
            pending = edit.payroll if is_payroll_field else edit.employee
            if field_name in pending:
                return pending[field_name]
        if is_payroll_field:
            return getattr(row.payroll, field_name, None) if row.payroll is not None else None
        return getattr(row.employee, field_name, None)

    # ----- validation -----

    def validate_row(self, row: EmployeeRow) -> dict[str, str]:
        """Type/amount consistency errors for a row, keyed by rule.

        When a deduction, addition or incentive type is chosen (anything
        other than blank or "Nil"), its amount must be greater than zero.
        """
        errors: dict[str, str] = {}
        for type_field, amount_field, key in TYPE_AMOUNT_RULES:
            selected = self.get_display_value(row, type_field, True)
            if not selected or selected == NO_SELECTION:
                continue
            if to_amount(self.get_display_value(row, amount_field, True)) <= 0:
                errors[key] = (
                    f"{key.capitalize()} amount must be greater than 0 "
                    f'when "{selected}" is selected'
                )
        return errors

    # ----- saving -----

    async def save_row(self, row: EmployeeRow) -> RowSaveOutcome:
        """Write a dirty row's pending edits and clear its buffer entry.

        Invalid or refused rows are kept without any write. On a backend
        error the buffer entry is kept so the user can retry. Raises
        PayrollPreconditionError when the month cannot be edited.
        """
        await self.check_editable()
        return await self._save_row(row)

    async def _save_row(self, row: EmployeeRow) -> RowSaveOutcome:
        self.last_error = None
        edit = self.edits.get(row.id)
        if edit is None or not edit.is_dirty:
            return RowSaveOutcome.NOTHING_TO_SAVE

        errors = self.validate_row(row)
        if errors:
            self.last_error = "Cannot save: " + "; ".join(errors.values())
            logger.warning("Refusing save for %s: %s", row.employee.employee_id, errors)
            return RowSaveOutcome.INVALID

        employee_values = {k: _coerce(k, v) for k, v in edit.employee.items()}
        payroll_values = {k: _coerce(k, v) for k, v in edit.payroll.items()}
        try:
            refusal = await self._refusal(row, edit)
            if refusal is not None:
                self.last_error = refusal
                logger.warning("Refusing save for %s: %s", row.employee.employee_id, refusal)
                return RowSaveOutcome.REFUSED

            if employee_values:
                row.employee = await self.store.update_employee(row.id, employee_values)

            if row.payroll is not None:
                if payroll_values:
                    row.payroll = await self.store.update_payroll_row(
                        row.payroll.id, payroll_values
                    )
            else:
                row.payroll = await self.store.insert_payroll_row(
                    row.id, self.month, payroll_values
                )
        except Exception as exc:
            logger.exception("Error saving row for %s", row.employee.employee_id)
            self.last_error = f"Failed to save changes: {exc}"
            return RowSaveOutcome.FAILED

        self.edits.pop(row.id, None)
        return RowSaveOutcome.SAVED

    async def save_all(self, rows: Iterable[EmployeeRow]) -> SaveAllResult:
        """Save every dirty row in turn.

        The month is checked once up front. Rows that fail validation, are
        refused by field access or a lock, or fail the backend write are
        counted as failed and left in the buffer; the rest of the batch
        continues.
        """
        await self.check_editable()
        by_id = {row.id: row for row in rows}
        saved = 0
        failed = 0
        errors: dict[Any, dict[str, str]] = {}

        for employee_id in self.dirty_employee_ids:
            row = by_id.get(employee_id)
            if row is None:
                continue

            row_errors = self.validate_row(row)
            if row_errors:
                logger.warning(
                    "Skipping save for %s due to validation errors", row.employee.employee_id
                )
                errors[employee_id] = row_errors
                failed += 1
                continue

            outcome = await self._save_row(row)
            if outcome is RowSaveOutcome.SAVED:
                saved += 1
            elif outcome is RowSaveOutcome.REFUSED:
                errors[employee_id] = {"access": self.last_error}
                failed += 1
            elif outcome is RowSaveOutcome.FAILED:
                errors[employee_id] = {"save": self.last_error or "Failed to save changes"}
                failed += 1

        logger.info("Bulk save for %s: %d saved, %d failed", self.month.label, saved, failed)
        return SaveAllResult(saved=saved, failed=failed, errors=errors)

    async def load_rows(self, employee_ids: Iterable[UUID] | None = None) -> list[EmployeeRow]:
        """Active employees with their payroll row for this month."""
        wanted = set(employee_ids) if employee_ids is not None else None
        rows = await self.store.list_active_employees_with_payroll(self.month)
        return [
            EmployeeRow(employee=employee, payroll=payroll)
            for employee, payroll in rows
            if wanted is None or employee.id in wanted
        ]
