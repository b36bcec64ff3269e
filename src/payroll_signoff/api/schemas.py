"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from payroll_signoff.services.types import LockRole


# ============================================================================
# Payroll month schemas
# ============================================================================


class MonthRef(BaseModel):
    """A calendar month."""

    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1900)
    label: str | None = None


class PayrollCycleResponse(BaseModel):
    """Schema for payroll cycle response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    month: int
    year: int
    status: str
    effective_status: str | None = None
    hr_signoff_by: UUID | None = None
    hr_signoff_at: datetime | None = None
    finance_signoff_by: UUID | None = None
    finance_signoff_at: datetime | None = None
    reverted_by: UUID | None = None
    reverted_at: datetime | None = None
    reversion_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class PayrollMonthsResponse(BaseModel):
    """Cycle history with the derived active month."""

    company_start: MonthRef
    active: MonthRef
    cycles: list[PayrollCycleResponse]


class MonthViewResponse(BaseModel):
    """Navigation state for one selected month."""

    selected: MonthRef
    active: MonthRef
    status: str
    is_viewing_active: bool
    is_viewing_finalized: bool
    is_accessible: bool
    can_go_prev: bool
    can_go_next: bool
    cycle: PayrollCycleResponse | None = None


class PayrollCycleCreate(BaseModel):
    """Schema for opening (or fetching) a month's cycle."""

    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1900)


# ============================================================================
# Lock schemas
# ============================================================================


class LockStatsResponse(BaseModel):
    """Aggregate lock counts for a cycle."""

    total_employees: int
    hr_locked_count: int
    finance_locked_count: int
    can_hr_signoff: bool
    can_finance_signoff: bool


class EmployeeLockResponse(BaseModel):
    """Schema for an employee lock row."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    payroll_id: UUID
    hr_locked: bool
    hr_locked_by: UUID | None = None
    hr_locked_at: datetime | None = None
    finance_locked: bool
    finance_locked_by: UUID | None = None
    finance_locked_at: datetime | None = None


class ToggleLockRequest(BaseModel):
    """Flip one employee's lock for a role."""

    role: LockRole
    currently_locked: bool


class ToggleLockResponse(BaseModel):
    success: bool
    employee_id: UUID
    role: LockRole
    locked: bool


class BulkLockRequest(BaseModel):
    """Lock or unlock a set of employees; defaults to every active employee."""

    role: LockRole
    lock: bool
    employee_ids: list[UUID] | None = None


class BulkLockResponse(BaseModel):
    success: int
    skipped: int
    failed: int
    total: int


class RevertRequest(BaseModel):
    reason: str = Field(min_length=1)


class SignoffResponse(BaseModel):
    """Schema for sign-off and revert responses."""

    cycle: PayrollCycleResponse
    message: str | None = None


# ============================================================================
# Lock requirement schemas
# ============================================================================


class LockRequirementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    field_name: str
    display_name: str
    required_for_hr_lock: bool
    required_for_finance_lock: bool


class LockRequirementUpdate(BaseModel):
    field_name: str
    required_for_hr_lock: bool
    required_for_finance_lock: bool
    display_name: str | None = None


class FieldAccessResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    field_name: str
    display_name: str
    hr_can_edit: bool
    finance_can_edit: bool


class FieldAccessUpdate(BaseModel):
    field_name: str
    hr_can_edit: bool
    finance_can_edit: bool
    display_name: str | None = None


# ============================================================================
# Employee edit schemas
# ============================================================================


class FieldEdit(BaseModel):
    """One pending cell change."""

    employee_id: UUID
    field: str
    value: Any = None
    is_payroll_field: bool = False


class SaveEditsRequest(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=1900)
    edits: list[FieldEdit]


class SaveEditsResponse(BaseModel):
    saved: int
    failed: int
    errors: dict[str, dict[str, str]] = Field(default_factory=dict)


# ============================================================================
# Report schemas
# ============================================================================


class SnapshotResponse(BaseModel):
    """Schema for a finalized month's snapshot."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    month: int
    year: int
    report_name: str
    report_type: str
    total_employees: int
    total_gross_salary: Decimal
    total_deductions: Decimal
    total_net_salary: Decimal
    generated_by: UUID | None = None
    generated_at: datetime
    is_finalized: bool
    finalized_at: datetime | None = None
    finance_approved_by: UUID | None = None
    report_data: list[dict[str, Any]]


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
