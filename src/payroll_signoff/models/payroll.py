"""Payroll cycle, per-employee lock, report and audit models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_signoff.models.base import Base, TimestampMixin, UpdatedAtMixin, utcnow


# ===== Monthly cycle =====


class PayrollCycle(Base, UpdatedAtMixin):
    """One payroll month and its two-stage sign-off state.

    ``status`` is written on every transition, but the sign-off stamps are
    authoritative: a cycle is finalized iff ``finance_signoff_at`` is set.
    """

    __tablename__ = "payroll_cycle"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    hr_signoff_by: Mapped[UUID | None] = mapped_column()
    hr_signoff_at: Mapped[datetime | None] = mapped_column()
    finance_signoff_by: Mapped[UUID | None] = mapped_column()
    finance_signoff_at: Mapped[datetime | None] = mapped_column()
    reverted_by: Mapped[UUID | None] = mapped_column()
    reverted_at: Mapped[datetime | None] = mapped_column()
    reversion_reason: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("month", "year", name="payroll_cycle_month_year_unique"),
        CheckConstraint("month BETWEEN 1 AND 12", name="payroll_cycle_month_check"),
        CheckConstraint(
            "status IN ('pending', 'hr_signed', 'finalized')",
            name="payroll_cycle_status_check",
        ),
    )

    locks: Mapped[list[EmployeePayrollLock]] = relationship(back_populates="cycle")


class EmployeePayrollLock(Base, UpdatedAtMixin):
    """HR and Finance lock flags for one employee in one cycle.

    Rows are created on the first lock and never deleted; unlocking clears
    the flag and its actor fields.
    """

    __tablename__ = "employee_payroll_lock"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    payroll_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_cycle.id", ondelete="CASCADE"),
        nullable=False,
    )
    hr_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hr_locked_by: Mapped[UUID | None] = mapped_column()
    hr_locked_at: Mapped[datetime | None] = mapped_column()
    finance_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    finance_locked_by: Mapped[UUID | None] = mapped_column()
    finance_locked_at: Mapped[datetime | None] = mapped_column()

    __table_args__ = (
        UniqueConstraint("employee_id", "payroll_id", name="employee_payroll_lock_unique"),
    )

    cycle: Mapped[PayrollCycle] = relationship(back_populates="locks")


class PayrollLockRequirement(Base, UpdatedAtMixin):
    """A field that must be filled in before an employee can be locked."""

    __tablename__ = "payroll_lock_requirement"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    field_name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    required_for_hr_lock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    required_for_finance_lock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[UUID | None] = mapped_column()


class FieldAccessSetting(Base, UpdatedAtMixin):
    """Which roles may edit a grid field. Admins may edit every field."""

    __tablename__ = "field_access_setting"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    field_name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String, nullable=False)
    hr_can_edit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    finance_can_edit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    field_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


# ===== Reports & audit =====


class PayrollReport(Base, UpdatedAtMixin):
    """Stored report; ``report_type='snapshot'`` rows freeze a finalized month."""

    __tablename__ = "payroll_report"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    report_name: Mapped[str] = mapped_column(String, nullable=False)
    report_type: Mapped[str] = mapped_column(String, nullable=False)
    total_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gross_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    total_net_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    generated_by: Mapped[UUID | None] = mapped_column()
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    is_finalized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    finalized_at: Mapped[datetime | None] = mapped_column()
    finance_approved_by: Mapped[UUID | None] = mapped_column()
    report_data: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint(
            "month", "year", "report_type", name="payroll_report_month_year_type_unique"
        ),
    )


class PayrollAuditLog(Base, TimestampMixin):
    """Append-only record of payroll actions."""

    __tablename__ = "payroll_audit_log"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_id: Mapped[UUID | None] = mapped_column()
    employee_id: Mapped[UUID | None] = mapped_column()
    action_type: Mapped[str] = mapped_column(String, nullable=False)
    performed_by: Mapped[UUID | None] = mapped_column()
    performed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON)
