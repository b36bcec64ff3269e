"""Employee master data and per-month payroll rows."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_signoff.models.base import Base, UpdatedAtMixin


# Fields the edit buffer may write on each table
EMPLOYEE_EDITABLE_FIELDS = frozenset({
    "employee_name",
    "employment_status",
    "pf_applicable",
    "esi_applicable",
    "designation",
    "department",
    "joining_date",
    "end_date",
    "current_salary",
    "bank_account_number",
    "bank_name",
    "bank_ifsc_code",
    "payment_mode",
    "is_active",
})

PAYROLL_EDITABLE_FIELDS = frozenset({
    "employee_salary",
    "deduction_type",
    "deduction_amount",
    "addition_type",
    "addition_amount",
    "incentive_type",
    "incentive_amount",
    "pf_amount",
    "esi_amount",
    "hr_remark",
    "salary_processing_required",
    "payment_status",
    "remarks",
})

# Default role split when a field has no field_access_setting row
FINANCE_DEFAULT_FIELDS = frozenset({
    "bank_account_number",
    "bank_name",
    "bank_ifsc_code",
    "payment_mode",
    "pf_amount",
    "esi_amount",
    "payment_status",
    "remarks",
})

HR_DEFAULT_FIELDS = (EMPLOYEE_EDITABLE_FIELDS | PAYROLL_EDITABLE_FIELDS) - FINANCE_DEFAULT_FIELDS


class Employee(Base, UpdatedAtMixin):
    """An employee on the company payroll."""

    __tablename__ = "employee"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    employee_name: Mapped[str] = mapped_column(String, nullable=False)
    employment_status: Mapped[str] = mapped_column(String, nullable=False, default="Employed")
    pf_applicable: Mapped[str] = mapped_column(String, nullable=False, default="No")
    esi_applicable: Mapped[str] = mapped_column(String, nullable=False, default="No")
    designation: Mapped[str | None] = mapped_column(String)
    department: Mapped[str | None] = mapped_column(String)
    joining_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    current_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    bank_account_number: Mapped[str | None] = mapped_column(String)
    bank_name: Mapped[str | None] = mapped_column(String)
    bank_ifsc_code: Mapped[str | None] = mapped_column(String)
    payment_mode: Mapped[str] = mapped_column(String, nullable=False, default="INR Account")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[UUID | None] = mapped_column()

    __table_args__ = (
        CheckConstraint(
            "employment_status IN ('Employed', 'Notice Period', 'Resigned', 'Terminated')",
            name="employee_employment_status_check",
        ),
        CheckConstraint(
            "payment_mode IN ('INR Account', 'AUD Account')",
            name="employee_payment_mode_check",
        ),
    )

    payrolls: Mapped[list[MonthlyPayroll]] = relationship(back_populates="employee")


class MonthlyPayroll(Base, UpdatedAtMixin):
    """Payroll fields for one employee in one calendar month."""

    __tablename__ = "monthly_payroll"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    employee_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    deduction_type: Mapped[str] = mapped_column(String, nullable=False, default="Nil")
    deduction_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    addition_type: Mapped[str] = mapped_column(String, nullable=False, default="Nil")
    addition_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    incentive_type: Mapped[str] = mapped_column(String, nullable=False, default="Nil")
    incentive_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    pf_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    esi_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    hr_remark: Mapped[str] = mapped_column(String, nullable=False, default="Nil")
    salary_processing_required: Mapped[str] = mapped_column(String, nullable=False, default="Yes")
    payment_status: Mapped[str] = mapped_column(String, nullable=False, default="Nil")
    remarks: Mapped[str | None] = mapped_column(Text)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "month", "year", name="monthly_payroll_employee_month_unique"),
        CheckConstraint("month BETWEEN 1 AND 12", name="monthly_payroll_month_check"),
        CheckConstraint(
            "payment_status IN ('Nil', 'Paid', 'Not Paid')",
            name="monthly_payroll_payment_status_check",
        ),
    )

    employee: Mapped[Employee] = relationship(back_populates="payrolls")

    def compute_net_pay(self) -> Decimal:
        """Salary plus additions and incentives, less deductions and statutory amounts."""
        return (
            Decimal(self.employee_salary or 0)
            + Decimal(self.addition_amount or 0)
            + Decimal(self.incentive_amount or 0)
            - Decimal(self.deduction_amount or 0)
            - Decimal(self.pf_amount or 0)
            - Decimal(self.esi_amount or 0)
        )
