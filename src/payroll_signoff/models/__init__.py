"""ORM models."""

from payroll_signoff.models.base import Base, TimestampMixin, UpdatedAtMixin, utcnow
from payroll_signoff.models.employee import (
    EMPLOYEE_EDITABLE_FIELDS,
    FINANCE_DEFAULT_FIELDS,
    HR_DEFAULT_FIELDS,
    PAYROLL_EDITABLE_FIELDS,
    Employee,
    MonthlyPayroll,
)
from payroll_signoff.models.payroll import (
    EmployeePayrollLock,
    FieldAccessSetting,
    PayrollAuditLog,
    PayrollCycle,
    PayrollLockRequirement,
    PayrollReport,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "UpdatedAtMixin",
    "utcnow",
    "EMPLOYEE_EDITABLE_FIELDS",
    "FINANCE_DEFAULT_FIELDS",
    "HR_DEFAULT_FIELDS",
    "PAYROLL_EDITABLE_FIELDS",
    "Employee",
    "MonthlyPayroll",
    "EmployeePayrollLock",
    "FieldAccessSetting",
    "PayrollAuditLog",
    "PayrollCycle",
    "PayrollLockRequirement",
    "PayrollReport",
]
