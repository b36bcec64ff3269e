"""Persistence gateway for the payroll workflow.

Every public coroutine is one unit of work with its own session, so a
failure in one call never leaves another call's writes half-applied. The
services above this layer treat it as a remote collaborator: they decide
what to do with failures, this layer only reads and writes rows.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_signoff.database import session_scope
from payroll_signoff.models import (
    FINANCE_DEFAULT_FIELDS,
    HR_DEFAULT_FIELDS,
    Employee,
    EmployeePayrollLock,
    FieldAccessSetting,
    MonthlyPayroll,
    PayrollAuditLog,
    PayrollCycle,
    PayrollLockRequirement,
    PayrollReport,
)
from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.errors import EligibilityCheckUnavailable
from payroll_signoff.services.types import LockEligibility, LockRole, LockStats

logger = logging.getLogger(__name__)

# Insert defaults for a first payroll row, overridden by the edited values
PAYROLL_ROW_DEFAULTS: dict[str, Any] = {
    "deduction_type": "Nil",
    "deduction_amount": Decimal("0"),
    "addition_type": "Nil",
    "addition_amount": Decimal("0"),
    "incentive_type": "Nil",
    "incentive_amount": Decimal("0"),
    "pf_amount": Decimal("0"),
    "esi_amount": Decimal("0"),
    "hr_remark": "Nil",
    "salary_processing_required": "Yes",
    "payment_status": "Nil",
    "is_locked": False,
}


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


class PayrollStore:
    """SQLAlchemy-backed store for cycles, locks, reports and audit rows."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        eligibility_checks: bool = True,
    ):
        self.session_factory = session_factory
        self.eligibility_checks = eligibility_checks

    def _session(self):
        return session_scope(self.session_factory)

    # ===== Cycles =====

    async def list_cycles(self, ascending: bool = True) -> list[PayrollCycle]:
        """All cycles ordered by (year, month)."""
        order = (
            (PayrollCycle.year.asc(), PayrollCycle.month.asc())
            if ascending
            else (PayrollCycle.year.desc(), PayrollCycle.month.desc())
        )
        async with self._session() as session:
            result = await session.execute(select(PayrollCycle).order_by(*order))
            return list(result.scalars().all())

    async def get_cycle(self, cycle_id: UUID) -> PayrollCycle | None:
        async with self._session() as session:
            return await session.get(PayrollCycle, cycle_id)

    async def get_cycle_for_month(self, month: PayrollMonth) -> PayrollCycle | None:
        async with self._session() as session:
            result = await session.execute(
                select(PayrollCycle).where(
                    PayrollCycle.month == month.month,
                    PayrollCycle.year == month.year,
                )
            )
            return result.scalar_one_or_none()

    async def insert_cycle(self, month: PayrollMonth) -> PayrollCycle:
        """Insert a clean pending cycle with every sign-off field empty."""
        async with self._session() as session:
            cycle = PayrollCycle(
                month=month.month,
                year=month.year,
                status="pending",
                hr_signoff_by=None,
                hr_signoff_at=None,
                finance_signoff_by=None,
                finance_signoff_at=None,
                reverted_by=None,
                reverted_at=None,
                reversion_reason=None,
            )
            session.add(cycle)
            await session.flush()
            await session.refresh(cycle)
            return cycle

    async def update_cycle(self, cycle_id: UUID, **values: Any) -> PayrollCycle | None:
        async with self._session() as session:
            cycle = await session.get(PayrollCycle, cycle_id)
            if cycle is None:
                return None
            for key, value in values.items():
                setattr(cycle, key, value)
            await session.flush()
            await session.refresh(cycle)
            return cycle

    # ===== Employee locks =====

    async def get_lock(self, employee_id: UUID, cycle_id: UUID) -> EmployeePayrollLock | None:
        async with self._session() as session:
            result = await session.execute(
                select(EmployeePayrollLock).where(
                    EmployeePayrollLock.employee_id == employee_id,
                    EmployeePayrollLock.payroll_id == cycle_id,
                )
            )
            return result.scalar_one_or_none()

    async def list_locks(self, cycle_id: UUID) -> list[EmployeePayrollLock]:
        async with self._session() as session:
            result = await session.execute(
                select(EmployeePayrollLock).where(EmployeePayrollLock.payroll_id == cycle_id)
            )
            return list(result.scalars().all())

    async def insert_lock(
        self, employee_id: UUID, cycle_id: UUID, **values: Any
    ) -> EmployeePayrollLock:
        async with self._session() as session:
            lock = EmployeePayrollLock(employee_id=employee_id, payroll_id=cycle_id, **values)
            session.add(lock)
            await session.flush()
            await session.refresh(lock)
            return lock

    async def update_lock(self, lock_id: UUID, **values: Any) -> EmployeePayrollLock | None:
        async with self._session() as session:
            lock = await session.get(EmployeePayrollLock, lock_id)
            if lock is None:
                return None
            for key, value in values.items():
                setattr(lock, key, value)
            await session.flush()
            await session.refresh(lock)
            return lock

    async def lock_stats(self, cycle_id: UUID) -> LockStats:
        """Lock counts over active employees only."""
        async with self._session() as session:
            total = await session.scalar(
                select(func.count()).select_from(Employee).where(Employee.is_active.is_(True))
            )
            locked = select(func.count()).select_from(EmployeePayrollLock).join(
                Employee, EmployeePayrollLock.employee_id == Employee.id
            ).where(
                EmployeePayrollLock.payroll_id == cycle_id,
                Employee.is_active.is_(True),
            )
            hr_locked = await session.scalar(
                locked.where(EmployeePayrollLock.hr_locked.is_(True))
            )
            finance_locked = await session.scalar(
                locked.where(EmployeePayrollLock.finance_locked.is_(True))
            )
        return LockStats(
            total_employees=total or 0,
            hr_locked_count=hr_locked or 0,
            finance_locked_count=finance_locked or 0,
        )

    async def can_hr_signoff(self, cycle_id: UUID) -> bool:
        """True when every active employee is HR-locked."""
        stats = await self.lock_stats(cycle_id)
        return stats.can_hr_signoff

    # ===== Lock eligibility =====

    async def check_lock_eligibility(
        self,
        role: LockRole,
        employee_id: UUID,
        cycle_id: UUID | None = None,
    ) -> LockEligibility:
        """Check the employee has every field the lock requirements name.

        Payroll fields are read from the employee's row for the cycle's
        month; an employee with no row yet is missing all of them.
        """
        if not self.eligibility_checks:
            raise EligibilityCheckUnavailable(
                f"{role.label} lock eligibility check is not available"
            )

        flag = (
            PayrollLockRequirement.required_for_hr_lock
            if role is LockRole.HR
            else PayrollLockRequirement.required_for_finance_lock
        )
        async with self._session() as session:
            result = await session.execute(
                select(PayrollLockRequirement)
                .where(flag.is_(True))
                .order_by(PayrollLockRequirement.display_name)
            )
            requirements = list(result.scalars().all())
            if not requirements:
                return LockEligibility.allowed()

            employee = await session.get(Employee, employee_id)
            if employee is None:
                return LockEligibility(can_lock=False, missing_fields=["employee"])

            payroll: MonthlyPayroll | None = None
            if cycle_id is not None:
                cycle = await session.get(PayrollCycle, cycle_id)
                if cycle is not None:
                    payroll = await session.scalar(
                        select(MonthlyPayroll).where(
                            MonthlyPayroll.employee_id == employee_id,
                            MonthlyPayroll.month == cycle.month,
                            MonthlyPayroll.year == cycle.year,
                        )
                    )

        missing: list[str] = []
        for requirement in requirements:
            name = requirement.field_name
            if name in Employee.__table__.c:
                value = getattr(employee, name)
            elif name in MonthlyPayroll.__table__.c:
                value = getattr(payroll, name) if payroll is not None else None
            else:
                logger.warning("Lock requirement names unknown field %s", name)
                continue
            if _is_blank(value):
                missing.append(requirement.display_name)

        return LockEligibility(can_lock=not missing, missing_fields=missing)

    async def list_lock_requirements(
        self, required_only: bool = False
    ) -> list[PayrollLockRequirement]:
        async with self._session() as session:
            query = select(PayrollLockRequirement).order_by(PayrollLockRequirement.display_name)
            if required_only:
                query = query.where(
                    (PayrollLockRequirement.required_for_hr_lock.is_(True))
                    | (PayrollLockRequirement.required_for_finance_lock.is_(True))
                )
            result = await session.execute(query)
            return list(result.scalars().all())

    async def upsert_lock_requirement(
        self,
        field_name: str,
        display_name: str | None = None,
        required_for_hr_lock: bool | None = None,
        required_for_finance_lock: bool | None = None,
    ) -> PayrollLockRequirement:
        async with self._session() as session:
            requirement = await session.scalar(
                select(PayrollLockRequirement).where(
                    PayrollLockRequirement.field_name == field_name
                )
            )
            if requirement is None:
                requirement = PayrollLockRequirement(
                    field_name=field_name,
                    display_name=display_name or field_name,
                    required_for_hr_lock=bool(required_for_hr_lock),
                    required_for_finance_lock=bool(required_for_finance_lock),
                )
                session.add(requirement)
            else:
                if display_name is not None:
                    requirement.display_name = display_name
                if required_for_hr_lock is not None:
                    requirement.required_for_hr_lock = required_for_hr_lock
                if required_for_finance_lock is not None:
                    requirement.required_for_finance_lock = required_for_finance_lock
            await session.flush()
            await session.refresh(requirement)
            return requirement

    # ===== Field access =====

    async def list_field_access(self) -> list[FieldAccessSetting]:
        async with self._session() as session:
            result = await session.execute(
                select(FieldAccessSetting).order_by(
                    FieldAccessSetting.field_order, FieldAccessSetting.field_name
                )
            )
            return list(result.scalars().all())

    async def upsert_field_access(
        self,
        field_name: str,
        display_name: str | None = None,
        hr_can_edit: bool | None = None,
        finance_can_edit: bool | None = None,
    ) -> FieldAccessSetting:
        """Create or update the access row for ``field_name``.

        A new row starts from the default role split for that field.
        """
        async with self._session() as session:
            setting = await session.scalar(
                select(FieldAccessSetting).where(FieldAccessSetting.field_name == field_name)
            )
            if setting is None:
                setting = FieldAccessSetting(
                    field_name=field_name,
                    display_name=display_name or field_name,
                    hr_can_edit=field_name in HR_DEFAULT_FIELDS,
                    finance_can_edit=field_name in FINANCE_DEFAULT_FIELDS,
                )
                session.add(setting)
            elif display_name is not None:
                setting.display_name = display_name
            if hr_can_edit is not None:
                setting.hr_can_edit = hr_can_edit
            if finance_can_edit is not None:
                setting.finance_can_edit = finance_can_edit
            await session.flush()
            await session.refresh(setting)
            return setting

    async def editable_fields(self, role: LockRole) -> frozenset[str]:
        """Fields ``role`` may edit: stored settings over the default split."""
        allowed = set(HR_DEFAULT_FIELDS if role is LockRole.HR else FINANCE_DEFAULT_FIELDS)
        for setting in await self.list_field_access():
            can_edit = setting.hr_can_edit if role is LockRole.HR else setting.finance_can_edit
            if can_edit:
                allowed.add(setting.field_name)
            else:
                allowed.discard(setting.field_name)
        return frozenset(allowed)

    # ===== Audit =====

    async def append_audit(
        self,
        action_type: str,
        payroll_id: UUID | None = None,
        employee_id: UUID | None = None,
        performed_by: UUID | None = None,
        details: dict[str, Any] | None = None,
    ) -> bool:
        """Append an audit row. Failures are logged, never raised."""
        try:
            async with self._session() as session:
                session.add(
                    PayrollAuditLog(
                        payroll_id=payroll_id,
                        employee_id=employee_id,
                        action_type=getattr(action_type, "value", action_type),
                        performed_by=performed_by,
                        details=details,
                    )
                )
        except Exception:
            logger.exception("Failed to write audit entry %s", action_type)
            return False
        return True

    async def list_audit(self, payroll_id: UUID) -> list[PayrollAuditLog]:
        async with self._session() as session:
            result = await session.execute(
                select(PayrollAuditLog)
                .where(PayrollAuditLog.payroll_id == payroll_id)
                .order_by(PayrollAuditLog.performed_at)
            )
            return list(result.scalars().all())

    # ===== Employees & payroll rows =====

    async def get_employee(self, employee_id: UUID) -> Employee | None:
        async with self._session() as session:
            return await session.get(Employee, employee_id)

    async def list_active_employees_with_payroll(
        self, month: PayrollMonth
    ) -> list[tuple[Employee, MonthlyPayroll | None]]:
        async with self._session() as session:
            result = await session.execute(
                select(Employee, MonthlyPayroll)
                .outerjoin(
                    MonthlyPayroll,
                    and_(
                        MonthlyPayroll.employee_id == Employee.id,
                        MonthlyPayroll.month == month.month,
                        MonthlyPayroll.year == month.year,
                    ),
                )
                .where(Employee.is_active.is_(True))
                .order_by(Employee.employee_id)
            )
            return [(employee, payroll) for employee, payroll in result.all()]

    async def get_payroll_row(
        self, employee_id: UUID, month: PayrollMonth
    ) -> MonthlyPayroll | None:
        async with self._session() as session:
            return await session.scalar(
                select(MonthlyPayroll).where(
                    MonthlyPayroll.employee_id == employee_id,
                    MonthlyPayroll.month == month.month,
                    MonthlyPayroll.year == month.year,
                )
            )

    async def update_employee(self, employee_id: UUID, values: dict[str, Any]) -> Employee:
        async with self._session() as session:
            employee = await session.get(Employee, employee_id)
            if employee is None:
                raise LookupError(f"Employee {employee_id} not found")
            for key, value in values.items():
                setattr(employee, key, value)
            await session.flush()
            await session.refresh(employee)
            return employee

    async def update_payroll_row(
        self, payroll_id: UUID, values: dict[str, Any]
    ) -> MonthlyPayroll:
        async with self._session() as session:
            payroll = await session.get(MonthlyPayroll, payroll_id)
            if payroll is None:
                raise LookupError(f"Payroll row {payroll_id} not found")
            for key, value in values.items():
                setattr(payroll, key, value)
            payroll.net_pay = payroll.compute_net_pay()
            await session.flush()
            await session.refresh(payroll)
            return payroll

    async def insert_payroll_row(
        self, employee_id: UUID, month: PayrollMonth, values: dict[str, Any]
    ) -> MonthlyPayroll:
        """Insert a first payroll row with defaulted sibling fields."""
        async with self._session() as session:
            employee = await session.get(Employee, employee_id)
            if employee is None:
                raise LookupError(f"Employee {employee_id} not found")
            data = {
                "employee_salary": employee.current_salary,
                **PAYROLL_ROW_DEFAULTS,
                **values,
            }
            payroll = MonthlyPayroll(
                employee_id=employee_id, month=month.month, year=month.year, **data
            )
            payroll.net_pay = payroll.compute_net_pay()
            session.add(payroll)
            await session.flush()
            await session.refresh(payroll)
            return payroll

    # ===== Reports =====

    async def get_report(
        self, month: PayrollMonth, report_type: str
    ) -> PayrollReport | None:
        async with self._session() as session:
            return await session.scalar(
                select(PayrollReport).where(
                    PayrollReport.month == month.month,
                    PayrollReport.year == month.year,
                    PayrollReport.report_type == report_type,
                )
            )

    async def upsert_report(
        self, month: PayrollMonth, report_type: str, values: dict[str, Any]
    ) -> PayrollReport:
        """Insert or replace the report keyed by (month, year, report_type)."""
        async with self._session() as session:
            report = await session.scalar(
                select(PayrollReport).where(
                    PayrollReport.month == month.month,
                    PayrollReport.year == month.year,
                    PayrollReport.report_type == report_type,
                )
            )
            if report is None:
                report = PayrollReport(
                    month=month.month, year=month.year, report_type=report_type
                )
                session.add(report)
            for key, value in values.items():
                setattr(report, key, value)
            await session.flush()
            await session.refresh(report)
            return report
