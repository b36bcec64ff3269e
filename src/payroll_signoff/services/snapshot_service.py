"""Immutable month snapshots written at Finance sign-off.

Once a snapshot exists for a month, finalized views render it instead of
the live employee and payroll tables, so later edits to those rows cannot
change what a finalized month shows.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from payroll_signoff.models import PayrollReport, utcnow
from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.store import PayrollStore

logger = logging.getLogger(__name__)

SNAPSHOT_REPORT_TYPE = "snapshot"


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def serialize_row(row: Any) -> dict[str, Any]:
    """Column values of an ORM row as JSON-safe data."""
    return {key: _json_value(value) for key, value in row.to_dict().items()}


class SnapshotService:
    """Builds and reads the per-month snapshot report."""

    def __init__(self, store: PayrollStore):
        self.store = store

    async def generate_snapshot(
        self,
        month: PayrollMonth,
        actor_user_id: UUID | None = None,
    ) -> PayrollReport:
        """Freeze every active employee with their payroll row for ``month``."""
        rows = await self.store.list_active_employees_with_payroll(month)

        report_data: list[dict[str, Any]] = []
        total_gross = Decimal("0")
        total_deductions = Decimal("0")
        total_net = Decimal("0")
        for employee, payroll in rows:
            entry = serialize_row(employee)
            entry["payroll"] = serialize_row(payroll) if payroll is not None else None
            report_data.append(entry)
            if payroll is not None:
                total_gross += Decimal(payroll.employee_salary or 0)
                total_deductions += Decimal(payroll.deduction_amount or 0)
                total_net += Decimal(payroll.net_pay or 0)

        now = utcnow()
        report = await self.store.upsert_report(
            month,
            SNAPSHOT_REPORT_TYPE,
            {
                "report_name": f"Payroll Report - {month.label}",
                "total_employees": len(report_data),
                "total_gross_salary": total_gross,
                "total_deductions": total_deductions,
                "total_net_salary": total_net,
                "generated_by": actor_user_id,
                "generated_at": now,
                "is_finalized": True,
                "finalized_at": now,
                "finance_approved_by": actor_user_id,
                "report_data": report_data,
            },
        )
        logger.info(
            "Snapshot generated for %s: %d employees, net %s",
            month.label,
            len(report_data),
            total_net,
        )
        return report

    async def get_snapshot(self, month: PayrollMonth) -> PayrollReport | None:
        return await self.store.get_report(month, SNAPSHOT_REPORT_TYPE)
