"""Seed a development database with demo employees and lock requirements.

Usage:
    python -m scripts.seed_demo [--database-url URL] [--employees N]

Creates missing tables, inserts N active employees (skipping codes that
already exist) and the default lock requirements.
"""

from __future__ import annotations

import argparse
import asyncio
from decimal import Decimal

from sqlalchemy import select

from payroll_signoff.config import settings
from payroll_signoff.database import create_all, get_engine, make_session_factory, session_scope
from payroll_signoff.models import Employee
from payroll_signoff.services.store import PayrollStore

DEPARTMENTS = ("Engineering", "Finance", "Operations", "Support")

DEFAULT_REQUIREMENTS = (
    # field_name, display_name, hr, finance
    ("designation", "Designation", True, False),
    ("department", "Department", True, False),
    ("bank_account_number", "Bank Account Number", False, True),
    ("bank_ifsc_code", "IFSC Code", False, True),
)


async def seed(database_url: str, count: int) -> None:
    engine = get_engine(database_url)
    try:
        await create_all(engine)
        factory = make_session_factory(engine)

        async with session_scope(factory) as session:
            existing = set(await session.scalars(select(Employee.employee_id)))
            added = 0
            for i in range(1, count + 1):
                code = f"EMP{i:03d}"
                if code in existing:
                    continue
                session.add(
                    Employee(
                        employee_id=code,
                        employee_name=f"Demo Employee {i}",
                        designation="Associate",
                        department=DEPARTMENTS[i % len(DEPARTMENTS)],
                        current_salary=Decimal(30000 + 2500 * i),
                        bank_account_number=f"{9000000000 + i}",
                        bank_name="Demo Bank",
                        bank_ifsc_code="DEMO0000001",
                    )
                )
                added += 1
        print(f"Employees added: {added} (already present: {len(existing)})")

        store = PayrollStore(factory)
        for field_name, display_name, hr, finance in DEFAULT_REQUIREMENTS:
            await store.upsert_lock_requirement(
                field_name,
                display_name=display_name,
                required_for_hr_lock=hr,
                required_for_finance_lock=finance,
            )
        print(f"Lock requirements set: {len(DEFAULT_REQUIREMENTS)}")
    finally:
        await engine.dispose()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed demo payroll data")
    parser.add_argument(
        "--database-url",
        type=str,
        default=settings.database_url,
        help="Database URL (default: from settings)",
    )
    parser.add_argument(
        "--employees",
        type=int,
        default=10,
        help="Number of demo employees (default: 10)",
    )

    args = parser.parse_args()

    asyncio.run(seed(args.database_url, args.employees))


if __name__ == "__main__":
    main()
