"""Pytest fixtures for payroll sign-off tests."""

from __future__ import annotations

from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from payroll_signoff.api.app import create_app
from payroll_signoff.config import Settings
from payroll_signoff.database import create_all, make_session_factory, session_scope
from payroll_signoff.models import Employee, PayrollCycle, utcnow
from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.finalization_service import PayrollFinalizationService
from payroll_signoff.services.store import PayrollStore

COMPANY_START = PayrollMonth.of(10, 2025)

HR_USER_ID = UUID("00000000-0000-0000-0000-0000000000a1")
FINANCE_USER_ID = UUID("00000000-0000-0000-0000-0000000000b2")
ADMIN_USER_ID = UUID("00000000-0000-0000-0000-0000000000c3")


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite+aiosqlite://",
        "host": "127.0.0.1",
        "port": 8000,
        "debug": False,
        "log_level": "DEBUG",
        "payroll_start_month": COMPANY_START.month,
        "payroll_start_year": COMPANY_START.year,
        "strict_eligibility_checks": False,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so every session sees the same data."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", echo=False)
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory) -> PayrollStore:
    return PayrollStore(session_factory)


@pytest.fixture
def service(store) -> PayrollFinalizationService:
    return PayrollFinalizationService(store, COMPANY_START, actor_user_id=HR_USER_ID)


@pytest.fixture
async def employees(session_factory) -> list[Employee]:
    """Three active employees and one inactive one."""
    rows = [
        Employee(
            employee_id="EMP001",
            employee_name="Asha Rao",
            designation="Engineer",
            department="Platform",
            current_salary=Decimal("50000.00"),
            bank_account_number="111122223333",
        ),
        Employee(
            employee_id="EMP002",
            employee_name="Ben Ortiz",
            designation="Analyst",
            department="Finance",
            current_salary=Decimal("42000.00"),
            bank_account_number="444455556666",
        ),
        Employee(
            employee_id="EMP003",
            employee_name="Chen Li",
            designation=None,
            department="Support",
            current_salary=Decimal("30000.00"),
        ),
        Employee(
            employee_id="EMP004",
            employee_name="Dara Kim",
            employment_status="Resigned",
            current_salary=Decimal("35000.00"),
            is_active=False,
        ),
    ]
    async with session_scope(session_factory) as session:
        session.add_all(rows)
    return rows


@pytest.fixture
def active_ids(employees) -> list[UUID]:
    return [e.id for e in employees if e.is_active]


async def add_cycle(
    session_factory,
    month: PayrollMonth,
    finalized: bool = False,
    hr_signed: bool = False,
) -> PayrollCycle:
    """Insert a cycle directly, bypassing the workflow preconditions."""
    now = utcnow()
    cycle = PayrollCycle(
        id=uuid4(),
        month=month.month,
        year=month.year,
        status="finalized" if finalized else ("hr_signed" if hr_signed else "pending"),
        hr_signoff_by=HR_USER_ID if (hr_signed or finalized) else None,
        hr_signoff_at=now if (hr_signed or finalized) else None,
        finance_signoff_by=FINANCE_USER_ID if finalized else None,
        finance_signoff_at=now if finalized else None,
    )
    async with session_scope(session_factory) as session:
        session.add(cycle)
    return cycle


@pytest.fixture
def app_settings() -> Settings:
    return make_settings()


@pytest.fixture
async def client(app_settings, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to an app sharing the test database."""
    app = create_app(settings=app_settings, session_factory=session_factory)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def headers(role: str, user_id: UUID | None = None) -> dict[str, str]:
    default = {"hr": HR_USER_ID, "finance": FINANCE_USER_ID, "admin": ADMIN_USER_ID}[role]
    return {"X-User-ID": str(user_id or default), "X-User-Role": role}
