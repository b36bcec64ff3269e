"""API routes."""

from payroll_signoff.api.routes.employees import router as employees_router
from payroll_signoff.api.routes.health import router as health_router
from payroll_signoff.api.routes.lock_requirements import router as lock_requirements_router
from payroll_signoff.api.routes.payroll_cycles import router as payroll_cycles_router
from payroll_signoff.api.routes.payroll_months import router as payroll_months_router
from payroll_signoff.api.routes.reports import router as reports_router

__all__ = [
    "employees_router",
    "health_router",
    "lock_requirements_router",
    "payroll_cycles_router",
    "payroll_months_router",
    "reports_router",
]
