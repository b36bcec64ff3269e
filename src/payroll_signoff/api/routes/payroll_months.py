"""Payroll month progression endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, status

from payroll_signoff.api.dependencies import CompanyStart, Store
from payroll_signoff.api.schemas import (
    ErrorResponse,
    MonthRef,
    MonthViewResponse,
    PayrollCycleResponse,
    PayrollMonthsResponse,
)
from payroll_signoff.models import PayrollCycle
from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.month_progression import PayrollMonthNavigator, find_cycle
from payroll_signoff.services.state_machine import derive_status

router = APIRouter(prefix="/payroll-months", tags=["payroll-months"])


def month_ref(month: PayrollMonth) -> MonthRef:
    return MonthRef(month=month.month, year=month.year, label=month.label)


def cycle_response(cycle: PayrollCycle) -> PayrollCycleResponse:
    response = PayrollCycleResponse.model_validate(cycle)
    response.effective_status = derive_status(cycle).status.value
    return response


@router.get("", response_model=PayrollMonthsResponse)
async def list_payroll_months(store: Store, start: CompanyStart) -> PayrollMonthsResponse:
    """Cycle history (oldest first) and the currently open month."""
    navigator = PayrollMonthNavigator(start)
    navigator.load(await store.list_cycles(ascending=True))
    return PayrollMonthsResponse(
        company_start=month_ref(start),
        active=month_ref(navigator.active),
        cycles=[cycle_response(c) for c in navigator.cycles],
    )


@router.get(
    "/{year}/{month}",
    response_model=MonthViewResponse,
    responses={404: {"model": ErrorResponse}},
)
async def view_payroll_month(
    store: Store,
    start: CompanyStart,
    year: Annotated[int, Path(ge=1900)],
    month: Annotated[int, Path(ge=1, le=12)],
) -> MonthViewResponse:
    """Navigation state with ``month/year`` selected.

    Only the active month and finalized months can be selected.
    """
    navigator = PayrollMonthNavigator(start)
    navigator.load(await store.list_cycles(ascending=True))
    if not navigator.go_to_month(month, year):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{PayrollMonth.of(month, year).label} is not open for viewing",
        )

    cycle = find_cycle(navigator.cycles, navigator.selected)
    return MonthViewResponse(
        selected=month_ref(navigator.selected),
        active=month_ref(navigator.active),
        status=navigator.selected_status.value,
        is_viewing_active=navigator.is_viewing_active,
        is_viewing_finalized=navigator.is_viewing_finalized,
        is_accessible=navigator.is_accessible(navigator.selected),
        can_go_prev=navigator.can_go_prev,
        can_go_next=navigator.can_go_next,
        cycle=cycle_response(cycle) if cycle is not None else None,
    )
