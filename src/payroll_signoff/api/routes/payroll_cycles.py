"""Payroll cycle lock and sign-off endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, status

from payroll_signoff.api.dependencies import (
    Finalization,
    Role,
    Store,
    UserRole,
    require_role,
)
from payroll_signoff.api.routes.payroll_months import cycle_response
from payroll_signoff.api.schemas import (
    BulkLockRequest,
    BulkLockResponse,
    EmployeeLockResponse,
    ErrorResponse,
    LockStatsResponse,
    PayrollCycleCreate,
    PayrollCycleResponse,
    RevertRequest,
    SignoffResponse,
    ToggleLockRequest,
    ToggleLockResponse,
)
from payroll_signoff.models import PayrollCycle
from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.finalization_service import PayrollFinalizationService
from payroll_signoff.services.types import LockRole

router = APIRouter(prefix="/payroll-cycles", tags=["payroll-cycles"])

CycleId = Annotated[UUID, Path()]


async def _get_cycle(store, cycle_id: UUID) -> PayrollCycle:
    cycle = await store.get_cycle(cycle_id)
    if cycle is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Payroll cycle not found",
        )
    return cycle


def _conflict(service: PayrollFinalizationService, default: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=service.last_error or default,
    )


def _role_for_lock(role: LockRole) -> UserRole:
    return UserRole.HR if role is LockRole.HR else UserRole.FINANCE


# ============================================================================
# Cycles
# ============================================================================


@router.post(
    "",
    response_model=PayrollCycleResponse,
    responses={409: {"model": ErrorResponse}},
)
async def get_or_create_cycle(
    service: Finalization,
    payload: PayrollCycleCreate,
) -> PayrollCycleResponse:
    """Fetch the cycle for a month, opening it if the previous month is finalized."""
    cycle = await service.get_or_create_payroll_cycle(payload.month, payload.year)
    return cycle_response(cycle)


@router.get(
    "/{cycle_id}",
    response_model=PayrollCycleResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_cycle(store: Store, cycle_id: CycleId) -> PayrollCycleResponse:
    return cycle_response(await _get_cycle(store, cycle_id))


@router.get(
    "/{cycle_id}/lock-stats",
    response_model=LockStatsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_lock_stats(
    store: Store, service: Finalization, cycle_id: CycleId
) -> LockStatsResponse:
    await _get_cycle(store, cycle_id)
    stats = await service.get_payroll_lock_stats(cycle_id)
    if stats is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=service.last_error or "Lock stats unavailable",
        )
    return LockStatsResponse(**stats.to_dict())


@router.get(
    "/{cycle_id}/locks",
    response_model=list[EmployeeLockResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_locks(
    store: Store, service: Finalization, cycle_id: CycleId
) -> list[EmployeeLockResponse]:
    await _get_cycle(store, cycle_id)
    locks = await service.get_employee_locks(cycle_id)
    return [EmployeeLockResponse.model_validate(lock) for lock in locks]


# ============================================================================
# Locks
# ============================================================================


@router.post(
    "/{cycle_id}/locks/bulk",
    response_model=BulkLockResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def bulk_lock(
    store: Store,
    service: Finalization,
    role: Role,
    cycle_id: CycleId,
    payload: BulkLockRequest,
) -> BulkLockResponse:
    """Lock or unlock many employees; one employee's failure never stops the batch."""
    require_role(role, _role_for_lock(payload.role))
    cycle = await _get_cycle(store, cycle_id)

    employee_ids = payload.employee_ids
    if employee_ids is None:
        rows = await store.list_active_employees_with_payroll(PayrollMonth.from_cycle(cycle))
        employee_ids = [employee.id for employee, _ in rows]
    if not employee_ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No active employees to lock/unlock",
        )

    result = await service.bulk_lock(payload.role, cycle_id, employee_ids, payload.lock)
    return BulkLockResponse(**result.to_dict(), total=result.total)


@router.post(
    "/{cycle_id}/locks/{employee_id}",
    response_model=ToggleLockResponse,
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)
async def toggle_lock(
    store: Store,
    service: Finalization,
    role: Role,
    cycle_id: CycleId,
    employee_id: Annotated[UUID, Path()],
    payload: ToggleLockRequest,
) -> ToggleLockResponse:
    """Flip one employee's HR or Finance lock."""
    require_role(role, _role_for_lock(payload.role))
    await _get_cycle(store, cycle_id)

    ok = await service.toggle_lock(
        payload.role, employee_id, cycle_id, payload.currently_locked
    )
    if not ok:
        if service.last_missing_fields:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=service.last_error,
            )
        raise _conflict(service, "Failed to toggle lock")

    return ToggleLockResponse(
        success=True,
        employee_id=employee_id,
        role=payload.role,
        locked=not payload.currently_locked,
    )


# ============================================================================
# Sign-offs
# ============================================================================


@router.post(
    "/{cycle_id}/hr-signoff",
    response_model=SignoffResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def hr_signoff(
    store: Store, service: Finalization, role: Role, cycle_id: CycleId
) -> SignoffResponse:
    require_role(role, UserRole.HR)
    await _get_cycle(store, cycle_id)
    if not await service.hr_signoff(cycle_id):
        raise _conflict(service, "HR sign-off failed")
    return SignoffResponse(cycle=cycle_response(await _get_cycle(store, cycle_id)))


@router.post(
    "/{cycle_id}/finance-signoff",
    response_model=SignoffResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def finance_signoff(
    store: Store, service: Finalization, role: Role, cycle_id: CycleId
) -> SignoffResponse:
    """Finalize the month and freeze its snapshot."""
    require_role(role, UserRole.FINANCE)
    await _get_cycle(store, cycle_id)
    if not await service.finance_signoff(cycle_id):
        raise _conflict(service, "Finance sign-off failed")
    return SignoffResponse(
        cycle=cycle_response(await _get_cycle(store, cycle_id)),
        message=service.last_error,
    )


@router.post(
    "/{cycle_id}/revert",
    response_model=SignoffResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def revert_payroll(
    store: Store,
    service: Finalization,
    role: Role,
    cycle_id: CycleId,
    payload: RevertRequest,
) -> SignoffResponse:
    """Clear both sign-offs (admin only). Employee locks are kept."""
    require_role(role)
    await _get_cycle(store, cycle_id)
    if not await service.revert_payroll(cycle_id, payload.reason):
        raise _conflict(service, "Revert failed")
    return SignoffResponse(cycle=cycle_response(await _get_cycle(store, cycle_id)))
