"""Lock requirement configuration endpoints."""

from fastapi import APIRouter, HTTPException, status

from payroll_signoff.api.dependencies import Finalization, Role, require_role
from payroll_signoff.api.schemas import (
    ErrorResponse,
    LockRequirementResponse,
    LockRequirementUpdate,
)

router = APIRouter(prefix="/lock-requirements", tags=["lock-requirements"])


@router.get("", response_model=list[LockRequirementResponse])
async def list_lock_requirements(service: Finalization) -> list[LockRequirementResponse]:
    requirements = await service.get_lock_requirements()
    return [LockRequirementResponse.model_validate(r) for r in requirements]


@router.put(
    "",
    response_model=list[LockRequirementResponse],
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_lock_requirement(
    service: Finalization,
    role: Role,
    payload: LockRequirementUpdate,
) -> list[LockRequirementResponse]:
    """Set which roles need ``field_name`` filled before locking (admin only)."""
    require_role(role)
    ok = await service.update_lock_requirement(
        payload.field_name,
        required_for_hr=payload.required_for_hr_lock,
        required_for_finance=payload.required_for_finance_lock,
        display_name=payload.display_name,
    )
    if not ok:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=service.last_error or "Failed to update lock requirement",
        )
    requirements = await service.get_lock_requirements()
    return [LockRequirementResponse.model_validate(r) for r in requirements]
