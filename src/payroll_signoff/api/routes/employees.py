"""Employee grid editing endpoints."""

import logging

from fastapi import APIRouter, HTTPException, status

from payroll_signoff.api.dependencies import (
    ActorId,
    CompanyStart,
    Role,
    Store,
    UserRole,
    require_role,
)
from payroll_signoff.api.schemas import (
    ErrorResponse,
    FieldAccessResponse,
    FieldAccessUpdate,
    SaveEditsRequest,
    SaveEditsResponse,
)
from payroll_signoff.models import EMPLOYEE_EDITABLE_FIELDS, PAYROLL_EDITABLE_FIELDS
from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.edit_buffer import EmployeeEditBuffer
from payroll_signoff.services.errors import FieldAccessDeniedError
from payroll_signoff.services.types import LockRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/employees", tags=["employees"])

# Admins edit as no lock role: every field, regardless of employee locks
_EDIT_ROLES = {UserRole.HR: LockRole.HR, UserRole.FINANCE: LockRole.FINANCE}


@router.post(
    "/edits/save",
    response_model=SaveEditsResponse,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def save_edits(
    store: Store,
    actor_id: ActorId,
    role: Role,
    start: CompanyStart,
    payload: SaveEditsRequest,
) -> SaveEditsResponse:
    """Apply a batch of cell edits and save every touched row.

    The whole batch is refused with 409 when the month is finalized, not
    open yet, or already signed off by the caller's role. A field the
    role may not edit is a 403. Rows that fail validation or are locked
    for the caller's role are reported per row; the others are saved.
    """
    require_role(role, UserRole.HR, UserRole.FINANCE)
    buffer = EmployeeEditBuffer(
        store,
        PayrollMonth.of(payload.month, payload.year),
        start,
        role=_EDIT_ROLES.get(role),
    )
    await buffer.check_editable()

    try:
        for edit in payload.edits:
            buffer.update_field(
                edit.employee_id, edit.field, edit.value, edit.is_payroll_field
            )
    except FieldAccessDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))

    rows = await buffer.load_rows(buffer.dirty_employee_ids)
    missing = set(buffer.dirty_employee_ids) - {row.id for row in rows}
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown or inactive employees: {', '.join(sorted(map(str, missing)))}",
        )

    result = await buffer.save_all(rows)
    logger.info(
        "User %s (%s) saved %d rows for %s (%d failed)",
        actor_id,
        role.value,
        result.saved,
        buffer.month.label,
        result.failed,
    )
    return SaveEditsResponse(
        saved=result.saved,
        failed=result.failed,
        errors={str(k): v for k, v in result.errors.items()},
    )


@router.get("/field-access", response_model=list[FieldAccessResponse])
async def list_field_access(store: Store) -> list[FieldAccessResponse]:
    settings = await store.list_field_access()
    return [FieldAccessResponse.model_validate(s) for s in settings]


@router.put(
    "/field-access",
    response_model=list[FieldAccessResponse],
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def update_field_access(
    store: Store,
    actor_id: ActorId,
    role: Role,
    payload: FieldAccessUpdate,
) -> list[FieldAccessResponse]:
    """Set which roles may edit ``field_name`` (admin only)."""
    require_role(role)
    if payload.field_name not in EMPLOYEE_EDITABLE_FIELDS | PAYROLL_EDITABLE_FIELDS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Field {payload.field_name!r} is not editable",
        )
    await store.upsert_field_access(
        payload.field_name,
        display_name=payload.display_name,
        hr_can_edit=payload.hr_can_edit,
        finance_can_edit=payload.finance_can_edit,
    )
    logger.info("User %s updated field access for %s", actor_id, payload.field_name)
    settings = await store.list_field_access()
    return [FieldAccessResponse.model_validate(s) for s in settings]
