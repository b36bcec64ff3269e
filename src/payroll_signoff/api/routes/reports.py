"""Finalized month snapshot endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, status

from payroll_signoff.api.dependencies import Store
from payroll_signoff.api.schemas import ErrorResponse, SnapshotResponse
from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.snapshot_service import SnapshotService

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get(
    "/snapshot/{year}/{month}",
    response_model=SnapshotResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_snapshot(
    store: Store,
    year: Annotated[int, Path(ge=1900)],
    month: Annotated[int, Path(ge=1, le=12)],
) -> SnapshotResponse:
    target = PayrollMonth.of(month, year)
    report = await SnapshotService(store).get_snapshot(target)
    if report is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No snapshot for {target.label}",
        )
    return SnapshotResponse.model_validate(report)
