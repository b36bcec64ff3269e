"""FastAPI dependencies for dependency injection."""

from enum import Enum
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status

from payroll_signoff.config import Settings
from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.finalization_service import PayrollFinalizationService
from payroll_signoff.services.store import PayrollStore


class UserRole(str, Enum):
    """Roles carried in the X-User-Role header."""

    HR = "hr"
    FINANCE = "finance"
    ADMIN = "admin"


def get_settings_dep(request: Request) -> Settings:
    """Settings the app was created with."""
    return request.app.state.settings


def get_store(request: Request) -> PayrollStore:
    """Store bound to the app's session factory."""
    return request.app.state.store


async def get_actor_id(
    x_user_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract the acting user's ID from header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID header is required",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )


async def get_role(
    x_user_role: Annotated[str | None, Header()] = None
) -> UserRole:
    """Extract the acting user's role from header."""
    if not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Role header is required",
        )
    try:
        return UserRole(x_user_role.lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-Role; expected hr, finance or admin",
        )


Store = Annotated[PayrollStore, Depends(get_store)]
AppSettings = Annotated[Settings, Depends(get_settings_dep)]
ActorId = Annotated[UUID, Depends(get_actor_id)]
Role = Annotated[UserRole, Depends(get_role)]


def require_role(role: UserRole, *allowed: UserRole) -> None:
    """Raise 403 unless ``role`` is admin or one of ``allowed``."""
    if role is UserRole.ADMIN or role in allowed:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=f"Role '{role.value}' may not perform this action",
    )


async def get_finalization_service(
    store: Store, settings: AppSettings, actor_id: ActorId
) -> PayrollFinalizationService:
    """Finalization service acting as the request's user."""
    return PayrollFinalizationService.from_settings(store, settings, actor_user_id=actor_id)


def get_company_start(settings: AppSettings) -> PayrollMonth:
    return settings.company_start


Finalization = Annotated[PayrollFinalizationService, Depends(get_finalization_service)]
CompanyStart = Annotated[PayrollMonth, Depends(get_company_start)]
