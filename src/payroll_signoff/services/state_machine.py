"""Payroll cycle status: derivation from sign-off stamps and transition rules."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Union
from uuid import UUID

from payroll_signoff.services.errors import InvalidTransitionError

if TYPE_CHECKING:
    from payroll_signoff.models import PayrollCycle


class CycleStatus(str, Enum):
    """Stored payroll cycle status values."""

    PENDING = "pending"
    HR_SIGNED = "hr_signed"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class Pending:
    status = CycleStatus.PENDING


@dataclass(frozen=True)
class HrSigned:
    hr_signoff_by: UUID | None
    hr_signoff_at: datetime

    status = CycleStatus.HR_SIGNED


@dataclass(frozen=True)
class Finalized:
    finance_signoff_by: UUID | None
    finance_signoff_at: datetime
    hr_signoff_by: UUID | None = None
    hr_signoff_at: datetime | None = None

    status = CycleStatus.FINALIZED


EffectiveStatus = Union[Pending, HrSigned, Finalized]


def derive_status(cycle: PayrollCycle | None) -> EffectiveStatus:
    """Compute the effective status of a cycle.

    The sign-off stamps win over the stored ``status`` column: a cycle with
    ``finance_signoff_at`` is finalized, one with only ``hr_signoff_at`` is
    HR-signed, anything else is pending whatever the column says.
    """
    if cycle is None:
        return Pending()
    if cycle.finance_signoff_at is not None:
        return Finalized(
            finance_signoff_by=cycle.finance_signoff_by,
            finance_signoff_at=cycle.finance_signoff_at,
            hr_signoff_by=cycle.hr_signoff_by,
            hr_signoff_at=cycle.hr_signoff_at,
        )
    if cycle.hr_signoff_at is not None:
        return HrSigned(
            hr_signoff_by=cycle.hr_signoff_by,
            hr_signoff_at=cycle.hr_signoff_at,
        )
    return Pending()


def is_finalized(cycle: PayrollCycle | None) -> bool:
    """True iff the cycle exists and Finance has signed it off."""
    return isinstance(derive_status(cycle), Finalized)


class CycleStateMachine:
    """State machine for payroll cycle status transitions.

    Allowed transitions:
    - pending → hr_signed
    - pending → finalized (Finance may sign off without HR)
    - hr_signed → finalized
    - hr_signed → pending (revert)
    - finalized → pending (revert)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        CycleStatus.PENDING: [CycleStatus.HR_SIGNED, CycleStatus.FINALIZED],
        CycleStatus.HR_SIGNED: [CycleStatus.FINALIZED, CycleStatus.PENDING],
        CycleStatus.FINALIZED: [CycleStatus.PENDING],
    }

    # Statuses where employee locks may still change
    LOCKS_MUTABLE = {
        CycleStatus.PENDING,
        CycleStatus.HR_SIGNED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_revert(cls, from_status: str, to_status: str) -> bool:
        """Check if this transition clears a sign-off."""
        return from_status != CycleStatus.PENDING and to_status == CycleStatus.PENDING

    @classmethod
    def can_modify_locks(cls, status: str) -> bool:
        """Check if employee locks may be toggled in this status."""
        return status in cls.LOCKS_MUTABLE

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])
