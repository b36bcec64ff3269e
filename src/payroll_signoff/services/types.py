"""Type definitions shared by the payroll services."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class LockRole(str, Enum):
    """The two roles that lock employees and sign off a cycle."""

    HR = "hr"
    FINANCE = "finance"

    @property
    def label(self) -> str:
        return "HR" if self is LockRole.HR else "Finance"


class AuditAction(str, Enum):
    """Action types written to the payroll audit log."""

    PAYROLL_CREATED = "payroll_created"
    HR_LOCK = "hr_lock"
    HR_UNLOCK = "hr_unlock"
    FINANCE_LOCK = "finance_lock"
    FINANCE_UNLOCK = "finance_unlock"
    BULK_HR_LOCK = "bulk_hr_lock"
    BULK_HR_UNLOCK = "bulk_hr_unlock"
    BULK_FINANCE_LOCK = "bulk_finance_lock"
    BULK_FINANCE_UNLOCK = "bulk_finance_unlock"
    HR_SIGNOFF = "hr_signoff"
    PAYROLL_FINALIZED = "payroll_finalized"
    PAYROLL_REVERTED = "payroll_reverted"

    @classmethod
    def for_toggle(cls, role: LockRole, lock: bool) -> AuditAction:
        return cls(f"{role.value}_{'lock' if lock else 'unlock'}")

    @classmethod
    def for_bulk(cls, role: LockRole, lock: bool) -> AuditAction:
        return cls(f"bulk_{role.value}_{'lock' if lock else 'unlock'}")


@dataclass(frozen=True)
class LockEligibility:
    """Result of a lock eligibility check."""

    can_lock: bool
    missing_fields: list[str] = field(default_factory=list)

    @classmethod
    def allowed(cls) -> LockEligibility:
        return cls(can_lock=True)


@dataclass(frozen=True)
class LockStats:
    """Aggregate lock counts for a cycle, over active employees."""

    total_employees: int
    hr_locked_count: int
    finance_locked_count: int

    @property
    def can_hr_signoff(self) -> bool:
        return self.total_employees > 0 and self.hr_locked_count == self.total_employees

    @property
    def can_finance_signoff(self) -> bool:
        return (
            self.total_employees > 0
            and self.finance_locked_count == self.total_employees
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_employees": self.total_employees,
            "hr_locked_count": self.hr_locked_count,
            "finance_locked_count": self.finance_locked_count,
            "can_hr_signoff": self.can_hr_signoff,
            "can_finance_signoff": self.can_finance_signoff,
        }


class LockOutcome(str, Enum):
    """Per-employee outcome of a bulk lock."""

    SUCCESS = "success"
    SKIPPED = "skipped"  # failed the eligibility check
    FAILED = "failed"  # persistence error


@dataclass(frozen=True)
class BulkLockResult:
    """Tally of a bulk lock/unlock. The three counts are disjoint."""

    success: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.success + self.skipped + self.failed

    def add(self, outcome: LockOutcome) -> BulkLockResult:
        """Return a new tally with one more ``outcome``."""
        return BulkLockResult(
            success=self.success + (outcome is LockOutcome.SUCCESS),
            skipped=self.skipped + (outcome is LockOutcome.SKIPPED),
            failed=self.failed + (outcome is LockOutcome.FAILED),
        )

    def to_dict(self) -> dict[str, int]:
        return {"success": self.success, "skipped": self.skipped, "failed": self.failed}


@dataclass(frozen=True)
class SaveAllResult:
    """Tally of saving every dirty row; validation failures count as failed."""

    saved: int = 0
    failed: int = 0
    errors: dict[Any, dict[str, str]] = field(default_factory=dict)
