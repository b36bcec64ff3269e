"""Lock and sign-off orchestration for monthly payroll cycles.

A cycle moves pending → hr_signed → finalized:

1. HR locks every active employee, then signs off.
2. Finance locks every active employee, then signs off. Finance does not
   need the HR sign-off; it needs the previous month finalized and a full
   set of Finance locks.
3. Finance sign-off writes the month's snapshot report.

An administrator may revert a signed cycle to pending. Reverting clears
both sign-offs but leaves every employee lock as it was.

Mutating operations catch failures at their own boundary, keep the message
in ``last_error`` and return a success signal. The exception is
``get_or_create_payroll_cycle``, which raises after recording the error.
"""

from __future__ import annotations

import logging
from typing import Sequence
from uuid import UUID

from payroll_signoff.config import Settings
from payroll_signoff.models import (
    EmployeePayrollLock,
    PayrollCycle,
    PayrollLockRequirement,
    utcnow,
)
from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.errors import (
    EligibilityCheckUnavailable,
    InvalidTransitionError,
    LockValidationError,
    PayrollNotFoundError,
    PayrollPreconditionError,
)
from payroll_signoff.services.snapshot_service import SnapshotService
from payroll_signoff.services.state_machine import (
    CycleStateMachine,
    CycleStatus,
    derive_status,
    is_finalized,
)
from payroll_signoff.services.store import PayrollStore
from payroll_signoff.services.types import (
    AuditAction,
    BulkLockResult,
    LockEligibility,
    LockOutcome,
    LockRole,
    LockStats,
)

logger = logging.getLogger(__name__)


class PayrollFinalizationService:
    """Service for the lock / sign-off / revert lifecycle of a payroll cycle.

    Operations:
    - get_or_create_payroll_cycle: fetch or lazily open a month
    - toggle_lock / bulk_lock: per-employee HR or Finance locks
    - hr_signoff / finance_signoff: close a stage once all employees are locked
    - revert_payroll: administrative reset of both sign-offs
    """

    def __init__(
        self,
        store: PayrollStore,
        start: PayrollMonth,
        actor_user_id: UUID | None = None,
        strict_eligibility_checks: bool = False,
        snapshots: SnapshotService | None = None,
    ):
        self.store = store
        self.start = start
        self.actor_user_id = actor_user_id
        self.strict_eligibility_checks = strict_eligibility_checks
        self.snapshots = snapshots or SnapshotService(store)
        self.last_error: str | None = None
        self.last_missing_fields: list[str] = []

    @classmethod
    def from_settings(
        cls,
        store: PayrollStore,
        settings: Settings,
        actor_user_id: UUID | None = None,
    ) -> PayrollFinalizationService:
        return cls(
            store,
            start=settings.company_start,
            actor_user_id=actor_user_id,
            strict_eligibility_checks=settings.strict_eligibility_checks,
        )

    def _fail(self, message: str) -> None:
        self.last_error = message
        logger.warning(message)

    # ===== Cycles =====

    async def is_month_accessible(self, month: int, year: int) -> bool:
        """Whether a cycle may exist for ``month/year``.

        Reads only the preceding month's cycle from the store.
        """
        target = PayrollMonth.of(month, year)
        if target < self.start:
            return False
        if target == self.start:
            return True
        previous = await self.store.get_cycle_for_month(target.previous())
        return is_finalized(previous)

    async def get_or_create_payroll_cycle(self, month: int, year: int) -> PayrollCycle:
        """Return the cycle for ``month/year``, creating it if allowed.

        This is the only place cycles are created. Creation requires the
        month to be accessible; otherwise ``PayrollPreconditionError`` is
        raised.
        """
        self.last_error = None
        target = PayrollMonth.of(month, year)
        try:
            existing = await self.store.get_cycle_for_month(target)
            if existing is not None:
                return existing

            if not await self.is_month_accessible(month, year):
                raise PayrollPreconditionError(
                    f"Cannot create payroll for {target}: "
                    "Previous month must be finalized first"
                )

            cycle = await self.store.insert_cycle(target)
        except Exception as exc:
            self.last_error = str(exc)
            logger.warning("get_or_create_payroll_cycle(%s) failed: %s", target, exc)
            raise

        await self.store.append_audit(
            AuditAction.PAYROLL_CREATED,
            payroll_id=cycle.id,
            performed_by=self.actor_user_id,
            details={"month": month, "year": year},
        )
        logger.info("Opened payroll cycle %s", target.label)
        return cycle

    async def get_all_payroll_cycles(self) -> list[PayrollCycle]:
        """All cycles, newest first; empty on failure."""
        try:
            return await self.store.list_cycles(ascending=False)
        except Exception as exc:
            logger.exception("Error loading payroll cycles")
            self.last_error = str(exc)
            return []

    async def get_hr_signed_payrolls(self) -> list[PayrollCycle]:
        """Cycles awaiting Finance, newest first."""
        try:
            cycles = await self.store.list_cycles(ascending=False)
        except Exception as exc:
            logger.exception("Error loading HR-signed payrolls")
            self.last_error = str(exc)
            return []
        return [c for c in cycles if derive_status(c).status == CycleStatus.HR_SIGNED]

    async def _require_cycle(self, cycle_id: UUID) -> PayrollCycle:
        cycle = await self.store.get_cycle(cycle_id)
        if cycle is None:
            raise PayrollNotFoundError("Payroll not found")
        return cycle

    # ===== Lock stats =====

    async def get_payroll_lock_stats(self, cycle_id: UUID) -> LockStats | None:
        try:
            return await self.store.lock_stats(cycle_id)
        except Exception as exc:
            logger.exception("Error loading lock stats for %s", cycle_id)
            self.last_error = str(exc)
            return None

    async def get_employee_locks(self, cycle_id: UUID) -> list[EmployeePayrollLock]:
        try:
            return await self.store.list_locks(cycle_id)
        except Exception as exc:
            logger.exception("Error loading employee locks for %s", cycle_id)
            self.last_error = str(exc)
            return []

    # ===== Locks =====

    async def validate_lock(
        self,
        role: LockRole,
        employee_id: UUID,
        cycle_id: UUID | None = None,
    ) -> LockEligibility:
        """Ask the store whether ``employee_id`` may be locked by ``role``.

        A store that cannot evaluate eligibility at all allows the lock,
        unless ``strict_eligibility_checks`` is set.
        """
        try:
            return await self.store.check_lock_eligibility(role, employee_id, cycle_id)
        except EligibilityCheckUnavailable:
            if self.strict_eligibility_checks:
                logger.warning(
                    "%s eligibility check unavailable, refusing lock", role.label
                )
                return LockEligibility(
                    can_lock=False, missing_fields=["eligibility check unavailable"]
                )
            logger.warning("%s eligibility check unavailable, allowing lock", role.label)
            return LockEligibility.allowed()

    async def _write_lock(
        self,
        role: LockRole,
        employee_id: UUID,
        cycle_id: UUID,
        lock: bool,
    ) -> LockOutcome:
        """Validate then write one employee's lock flag.

        Raises ``LockValidationError`` when locking an ineligible employee.
        Backend errors propagate to the caller.
        """
        if lock:
            eligibility = await self.validate_lock(role, employee_id, cycle_id)
            if not eligibility.can_lock:
                raise LockValidationError(eligibility.missing_fields)

        prefix = role.value
        values = {
            f"{prefix}_locked": lock,
            f"{prefix}_locked_by": self.actor_user_id if lock else None,
            f"{prefix}_locked_at": utcnow() if lock else None,
        }

        existing = await self.store.get_lock(employee_id, cycle_id)
        if existing is not None:
            await self.store.update_lock(existing.id, **values)
        elif lock:
            await self.store.insert_lock(employee_id, cycle_id, **values)
        # Unlocking an employee that was never locked leaves no row behind
        return LockOutcome.SUCCESS

    async def _require_unfinalized(self, cycle_id: UUID) -> PayrollCycle:
        cycle = await self._require_cycle(cycle_id)
        status = derive_status(cycle).status
        if not CycleStateMachine.can_modify_locks(status):
            raise PayrollPreconditionError(
                f"Payroll {PayrollMonth.from_cycle(cycle)} is finalized; locks cannot change"
            )
        return cycle

    async def toggle_lock(
        self,
        role: LockRole,
        employee_id: UUID,
        cycle_id: UUID,
        currently_locked: bool,
    ) -> bool:
        """Flip one employee's ``role`` lock. Returns True on success."""
        self.last_error = None
        lock = not currently_locked
        self.last_missing_fields = []
        try:
            await self._require_unfinalized(cycle_id)
            await self._write_lock(role, employee_id, cycle_id, lock)
        except LockValidationError as exc:
            self.last_missing_fields = exc.missing_fields
            self._fail(str(exc))
            return False
        except (PayrollPreconditionError, PayrollNotFoundError) as exc:
            self._fail(str(exc))
            return False
        except Exception as exc:
            logger.exception("Failed to toggle %s lock for %s", role.label, employee_id)
            self.last_error = str(exc)
            return False

        await self.store.append_audit(
            AuditAction.for_toggle(role, lock),
            payroll_id=cycle_id,
            employee_id=employee_id,
            performed_by=self.actor_user_id,
        )
        return True

    async def toggle_hr_lock(
        self, employee_id: UUID, cycle_id: UUID, currently_locked: bool
    ) -> bool:
        return await self.toggle_lock(LockRole.HR, employee_id, cycle_id, currently_locked)

    async def toggle_finance_lock(
        self, employee_id: UUID, cycle_id: UUID, currently_locked: bool
    ) -> bool:
        return await self.toggle_lock(LockRole.FINANCE, employee_id, cycle_id, currently_locked)

    async def _bulk_outcome(
        self,
        role: LockRole,
        employee_id: UUID,
        cycle_id: UUID,
        lock: bool,
    ) -> LockOutcome:
        try:
            return await self._write_lock(role, employee_id, cycle_id, lock)
        except LockValidationError as exc:
            logger.info("Skipping %s lock for %s: %s", role.label, employee_id, exc)
            return LockOutcome.SKIPPED
        except Exception:
            logger.exception("Bulk %s lock failed for %s", role.label, employee_id)
            return LockOutcome.FAILED

    async def bulk_lock(
        self,
        role: LockRole,
        cycle_id: UUID,
        employee_ids: Sequence[UUID],
        lock: bool,
    ) -> BulkLockResult:
        """Lock or unlock every employee in ``employee_ids``, one at a time.

        Each employee ends in exactly one of success, skipped (failed the
        eligibility check) or failed (backend error); one employee's
        failure never stops the batch. A single audit entry summarises
        the run.
        """
        self.last_error = None
        try:
            await self._require_unfinalized(cycle_id)
        except Exception as exc:
            self._fail(str(exc))
            return BulkLockResult(failed=len(employee_ids))

        tally = BulkLockResult()
        for employee_id in employee_ids:
            tally = tally.add(await self._bulk_outcome(role, employee_id, cycle_id, lock))

        await self.store.append_audit(
            AuditAction.for_bulk(role, lock),
            payroll_id=cycle_id,
            performed_by=self.actor_user_id,
            details={"total": len(employee_ids), **tally.to_dict()},
        )
        logger.info(
            "Bulk %s %s for %s: %s",
            role.label,
            "lock" if lock else "unlock",
            cycle_id,
            tally.to_dict(),
        )
        return tally

    async def bulk_hr_lock(
        self, cycle_id: UUID, employee_ids: Sequence[UUID], lock: bool
    ) -> BulkLockResult:
        return await self.bulk_lock(LockRole.HR, cycle_id, employee_ids, lock)

    async def bulk_finance_lock(
        self, cycle_id: UUID, employee_ids: Sequence[UUID], lock: bool
    ) -> BulkLockResult:
        return await self.bulk_lock(LockRole.FINANCE, cycle_id, employee_ids, lock)

    # ===== Sign-offs =====

    async def hr_signoff(self, cycle_id: UUID) -> bool:
        """Stamp the HR sign-off once every active employee is HR-locked."""
        self.last_error = None
        try:
            cycle = await self._require_cycle(cycle_id)
            CycleStateMachine.validate_transition(
                derive_status(cycle).status, CycleStatus.HR_SIGNED
            )
            if not await self.store.can_hr_signoff(cycle_id):
                raise PayrollPreconditionError("Cannot sign off: Not all employees are locked")

            await self.store.update_cycle(
                cycle_id,
                status=CycleStatus.HR_SIGNED.value,
                hr_signoff_by=self.actor_user_id,
                hr_signoff_at=utcnow(),
            )
        except (PayrollPreconditionError, PayrollNotFoundError, InvalidTransitionError) as exc:
            self._fail(str(exc))
            return False
        except Exception as exc:
            logger.exception("HR sign-off failed for %s", cycle_id)
            self.last_error = str(exc)
            return False

        await self.store.append_audit(
            AuditAction.HR_SIGNOFF,
            payroll_id=cycle_id,
            performed_by=self.actor_user_id,
        )
        logger.info("HR signed off payroll %s", PayrollMonth.from_cycle(cycle).label)
        return True

    async def _check_previous_finalized(self, month: PayrollMonth) -> None:
        if month == self.start:
            return
        previous = month.previous()
        if not is_finalized(await self.store.get_cycle_for_month(previous)):
            raise PayrollPreconditionError(
                f"Cannot finalize: Previous month ({previous}) must be finalized first"
            )

    async def finance_signoff(self, cycle_id: UUID) -> bool:
        """Finalize the cycle and write its snapshot.

        Requires the previous month finalized and every active employee
        Finance-locked. The HR sign-off is not required.
        """
        self.last_error = None
        try:
            cycle = await self._require_cycle(cycle_id)
            month = PayrollMonth.from_cycle(cycle)
            CycleStateMachine.validate_transition(
                derive_status(cycle).status, CycleStatus.FINALIZED
            )
            await self._check_previous_finalized(month)

            stats = await self.store.lock_stats(cycle_id)
            if not stats.can_finance_signoff:
                raise PayrollPreconditionError(
                    "Cannot sign off: Not all employees are locked by Finance "
                    f"({stats.finance_locked_count}/{stats.total_employees})"
                )

            await self.store.update_cycle(
                cycle_id,
                status=CycleStatus.FINALIZED.value,
                finance_signoff_by=self.actor_user_id,
                finance_signoff_at=utcnow(),
            )
        except (PayrollPreconditionError, PayrollNotFoundError, InvalidTransitionError) as exc:
            self._fail(str(exc))
            return False
        except Exception as exc:
            logger.exception("Finance sign-off failed for %s", cycle_id)
            self.last_error = str(exc)
            return False

        await self.store.append_audit(
            AuditAction.PAYROLL_FINALIZED,
            payroll_id=cycle_id,
            performed_by=self.actor_user_id,
            details={"month": month.month, "year": month.year},
        )
        logger.info("Finance finalized payroll %s", month.label)

        # The sign-off stands even if the snapshot cannot be written
        try:
            await self.snapshots.generate_snapshot(month, self.actor_user_id)
        except Exception as exc:
            logger.exception("Snapshot generation failed for %s", month.label)
            self.last_error = f"Payroll finalized but snapshot generation failed: {exc}"
        return True

    async def revert_payroll(self, cycle_id: UUID, reason: str) -> bool:
        """Clear both sign-offs and record who reverted and why.

        Employee locks are left exactly as they are.
        """
        self.last_error = None
        reason = (reason or "").strip()
        try:
            if not reason:
                raise PayrollPreconditionError("A reason is required to revert a payroll")
            cycle = await self._require_cycle(cycle_id)
            from_status = derive_status(cycle).status
            if not CycleStateMachine.is_revert(from_status, CycleStatus.PENDING):
                raise InvalidTransitionError(
                    from_status, CycleStatus.PENDING, "Payroll has not been signed off"
                )

            await self.store.update_cycle(
                cycle_id,
                status=CycleStatus.PENDING.value,
                hr_signoff_by=None,
                hr_signoff_at=None,
                finance_signoff_by=None,
                finance_signoff_at=None,
                reverted_by=self.actor_user_id,
                reverted_at=utcnow(),
                reversion_reason=reason,
            )
        except (PayrollPreconditionError, PayrollNotFoundError, InvalidTransitionError) as exc:
            self._fail(str(exc))
            return False
        except Exception as exc:
            logger.exception("Revert failed for %s", cycle_id)
            self.last_error = str(exc)
            return False

        await self.store.append_audit(
            AuditAction.PAYROLL_REVERTED,
            payroll_id=cycle_id,
            performed_by=self.actor_user_id,
            details={"reason": reason, "from_status": from_status.value},
        )
        logger.info(
            "Payroll %s reverted from %s", PayrollMonth.from_cycle(cycle).label, from_status.value
        )
        return True

    # ===== Lock requirements =====

    async def get_lock_requirements(self) -> list[PayrollLockRequirement]:
        try:
            return await self.store.list_lock_requirements()
        except Exception as exc:
            logger.exception("Error loading lock requirements")
            self.last_error = str(exc)
            return []

    async def update_lock_requirement(
        self,
        field_name: str,
        required_for_hr: bool,
        required_for_finance: bool,
        display_name: str | None = None,
    ) -> bool:
        self.last_error = None
        try:
            await self.store.upsert_lock_requirement(
                field_name,
                display_name=display_name,
                required_for_hr_lock=required_for_hr,
                required_for_finance_lock=required_for_finance,
            )
        except Exception as exc:
            logger.exception("Error updating lock requirement %s", field_name)
            self.last_error = str(exc)
            return False
        return True
