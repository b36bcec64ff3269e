"""Tests for the lock / sign-off / revert workflow."""

import pytest
from sqlalchemy import func, select

from payroll_signoff.database import session_scope
from payroll_signoff.models import PayrollReport
from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.errors import PayrollPreconditionError
from payroll_signoff.services.finalization_service import PayrollFinalizationService
from payroll_signoff.services.snapshot_service import SNAPSHOT_REPORT_TYPE, SnapshotService
from payroll_signoff.services.state_machine import CycleStatus, derive_status, is_finalized
from payroll_signoff.services.store import PayrollStore
from payroll_signoff.services.types import AuditAction, LockRole

from tests.conftest import COMPANY_START, FINANCE_USER_ID, add_cycle

NOVEMBER = PayrollMonth.of(11, 2025)


async def lock_all(service, role, cycle_id, employee_ids):
    for employee_id in employee_ids:
        assert await service.toggle_lock(role, employee_id, cycle_id, currently_locked=False)


async def count_snapshots(session_factory, month: PayrollMonth) -> int:
    async with session_scope(session_factory) as session:
        return await session.scalar(
            select(func.count())
            .select_from(PayrollReport)
            .where(
                PayrollReport.month == month.month,
                PayrollReport.year == month.year,
                PayrollReport.report_type == SNAPSHOT_REPORT_TYPE,
            )
        )


class TestGetOrCreateCycle:
    """Cycles are created lazily, one month at a time."""

    async def test_start_month_is_created_pending(self, service, store):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)

        assert (cycle.month, cycle.year) == (10, 2025)
        assert cycle.status == "pending"
        assert cycle.hr_signoff_at is None
        assert cycle.finance_signoff_at is None

        audit = await store.list_audit(cycle.id)
        assert [a.action_type for a in audit] == [AuditAction.PAYROLL_CREATED.value]

    async def test_existing_cycle_is_returned(self, service, store):
        first = await service.get_or_create_payroll_cycle(10, 2025)
        second = await service.get_or_create_payroll_cycle(10, 2025)
        assert first.id == second.id
        assert len(await store.list_cycles()) == 1

    async def test_next_month_requires_previous_finalized(self, service, store):
        await service.get_or_create_payroll_cycle(10, 2025)

        with pytest.raises(PayrollPreconditionError, match="Previous month must be finalized"):
            await service.get_or_create_payroll_cycle(11, 2025)

        assert "11/2025" in service.last_error
        assert await store.get_cycle_for_month(NOVEMBER) is None

    async def test_month_before_start_is_refused(self, service):
        with pytest.raises(PayrollPreconditionError):
            await service.get_or_create_payroll_cycle(9, 2025)

    async def test_next_month_opens_after_finalization(self, service, session_factory):
        await add_cycle(session_factory, COMPANY_START, finalized=True)

        cycle = await service.get_or_create_payroll_cycle(11, 2025)
        assert (cycle.month, cycle.year) == (11, 2025)
        assert await service.is_month_accessible(12, 2025) is False


class TestToggleLock:
    async def test_lock_and_unlock(self, service, store, active_ids):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        employee_id = active_ids[0]

        assert await service.toggle_hr_lock(employee_id, cycle.id, currently_locked=False)
        lock = await store.get_lock(employee_id, cycle.id)
        assert lock.hr_locked is True
        assert lock.hr_locked_by == service.actor_user_id
        assert lock.hr_locked_at is not None
        assert lock.finance_locked is False

        assert await service.toggle_hr_lock(employee_id, cycle.id, currently_locked=True)
        lock = await store.get_lock(employee_id, cycle.id)
        assert lock.hr_locked is False
        assert lock.hr_locked_by is None
        assert lock.hr_locked_at is None

        actions = [a.action_type for a in await store.list_audit(cycle.id)]
        assert actions.count("hr_lock") == 1
        assert actions.count("hr_unlock") == 1

    async def test_unlock_without_row_inserts_nothing(self, service, store, active_ids):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        assert await service.toggle_finance_lock(active_ids[0], cycle.id, currently_locked=True)
        assert await store.get_lock(active_ids[0], cycle.id) is None

    async def test_hr_and_finance_locks_are_independent(self, service, store, active_ids):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        await service.toggle_finance_lock(active_ids[0], cycle.id, currently_locked=False)

        lock = await store.get_lock(active_ids[0], cycle.id)
        assert lock.finance_locked is True
        assert lock.hr_locked is False

    async def test_stats_ignore_inactive_employees(self, service, employees, active_ids):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        inactive = next(e for e in employees if not e.is_active)
        await service.toggle_hr_lock(inactive.id, cycle.id, currently_locked=False)
        await service.toggle_hr_lock(active_ids[0], cycle.id, currently_locked=False)

        stats = await service.get_payroll_lock_stats(cycle.id)
        assert stats.total_employees == 3
        assert stats.hr_locked_count == 1
        assert stats.can_hr_signoff is False

    async def test_locks_frozen_on_finalized_cycle(
        self, service, store, session_factory, active_ids
    ):
        cycle = await add_cycle(session_factory, COMPANY_START, finalized=True)

        assert await service.toggle_hr_lock(active_ids[0], cycle.id, False) is False
        assert "finalized" in service.last_error
        assert await store.get_lock(active_ids[0], cycle.id) is None

    async def test_missing_required_field_blocks_lock(self, service, store, employees):
        await store.upsert_lock_requirement(
            "designation",
            display_name="Designation",
            required_for_hr_lock=True,
            required_for_finance_lock=False,
        )
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        no_designation = next(e for e in employees if e.employee_id == "EMP003")

        assert await service.toggle_hr_lock(no_designation.id, cycle.id, False) is False
        assert service.last_missing_fields == ["Designation"]
        assert "Missing required fields: Designation" in service.last_error

        # The requirement is HR-only
        assert await service.toggle_finance_lock(no_designation.id, cycle.id, False) is True

    async def test_missing_payroll_row_counts_as_missing(self, service, store, active_ids):
        await store.upsert_lock_requirement(
            "payment_status",
            display_name="Payment Status",
            required_for_hr_lock=False,
            required_for_finance_lock=True,
        )
        cycle = await service.get_or_create_payroll_cycle(10, 2025)

        assert await service.toggle_finance_lock(active_ids[0], cycle.id, False) is False
        assert service.last_missing_fields == ["Payment Status"]

        await store.insert_payroll_row(active_ids[0], COMPANY_START, {})
        assert await service.toggle_finance_lock(active_ids[0], cycle.id, False) is True


class TestEligibilityFallback:
    """A store that cannot check eligibility allows locks unless strict."""

    async def test_unavailable_check_allows_lock(self, session_factory, active_ids):
        store = PayrollStore(session_factory, eligibility_checks=False)
        service = PayrollFinalizationService(store, COMPANY_START)
        cycle = await service.get_or_create_payroll_cycle(10, 2025)

        assert await service.toggle_hr_lock(active_ids[0], cycle.id, False) is True

    async def test_strict_mode_refuses_lock(self, session_factory, active_ids):
        store = PayrollStore(session_factory, eligibility_checks=False)
        service = PayrollFinalizationService(
            store, COMPANY_START, strict_eligibility_checks=True
        )
        cycle = await service.get_or_create_payroll_cycle(10, 2025)

        assert await service.toggle_hr_lock(active_ids[0], cycle.id, False) is False
        assert service.last_missing_fields == ["eligibility check unavailable"]

    async def test_unlock_skips_eligibility(self, session_factory, active_ids):
        store = PayrollStore(session_factory, eligibility_checks=False)
        service = PayrollFinalizationService(
            store, COMPANY_START, strict_eligibility_checks=True
        )
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        assert await service.toggle_hr_lock(active_ids[0], cycle.id, True) is True


class TestHrSignoff:
    async def test_requires_every_active_employee_locked(self, service, active_ids):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        await lock_all(service, LockRole.HR, cycle.id, active_ids[:-1])

        assert await service.hr_signoff(cycle.id) is False
        assert service.last_error == "Cannot sign off: Not all employees are locked"

    async def test_no_active_employees_cannot_sign(self, service):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        assert await service.hr_signoff(cycle.id) is False

    async def test_signoff_stamps_cycle(self, service, store, active_ids):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        await lock_all(service, LockRole.HR, cycle.id, active_ids)

        assert await service.hr_signoff(cycle.id) is True
        cycle = await store.get_cycle(cycle.id)
        assert cycle.status == "hr_signed"
        assert cycle.hr_signoff_by == service.actor_user_id
        assert derive_status(cycle).status == CycleStatus.HR_SIGNED

        hr_signed = await service.get_hr_signed_payrolls()
        assert [c.id for c in hr_signed] == [cycle.id]

    async def test_cannot_sign_twice(self, service, active_ids):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        await lock_all(service, LockRole.HR, cycle.id, active_ids)
        assert await service.hr_signoff(cycle.id) is True

        assert await service.hr_signoff(cycle.id) is False
        assert "Invalid transition" in service.last_error


class TestFinanceSignoff:
    async def test_finalizes_and_writes_snapshot(self, store, session_factory, active_ids):
        service = PayrollFinalizationService(
            store, COMPANY_START, actor_user_id=FINANCE_USER_ID
        )
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        await lock_all(service, LockRole.HR, cycle.id, active_ids)
        assert await service.hr_signoff(cycle.id)
        await lock_all(service, LockRole.FINANCE, cycle.id, active_ids)

        assert await service.finance_signoff(cycle.id) is True
        assert service.last_error is None

        cycle = await store.get_cycle(cycle.id)
        assert is_finalized(cycle)
        assert cycle.status == "finalized"
        assert cycle.finance_signoff_by == FINANCE_USER_ID

        snapshot = await SnapshotService(store).get_snapshot(COMPANY_START)
        assert snapshot is not None
        assert snapshot.total_employees == 3
        assert snapshot.report_name == "Payroll Report - October 2025"
        assert snapshot.finance_approved_by == FINANCE_USER_ID
        assert await count_snapshots(session_factory, COMPANY_START) == 1

        # Regenerating replaces the record rather than adding another
        await SnapshotService(store).generate_snapshot(COMPANY_START, FINANCE_USER_ID)
        assert await count_snapshots(session_factory, COMPANY_START) == 1

        # The next month can now be opened
        assert await service.is_month_accessible(11, 2025) is True

    async def test_hr_signoff_not_required(self, service, active_ids):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        await lock_all(service, LockRole.FINANCE, cycle.id, active_ids)

        assert await service.finance_signoff(cycle.id) is True

    async def test_requires_every_finance_lock(self, service, active_ids):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        await lock_all(service, LockRole.FINANCE, cycle.id, active_ids[:1])

        assert await service.finance_signoff(cycle.id) is False
        assert "(1/3)" in service.last_error

    async def test_requires_previous_month_finalized(
        self, service, store, session_factory, active_ids
    ):
        await add_cycle(session_factory, COMPANY_START, hr_signed=True)
        november = await add_cycle(session_factory, NOVEMBER)
        await lock_all(service, LockRole.FINANCE, november.id, active_ids)

        assert await service.finance_signoff(november.id) is False
        assert service.last_error == (
            "Cannot finalize: Previous month (10/2025) must be finalized first"
        )
        assert not is_finalized(await store.get_cycle(november.id))

    async def test_snapshot_failure_keeps_signoff(self, store, active_ids):
        class BrokenSnapshots(SnapshotService):
            async def generate_snapshot(self, month, actor_user_id=None):
                raise RuntimeError("disk full")

        service = PayrollFinalizationService(
            store, COMPANY_START, snapshots=BrokenSnapshots(store)
        )
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        await lock_all(service, LockRole.FINANCE, cycle.id, active_ids)

        assert await service.finance_signoff(cycle.id) is True
        assert "snapshot generation failed" in service.last_error
        assert is_finalized(await store.get_cycle(cycle.id))


class TestRevert:
    async def test_revert_clears_signoffs_and_keeps_locks(self, service, store, active_ids):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        await lock_all(service, LockRole.HR, cycle.id, active_ids)
        await lock_all(service, LockRole.FINANCE, cycle.id, active_ids)
        assert await service.hr_signoff(cycle.id)
        assert await service.finance_signoff(cycle.id)

        locks_before = {lock.id: lock.to_dict() for lock in await store.list_locks(cycle.id)}
        assert await service.revert_payroll(cycle.id, "Wrong incentive for EMP002") is True

        cycle = await store.get_cycle(cycle.id)
        assert cycle.status == "pending"
        assert cycle.hr_signoff_at is None
        assert cycle.finance_signoff_at is None
        assert cycle.reversion_reason == "Wrong incentive for EMP002"
        assert cycle.reverted_at is not None

        stats = await service.get_payroll_lock_stats(cycle.id)
        assert stats.hr_locked_count == 3
        assert stats.finance_locked_count == 3
        locks_after = {lock.id: lock.to_dict() for lock in await store.list_locks(cycle.id)}
        assert locks_after == locks_before

        reverted = [
            a for a in await store.list_audit(cycle.id) if a.action_type == "payroll_reverted"
        ]
        assert reverted[0].details == {
            "reason": "Wrong incentive for EMP002",
            "from_status": "finalized",
        }

    async def test_reason_required(self, service, session_factory):
        cycle = await add_cycle(session_factory, COMPANY_START, finalized=True)
        assert await service.revert_payroll(cycle.id, "   ") is False
        assert "reason" in service.last_error

    async def test_pending_cycle_cannot_be_reverted(self, service):
        cycle = await service.get_or_create_payroll_cycle(10, 2025)
        assert await service.revert_payroll(cycle.id, "mistake") is False

    async def test_revert_closes_later_month(self, service, session_factory):
        """Reverting the last finalized month moves the active month back."""
        october = await add_cycle(session_factory, COMPANY_START, finalized=True)
        assert await service.is_month_accessible(11, 2025) is True

        assert await service.revert_payroll(october.id, "reopen") is True
        assert await service.is_month_accessible(11, 2025) is False
