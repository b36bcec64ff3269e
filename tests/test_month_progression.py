"""Tests for active-month derivation and month navigation."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.month_progression import (
    PayrollMonthNavigator,
    active_month,
    cycle_status,
    is_month_accessible,
)
from payroll_signoff.services.state_machine import CycleStatus

START = PayrollMonth.of(10, 2025)
NOW = datetime(2025, 11, 1, tzinfo=timezone.utc)


def cycle(month: int, year: int, finalized: bool = False, hr_signed: bool = False):
    return SimpleNamespace(
        month=month,
        year=year,
        status="finalized" if finalized else "pending",
        hr_signoff_by=None,
        hr_signoff_at=NOW if (hr_signed or finalized) else None,
        finance_signoff_by=None,
        finance_signoff_at=NOW if finalized else None,
    )


class TestActiveMonth:
    """The open month is one past the latest finalized cycle."""

    def test_no_cycles_is_company_start(self):
        assert active_month([], START) == START

    def test_only_pending_cycles_is_company_start(self):
        assert active_month([cycle(10, 2025, hr_signed=True)], START) == START

    def test_month_after_latest_finalized(self):
        cycles = [cycle(10, 2025, finalized=True), cycle(11, 2025, finalized=True)]
        assert active_month(cycles, START) == PayrollMonth.of(12, 2025)

    def test_year_rollover(self):
        """Finalizing December opens January of the next year."""
        cycles = [cycle(m, 2025, finalized=True) for m in (10, 11, 12)]
        assert active_month(cycles, START) == PayrollMonth.of(1, 2026)

    def test_order_of_history_does_not_matter(self):
        cycles = [
            cycle(1, 2026, finalized=True),
            cycle(10, 2025, finalized=True),
            cycle(12, 2025, finalized=True),
            cycle(11, 2025, finalized=True),
        ]
        assert active_month(cycles, START) == PayrollMonth.of(2, 2026)

    def test_status_column_alone_does_not_advance(self):
        stale = cycle(10, 2025)
        stale.status = "finalized"
        assert active_month([stale], START) == START


class TestMonthAccessibility:
    def test_before_start_is_never_accessible(self):
        cycles = [cycle(9, 2025, finalized=True)]
        assert is_month_accessible(PayrollMonth.of(9, 2025), cycles, START) is False

    def test_start_is_always_accessible(self):
        assert is_month_accessible(START, [], START) is True

    def test_later_month_needs_previous_finalized(self):
        nov = PayrollMonth.of(11, 2025)
        assert is_month_accessible(nov, [], START) is False
        assert is_month_accessible(nov, [cycle(10, 2025, hr_signed=True)], START) is False
        assert is_month_accessible(nov, [cycle(10, 2025, finalized=True)], START) is True

    def test_january_needs_december(self):
        jan = PayrollMonth.of(1, 2026)
        assert is_month_accessible(jan, [cycle(12, 2025, finalized=True)], START) is True
        assert is_month_accessible(jan, [cycle(11, 2025, finalized=True)], START) is False

    def test_missing_cycle_reads_as_pending(self):
        assert cycle_status([], START).status == CycleStatus.PENDING


class TestPayrollMonthNavigator:
    """Selected month follows the active month until the user navigates."""

    def make(self, cycles):
        navigator = PayrollMonthNavigator(START)
        navigator.load(cycles)
        return navigator

    def test_first_load_selects_active(self):
        navigator = self.make([cycle(10, 2025, finalized=True)])
        assert navigator.active == PayrollMonth.of(11, 2025)
        assert navigator.selected == navigator.active
        assert navigator.is_viewing_active is True
        assert navigator.selected_status == CycleStatus.PENDING

    def test_cannot_go_past_active(self):
        navigator = self.make([cycle(10, 2025, finalized=True)])
        assert navigator.can_go_next is False
        assert navigator.go_to_next_month() is False
        assert navigator.selected == PayrollMonth.of(11, 2025)

    def test_cannot_go_before_start(self):
        navigator = self.make([])
        assert navigator.can_go_prev is False
        assert navigator.go_to_prev_month() is False
        assert navigator.selected == START

    def test_back_and_forth_through_finalized_history(self):
        navigator = self.make(
            [cycle(10, 2025, finalized=True), cycle(11, 2025, finalized=True)]
        )
        assert navigator.selected == PayrollMonth.of(12, 2025)

        assert navigator.go_to_prev_month() is True
        assert navigator.selected == PayrollMonth.of(11, 2025)
        assert navigator.is_viewing_finalized is True
        assert navigator.go_to_prev_month() is True
        assert navigator.selected == START
        assert navigator.can_go_prev is False

        assert navigator.go_to_next_month() is True
        assert navigator.go_to_next_month() is True
        assert navigator.selected == navigator.active

    def test_go_to_month_only_reaches_active_or_finalized(self):
        navigator = self.make([cycle(10, 2025, finalized=True)])
        assert navigator.go_to_month(12, 2025) is False
        assert navigator.go_to_month(9, 2025) is False
        assert navigator.go_to_month(13, 2025) is False
        assert navigator.selected == PayrollMonth.of(11, 2025)

        assert navigator.go_to_month(10, 2025) is True
        assert navigator.selected == START

    def test_reload_follows_active_unless_navigated(self):
        navigator = self.make([])
        navigator.load([cycle(10, 2025, finalized=True)])
        assert navigator.selected == PayrollMonth.of(11, 2025)

        navigator.go_to_month(10, 2025)
        navigator.load(
            [cycle(10, 2025, finalized=True), cycle(11, 2025, finalized=True)]
        )
        assert navigator.active == PayrollMonth.of(12, 2025)
        assert navigator.selected == START

        navigator.go_to_active_month()
        assert navigator.selected == PayrollMonth.of(12, 2025)

    async def test_refresh_keeps_history_on_loader_error(self):
        calls = []

        async def loader():
            calls.append(1)
            if len(calls) > 1:
                raise ConnectionError("database unavailable")
            return [cycle(10, 2025, finalized=True)]

        navigator = PayrollMonthNavigator(START, loader=loader)
        await navigator.refresh()
        assert navigator.active == PayrollMonth.of(11, 2025)

        await navigator.refresh()
        assert navigator.active == PayrollMonth.of(11, 2025)
        assert len(navigator.cycles) == 1

    async def test_refresh_without_loader(self):
        with pytest.raises(RuntimeError):
            await PayrollMonthNavigator(START).refresh()
