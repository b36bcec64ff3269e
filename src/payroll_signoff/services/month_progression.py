"""Payroll month progression: which month is open and where a user may navigate.

The active month is never stored. It is recomputed from the full cycle
history: the month after the latest finalized cycle, or the company start
month when nothing has been finalized yet.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Sequence

from payroll_signoff.months import PayrollMonth
from payroll_signoff.services.state_machine import (
    CycleStatus,
    EffectiveStatus,
    derive_status,
    is_finalized,
)

if TYPE_CHECKING:
    from payroll_signoff.models import PayrollCycle

logger = logging.getLogger(__name__)


def find_cycle(
    cycles: Sequence[PayrollCycle], month: PayrollMonth
) -> PayrollCycle | None:
    """Return the cycle for ``month`` from a loaded history, if any."""
    for cycle in cycles:
        if cycle.month == month.month and cycle.year == month.year:
            return cycle
    return None


def active_month(cycles: Sequence[PayrollCycle], start: PayrollMonth) -> PayrollMonth:
    """Month after the chronologically last finalized cycle, else ``start``."""
    finalized = [c for c in cycles if is_finalized(c)]
    if not finalized:
        return start
    last = max(finalized, key=PayrollMonth.from_cycle)
    return PayrollMonth.from_cycle(last).next()


def is_month_accessible(
    month: PayrollMonth,
    cycles: Sequence[PayrollCycle],
    start: PayrollMonth,
) -> bool:
    """Whether a cycle may exist for ``month``.

    Months before ``start`` never are; ``start`` always is; any later month
    only when the preceding month's cycle exists and is finalized.
    """
    if month < start:
        return False
    if month == start:
        return True
    return is_finalized(find_cycle(cycles, month.previous()))


def cycle_status(cycles: Sequence[PayrollCycle], month: PayrollMonth) -> EffectiveStatus:
    """Effective status of ``month``; months without a cycle are pending."""
    return derive_status(find_cycle(cycles, month))


class PayrollMonthNavigator:
    """Selected-month state for a payroll view.

    Holds the loaded cycle history, the month being viewed and the rules
    for moving between months. The selection follows the active month
    until the user navigates by hand.
    """

    def __init__(
        self,
        start: PayrollMonth,
        loader: Callable[[], Awaitable[Sequence[PayrollCycle]]] | None = None,
    ):
        self.start = start
        self._loader = loader
        self.cycles: list[PayrollCycle] = []
        self.active: PayrollMonth = start
        self.selected: PayrollMonth = start
        self.loaded = False
        self._navigated = False

    def load(self, cycles: Sequence[PayrollCycle]) -> None:
        """Replace the cycle history and recompute the active month."""
        self.cycles = sorted(cycles, key=PayrollMonth.from_cycle)
        previous_active = self.active
        self.active = active_month(self.cycles, self.start)

        first_load = not self.loaded
        self.loaded = True
        if first_load or (self.active != previous_active and not self._navigated):
            self.selected = self.active

    async def refresh(self) -> None:
        """Reload the cycle history through the configured loader.

        A failed load is logged and leaves the previous history in place.
        """
        if self._loader is None:
            raise RuntimeError("PayrollMonthNavigator has no loader configured")
        try:
            cycles = await self._loader()
        except Exception:
            logger.exception("Error loading payroll cycles")
            return
        self.load(cycles)

    # ----- derived state -----

    @property
    def selected_status(self) -> CycleStatus:
        return cycle_status(self.cycles, self.selected).status

    @property
    def is_viewing_finalized(self) -> bool:
        return self.selected_status == CycleStatus.FINALIZED

    @property
    def is_viewing_active(self) -> bool:
        return self.selected == self.active

    @property
    def can_go_prev(self) -> bool:
        return self.selected > self.start

    @property
    def can_go_next(self) -> bool:
        if self.selected == self.active:
            return False
        return self._is_reachable(self.selected.next())

    def is_accessible(self, month: PayrollMonth) -> bool:
        return is_month_accessible(month, self.cycles, self.start)

    def _is_reachable(self, month: PayrollMonth) -> bool:
        # Only the open month and already finalized history can be viewed
        if month == self.active:
            return True
        return is_finalized(find_cycle(self.cycles, month))

    # ----- navigation -----

    def go_to_next_month(self) -> bool:
        if not self.can_go_next:
            return False
        self._select(self.selected.next())
        return True

    def go_to_prev_month(self) -> bool:
        if not self.can_go_prev:
            return False
        self._select(self.selected.previous())
        return True

    def go_to_month(self, month: int, year: int) -> bool:
        """Select ``month/year`` if it is the active month or finalized.

        Anything else is ignored; the return value says whether the
        selection changed.
        """
        try:
            target = PayrollMonth.of(month, year)
        except ValueError:
            return False
        if target < self.start or not self._is_reachable(target):
            return False
        self._select(target)
        return True

    def go_to_active_month(self) -> None:
        self.selected = self.active
        self._navigated = False

    def _select(self, month: PayrollMonth) -> None:
        self.selected = month
        self._navigated = month != self.active
