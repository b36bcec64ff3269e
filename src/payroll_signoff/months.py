"""Calendar month arithmetic for payroll cycles."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from typing import Any

MONTH_NAMES = tuple(calendar.month_name)[1:]


def month_name(month: int) -> str:
    """Return the English month name for 1-12, or '' when out of range."""
    if 1 <= month <= 12:
        return MONTH_NAMES[month - 1]
    return ""


@dataclass(frozen=True, order=True)
class PayrollMonth:
    """A (year, month) pair. Ordering is chronological."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be in 1..12, got {self.month}")

    @classmethod
    def of(cls, month: int, year: int) -> PayrollMonth:
        """Build from the (month, year) argument order used by the API."""
        return cls(year=year, month=month)

    @classmethod
    def from_cycle(cls, cycle: Any) -> PayrollMonth:
        """Build from anything with ``month`` and ``year`` attributes."""
        return cls(year=cycle.year, month=cycle.month)

    def next(self) -> PayrollMonth:
        if self.month == 12:
            return PayrollMonth(year=self.year + 1, month=1)
        return PayrollMonth(year=self.year, month=self.month + 1)

    def previous(self) -> PayrollMonth:
        if self.month == 1:
            return PayrollMonth(year=self.year - 1, month=12)
        return PayrollMonth(year=self.year, month=self.month - 1)

    @property
    def label(self) -> str:
        return f"{month_name(self.month)} {self.year}"

    def __str__(self) -> str:
        return f"{self.month}/{self.year}"
