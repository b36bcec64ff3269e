"""Exceptions raised by the payroll services."""

from __future__ import annotations


class PayrollError(Exception):
    """Base class for payroll workflow errors."""


class PayrollNotFoundError(PayrollError):
    """Raised when a payroll cycle does not exist."""


class PayrollPreconditionError(PayrollError):
    """Raised when an action is attempted out of sequence.

    Examples: creating a cycle whose previous month is not finalized, or
    signing off before every employee is locked. Callers must not retry
    blindly.
    """


class InvalidTransitionError(PayrollError):
    """Raised when an invalid cycle status transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = getattr(from_status, "value", from_status)
        self.to_status = getattr(to_status, "value", to_status)
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class LockValidationError(PayrollError):
    """Raised when an employee fails the lock eligibility check."""

    def __init__(self, missing_fields: list[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(
            "Cannot lock employee. Missing required fields: "
            + ", ".join(self.missing_fields)
        )


class EligibilityCheckUnavailable(PayrollError):
    """Raised by a store that cannot evaluate lock eligibility at all."""


class FieldAccessDeniedError(PayrollError):
    """Raised when a role edits a field it has no edit access to."""

    def __init__(self, field_name: str, role: str):
        self.field_name = field_name
        self.role = getattr(role, "value", role)
        super().__init__(f"Role '{self.role}' may not edit field {field_name!r}")
