"""Monthly payroll lock, sign-off and finalization service."""

__version__ = "0.1.0"
