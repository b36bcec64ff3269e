"""HTTP API for the payroll sign-off service."""
