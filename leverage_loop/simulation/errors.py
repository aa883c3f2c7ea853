"""Failures raised by the in-memory collaborators."""
from __future__ import annotations


class SimulationError(Exception):
    """Base class for simulated ledger failures."""


class InsufficientBalance(SimulationError):
    """A holder tried to move more than it owns."""


class InsufficientAllowance(SimulationError):
    """A spender tried to move more than it was approved for."""


class HealthCheckFailed(SimulationError):
    """A borrow or withdrawal would leave the account undercollateralised."""


class LoanNotSettled(SimulationError):
    """The loan receiver declined to settle a short-term loan."""
