"""Error kinds raised by the calculator, validator and engine.

Nothing in this package catches these internally: every error aborts the
atomic pass it occurs in and reaches the caller unchanged.
"""
from __future__ import annotations


class LeverageError(Exception):
    """Base class for all leverage-loop errors."""


class InvalidAmount(LeverageError):
    """A zero or negative quantity, or an inconsistent request."""


class InvalidLoanAmount(LeverageError):
    """The loan delivered or the collateral withdrawn cannot settle the loan."""


class InvalidLeverage(LeverageError):
    """The requested leverage cannot be reached from the current position."""


class NegativeResult(LeverageError):
    """A deleverage would repay more than the debt or withdraw more than the collateral."""


class FixedPointError(LeverageError, ArithmeticError):
    """Division by zero, negative operand or uint256 overflow in WAD math."""


class Unauthorized(LeverageError):
    """Caller, loan initiator or operator mismatch."""


class InvalidAddress(LeverageError):
    """Empty or zero address where a real account is required."""


class AssetMismatch(LeverageError):
    """The loaned asset is not the asset the pending operation expects."""


class SwapFailed(LeverageError):
    """The conversion venue reported failure or delivered nothing."""


class UnknownAction(LeverageError):
    """The loan callback payload carries an unknown or malformed action tag."""


class PriceUnavailable(LeverageError):
    """No usable price for an asset the planner needs."""
