"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Action(Enum):
    """Workflow carried through the short-term loan callback."""

    LEVERAGE = "leverage"
    DELEVERAGE = "deleverage"


@dataclass(frozen=True)
class CalculatedLeverageResult:
    """Outcome of a leverage calculation (native units, WAD ratios)."""

    loan_amount: int
    swap_amount: int
    premium: int
    resulting_ltv: int
    resulting_collateral_amount: int
    resulting_debt_amount: int


@dataclass(frozen=True)
class CalculatedDeleverageResult:
    """Outcome of a deleverage calculation (native units, WAD ratios)."""

    loan_amount: int
    repay_amount: int
    premium: int
    withdraw_amount: int
    resulting_ltv: int
    resulting_collateral_amount: int
    resulting_debt_amount: int


@dataclass(frozen=True)
class LeverageRequest:
    """Parameters for one leverage pass.

    ``loan_amount`` is in borrow-asset units; ``conversion_instruction`` is the
    opaque venue payload converting it into the collateral asset, and must be
    empty when both assets are the same.
    """

    position_owner: str
    collateral_asset: str
    borrow_asset: str
    new_collateral_amount: int
    loan_amount: int
    conversion_instruction: bytes = b""


@dataclass(frozen=True)
class DeleverageRequest:
    """Parameters for one deleverage pass.

    ``loan_amount`` is in collateral-asset units. ``withdraw_amount`` must
    cover the loan plus its premium; it caps the withdrawal, and the engine
    withdraws exactly loan plus premium.
    """

    position_owner: str
    collateral_asset: str
    borrow_asset: str
    loan_amount: int
    repay_amount: int
    withdraw_amount: int
    conversion_instruction: bytes = b""


@dataclass(frozen=True)
class PendingOperation:
    """Operation in flight between a loan request and its callback."""

    action: Action
    owner: str
    request: LeverageRequest | DeleverageRequest
    token: str


@dataclass(frozen=True)
class AccountData:
    """Lending-pool view of a position (WAD-scaled values)."""

    collateral_value: int
    debt_value: int
    ltv: int
    health_factor: int


@dataclass(frozen=True)
class OperationReceipt:
    """What a completed pass did, in native units."""

    action: Action
    owner: str
    loan_asset: str
    loan_amount: int
    premium: int
    swapped_in: int = 0
    swapped_out: int = 0
    supplied: int = 0
    borrowed: int = 0
    repaid: int = 0
    withdrawn: int = 0
    swept: tuple[tuple[str, int], ...] = ()
