"""Pure leverage / deleverage math — no I/O, no state.

Amounts are native integer units of their asset; prices, ratios, leverage and
the loan premium rate are WAD-scaled integers. Leverage is equity based:

    leverage = collateral value / (collateral value - debt value)

so a position at leverage L carries debt / collateral = 1 - 1/L.

The deleverage ratio is the fraction of current debt RETAINED: 0 repays the
whole debt, WAD leaves it untouched.
"""
from __future__ import annotations

from .errors import FixedPointError, InvalidLeverage, NegativeResult
from .models import CalculatedDeleverageResult, CalculatedLeverageResult
from .wad import WAD, mul_div, to_value, wad_div, wad_mul_up


def position_ltv(
    collateral: int,
    debt: int,
    price_collateral: int,
    price_debt: int,
    collateral_decimals: int,
    debt_decimals: int,
) -> int:
    """Loan-to-value of a position as a WAD ratio (0 for an empty position)."""
    collateral_value = to_value(collateral, price_collateral, collateral_decimals)
    debt_value = to_value(debt, price_debt, debt_decimals)
    if collateral_value == 0:
        if debt_value == 0:
            return 0
        raise FixedPointError("Debt outstanding against zero collateral value")
    return wad_div(debt_value, collateral_value)


def position_leverage(
    collateral: int,
    debt: int,
    price_collateral: int,
    price_debt: int,
    collateral_decimals: int,
    debt_decimals: int,
) -> int:
    """Current equity-based leverage of a position (WAD)."""
    collateral_value = to_value(collateral, price_collateral, collateral_decimals)
    debt_value = to_value(debt, price_debt, debt_decimals)
    if collateral_value <= debt_value:
        raise InvalidLeverage("Position has no positive equity")
    return mul_div(collateral_value, WAD, collateral_value - debt_value)


def max_leverage(max_ltv: int) -> int:
    """Theoretical leverage ceiling 1 / (1 - max_ltv) for a WAD max LTV."""
    if not 0 <= max_ltv < WAD:
        raise InvalidLeverage(f"max_ltv must be in [0, 1), got {max_ltv}")
    return mul_div(WAD, WAD, WAD - max_ltv)


def max_leverage_multiplier(
    initial_collateral: int,
    initial_debt: int,
    price_collateral: int,
    price_debt: int,
    collateral_decimals: int,
    debt_decimals: int,
    new_collateral: int,
    max_ltv: int,
    premium_rate: int,
) -> int:
    """Largest collateral multiplier one pass can reach for this position (WAD).

    The multiplier is resulting collateral over ``initial_collateral +
    new_collateral``, taken at the loan that lifts the LTV to exactly
    ``max_ltv`` once the premium is added to the debt. Existing debt and the
    premium both pull it below the ``1 / (1 - max_ltv)`` ceiling.

    Raises:
        InvalidLeverage: ``max_ltv`` outside [0, 1), no collateral, or debt
            already beyond what the collateral can carry.
    """
    if not 0 <= max_ltv < WAD:
        raise InvalidLeverage(f"max_ltv must be in [0, 1), got {max_ltv}")
    if price_collateral == 0 or price_debt == 0:
        raise FixedPointError("Prices must be non-zero")
    collateral = initial_collateral + new_collateral
    if collateral == 0:
        raise InvalidLeverage("No collateral to lever")

    # Both values scaled by 10^cd * 10^dd.
    collateral_value = price_collateral * collateral * 10**debt_decimals
    debt_value = price_debt * initial_debt * 10**collateral_decimals
    numerator = collateral_value * (WAD + premium_rate) - debt_value * WAD
    if numerator <= 0:
        raise InvalidLeverage("Existing debt leaves no room to lever")
    return mul_div(numerator, WAD, collateral_value * (WAD + premium_rate - max_ltv))


def calculate_leverage(
    initial_collateral: int,
    initial_debt: int,
    price_collateral: int,
    price_debt: int,
    collateral_decimals: int,
    debt_decimals: int,
    new_collateral: int,
    target_leverage: int,
    premium_rate: int,
) -> CalculatedLeverageResult:
    """Size the loan that takes a position to ``target_leverage``.

    The loan (in debt units) is swapped into collateral and supplied together
    with ``new_collateral``; loan plus premium is borrowed to settle it. The
    loan value X solves

        (Dv + X * (1 + p)) / (Cv + X) = 1 - 1/L

    where Cv is the value of initial plus new collateral and Dv the value of
    the initial debt. Both sides are multiplied through by L and converted to
    debt units before the single floor division, so the only rounding is the
    final truncation.

    Raises:
        InvalidLeverage: target below 1x, or existing debt already above what
            the target leverage supports.
    """
    if target_leverage < WAD:
        raise InvalidLeverage(f"Target leverage {target_leverage} is below 1x")
    if price_collateral == 0 or price_debt == 0:
        raise FixedPointError("Prices must be non-zero")

    collateral_scale = 10**collateral_decimals
    debt_scale = 10**debt_decimals
    own_collateral = initial_collateral + new_collateral

    numerator = (
        (target_leverage - WAD) * own_collateral * price_collateral * debt_scale
        - initial_debt * price_debt * target_leverage * collateral_scale
    )
    if numerator < 0:
        raise InvalidLeverage(
            "Existing debt exceeds what the target leverage and added collateral support"
        )
    denominator = collateral_scale * price_debt * (premium_rate * target_leverage + WAD * WAD)
    loan_amount = mul_div(numerator, WAD, denominator)

    swap_amount = mul_div(
        loan_amount, price_debt * collateral_scale, price_collateral * debt_scale
    )
    premium = wad_mul_up(loan_amount, premium_rate)
    resulting_collateral = own_collateral + swap_amount
    resulting_debt = initial_debt + loan_amount + premium

    return CalculatedLeverageResult(
        loan_amount=loan_amount,
        swap_amount=swap_amount,
        premium=premium,
        resulting_ltv=position_ltv(
            resulting_collateral, resulting_debt,
            price_collateral, price_debt,
            collateral_decimals, debt_decimals,
        ),
        resulting_collateral_amount=resulting_collateral,
        resulting_debt_amount=resulting_debt,
    )


def calculate_deleverage(
    initial_collateral: int,
    initial_debt: int,
    price_collateral: int,
    price_debt: int,
    collateral_decimals: int,
    debt_decimals: int,
    target_ratio: int,
    premium_rate: int,
) -> CalculatedDeleverageResult:
    """Size the collateral loan that cuts debt down to ``target_ratio`` of today's.

    ``target_ratio`` is the fraction of debt RETAINED (WAD). The loan is
    collateral, swapped into debt asset to repay; loan plus premium is then
    withdrawn from the position to settle it.

    Raises:
        NegativeResult: ratio outside [0, 1], or the withdrawal would exceed
            the collateral (or leave debt against no collateral).
    """
    if not 0 <= target_ratio <= WAD:
        raise NegativeResult(f"Retained debt ratio must be within [0, 1], got {target_ratio}")
    if price_collateral == 0 or price_debt == 0:
        raise FixedPointError("Prices must be non-zero")

    collateral_scale = 10**collateral_decimals
    debt_scale = 10**debt_decimals

    removed_debt = mul_div(initial_debt, WAD - target_ratio, WAD)
    loan_amount = mul_div(
        removed_debt, price_debt * collateral_scale, price_collateral * debt_scale
    )
    repay_amount = mul_div(
        loan_amount, price_collateral * debt_scale, price_debt * collateral_scale
    )
    premium = wad_mul_up(loan_amount, premium_rate)
    withdraw_amount = loan_amount + premium

    if withdraw_amount > initial_collateral:
        raise NegativeResult(
            f"Withdrawal {withdraw_amount} exceeds collateral {initial_collateral}"
        )
    resulting_collateral = initial_collateral - withdraw_amount
    resulting_debt = initial_debt - repay_amount
    if resulting_collateral == 0 and resulting_debt > 0:
        raise NegativeResult("Deleverage leaves debt against no collateral")

    return CalculatedDeleverageResult(
        loan_amount=loan_amount,
        repay_amount=repay_amount,
        premium=premium,
        withdraw_amount=withdraw_amount,
        resulting_ltv=position_ltv(
            resulting_collateral, resulting_debt,
            price_collateral, price_debt,
            collateral_decimals, debt_decimals,
        ),
        resulting_collateral_amount=resulting_collateral,
        resulting_debt_amount=resulting_debt,
    )


# ---------------------------------------------------------------------------
# Quote-driven variants — amounts from a venue quote instead of oracle prices
# ---------------------------------------------------------------------------


def calculate_leverage_from_quote(
    initial_collateral: int,
    initial_debt: int,
    new_collateral: int,
    quoted_collateral: int,
    quoted_debt: int,
    premium_rate: int,
) -> CalculatedLeverageResult:
    """Leverage outcome when a quote swaps ``quoted_debt`` into ``quoted_collateral``.

    The LTV is expressed through the price ratio the quote implies, so it is
    only meaningful relative to that quote.
    """
    if quoted_collateral <= 0 or quoted_debt <= 0:
        raise InvalidLeverage("Quote amounts must be positive")

    premium = wad_mul_up(quoted_debt, premium_rate)
    resulting_collateral = initial_collateral + new_collateral + quoted_collateral
    resulting_debt = initial_debt + quoted_debt + premium
    # debt / (collateral * quoted_debt / quoted_collateral)
    ltv = mul_div(resulting_debt * quoted_collateral, WAD, resulting_collateral * quoted_debt)

    return CalculatedLeverageResult(
        loan_amount=quoted_debt,
        swap_amount=quoted_collateral,
        premium=premium,
        resulting_ltv=ltv,
        resulting_collateral_amount=resulting_collateral,
        resulting_debt_amount=resulting_debt,
    )


def calculate_deleverage_from_quote(
    initial_collateral: int,
    initial_debt: int,
    quoted_collateral: int,
    quoted_debt: int,
    premium_rate: int,
) -> CalculatedDeleverageResult:
    """Deleverage outcome when a quote swaps ``quoted_collateral`` into ``quoted_debt``."""
    if quoted_collateral <= 0 or quoted_debt <= 0:
        raise NegativeResult("Quote amounts must be positive")

    premium = wad_mul_up(quoted_collateral, premium_rate)
    withdraw_amount = quoted_collateral + premium
    repay_amount = min(quoted_debt, initial_debt)
    if withdraw_amount > initial_collateral:
        raise NegativeResult(
            f"Withdrawal {withdraw_amount} exceeds collateral {initial_collateral}"
        )
    resulting_collateral = initial_collateral - withdraw_amount
    resulting_debt = initial_debt - repay_amount

    if resulting_collateral == 0:
        if resulting_debt > 0:
            raise NegativeResult("Deleverage leaves debt against no collateral")
        ltv = 0
    else:
        # Implied price: quoted_debt debt units per quoted_collateral collateral units.
        collateral_in_debt_units = mul_div(resulting_collateral, quoted_debt, quoted_collateral)
        if collateral_in_debt_units == 0:
            raise NegativeResult("Remaining collateral is worth nothing at the quoted price")
        ltv = wad_div(resulting_debt, collateral_in_debt_units)

    return CalculatedDeleverageResult(
        loan_amount=quoted_collateral,
        repay_amount=repay_amount,
        premium=premium,
        withdraw_amount=withdraw_amount,
        resulting_ltv=ltv,
        resulting_collateral_amount=resulting_collateral,
        resulting_debt_amount=resulting_debt,
    )

