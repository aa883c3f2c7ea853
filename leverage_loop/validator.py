"""Advisory safety checks on a calculated leverage result.

A ``True`` answer is not proof of solvency — only the lending pool's own
health check is authoritative.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from .models import CalculatedLeverageResult
from .wad import WAD, format_wad

logger = logging.getLogger(__name__)

DEFAULT_MAX_LTV = 8 * 10**17  # 80%
DEFAULT_LIQUIDATION_THRESHOLD = 85 * 10**16  # 85%


@dataclass(frozen=True)
class SafetyPolicy:
    """Policy bounds (WAD-scaled).

    ``loan_multiple`` caps the loan, expressed in collateral units, as a
    multiple of the collateral added; ``None`` uses the target leverage.
    """

    max_ltv: int = DEFAULT_MAX_LTV
    liquidation_threshold: int = DEFAULT_LIQUIDATION_THRESHOLD
    loan_multiple: int | None = None


def exceeds_leverage_ceiling(target_leverage: int, max_ltv: int) -> bool:
    """True when target_leverage > 1 / (1 - max_ltv), compared exactly."""
    return target_leverage * (WAD - max_ltv) > WAD * WAD


def validate(
    result: CalculatedLeverageResult,
    added_collateral: int,
    target_leverage: int,
    policy: SafetyPolicy | None = None,
) -> bool:
    """Check a leverage calculation against policy bounds."""
    policy = policy or SafetyPolicy()

    if exceeds_leverage_ceiling(target_leverage, policy.max_ltv):
        logger.warning(
            "Target leverage %sx exceeds safe maximum for max LTV %s",
            format_wad(target_leverage), format_wad(policy.max_ltv),
        )
        return False

    multiple = policy.loan_multiple if policy.loan_multiple is not None else target_leverage
    max_loan = added_collateral * multiple // WAD
    if result.swap_amount > max_loan:
        logger.warning(
            "Loan of %d collateral units exceeds %sx the added collateral (%d)",
            result.swap_amount, format_wad(multiple), added_collateral,
        )
        return False

    if result.resulting_ltv >= policy.liquidation_threshold:
        logger.warning(
            "Resulting LTV %s reaches liquidation threshold %s",
            format_wad(result.resulting_ltv), format_wad(policy.liquidation_threshold),
        )
        return False

    return True
