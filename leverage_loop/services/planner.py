"""Caller-side planning — prices, calculator and safety checks in one step."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from ..calculator import (
    calculate_deleverage,
    calculate_deleverage_from_quote,
    calculate_leverage,
    calculate_leverage_from_quote,
    max_leverage,
    max_leverage_multiplier,
    position_leverage,
)
from ..config import AppConfig
from ..errors import InvalidLeverage, PriceUnavailable
from ..interfaces.price_oracle import PriceOracle
from ..models import (
    CalculatedDeleverageResult,
    CalculatedLeverageResult,
    DeleverageRequest,
    LeverageRequest,
)
from ..validator import validate
from ..wad import WAD, format_wad, mul_div

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PositionBalances:
    """Current position in native units."""

    collateral: int = 0
    debt: int = 0


@dataclass(frozen=True)
class LeveragePlan:
    collateral: str
    debt: str
    price_collateral: int
    price_debt: int
    added_collateral: int
    target_leverage: int
    result: CalculatedLeverageResult
    valid: bool


@dataclass(frozen=True)
class DeleveragePlan:
    collateral: str
    debt: str
    price_collateral: int
    price_debt: int
    retain_ratio: int
    result: CalculatedDeleverageResult
    valid: bool


@dataclass(frozen=True)
class MaxLeveragePlan:
    collateral: str
    debt: str
    ceiling: int
    max_multiplier: int
    current_leverage: int | None = None


class Planner:
    """Turns a position and a target into calculator output checked against policy."""

    def __init__(self, config: AppConfig, oracle: PriceOracle | None = None) -> None:
        self._config = config
        self._oracle = oracle
        self._policy = config.safety.to_policy()

    async def resolve_prices(
        self, symbols: list[str], overrides: Mapping[str, int] | None = None
    ) -> dict[str, int]:
        """Explicit overrides first, the oracle for the rest.

        Raises:
            PriceUnavailable: a symbol has no positive price from either source.
        """
        prices = {s: overrides[s] for s in symbols if overrides and s in overrides}
        missing = [s for s in symbols if s not in prices]
        if missing and self._oracle is not None:
            fetched = await self._oracle.fetch_prices(missing)
            prices.update({s: fetched[s] for s in missing if s in fetched})

        for symbol in symbols:
            if prices.get(symbol, 0) <= 0:
                raise PriceUnavailable(f"No usable price for {symbol}")
        return prices

    async def plan_leverage(
        self,
        collateral: str,
        debt: str,
        add: int,
        target: int,
        balances: PositionBalances | None = None,
        prices: Mapping[str, int] | None = None,
    ) -> LeveragePlan:
        balances = balances or PositionBalances()
        resolved = await self.resolve_prices([collateral, debt], prices)
        result = calculate_leverage(
            initial_collateral=balances.collateral,
            initial_debt=balances.debt,
            price_collateral=resolved[collateral],
            price_debt=resolved[debt],
            collateral_decimals=self._config.asset(collateral).decimals,
            debt_decimals=self._config.asset(debt).decimals,
            new_collateral=add,
            target_leverage=target,
            premium_rate=self._config.pool.premium_rate,
        )
        valid = validate(result, add, target, self._policy)
        logger.info(
            "Leverage plan %s/%s to %sx: loan %d, resulting LTV %s (%s)",
            collateral, debt, format_wad(target), result.loan_amount,
            format_wad(result.resulting_ltv), "valid" if valid else "rejected",
        )
        return LeveragePlan(
            collateral=collateral,
            debt=debt,
            price_collateral=resolved[collateral],
            price_debt=resolved[debt],
            added_collateral=add,
            target_leverage=target,
            result=result,
            valid=valid,
        )

    async def plan_deleverage(
        self,
        collateral: str,
        debt: str,
        retain: int,
        balances: PositionBalances,
        prices: Mapping[str, int] | None = None,
    ) -> DeleveragePlan:
        resolved = await self.resolve_prices([collateral, debt], prices)
        result = calculate_deleverage(
            initial_collateral=balances.collateral,
            initial_debt=balances.debt,
            price_collateral=resolved[collateral],
            price_debt=resolved[debt],
            collateral_decimals=self._config.asset(collateral).decimals,
            debt_decimals=self._config.asset(debt).decimals,
            target_ratio=retain,
            premium_rate=self._config.pool.premium_rate,
        )
        return self._deleverage_plan(
            collateral, debt, resolved[collateral], resolved[debt], retain, result
        )

    def _deleverage_plan(
        self,
        collateral: str,
        debt: str,
        price_collateral: int,
        price_debt: int,
        retain: int,
        result: CalculatedDeleverageResult,
    ) -> DeleveragePlan:
        valid = result.resulting_ltv < self._policy.liquidation_threshold
        if not valid:
            logger.warning(
                "Deleverage leaves LTV %s at or above liquidation threshold %s",
                format_wad(result.resulting_ltv),
                format_wad(self._policy.liquidation_threshold),
            )
        logger.info(
            "Deleverage plan %s/%s retaining %s of debt: loan %d, repay %d, withdraw %d",
            collateral, debt, format_wad(retain), result.loan_amount,
            result.repay_amount, result.withdraw_amount,
        )
        return DeleveragePlan(
            collateral=collateral,
            debt=debt,
            price_collateral=price_collateral,
            price_debt=price_debt,
            retain_ratio=retain,
            result=result,
            valid=valid,
        )

    # ------------------------------------------------------------------
    # Quote-driven plans
    # ------------------------------------------------------------------

    def _implied_prices(
        self, collateral: str, debt: str, collateral_amount: int, debt_amount: int
    ) -> tuple[int, int]:
        """(collateral, debt) prices implied by a quote, with the debt asset at 1."""
        price = mul_div(
            debt_amount * 10 ** self._config.asset(collateral).decimals,
            WAD,
            collateral_amount * 10 ** self._config.asset(debt).decimals,
        )
        if price <= 0:
            raise PriceUnavailable(f"Quote implies no price for {collateral}")
        return price, WAD

    def plan_leverage_from_quote(
        self,
        collateral: str,
        debt: str,
        add: int,
        loan: int,
        quoted_out: int,
        balances: PositionBalances | None = None,
    ) -> LeveragePlan:
        """Plan a pass whose ``loan`` of debt asset converts into ``quoted_out`` collateral.

        The target leverage checked against policy is the one the quote implies.
        """
        balances = balances or PositionBalances()
        result = calculate_leverage_from_quote(
            initial_collateral=balances.collateral,
            initial_debt=balances.debt,
            new_collateral=add,
            quoted_collateral=quoted_out,
            quoted_debt=loan,
            premium_rate=self._config.pool.premium_rate,
        )
        if result.resulting_ltv >= WAD:
            raise InvalidLeverage("Quote leaves the position with no equity")
        target = max_leverage(result.resulting_ltv)
        valid = validate(result, add, target, self._policy)
        price_collateral, price_debt = self._implied_prices(collateral, debt, quoted_out, loan)
        logger.info(
            "Quoted leverage plan %s/%s: loan %d for %d, implied leverage %sx (%s)",
            collateral, debt, loan, quoted_out, format_wad(target),
            "valid" if valid else "rejected",
        )
        return LeveragePlan(
            collateral=collateral,
            debt=debt,
            price_collateral=price_collateral,
            price_debt=price_debt,
            added_collateral=add,
            target_leverage=target,
            result=result,
            valid=valid,
        )

    def plan_deleverage_from_quote(
        self,
        collateral: str,
        debt: str,
        loan: int,
        quoted_out: int,
        balances: PositionBalances,
    ) -> DeleveragePlan:
        """Plan a pass whose ``loan`` of collateral converts into ``quoted_out`` debt asset."""
        result = calculate_deleverage_from_quote(
            initial_collateral=balances.collateral,
            initial_debt=balances.debt,
            quoted_collateral=loan,
            quoted_debt=quoted_out,
            premium_rate=self._config.pool.premium_rate,
        )
        retain = mul_div(result.resulting_debt_amount, WAD, balances.debt) if balances.debt else 0
        price_collateral, price_debt = self._implied_prices(collateral, debt, loan, quoted_out)
        return self._deleverage_plan(
            collateral, debt, price_collateral, price_debt, retain, result
        )

    # ------------------------------------------------------------------
    # Capacity
    # ------------------------------------------------------------------

    async def plan_max_leverage(
        self,
        collateral: str,
        debt: str,
        add: int = 0,
        balances: PositionBalances | None = None,
        prices: Mapping[str, int] | None = None,
    ) -> MaxLeveragePlan:
        """How far one pass can lever this position under the configured max LTV."""
        balances = balances or PositionBalances()
        resolved = await self.resolve_prices([collateral, debt], prices)
        position = (
            balances.collateral,
            balances.debt,
            resolved[collateral],
            resolved[debt],
            self._config.asset(collateral).decimals,
            self._config.asset(debt).decimals,
        )
        multiplier = max_leverage_multiplier(
            *position,
            new_collateral=add,
            max_ltv=self._policy.max_ltv,
            premium_rate=self._config.pool.premium_rate,
        )
        current = position_leverage(*position) if balances.collateral else None
        return MaxLeveragePlan(
            collateral=collateral,
            debt=debt,
            ceiling=max_leverage(self._policy.max_ltv),
            max_multiplier=multiplier,
            current_leverage=current,
        )

    def leverage_request(
        self, plan: LeveragePlan, owner: str, instruction: bytes = b""
    ) -> LeverageRequest:
        return LeverageRequest(
            position_owner=owner,
            collateral_asset=self._config.asset(plan.collateral).address,
            borrow_asset=self._config.asset(plan.debt).address,
            new_collateral_amount=plan.added_collateral,
            loan_amount=plan.result.loan_amount,
            conversion_instruction=instruction,
        )

    def deleverage_request(
        self, plan: DeleveragePlan, owner: str, instruction: bytes = b""
    ) -> DeleverageRequest:
        return DeleverageRequest(
            position_owner=owner,
            collateral_asset=self._config.asset(plan.collateral).address,
            borrow_asset=self._config.asset(plan.debt).address,
            loan_amount=plan.result.loan_amount,
            repay_amount=plan.result.repay_amount,
            withdraw_amount=plan.result.withdraw_amount,
            conversion_instruction=instruction,
        )
