"""Unit and property tests for leverage / deleverage sizing."""
from __future__ import annotations

from fractions import Fraction

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from leverage_loop.calculator import (
    calculate_deleverage,
    calculate_deleverage_from_quote,
    calculate_leverage,
    calculate_leverage_from_quote,
    max_leverage,
    max_leverage_multiplier,
    position_leverage,
    position_ltv,
)
from leverage_loop.errors import FixedPointError, InvalidLeverage, NegativeResult

WAD = 10**18


def _lever(c0: int, d0: int, n: int, target: int, pc: int = 2000 * WAD, pd: int = WAD, p: int = 0):
    return calculate_leverage(c0, d0, pc, pd, 18, 18, n, target, p)


def _delever(c0: int, d0: int, ratio: int, pc: int = 2000 * WAD, pd: int = WAD, p: int = 0):
    return calculate_deleverage(c0, d0, pc, pd, 18, 18, ratio, p)


class TestCalculateLeverage:
    def test_doubling_a_fresh_position(self) -> None:
        result = _lever(0, 0, WAD, 2 * WAD)
        assert result.loan_amount == 2000 * WAD
        assert result.swap_amount == WAD
        assert result.premium == 0
        assert result.resulting_collateral_amount == 2 * WAD
        assert result.resulting_debt_amount == 2000 * WAD
        assert result.resulting_ltv == WAD // 2

    def test_levering_an_existing_position(self) -> None:
        result = _lever(WAD, 500 * WAD, WAD, 3 * WAD)
        assert result.loan_amount == 6500 * WAD
        assert result.swap_amount == 325 * 10**16
        assert result.resulting_collateral_amount == 525 * 10**16
        assert result.resulting_debt_amount == 7000 * WAD
        assert result.resulting_ltv == pytest.approx(2 * WAD / 3, rel=1e-15)

    def test_unit_leverage_needs_no_loan(self) -> None:
        result = _lever(0, 0, WAD, WAD)
        assert result.loan_amount == 0
        assert result.resulting_ltv == 0

    def test_mixed_decimals(self) -> None:
        # 1 WETH (18 dp) levered 2x against USDC (6 dp)
        result = calculate_leverage(0, 0, 2000 * WAD, WAD, 18, 6, WAD, 2 * WAD, 0)
        assert result.loan_amount == 2000 * 10**6
        assert result.swap_amount == WAD
        assert result.resulting_ltv == WAD // 2

    def test_premium_is_rounded_up_and_added_to_debt(self) -> None:
        result = _lever(0, 0, WAD, 2 * WAD, p=9 * 10**14)
        assert result.premium == -(-result.loan_amount * 9 * 10**14 // WAD)
        assert result.resulting_debt_amount == result.loan_amount + result.premium
        assert result.resulting_ltv == pytest.approx(WAD // 2, rel=1e-9)

    def test_target_below_one_raises(self) -> None:
        with pytest.raises(InvalidLeverage, match="below 1x"):
            _lever(0, 0, WAD, WAD - 1)

    def test_existing_debt_beyond_target_raises(self) -> None:
        # Already at 5x; asking for 2x with nothing added would need a negative loan.
        with pytest.raises(InvalidLeverage, match="Existing debt"):
            _lever(5 * WAD, 8000 * WAD, 0, 2 * WAD)

    def test_zero_price_raises(self) -> None:
        with pytest.raises(FixedPointError):
            _lever(0, 0, WAD, 2 * WAD, pc=0)

    def test_deterministic(self) -> None:
        assert _lever(WAD, 100 * WAD, WAD, 3 * WAD, p=5 * 10**14) == _lever(
            WAD, 100 * WAD, WAD, 3 * WAD, p=5 * 10**14
        )


class TestCalculateDeleverage:
    def test_keeping_a_quarter_of_the_debt(self) -> None:
        result = _delever(2 * WAD, 2000 * WAD, WAD // 4)
        assert result.loan_amount == 75 * 10**16
        assert result.repay_amount == 1500 * WAD
        assert result.withdraw_amount == 75 * 10**16
        assert result.resulting_collateral_amount == 125 * 10**16
        assert result.resulting_debt_amount == 500 * WAD
        assert result.resulting_ltv == WAD // 5

    def test_zero_ratio_repays_everything(self) -> None:
        result = _delever(2 * WAD, 2000 * WAD, 0)
        assert result.repay_amount == 2000 * WAD
        assert result.resulting_debt_amount == 0
        assert result.resulting_ltv == 0

    def test_full_ratio_changes_nothing(self) -> None:
        result = _delever(2 * WAD, 2000 * WAD, WAD)
        assert result.loan_amount == 0
        assert result.resulting_debt_amount == 2000 * WAD
        assert result.resulting_collateral_amount == 2 * WAD

    def test_premium_is_withdrawn_with_the_loan(self) -> None:
        result = _delever(2 * WAD, 2000 * WAD, WAD // 4, p=9 * 10**14)
        assert result.premium == 675 * 10**12
        assert result.withdraw_amount == result.loan_amount + result.premium

    @pytest.mark.parametrize("ratio", [WAD + 1, -1])
    def test_ratio_out_of_range_raises(self, ratio: int) -> None:
        with pytest.raises(NegativeResult):
            _delever(2 * WAD, 2000 * WAD, ratio)

    def test_withdrawal_beyond_collateral_raises(self) -> None:
        # Underwater: debt worth more than the collateral.
        with pytest.raises(NegativeResult, match="exceeds collateral"):
            _delever(WAD, 3000 * WAD, 0)

    def test_debt_left_against_no_collateral_raises(self) -> None:
        with pytest.raises(NegativeResult, match="no collateral"):
            _delever(WAD // 2, 2000 * WAD, WAD // 2)

    def test_deterministic(self) -> None:
        assert _delever(3 * WAD, 1000 * WAD, WAD // 3, p=WAD // 1000) == _delever(
            3 * WAD, 1000 * WAD, WAD // 3, p=WAD // 1000
        )


class TestPositionHelpers:
    def test_position_ltv(self) -> None:
        assert position_ltv(2 * WAD, 2000 * WAD, 2000 * WAD, WAD, 18, 18) == WAD // 2

    def test_empty_position_has_zero_ltv(self) -> None:
        assert position_ltv(0, 0, 2000 * WAD, WAD, 18, 18) == 0

    def test_debt_without_collateral_raises(self) -> None:
        with pytest.raises(FixedPointError):
            position_ltv(0, 1, 2000 * WAD, WAD, 18, 18)

    def test_position_leverage(self) -> None:
        assert position_leverage(2 * WAD, 2000 * WAD, 2000 * WAD, WAD, 18, 18) == 2 * WAD
        assert position_leverage(WAD, 0, 2000 * WAD, WAD, 18, 18) == WAD

    def test_position_leverage_needs_equity(self) -> None:
        with pytest.raises(InvalidLeverage):
            position_leverage(WAD, 2000 * WAD, 2000 * WAD, WAD, 18, 18)

    def test_max_leverage(self) -> None:
        assert max_leverage(8 * 10**17) == 5 * WAD
        assert max_leverage(0) == WAD

    def test_max_leverage_rejects_full_ltv(self) -> None:
        with pytest.raises(InvalidLeverage):
            max_leverage(WAD)


class TestMaxLeverageMultiplier:
    @staticmethod
    def _max(c0: int, d0: int, n: int, p: int = 0, max_ltv: int = 8 * 10**17) -> int:
        return max_leverage_multiplier(c0, d0, 2000 * WAD, WAD, 18, 6, n, max_ltv, p)

    def test_fresh_position_reaches_the_ceiling(self) -> None:
        assert self._max(0, 0, WAD) == max_leverage(8 * 10**17) == 5 * WAD

    def test_existing_debt_lowers_the_multiplier(self) -> None:
        # 4000 of collateral against 2000 of debt: 6000 more can be borrowed.
        assert self._max(2 * WAD, 2000 * 10**6, 0) == 25 * 10**17

    def test_premium_lowers_the_multiplier(self) -> None:
        result = self._max(0, 0, WAD, p=9 * 10**14)
        assert Fraction(10009, 2009) - Fraction(result, WAD) < Fraction(1, WAD)
        assert result < 5 * WAD

    def test_added_collateral_counts(self) -> None:
        assert self._max(WAD, 2000 * 10**6, WAD) == self._max(2 * WAD, 2000 * 10**6, 0)

    def test_no_collateral_raises(self) -> None:
        with pytest.raises(InvalidLeverage):
            self._max(0, 0, 0)

    def test_debt_beyond_collateral_raises(self) -> None:
        with pytest.raises(InvalidLeverage):
            self._max(WAD, 2100 * 10**6, 0)

    def test_rejects_full_ltv(self) -> None:
        with pytest.raises(InvalidLeverage):
            self._max(WAD, 0, 0, max_ltv=WAD)


class TestQuoteVariants:
    def test_leverage_from_quote(self) -> None:
        result = calculate_leverage_from_quote(0, 0, WAD, WAD, 2000 * WAD, 0)
        assert result.loan_amount == 2000 * WAD
        assert result.swap_amount == WAD
        assert result.resulting_collateral_amount == 2 * WAD
        assert result.resulting_debt_amount == 2000 * WAD
        assert result.resulting_ltv == WAD // 2

    def test_leverage_from_quote_rejects_empty_quote(self) -> None:
        with pytest.raises(InvalidLeverage):
            calculate_leverage_from_quote(0, 0, WAD, 0, 2000 * WAD, 0)

    def test_deleverage_from_quote(self) -> None:
        result = calculate_deleverage_from_quote(2 * WAD, 2000 * WAD, 75 * 10**16, 1500 * WAD, 0)
        assert result.repay_amount == 1500 * WAD
        assert result.withdraw_amount == 75 * 10**16
        assert result.resulting_collateral_amount == 125 * 10**16
        assert result.resulting_debt_amount == 500 * WAD
        assert result.resulting_ltv == WAD // 5

    def test_deleverage_from_quote_caps_repay_at_debt(self) -> None:
        result = calculate_deleverage_from_quote(2 * WAD, 1000 * WAD, WAD, 2000 * WAD, 0)
        assert result.repay_amount == 1000 * WAD
        assert result.resulting_debt_amount == 0

    def test_deleverage_from_quote_rejects_overdraw(self) -> None:
        with pytest.raises(NegativeResult):
            calculate_deleverage_from_quote(WAD, 2000 * WAD, 2 * WAD, 4000 * WAD, 0)


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

amounts = st.integers(min_value=10**15, max_value=10**24)
collateral_prices = st.integers(min_value=10**17, max_value=10**23)
debt_prices = st.integers(min_value=5 * 10**17, max_value=2 * WAD)
leverages = st.integers(min_value=3 * WAD // 2, max_value=5 * WAD)
premium_rates = st.integers(min_value=0, max_value=10**16)
debt_fractions = st.integers(min_value=0, max_value=3 * 10**17)


class TestLeverageProperties:
    @given(
        c0=amounts,
        n=amounts,
        fraction=debt_fractions,
        target=leverages,
        pc=collateral_prices,
        pd=debt_prices,
        p=premium_rates,
    )
    @settings(max_examples=200, deadline=None)
    def test_resulting_ltv_matches_target(
        self, c0: int, n: int, fraction: int, target: int, pc: int, pd: int, p: int
    ) -> None:
        d0 = c0 * pc * fraction // (pd * WAD)
        result = calculate_leverage(c0, d0, pc, pd, 18, 18, n, target, p)
        expected = WAD - WAD * WAD // target
        # Within 1e-8 of the exact ratio 1 - 1/L.
        assert abs(result.resulting_ltv - expected) * 10**8 <= WAD

    @given(c0=amounts, n=amounts, target=leverages, pc=collateral_prices, p=premium_rates)
    @settings(max_examples=100, deadline=None)
    def test_is_deterministic(self, c0: int, n: int, target: int, pc: int, p: int) -> None:
        first = calculate_leverage(c0, 0, pc, WAD, 18, 18, n, target, p)
        second = calculate_leverage(c0, 0, pc, WAD, 18, 18, n, target, p)
        assert first == second


class TestDeleverageProperties:
    @given(
        c0=amounts,
        fraction=st.integers(min_value=10**16, max_value=7 * 10**17),
        ratio=st.integers(min_value=0, max_value=WAD),
        pc=collateral_prices,
        pd=debt_prices,
        p=premium_rates,
    )
    @settings(max_examples=200, deadline=None)
    def test_retains_requested_fraction_of_debt(
        self, c0: int, fraction: int, ratio: int, pc: int, pd: int, p: int
    ) -> None:
        d0 = c0 * pc * fraction // (pd * WAD)
        result = calculate_deleverage(c0, d0, pc, pd, 18, 18, ratio, p)
        floor_target = d0 * ratio // WAD
        assert floor_target <= result.resulting_debt_amount
        assert result.resulting_debt_amount <= floor_target + pc // pd + 3
        assert result.repay_amount <= d0

    @given(
        r1=st.integers(min_value=0, max_value=WAD),
        r2=st.integers(min_value=0, max_value=WAD),
    )
    @settings(max_examples=100, deadline=None)
    def test_higher_ratio_keeps_more_debt(self, r1: int, r2: int) -> None:
        low, high = sorted((r1, r2))
        kept_low = _delever(10 * WAD, 8000 * WAD, low).resulting_debt_amount
        kept_high = _delever(10 * WAD, 8000 * WAD, high).resulting_debt_amount
        assert kept_low <= kept_high


class TestRoundTrip:
    def test_fresh_position_unwinds_exactly(self) -> None:
        levered = _lever(0, 0, WAD, 2 * WAD)
        unwound = _delever(
            levered.resulting_collateral_amount, levered.resulting_debt_amount, 0
        )
        assert unwound.resulting_collateral_amount == WAD
        assert unwound.resulting_debt_amount == 0

    @pytest.mark.parametrize(
        ("c0", "d0", "n", "target"),
        [
            (WAD, 500 * WAD, WAD, 3 * WAD),
            (5 * WAD, 1000 * WAD, 2 * WAD, 4 * WAD),
            (10 * WAD, 0, 3 * 10**17, 15 * 10**17),
        ],
    )
    def test_retaining_original_debt_share_restores_position(
        self, c0: int, d0: int, n: int, target: int
    ) -> None:
        levered = _lever(c0, d0, n, target)
        retain = d0 * WAD // levered.resulting_debt_amount
        unwound = _delever(
            levered.resulting_collateral_amount, levered.resulting_debt_amount, retain
        )
        assert unwound.resulting_collateral_amount == pytest.approx(c0 + n, rel=1e-9)
        assert unwound.resulting_debt_amount == pytest.approx(d0, rel=1e-9, abs=10**4)
