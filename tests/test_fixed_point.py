"""
Fixed-Point Math Tests
Checks the off-chain mirror of the fund's integer arithmetic
"""

import pytest
from decimal import Decimal
from hypothesis import given, strategies as st

from fund.fixed_point import (
    DEFAULT_TOTAL_USDC,
    INITIAL_MFC_SUPPLY,
    ONE,
    SECONDS_PER_YEAR,
    efficiency_pct,
    expected_shares,
    expected_usdc,
    fund_balance_from_ratio,
    initial_allocation,
    management_fee,
    mfc_token_ratio,
    mfc_value,
    nav_from_balances,
    oracle_price_to_fixed_rate,
    scale_from_18,
    scale_to_18,
    spot_check,
    token_amount_for_usdc,
)

USDC = 10**6


class TestTokenAmounts:
    """Token purchases at fixed rates"""

    def test_weth_purchase(self):
        assert token_amount_for_usdc(125_000 * USDC, 3_000 * USDC, 18) == 41_666_666_666_666_666_666

    def test_wbtc_purchase(self):
        assert token_amount_for_usdc(125_000 * USDC, 118_000 * USDC, 8) == 105_932_203

    def test_rejects_zero_rate(self):
        with pytest.raises(ValueError):
            token_amount_for_usdc(USDC, 0, 18)

    def test_scaling(self):
        assert scale_to_18(1, 6) == 10**12
        assert scale_to_18(10**20, 20) == 10**18
        assert scale_from_18(10**18, 8) == 10**8
        assert scale_from_18(10**12 - 1, 6) == 0


class TestAllocation:
    """Initial deposit split"""

    def test_default_split(self):
        plan = initial_allocation()

        assert plan.total_usdc == DEFAULT_TOTAL_USDC
        assert plan.reserve_usdc == 500_000 * USDC
        assert set(plan.per_token_usdc) == {"WETH", "WBTC", "LINK", "DAI"}
        assert all(amount == 125_000 * USDC for amount in plan.per_token_usdc.values())
        assert plan.allocated_usdc + plan.reserve_usdc == plan.total_usdc

    def test_over_allocation_rejected(self):
        with pytest.raises(ValueError):
            initial_allocation(DEFAULT_TOTAL_USDC, {"WETH": 6_000}, reserve_bps=5_000)

    def test_default_spot_check_matches(self):
        rows = spot_check()

        assert len(rows) == 4
        assert all(row.matches for row in rows)


class TestSharePricing:
    """Invest/redeem pricing"""

    def test_expected_shares_at_par(self):
        assert expected_shares(1_000 * USDC, USDC) == 1_000 * ONE

    def test_expected_shares_without_value(self):
        assert expected_shares(1_000 * USDC, 0) == 0

    def test_expected_usdc(self):
        assert expected_usdc(500 * ONE, 2 * USDC) == 1_000 * USDC

    def test_nav_from_balances(self):
        nav = nav_from_balances(500_000 * USDC, [(41_666_666_666_666_666_666, 18, 3_000 * USDC)])
        assert nav == 500_000 * USDC + 124_999_999_999

    def test_mfc_value(self):
        assert mfc_value(1_000_000 * USDC, INITIAL_MFC_SUPPLY) == USDC
        assert mfc_value(1_000_000 * USDC, 0) == 0

    def test_management_fee_full_year(self):
        assert management_fee(1_000_000 * USDC, 200, SECONDS_PER_YEAR) == 20_000 * USDC

    def test_management_fee_no_time(self):
        assert management_fee(1_000_000 * USDC, 200, 0) == 0

    def test_efficiency(self):
        assert efficiency_pct(995, 1_000) == Decimal("99.50")
        assert efficiency_pct(123, 0) == Decimal(0)

    def test_efficiency_truncates(self):
        assert efficiency_pct(2, 3) == Decimal("66.66")
        assert efficiency_pct(99_999, 100_000) == Decimal("99.99")
        assert str(efficiency_pct(1, 1)) == "100.00"

    def test_oracle_price_conversion(self):
        assert oracle_price_to_fixed_rate(300_012_345_678, 8) == 3_000_123_456
        assert oracle_price_to_fixed_rate(3_000 * 10**18, 18) == 3_000 * USDC
        assert oracle_price_to_fixed_rate(3, 2) == 30_000

    def test_oracle_price_must_be_positive(self):
        with pytest.raises(ValueError):
            oracle_price_to_fixed_rate(-1)


class TestFixedPointProperties:
    """Property tests over random amounts and rates"""

    @given(
        usdc_amount=st.integers(min_value=1, max_value=10**15),
        value=st.integers(min_value=1, max_value=10**12)
    )
    def test_round_trip_never_favours_investor(self, usdc_amount, value):
        shares = expected_shares(usdc_amount, value)
        assert expected_usdc(shares, value) <= usdc_amount

    @given(scaled=st.integers(min_value=0, max_value=10**30))
    def test_ratio_reconstructs_balance(self, scaled):
        ratio = mfc_token_ratio(scaled)
        reconstructed = ratio * INITIAL_MFC_SUPPLY // ONE

        assert 0 <= scaled - reconstructed < INITIAL_MFC_SUPPLY // ONE
        assert fund_balance_from_ratio(ratio, 18) == reconstructed

    @given(
        total=st.integers(min_value=1, max_value=10**9).map(lambda n: n * USDC),
        rate=st.integers(min_value=1, max_value=200_000),
        decimals=st.integers(min_value=6, max_value=18)
    )
    def test_integer_math_matches_decimal(self, total, rate, decimals):
        rows = spot_check(total, {"TKN": (rate, decimals)})
        assert rows[0].amount_matches
        assert rows[0].balance_matches


# Run all tests
if __name__ == "__main__":
    pytest.main([__file__, '-v', '--tb=short'])
