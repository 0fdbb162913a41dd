"""Tests for debt accrual and lien state."""

import pytest

from kettle_sdk.lending import (
    WAD,
    YEAR_SECONDS,
    accrue,
    current_debt_amount,
    find_matching_lien,
    lien_debt,
    lien_is_current,
    lien_is_defaulted,
    refinance_data,
    sell_in_lien_data,
)
from kettle_sdk.lending.interest import bips_to_wad
from kettle_sdk.offers import Side

from .fakes import (
    BUYER,
    COLLECTION,
    CURRENCY,
    DAY,
    ETH,
    LENDER,
    NOW,
    TOKEN_ID,
    make_lien,
    make_loan_offer,
    make_loan_terms,
    make_market_offer,
)


class TestAccrue:
    """Tests for linear fixed-point accrual."""

    def test_bips_to_wad(self):
        """Test basis points conversion to 1e18 scale."""
        assert bips_to_wad(10_000) == WAD
        assert bips_to_wad(250) == WAD // 40

    def test_no_elapsed_time(self):
        """Test that nothing accrues at the start time."""
        assert accrue(100 * ETH, 1000, NOW, NOW) == 100 * ETH

    def test_one_year(self):
        """Test a full year at 10%."""
        assert accrue(100 * ETH, 1000, NOW, NOW + YEAR_SECONDS) == 110 * ETH

    def test_end_before_start(self):
        """Test that a reversed interval accrues nothing."""
        assert accrue(100 * ETH, 1000, NOW, NOW - DAY) == 100 * ETH

    def test_truncates(self):
        """Test that accrual rounds down."""
        assert accrue(1, 1000, NOW, NOW + YEAR_SECONDS) == 1


class TestCurrentDebtAmount:
    """Tests for debt split between lender and fee recipient."""

    def test_before_maturity(self):
        """Test debt within the loan duration."""
        debt = current_debt_amount(
            now=NOW + YEAR_SECONDS,
            principal=100 * ETH,
            start_time=NOW,
            duration=2 * YEAR_SECONDS,
            fee_rate=100,
            rate=1000,
            default_rate=2000,
        )

        assert debt.fee_interest == 1 * ETH
        assert debt.lender_interest == 10 * ETH
        assert debt.debt == 111 * ETH

    def test_after_maturity_compounds_default_rate(self):
        """Test that the default rate applies to the amount accrued at maturity."""
        debt = current_debt_amount(
            now=NOW + 2 * YEAR_SECONDS,
            principal=100 * ETH,
            start_time=NOW,
            duration=YEAR_SECONDS,
            fee_rate=100,
            rate=1000,
            default_rate=2000,
        )

        # 100 * 1.1 * 1.2 = 132
        assert debt.lender_interest == 32 * ETH
        # fee accrues for the whole period at its own rate
        assert debt.fee_interest == 2 * ETH
        assert debt.debt == 134 * ETH

    def test_at_start_time(self):
        """Test that no interest has accrued when the loan starts."""
        debt = current_debt_amount(
            now=NOW,
            principal=100 * ETH,
            start_time=NOW,
            duration=30 * DAY,
            fee_rate=100,
            rate=1000,
            default_rate=2000,
        )

        assert debt.debt == 100 * ETH
        assert debt.fee_interest == 0
        assert debt.lender_interest == 0

    @pytest.mark.parametrize(
        "rate,default_rate,fee_rate",
        [(1000, 2000, 100), (0, 0, 0), (1000, 0, 250), (50_000, 100_000, 10_000)],
    )
    def test_debt_never_decreases(self, rate, default_rate, fee_rate):
        """Test that debt and both interest parts grow with time, across maturity."""
        duration = 30 * DAY
        times = sorted(
            {NOW + offset for offset in range(0, 3 * duration, DAY // 3)}
            | {NOW + duration - 1, NOW + duration, NOW + duration + 1}
        )

        debts = [
            current_debt_amount(
                now=t,
                principal=7 * ETH + 13,
                start_time=NOW,
                duration=duration,
                fee_rate=fee_rate,
                rate=rate,
                default_rate=default_rate,
            )
            for t in times
        ]

        for earlier, later in zip(debts, debts[1:]):
            assert later.debt >= earlier.debt
            assert later.fee_interest >= earlier.fee_interest
            assert later.lender_interest >= earlier.lender_interest

    def test_debt_is_sum_of_parts(self):
        """Test that debt equals principal plus both interest components."""
        lien = make_lien()
        debt = lien_debt(lien, NOW)

        assert debt.debt == lien.principal + debt.fee_interest + debt.lender_interest
        assert debt.debt > lien.principal


class TestLienState:
    """Tests for lien state helpers."""

    def test_current_until_grace_period_ends(self):
        """Test the default boundary."""
        lien = make_lien()

        assert lien_is_current(lien, lien.default_time - 1)
        assert not lien_is_current(lien, lien.default_time)
        assert lien_is_defaulted(lien, lien.default_time)

    def test_end_and_default_time(self):
        """Test maturity and default timestamps."""
        lien = make_lien(start_time=NOW)

        assert lien.end_time == NOW + 30 * DAY
        assert lien.default_time == NOW + 33 * DAY

    def test_find_matching_lien(self):
        """Test matching by collection, token and currency."""
        lien = make_lien()

        assert find_matching_lien(lien, COLLECTION, TOKEN_ID, CURRENCY, NOW) is lien
        assert find_matching_lien(lien, COLLECTION, TOKEN_ID + 1, CURRENCY, NOW) is None
        assert find_matching_lien(lien, COLLECTION, TOKEN_ID, LENDER, NOW) is None
        assert find_matching_lien(None, COLLECTION, TOKEN_ID, CURRENCY, NOW) is None

    def test_find_matching_lien_ignores_defaulted(self):
        """Test that a defaulted lien never matches."""
        lien = make_lien(start_time=NOW - 40 * DAY)

        assert find_matching_lien(lien, COLLECTION, TOKEN_ID, CURRENCY, NOW) is None


class TestSettlementPreview:
    """Tests for refinance and sell-in-lien previews."""

    def test_refinance_borrower_pays_shortfall(self):
        """Test a refinance into a smaller loan."""
        offer = make_loan_offer(terms=make_loan_terms(total_amount=4 * ETH, max_amount=4 * ETH))

        preview = refinance_data(5 * ETH, offer)

        assert preview.owed == 1 * ETH
        assert preview.paid == 0

    def test_refinance_borrower_receives_surplus(self):
        """Test a refinance into a larger loan."""
        offer = make_loan_offer(terms=make_loan_terms(total_amount=8 * ETH, max_amount=8 * ETH))

        preview = refinance_data(5 * ETH, offer)

        assert preview.owed == 0
        assert preview.paid == 3 * ETH

    @pytest.mark.parametrize(
        "debt,owed,paid",
        [
            (9 * ETH, 0, ETH * 3 // 4),
            (10 * ETH, ETH // 4, 0),
        ],
    )
    def test_sell_in_lien_is_net_of_fee(self, debt, owed, paid):
        """Test that the 2.5% market fee is deducted before covering the debt."""
        bid = make_market_offer(Side.BID, BUYER, amount=10 * ETH, fee_rate=250)

        preview = sell_in_lien_data(debt, bid)

        assert preview.owed == owed
        assert preview.paid == paid
