"""Loan sizing and amortization."""

from __future__ import annotations

import numpy as np
import pytest

from hdm.core.mortgage import (
    EQUAL_INSTALLMENT,
    EQUAL_PRINCIPAL,
    amortization_schedule,
    amortize,
    monthly_rate,
    normalize_repay_type,
    payment_at_month,
    pmt,
    size_loans,
)


class TestPmt:
    def test_reference_one_million_30y(self) -> None:
        """1,000,000 at 4.9% over 360 months -> 5,307.27 per month."""
        assert pmt(1_000_000, 0.049, 360) == pytest.approx(5_307.27, abs=0.01)

    def test_zero_rate_is_straight_line(self) -> None:
        assert pmt(120_000, 0.0, 120) == pytest.approx(1_000.0)

    def test_negative_rate_pays_nothing(self) -> None:
        assert pmt(500_000, -0.01, 240) == 0.0

    @pytest.mark.parametrize("principal,term", [(0, 360), (-10_000, 360), (500_000, 0), (500_000, -12)])
    def test_non_positive_principal_or_term(self, principal, term) -> None:
        assert pmt(principal, 0.04, term) == 0.0


class TestMonthlyRate:
    def test_annual_over_twelve(self) -> None:
        assert monthly_rate(0.06) == pytest.approx(0.005)

    @pytest.mark.parametrize("rate", [float("nan"), -0.02, 0.0, "abc", None])
    def test_nan_negative_and_garbage_accrue_nothing(self, rate) -> None:
        assert monthly_rate(rate) == 0.0


class TestPaymentAtMonth:
    def test_equal_principal_first_month(self) -> None:
        # 1,000,000 / 360 + 1,000,000 * 4.9% / 12
        assert payment_at_month(1_000_000, 0.049, 360, 1, EQUAL_PRINCIPAL) == pytest.approx(6_861.11, abs=0.01)

    def test_equal_principal_declines(self) -> None:
        first = payment_at_month(1_000_000, 0.049, 360, 1, EQUAL_PRINCIPAL)
        later = payment_at_month(1_000_000, 0.049, 360, 120, EQUAL_PRINCIPAL)
        assert later < first

    def test_equal_installment_is_level(self) -> None:
        a = payment_at_month(800_000, 0.035, 300, 1, EQUAL_INSTALLMENT)
        b = payment_at_month(800_000, 0.035, 300, 250, EQUAL_INSTALLMENT)
        assert a == pytest.approx(b)

    @pytest.mark.parametrize("month", [0, -1, 361])
    def test_outside_term_is_zero(self, month) -> None:
        assert payment_at_month(1_000_000, 0.049, 360, month) == 0.0


class TestRepayType:
    @pytest.mark.parametrize("value", ["equal_principal", "Equal Principal", "等额本金", " principal "])
    def test_equal_principal_aliases(self, value) -> None:
        assert normalize_repay_type(value) == EQUAL_PRINCIPAL

    @pytest.mark.parametrize("value", [None, "", "equal_installment", "whatever", 3])
    def test_everything_else_is_equal_installment(self, value) -> None:
        assert normalize_repay_type(value) == EQUAL_INSTALLMENT


class TestAmortization:
    @pytest.mark.parametrize("repay_type", [EQUAL_INSTALLMENT, EQUAL_PRINCIPAL])
    def test_principal_identity_every_month(self, repay_type) -> None:
        principal = 2_960_000.0
        sched = amortization_schedule(principal, 0.0305, 360, 360, repay_type)
        paid = np.cumsum(sched.principal)
        np.testing.assert_allclose(sched.balance + paid, principal, rtol=0, atol=1e-6)

    @pytest.mark.parametrize("repay_type", [EQUAL_INSTALLMENT, EQUAL_PRINCIPAL])
    def test_interest_is_prior_balance_times_monthly_rate(self, repay_type) -> None:
        sched = amortization_schedule(1_500_000, 0.026, 360, 120, repay_type)
        expected = sched.balance[:-1] * (0.026 / 12.0)
        np.testing.assert_allclose(sched.interest[1:], expected, rtol=1e-12, atol=1e-9)

    def test_equal_principal_total_interest_closed_form(self) -> None:
        state = amortize(1_000_000, 0.049, 360, 360, EQUAL_PRINCIPAL)
        assert state.interest_paid == pytest.approx(1_000_000 * 0.049 / 12 * 361 / 2, rel=1e-9)
        assert state.remaining_principal == pytest.approx(0.0, abs=1e-6)

    def test_horizon_shorter_than_term(self) -> None:
        state = amortize(1_000_000, 0.049, 360, 120)
        assert state.months == 120
        assert state.principal_paid + state.remaining_principal == pytest.approx(1_000_000)
        assert 0 < state.remaining_principal < 1_000_000

    def test_horizon_longer_than_term_stops_at_term(self) -> None:
        state = amortize(300_000, 0.03, 120, 240)
        assert state.months == 120
        assert state.remaining_principal == pytest.approx(0.0, abs=1e-6)
        assert state.principal_paid == pytest.approx(300_000)

    def test_zero_principal(self) -> None:
        state = amortize(0, 0.05, 360, 120)
        assert state.principal_paid == 0.0
        assert state.interest_paid == 0.0

    def test_schedule_after_term_is_zero(self) -> None:
        sched = amortization_schedule(120_000, 0.0, 12, 24)
        assert sched.months == 24
        assert sched.payment_at(12) == pytest.approx(10_000.0)
        assert sched.payment_at(13) == 0.0
        assert sched.balance_at(24) == pytest.approx(0.0)
        assert sched.balance_at(99) == pytest.approx(0.0)


class TestSizeLoans:
    def test_tranches_cover_financing_need(self) -> None:
        loans = size_loans(6_000_000, 0.2, 0.5, 1_840_000, provident_rate=0.026, commercial_rate=0.0305, term_months=360)
        assert loans.financing_need == pytest.approx(4_800_000)
        assert loans.provident + loans.commercial == pytest.approx(loans.financing_need)

    def test_cap_binds(self) -> None:
        loans = size_loans(6_000_000, 0.2, 0.5, 1_840_000, provident_rate=0.026, commercial_rate=0.0305, term_months=360)
        assert loans.provident == pytest.approx(1_840_000)
        assert loans.commercial == pytest.approx(2_960_000)

    def test_mix_below_cap(self) -> None:
        loans = size_loans(3_000_000, 0.3, 0.5, 1_840_000, provident_rate=0.026, commercial_rate=0.0305, term_months=360)
        assert loans.provident == pytest.approx(1_050_000)
        assert loans.commercial == pytest.approx(1_050_000)

    def test_full_down_payment_means_no_loan(self) -> None:
        loans = size_loans(6_000_000, 1.0, 0.5, 1_840_000, provident_rate=0.026, commercial_rate=0.0305, term_months=360)
        assert loans.provident == 0.0
        assert loans.commercial == 0.0
        assert loans.monthly_payment(1) == 0.0

    def test_rate_shock_raises_payment(self) -> None:
        loans = size_loans(6_000_000, 0.2, 0.5, 1_840_000, provident_rate=0.026, commercial_rate=0.0305, term_months=360)
        base = loans.monthly_payment(1)
        assert loans.shocked_payment(0.005) > base
        assert loans.shocked_payment(0.01) > loans.shocked_payment(0.005)
