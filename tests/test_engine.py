"""Simulation engine: month-by-month paths, scenarios, output assembly."""

from __future__ import annotations

import json
import math
from concurrent.futures import ThreadPoolExecutor

import pytest

from hdm.core.engine import (
    SCENARIOS,
    build_context,
    calculate_model,
    crossover_year,
    one_time_costs,
    simulate,
)
from hdm.core.params import normalize_inputs
from hdm.core.report import (
    BUY_IS_CHEAPER,
    FAVOR_BUY,
    FAVOR_RENT,
    NEUTRAL,
    RENT_IS_CHEAPER,
    YearlyNetWorthRecord,
    classify_zone,
    money,
    recommendation_for,
)

REFERENCE_INPUTS = {
    "P": 6_000_000,
    "dp_min": 20,
    "n_years": 30,
    "Repay_type": "equal_installment",
    "years": 10,
    "rent_0": 8000,
    "g_r": 3,
    "R_inv": 5,
}


@pytest.fixture(scope="module")
def reference():
    return calculate_model(REFERENCE_INPUTS)


class TestSimulate:
    def test_series_lengths(self) -> None:
        series = simulate(normalize_inputs({"years": 7}), 0.03, 0.03)
        assert [r.month for r in series.monthly] == list(range(1, 85))
        assert [r.year for r in series.yearly] == list(range(1, 8))
        assert series.terminal == series.yearly[-1]

    def test_rent_escalates_yearly_and_moves_add_cost(self) -> None:
        p = normalize_inputs({"rent_0": 8000, "g_r": 3, "Move_cost": 3000, "Move_freq_years": 2})
        monthly = simulate(p, 0.03, 0.03).monthly
        # 150/month renter tax credit; no expert surcharges
        assert monthly[0].rent_outflow == pytest.approx(7850)
        assert monthly[11].rent_outflow == pytest.approx(7850)
        assert monthly[12].rent_outflow == pytest.approx(8240 - 150)
        # Month 24 is a move month: +Move_cost
        assert monthly[23].rent_outflow == pytest.approx(8240 - 150 + 3000)
        assert monthly[24].rent_outflow == pytest.approx(8000 * 1.03**2 - 150)

    def test_buy_outflow_first_month(self) -> None:
        p = normalize_inputs({})
        first = simulate(p, 0.03, 0.03).monthly[0]
        expected = p.loans.monthly_payment(1) + p.pm_unit * p.area - p.gjj_offset - p.deduct_limit * 0.1
        assert first.buy_outflow == pytest.approx(expected)
        assert first.gap == pytest.approx(first.buy_outflow - first.rent_outflow)

    def test_rent_nav_starts_from_up_front_costs(self) -> None:
        p = normalize_inputs({})
        total = one_time_costs(p).total
        for row in simulate(p, 0.03, 0.03).yearly:
            assert row.rent_nav >= total

    def test_zero_loan_outflow_is_holding_cost(self) -> None:
        p = normalize_inputs({"dp_min": 100, "Deduct_limit": 0})
        assert p.loans.monthly_payment(1) == 0.0
        for row in simulate(p, 0.03, 0.03).monthly:
            assert row.buy_outflow == pytest.approx(p.pm_unit * p.area)

    def test_partial_year_horizon(self) -> None:
        ctx = build_context(normalize_inputs({}))
        series = simulate(ctx, 0.03, 0.03, horizon_months=18)
        assert len(series.monthly) == 18
        assert len(series.yearly) == 1
        assert series.terminal.year == 1

    def test_horizon_beyond_context_rebuilds(self) -> None:
        ctx = build_context(normalize_inputs({"years": 5}))
        series = simulate(ctx, 0.03, 0.03, horizon_months=180)
        assert len(series.monthly) == 180
        assert len(series.yearly) == 15

    def test_record_monthly_off(self) -> None:
        ctx = build_context(normalize_inputs({}))
        full = simulate(ctx, 0.02, 0.04)
        lean = simulate(ctx, 0.02, 0.04, record_monthly=False)
        assert lean.monthly == ()
        assert lean.yearly == full.yearly

    def test_side_effect_free(self) -> None:
        ctx = build_context(normalize_inputs({}))
        a = simulate(ctx, 0.01, 0.02)
        simulate(ctx, 0.06, 0.05)
        b = simulate(ctx, 0.01, 0.02)
        assert a == b

    def test_house_growth_only_moves_buy_nav(self) -> None:
        ctx = build_context(normalize_inputs({}))
        low = simulate(ctx, 0.0, 0.03).terminal
        high = simulate(ctx, 0.05, 0.03).terminal
        assert high.buy_nav > low.buy_nav
        assert high.rent_nav == low.rent_nav


class TestCrossoverYear:
    def test_first_crossing(self) -> None:
        rows = [
            YearlyNetWorthRecord(1, 100.0, 200.0),
            YearlyNetWorthRecord(2, 200.0, 200.0),
            YearlyNetWorthRecord(3, 150.0, 200.0),
        ]
        assert crossover_year(rows) == 2

    def test_never(self) -> None:
        assert crossover_year([YearlyNetWorthRecord(1, 1.0, 2.0)]) is None
        assert crossover_year([]) is None

    def test_reference_series_consistent(self, reference) -> None:
        cy = reference.crossover_year
        for row in reference.yearly_networth:
            if cy is not None and row.year == cy:
                assert row.buy_nav >= row.rent_nav
            elif cy is None or row.year < cy:
                assert row.buy_nav < row.rent_nav


class TestReferenceScenario:
    def test_totals_non_negative(self, reference) -> None:
        assert reference.buy_total >= 0
        assert reference.rent_total >= 0

    def test_recommendation_matches_sign(self, reference) -> None:
        expected = RENT_IS_CHEAPER if reference.diff > 0 else BUY_IS_CHEAPER
        assert reference.recommendation == expected
        assert reference.diff == money(reference.buy_total - reference.rent_total)

    def test_three_named_scenarios(self, reference) -> None:
        scenarios = reference.to_dict()["report"]["netWorthComparison"]["scenarios"]
        assert [s["name"] for s in scenarios] == ["Bear", "Base", "Bull"]
        growths = [s["houseGrowth"] for s in scenarios]
        assert growths == sorted(growths)
        assert len(set(growths)) == 3

    def test_scenarios_share_rent_path(self, reference) -> None:
        rent = {sc.rent_net_worth for sc in reference.scenarios}
        assert len(rent) == 1
        buys = [sc.buy_net_worth for sc in reference.scenarios]
        assert buys[0] < buys[1] < buys[2]

    def test_series_shapes(self, reference) -> None:
        assert len(reference.monthly_cashflow) == 120
        assert len(reference.yearly_networth) == 10
        assert reference.sensitivity.gaps.shape == (5, 5)

    def test_break_even_within_grid(self, reference) -> None:
        assert -0.02 <= reference.break_even_growth <= 0.06

    def test_stress_shocks(self, reference) -> None:
        s = reference.stress
        assert 0 < s.rate_up_50bp_monthly_change < s.rate_up_100bp_monthly_change
        assert s.income_drop_40_coverage < s.income_drop_20_coverage

    def test_scores(self, reference) -> None:
        sc = reference.scores
        assert sc.stability == 86
        assert sc.freedom == 50
        assert sc.psychological_safety == 95
        assert sc.autonomy == 50
        assert 0 <= reference.decision_map.position <= 100

    def test_cap_advisory_echoed(self, reference) -> None:
        assert any("capped" in w for w in reference.warnings)

    def test_policy_echo(self, reference) -> None:
        assert reference.policy.policy_version == "SH-2026.01"


class TestDeterminism:
    def test_identical_inputs_identical_output(self, reference) -> None:
        again = calculate_model(dict(REFERENCE_INPUTS))
        assert again.to_dict() == reference.to_dict()

    def test_defaulted_values_equivalent(self) -> None:
        explicit = calculate_model({"P": 600, "years": 10, "rent_0": 8000}, fast=True)
        implicit = calculate_model({}, fast=True)
        assert explicit.to_dict() == implicit.to_dict()

    def test_executor_matches_sequential(self, reference) -> None:
        with ThreadPoolExecutor(max_workers=4) as pool:
            parallel = calculate_model(REFERENCE_INPUTS, executor=pool)
        assert parallel.to_dict() == reference.to_dict()


class TestFastMode:
    def test_fast_short_circuits(self, reference) -> None:
        fast = calculate_model(REFERENCE_INPUTS, fast=True)
        assert fast.fast is True
        assert fast.sensitivity.gaps.shape == (1, 1)
        assert fast.break_even_growth == pytest.approx(0.03)
        for sc in fast.scenarios:
            assert sc.buy_net_worth == reference.terminal.buy_nav
            assert sc.rent_net_worth == reference.terminal.rent_nav
        assert [sc.name for sc in fast.scenarios] == [name for name, _ in SCENARIOS]

    def test_fast_keeps_base_results(self, reference) -> None:
        fast = calculate_model(REFERENCE_INPUTS, fast=True)
        assert fast.diff == reference.diff
        assert fast.terminal == reference.terminal
        assert fast.monthly_cashflow == reference.monthly_cashflow

    def test_debug_flag(self) -> None:
        assert calculate_model({"__debug_fast": 1}).fast is True

    def test_full_fidelity_is_default(self, reference) -> None:
        assert reference.fast is False


class TestClassification:
    def test_threshold_floor(self) -> None:
        # 5% of 400,000 is below the 30,000 floor
        assert classify_zone(29_999, 400_000) == NEUTRAL
        assert classify_zone(30_001, 400_000) == FAVOR_RENT
        assert classify_zone(-30_001, 400_000) == FAVOR_BUY

    def test_threshold_proportional(self) -> None:
        assert classify_zone(250_000, 6_000_000) == NEUTRAL
        assert classify_zone(350_000, 6_000_000) == FAVOR_RENT
        assert classify_zone(-350_000, 6_000_000) == FAVOR_BUY

    def test_recommendation_at_zero(self) -> None:
        assert recommendation_for(0) == BUY_IS_CHEAPER
        assert recommendation_for(1) == RENT_IS_CHEAPER

    def test_money_rounds_half_up(self) -> None:
        assert money(2.5) == 3
        assert money(2.49) == 2
        assert money(-2.5) == -2
        assert money(-2.51) == -3


class TestExternalization:
    def test_to_dict_shape(self, reference) -> None:
        d = reference.to_dict()
        assert {"buyTotal", "rentTotal", "diff", "recommendation", "isQualified", "wealthView", "report"} <= set(d)
        assert isinstance(d["buyTotal"], int)
        assert isinstance(d["wealthView"]["buyNAV"], int)
        assert d["wealthView"]["navDiff"] == d["wealthView"]["buyNAV"] - d["wealthView"]["rentNAV"]
        assert len(d["wealthView"]["monthly_cashflow"]) == 120
        assert all(isinstance(v, int) for row in d["wealthView"]["sensitivity_matrix"]["wealth_gap_matrix"] for v in row)
        assert len(d["report"]["actionOptions"]) == 3
        assert d["report"]["policy"]["policyVersion"] == "SH-2026.01"

    def test_json_serializable(self, reference) -> None:
        json.dumps(reference.to_dict(), ensure_ascii=False)

    def test_frames(self, reference) -> None:
        monthly = reference.monthly_frame()
        yearly = reference.yearly_frame()
        assert list(monthly.columns) == ["Month", "Buy Outflow", "Rent Outflow", "Gap"]
        assert list(yearly.columns) == ["Year", "Buy NAV", "Rent NAV", "NAV Gap"]
        assert len(monthly) == 120
        assert yearly["NAV Gap"].iloc[-1] == pytest.approx(reference.terminal.gap)

    def test_horizon_beyond_term_advisory(self) -> None:
        out = calculate_model({"years": 35, "n_years": 30}, fast=True)
        assert any("longer than" in w for w in out.warnings)


class TestExtremeInputs:
    @pytest.mark.parametrize(
        "raw",
        [
            {"R_inv": 100000, "years": 120},
            {"R_inv": 5, "years": 15000},
            {"expert_configured": True, "CPI": -250, "Move_freq_years": 1.5},
            {"g_p": -500, "g_r": 1e9, "LPR": 1e6, "n_years": 1e6},
        ],
    )
    def test_finite_but_extreme_inputs_never_raise(self, raw) -> None:
        with pytest.warns(UserWarning):
            out = calculate_model(raw, fast=True)
        assert math.isfinite(out.terminal.gap)
        assert all(isinstance(r.rent_outflow, float) for r in out.monthly_cashflow)
        json.dumps(out.to_dict())
