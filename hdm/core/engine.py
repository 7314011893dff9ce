"""Buy-vs-rent simulation engine. Pure functions, no I/O.

``calculate_model`` is the entry point: raw inputs are normalized once, then a
month-by-month simulation is run for the base growth pair, for each macro
scenario and for every cell of the sensitivity grid. Each run is independent, so
scenario and grid runs can be dispatched to any ``concurrent.futures.Executor``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from itertools import repeat
from typing import Any, Callable, Iterable, Mapping

import numpy as np

from .mortgage import AmortizationSchedule, amortization_schedule, amortize
from .params import ModelParams, normalize_inputs
from .report import (
    BuyCostBreakdown,
    BuySimulation,
    DecisionMap,
    ExecutiveSummary,
    FinancialBaseline,
    ModelOutput,
    MonthlyCashflowRecord,
    NonFinancialScores,
    OneTimeCosts,
    RentCostBreakdown,
    RentScenario,
    RentSimulation,
    ScenarioComparison,
    SensitivityMatrix,
    SimulationSeries,
    StressTest,
    YearlyNetWorthRecord,
    classify_zone,
    current_state,
    decision_reason,
    decision_window,
    income_stability_level,
    money,
    recommendation_for,
)
from .validation import get_validation_warnings

# Renter's personal-tax rent deduction: 1,500/month at a 10% marginal rate.
RENT_TAX_CREDIT = 1500.0 * 0.1
# Mortgage-interest deduction credit rate, applied to ``Deduct_limit``.
MORTGAGE_CREDIT_RATE = 0.1

SCENARIOS: tuple[tuple[str, float], ...] = (("Bear", -0.01), ("Base", 0.015), ("Bull", 0.04))
HOUSE_GROWTH_GRID: tuple[float, ...] = (-0.02, 0.0, 0.02, 0.04, 0.06)
RENT_GROWTH_GRID: tuple[float, ...] = (0.01, 0.02, 0.03, 0.04, 0.05)
RENT_SCENARIOS: tuple[tuple[str, float], ...] = (("conservative", 0.02), ("neutral", 0.04), ("stress", 0.06))


# ---------------------------------------------------------------------------
# Cost helpers
# ---------------------------------------------------------------------------


def one_time_costs(p: ModelParams) -> OneTimeCosts:
    """Up-front cash the buyer spends at purchase."""
    price = p.price
    vat = price * p.vat_rate
    taxes = (
        price * p.deed_rate
        + vat
        + vat * (p.ct_rate + p.edu_rate + p.local_edu_rate)
        + (0.0 if p.m5u else price * p.pit_gross_rate)
        + price * (p.buyer_agent_rate + p.seller_to_buyer_rate)
        + p.reg_fee
        + p.loan_service
    )
    return OneTimeCosts(
        down_payment=price * p.dp_ratio,
        taxes_and_fees=taxes,
        renovation=p.reno_hard + p.reno_soft,
        friction=p.move_cost + p.time_cost,
    )


def buy_outflow(p: ModelParams, mortgage_payment: float) -> float:
    """Buyer's monthly cash out: payment + property management - PF offset - tax credit."""
    return max(
        0.0,
        mortgage_payment + p.monthly_holding - p.gjj_offset - p.deduct_limit * MORTGAGE_CREDIT_RATE,
    )


def rent_outflow(p: ModelParams, month: int, rent_now: float) -> float:
    """Renter's cash out for ``month``, including relocation costs on moving months."""
    out = max(0.0, rent_now - RENT_TAX_CREDIT - min(p.gjj_rent_cap, rent_now) + p.commute_delta)
    out += rent_now * p.rent_tax_rate
    if month % p.move_every_months == 0:
        out += p.move_cost * (1.0 + p.cpi) ** (month / 12.0) + p.rent0 * p.rent_agent_months
    return out


def yearly_rent_cost(rent0: float, growth: float, years: int) -> float:
    """Sum of rent paid over ``years`` with one escalation per year."""
    return float(sum(rent0 * 12.0 * (1.0 + growth) ** y for y in range(int(years))))


def holding_extras(p: ModelParams) -> float:
    """Expert-mode annual holding costs summed over the horizon, grown at ``pm_growth``."""
    base = (
        p.area * p.maintenance_yearly
        + p.insurance_yearly
        + (p.parking_monthly + p.broadband_monthly + p.energy_monthly) * 12.0
        + p.price * p.property_tax_rate
    )
    if base == 0.0:
        return 0.0
    return float(base * ((1.0 + p.pm_growth) ** np.arange(p.years)).sum())


# ---------------------------------------------------------------------------
# Month-by-month simulation
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class SimulationContext:
    """Growth-independent state shared read-only by every simulation run."""

    params: ModelParams
    provident: AmortizationSchedule
    commercial: AmortizationSchedule
    one_time: OneTimeCosts

    @property
    def horizon_months(self) -> int:
        return self.provident.months

    def loan_balance(self, month: int) -> float:
        return self.provident.balance_at(month) + self.commercial.balance_at(month)

    def mortgage_payment(self, month: int) -> float:
        return self.provident.payment_at(month) + self.commercial.payment_at(month)


def build_context(p: ModelParams, horizon_months: int | None = None) -> SimulationContext:
    months = p.horizon_months if horizon_months is None else max(0, int(horizon_months))
    loans = p.loans
    return SimulationContext(
        params=p,
        provident=amortization_schedule(
            loans.provident, loans.provident_rate, loans.term_months, months, loans.repay_type
        ),
        commercial=amortization_schedule(
            loans.commercial, loans.commercial_rate, loans.term_months, months, loans.repay_type
        ),
        one_time=one_time_costs(p),
    )


def _snapshot(
    ctx: SimulationContext, month: int, house_growth: float, buy_liquid: float, rent_liquid: float
) -> YearlyNetWorthRecord:
    p = ctx.params
    value = p.price * (1.0 + house_growth) ** (month / 12.0)
    sale_friction = value * p.exit_cost_rate + p.time_cost
    return YearlyNetWorthRecord(
        year=month // 12,
        buy_nav=value - ctx.loan_balance(month) - sale_friction + buy_liquid,
        rent_nav=rent_liquid,
    )


def simulate(
    model: ModelParams | SimulationContext,
    house_growth: float,
    rent_growth: float,
    horizon_months: int | None = None,
    *,
    record_monthly: bool = True,
) -> SimulationSeries:
    """Simulate both paths month by month for one (house growth, rent growth) pair.

    The buy path's liquid account starts at zero; the rent path's starts with the
    buyer's up-front costs (capital the renter keeps invested). Both compound monthly
    at the reinvestment rate. Each month the cheaper path banks the outflow gap,
    scaled by the investor-discipline factor. Every 12th month a net-worth snapshot
    is recorded.

    Side-effect free: the same arguments always give the same series.
    """
    if isinstance(model, SimulationContext):
        ctx = model
        if horizon_months is not None and int(horizon_months) > ctx.horizon_months:
            ctx = build_context(ctx.params, horizon_months)
    else:
        ctx = build_context(model, horizon_months)
    p = ctx.params
    months = ctx.horizon_months if horizon_months is None else max(0, int(horizon_months))

    grow = 1.0 + p.invest_rate / 12.0
    k = p.invest_consistency
    rent_now = p.rent0
    buy_liquid = 0.0
    rent_liquid = ctx.one_time.total

    monthly: list[MonthlyCashflowRecord] = []
    yearly: list[YearlyNetWorthRecord] = []
    for m in range(1, months + 1):
        buy_liquid *= grow
        rent_liquid *= grow
        if m > 1 and (m - 1) % 12 == 0:
            rent_now *= 1.0 + rent_growth

        b_out = buy_outflow(p, ctx.mortgage_payment(m))
        r_out = rent_outflow(p, m, rent_now)
        gap = b_out - r_out
        if gap > 0:
            rent_liquid += gap * k
        else:
            buy_liquid += -gap * k

        if record_monthly:
            monthly.append(MonthlyCashflowRecord(m, b_out, r_out, gap))
        if m % 12 == 0:
            yearly.append(_snapshot(ctx, m, house_growth, buy_liquid, rent_liquid))

    if yearly and months % 12 == 0:
        terminal = yearly[-1]
    else:
        terminal = _snapshot(ctx, months, house_growth, buy_liquid, rent_liquid)

    return SimulationSeries(
        house_growth=float(house_growth),
        rent_growth=float(rent_growth),
        monthly=tuple(monthly),
        yearly=tuple(yearly),
        terminal=terminal,
    )


def terminal_nav(ctx: SimulationContext, house_growth: float, rent_growth: float) -> YearlyNetWorthRecord:
    return simulate(ctx, house_growth, rent_growth, record_monthly=False).terminal


def grid_cell(ctx: SimulationContext, house_growth: float, rent_growth: float) -> float:
    """Terminal NAV gap (buy - rent) for one growth pair; a full resimulation."""
    return terminal_nav(ctx, house_growth, rent_growth).gap


def _map(executor: Any, fn: Callable, *iterables: Iterable) -> list:
    if executor is None:
        return list(map(fn, *iterables))
    return list(executor.map(fn, *iterables))


# ---------------------------------------------------------------------------
# Scenarios, sensitivity grid, break-even
# ---------------------------------------------------------------------------


def run_scenarios(
    ctx: SimulationContext,
    rent_growth: float,
    *,
    scenarios: tuple[tuple[str, float], ...] = SCENARIOS,
    executor: Any = None,
) -> tuple[ScenarioComparison, ...]:
    growths = [g for _, g in scenarios]
    finals = _map(executor, terminal_nav, repeat(ctx), growths, repeat(rent_growth))
    return tuple(
        ScenarioComparison(name=name, house_growth=g, buy_net_worth=f.buy_nav, rent_net_worth=f.rent_nav)
        for (name, g), f in zip(scenarios, finals)
    )


def run_sensitivity_grid(
    ctx: SimulationContext,
    house_growth_rates: Iterable[float] = HOUSE_GROWTH_GRID,
    rent_growth_rates: Iterable[float] = RENT_GROWTH_GRID,
    *,
    executor: Any = None,
) -> SensitivityMatrix:
    """Resimulate every (house growth, rent growth) pair; rows are house growth."""
    hs = tuple(float(h) for h in house_growth_rates)
    rs = tuple(float(r) for r in rent_growth_rates)
    pairs = [(h, r) for h in hs for r in rs]
    cells = _map(executor, grid_cell, repeat(ctx), [h for h, _ in pairs], [r for _, r in pairs])
    gaps = np.asarray(cells, dtype=np.float64).reshape(len(hs), len(rs))
    return SensitivityMatrix(house_growth_rates=hs, rent_growth_rates=rs, gaps=gaps)


def _interpolate(x: float, x0: float, y0: float, x1: float, y1: float) -> float:
    if abs(x1 - x0) < 1e-9:
        return y0
    return y0 + (x - x0) * (y1 - y0) / (x1 - x0)


def break_even_growth(matrix: SensitivityMatrix, rent_growth: float) -> float:
    """House growth at which the terminal NAV gap crosses zero.

    Each row is first interpolated across rent-growth columns at ``rent_growth``
    (clamped to the column range), then the per-row gaps are interpolated across
    house-growth rows. Clamps to the lowest row when it is already >= 0 and to the
    highest row when even that is < 0.
    """
    hs = matrix.house_growth_rates
    rs = np.asarray(matrix.rent_growth_rates, dtype=np.float64)
    per_row = [float(np.interp(rent_growth, rs, row)) for row in matrix.gaps]
    for i, gap in enumerate(per_row):
        if gap >= 0:
            if i == 0:
                return hs[0]
            return _interpolate(0.0, per_row[i - 1], hs[i - 1], gap, hs[i])
    return hs[-1]


def crossover_year(yearly: Iterable[YearlyNetWorthRecord]) -> int | None:
    """First year in which buy NAV >= rent NAV, or None."""
    for row in yearly:
        if row.buy_nav >= row.rent_nav:
            return row.year
    return None


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def _score(x: float, scale: float = 100.0) -> int:
    return min(100, max(0, money(x * scale)))


def calculate_model(
    raw: Mapping[str, Any] | None = None,
    *,
    fast: bool | None = None,
    executor: Any = None,
) -> ModelOutput:
    """Run the full buy-vs-rent model for one raw input mapping.

    Args:
        raw: Raw inputs (see :mod:`hdm.core.params`); missing keys use defaults.
        fast: Reduced-fidelity mode. Scenarios echo the base run, the grid collapses
            to the base growth pair and break-even reports the base house growth.
            ``None`` reads the ``__debug_fast`` input flag. Full fidelity otherwise.
        executor: Optional ``concurrent.futures.Executor`` for scenario and grid runs.

    Returns:
        A :class:`ModelOutput`. Never raises for malformed input values.
    """
    p = normalize_inputs(raw, fast=fast)
    ctx = build_context(p)
    loans = p.loans
    years = p.years
    one_time = ctx.one_time

    # Buy-side totals
    monthly_payment = loans.monthly_payment(1)
    monthly_cash_out = buy_outflow(p, monthly_payment)
    opportunity_cost = one_time.down_payment * ((1.0 + p.invest_rate) ** years - 1.0)
    buy_total = (
        one_time.total
        + monthly_cash_out * 12.0 * years
        + holding_extras(p)
        + p.large_replace
        + opportunity_cost
    )

    # Rent-side totals
    rent_base = yearly_rent_cost(p.rent0, p.rent_growth, years)
    moves = math.floor(years / p.move_freq_years)
    relocation_cost = moves * (p.move_cost + p.furn_depr + p.overlap_rent + p.social_cost)
    deposit_opportunity = p.deposit_mult * p.rent0 * ((1.0 + p.invest_rate) ** years - 1.0)
    rent_friction = relocation_cost + moves * p.rent_agent_months * p.rent0 + deposit_opportunity
    rent_total = max(
        0.0,
        rent_base
        + rent_friction
        + rent_base * p.rent_tax_rate
        + p.residence_fee * years
        + p.commute_delta * 12.0 * years
        - min(p.gjj_rent_cap, p.rent0) * 12.0 * years,
    )

    diff = money(buy_total - rent_total)
    zone = classify_zone(diff, p.price)

    # Household baseline
    income = p.monthly_income
    fixed_expense = income * p.fixed_burden
    free_cash = income - fixed_expense - monthly_cash_out
    family = p.family_support * min(3, years)
    total_assets = p.emergency + p.future_big + family + p.gjj_extra * 24.0
    runway = (p.emergency + family) / max(1.0, fixed_expense + monthly_cash_out)

    horizon_10y = min(10, years) * 12
    gjj_amort = amortize(loans.provident, loans.provident_rate, loans.term_months, horizon_10y, loans.repay_type)
    com_amort = amortize(loans.commercial, loans.commercial_rate, loans.term_months, horizon_10y, loans.repay_type)
    principal_10y = gjj_amort.principal_paid + com_amort.principal_paid
    interest_10y = gjj_amort.interest_paid + com_amort.interest_paid

    # Base run, scenarios, grid
    base = simulate(ctx, p.house_growth, p.rent_growth)
    final = base.terminal
    if p.fast:
        scenarios = tuple(
            ScenarioComparison(name, g, final.buy_nav, final.rent_nav) for name, g in SCENARIOS
        )
        grid = SensitivityMatrix(
            house_growth_rates=(p.house_growth,),
            rent_growth_rates=(p.rent_growth,),
            gaps=np.array([[final.gap]], dtype=np.float64),
        )
        be_growth = p.house_growth
    else:
        scenarios = run_scenarios(ctx, p.rent_growth, executor=executor)
        grid = run_sensitivity_grid(ctx, executor=executor)
        be_growth = break_even_growth(grid, p.rent_growth)

    # Investment view of the rent path
    inv_fv = one_time.total * (1.0 + p.invest_rate) ** years
    monthly_diff = max(0.0, monthly_cash_out - p.rent0)
    mr = p.invest_rate / 12.0
    n = years * 12
    diff_fv = monthly_diff * (((1.0 + mr) ** n - 1.0) / mr) if mr > 0 else monthly_diff * n

    # Stress tests
    cover20 = (income * 0.8 - fixed_expense) / max(1.0, monthly_cash_out)
    cover40 = (income * 0.6 - fixed_expense) / max(1.0, monthly_cash_out)
    stress = StressTest(
        income_drop_20_coverage=cover20,
        income_drop_40_coverage=cover40,
        rate_up_50bp_monthly_change=loans.shocked_payment(0.005) - monthly_payment,
        rate_up_100bp_monthly_change=loans.shocked_payment(0.01) - monthly_payment,
        unemployment_6_months_safe=runway >= p.cash_runway_months,
        medical_shock_reserve_gap=max(0.0, p.medical_future - p.emergency * 0.35),
    )

    drivers = sorted(
        [
            ("Mortgage cash-flow pressure", abs(monthly_cash_out * n - p.rent0 * n)),
            ("Down-payment opportunity cost", abs(opportunity_cost)),
            ("Transaction taxes and renovation", abs(one_time.taxes_and_fees + one_time.renovation)),
            ("Rental friction", abs(rent_friction)),
            ("Liquidity buffer", abs(free_cash)),
        ],
        key=lambda d: -d[1],
    )
    window = decision_window(zone)
    base_gap = money(scenarios[1].buy_net_worth) - money(scenarios[1].rent_net_worth)
    summary = ExecutiveSummary(
        current_state=current_state(zone),
        zone=zone,
        top_drivers=tuple(label for label, _ in drivers[:3]),
        three_lines=(
            f"{years}-year median net-worth gap is about ¥{abs(base_gap):,}.",
            "Largest risk: "
            + ("cash-flow break under income volatility." if cover40 < 1 else "long-run opportunity cost drift."),
            f"Policy baseline: {p.policy.policy_name} ({p.policy.policy_version}).",
            f"Decision window: {window}",
        ),
        decision_window=window,
    )

    triggers = (
        f"Re-evaluate buying if the blended mortgage rate falls to "
        f"{max(loans.commercial_rate, loans.provident_rate) * 100 - 0.5:.2f}% or lower.",
        f"Buying starts to lead if expected annual house-price growth reaches {be_growth * 100:.2f}%.",
        f"Start execution prep once disposable cash reaches ¥{money(one_time.total * 1.3):,}.",
    )

    return ModelOutput(
        buy_total=buy_total,
        rent_total=rent_total,
        diff=diff,
        recommendation=recommendation_for(diff),
        zone=zone,
        policy=p.policy,
        fast=p.fast,
        monthly_payment=monthly_payment,
        monthly_cashflow=base.monthly,
        yearly_networth=base.yearly,
        terminal=final,
        buy_costs=BuyCostBreakdown(
            down_payment=one_time.down_payment,
            taxes=one_time.taxes_and_fees,
            total_interest=interest_10y,
            principal_paid=principal_10y,
            maintenance=p.monthly_holding * 12.0 * years,
            opportunity_cost=opportunity_cost,
        ),
        rent_costs=RentCostBreakdown(
            pure_rent=rent_base,
            friction=rent_friction,
            opportunity_gain=final.rent_nav - one_time.total,
        ),
        sensitivity=grid,
        scenarios=scenarios,
        crossover_year=crossover_year(base.yearly),
        break_even_growth=be_growth,
        summary=summary,
        baseline=FinancialBaseline(
            total_assets=total_assets,
            liquid_assets_ratio=p.liquid_ratio,
            emergency_runway_months=runway,
            monthly_income_estimate=income,
            fixed_expense=fixed_expense,
            free_cash_after_mortgage=free_cash,
            income_stability_level=income_stability_level(cover20),
        ),
        buy_simulation=BuySimulation(
            initial_costs=one_time,
            cash_left_after_purchase=p.emergency - one_time.total,
            monthly_outflow=monthly_cash_out,
            principal_paid_10y=principal_10y,
            interest_paid_10y=interest_10y,
        ),
        rent_simulation=RentSimulation(
            scenarios=tuple(
                RentScenario(label, g, yearly_rent_cost(p.rent0, g, years) + rent_friction)
                for label, g in RENT_SCENARIOS
            ),
            investment_contribution=inv_fv + diff_fv,
            relocation_cost=relocation_cost,
        ),
        stress=stress,
        scores=NonFinancialScores(
            stability=_score(p.rent_stability_discount, 90.0),
            freedom=_score(p.freedom_score),
            psychological_safety=_score(p.peace_discount),
            autonomy=_score(p.hukou_weight),
        ),
        decision_map=DecisionMap(
            zone=zone,
            position=min(100, max(0, money(50.0 - diff / max(1.0, p.price * 0.25) * 50.0))),
            reason=decision_reason(zone),
        ),
        trigger_conditions=triggers,
        warnings=tuple(get_validation_warnings(p, free_cash_after_mortgage=free_cash)),
    )
