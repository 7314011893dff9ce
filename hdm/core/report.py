"""Output records for the housing decision model.

Everything the engine returns is a frozen dataclass holding *unrounded* values.
Rounding to whole yuan happens only when a record is externalized through
:meth:`ModelOutput.to_dict`, so accumulated figures never carry compounding rounding error.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from .policy_china import EffectivePolicy

FAVOR_RENT = "favor_rent"
NEUTRAL = "neutral"
FAVOR_BUY = "favor_buy"

RENT_IS_CHEAPER = "Renting is cheaper"
BUY_IS_CHEAPER = "Buying is cheaper"

# Cost gap that counts as decisive: 5% of price, never less than this many yuan.
ZONE_THRESHOLD_PCT = 0.05
ZONE_THRESHOLD_FLOOR = 30_000.0


def money(x: float) -> int:
    """Round half-up to whole yuan."""
    return int(math.floor(float(x) + 0.5))


# ---------------------------------------------------------------------------
# Simulation series
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MonthlyCashflowRecord:
    month: int
    buy_outflow: float
    rent_outflow: float
    gap: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "buyOutflow": money(self.buy_outflow),
            "rentOutflow": money(self.rent_outflow),
            "navGap": money(self.gap),
        }


@dataclass(frozen=True)
class YearlyNetWorthRecord:
    year: int
    buy_nav: float
    rent_nav: float

    @property
    def gap(self) -> float:
        return self.buy_nav - self.rent_nav

    def to_dict(self) -> dict[str, Any]:
        return {"year": self.year, "buyNAV": money(self.buy_nav), "rentNAV": money(self.rent_nav)}


@dataclass(frozen=True)
class SimulationSeries:
    """One full-horizon run for a (house growth, rent growth) pair."""

    house_growth: float
    rent_growth: float
    monthly: tuple[MonthlyCashflowRecord, ...]
    yearly: tuple[YearlyNetWorthRecord, ...]
    terminal: YearlyNetWorthRecord


@dataclass(frozen=True)
class ScenarioComparison:
    name: str
    house_growth: float
    buy_net_worth: float
    rent_net_worth: float

    @property
    def gap(self) -> float:
        return self.buy_net_worth - self.rent_net_worth

    def to_dict(self) -> dict[str, Any]:
        buy, rent = money(self.buy_net_worth), money(self.rent_net_worth)
        return {
            "name": self.name,
            "houseGrowth": self.house_growth,
            "buyNetWorth": buy,
            "rentNetWorth": rent,
            "gap": buy - rent,
        }


@dataclass(frozen=True, eq=False)
class SensitivityMatrix:
    """Terminal NAV gap (buy - rent); rows are house growth, columns rent growth."""

    house_growth_rates: tuple[float, ...]
    rent_growth_rates: tuple[float, ...]
    gaps: np.ndarray

    def cell(self, i: int, j: int) -> float:
        return float(self.gaps[i, j])

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            self.gaps,
            index=pd.Index(self.house_growth_rates, name="house_growth"),
            columns=pd.Index(self.rent_growth_rates, name="rent_growth"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "house_growth_rates": list(self.house_growth_rates),
            "rent_growth_rates": list(self.rent_growth_rates),
            "wealth_gap_matrix": [[money(v) for v in row] for row in self.gaps.tolist()],
        }


# ---------------------------------------------------------------------------
# Cost breakdowns
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OneTimeCosts:
    down_payment: float
    taxes_and_fees: float
    renovation: float
    friction: float

    @property
    def total(self) -> float:
        return self.down_payment + self.taxes_and_fees + self.renovation + self.friction


@dataclass(frozen=True)
class BuyCostBreakdown:
    down_payment: float
    taxes: float
    total_interest: float
    principal_paid: float
    maintenance: float
    opportunity_cost: float

    def to_dict(self) -> dict[str, int]:
        return {
            "downPayment": money(self.down_payment),
            "taxes": money(self.taxes),
            "totalInterest": money(self.total_interest),
            "principalPaid": money(self.principal_paid),
            "maintenance": money(self.maintenance),
            "opportunityCost": money(self.opportunity_cost),
        }


@dataclass(frozen=True)
class RentCostBreakdown:
    pure_rent: float
    friction: float
    opportunity_gain: float

    def to_dict(self) -> dict[str, int]:
        return {
            "pureRent": money(self.pure_rent),
            "friction": money(self.friction),
            "opportunityGain": max(0, money(self.opportunity_gain)),
        }


# ---------------------------------------------------------------------------
# Report sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FinancialBaseline:
    total_assets: float
    liquid_assets_ratio: float
    emergency_runway_months: float
    monthly_income_estimate: float
    fixed_expense: float
    free_cash_after_mortgage: float
    income_stability_level: str


@dataclass(frozen=True)
class BuySimulation:
    initial_costs: OneTimeCosts
    cash_left_after_purchase: float
    monthly_outflow: float
    principal_paid_10y: float
    interest_paid_10y: float

    @property
    def first_3_years_pressure(self) -> float:
        return self.monthly_outflow * 1.1

    @property
    def stable_after_5_years(self) -> float:
        return self.monthly_outflow * 0.95


@dataclass(frozen=True)
class RentScenario:
    label: str
    growth_rate: float
    total_cost: float


@dataclass(frozen=True)
class RentSimulation:
    scenarios: tuple[RentScenario, ...]
    investment_contribution: float
    relocation_cost: float


@dataclass(frozen=True)
class StressTest:
    income_drop_20_coverage: float
    income_drop_40_coverage: float
    rate_up_50bp_monthly_change: float
    rate_up_100bp_monthly_change: float
    unemployment_6_months_safe: bool
    medical_shock_reserve_gap: float


@dataclass(frozen=True)
class NonFinancialScores:
    stability: int
    freedom: int
    psychological_safety: int
    autonomy: int


@dataclass(frozen=True)
class DecisionMap:
    zone: str
    position: int
    reason: str


@dataclass(frozen=True)
class ExecutiveSummary:
    current_state: str
    zone: str
    top_drivers: tuple[str, ...]
    three_lines: tuple[str, ...]
    decision_window: str


ACTION_OPTIONS: tuple[dict[str, Any], ...] = (
    {
        "name": "OPTION A | Buy now",
        "condition": "Applies in the favor-buy zone",
        "requirements": [
            "Free cash flow stays positive after the mortgage payment",
            "Keep at least 6 months of emergency reserve after purchase",
            "Lock the rate and cap total leverage",
        ],
    },
    {
        "name": "OPTION B | Buy later",
        "condition": "Applies in the neutral zone",
        "requirements": [
            "Build cash to down payment + taxes + 12 months of buffer",
            "Reach medium-to-high income stability",
            "Keep watching rate and rent-to-price triggers",
        ],
    },
    {
        "name": "OPTION C | Rent long-term and invest",
        "condition": "Applies in the favor-rent zone",
        "requirements": [
            "Invest the down payment and the monthly difference with discipline",
            "Limit moving frequency and relocation friction",
            "Review the net-worth path against plan every year",
        ],
    },
)


def classify_zone(diff: float, price: float) -> str:
    """Three-way zone from the total-cost gap (buy - rent) relative to price."""
    threshold = max(price * ZONE_THRESHOLD_PCT, ZONE_THRESHOLD_FLOOR)
    if diff > threshold:
        return FAVOR_RENT
    if diff < -threshold:
        return FAVOR_BUY
    return NEUTRAL


def recommendation_for(diff: float) -> str:
    return RENT_IS_CHEAPER if diff > 0 else BUY_IS_CHEAPER


def current_state(zone: str) -> str:
    if zone == NEUTRAL:
        return "Buying and renting are roughly balanced"
    if zone == FAVOR_BUY:
        return "Buying has the advantage"
    return "Renting has the advantage"


def decision_window(zone: str) -> str:
    if zone == FAVOR_BUY:
        return "Actionable now: shortlist homes and lock financing within 3-6 months."
    if zone == FAVOR_RENT:
        return "Keep renting for 12-24 months; build cash and wait for a trigger."
    return "Track rates, the rent-to-price ratio and the cash buffer over the next 6-12 months."


def decision_reason(zone: str) -> str:
    if zone == FAVOR_BUY:
        return "The buy path's median net worth is clearly ahead and cash flow is covered."
    if zone == FAVOR_RENT:
        return "Opportunity cost and cash-flow pressure remain high; renting and investing is steadier."
    return "The paths are close; wait for a trigger before switching strategy."


def income_stability_level(coverage_after_20pct_drop: float) -> str:
    if coverage_after_20pct_drop >= 1.2:
        return "high"
    if coverage_after_20pct_drop >= 1:
        return "medium"
    return "low"


# ---------------------------------------------------------------------------
# Aggregate output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelOutput:
    """Everything one engine call produces. Recomputed in full on every call."""

    buy_total: float
    rent_total: float
    diff: int
    recommendation: str
    zone: str
    policy: EffectivePolicy
    fast: bool

    monthly_payment: float
    monthly_cashflow: tuple[MonthlyCashflowRecord, ...]
    yearly_networth: tuple[YearlyNetWorthRecord, ...]
    terminal: YearlyNetWorthRecord
    buy_costs: BuyCostBreakdown
    rent_costs: RentCostBreakdown
    sensitivity: SensitivityMatrix

    scenarios: tuple[ScenarioComparison, ...]
    crossover_year: int | None
    break_even_growth: float

    summary: ExecutiveSummary
    baseline: FinancialBaseline
    buy_simulation: BuySimulation
    rent_simulation: RentSimulation
    stress: StressTest
    scores: NonFinancialScores
    decision_map: DecisionMap
    trigger_conditions: tuple[str, ...]
    warnings: tuple[str, ...] = field(default_factory=tuple)
    is_qualified: bool = True

    def monthly_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(r.month, r.buy_outflow, r.rent_outflow, r.gap) for r in self.monthly_cashflow],
            columns=["Month", "Buy Outflow", "Rent Outflow", "Gap"],
        )

    def yearly_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(
            [(r.year, r.buy_nav, r.rent_nav) for r in self.yearly_networth],
            columns=["Year", "Buy NAV", "Rent NAV"],
        )
        df["NAV Gap"] = df["Buy NAV"] - df["Rent NAV"]
        return df

    def to_dict(self) -> dict[str, Any]:
        """Externalize with whole-yuan rounding and the camelCase keys UIs consume."""
        buy_nav, rent_nav = money(self.terminal.buy_nav), money(self.terminal.rent_nav)
        init = self.buy_simulation.initial_costs
        s = self.stress
        return {
            "buyTotal": money(self.buy_total),
            "rentTotal": money(self.rent_total),
            "diff": self.diff,
            "recommendation": self.recommendation,
            "isQualified": self.is_qualified,
            "fast": self.fast,
            "wealthView": {
                "buyNAV": buy_nav,
                "rentNAV": rent_nav,
                "navDiff": buy_nav - rent_nav,
                "monthly_cashflow": [r.to_dict() for r in self.monthly_cashflow],
                "yearly_networth": [r.to_dict() for r in self.yearly_networth],
                "cost_breakdown": {"buy": self.buy_costs.to_dict(), "rent": self.rent_costs.to_dict()},
                "sensitivity_matrix": self.sensitivity.to_dict(),
            },
            "report": {
                "executiveSummary": {
                    "currentState": self.summary.current_state,
                    "zone": self.summary.zone,
                    "topDrivers": list(self.summary.top_drivers),
                    "threeLines": list(self.summary.three_lines),
                    "decisionWindow": self.summary.decision_window,
                },
                "financialBaseline": {
                    "totalAssets": money(self.baseline.total_assets),
                    "liquidAssetsRatio": self.baseline.liquid_assets_ratio,
                    "emergencyRunwayMonths": self.baseline.emergency_runway_months,
                    "monthlyIncomeEstimate": money(self.baseline.monthly_income_estimate),
                    "fixedExpense": money(self.baseline.fixed_expense),
                    "freeCashAfterMortgage": money(self.baseline.free_cash_after_mortgage),
                    "incomeStabilityLevel": self.baseline.income_stability_level,
                },
                "buySimulation": {
                    "initialCosts": {
                        "downPayment": money(init.down_payment),
                        "taxesAndFees": money(init.taxes_and_fees),
                        "renovation": money(init.renovation),
                        "frictionCost": money(init.friction),
                        "total": money(init.total),
                        "cashLeftAfterPurchase": money(self.buy_simulation.cash_left_after_purchase),
                    },
                    "monthlyOutflow": money(self.buy_simulation.monthly_outflow),
                    "first3YearsPressure": money(self.buy_simulation.first_3_years_pressure),
                    "stableAfter5Years": money(self.buy_simulation.stable_after_5_years),
                    "principalPaid10Years": money(self.buy_simulation.principal_paid_10y),
                    "interestPaid10Years": money(self.buy_simulation.interest_paid_10y),
                },
                "rentSimulation": {
                    "scenarios": [
                        {"label": r.label, "growthRate": r.growth_rate, "totalCost": money(r.total_cost)}
                        for r in self.rent_simulation.scenarios
                    ],
                    "investmentContribution": money(self.rent_simulation.investment_contribution),
                    "relocationCost": money(self.rent_simulation.relocation_cost),
                },
                "netWorthComparison": {
                    "scenarios": [sc.to_dict() for sc in self.scenarios],
                    "crossoverYear": self.crossover_year,
                    "breakEvenGrowth": self.break_even_growth,
                },
                "stressTest": {
                    "incomeDrop20": {
                        "monthlyCoverageRatio": s.income_drop_20_coverage,
                        "safe": s.income_drop_20_coverage >= 1,
                    },
                    "incomeDrop40": {
                        "monthlyCoverageRatio": s.income_drop_40_coverage,
                        "safe": s.income_drop_40_coverage >= 1,
                    },
                    "rateUp50bpMonthlyChange": money(s.rate_up_50bp_monthly_change),
                    "rateUp100bpMonthlyChange": money(s.rate_up_100bp_monthly_change),
                    "unemployment6MonthsSafe": s.unemployment_6_months_safe,
                    "medicalShockReserveGap": money(s.medical_shock_reserve_gap),
                },
                "nonFinancialScores": {
                    "stability": self.scores.stability,
                    "freedom": self.scores.freedom,
                    "psychologicalSafety": self.scores.psychological_safety,
                    "autonomy": self.scores.autonomy,
                },
                "decisionMap": {
                    "zone": self.decision_map.zone,
                    "position": self.decision_map.position,
                    "reason": self.decision_map.reason,
                },
                "actionOptions": [dict(opt, requirements=list(opt["requirements"])) for opt in ACTION_OPTIONS],
                "triggerConditions": list(self.trigger_conditions),
                "policy": {
                    "city": self.policy.city,
                    "policyName": self.policy.policy_name,
                    "policyVersion": self.policy.policy_version,
                    "autoAppliedFactors": list(self.policy.auto_applied_factors),
                },
                "warnings": list(self.warnings),
            },
        }
