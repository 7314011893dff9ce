"""Raw input -> fully resolved model parameters.

Callers hand the engine an open mapping of loosely typed values. ``normalize_inputs``
is the only place that reads that mapping: it applies every documented fallback in
a fixed dependency order and returns one frozen :class:`ModelParams` that the rest
of the engine consumes.

Stage order matters because some fallbacks depend on earlier results:

1. flags
2. horizon and property (price, area, horizon, holding period)
3. policy resolution
4. policy-derived brackets and rates (VAT, deed tax, down-payment floor, loan rates)
5. remaining numeric defaults
6. expert-gated cost terms (zero unless ``expert_configured``)
7. household / affordability inputs
8. loan sizing and the income fallback that depends on the first payment

Units: currency is yuan, rates are decimals, areas are m².
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping

from .coerce import non_negative, to_bool, to_float, to_number, to_percent, to_yuan
from .mortgage import LoanStructure, normalize_repay_type, size_loans
from .policy_china import SMALL_UNIT_MAX_AREA, EffectivePolicy, resolve_policy
from .validation import clamp_ratio

# Raw-input defaults, in the units a user types them: percents as whole percents,
# "wan" amounts in 10,000 yuan, everything else in yuan / months / years / m².
# Policy-derived keys (dp_min, LPR, BP, r_gjj, VAT_rate, Deed1_rate, Deed2_rate,
# GJJ_max_family, GJJ_max_single) default from the resolved policy instead.
DEFAULTS: dict[str, Any] = {
    # Flags
    "expert_configured": False,
    "target_city": "Shanghai",
    "is_second_home": False,
    "multi_child_bonus": False,
    "green_building": False,
    "GJJ_merge": True,
    "M5U": True,
    # Property and horizon
    "P": 600,  # wan
    "area": 100,
    "years": 10,
    # Transaction costs
    "CT_rate": 7,
    "Edu_rate": 3,
    "LocalEdu_rate": 2,
    "PIT_gross_rate": 1.5,
    "Reno_hard": 30,  # wan
    "Reno_soft": 12,  # wan
    "Reg_fee": 0.1,  # wan
    "Loan_service": 0.1,  # wan
    "Move_cost": 3000,
    # Loan structure
    "Mix_ratio": 50,
    "GJJ_offset": 0,
    "n_years": 30,
    "Repay_type": "equal_installment",
    # Holding costs
    "PM_unit": 5,
    "Deduct_limit": 1000,
    # Rent path
    "rent_0": 8000,
    "g_r": 3,
    "Move_freq_years": 2,
    # Investment and exit
    "R_inv": 5,
    "Invest_consistency": 0.7,
    "g_p": 3,
    "Seller_agent_rate": 2,
    "Seller_tax_rate": 0,
    "VAT_addon_exit": 0,
    "Escrow_fee": 0,
    # Household
    "Anxiety_threshold": 0.5,
    "Fixed_burden": 0.35,
    "Emergency": 6,  # wan
    "Future_big": 0,  # wan
    "Family_support": 0,  # wan per year
    "GJJ_extra": 0,
    "Liquid_ratio": 20,
    "Cash_runway_months": 6,
    "Freedom_score": 0.5,
    "Rent_stability_discount": 0.95,
    "Peace_discount": 0.95,
    "Hukou_weight": 0.5,
}

# Secondary cost terms that only apply in expert mode; nominal defaults below.
EXPERT_DEFAULTS: dict[str, Any] = {
    "Buyer_agent_rate": 1.5,
    "Seller_to_buyer_rate": 0.5,
    "Time_cost": 0.1,  # wan
    "PM_growth": 3,
    "PropertyTax_rate": 0.4,
    "Maintenance_yearly": 30,  # yuan per m² per year
    "Insurance": 800,
    "Parking_mgmt": 0,
    "Broadband": 120,
    "Energy_premium": 0,
    "Large_replace": 2,  # wan, only for horizons of 10+ years
    "Furn_depr": 2000,
    "Overlap_rent": 0,
    "Social_cost": 0,
    "Rent_agent_rate": 0.5,  # months of rent per move
    "Deposit_mult": 1.25,
    "Rent_tax_rate": 1,
    "Residence_fee": 0,
    "GJJ_rent_cap": 0,
    "Commute_delta": 0,
    "CPI": 2,
    "Medical_future": 0,
}

EXPERT_KEYS = frozenset(EXPERT_DEFAULTS)


@dataclass(frozen=True)
class ModelParams:
    """Fully resolved, strongly typed model parameters."""

    policy: EffectivePolicy
    loans: LoanStructure

    # Flags
    expert: bool
    fast: bool
    second_home: bool
    multi_child: bool
    gjj_merge: bool
    m5u: bool

    # Property and horizon
    price: float
    area: float
    years: int
    holding_years: float

    # One-time transaction costs
    dp_ratio: float
    vat_rate: float
    deed_rate: float
    ct_rate: float
    edu_rate: float
    local_edu_rate: float
    pit_gross_rate: float
    buyer_agent_rate: float
    seller_to_buyer_rate: float
    reno_hard: float
    reno_soft: float
    reg_fee: float
    loan_service: float
    move_cost: float
    time_cost: float

    # Loan
    commercial_rate: float
    gjj_rate: float
    mix_ratio: float
    gjj_cap: float
    gjj_offset: float
    term_months: int
    repay_type: str

    # Recurring holding costs
    pm_unit: float
    deduct_limit: float
    pm_growth: float
    property_tax_rate: float
    maintenance_yearly: float
    insurance_yearly: float
    parking_monthly: float
    broadband_monthly: float
    energy_monthly: float
    large_replace: float

    # Rent path
    rent0: float
    rent_growth: float
    move_freq_years: float
    furn_depr: float
    overlap_rent: float
    social_cost: float
    rent_agent_months: float
    deposit_mult: float
    rent_tax_rate: float
    residence_fee: float
    gjj_rent_cap: float
    commute_delta: float
    cpi: float

    # Investment and exit
    invest_rate: float
    invest_consistency: float
    house_growth: float
    seller_agent_rate: float
    seller_tax_rate: float
    exit_vat_rate: float
    escrow_rate: float

    # Household / affordability
    monthly_income: float
    fixed_burden: float
    emergency: float
    future_big: float
    family_support: float
    gjj_extra: float
    liquid_ratio: float
    cash_runway_months: float
    medical_future: float
    freedom_score: float
    rent_stability_discount: float
    peace_discount: float
    hukou_weight: float

    @property
    def small_unit(self) -> bool:
        return self.area <= SMALL_UNIT_MAX_AREA

    @property
    def horizon_months(self) -> int:
        return self.years * 12

    @property
    def exit_cost_rate(self) -> float:
        return self.seller_agent_rate + self.seller_tax_rate + self.exit_vat_rate + self.escrow_rate

    @property
    def move_every_months(self) -> int:
        """Relocation cadence in whole months, never shorter than a year."""
        return max(12, int(round(self.move_freq_years * 12)))

    @property
    def monthly_holding(self) -> float:
        return self.pm_unit * self.area

    def with_overrides(self, **changes: Any) -> "ModelParams":
        return replace(self, **changes)


def _num(raw: Mapping[str, Any], key: str, default: float | None = None) -> float:
    return to_float(raw.get(key), DEFAULTS[key] if default is None else default)


def _expert(raw: Mapping[str, Any], expert: bool, key: str) -> float:
    return max(0.0, to_float(raw.get(key), EXPERT_DEFAULTS[key])) if expert else 0.0


def _expert_pct(raw: Mapping[str, Any], expert: bool, key: str) -> float:
    return to_percent(raw.get(key), EXPERT_DEFAULTS[key]) if expert else 0.0


# Annual rates that compound over the horizon stay in (-100%, 100%].
RATE_FLOOR = -0.99
RATE_CEILING = 1.0
MAX_YEARS = 100


def _rate(value: float, name: str) -> float:
    return clamp_ratio(value, name, min_val=RATE_FLOOR, max_val=RATE_CEILING)


def _consistency(value: object, default: float) -> float:
    x = to_number(value)
    if x is None:
        x = default
    elif x > 1:
        x = x / 100.0
    return clamp_ratio(x, "Invest_consistency")


def normalize_inputs(raw: Mapping[str, Any] | None, *, fast: bool | None = None) -> ModelParams:
    """Resolve a raw input mapping into :class:`ModelParams`.

    Never raises for malformed values: unparseable or non-finite entries fall back to
    their documented default. Unknown keys are ignored.

    Args:
        raw: Open mapping of parameter name -> loosely typed value.
        fast: Force reduced-fidelity mode on/off; ``None`` reads ``__debug_fast``.
    """
    raw = dict(raw or {})

    # 1. Flags
    expert = to_bool(raw.get("expert_configured"), False)
    fast_mode = to_bool(raw.get("__debug_fast", raw.get("fast")), False) if fast is None else bool(fast)
    second_home = to_bool(raw.get("is_second_home"), False)
    multi_child = to_bool(raw.get("multi_child_bonus"), False)
    green = to_bool(raw.get("green_building"), False)
    gjj_merge = to_bool(raw.get("GJJ_merge"), True)
    m5u = to_bool(raw.get("M5U"), True)

    # 2. Horizon and property
    price = to_yuan(raw.get("P"), DEFAULTS["P"])
    area = _num(raw, "area")
    years = int(clamp_ratio(max(1, int(_num(raw, "years"))), "years", min_val=1, max_val=MAX_YEARS))
    holding_years = max(0.0, to_float(raw.get("holding_years"), float(years)))

    # 3. Policy
    policy = resolve_policy(
        raw.get("target_city"),
        second_home,
        holding_years,
        area,
        multi_child,
        green,
    )

    # 4. Policy-derived brackets and rates
    small_unit = area <= SMALL_UNIT_MAX_AREA
    vat_rate = to_percent(raw.get("VAT_rate"), policy.vat_rate_pct(holding_years))
    deed1 = to_percent(raw.get("Deed1_rate"), policy.deed_rate_pct(small_unit=small_unit, second_home=False))
    deed2 = to_percent(raw.get("Deed2_rate"), policy.deed_rate_pct(small_unit=small_unit, second_home=True))
    dp_ratio = clamp_ratio(to_percent(raw.get("dp_min"), policy.dp_min_pct), "dp_min")
    bank_point = to_float(raw.get("BP"), policy.bp_bps) / 10_000.0
    commercial_rate = _rate(to_percent(raw.get("LPR"), policy.lpr_pct) + bank_point, "LPR")
    gjj_rate = _rate(to_percent(raw.get("r_gjj"), policy.gjj_rate_pct(second_home=second_home)), "r_gjj")
    policy_cap_wan = policy.gjj_cap_wan(multi_child=multi_child, merge=gjj_merge)
    gjj_cap = max(0.0, to_yuan(raw.get("GJJ_max_family" if gjj_merge else "GJJ_max_single"), policy_cap_wan))

    # 5. Remaining numeric defaults
    expert_time_cost = to_yuan(raw.get("Time_cost"), EXPERT_DEFAULTS["Time_cost"]) if expert else 0.0
    term_months = max(12, min(MAX_YEARS, int(_num(raw, "n_years"))) * 12)

    # 6. Expert-gated terms
    large_replace = (
        to_yuan(raw.get("Large_replace"), EXPERT_DEFAULTS["Large_replace"]) if (expert and years >= 10) else 0.0
    )

    # 7. Household
    anxiety = _num(raw, "Anxiety_threshold")
    if anxiety <= 0:
        anxiety = DEFAULTS["Anxiety_threshold"]

    # 8. Loans and the income fallback
    repay_type = normalize_repay_type(raw.get("Repay_type"))
    mix_ratio = clamp_ratio(to_percent(raw.get("Mix_ratio"), DEFAULTS["Mix_ratio"]), "Mix_ratio")
    loans = size_loans(
        price,
        dp_ratio,
        mix_ratio,
        gjj_cap,
        provident_rate=gjj_rate,
        commercial_rate=commercial_rate,
        term_months=term_months,
        repay_type=repay_type,
    )
    income = to_number(raw.get("monthly_income"))
    if income is None:
        income = loans.monthly_payment(1) / anxiety

    return ModelParams(
        policy=policy,
        loans=loans,
        expert=expert,
        fast=fast_mode,
        second_home=second_home,
        multi_child=multi_child,
        gjj_merge=gjj_merge,
        m5u=m5u,
        price=price,
        area=area,
        years=years,
        holding_years=holding_years,
        dp_ratio=dp_ratio,
        vat_rate=vat_rate,
        deed_rate=deed2 if second_home else deed1,
        ct_rate=to_percent(raw.get("CT_rate"), DEFAULTS["CT_rate"]),
        edu_rate=to_percent(raw.get("Edu_rate"), DEFAULTS["Edu_rate"]),
        local_edu_rate=to_percent(raw.get("LocalEdu_rate"), DEFAULTS["LocalEdu_rate"]),
        pit_gross_rate=to_percent(raw.get("PIT_gross_rate"), DEFAULTS["PIT_gross_rate"]),
        buyer_agent_rate=_expert_pct(raw, expert, "Buyer_agent_rate"),
        seller_to_buyer_rate=_expert_pct(raw, expert, "Seller_to_buyer_rate"),
        reno_hard=to_yuan(raw.get("Reno_hard"), DEFAULTS["Reno_hard"]),
        reno_soft=to_yuan(raw.get("Reno_soft"), DEFAULTS["Reno_soft"]),
        reg_fee=to_yuan(raw.get("Reg_fee"), DEFAULTS["Reg_fee"]),
        loan_service=to_yuan(raw.get("Loan_service"), DEFAULTS["Loan_service"]),
        move_cost=non_negative(raw.get("Move_cost"), DEFAULTS["Move_cost"]),
        time_cost=expert_time_cost,
        commercial_rate=commercial_rate,
        gjj_rate=gjj_rate,
        mix_ratio=mix_ratio,
        gjj_cap=gjj_cap,
        gjj_offset=non_negative(raw.get("GJJ_offset"), DEFAULTS["GJJ_offset"]),
        term_months=term_months,
        repay_type=repay_type,
        pm_unit=_num(raw, "PM_unit"),
        deduct_limit=non_negative(raw.get("Deduct_limit"), DEFAULTS["Deduct_limit"]),
        pm_growth=_rate(_expert_pct(raw, expert, "PM_growth"), "PM_growth"),
        property_tax_rate=_expert_pct(raw, expert, "PropertyTax_rate"),
        maintenance_yearly=_expert(raw, expert, "Maintenance_yearly"),
        insurance_yearly=_expert(raw, expert, "Insurance"),
        parking_monthly=_expert(raw, expert, "Parking_mgmt"),
        broadband_monthly=_expert(raw, expert, "Broadband"),
        energy_monthly=_expert(raw, expert, "Energy_premium"),
        large_replace=large_replace,
        rent0=non_negative(raw.get("rent_0"), DEFAULTS["rent_0"]),
        rent_growth=_rate(to_percent(raw.get("g_r"), DEFAULTS["g_r"]), "g_r"),
        move_freq_years=max(1.0, _num(raw, "Move_freq_years")),
        furn_depr=_expert(raw, expert, "Furn_depr"),
        overlap_rent=_expert(raw, expert, "Overlap_rent"),
        social_cost=_expert(raw, expert, "Social_cost"),
        rent_agent_months=_expert(raw, expert, "Rent_agent_rate"),
        deposit_mult=_expert(raw, expert, "Deposit_mult"),
        rent_tax_rate=_expert_pct(raw, expert, "Rent_tax_rate"),
        residence_fee=_expert(raw, expert, "Residence_fee"),
        gjj_rent_cap=_expert(raw, expert, "GJJ_rent_cap"),
        commute_delta=_expert(raw, expert, "Commute_delta"),
        cpi=_rate(_expert_pct(raw, expert, "CPI"), "CPI"),
        invest_rate=_rate(to_percent(raw.get("R_inv"), DEFAULTS["R_inv"]), "R_inv"),
        invest_consistency=_consistency(raw.get("Invest_consistency"), DEFAULTS["Invest_consistency"]),
        house_growth=_rate(to_percent(raw.get("g_p"), DEFAULTS["g_p"]), "g_p"),
        seller_agent_rate=to_percent(raw.get("Seller_agent_rate"), DEFAULTS["Seller_agent_rate"]),
        seller_tax_rate=to_percent(raw.get("Seller_tax_rate"), DEFAULTS["Seller_tax_rate"]),
        exit_vat_rate=to_percent(raw.get("VAT_addon_exit"), DEFAULTS["VAT_addon_exit"]),
        escrow_rate=to_percent(raw.get("Escrow_fee"), DEFAULTS["Escrow_fee"]),
        monthly_income=income,
        fixed_burden=_num(raw, "Fixed_burden"),
        emergency=to_yuan(raw.get("Emergency"), DEFAULTS["Emergency"]),
        future_big=to_yuan(raw.get("Future_big"), DEFAULTS["Future_big"]),
        family_support=to_yuan(raw.get("Family_support"), DEFAULTS["Family_support"]),
        gjj_extra=_num(raw, "GJJ_extra"),
        liquid_ratio=clamp_ratio(to_percent(raw.get("Liquid_ratio"), DEFAULTS["Liquid_ratio"]), "Liquid_ratio"),
        cash_runway_months=max(1.0, _num(raw, "Cash_runway_months")),
        medical_future=_expert(raw, expert, "Medical_future"),
        freedom_score=_num(raw, "Freedom_score"),
        rent_stability_discount=_num(raw, "Rent_stability_discount"),
        peace_discount=_num(raw, "Peace_discount"),
        hukou_weight=_num(raw, "Hukou_weight"),
    )
