"""City-specific housing policy baselines (Shanghai, Beijing).

These are *baseline rules* used to seed simulation defaults; banks and provident-fund
centres may apply additional criteria. Each baseline carries a version string so
results can be audited against the rules that produced them.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import asdict, dataclass, field

from .coerce import to_bool, to_float

# Last reviewed for correctness (YYYY-MM-DD).
# Update this when modifying any thresholds in this module.
POLICY_LAST_REVIEWED = dt.date(2026, 1, 15)

SUPPORTED_CITIES = ("Shanghai", "Beijing")

# Units at or below this floor area (m²) use the small-unit deed-tax bracket.
SMALL_UNIT_MAX_AREA = 140.0

_CITY_ALIASES = {
    "shanghai": "Shanghai",
    "sh": "Shanghai",
    "上海": "Shanghai",
    "beijing": "Beijing",
    "bj": "Beijing",
    "北京": "Beijing",
}


def normalize_city(city) -> str:
    """Map a loosely typed city value onto a supported city.

    Unknown values fall back to the first supported city; this never raises.
    """
    key = str(city or "").strip()
    return _CITY_ALIASES.get(key.lower(), _CITY_ALIASES.get(key, SUPPORTED_CITIES[0]))


@dataclass(frozen=True)
class EffectivePolicy:
    """Resolved policy constants for one city and buyer profile.

    Percent-valued fields are whole percents (3.5 == 3.5%), ``bp_bps`` is in basis
    points and provident-fund caps are in wan (10,000 yuan).
    """

    city: str
    policy_name: str
    policy_version: str
    dp_min_pct: float
    lpr_pct: float
    bp_bps: float
    gjj_rate_first_pct: float
    gjj_rate_second_pct: float
    deed_rate_small_first_pct: float
    deed_rate_large_first_pct: float
    deed_rate_small_second_pct: float
    deed_rate_large_second_pct: float
    vat_non_exempt_pct: float
    vat_exempt_holding_years: float
    gjj_max_single_wan: float
    gjj_max_family_wan: float
    gjj_max_multichild_wan: float
    auto_applied_factors: tuple[str, ...] = field(default_factory=tuple)

    def deed_rate_pct(self, *, small_unit: bool, second_home: bool) -> float:
        if second_home:
            return self.deed_rate_small_second_pct if small_unit else self.deed_rate_large_second_pct
        return self.deed_rate_small_first_pct if small_unit else self.deed_rate_large_first_pct

    def vat_rate_pct(self, holding_years: float) -> float:
        """VAT on resale is waived once the holding period reaches the exemption threshold."""
        return 0.0 if holding_years >= self.vat_exempt_holding_years else self.vat_non_exempt_pct

    def gjj_rate_pct(self, *, second_home: bool) -> float:
        return self.gjj_rate_second_pct if second_home else self.gjj_rate_first_pct

    def gjj_cap_wan(self, *, multi_child: bool, merge: bool) -> float:
        """Provident-fund loan cap: multi-child beats family-merge beats single applicant."""
        if multi_child:
            return self.gjj_max_multichild_wan
        return self.gjj_max_family_wan if merge else self.gjj_max_single_wan

    def to_dict(self) -> dict:
        out = asdict(self)
        out["auto_applied_factors"] = list(self.auto_applied_factors)
        return out


def _fmt_pct(x: float) -> str:
    return f"{x:g}%"


def _factors(
    *,
    dp_min_pct: float,
    lpr_label: str,
    gjj_rate_pct: float,
    deed_pct: float,
    vat_pct: float,
) -> tuple[str, ...]:
    return (
        f"Down-payment floor {_fmt_pct(dp_min_pct)}",
        f"Commercial benchmark {lpr_label}",
        f"Provident-fund rate {_fmt_pct(gjj_rate_pct)}",
        f"Deed tax {_fmt_pct(deed_pct)}",
        "VAT exempt" if vat_pct <= 0 else f"VAT {_fmt_pct(vat_pct)}",
    )


def resolve_policy(
    city=None,
    is_second_home=False,
    holding_years=2,
    area=90,
    has_multi_child=False,
    is_green_building=False,
) -> EffectivePolicy:
    """Resolve the effective policy for a city and buyer profile.

    Every argument is loosely typed (numbers, numeric strings, yes/no words) and has a
    default; there is no error path.

    Args:
        city: City name or alias; unsupported values fall back to Shanghai.
        is_second_home: Second-home purchase (raises down-payment floor and PF rate).
        holding_years: Seller's holding period, drives the resale VAT exemption.
        area: Floor area in m², drives the small/large deed-tax bracket.
        has_multi_child: Multi-child household (highest provident-fund cap).
        is_green_building: Green-certified building (Beijing raises the family cap).

    Returns:
        A frozen :class:`EffectivePolicy`.
    """
    name = normalize_city(city)
    second = to_bool(is_second_home)
    holding = to_float(holding_years, 2.0)
    small = to_float(area, 90.0) <= SMALL_UNIT_MAX_AREA
    multi_child = to_bool(has_multi_child)
    green = to_bool(is_green_building)

    dp_min_pct = 25.0 if second else 20.0
    gjj_first, gjj_second = 2.6, 3.075
    deed = {
        "small_first": 1.0,
        "large_first": 1.5,
        "small_second": 1.0,
        "large_second": 2.0,
    }
    deed_pct = deed[f"{'small' if small else 'large'}_{'second' if second else 'first'}"]

    if name == "Beijing":
        lpr_pct, bp_bps, vat_pct = 3.05, 0.0, 3.0
        vat_applied = 0.0 if holding >= 2 else vat_pct
        return EffectivePolicy(
            city=name,
            policy_name="Beijing 2026 baseline",
            policy_version="BJ-2026.01",
            dp_min_pct=dp_min_pct,
            lpr_pct=lpr_pct,
            bp_bps=bp_bps,
            gjj_rate_first_pct=gjj_first,
            gjj_rate_second_pct=gjj_second,
            deed_rate_small_first_pct=deed["small_first"],
            deed_rate_large_first_pct=deed["large_first"],
            deed_rate_small_second_pct=deed["small_second"],
            deed_rate_large_second_pct=deed["large_second"],
            vat_non_exempt_pct=vat_pct,
            vat_exempt_holding_years=2.0,
            gjj_max_single_wan=100.0 if second else 120.0,
            gjj_max_family_wan=200.0 if (multi_child or green) else 160.0,
            gjj_max_multichild_wan=200.0,
            auto_applied_factors=_factors(
                dp_min_pct=dp_min_pct,
                lpr_label=_fmt_pct(lpr_pct),
                gjj_rate_pct=gjj_second if second else gjj_first,
                deed_pct=deed_pct,
                vat_pct=vat_applied,
            ),
        )

    # Shanghai: first-home buyers get a -45bp point on the commercial benchmark.
    lpr_pct, vat_pct = 3.5, 5.3
    bp_bps = 0.0 if second else -45.0
    vat_applied = 0.0 if holding >= 2 else vat_pct
    return EffectivePolicy(
        city=name,
        policy_name="Shanghai 2026 baseline",
        policy_version="SH-2026.01",
        dp_min_pct=dp_min_pct,
        lpr_pct=lpr_pct,
        bp_bps=bp_bps,
        gjj_rate_first_pct=gjj_first,
        gjj_rate_second_pct=gjj_second,
        deed_rate_small_first_pct=deed["small_first"],
        deed_rate_large_first_pct=deed["large_first"],
        deed_rate_small_second_pct=deed["small_second"],
        deed_rate_large_second_pct=deed["large_second"],
        vat_non_exempt_pct=vat_pct,
        vat_exempt_holding_years=2.0,
        gjj_max_single_wan=80.0,
        gjj_max_family_wan=216.0 if multi_child else 184.0,
        gjj_max_multichild_wan=216.0,
        auto_applied_factors=_factors(
            dp_min_pct=dp_min_pct,
            lpr_label=f"{_fmt_pct(lpr_pct)} {bp_bps:+g}bp",
            gjj_rate_pct=gjj_second if second else gjj_first,
            deed_pct=deed_pct,
            vat_pct=vat_applied,
        ),
    )


def resolve_policy_from_inputs(raw: dict | None) -> EffectivePolicy:
    """Resolve a policy straight from a raw input mapping (resolver defaults apply)."""
    src = raw if isinstance(raw, dict) else {}
    return resolve_policy(
        src.get("target_city"),
        src.get("is_second_home", False),
        src.get("holding_years", 2),
        src.get("area", 90),
        src.get("multi_child_bonus", False),
        src.get("green_building", False),
    )
