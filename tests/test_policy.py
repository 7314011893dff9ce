"""Policy baselines: pytest wrappers for the QA truth tables plus resolver edge cases."""

from __future__ import annotations

import pytest

from hdm.core.policy_china import (
    SUPPORTED_CITIES,
    normalize_city,
    resolve_policy,
    resolve_policy_from_inputs,
)
from hdm.qa.qa_policy_china import (
    test_city_fallback,
    test_deed_and_vat_brackets,
    test_policy_truth_table,
)


def test_truth_table() -> None:
    test_policy_truth_table()


def test_brackets() -> None:
    test_deed_and_vat_brackets()


def test_fallback() -> None:
    test_city_fallback()


def test_beijing_second_home_constants() -> None:
    """Second city, second home: down-payment floor and PF rate are exact."""
    pol = resolve_policy(SUPPORTED_CITIES[1], True)
    assert pol.city == "Beijing"
    assert pol.dp_min_pct == 25.0
    assert pol.gjj_rate_pct(second_home=True) == 3.075


@pytest.mark.parametrize("flag", [True, 1, "1", "yes", "Y", "true", "是"])
def test_truthy_second_home_forms(flag) -> None:
    assert resolve_policy("Shanghai", flag).dp_min_pct == 25.0


@pytest.mark.parametrize("flag", [False, 0, "0", "no", "否", "maybe", None])
def test_falsy_second_home_forms(flag) -> None:
    assert resolve_policy("Shanghai", flag).dp_min_pct == 20.0


def test_area_threshold_is_inclusive() -> None:
    small = resolve_policy("Shanghai", False, 5, 140)
    large = resolve_policy("Shanghai", False, 5, 140.01)
    assert "Deed tax 1%" in small.auto_applied_factors
    assert "Deed tax 1.5%" in large.auto_applied_factors


def test_vat_factor_reflects_holding_period() -> None:
    assert "VAT exempt" in resolve_policy("Beijing", False, 2).auto_applied_factors
    assert "VAT 3%" in resolve_policy("Beijing", False, 1).auto_applied_factors


def test_cap_tiers() -> None:
    pol = resolve_policy("Shanghai")
    assert pol.gjj_cap_wan(multi_child=True, merge=False) == 216.0
    assert pol.gjj_cap_wan(multi_child=False, merge=True) == 184.0
    assert pol.gjj_cap_wan(multi_child=False, merge=False) == 80.0


def test_resolve_from_inputs_uses_resolver_defaults() -> None:
    pol = resolve_policy_from_inputs({"target_city": "bj"})
    assert pol.city == "Beijing"
    # holding_years defaults to 2 -> VAT exempt
    assert pol.vat_rate_pct(2) == 0.0
    assert resolve_policy_from_inputs(None).city == "Shanghai"


def test_normalize_city_aliases() -> None:
    assert normalize_city("  Shanghai ") == "Shanghai"
    assert normalize_city("上海") == "Shanghai"
    assert normalize_city("BJ") == "Beijing"


def test_to_dict_is_plain() -> None:
    d = resolve_policy("Beijing").to_dict()
    assert d["policy_version"] == "BJ-2026.01"
    assert isinstance(d["auto_applied_factors"], list)
