"""Raw-input coercion and the ordered normalization pipeline."""

from __future__ import annotations

import warnings

import pytest

from hdm.core.coerce import to_bool, to_number, to_percent, to_yuan
from hdm.core.params import EXPERT_KEYS, normalize_inputs


class TestCoercion:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (8000, 8000.0),
            ("8,000", 8000.0),
            (" 1 200 ", 1200.0),
            ("6，000，000", 6_000_000.0),
            ("3.5", 3.5),
        ],
    )
    def test_numbers(self, raw, expected) -> None:
        assert to_number(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", [None, "", "abc", True, float("nan"), float("inf"), "inf", [1]])
    def test_not_numbers(self, raw) -> None:
        assert to_number(raw) is None

    def test_percent_to_decimal(self) -> None:
        assert to_percent("3.5", 1.0) == pytest.approx(0.035)
        assert to_percent(None, 20) == pytest.approx(0.20)

    def test_yuan_self_detects_wan(self) -> None:
        assert to_yuan(600, 1) == pytest.approx(6_000_000)
        assert to_yuan(6_000_000, 1) == pytest.approx(6_000_000)
        assert to_yuan("10000", 1) == pytest.approx(100_000_000)
        assert to_yuan("10001", 1) == pytest.approx(10_001)
        assert to_yuan("n/a", 6) == pytest.approx(60_000)

    def test_bool_fallback(self) -> None:
        assert to_bool("unknown", True) is True
        assert to_bool("unknown") is False


class TestNormalizeDefaults:
    def test_empty_input_uses_defaults(self) -> None:
        p = normalize_inputs({})
        assert p.policy.city == "Shanghai"
        assert p.price == pytest.approx(6_000_000)
        assert p.years == 10
        assert p.holding_years == pytest.approx(10)
        assert p.dp_ratio == pytest.approx(0.20)
        assert p.commercial_rate == pytest.approx(0.0305)
        assert p.gjj_rate == pytest.approx(0.026)
        assert p.term_months == 360
        assert p.rent0 == pytest.approx(8000)
        assert p.invest_consistency == pytest.approx(0.7)
        assert p.fast is False
        assert p.expert is False

    def test_none_is_empty(self) -> None:
        assert normalize_inputs(None).price == normalize_inputs({}).price

    def test_garbage_values_fall_back(self) -> None:
        p = normalize_inputs({"P": "abc", "years": None, "g_r": "n/a", "LPR": float("nan")})
        assert p.price == pytest.approx(6_000_000)
        assert p.years == 10
        assert p.rent_growth == pytest.approx(0.03)
        assert p.commercial_rate == pytest.approx(0.0305)

    def test_unknown_keys_ignored(self) -> None:
        a = normalize_inputs({})
        b = normalize_inputs({"not_a_key": 123, "another": "x"})
        assert a == b

    def test_loan_invariant(self) -> None:
        p = normalize_inputs({"P": 450, "dp_min": 35})
        assert p.loans.provident + p.loans.commercial == pytest.approx(p.price * (1 - p.dp_ratio))


class TestPolicyDerived:
    def test_second_home_brackets(self) -> None:
        p = normalize_inputs({"is_second_home": "yes", "area": 150})
        assert p.dp_ratio == pytest.approx(0.25)
        assert p.deed_rate == pytest.approx(0.02)
        assert p.gjj_rate == pytest.approx(0.03075)
        # Shanghai second homes carry no bank point discount
        assert p.commercial_rate == pytest.approx(0.035)

    def test_large_first_home_deed(self) -> None:
        assert normalize_inputs({"area": 150}).deed_rate == pytest.approx(0.015)

    def test_short_holding_period_pays_vat(self) -> None:
        assert normalize_inputs({"holding_years": 1}).vat_rate == pytest.approx(0.053)
        assert normalize_inputs({"holding_years": 3}).vat_rate == 0.0

    def test_explicit_overrides_beat_policy(self) -> None:
        p = normalize_inputs({"Deed1_rate": 3, "VAT_rate": 1, "LPR": 4, "BP": 10, "r_gjj": 2.85})
        assert p.deed_rate == pytest.approx(0.03)
        assert p.vat_rate == pytest.approx(0.01)
        assert p.commercial_rate == pytest.approx(0.041)
        assert p.gjj_rate == pytest.approx(0.0285)

    def test_gjj_cap_tiers(self) -> None:
        assert normalize_inputs({}).gjj_cap == pytest.approx(1_840_000)
        assert normalize_inputs({"GJJ_merge": False}).gjj_cap == pytest.approx(800_000)
        assert normalize_inputs({"multi_child_bonus": True}).gjj_cap == pytest.approx(2_160_000)
        assert normalize_inputs({"GJJ_max_family": 150}).gjj_cap == pytest.approx(1_500_000)
        assert normalize_inputs({"GJJ_merge": False, "GJJ_max_single": 60}).gjj_cap == pytest.approx(600_000)

    def test_beijing(self) -> None:
        p = normalize_inputs({"target_city": "Beijing"})
        assert p.policy.policy_version == "BJ-2026.01"
        assert p.commercial_rate == pytest.approx(0.0305)
        assert p.gjj_cap == pytest.approx(1_600_000)


class TestExpertGating:
    def test_expert_terms_zero_by_default(self) -> None:
        p = normalize_inputs({})
        assert p.buyer_agent_rate == 0.0
        assert p.time_cost == 0.0
        assert p.insurance_yearly == 0.0
        assert p.broadband_monthly == 0.0
        assert p.large_replace == 0.0
        assert p.deposit_mult == 0.0
        assert p.cpi == 0.0
        assert p.medical_future == 0.0

    def test_expert_values_ignored_without_flag(self) -> None:
        p = normalize_inputs({"Insurance": 5000, "Buyer_agent_rate": 3, "Medical_future": 100_000})
        assert p.insurance_yearly == 0.0
        assert p.buyer_agent_rate == 0.0
        assert p.medical_future == 0.0

    def test_expert_nominal_defaults(self) -> None:
        p = normalize_inputs({"expert_configured": True})
        assert p.buyer_agent_rate == pytest.approx(0.015)
        assert p.seller_to_buyer_rate == pytest.approx(0.005)
        assert p.time_cost == pytest.approx(1_000)
        assert p.insurance_yearly == pytest.approx(800)
        assert p.broadband_monthly == pytest.approx(120)
        assert p.large_replace == pytest.approx(20_000)
        assert p.deposit_mult == pytest.approx(1.25)
        assert p.cpi == pytest.approx(0.02)

    def test_large_replace_needs_ten_year_horizon(self) -> None:
        assert normalize_inputs({"expert_configured": True, "years": 9}).large_replace == 0.0

    def test_expert_key_set(self) -> None:
        assert "Insurance" in EXPERT_KEYS
        assert "Medical_future" in EXPERT_KEYS
        assert "P" not in EXPERT_KEYS


class TestHousehold:
    def test_income_fallback_from_first_payment(self) -> None:
        p = normalize_inputs({})
        assert p.monthly_income == pytest.approx(p.loans.monthly_payment(1) / 0.5)

    def test_non_positive_anxiety_uses_default(self) -> None:
        p = normalize_inputs({"Anxiety_threshold": 0})
        assert p.monthly_income == pytest.approx(p.loans.monthly_payment(1) / 0.5)

    def test_explicit_income(self) -> None:
        assert normalize_inputs({"monthly_income": "45,000"}).monthly_income == pytest.approx(45_000)

    def test_invest_consistency_percent_form(self) -> None:
        assert normalize_inputs({"Invest_consistency": 85}).invest_consistency == pytest.approx(0.85)


class TestClamping:
    def test_mix_ratio_clamped_with_warning(self) -> None:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            p = normalize_inputs({"Mix_ratio": 150})
        assert p.mix_ratio == 1.0
        messages = [str(w.message) for w in caught]
        assert any("Mix_ratio" in m for m in messages), messages

    def test_negative_down_payment_clamped(self) -> None:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            p = normalize_inputs({"dp_min": -10})
        assert p.dp_ratio == 0.0
        assert any("dp_min" in str(w.message) for w in caught)

    @pytest.mark.parametrize("key", ["R_inv", "g_p", "g_r"])
    def test_compounding_rates_bounded(self, key) -> None:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            high = normalize_inputs({key: 100000})
            low = normalize_inputs({key: -250})
        attr = {"R_inv": "invest_rate", "g_p": "house_growth", "g_r": "rent_growth"}[key]
        assert getattr(high, attr) == 1.0
        assert getattr(low, attr) == pytest.approx(-0.99)
        assert any(key in str(w.message) for w in caught)

    def test_expert_growth_rates_bounded(self) -> None:
        with warnings.catch_warnings(record=True):
            warnings.simplefilter("always")
            p = normalize_inputs({"expert_configured": True, "CPI": -250, "PM_growth": 500})
        assert p.cpi == pytest.approx(-0.99)
        assert p.pm_growth == 1.0

    def test_horizon_and_term_capped(self) -> None:
        with warnings.catch_warnings(record=True):
            warnings.simplefilter("always")
            p = normalize_inputs({"years": 15000, "n_years": 5000})
        assert p.years == 100
        assert p.term_months == 1200

    def test_negative_rent_floored(self) -> None:
        assert normalize_inputs({"rent_0": -5000}).rent0 == 0.0

    def test_valid_inputs_no_warnings(self) -> None:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            normalize_inputs({"Mix_ratio": 40, "dp_min": 30, "Invest_consistency": 0.5})
        assert [str(w.message) for w in caught if "Clamping" in str(w.message)] == []


class TestDerivedProperties:
    def test_move_cadence_rounds_to_months(self) -> None:
        assert normalize_inputs({"Move_freq_years": 2}).move_every_months == 24
        assert normalize_inputs({"Move_freq_years": 1.5}).move_every_months == 18
        assert normalize_inputs({"Move_freq_years": 0.2}).move_every_months == 12

    def test_monthly_holding(self) -> None:
        p = normalize_inputs({"PM_unit": 6, "area": 90})
        assert p.monthly_holding == pytest.approx(540)
        assert p.small_unit is True

    def test_with_overrides_returns_copy(self) -> None:
        p = normalize_inputs({})
        q = p.with_overrides(house_growth=0.05)
        assert q.house_growth == 0.05
        assert p.house_growth == pytest.approx(0.03)

    def test_fast_flag(self) -> None:
        assert normalize_inputs({"__debug_fast": "true"}).fast is True
        assert normalize_inputs({"__debug_fast": True}, fast=False).fast is False
        assert normalize_inputs({}, fast=True).fast is True
