#!/usr/bin/env python3
"""QA truth tables for the Shanghai / Beijing policy baselines.

Run:
  python -m hdm.qa.qa_policy_china
"""

from __future__ import annotations

import math
import sys
from pathlib import Path

# Ensure repo root is on sys.path regardless of where this script is invoked from.
_REPO_ROOT = Path(__file__).resolve().parents[2]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def _die(msg: str, code: int = 1) -> None:
    print(f"\n[QA_POLICY_CHINA FAILED] {msg}\n")
    raise SystemExit(code)


def _assert_close(name: str, got: float, exp: float, *, atol: float = 1e-9) -> None:
    try:
        g = float(got)
        e = float(exp)
    except (TypeError, ValueError):
        _die(f"{name}: non-numeric (got={got}, exp={exp})")
    if not (math.isfinite(g) and math.isfinite(e)):
        _die(f"{name}: non-finite (got={g}, exp={e})")
    if abs(g - e) > atol:
        _die(f"{name}: got {g:.12g} expected {e:.12g} (atol={atol})")


def _assert_eq(name: str, got, exp) -> None:
    if got != exp:
        _die(f"{name}: got {got!r} expected {exp!r}")


# (city, second_home, multi_child, green) -> (version, dp_min, lpr, bp, gjj_rate, family_cap, single_cap)
_TRUTH_TABLE = [
    (("Shanghai", False, False, False), ("SH-2026.01", 20.0, 3.5, -45.0, 2.6, 184.0, 80.0)),
    (("Shanghai", True, False, False), ("SH-2026.01", 25.0, 3.5, 0.0, 3.075, 184.0, 80.0)),
    (("Shanghai", False, True, False), ("SH-2026.01", 20.0, 3.5, -45.0, 2.6, 216.0, 80.0)),
    (("Beijing", False, False, False), ("BJ-2026.01", 20.0, 3.05, 0.0, 2.6, 160.0, 120.0)),
    (("Beijing", True, False, False), ("BJ-2026.01", 25.0, 3.05, 0.0, 3.075, 160.0, 100.0)),
    (("Beijing", False, False, True), ("BJ-2026.01", 20.0, 3.05, 0.0, 2.6, 200.0, 120.0)),
    (("Beijing", False, True, False), ("BJ-2026.01", 20.0, 3.05, 0.0, 2.6, 200.0, 120.0)),
]


def test_policy_truth_table() -> None:
    from hdm.core.policy_china import resolve_policy

    for (city, second, multi, green), (version, dp, lpr, bp, gjj, family, single) in _TRUTH_TABLE:
        tag = f"{city} second={second} multi_child={multi} green={green}"
        pol = resolve_policy(city, second, 5, 90, multi, green)
        _assert_eq(f"{tag} version", pol.policy_version, version)
        _assert_close(f"{tag} dp_min", pol.dp_min_pct, dp)
        _assert_close(f"{tag} lpr", pol.lpr_pct, lpr)
        _assert_close(f"{tag} bp", pol.bp_bps, bp)
        _assert_close(f"{tag} gjj_rate", pol.gjj_rate_pct(second_home=second), gjj)
        _assert_close(f"{tag} family_cap", pol.gjj_max_family_wan, family)
        _assert_close(f"{tag} single_cap", pol.gjj_max_single_wan, single)
        if len(pol.auto_applied_factors) != 5:
            _die(f"{tag}: expected 5 auto-applied factors, got {len(pol.auto_applied_factors)}")

    print("[PASS] policy truth table")


def test_deed_and_vat_brackets() -> None:
    from hdm.core.policy_china import resolve_policy

    for city in ("Shanghai", "Beijing"):
        pol = resolve_policy(city)
        _assert_close(f"{city} deed small first", pol.deed_rate_pct(small_unit=True, second_home=False), 1.0)
        _assert_close(f"{city} deed large first", pol.deed_rate_pct(small_unit=False, second_home=False), 1.5)
        _assert_close(f"{city} deed small second", pol.deed_rate_pct(small_unit=True, second_home=True), 1.0)
        _assert_close(f"{city} deed large second", pol.deed_rate_pct(small_unit=False, second_home=True), 2.0)
        _assert_close(f"{city} VAT at 2y", pol.vat_rate_pct(2), 0.0)

    _assert_close("Shanghai VAT at 1y", resolve_policy("Shanghai").vat_rate_pct(1), 5.3)
    _assert_close("Beijing VAT at 1y", resolve_policy("Beijing").vat_rate_pct(1), 3.0)

    print("[PASS] deed and VAT brackets")


def test_city_fallback() -> None:
    from hdm.core.policy_china import resolve_policy

    for city in (None, "", "Shenzhen", 42):
        _assert_eq(f"fallback for {city!r}", resolve_policy(city).city, "Shanghai")
    _assert_eq("alias bj", resolve_policy("bj").city, "Beijing")
    _assert_eq("alias 北京", resolve_policy("北京").city, "Beijing")

    print("[PASS] city fallback")


def main(argv: list[str] | None = None) -> None:
    test_policy_truth_table()
    test_deed_and_vat_brackets()
    test_city_fallback()
    print("\n[QA_POLICY_CHINA] All tests passed.\n")


if __name__ == "__main__":
    main()
