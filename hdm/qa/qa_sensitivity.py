#!/usr/bin/env python3
"""Automated sensitivity / wiring suite for the housing decision model.

Goal:
- Perturb each important raw input
- Assert that *at least one* relevant output changes (and optionally its direction)
- Flag "dead inputs" (accepted by the normalizer but not affecting results)
- Confirm expert-only inputs are inert unless expert mode is on

Run:
  python -m hdm.qa.qa_sensitivity

Notes:
- This is a *wiring + regression* test, not a full economic proof.
- Runs resimulate scenarios and the sensitivity grid by default. `--fast` skips them;
  the base simulation and cost totals are unaffected.
"""

from __future__ import annotations

import argparse
import math
import sys
from pathlib import Path

# Ensure repo root is on sys.path regardless of where this script is invoked from.
_REPO_ROOT = Path(__file__).resolve().parents[2]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

MONEY_EPS = 1.0          # 1 yuan threshold for "changed"

BASELINE = {"P": 600, "rent_0": 8000, "years": 10, "target_city": "Shanghai"}


def _finite(x) -> bool:
    try:
        return math.isfinite(float(x))
    except (TypeError, ValueError):
        return False


def _changed(a, b, eps: float = MONEY_EPS) -> bool:
    if not (_finite(a) and _finite(b)):
        return False
    return abs(float(b) - float(a)) > eps


def _run(inputs: dict, fast: bool) -> dict:
    from hdm.core.engine import calculate_model
    from hdm.core.scenario_snapshots import extract_terminal_metrics

    return extract_terminal_metrics(calculate_model(inputs, fast=fast))


# Each entry:
# - name: label
# - set: raw input overrides applied on top of the (prereq) baseline
# - prereq: optional raw overrides applied to both baseline and perturbed runs
# - expect: metric keys of which at least one must change
# - mono: optional {"metric": ..., "dir": +1/-1} direction of the perturbed run vs baseline
SPECS = [
    dict(name="P (price)", set={"P": 630}, expect=["buy_total", "monthly_payment"], mono={"metric": "buy_total", "dir": +1}),
    dict(name="rent_0", set={"rent_0": 8400}, expect=["rent_total"], mono={"metric": "rent_total", "dir": +1}),
    dict(name="g_p", set={"g_p": 4}, expect=["buy_nav_final"], mono={"metric": "buy_nav_final", "dir": +1}),
    dict(name="g_r", set={"g_r": 4}, expect=["rent_total"], mono={"metric": "rent_total", "dir": +1}),
    dict(name="LPR", set={"LPR": 4.0}, expect=["monthly_payment"], mono={"metric": "monthly_payment", "dir": +1}),
    dict(name="BP", set={"BP": 0}, expect=["monthly_payment"], mono={"metric": "monthly_payment", "dir": +1}),
    dict(name="r_gjj", set={"r_gjj": 3.1}, expect=["monthly_payment"], mono={"metric": "monthly_payment", "dir": +1}),
    dict(name="dp_min", set={"dp_min": 30}, expect=["monthly_payment"], mono={"metric": "monthly_payment", "dir": -1}),
    dict(name="n_years", set={"n_years": 25}, expect=["monthly_payment"], mono={"metric": "monthly_payment", "dir": +1}),
    dict(name="Mix_ratio", set={"Mix_ratio": 30}, expect=["monthly_payment"], mono={"metric": "monthly_payment", "dir": +1}),
    dict(name="Repay_type", set={"Repay_type": "equal_principal"}, expect=["monthly_payment"], mono={"metric": "monthly_payment", "dir": +1}),
    dict(name="PM_unit", set={"PM_unit": 8}, expect=["buy_total"], mono={"metric": "buy_total", "dir": +1}),
    dict(name="Deduct_limit", set={"Deduct_limit": 0}, expect=["buy_total"], mono={"metric": "buy_total", "dir": +1}),
    dict(name="GJJ_offset", set={"GJJ_offset": 2000}, expect=["buy_total"], mono={"metric": "buy_total", "dir": -1}),
    dict(name="R_inv", set={"R_inv": 6}, expect=["buy_total", "rent_nav_final"], mono={"metric": "buy_total", "dir": +1}),
    dict(name="Invest_consistency", set={"Invest_consistency": 0.9}, expect=["buy_nav_final", "rent_nav_final"]),
    dict(name="Move_freq_years", set={"Move_freq_years": 1}, expect=["rent_total"], mono={"metric": "rent_total", "dir": +1}),
    dict(name="Move_cost", set={"Move_cost": 6000}, expect=["rent_total", "buy_total"], mono={"metric": "rent_total", "dir": +1}),
    dict(name="Seller_agent_rate", set={"Seller_agent_rate": 3}, expect=["buy_nav_final"], mono={"metric": "buy_nav_final", "dir": -1}),
    dict(name="Reno_hard", set={"Reno_hard": 50}, expect=["buy_total"], mono={"metric": "buy_total", "dir": +1}),
    dict(name="target_city", set={"target_city": "Beijing"}, expect=["monthly_payment", "buy_total"]),
    dict(name="is_second_home", set={"is_second_home": True}, expect=["buy_total"], mono={"metric": "buy_total", "dir": +1}),
    dict(name="GJJ_merge", set={"GJJ_merge": False}, expect=["monthly_payment"], mono={"metric": "monthly_payment", "dir": +1}),
    dict(name="M5U", set={"M5U": False}, expect=["buy_total"], mono={"metric": "buy_total", "dir": +1}),
    dict(name="expert_configured", set={"expert_configured": True}, expect=["buy_total", "rent_total"], mono={"metric": "buy_total", "dir": +1}),
    # Expert-only terms, live once expert mode is on
    dict(name="Furn_depr (expert)", prereq={"expert_configured": True}, set={"Furn_depr": 5000}, expect=["rent_total"], mono={"metric": "rent_total", "dir": +1}),
    dict(name="Buyer_agent_rate (expert)", prereq={"expert_configured": True}, set={"Buyer_agent_rate": 2.5}, expect=["buy_total"], mono={"metric": "buy_total", "dir": +1}),
    dict(name="Commute_delta (expert)", prereq={"expert_configured": True}, set={"Commute_delta": 500}, expect=["rent_total"], mono={"metric": "rent_total", "dir": +1}),
    dict(name="PropertyTax_rate (expert)", prereq={"expert_configured": True}, set={"PropertyTax_rate": 0.6}, expect=["buy_total"], mono={"metric": "buy_total", "dir": +1}),
]

# Expert-only keys that must be inert while expert mode is off.
INERT_WITHOUT_EXPERT = {
    "Furn_depr": 9000,
    "Buyer_agent_rate": 3,
    "Commute_delta": 800,
    "PropertyTax_rate": 1,
    "Large_replace": 20,
    "Medical_future": 50000,
}


def main(argv: list[str] | None = None) -> None:
    from hdm.core.engine import calculate_model

    ap = argparse.ArgumentParser(add_help=True)
    ap.add_argument("--fast", action="store_true", help="Skip scenario and grid resimulation.")
    args = ap.parse_args(argv)

    base0 = _run(BASELINE, args.fast)
    for k, v in base0.items():
        if not _finite(v):
            print(f"[FAIL] Baseline produced non-finite metric: {k}={v}")
            raise SystemExit(2)

    failures = []
    print("\n=== Input sensitivity suite ===")
    for s in SPECS:
        inputs = {**BASELINE, **s.get("prereq", {})}
        base = _run(inputs, args.fast) if s.get("prereq") else base0
        plus = _run({**inputs, **s["set"]}, args.fast)

        ok = any(_changed(base.get(met), plus.get(met)) for met in s["expect"])

        mono_ok = True
        mono = s.get("mono")
        if mono:
            a, b = base.get(mono["metric"]), plus.get(mono["metric"])
            if not (_finite(a) and _finite(b)):
                mono_ok = False
            elif mono["dir"] > 0 and not (b > a + MONEY_EPS):
                mono_ok = False
            elif mono["dir"] < 0 and not (b < a - MONEY_EPS):
                mono_ok = False

        if ok and mono_ok:
            print(f"[PASS] {s['name']}")
        else:
            why = []
            if not ok:
                why.append("no expected metric changed")
            if not mono_ok:
                why.append("monotonic expectation failed")
            failures.append((s["name"], "; ".join(why)))
            print(f"[FAIL] {s['name']}: {'; '.join(why)}")

    print("\n=== Expert gating sub-suite ===")
    plain = calculate_model(BASELINE, fast=args.fast).to_dict()
    for key, value in INERT_WITHOUT_EXPERT.items():
        got = calculate_model({**BASELINE, key: value}, fast=args.fast).to_dict()
        if got != plain:
            failures.append((f"{key} (expert off)", "changed results while expert mode is off"))
            print(f"[FAIL] {key}: changed results while expert mode is off")
        else:
            print(f"[PASS] {key} inert without expert mode")

    if failures:
        print("\n=== SENSITIVITY SUITE FAILED ===")
        for n, msg in failures:
            print(f" - {n}: {msg}")
        raise SystemExit(1)

    print("\n[SENSITIVITY SUITE PASS] All tested inputs influenced expected outputs.\n")


if __name__ == "__main__":
    main()
