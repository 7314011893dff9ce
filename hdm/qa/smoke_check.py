#!/usr/bin/env python3
"""Quick smoke checks for the housing decision model.

Run:
  python -m hdm.qa.smoke_check [--fast]

`--fast` skips the full-fidelity run (scenarios and the 5x5 sensitivity grid).
"""

from __future__ import annotations

import argparse
import compileall
import json
import sys
from pathlib import Path

# Ensure repo root is on sys.path regardless of where this script is invoked from.
_REPO_ROOT = Path(__file__).resolve().parents[2]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def die(msg: str, code: int = 1) -> None:
    print(f"\n[SMOKE CHECK FAILED] {msg}\n")
    raise SystemExit(code)


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(add_help=True)
    ap.add_argument("--fast", action="store_true", help="Only run the reduced-fidelity model.")
    args = ap.parse_args(argv)

    pkg_dir = _REPO_ROOT / "hdm"
    if not pkg_dir.is_dir():
        die("hdm/ package not found (run from the repo root).")
    if not compileall.compile_dir(str(pkg_dir), quiet=1):
        die("hdm/ package failed to compile.")

    try:
        from hdm.core.engine import calculate_model
    except ImportError as e:
        die(f"Import failure: {e}")

    inputs = {"P": 600, "rent_0": 8000, "years": 10}
    fast = calculate_model(inputs, fast=True)
    if len(fast.monthly_cashflow) != 120:
        die(f"expected 120 monthly rows, got {len(fast.monthly_cashflow)}")
    if len(fast.yearly_networth) != 10:
        die(f"expected 10 yearly rows, got {len(fast.yearly_networth)}")
    if fast.sensitivity.gaps.shape != (1, 1):
        die("fast mode should collapse the grid to one cell")

    full = fast
    if not args.fast:
        full = calculate_model(inputs)
        if full.sensitivity.gaps.shape != (5, 5):
            die(f"expected a 5x5 sensitivity grid, got {full.sensitivity.gaps.shape}")
        if fast.diff != full.diff:
            die("fast mode must not change the cost comparison")

    try:
        json.dumps(full.to_dict(), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        die(f"to_dict() is not JSON-serializable: {e}")

    print("\n[SMOKE CHECK OK]")
    print(f"Recommendation: {full.recommendation} (diff ¥{full.diff:,})")
    print(f"Zone: {full.zone}  |  Break-even growth: {full.break_even_growth:.4f}\n")


if __name__ == "__main__":
    main()
