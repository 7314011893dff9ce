#!/usr/bin/env python3
"""Run the housing-decision-model QA suites in order.

Usage:
  python run_all_qa.py                 # every suite, full fidelity
  python run_all_qa.py --fast          # skip scenario/grid resimulation where a suite supports it
  python run_all_qa.py policy smoke    # a subset, still run in table order
  python run_all_qa.py --list

Exits 0 when every selected suite passes, 1 otherwise.
"""

from __future__ import annotations

import argparse
import importlib
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# name -> (module, accepts --fast)
SUITES = {
    "policy": ("hdm.qa.qa_policy_china", False),
    "smoke": ("hdm.qa.smoke_check", True),
    "sensitivity": ("hdm.qa.qa_sensitivity", True),
}


def suite_argv(name: str, fast: bool) -> list[str]:
    _module, takes_fast = SUITES[name]
    return ["--fast"] if (fast and takes_fast) else []


def run_suite(name: str, fast: bool = False) -> int:
    module, _takes_fast = SUITES[name]
    suite_main = importlib.import_module(module).main
    try:
        suite_main(suite_argv(name, fast))
    except SystemExit as e:
        if e.code in (None, 0):
            return 0
        return e.code if isinstance(e.code, int) else 1
    return 0


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Run the hdm QA suites.")
    ap.add_argument("suites", nargs="*", metavar="SUITE", help=f"Subset of: {', '.join(SUITES)}")
    ap.add_argument("--fast", action="store_true", help="Pass --fast to the smoke and sensitivity suites.")
    ap.add_argument("--list", action="store_true", help="List suites and exit.")
    args = ap.parse_args(argv)

    if args.list:
        for name, (module, takes_fast) in SUITES.items():
            print(f"{name:<12} {module}{'  [--fast]' if takes_fast else ''}")
        return 0

    unknown = sorted(set(args.suites).difference(SUITES))
    if unknown:
        print(f"Unknown suite(s): {', '.join(unknown)}", file=sys.stderr)
        return 1

    selected = [name for name in SUITES if not args.suites or name in args.suites]
    failed = []
    for name in selected:
        print(f"--- {name} ---")
        code = run_suite(name, args.fast)
        if code:
            failed.append(name)
            print(f"{name}: FAILED (exit {code})")

    if failed:
        print(f"\nQA FAILED: {', '.join(failed)}")
        return 1
    print(f"\nQA PASS ({len(selected)} suite{'s' if len(selected) != 1 else ''})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
