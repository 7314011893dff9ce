"""Policy freshness checker.

Purpose:
- City housing policy (down-payment floors, LPR points, provident-fund caps, deed/VAT brackets)
  changes at least yearly. The baseline module carries an explicit *last reviewed* marker; CI
  runs this script to remind us to re-check it.

Behavior:
- Exits non-zero if any marker is older than MAX_DAYS (default: 365).
- Emits GitHub Actions warnings as the deadline approaches (default: 330 days).

Usage:
  python tools/maintenance/check_policy_freshness.py [MAX_DAYS [WARN_DAYS]]
"""

from __future__ import annotations

import datetime as dt
import importlib
import sys
from pathlib import Path
from typing import Iterable, Tuple

# Ensure repo root is on sys.path so `import hdm.*` works when run as a script.
ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

MARKERS: Iterable[Tuple[str, str]] = [
    ("hdm.core.policy_china", "POLICY_LAST_REVIEWED"),
]


def _get_marker(mod_name: str, attr: str) -> dt.date | None:
    try:
        m = importlib.import_module(mod_name)
    except ImportError:
        return None
    v = getattr(m, attr, None)
    if isinstance(v, dt.datetime):
        return v.date()
    if isinstance(v, dt.date):
        return v
    return None


def main(argv: list[str] | None = None, *, today: dt.date | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    max_days = int(args[0]) if len(args) > 0 else 365
    warn_days = int(args[1]) if len(args) > 1 else 330
    today = today or dt.date.today()
    failed = False

    for mod_name, attr in MARKERS:
        d = _get_marker(mod_name, attr)
        if d is None:
            print(f"::warning::Missing policy marker {mod_name}.{attr} (cannot verify freshness)")
            continue

        age = (today - d).days
        if age >= max_days:
            print(f"::error::{mod_name}.{attr} is {age} days old (last reviewed {d.isoformat()}). Update required.")
            failed = True
        elif age >= warn_days:
            print(
                f"::warning::{mod_name}.{attr} is {age} days old (last reviewed {d.isoformat()}). Plan an annual policy review."
            )
        else:
            print(f"OK: {mod_name}.{attr} last reviewed {d.isoformat()} ({age} days ago)")

    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
