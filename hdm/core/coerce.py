"""Loose value coercion for raw model inputs.

Raw inputs arrive from forms, JSON files and CLI overrides, so the same key may hold
a number, a numeric string with thousands separators, a yes/no word or nothing at
all. Every helper here returns a usable value or the caller's fallback; none raise.
"""

from __future__ import annotations

import math
import re

# Amounts above this are taken to be yuan already; at or below it they are wan.
WAN = 10_000.0

_SEPARATORS = re.compile(r"[,\s，]")
_TRUE_WORDS = {"1", "true", "yes", "y", "是"}
_FALSE_WORDS = {"0", "false", "no", "n", "否"}


def to_number(value: object) -> float | None:
    """Parse a finite float from a number or numeric string, else ``None``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        x = float(value)
        return x if math.isfinite(x) else None
    if isinstance(value, str):
        s = _SEPARATORS.sub("", value)
        if not s:
            return None
        try:
            x = float(s)
        except ValueError:
            return None
        return x if math.isfinite(x) else None
    return None


def to_float(value: object, default: float) -> float:
    x = to_number(value)
    return float(default) if x is None else x


def to_bool(value: object, fallback: bool = False) -> bool:
    """Parse booleans from native, numeric (0/1) and word ("yes", "否") forms."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        s = value.strip().lower()
        if s in _TRUE_WORDS:
            return True
        if s in _FALSE_WORDS:
            return False
    return fallback


def to_percent(value: object, fallback_pct: float) -> float:
    """Whole-percent input (3.5) -> decimal (0.035)."""
    return to_float(value, fallback_pct) / 100.0


def to_yuan(value: object, fallback_wan: float) -> float:
    """Currency in yuan from either a yuan or a wan (10,000 yuan) amount.

    Values above 10,000 are assumed to be yuan already; smaller values are wan.
    """
    x = to_number(value)
    if x is None:
        return float(fallback_wan) * WAN
    return x if x > WAN else x * WAN


def non_negative(value: object, default: float) -> float:
    return max(0.0, to_float(value, default))
