"""Validation helpers for the housing decision model.

This module provides simple heuristics to detect parameter combinations that
are legal for the engine but worth pointing out to the user. None of the
functions here raise exceptions; advisories are accumulated and returned as a
list of strings, and clamping helpers only emit ``warnings`` when they adjust a
value.

Implemented checks:

* **Down payment below the policy floor** – the city baseline sets a minimum
  down-payment ratio (higher for second homes). The engine still simulates a
  lower ratio, but the loan would not be approved as entered.

* **Provident-fund cap binding** – the desired provident-fund share of the loan
  exceeds the applicable cap, so the excess is financed at the commercial rate.

* **Horizon beyond the loan term** – months after the last scheduled payment
  carry no mortgage outflow.

* **Negative free cash** – estimated income after fixed expenses does not cover
  the first month's housing outflow.
"""

from __future__ import annotations

import warnings as _warnings
from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from .params import ModelParams


def clamp_ratio(value: float, name: str, *, min_val: float = 0.0, max_val: float = 1.0) -> float:
    """Clamp a decimal ratio into ``[min_val, max_val]``, warning if adjusted."""
    if value > max_val:
        _warnings.warn(f"{name}={value:.4g} exceeds maximum {max_val:g}. Clamping to {max_val:g}.")
        return max_val
    if value < min_val:
        _warnings.warn(f"{name}={value:.4g} is below minimum {min_val:g}. Clamping to {min_val:g}.")
        return min_val
    return value


def get_validation_warnings(params: "ModelParams", *, free_cash_after_mortgage: float | None = None) -> List[str]:
    """Return human-readable advisories for resolved model parameters.

    Args:
        params: Output of :func:`hdm.core.params.normalize_inputs`.
        free_cash_after_mortgage: Optional monthly free cash estimate (yuan); when
            given and negative an affordability advisory is added.

    Returns:
        A list of warning strings, empty when nothing stands out.
    """
    out: List[str] = []
    policy = params.policy
    loans = params.loans

    floor = policy.dp_min_pct / 100.0
    # Small epsilon avoids false positives from percent -> decimal rounding.
    if params.dp_ratio + 1e-9 < floor:
        out.append(
            f"Down payment of {params.dp_ratio:.0%} is below the {policy.city} floor of {floor:.0%} "
            f"({policy.policy_version})."
        )

    desired = loans.financing_need * params.mix_ratio
    if desired > params.gjj_cap + 1e-6:
        out.append(
            f"Provident-fund loan is capped at ¥{params.gjj_cap:,.0f}; "
            f"¥{desired - params.gjj_cap:,.0f} moves to the commercial tranche."
        )

    if loans.financing_need > 0 and params.horizon_months > params.term_months:
        out.append(
            f"Horizon of {params.years} years is longer than the {params.term_months // 12}-year loan term; "
            "later months carry no mortgage payment."
        )

    if free_cash_after_mortgage is not None and free_cash_after_mortgage < 0:
        out.append(
            f"Estimated free cash after housing costs is negative (¥{free_cash_after_mortgage:,.0f}/month)."
        )

    return out
