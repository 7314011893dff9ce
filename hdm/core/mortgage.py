"""Loan sizing and amortization for the two-tranche (provident fund + commercial) mortgage."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

EQUAL_INSTALLMENT = "equal_installment"
EQUAL_PRINCIPAL = "equal_principal"

_REPAY_ALIASES = {
    "equal_principal": EQUAL_PRINCIPAL,
    "equal principal": EQUAL_PRINCIPAL,
    "principal": EQUAL_PRINCIPAL,
    "等额本金": EQUAL_PRINCIPAL,
}


def normalize_repay_type(value) -> str:
    """Anything that is not recognisably equal-principal is equal-installment."""
    return _REPAY_ALIASES.get(str(value or "").strip().lower(), EQUAL_INSTALLMENT)


def monthly_rate(annual_rate: float) -> float:
    """Annual nominal rate (decimal) -> monthly rate; non-positive rates accrue no interest."""
    try:
        r = float(annual_rate)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(r) or r <= 0.0:
        return 0.0
    return r / 12.0


# Mortgage Payment


def pmt(principal: float, annual_rate: float, term_months: int) -> float:
    """Equal-installment (annuity) monthly payment.

    Args:
        principal: Tranche principal.
        annual_rate: Annual nominal rate as a decimal (0.035 for 3.5%).
        term_months: Number of monthly payments.

    Returns:
        Monthly payment. Zero for a non-positive principal or term and for negative
        rates (not a lending scenario we model); ``principal / n`` at exactly zero rate.
    """
    p = float(principal)
    n = int(term_months)
    if p <= 0.0 or n <= 0:
        return 0.0
    if annual_rate == 0:
        return p / float(n)
    if annual_rate < 0:
        return 0.0
    mr = annual_rate / 12.0
    pow_ = (1.0 + mr) ** n
    return p * mr * pow_ / (pow_ - 1.0)


def payment_at_month(
    principal: float,
    annual_rate: float,
    term_months: int,
    month: int,
    repay_type: str = EQUAL_INSTALLMENT,
) -> float:
    """Scheduled payment for 1-based ``month``; zero outside ``1..term_months``."""
    if principal <= 0 or term_months <= 0 or month <= 0 or month > term_months:
        return 0.0
    if repay_type == EQUAL_PRINCIPAL:
        slice_ = principal / term_months
        remaining = max(0.0, principal - slice_ * (month - 1))
        return slice_ + remaining * monthly_rate(annual_rate)
    return pmt(principal, annual_rate, term_months)


@dataclass(frozen=True)
class AmortizationState:
    """Running totals of one tranche after a number of monthly payments."""

    principal: float
    months: int
    remaining_principal: float
    principal_paid: float
    interest_paid: float


def amortize(
    principal: float,
    annual_rate: float,
    term_months: int,
    horizon_months: int,
    repay_type: str = EQUAL_INSTALLMENT,
) -> AmortizationState:
    """Amortize a tranche over ``min(horizon_months, term_months)`` payments.

    Interest each month is the balance *before* the payment times the monthly rate,
    so ``remaining_principal + principal_paid`` always equals the original principal.
    """
    p = max(0.0, float(principal))
    if p <= 0.0 or horizon_months <= 0:
        return AmortizationState(p, 0, p, 0.0, 0.0)

    sched = amortization_schedule(p, annual_rate, term_months, horizon_months, repay_type)
    n = min(int(horizon_months), max(0, int(term_months)))
    if n <= 0:
        return AmortizationState(p, 0, p, 0.0, 0.0)
    return AmortizationState(
        principal=p,
        months=n,
        remaining_principal=float(sched.balance[n]),
        principal_paid=float(sched.principal[1 : n + 1].sum()),
        interest_paid=float(sched.interest[1 : n + 1].sum()),
    )


@dataclass(frozen=True, eq=False)
class AmortizationSchedule:
    """Month-indexed arrays for one tranche (index 0 is origination).

    ``balance[m]`` is the outstanding principal after payment ``m``; ``payment``,
    ``interest`` and ``principal`` hold the month-``m`` amounts (zero at index 0 and
    after the loan term ends).
    """

    payment: np.ndarray
    interest: np.ndarray
    principal: np.ndarray
    balance: np.ndarray

    @property
    def months(self) -> int:
        return int(self.balance.size - 1)

    def balance_at(self, month: int) -> float:
        m = min(max(0, int(month)), self.months)
        return float(self.balance[m])

    def payment_at(self, month: int) -> float:
        if month <= 0 or month > self.months:
            return 0.0
        return float(self.payment[month])


def amortization_schedule(
    principal: float,
    annual_rate: float,
    term_months: int,
    months: int,
    repay_type: str = EQUAL_INSTALLMENT,
) -> AmortizationSchedule:
    """Build the per-month schedule for the first ``months`` months of a tranche.

    The schedule depends only on loan terms, so the simulation computes it once and
    reuses it read-only for every growth-rate pair.
    """
    n = max(0, int(months))
    payment = np.zeros(n + 1, dtype=np.float64)
    interest = np.zeros(n + 1, dtype=np.float64)
    principal_part = np.zeros(n + 1, dtype=np.float64)
    balance = np.zeros(n + 1, dtype=np.float64)

    p = max(0.0, float(principal))
    balance[0] = p
    mr = monthly_rate(annual_rate)
    level = pmt(p, annual_rate, term_months)

    remaining = p
    for m in range(1, n + 1):
        if m <= term_months and remaining > 0.0:
            due = payment_at_month(p, annual_rate, term_months, m, repay_type) if repay_type == EQUAL_PRINCIPAL else level
            i = remaining * mr
            step = min(remaining, due - i)
            payment[m] = due
            interest[m] = i
            principal_part[m] = step
            remaining -= step
        balance[m] = remaining

    return AmortizationSchedule(payment=payment, interest=interest, principal=principal_part, balance=balance)


@dataclass(frozen=True)
class LoanStructure:
    """Provident-fund and commercial tranches covering the financing need.

    Invariant: ``provident + commercial == financing_need`` with both tranches >= 0.
    """

    financing_need: float
    provident: float
    commercial: float
    provident_rate: float
    commercial_rate: float
    term_months: int
    repay_type: str = EQUAL_INSTALLMENT

    def monthly_payment(self, month: int = 1) -> float:
        return payment_at_month(
            self.provident, self.provident_rate, self.term_months, month, self.repay_type
        ) + payment_at_month(self.commercial, self.commercial_rate, self.term_months, month, self.repay_type)

    def shocked_payment(self, bump: float) -> float:
        """Level payment if both tranche rates rise by ``bump`` (decimal)."""
        return pmt(self.provident, self.provident_rate + bump, self.term_months) + pmt(
            self.commercial, self.commercial_rate + bump, self.term_months
        )


def size_loans(
    price: float,
    down_payment_ratio: float,
    mix_ratio: float,
    provident_cap: float,
    *,
    provident_rate: float,
    commercial_rate: float,
    term_months: int,
    repay_type: str = EQUAL_INSTALLMENT,
) -> LoanStructure:
    """Split ``price * (1 - down_payment_ratio)`` into provident-fund and commercial tranches.

    The provident tranche is ``min(need * mix_ratio, provident_cap)``; the commercial
    tranche takes the remainder.
    """
    need = max(0.0, float(price) * (1.0 - float(down_payment_ratio)))
    provident = min(need * max(0.0, float(mix_ratio)), max(0.0, float(provident_cap)))
    provident = min(max(0.0, provident), need)
    commercial = max(0.0, need - provident)
    return LoanStructure(
        financing_need=need,
        provident=provident,
        commercial=commercial,
        provident_rate=float(provident_rate),
        commercial_rate=float(commercial_rate),
        term_months=int(term_months),
        repay_type=repay_type,
    )
