"""Future-value-of-annuity algebra for monthly contribution plans.

Rates are annual fractions (0.075 == 7.5%/yr) compounded monthly at
``annual_rate / 12``. Every function is pure; Decimal is used throughout so
the zero-rate and near-integer month cases are exact.
"""
from __future__ import annotations

import calendar
from datetime import date
from decimal import ROUND_CEILING, Decimal, getcontext
from typing import Any

getcontext().prec = 28

INFINITY = Decimal("Infinity")

# month counts within this distance of an integer are treated as that integer
_MONTH_SNAP = Decimal("1e-9")


def _d(x: Any) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def money(x: Any) -> float:
    return float(_d(x).quantize(Decimal("0.01")))


def monthly_rate(annual_rate: Any) -> Decimal:
    return _d(annual_rate) / Decimal(12)


def _ceil_months(n: Decimal) -> Decimal:
    nearest = n.to_integral_value()
    if abs(n - nearest) <= _MONTH_SNAP:
        return nearest
    return n.to_integral_value(rounding=ROUND_CEILING)


def payment_for_target(target_amount: Any, annual_rate: Any, months: int) -> Decimal:
    """Monthly payment that grows to ``target_amount`` after ``months`` contributions."""
    if months <= 0:
        raise ValueError(f"months must be positive, got {months}")

    target = _d(target_amount)
    mr = monthly_rate(annual_rate)
    if mr <= Decimal(-1):
        raise ValueError(f"annual_rate {annual_rate} wipes out the balance every month")

    if mr == 0:
        return target / Decimal(months)
    return target * mr / ((Decimal(1) + mr) ** months - Decimal(1))


def months_for_payment(target_amount: Any, annual_rate: Any, payment: Any) -> Decimal:
    """
    Whole months of ``payment`` needed to reach ``target_amount``, rounded up.

    Returns ``INFINITY`` when the target is never reached (no payment, or a
    negative rate that caps the balance below the target). Callers must treat
    a non-finite result as "not achievable".
    """
    target = _d(target_amount)
    pmt = _d(payment)
    if pmt <= 0:
        return INFINITY
    if target <= 0:
        return Decimal(0)

    mr = monthly_rate(annual_rate)
    if mr <= Decimal(-1):
        return INFINITY

    if mr == 0:
        return _ceil_months(target / pmt)

    arg = target * mr / pmt + Decimal(1)
    if arg <= 0:
        return INFINITY
    return _ceil_months(arg.ln() / (Decimal(1) + mr).ln())


def future_value(annual_rate: Any, months: int, payment: Any) -> Decimal:
    """Balance after ``months`` end-of-month contributions of ``payment``."""
    pmt = _d(payment)
    if months <= 0:
        return Decimal(0)

    mr = monthly_rate(annual_rate)
    if mr <= Decimal(-1):
        raise ValueError(f"annual_rate {annual_rate} wipes out the balance every month")
    if mr == 0:
        return pmt * Decimal(months)
    return pmt * ((Decimal(1) + mr) ** months - Decimal(1)) / mr


def compound(balance: Any, annual_rate: Any, months: int) -> Decimal:
    """Grow an existing balance for ``months`` with no new contributions."""
    if months <= 0:
        return _d(balance)
    return _d(balance) * (Decimal(1) + monthly_rate(annual_rate)) ** months


def is_achievable(value: Any) -> bool:
    if value is None:
        return False
    v = _d(value)
    return v.is_finite() and v >= 0


def whole_months_between(start: date, end: date) -> int:
    """Calendar months from ``start`` to ``end`` by year/month fields; days are ignored."""
    if end <= start:
        return 0
    return (end.year - start.year) * 12 + (end.month - start.month)


def add_months(day: date, months: int) -> date:
    idx = day.year * 12 + (day.month - 1) + months
    year, month = divmod(idx, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))
