from datetime import date
from decimal import Decimal

import pytest

from goalfund.utils.annuity import (
    INFINITY,
    add_months,
    future_value,
    is_achievable,
    months_for_payment,
    payment_for_target,
    whole_months_between,
)


def test_payment_for_target_closed_form():
    r = 0.075 / 12
    expected = 3680 * r / ((1 + r) ** 24 - 1)
    pmt = payment_for_target(3680, 0.075, 24)
    assert float(pmt) == pytest.approx(expected, rel=1e-9)
    assert float(pmt) == pytest.approx(142.60, abs=0.01)


def test_zero_rate_is_exact():
    assert payment_for_target(3000, 0, 20) == Decimal(150)
    assert payment_for_target(1000, 0, 3) == Decimal(1000) / Decimal(3)
    assert months_for_payment(3000, 0, 150) == 20
    # partial months still need a full contribution
    assert months_for_payment(3000, 0, 140) == 22


def test_payment_requires_positive_months():
    with pytest.raises(ValueError):
        payment_for_target(1000, 0.05, 0)


def test_months_for_payment_regression_baseline():
    months = months_for_payment(2199, 0.09, 150)
    assert months.is_finite()
    assert months == 14
    assert months < 15


def test_no_payment_never_reaches_target():
    assert months_for_payment(2199, 0.09, 0) == INFINITY
    assert months_for_payment(2199, 0.09, -10) == INFINITY
    assert not is_achievable(months_for_payment(2199, 0.0, 0))


def test_negative_rate_can_cap_balance_below_target():
    # -7%/yr with a tiny payment: the balance converges below the target
    assert months_for_payment(10000, -0.07, 10) == INFINITY
    # a mild loss with a big payment still gets there, just slower than with no growth
    slow = months_for_payment(1000, -0.01, 100)
    assert slow.is_finite()
    assert slow >= months_for_payment(1000, 0, 100)


@pytest.mark.parametrize("target", [329, 2199, 3680, 52000])
@pytest.mark.parametrize("rate", [0, 0.005, 0.05, 0.075, 0.10, 0.27, -0.035])
@pytest.mark.parametrize("months", [1, 7, 24, 60, 120])
def test_round_trip_payment_then_months(target, rate, months):
    pmt = payment_for_target(target, rate, months)
    assert months_for_payment(target, rate, pmt) == months


def test_payment_strictly_decreasing_in_rate():
    rates = [-0.035, 0, 0.005, 0.05, 0.075, 0.10, 0.27]
    payments = [payment_for_target(3680, r, 24) for r in rates]
    assert all(a > b for a, b in zip(payments, payments[1:]))


def test_future_value_inverts_payment():
    pmt = payment_for_target(5000, 0.10, 36)
    assert float(future_value(0.10, 36, pmt)) == pytest.approx(5000, rel=1e-12)
    assert future_value(0, 12, 100) == Decimal(1200)
    assert future_value(0.05, 0, 100) == 0


def test_is_achievable():
    assert is_achievable(Decimal(0))
    assert is_achievable(12.5)
    assert not is_achievable(INFINITY)
    assert not is_achievable(Decimal("NaN"))
    assert not is_achievable(-1)
    assert not is_achievable(None)


def test_whole_months_between_uses_calendar_fields():
    today = date(2026, 10, 17)
    assert whole_months_between(today, date(2028, 10, 17)) == 24
    assert whole_months_between(today, date(2028, 10, 1)) == 24
    assert whole_months_between(today, date(2026, 10, 30)) == 0
    assert whole_months_between(date(2026, 10, 31), date(2026, 11, 1)) == 1
    assert whole_months_between(today, date(2025, 1, 1)) == 0
    assert whole_months_between(today, today) == 0


def test_add_months_clamps_to_month_end():
    assert add_months(date(2026, 1, 31), 1) == date(2026, 2, 28)
    assert add_months(date(2026, 11, 15), 3) == date(2027, 2, 15)
    assert add_months(date(2026, 10, 17), 0) == date(2026, 10, 17)
