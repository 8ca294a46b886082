import json
from datetime import date

import pytest

from goalfund.core.schemas import FixedDate, FixedPayment, Goal, ReturnRange, RiskProfile
from goalfund.utils.annuity import months_for_payment
from goalfund.utils.cache import TTLCache
from goalfund.utils.projection_engine import (
    ProjectionEngine,
    build_trajectory,
    chart_horizon,
    compute_projections,
    sample_months,
)
from goalfund.utils.risk_profiles import RiskProfileRegistry

TODAY = date(2026, 10, 17)


@pytest.fixture()
def registry():
    return RiskProfileRegistry.default()


def _goal(price, goal_id="laptop"):
    return Goal(id=goal_id, title="Laptop", final_price=price, recommended_strategy="Growth")


def test_fixed_date_solves_payment_per_profile(registry):
    out = compute_projections(_goal(3680), FixedDate(target_date=date(2028, 10, 17)), registry.all(), today=TODAY)
    assert list(out) == ["Safe", "Growth", "Risky", "Savings"]
    assert all(p.months == 24 for p in out.values())
    assert all(p.months_lower_bound is None and p.months_upper_bound is None for p in out.values())
    assert out["Growth"].monthly_payment == pytest.approx(142.60, abs=0.01)
    # more growth -> smaller payment
    assert out["Savings"].monthly_payment > out["Safe"].monthly_payment > out["Growth"].monthly_payment > out["Risky"].monthly_payment


@pytest.mark.parametrize("target", [date(2026, 10, 30), date(2026, 10, 17), date(2025, 3, 1)])
def test_fixed_date_not_in_future_yields_nothing(registry, target):
    assert compute_projections(_goal(3680), FixedDate(target_date=target), registry.all(), today=TODAY) == {}


def test_fixed_payment_band_inversion(registry):
    goal = _goal(2199)
    out = compute_projections(goal, FixedPayment(monthly_amount=150), registry.all(), today=TODAY)
    assert set(out) == {"Safe", "Growth", "Risky", "Savings"}

    for p in registry.all():
        proj = out[p.name]
        assert proj.monthly_payment == 150
        assert proj.months == int(months_for_payment(2199, p.expected_annual_return, 150))
        # the optimistic rate gives the lower bound on months, the pessimistic one the upper
        assert proj.months_lower_bound == int(months_for_payment(2199, p.range.upper, 150))
        assert proj.months_upper_bound == int(months_for_payment(2199, p.range.lower, 150))
        assert proj.months_lower_bound <= proj.months <= proj.months_upper_bound

    growth = out["Growth"]
    assert growth.months_lower_bound < growth.months_upper_bound
    savings = out["Savings"]
    assert savings.months_lower_bound == savings.months == savings.months_upper_bound


@pytest.mark.parametrize("amount", [0, -50])
def test_fixed_payment_without_money_excludes_every_profile(registry, amount):
    assert compute_projections(_goal(2199), FixedPayment(monthly_amount=amount), registry.all(), today=TODAY) == {}


def test_unreachable_pessimistic_edge_is_dropped_not_the_profile(registry):
    out = compute_projections(_goal(52000), FixedPayment(monthly_amount=100), registry.all(), today=TODAY)
    risky = out["Risky"]
    assert risky.months > 0
    assert risky.months_upper_bound is None
    assert risky.months_lower_bound is not None


def test_chart_horizon(registry):
    mode = FixedPayment(monthly_amount=100)
    out = compute_projections(_goal(52000), mode, registry.all(), today=TODAY)
    expected = max(p.months_upper_bound if p.months_upper_bound is not None else p.months for p in out.values())
    assert chart_horizon(mode, out, today=TODAY) == expected

    fd = FixedDate(target_date=date(2029, 4, 2))
    assert chart_horizon(fd, {}, today=TODAY) == 30
    assert chart_horizon(mode, {}, today=TODAY) == 0


@pytest.mark.parametrize("horizon", [1, 2, 24, 49, 50, 51, 99, 103, 120, 359, 682])
def test_sample_months_always_ends_on_horizon(horizon):
    months = sample_months(horizon)
    assert months[0] == 0
    assert months[-1] == horizon
    assert all(a < b for a, b in zip(months, months[1:]))


def test_sample_months_stride():
    assert sample_months(24) == list(range(25))
    assert sample_months(120) == list(range(0, 121, 2))
    assert sample_months(103)[-2:] == [102, 103]
    assert sample_months(0) == []
    assert sample_months(-3) == []


def test_trajectory_reaches_target_on_final_point(registry):
    mode = FixedDate(target_date=date(2028, 10, 17))
    out = compute_projections(_goal(3680), mode, registry.all(), today=TODAY)
    points = build_trajectory(out, registry.all(), 24, selected="Growth")

    assert points[0].month_index == 0
    assert points[0].total_contributed == 0
    assert all(v == 0 for v in points[0].projected_value.values())

    last = points[-1]
    assert last.month_index == 24
    for name in out:
        assert last.projected_value[name] == pytest.approx(3680, abs=0.5)
    assert last.total_contributed == pytest.approx(out["Growth"].monthly_payment * 24, abs=0.01)


def test_trajectory_hidden_profiles(registry):
    out = compute_projections(_goal(3680), FixedDate(target_date=date(2028, 10, 17)), registry.all(), today=TODAY)
    points = build_trajectory(out, registry.all(), 24, selected="Growth", hidden=["Risky", "Growth"])
    assert set(points[5].projected_value) == {"Safe", "Growth", "Savings"}


def test_trajectory_without_selection_has_flat_baseline(registry):
    out = compute_projections(_goal(3680), FixedDate(target_date=date(2028, 10, 17)), registry.all(), today=TODAY)
    points = build_trajectory(out, registry.all(), 24, selected="Nope")
    assert all(p.total_contributed == 0 for p in points)
    assert build_trajectory({}, registry.all(), 24) == []


def test_engine_plan_fixed_payment(registry):
    engine = ProjectionEngine(registry)
    res = engine.plan(_goal(2199), FixedPayment(monthly_amount=150), today=TODAY)
    assert res.selected_profile == "Growth"
    assert res.excluded == {}
    assert res.horizon_months == max(p.months_upper_bound for p in res.projections.values())
    assert res.trajectory[-1].month_index == res.horizon_months
    assert res.warnings == []
    # plain data for the chart layer
    json.loads(res.model_dump_json())


def test_engine_plan_unachievable_reports_reasons(registry):
    engine = ProjectionEngine(registry)
    res = engine.plan(_goal(2199), FixedPayment(monthly_amount=0), today=TODAY)
    assert res.projections == {}
    assert res.trajectory == []
    assert res.horizon_months == 0
    assert res.selected_profile is None
    assert set(res.excluded.values()) == {"non_positive_payment"}
    assert res.warnings


def test_engine_plan_keeps_explicit_selection(registry):
    engine = ProjectionEngine(registry)
    res = engine.plan(_goal(2199), FixedPayment(monthly_amount=150), selected="Safe", today=TODAY)
    assert res.selected_profile == "Safe"


def test_engine_memoizes_on_inputs(registry):
    cache = TTLCache(default_ttl_seconds=60, max_items=8)
    engine = ProjectionEngine(registry, cache=cache)
    goal = _goal(2199)

    first = engine.plan(goal, FixedPayment(monthly_amount=150), today=TODAY)
    first.projections.clear()
    second = engine.plan(goal, FixedPayment(monthly_amount=150), today=TODAY)
    assert len(cache) == 1
    assert set(second.projections) == {"Safe", "Growth", "Risky", "Savings"}

    engine.plan(goal, FixedPayment(monthly_amount=200), today=TODAY)
    engine.plan(goal, FixedPayment(monthly_amount=150), hidden=["Risky"], today=TODAY)
    assert len(cache) == 3


def test_sub_cent_payment_for_target_is_excluded(registry):
    goal = Goal(id="sticker", title="Sticker", final_price="0.5", recommended_strategy="Growth")
    out = compute_projections(goal, FixedDate(target_date=date(2036, 10, 17)), registry.all(), today=TODAY)
    assert out == {}


def test_sub_cent_monthly_amount_is_excluded(registry):
    engine = ProjectionEngine(registry)
    res = engine.plan(_goal(2199), FixedPayment(monthly_amount="0.004"), today=TODAY)
    assert res.projections == {}
    assert set(res.excluded.values()) == {"non_positive_payment"}


def test_profile_with_broken_rate_is_excluded_not_raised(registry):
    # model_construct skips validation, like a profile built outside the registry loader
    broken = RiskProfile.model_construct(
        name="Broken",
        expected_annual_return=float("nan"),
        volatility=0.0,
        mean_absolute_deviation=0.0,
        range=ReturnRange.model_construct(lower=float("nan"), upper=float("nan")),
    )
    profiles = registry.all() + [broken]
    engine = ProjectionEngine(RiskProfileRegistry(profiles))
    for mode in (FixedDate(target_date=date(2028, 10, 17)), FixedPayment(monthly_amount=150)):
        res = engine.plan(_goal(3680), mode, today=TODAY)
        assert "Broken" not in res.projections
        assert res.excluded["Broken"] == "invalid_rate"
        assert "Growth" in res.projections


def test_memo_key_covers_recommended_strategy(registry):
    engine = ProjectionEngine(registry, cache=TTLCache(default_ttl_seconds=60))
    mode = FixedPayment(monthly_amount=150)
    safe_first = Goal(id="trip", title="Trip", final_price=2199, recommended_strategy="Safe")
    risky_first = Goal(id="trip", title="Trip", final_price=2199, recommended_strategy="Risky")
    assert engine.plan(safe_first, mode, today=TODAY).selected_profile == "Safe"
    assert engine.plan(risky_first, mode, today=TODAY).selected_profile == "Risky"
