from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from goalfund.core.config import SETTINGS
from goalfund.core.schemas import (
    FixedDate,
    FixedPayment,
    Goal,
    ProfileProjection,
    ProjectionMode,
    ProjectionResult,
    RiskProfile,
    TrajectoryPoint,
)
from goalfund.utils.annuity import (
    future_value,
    is_achievable,
    money,
    months_for_payment,
    payment_for_target,
    whole_months_between,
)
from goalfund.utils.cache import TTLCache
from goalfund.utils.logging import get_logger
from goalfund.utils.risk_profiles import RiskProfileRegistry

logger = get_logger("projection_engine")

DEFAULT_MAX_CHART_POINTS = 50


def _band_edge(months: Decimal) -> Optional[int]:
    return int(months) if is_achievable(months) else None


def _project_one(price: Decimal, mode: ProjectionMode, p: RiskProfile, today: date) -> Tuple[Optional[ProfileProjection], str]:
    if isinstance(mode, FixedDate):
        months = whole_months_between(today, mode.target_date)
        if months <= 0:
            return None, "target_date_not_in_future"
        pmt = payment_for_target(price, p.expected_annual_return, months)
        if not is_achievable(pmt) or money(pmt) <= 0:
            return None, "payment_not_finite"
        return ProfileProjection(profile=p.name, monthly_payment=money(pmt), months=months), ""

    if isinstance(mode, FixedPayment):
        amount = mode.monthly_amount
        # sub-cent amounts round to a zero payment
        if money(amount) <= 0:
            return None, "non_positive_payment"
        central = months_for_payment(price, p.expected_annual_return, amount)
        if not is_achievable(central):
            return None, "never_reaches_target"
        # Higher return -> fewer months: the optimistic edge gives the lower bound.
        lower = months_for_payment(price, p.range.upper, amount)
        upper = months_for_payment(price, p.range.lower, amount)
        return (
            ProfileProjection(
                profile=p.name,
                monthly_payment=money(amount),
                months=int(central),
                months_lower_bound=_band_edge(lower),
                months_upper_bound=_band_edge(upper),
            ),
            "",
        )

    raise TypeError(f"Unsupported projection mode: {type(mode).__name__}")


def _project_all(
    goal: Goal,
    mode: ProjectionMode,
    profiles: Iterable[RiskProfile],
    today: date,
) -> Tuple[Dict[str, ProfileProjection], Dict[str, str]]:
    projections: Dict[str, ProfileProjection] = {}
    excluded: Dict[str, str] = {}

    for p in profiles:
        try:
            proj, reason = _project_one(goal.final_price, mode, p, today)
        except (ValueError, ArithmeticError) as e:
            logger.warning(f"profile_math_failed goal_id={goal.id} profile={p.name} err={type(e).__name__}:{e}")
            proj, reason = None, "invalid_rate"
        if proj is None:
            excluded[p.name] = reason
        else:
            projections[p.name] = proj
    return projections, excluded


def compute_projections(
    goal: Goal,
    mode: ProjectionMode,
    profiles: Iterable[RiskProfile],
    *,
    today: Optional[date] = None,
) -> Dict[str, ProfileProjection]:
    """
    Per-profile payment/duration for ``goal`` under ``mode``.

    Profiles that cannot reach the goal (past target date, no payment,
    non-finite result) are left out of the map rather than raising.
    """
    projections, _ = _project_all(goal, mode, profiles, today or date.today())
    return projections


def chart_horizon(
    mode: ProjectionMode,
    projections: Dict[str, ProfileProjection],
    *,
    today: Optional[date] = None,
) -> int:
    if isinstance(mode, FixedDate):
        return whole_months_between(today or date.today(), mode.target_date)

    spans = [
        p.months_upper_bound if p.months_upper_bound is not None else p.months
        for p in projections.values()
    ]
    return max(spans) if spans else 0


def sample_months(horizon: int, max_points: int = DEFAULT_MAX_CHART_POINTS) -> List[int]:
    """Evenly strided month indexes from 0, always ending exactly at ``horizon``."""
    if horizon <= 0:
        return []
    stride = max(1, horizon // max(1, max_points))
    months = list(range(0, horizon + 1, stride))
    if months[-1] != horizon:
        months.append(horizon)
    return months


def build_trajectory(
    projections: Dict[str, ProfileProjection],
    profiles: Iterable[RiskProfile],
    horizon: int,
    *,
    selected: Optional[str] = None,
    hidden: Sequence[str] = (),
    max_points: int = DEFAULT_MAX_CHART_POINTS,
) -> List[TrajectoryPoint]:
    if horizon <= 0 or not projections:
        return []

    # hidden profiles are skipped, except the selected one
    visible = [
        p for p in profiles
        if p.name in projections and (p.name not in hidden or p.name == selected)
    ]
    selected_payment = Decimal(str(projections[selected].monthly_payment)) if selected in projections else Decimal(0)

    points: List[TrajectoryPoint] = []
    for m in sample_months(horizon, max_points):
        values = {
            p.name: money(future_value(p.expected_annual_return, m, projections[p.name].monthly_payment))
            for p in visible
        }
        points.append(
            TrajectoryPoint(
                month_index=m,
                total_contributed=money(selected_payment * m),
                projected_value=values,
            )
        )
    return points


class ProjectionEngine:
    """
    Runs the projection for every registered profile and builds the chart series.

    Results are recomputed from scratch for each distinct input; an injected
    ``TTLCache`` memoizes on the full input tuple.
    """

    def __init__(
        self,
        registry: RiskProfileRegistry,
        *,
        cache: Optional[TTLCache] = None,
        max_chart_points: Optional[int] = None,
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.max_chart_points = int(max_chart_points or SETTINGS.max_chart_points or DEFAULT_MAX_CHART_POINTS)

    def plan(
        self,
        goal: Goal,
        mode: ProjectionMode,
        *,
        selected: Optional[str] = None,
        hidden: Sequence[str] = (),
        today: Optional[date] = None,
    ) -> ProjectionResult:
        today = today or date.today()
        if self.cache is None:
            return self._plan(goal, mode, selected, hidden, today)

        key = (
            "plan",
            goal.model_dump_json(),
            mode,
            selected,
            tuple(sorted(hidden)),
            today,
            tuple(self.registry.names()),
        )
        result: ProjectionResult = self.cache.get_or_compute(key, lambda: self._plan(goal, mode, selected, hidden, today))
        return result.model_copy(deep=True)

    def _plan(
        self,
        goal: Goal,
        mode: ProjectionMode,
        selected: Optional[str],
        hidden: Sequence[str],
        today: date,
    ) -> ProjectionResult:
        profiles = self.registry.all()
        projections, excluded = _project_all(goal, mode, profiles, today)

        for name, reason in excluded.items():
            logger.info(f"profile_excluded goal_id={goal.id} profile={name} mode={mode.type} reason={reason}")

        if selected is None or selected not in projections:
            if goal.recommended_strategy in projections:
                selected = goal.recommended_strategy
            else:
                selected = next(iter(projections), None)

        horizon = chart_horizon(mode, projections, today=today)
        trajectory = build_trajectory(
            projections,
            profiles,
            horizon,
            selected=selected,
            hidden=hidden,
            max_points=self.max_chart_points,
        )

        warnings: List[str] = []
        if not projections:
            warnings.append("Goal is not achievable with these inputs; adjust the target date or monthly amount.")

        logger.info(
            f"projection_computed goal_id={goal.id} mode={mode.type} profiles={len(projections)} "
            f"excluded={len(excluded)} horizon={horizon} points={len(trajectory)}"
        )
        return ProjectionResult(
            goal_id=goal.id,
            mode=mode,
            as_of=today,
            horizon_months=horizon if projections else 0,
            selected_profile=selected,
            projections=projections,
            excluded=excluded,
            trajectory=trajectory,
            warnings=warnings,
        )
