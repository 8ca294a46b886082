from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, UTC
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional, Tuple

from goalfund.core.schemas import DepositEvent, GoalStatus, Milestone, PaceComparison, UserGoal
from goalfund.utils.annuity import is_achievable, money, months_for_payment
from goalfund.utils.logging import get_logger

logger = get_logger("milestones")

# (target_percent, title, reward)
MILESTONE_LADDER: Tuple[Tuple[int, str, str], ...] = (
    (10, "First Steps", "500 points"),
    (25, "Quarter Way", "1,000 points"),
    (50, "Halfway Hero", "2,500 points + $25 gift card"),
    (75, "Almost There", "5,000 points"),
    (100, "Goal Achieved!", "Partner discount + 10,000 points"),
)

_STATUS_TRANSITIONS: Dict[GoalStatus, FrozenSet[GoalStatus]] = {
    GoalStatus.PLANNING: frozenset({GoalStatus.ACTIVE}),
    GoalStatus.ACTIVE: frozenset({GoalStatus.PAUSED, GoalStatus.COMPLETED}),
    GoalStatus.PAUSED: frozenset({GoalStatus.ACTIVE, GoalStatus.COMPLETED}),
    GoalStatus.COMPLETED: frozenset(),
}


def _d(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


@dataclass
class MilestoneUpdate:
    goal: UserGoal
    newly_achieved: List[int] = field(default_factory=list)
    completed_now: bool = False


def build_milestone_ladder(target_amount: float, *, goal_ref: str = "goal", discount_percent: float = 0.0) -> List[Milestone]:
    ladder: List[Milestone] = []
    for pct, title, reward in MILESTONE_LADDER:
        if pct == 100 and discount_percent > 0:
            reward = f"{discount_percent:g}% partner discount + 10,000 points"
        ladder.append(
            Milestone(
                id=f"{goal_ref}-ms-{pct}",
                title=title,
                target_percent=pct,
                target_amount=money(_d(target_amount) * Decimal(pct) / Decimal(100)),
                reward=reward,
            )
        )
    return ladder


def _progress(current_amount: float, target_amount: float) -> Decimal:
    return _d(current_amount) / _d(target_amount) * Decimal(100)


def evaluate_with_transitions(user_goal: UserGoal, *, now: Optional[datetime] = None) -> MilestoneUpdate:
    """
    Recompute progress and flip milestones reached for the first time.

    Achievement is permanent: a later drop in ``current_amount`` never resets
    a milestone, and ``completed`` is terminal. Re-running with the same
    balance yields no new transitions.
    """
    now = now or datetime.now(UTC)
    progress = _progress(user_goal.current_amount, user_goal.target_amount)

    milestones: List[Milestone] = []
    newly: List[int] = []
    for m in user_goal.milestones:
        if not m.achieved and progress >= Decimal(m.target_percent):
            m = m.model_copy(update={"achieved": True, "achieved_date": now})
            newly.append(m.target_percent)
        else:
            m = m.model_copy()
        milestones.append(m)

    status = user_goal.status
    completed_at = user_goal.completed_at
    completed_now = False
    if progress >= Decimal(100) and GoalStatus.COMPLETED in _STATUS_TRANSITIONS[status]:
        status = GoalStatus.COMPLETED
        completed_at = now
        completed_now = True

    if newly:
        logger.info(f"milestones_achieved goal_id={user_goal.id} percents={newly} progress={float(progress):.2f}")
    if completed_now:
        logger.info(f"goal_completed goal_id={user_goal.id} current={user_goal.current_amount} target={user_goal.target_amount}")

    updated = user_goal.model_copy(
        update={
            "progress_percent": float(progress),
            "milestones": milestones,
            "status": status,
            "completed_at": completed_at,
        }
    )
    return MilestoneUpdate(goal=updated, newly_achieved=newly, completed_now=completed_now)


def evaluate(user_goal: UserGoal, *, now: Optional[datetime] = None) -> UserGoal:
    return evaluate_with_transitions(user_goal, now=now).goal


def apply_deposit(user_goal: UserGoal, event: DepositEvent, *, now: Optional[datetime] = None) -> MilestoneUpdate:
    """Fold one deposit/withdrawal event into the goal. Replayed events are ignored."""
    if event.event_id in user_goal.applied_event_ids:
        logger.info(f"deposit_duplicate goal_id={user_goal.id} event_id={event.event_id}")
        return evaluate_with_transitions(user_goal, now=now or event.occurred_at)

    new_amount = _d(user_goal.current_amount) + _d(event.amount)
    if new_amount < 0:
        logger.warning(
            f"deposit_overdraw goal_id={user_goal.id} event_id={event.event_id} "
            f"current={user_goal.current_amount} amount={event.amount}"
        )
        new_amount = Decimal(0)

    updated = user_goal.model_copy(
        update={
            "current_amount": money(new_amount),
            "applied_event_ids": [*user_goal.applied_event_ids, event.event_id],
        }
    )
    return evaluate_with_transitions(updated, now=now or event.occurred_at)


def transition_status(user_goal: UserGoal, new_status: GoalStatus) -> UserGoal:
    if new_status == user_goal.status:
        return user_goal
    if new_status not in _STATUS_TRANSITIONS[user_goal.status]:
        raise ValueError(f"Cannot move goal {user_goal.id} from {user_goal.status.value} to {new_status.value}")
    return user_goal.model_copy(update={"status": new_status})


def pace_comparison(current_amount: float, target_amount: float, monthly_contribution: float, extra_monthly: float) -> PaceComparison:
    """Months left at the current pace vs. with ``extra_monthly`` added, ignoring growth."""
    remaining = _d(target_amount) - _d(current_amount)
    if remaining <= 0:
        return PaceComparison(current_months=0, improved_months=0, months_saved=0)

    def _months(payment: Decimal) -> Optional[int]:
        n = months_for_payment(remaining, 0, payment)
        return int(n) if is_achievable(n) else None

    current = _months(_d(monthly_contribution))
    improved = _months(_d(monthly_contribution) + _d(extra_monthly))
    saved = current - improved if current is not None and improved is not None else 0
    return PaceComparison(current_months=current, improved_months=improved, months_saved=max(0, saved))
