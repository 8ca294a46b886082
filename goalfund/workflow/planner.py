from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime, UTC
from typing import List, Optional, Set

from goalfund.core.schemas import (
    FixedDate,
    GoalCompletionProjection,
    Goal,
    GoalStatus,
    ProjectionMode,
    ProjectionResult,
    UserGoal,
)
from goalfund.utils.annuity import add_months
from goalfund.utils.completion import project_goal_completion
from goalfund.utils.logging import get_logger, set_log_context
from goalfund.utils.milestones import build_milestone_ladder, evaluate
from goalfund.utils.projection_engine import ProjectionEngine
from goalfund.utils.risk_profiles import RiskProfileRegistry
from goalfund.utils.simulation_service import SimulationService

logger = get_logger("planner")


class UnachievableGoalError(ValueError):
    pass


@dataclass
class CommitResult:
    user_goal: UserGoal
    completion: Optional[GoalCompletionProjection] = None
    superseded: bool = False


class PlanningSession:
    """
    One user's planning state for a single goal.

    Every input change (mode, selected profile, hidden profiles) bumps the
    revision and drops the cached result; the next ``result()`` recomputes
    from scratch. ``commit`` ignores a simulation answer that arrives after
    the inputs changed.
    """

    def __init__(
        self,
        goal: Goal,
        registry: RiskProfileRegistry,
        *,
        engine: Optional[ProjectionEngine] = None,
        service: Optional[SimulationService] = None,
        today: Optional[date] = None,
        session_id: Optional[str] = None,
    ) -> None:
        self.goal = goal
        self.registry = registry
        self.engine = engine or ProjectionEngine(registry)
        self.service = service
        self.today = today
        self.session_id = session_id or str(uuid.uuid4())

        self._mode: Optional[ProjectionMode] = None
        self._selected: Optional[str] = goal.recommended_strategy if goal.recommended_strategy in registry else None
        self._hidden: Set[str] = set()
        self._revision = 0
        self._result: Optional[ProjectionResult] = None

    @property
    def mode(self) -> Optional[ProjectionMode]:
        return self._mode

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def selected_profile(self) -> Optional[str]:
        return self._selected

    @property
    def hidden_profiles(self) -> List[str]:
        return sorted(self._hidden)

    def _today(self) -> date:
        return self.today or date.today()

    def _invalidate(self, reason: str) -> None:
        self._revision += 1
        self._result = None
        logger.debug(f"projection_invalidated session_id={self.session_id} reason={reason} revision={self._revision}")

    def set_mode(self, mode: ProjectionMode) -> None:
        if mode == self._mode:
            return
        previous = self._mode.type if self._mode is not None else None
        self._mode = mode
        self._invalidate("mode")
        logger.info(f"mode_changed session_id={self.session_id} from={previous} to={mode.type}")

    def select_profile(self, name: str) -> None:
        self.registry.get(name)
        if name != self._selected:
            self._selected = name
            self._invalidate("selected_profile")

    def hide_profile(self, name: str) -> None:
        self.registry.get(name)
        if name not in self._hidden:
            self._hidden.add(name)
            self._invalidate("hidden_profiles")

    def show_profile(self, name: str) -> None:
        if name in self._hidden:
            self._hidden.discard(name)
            self._invalidate("hidden_profiles")

    def result(self) -> ProjectionResult:
        if self._mode is None:
            raise ValueError("No projection mode set; call set_mode() first")
        if self._result is None:
            set_log_context(session_id=self.session_id, goal_id=self.goal.id)
            self._result = self.engine.plan(
                self.goal,
                self._mode,
                selected=self._selected,
                hidden=sorted(self._hidden),
                today=self._today(),
            )
        return self._result

    def commit(
        self,
        client_ref: str,
        *,
        initial_amount: float = 0.0,
        now: Optional[datetime] = None,
        goal_id: Optional[str] = None,
    ) -> CommitResult:
        res = self.result()
        name = self._selected or res.selected_profile
        if name is None or name not in res.projections:
            reason = res.excluded.get(name or "", "no_profile_selected")
            raise UnachievableGoalError(
                f"{self.goal.title} is not achievable with profile {name}: {reason}. Adjust your inputs."
            )

        proj = res.projections[name]
        today = self._today()
        now = now or datetime.now(UTC)
        uid = goal_id or f"goal-{uuid.uuid4().hex[:12]}"
        set_log_context(session_id=self.session_id, goal_id=uid, profile=name)

        if isinstance(self._mode, FixedDate):
            target_date = self._mode.target_date
        else:
            target_date = add_months(today, proj.months)

        target_amount = float(self.goal.final_price)
        user_goal = UserGoal(
            id=uid,
            goal=self.goal,
            client_ref=client_ref,
            profile_name=name,
            target_amount=target_amount,
            monthly_contribution=proj.monthly_payment,
            target_date=target_date,
            current_amount=initial_amount,
            projected_completion=target_date,
            milestones=build_milestone_ladder(
                target_amount, goal_ref=uid, discount_percent=self.goal.discount_percent
            ),
            status=GoalStatus.ACTIVE,
            created_at=now,
        )
        user_goal = evaluate(user_goal, now=now)

        revision = self._revision
        completion = project_goal_completion(
            client_ref,
            target_amount,
            proj.monthly_payment,
            proj.months,
            service=self.service,
        )

        if self._revision != revision:
            logger.info(f"completion_superseded goal_id={uid} revision={revision} current={self._revision}")
            return CommitResult(user_goal=user_goal, completion=None, superseded=True)

        if completion.months is not None:
            user_goal = user_goal.model_copy(update={"projected_completion": add_months(today, completion.months)})

        logger.info(
            f"goal_committed goal_id={uid} profile={name} monthly={proj.monthly_payment} "
            f"target_date={target_date.isoformat()} confidence={completion.confidence}"
        )
        return CommitResult(user_goal=user_goal, completion=completion)
