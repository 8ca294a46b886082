from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from pydantic import TypeAdapter, ValidationError

from goalfund.core.schemas import DepositEvent, ErrorEnvelope, Goal, ProjectionMode, UserGoal
from goalfund.utils.completion import project_goal_completion
from goalfund.utils.milestones import apply_deposit, evaluate_with_transitions
from goalfund.utils.projection_engine import ProjectionEngine
from goalfund.utils.risk_profiles import RiskProfileRegistry
from goalfund.utils.simulation_service import SimulationService

_MODE_ADAPTER: TypeAdapter = TypeAdapter(ProjectionMode)

# common aliases -> canonical mode type
_MODE_ALIASES = {
    "fixedDate": "fixed_date",
    "fixed_date": "fixed_date",
    "date": "fixed_date",
    "fixedAmount": "fixed_payment",
    "fixed_amount": "fixed_payment",
    "fixedPayment": "fixed_payment",
    "fixed_payment": "fixed_payment",
    "amount": "fixed_payment",
}


def _invalid(e: Exception) -> Dict[str, Any]:
    details = None
    if isinstance(e, ValidationError):
        details = {"fields": [".".join(str(x) for x in err["loc"]) for err in e.errors()]}
    return {"error": ErrorEnvelope(code="INVALID_INPUT", message=str(e), details=details).model_dump(mode="json")}


def _mode_from_payload(raw: Dict[str, Any]) -> ProjectionMode:
    m = dict(raw or {})
    kind = m.get("type") or m.get("mode")
    if kind is None:
        kind = "fixed_date" if "target_date" in m or "targetDate" in m else "fixed_payment"
    m["type"] = _MODE_ALIASES.get(str(kind), str(kind))
    m.pop("mode", None)

    if "target_date" not in m and "targetDate" in m:
        m["target_date"] = m.pop("targetDate")
    if "monthly_amount" not in m:
        for alias in ("monthlyAmount", "monthly_payment", "payment"):
            if alias in m:
                m["monthly_amount"] = m.pop(alias)
                break
    return _MODE_ADAPTER.validate_python(m)


def tool_compute_projections(
    payload: Dict[str, Any],
    registry: Optional[RiskProfileRegistry] = None,
    engine: Optional[ProjectionEngine] = None,
) -> Dict[str, Any]:
    p = dict(payload or {})
    try:
        goal = Goal(**p["goal"])
        mode = _mode_from_payload(p.get("mode") or {})
        today = date.fromisoformat(p["today"]) if p.get("today") else None
    except (KeyError, ValueError, TypeError) as e:
        return _invalid(e)

    engine = engine or ProjectionEngine(registry or RiskProfileRegistry.default())
    out = engine.plan(
        goal,
        mode,
        selected=p.get("selected_profile"),
        hidden=p.get("hidden_profiles") or (),
        today=today,
    )
    return out.model_dump(mode="json")


def tool_evaluate_milestones(payload: Dict[str, Any]) -> Dict[str, Any]:
    p = dict(payload or {})
    try:
        goal = UserGoal(**p["user_goal"])
        event = DepositEvent(**p["deposit"]) if p.get("deposit") else None
    except (KeyError, ValueError, TypeError) as e:
        return _invalid(e)

    upd = apply_deposit(goal, event) if event is not None else evaluate_with_transitions(goal)
    return {
        "user_goal": upd.goal.model_dump(mode="json"),
        "display_progress": upd.goal.display_progress,
        "remaining_amount": upd.goal.remaining_amount,
        "newly_achieved": upd.newly_achieved,
        "completed_now": upd.completed_now,
    }


def tool_project_goal_completion(payload: Dict[str, Any], service: Optional[SimulationService] = None) -> Dict[str, Any]:
    p = dict(payload or {})

    if "client_ref" not in p and "client_id" in p:
        p["client_ref"] = p["client_id"]
    if "monthly_contribution" not in p and "monthly_payment" in p:
        p["monthly_contribution"] = p["monthly_payment"]

    try:
        out = project_goal_completion(
            str(p["client_ref"]),
            float(p["target_amount"]),
            float(p["monthly_contribution"]),
            int(p["total_months"]),
            service=service,
        )
    except (KeyError, ValueError, TypeError) as e:
        return _invalid(e)
    return out.model_dump(mode="json")
