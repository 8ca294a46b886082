from __future__ import annotations

import sys
from pathlib import Path

# Ensure repo root is on sys.path even when running from scripts/
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from goalfund.core.config import SETTINGS
from goalfund.tools.planner_tools import (
    tool_compute_projections,
    tool_evaluate_milestones,
    tool_project_goal_completion,
)
from goalfund.utils.goal_catalog import GoalCatalog
from goalfund.utils.logging import setup_logging
from goalfund.utils.milestones import build_milestone_ladder
from goalfund.utils.risk_profiles import load_registry


def main():
    setup_logging(SETTINGS.log_level)
    registry = load_registry(SETTINGS.risk_profiles_path)
    catalog = GoalCatalog.from_yaml(SETTINGS.goal_catalog_path)
    goal = catalog.get("home-furniture")

    payload = {"goal": goal.model_dump(mode="json"), "mode": {"type": "fixed_date", "target_date": "2028-06-01"}}
    out = tool_compute_projections(payload, registry=registry)
    print("Horizon (months):", out["horizon_months"])
    for name, p in out["projections"].items():
        print("Monthly for", name, p["monthly_payment"])
    print("Excluded:", out["excluded"])

    out = tool_compute_projections(
        {"goal": goal.model_dump(mode="json"), "mode": {"type": "fixed_payment", "monthly_amount": "250"}},
        registry=registry,
    )
    for name, p in out["projections"].items():
        print("Months for", name, p["months"], "band:", p["months_lower_bound"], "-", p["months_upper_bound"])

    completion = tool_project_goal_completion(
        {"client_ref": "demo-client", "target_amount": "5000", "monthly_contribution": "250", "total_months": 19}
    )
    print("Completion source:", completion.get("source"), "confidence:", completion.get("confidence"))
    for row in completion.get("year_by_year", []):
        print("Year", row["year"], row["value"])

    user_goal = {
        "id": "demo-goal",
        "goal": goal.model_dump(mode="json"),
        "profile_name": goal.recommended_strategy,
        "target_amount": 5000,
        "monthly_contribution": 250,
        "target_date": "2028-06-01",
        "status": "active",
        "milestones": [m.model_dump(mode="json") for m in build_milestone_ladder(5000, goal_ref="demo-goal")],
    }
    ms = tool_evaluate_milestones({"user_goal": user_goal, "deposit": {"event_id": "dep-1", "amount": 1300}})
    print("Newly achieved:", ms.get("newly_achieved"), "remaining:", ms.get("remaining_amount"))


if __name__ == "__main__":
    main()
