from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional

import yaml

from goalfund.core.schemas import Goal
from goalfund.utils.logging import get_logger
from goalfund.utils.risk_profiles import RiskProfileRegistry

logger = get_logger("goal_catalog")

REQUIRED_GOAL_KEYS = ["id", "title", "final_price"]


def load_goal_catalog(catalog_path: str) -> List[Goal]:
    p = Path(catalog_path)
    if not p.exists():
        raise FileNotFoundError(f"Goal catalog not found: {p}")

    with p.open("r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    rows = cfg.get("goals") or []
    goals: List[Goal] = []
    seen = set()
    for r in rows:
        missing = [k for k in REQUIRED_GOAL_KEYS if k not in r]
        if missing:
            raise ValueError(f"Goal entry missing keys: {missing}. Found: {sorted(r)}")
        if r["id"] in seen:
            raise ValueError(f"Duplicate goal id in catalog: {r['id']}")
        seen.add(r["id"])
        goals.append(Goal(**r))

    logger.info(f"goal_catalog_loaded path={p} count={len(goals)}")
    return goals


class GoalCatalog:
    def __init__(self, goals: List[Goal]) -> None:
        self._goals: Dict[str, Goal] = {g.id: g for g in goals}

    @classmethod
    def from_yaml(cls, catalog_path: str) -> "GoalCatalog":
        return cls(load_goal_catalog(catalog_path))

    def get(self, goal_id: str) -> Optional[Goal]:
        return self._goals.get(goal_id)

    def all(self) -> List[Goal]:
        return list(self._goals.values())

    def by_category(self, category: str) -> List[Goal]:
        return [g for g in self._goals.values() if g.category == category]

    def unknown_strategies(self, registry: RiskProfileRegistry) -> List[str]:
        """Goal ids whose recommended strategy is not a registered profile."""
        return [g.id for g in self._goals.values() if g.recommended_strategy not in registry]
