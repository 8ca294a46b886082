from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import yaml

from goalfund.core.schemas import ReturnRange, RiskProfile
from goalfund.utils.logging import get_logger

logger = get_logger("risk_profiles")

REQUIRED_PROFILE_KEYS = ["name", "expected_annual_return", "range"]

DEFAULT_PROFILES: Tuple[RiskProfile, ...] = (
    RiskProfile(
        name="Safe",
        expected_annual_return=0.05,
        volatility=0.06,
        mean_absolute_deviation=0.0479,
        range=ReturnRange(lower=-0.01, upper=0.11),
    ),
    RiskProfile(
        name="Growth",
        expected_annual_return=0.075,
        volatility=0.11,
        mean_absolute_deviation=0.0878,
        range=ReturnRange(lower=-0.035, upper=0.185),
    ),
    RiskProfile(
        name="Risky",
        expected_annual_return=0.10,
        volatility=0.17,
        mean_absolute_deviation=0.1356,
        range=ReturnRange(lower=-0.07, upper=0.27),
    ),
)

SAVINGS_PROFILE_NAME = "Savings"
SAVINGS_ANNUAL_RATE = 0.005


class UnknownProfileError(KeyError):
    pass


def savings_profile(annual_rate: float = SAVINGS_ANNUAL_RATE, name: str = SAVINGS_PROFILE_NAME) -> RiskProfile:
    """Zero-volatility "park it in cash" profile: no band around the expected rate."""
    return RiskProfile(
        name=name,
        expected_annual_return=annual_rate,
        volatility=0.0,
        mean_absolute_deviation=0.0,
        range=ReturnRange(lower=annual_rate, upper=annual_rate),
    )


class RiskProfileRegistry:
    """Read-only catalog of return profiles, with the savings profile appended last."""

    def __init__(self, profiles: Iterable[RiskProfile], *, savings: Optional[RiskProfile] = None) -> None:
        ordered: List[RiskProfile] = list(profiles)
        if savings is not None:
            ordered.append(savings)

        by_name: Dict[str, RiskProfile] = {}
        for p in ordered:
            if p.name in by_name:
                raise ValueError(f"Duplicate risk profile name: {p.name}")
            if p.range.lower > p.range.upper:
                raise ValueError(f"Profile {p.name}: range.lower {p.range.lower} > range.upper {p.range.upper}")
            if not (p.range.lower <= p.expected_annual_return <= p.range.upper):
                logger.warning(
                    f"profile_expected_outside_range profile={p.name} expected={p.expected_annual_return} "
                    f"lower={p.range.lower} upper={p.range.upper}"
                )
            by_name[p.name] = p

        self._profiles: Tuple[RiskProfile, ...] = tuple(ordered)
        self._by_name = by_name

    @classmethod
    def default(cls) -> "RiskProfileRegistry":
        return cls(DEFAULT_PROFILES, savings=savings_profile())

    @classmethod
    def from_yaml(cls, path: str) -> "RiskProfileRegistry":
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Risk profile config not found: {p}")

        with p.open("r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}

        rows = cfg.get("profiles") or []
        if not isinstance(rows, list) or not rows:
            raise ValueError(f"Risk profile config has no 'profiles' list: {p}")

        profiles: List[RiskProfile] = []
        for r in rows:
            missing = [k for k in REQUIRED_PROFILE_KEYS if k not in r]
            if missing:
                raise ValueError(f"Risk profile entry missing keys: {missing}. Found: {sorted(r)}")
            profiles.append(RiskProfile(**r))

        savings_cfg = cfg.get("savings", {})
        savings: Optional[RiskProfile] = None
        if savings_cfg is not False:
            savings_cfg = savings_cfg or {}
            savings = savings_profile(
                annual_rate=float(savings_cfg.get("annual_rate", SAVINGS_ANNUAL_RATE)),
                name=str(savings_cfg.get("name", SAVINGS_PROFILE_NAME)),
            )

        logger.info(f"risk_profiles_loaded path={p} count={len(profiles)} savings={savings is not None}")
        return cls(profiles, savings=savings)

    def get(self, name: str) -> RiskProfile:
        try:
            return self._by_name[name]
        except KeyError:
            raise UnknownProfileError(f"Unknown risk profile: {name}. Known: {self.names()}") from None

    def all(self) -> List[RiskProfile]:
        return list(self._profiles)

    def names(self) -> List[str]:
        return [p.name for p in self._profiles]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[RiskProfile]:
        return iter(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)


def load_registry(path: Optional[str] = None) -> RiskProfileRegistry:
    """Registry from ``path`` when it exists, otherwise the built-in profiles."""
    if path and Path(path).exists():
        return RiskProfileRegistry.from_yaml(path)
    logger.info(f"risk_profiles_default path={path}")
    return RiskProfileRegistry.default()
