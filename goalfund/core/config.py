from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict

import yaml
from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    env: str
    log_level: str
    cache_ttl_seconds: int
    cache_max_items: int

    risk_profiles_path: str
    goal_catalog_path: str

    simulation_base_url: str
    simulation_timeout_seconds: int
    simulation_retries: int
    simulation_backoff_seconds: float
    simulation_rate_floor: float
    simulation_rate_ceiling: float
    simulation_fallback_annual_rate: float
    simulation_confidence_simulated: int
    simulation_confidence_fallback: int

    max_chart_points: int


def _deep_get(d: Dict[str, Any], path: str, default=None):
    cur = d
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


def load_settings(config_path: str = "config.yaml") -> Settings:
    """
    Loads config.yaml + overrides from .env/environment variables.
    """
    load_dotenv()

    cfg: Dict[str, Any] = {}
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}

    # Empty env vars count as "not set" so they never mask config.yaml.
    def _env_or_cfg(key: str, cfg_path: str, default):
        v = os.getenv(key)
        if v is None:
            return _deep_get(cfg, cfg_path, default)
        v = v.strip()
        return _deep_get(cfg, cfg_path, default) if v == "" else v

    env = _env_or_cfg("APP_ENV", "app.env", "dev")
    log_level = _env_or_cfg("LOG_LEVEL", "app.log_level", "INFO")
    cache_ttl_seconds = int(_env_or_cfg("CACHE_TTL_SECONDS", "app.cache_ttl_seconds", 300))
    cache_max_items = int(_env_or_cfg("CACHE_MAX_ITEMS", "app.cache_max_items", 512))

    risk_profiles_path = _env_or_cfg("RISK_PROFILES_PATH", "paths.risk_profiles", "data/risk_profiles.yaml")
    goal_catalog_path = _env_or_cfg("GOAL_CATALOG_PATH", "paths.goal_catalog", "data/goals.yaml")

    simulation_base_url = _env_or_cfg(
        "SIMULATION_BASE_URL",
        "simulation.base_url",
        "https://2dcq63co40.execute-api.us-east-1.amazonaws.com/dev",
    )
    simulation_timeout_seconds = int(_env_or_cfg("SIMULATION_TIMEOUT_SECONDS", "simulation.timeout_seconds", 10))
    simulation_retries = int(_env_or_cfg("SIMULATION_RETRIES", "simulation.retries", 2))
    simulation_backoff_seconds = float(_env_or_cfg("SIMULATION_BACKOFF_SECONDS", "simulation.backoff_seconds", 0.5))
    simulation_rate_floor = float(_env_or_cfg("SIMULATION_RATE_FLOOR", "simulation.rate_floor", 0.04))
    simulation_rate_ceiling = float(_env_or_cfg("SIMULATION_RATE_CEILING", "simulation.rate_ceiling", 0.12))
    simulation_fallback_annual_rate = float(
        _env_or_cfg("SIMULATION_FALLBACK_RATE", "simulation.fallback_annual_rate", 0.07)
    )
    simulation_confidence_simulated = int(
        _env_or_cfg("SIMULATION_CONFIDENCE_SIMULATED", "simulation.confidence_simulated", 90)
    )
    simulation_confidence_fallback = int(
        _env_or_cfg("SIMULATION_CONFIDENCE_FALLBACK", "simulation.confidence_fallback", 75)
    )

    max_chart_points = int(_env_or_cfg("MAX_CHART_POINTS", "projection.max_chart_points", 50))

    if isinstance(simulation_base_url, str):
        simulation_base_url = simulation_base_url.strip().rstrip("/")

    if simulation_rate_floor > simulation_rate_ceiling:
        raise ValueError(
            f"simulation.rate_floor ({simulation_rate_floor}) exceeds simulation.rate_ceiling ({simulation_rate_ceiling})"
        )

    return Settings(
        env=env,
        log_level=log_level,
        cache_ttl_seconds=cache_ttl_seconds,
        cache_max_items=cache_max_items,
        risk_profiles_path=risk_profiles_path,
        goal_catalog_path=goal_catalog_path,
        simulation_base_url=simulation_base_url,
        simulation_timeout_seconds=simulation_timeout_seconds,
        simulation_retries=simulation_retries,
        simulation_backoff_seconds=simulation_backoff_seconds,
        simulation_rate_floor=simulation_rate_floor,
        simulation_rate_ceiling=simulation_rate_ceiling,
        simulation_fallback_annual_rate=simulation_fallback_annual_rate,
        simulation_confidence_simulated=simulation_confidence_simulated,
        simulation_confidence_fallback=simulation_confidence_fallback,
        max_chart_points=max_chart_points,
    )


# Optional convenience singleton
SETTINGS = load_settings()
