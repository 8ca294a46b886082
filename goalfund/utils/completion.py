from __future__ import annotations

import math
from decimal import Decimal
from typing import List, Optional

from goalfund.core.config import SETTINGS, Settings
from goalfund.core.schemas import GoalCompletionProjection, SimulationResult, YearBreakdownRow
from goalfund.utils.annuity import compound, future_value, is_achievable, money, months_for_payment
from goalfund.utils.logging import get_logger
from goalfund.utils.simulation_service import MAX_SIMULATION_MONTHS, SimulationError, SimulationService

logger = get_logger("completion")


def _d(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def implied_annual_rate(result: SimulationResult) -> Optional[Decimal]:
    """Annual growth implied by a simulation run, or None if the run is unusable."""
    if not (math.isfinite(result.initial_value) and math.isfinite(result.projected_value)):
        return None
    if result.initial_value <= 0 or result.projected_value <= 0 or result.months_simulated <= 0:
        return None
    ratio = _d(result.projected_value) / _d(result.initial_value)
    # exact ratio - 1 for a 12-month run, annualized for shorter ones
    return ratio ** (Decimal(12) / Decimal(result.months_simulated)) - Decimal(1)


def clamp_rate(rate: Decimal, floor: float, ceiling: float) -> Decimal:
    return min(max(rate, _d(floor)), _d(ceiling))


def year_by_year_breakdown(
    monthly_contribution: float,
    total_months: int,
    annual_rate: Decimal,
    *,
    first_year_value: Optional[float] = None,
) -> List[YearBreakdownRow]:
    """
    Ledger of year-end balances. Each year compounds the prior balance and adds
    the annuity of that year's contributions; the last year may be partial.
    """
    rows: List[YearBreakdownRow] = []
    balance = Decimal(0)
    remaining = int(total_months)
    year = 0
    monthly = _d(monthly_contribution)

    while remaining > 0:
        year += 1
        n = min(12, remaining)
        contributions = monthly * n
        if year == 1 and first_year_value is not None:
            value = _d(first_year_value)
        else:
            value = compound(balance, annual_rate, n) + future_value(annual_rate, n, monthly)

        rows.append(
            YearBreakdownRow(
                year=year,
                value=money(value),
                contributions_this_year=money(contributions),
                growth_this_year=money(value - balance - contributions),
            )
        )
        balance = value
        remaining -= n
    return rows


def project_goal_completion(
    client_ref: str,
    target_amount: float,
    monthly_contribution: float,
    total_months: int,
    *,
    service: Optional[SimulationService] = None,
    settings: Settings = SETTINGS,
) -> GoalCompletionProjection:
    """
    Blend a short external simulation with the long-horizon annuity projection.

    Never raises for simulation problems: any failure or unusable payload falls
    back to the configured fixed annual rate with a lower confidence score.
    The confidence is a coarse heuristic, not a calibrated probability.
    """
    warnings: List[str] = []
    total_months = int(total_months)
    sim_months = min(max(total_months, 1), MAX_SIMULATION_MONTHS)

    rate: Optional[Decimal] = None
    first_year_value: Optional[float] = None

    if service is None:
        warnings.append("SIMULATION_SKIPPED")
    else:
        try:
            resp = service.simulate(client_ref, sim_months)
        except (SimulationError, ValueError) as e:
            logger.warning(f"simulation_failed client={client_ref} months={sim_months} err={type(e).__name__}:{e}")
            warnings.append("SIMULATION_FAILED")
        else:
            result = resp.results[0] if resp.results else None
            implied = implied_annual_rate(result) if result is not None else None
            if implied is None:
                logger.warning(f"simulation_unusable client={client_ref} results={len(resp.results)}")
                warnings.append("SIMULATION_UNUSABLE")
            else:
                rate = clamp_rate(implied, settings.simulation_rate_floor, settings.simulation_rate_ceiling)
                if rate != implied:
                    warnings.append("SIMULATED_RATE_CLAMPED")
                    logger.info(f"simulated_rate_clamped client={client_ref} implied={float(implied):.4f} used={float(rate):.4f}")
                first_year_value = result.projected_value

    if rate is None:
        source = "fallback"
        rate = _d(settings.simulation_fallback_annual_rate)
        confidence = settings.simulation_confidence_fallback
    else:
        source = "simulation"
        confidence = settings.simulation_confidence_simulated

    ledger = year_by_year_breakdown(monthly_contribution, total_months, rate, first_year_value=first_year_value)
    projected_value = ledger[-1].value if ledger else 0.0

    needed = months_for_payment(target_amount, rate, monthly_contribution)
    months = int(needed) if is_achievable(needed) else None
    if months is None:
        warnings.append("TARGET_NOT_REACHABLE")

    logger.info(
        f"completion_projected client={client_ref} source={source} rate={float(rate):.4f} "
        f"months={months} total_months={total_months} confidence={confidence}"
    )
    return GoalCompletionProjection(
        months=months,
        projected_value=projected_value,
        confidence=confidence,
        annual_rate=float(rate),
        source=source,
        year_by_year=ledger,
        warnings=warnings,
    )
