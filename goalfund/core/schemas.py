from __future__ import annotations

from datetime import date, datetime, UTC
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


# -------------------------
# Risk profiles
# -------------------------

class ReturnRange(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    # a monthly rate at or below -100% has no annuity solution
    lower: float = Field(..., gt=-12)
    upper: float = Field(..., gt=-12)


class RiskProfile(BaseModel):
    """Deterministic return assumption for one strategy. Rates are annual fractions."""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    name: str
    expected_annual_return: float = Field(..., gt=-12)
    volatility: float = Field(default=0.0, ge=0)
    mean_absolute_deviation: float = Field(default=0.0, ge=0)
    range: ReturnRange

    @property
    def has_band(self) -> bool:
        return self.range.lower != self.range.upper


# -------------------------
# Goals (catalog)
# -------------------------

GoalCategory = Literal["travel", "education", "home", "car", "tech", "experience", "lifestyle"]


class Goal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    category: GoalCategory = "lifestyle"
    description: str = ""
    base_price: Optional[Decimal] = None
    discount_percent: float = Field(default=0.0, ge=0, le=100)
    final_price: Decimal = Field(..., gt=0)
    partner_name: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    estimated_months: int = Field(default=12, ge=1)
    min_monthly_investment: Optional[Decimal] = None
    max_monthly_investment: Optional[Decimal] = None
    recommended_strategy: str = "Growth"


# -------------------------
# Projection
# -------------------------

class FixedDate(BaseModel):
    """Plan by completion date; the monthly payment is solved for."""

    model_config = ConfigDict(frozen=True)

    type: Literal["fixed_date"] = "fixed_date"
    target_date: date


class FixedPayment(BaseModel):
    """Plan by monthly payment; the duration is solved for."""

    model_config = ConfigDict(frozen=True)

    type: Literal["fixed_payment"] = "fixed_payment"
    monthly_amount: Decimal


ProjectionMode = Annotated[Union[FixedDate, FixedPayment], Field(discriminator="type")]


class ProfileProjection(BaseModel):
    profile: str
    monthly_payment: float
    months: int
    months_lower_bound: Optional[int] = None
    months_upper_bound: Optional[int] = None


class TrajectoryPoint(BaseModel):
    month_index: int = Field(..., ge=0)
    total_contributed: float
    projected_value: Dict[str, float] = Field(default_factory=dict)


class ProjectionResult(BaseModel):
    goal_id: str
    mode: ProjectionMode
    as_of: date
    horizon_months: int = 0
    selected_profile: Optional[str] = None
    projections: Dict[str, ProfileProjection] = Field(default_factory=dict)
    excluded: Dict[str, str] = Field(default_factory=dict)
    trajectory: List[TrajectoryPoint] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


# -------------------------
# Committed goals + milestones
# -------------------------

class GoalStatus(str, Enum):
    PLANNING = "planning"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class Milestone(BaseModel):
    id: str
    title: str
    target_percent: int
    target_amount: float
    achieved: bool = False
    achieved_date: Optional[datetime] = None
    reward: Optional[str] = None


class UserGoal(BaseModel):
    id: str
    goal: Goal
    client_ref: Optional[str] = None
    profile_name: str
    target_amount: float = Field(..., gt=0)
    monthly_contribution: float
    target_date: date
    current_amount: float = 0.0
    progress_percent: float = 0.0
    projected_completion: Optional[date] = None
    milestones: List[Milestone] = Field(default_factory=list)
    status: GoalStatus = GoalStatus.ACTIVE
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: Optional[datetime] = None
    applied_event_ids: List[str] = Field(default_factory=list)

    @property
    def display_progress(self) -> float:
        """Progress clamped to [0, 100] for progress bars; the stored value may exceed 100."""
        return min(100.0, max(0.0, self.progress_percent))

    @property
    def remaining_amount(self) -> float:
        return max(0.0, self.target_amount - self.current_amount)


class DepositEvent(BaseModel):
    """Opaque balance change from the persistence layer. Negative amounts are withdrawals."""

    event_id: str
    amount: float
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class PaceComparison(BaseModel):
    current_months: Optional[int] = None
    improved_months: Optional[int] = None
    months_saved: int = 0


# -------------------------
# External simulation
# -------------------------

class GrowthDataPoint(BaseModel):
    model_config = ConfigDict(extra="ignore")

    date: str
    value: float


class SimulationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", allow_inf_nan=False)

    portfolio_id: Optional[str] = Field(default=None, alias="portfolioId")
    strategy: Optional[str] = None
    initial_value: float = Field(..., alias="initialValue")
    projected_value: float = Field(..., alias="projectedValue")
    months_simulated: int = Field(..., alias="monthsSimulated")
    growth_trend: List[GrowthDataPoint] = Field(default_factory=list)


class SimulationResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: Optional[str] = None
    results: List[SimulationResult] = Field(default_factory=list)


class YearBreakdownRow(BaseModel):
    year: int
    value: float
    contributions_this_year: float
    growth_this_year: float


class GoalCompletionProjection(BaseModel):
    months: Optional[int] = None
    projected_value: float
    confidence: int = Field(..., ge=0, le=100)
    annual_rate: float
    source: Literal["simulation", "fallback"]
    year_by_year: List[YearBreakdownRow] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


# -------------------------
# Errors
# -------------------------

class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    retriable: bool = False
