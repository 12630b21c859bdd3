"""
LIFELINE Schema — Structured state, scenario and decision objects

Canonical data structures shared by the engines and the HTTP layer.

Core Philosophy:
- Engines are pure functions of these objects plus explicit parameters.
- All structures are serializable, hashable (via stable JSON) and auditable.
"""

from enum import Enum
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lifeline.metrics import MetricId, full_vector


# ─────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────

class SirenLevel(str, Enum):
    """Three-level alert grade derived from collapse probability."""
    GREEN = "green"
    AMBER = "amber"
    RED = "red"


class ShockMode(str, Enum):
    """How a scenario shock is applied inside its window."""
    STEP = "step"     # Once, on the first day of the window
    DAILY = "daily"   # Every day of the window


class WeightsSource(str, Enum):
    """Which influence matrix drives propagation."""
    MANUAL = "manual"
    LEARNED = "learned"
    MIXED = "mixed"


class PolicyMode(str, Enum):
    """Risk posture used to weight rewards against risk terms."""
    RISK = "risk"
    BALANCED = "balanced"
    GROWTH = "growth"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


POLICY_MODES: List[PolicyMode] = [PolicyMode.RISK, PolicyMode.BALANCED, PolicyMode.GROWTH]

SIREN_NUMERIC: Dict[SirenLevel, float] = {
    SirenLevel.GREEN: 0.2,
    SirenLevel.AMBER: 0.6,
    SirenLevel.RED: 1.0,
}


# ─────────────────────────────────────────────
# Observations
# ─────────────────────────────────────────────

class CheckinRecord(BaseModel):
    """One recorded day (or moment) of metric values."""
    ts: datetime = Field(..., description="When the check-in was recorded")
    values: Dict[str, float] = Field(default_factory=dict, description="metricId -> value")

    @field_validator("values")
    @classmethod
    def fill_missing(cls, v: Dict[str, float]) -> Dict[str, float]:
        return full_vector(v)


class CoreStats(BaseModel):
    strength: float = Field(default=50.0, ge=0.0, le=100.0)
    intelligence: float = Field(default=50.0, ge=0.0, le=100.0)
    wisdom: float = Field(default=50.0, ge=0.0, le=100.0)
    dexterity: float = Field(default=50.0, ge=0.0, le=100.0)


class CoreStateSnapshot(BaseModel):
    """Aggregate state derived from the check-in history."""
    index: float = Field(default=5.0)
    risk: float = Field(default=0.0, description="0-100 strain score from 7-day averages")
    volatility: float = Field(default=0.0)
    entropy: float = Field(default=0.0)
    drift: float = Field(default=0.0, description="Index change vs. the previous day")
    stats: CoreStats = Field(default_factory=CoreStats)


# ─────────────────────────────────────────────
# Scenarios & simulation settings
# ─────────────────────────────────────────────

class ScenarioShock(BaseModel):
    """An exogenous forcing applied to one metric for a bounded window."""
    metric_id: MetricId = Field(...)
    delta: float = Field(..., description="Amount added per application")
    duration_days: int = Field(..., ge=1)
    start_lag_days: int = Field(default=0, ge=0)
    mode: ShockMode = Field(default=ShockMode.DAILY)


class ScenarioSpec(BaseModel):
    """A named adverse scenario built from one or more shocks."""
    name: str = Field(...)
    horizon_days: Optional[Literal[7, 14, 30]] = Field(default=None)
    simulations: Optional[Literal[500, 2000, 10000]] = Field(default=None)
    noise: Optional[float] = Field(default=None, ge=0.0)
    correlation_tag: Optional[Literal["health", "work", "social", "money", "combo"]] = Field(default=None)
    shocks: List[ScenarioShock] = Field(default_factory=list)


class SimulationSettings(BaseModel):
    """
    Monte Carlo settings.

    Horizon and simulation count come from small enumerated sets to bound cost.
    `tail_alpha` is the worst fraction of runs averaged by the Expected
    Shortfall figures (0.1 = worst 10%).
    """
    horizon_days: Literal[7, 14, 30] = Field(default=14)
    simulation_count: Literal[500, 2000, 10000] = Field(default=2000)
    noise_multiplier: float = Field(default=1.0, ge=0.0, le=5.0)
    collapse_threshold: float = Field(default=0.35, ge=0.0, le=1.0)
    tail_alpha: float = Field(default=0.1, gt=0.0, lt=1.0)
    seed: int = Field(default=42)
    weights_source: WeightsSource = Field(default=WeightsSource.MANUAL)
    mix: float = Field(default=0.0, ge=0.0, le=1.0)
    learned_lag: Literal[1, 2, 3] = Field(default=1)


# ─────────────────────────────────────────────
# Statistics
# ─────────────────────────────────────────────

class QuantileSeries(BaseModel):
    """Per-day p10/p50/p90 bands, all the same length."""
    p10: List[float] = Field(default_factory=list)
    p50: List[float] = Field(default_factory=list)
    p90: List[float] = Field(default_factory=list)


class TailRiskSummary(BaseModel):
    """VaR / Expected Shortfall of a numeric sample (larger = worse)."""
    alpha: float = Field(...)
    var: float = Field(default=0.0)
    es: float = Field(default=0.0)
    tail_mean: float = Field(default=0.0)
    tail_mass: float = Field(default=0.0)
    sample_count: int = Field(default=0)
    method: Literal["linear-interpolated"] = Field(default="linear-interpolated")
    warnings: List[str] = Field(default_factory=list)


# ─────────────────────────────────────────────
# Actions & policy
# ─────────────────────────────────────────────

class ActionCost(BaseModel):
    model_config = ConfigDict(frozen=True)

    time_min: float = Field(default=0.0)
    energy: float = Field(default=0.0)
    money: float = Field(default=0.0)
    time_debt: float = Field(default=0.0)
    risk: float = Field(default=0.0)
    entropy: float = Field(default=0.0)


class CostWeights(BaseModel):
    time_min: float = Field(default=0.0)
    energy: float = Field(default=0.0)
    money: float = Field(default=0.0)
    time_debt: float = Field(default=0.0)
    risk: float = Field(default=0.0)
    entropy: float = Field(default=0.0)


class BudgetEnvelope(BaseModel):
    """Hard ceiling per cost dimension."""
    max_time_min: float = Field(default=90.0)
    max_energy: float = Field(default=35.0)
    max_money: float = Field(default=5000.0)
    max_time_debt: float = Field(default=0.25)
    max_risk: float = Field(default=0.12)
    max_entropy: float = Field(default=0.2)


class ActionDelta(BaseModel):
    """Per-step effect of an action on the decision state."""
    model_config = ConfigDict(frozen=True)

    goal_score: float = Field(default=0.0)
    index: float = Field(default=0.0)
    p_collapse: float = Field(default=0.0)
    tail_risk: float = Field(default=0.0)
    debt: float = Field(default=0.0)
    siren_risk: float = Field(default=0.0)


class ActionState(BaseModel):
    """The compact state an action's precondition and effect can see."""
    index: float = Field(default=5.0)
    p_collapse: float = Field(default=0.2, ge=0.0, le=1.0)
    siren_level: float = Field(default=0.2, ge=0.0, le=1.0, description="0.2 green, 0.6 amber, 1.0 red")
    debt_total: float = Field(default=0.0, ge=0.0)
    goal_gap: float = Field(default=0.0)
    recovery_score: float = Field(default=0.0)
    shock_budget: float = Field(default=0.0, ge=0.0)
    entropy: float = Field(default=0.0, ge=0.0)


class PolicyConstraints(BaseModel):
    """Hard ceilings checked on every rolled-forward step."""
    max_p_collapse: float = Field(default=0.02, description="Max per-step collapse probability delta")
    siren_cap: float = Field(default=0.02, description="Max per-step siren-risk delta")
    max_debt_growth: float = Field(default=0.05, description="Max per-step debt delta")
    min_recovery_score: float = Field(default=55.0, description="Gate for deliberate-stressor actions")


class PolicyTuning(BaseModel):
    load: float = Field(default=0.0, ge=0.0, le=1.0, description="Current load; shrinks time/energy budget")
    cautious: float = Field(default=0.0, ge=0.0, le=1.0, description="Caution; raises risk and debt weights")


class HorizonSummary(BaseModel):
    mean: float = Field(default=0.0)
    p10: float = Field(default=0.0)
    p50: float = Field(default=0.0)
    p90: float = Field(default=0.0)
    tail: float = Field(default=0.0)
    fail_rate: float = Field(default=0.0)


class RolloutResult(BaseModel):
    action_id: str = Field(...)
    mode: PolicyMode = Field(...)
    horizon: Literal[3, 7] = Field(...)
    score: float = Field(default=0.0)
    penalty: float = Field(default=0.0)
    summary: HorizonSummary = Field(default_factory=HorizonSummary)


class ActionEvaluation(BaseModel):
    """A single-step scored candidate for one policy mode."""
    action_id: str = Field(...)
    title: str = Field(default="")
    score: float = Field(default=0.0)
    penalty: float = Field(default=0.0)
    deltas: ActionDelta = Field(default_factory=ActionDelta)
    reasons: List[str] = Field(default_factory=list)
    is_fallback: bool = Field(default=False)


class PolicyResult(BaseModel):
    mode: PolicyMode = Field(...)
    name: str = Field(default="")
    ranked: List[ActionEvaluation] = Field(default_factory=list)
    best: ActionEvaluation = Field(...)


class CandidateSummary(BaseModel):
    action_id: str = Field(...)
    score: float = Field(default=0.0)
    penalty: float = Field(default=0.0)


class HorizonAuditEntry(BaseModel):
    horizon_days: Literal[3, 7] = Field(...)
    policy_mode: PolicyMode = Field(...)
    action_id: str = Field(...)
    stats: HorizonSummary = Field(...)


class ReproToken(BaseModel):
    model_config = ConfigDict(frozen=True)

    build_id: str = Field(...)
    seed: int = Field(...)
    state_hash: str = Field(...)
    catalog_hash: str = Field(...)
    policy_version: str = Field(...)


class AuditRecord(BaseModel):
    """Immutable record of one policy evaluation, persisted externally."""
    model_config = ConfigDict(frozen=True)

    chosen_action_id: str = Field(...)
    selected_mode: PolicyMode = Field(...)
    repro_token: ReproToken = Field(...)
    top_candidates: List[CandidateSummary] = Field(default_factory=list)
    horizon_summary: List[HorizonAuditEntry] = Field(default_factory=list)
    why_top: List[str] = Field(default_factory=list, max_length=5)
    safe_mode: bool = Field(default=False)
    gates_applied: List[str] = Field(default_factory=list)
    fallback_policy: Optional[PolicyMode] = Field(default=None, description="Mode forced by the honesty gates; the requested mode outside safe mode")
    gate_reasons: List[str] = Field(default_factory=list)
    model_health_grade: Literal["green", "yellow", "red"] = Field(default="green")


# ─────────────────────────────────────────────
# Simulation output
# ─────────────────────────────────────────────

class HistogramBucket(BaseModel):
    bucket: str = Field(..., description="Range label, e.g. '0.25-0.33'")
    value: int = Field(default=0)


class DriverDelta(BaseModel):
    """Mean end-state difference of one metric between ever-red and never-red runs."""
    metric_id: str = Field(...)
    label: str = Field(default="")
    delta: float = Field(default=0.0)


class EffectBand(BaseModel):
    p10: float = Field(default=0.0)
    p50: float = Field(default=0.0)
    p90: float = Field(default=0.0)


class LeverRecommendation(BaseModel):
    metric_id: str = Field(...)
    action: str = Field(default="")
    delta: float = Field(default=0.0, description="Suggested daily change")
    effect_index: EffectBand = Field(default_factory=EffectBand)
    effect_collapse: EffectBand = Field(default_factory=EffectBand)


class SimulationTail(BaseModel):
    prob_ever_red: float = Field(default=0.0)
    prob_threshold_end: float = Field(default=0.0)
    prob_threshold_ever: float = Field(default=0.0)
    es_core_index: float = Field(default=0.0, description="Mean of the worst tail_alpha share of end index values")
    es_collapse: float = Field(default=0.0, description="Mean of the worst tail_alpha share of end pCollapse values")


class SimulationSummary(BaseModel):
    p_red: float = Field(default=0.0)
    es_collapse: float = Field(default=0.0)
    siren_level: SirenLevel = Field(default=SirenLevel.GREEN)


class SimulationResult(BaseModel):
    """Deterministic output of one Monte Carlo run set."""
    status: RunStatus = Field(default=RunStatus.COMPLETED)
    completed_runs: int = Field(default=0)
    horizon_days: int = Field(...)
    simulations: int = Field(...)
    seed: int = Field(...)
    days: List[int] = Field(default_factory=list)
    core_index: QuantileSeries = Field(default_factory=QuantileSeries)
    p_collapse: QuantileSeries = Field(default_factory=QuantileSeries)
    histogram: List[HistogramBucket] = Field(default_factory=list)
    tail: SimulationTail = Field(default_factory=SimulationTail)
    tail_risk: TailRiskSummary = Field(...)
    top_drivers: List[DriverDelta] = Field(default_factory=list)
    recommendations: List[LeverRecommendation] = Field(default_factory=list)
    summary: SimulationSummary = Field(default_factory=SimulationSummary)
    note: str = Field(default="")
